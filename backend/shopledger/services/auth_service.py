# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Phone + One-Time Code Authentication

WHY: Customers identify by phone number. A short numeric code is sent by SMS
and exchanged for a session token (see session_service.py).

SECURITY NOTES:
- Codes hashed with bcrypt (cost factor BCRYPT_ROUNDS), never stored plaintext
- Codes expire after OTP_TTL_SECONDS and are single use
- A challenge is burned after OTP_MAX_ATTEMPTS wrong guesses
- Self-registration always creates CUSTOMER accounts; managers come from the CLI
"""

import re
import secrets
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError, NotFoundError, ConflictError, AuthorizationError
from ..models import User, OtpChallenge
from ..permissions import Role, VALID_ROLES
from shopledger.time_utils import utcnow


PHONE_PATTERN = re.compile(r"^\+?[0-9]{7,15}$")


def normalize_phone(phone: str | None) -> str:
    """Strip spaces and dashes; require 7-15 digits with optional leading +."""
    if not phone or not isinstance(phone, str):
        raise ValidationError("Phone number required", code="PHONE_REQUIRED")
    cleaned = re.sub(r"[\s\-()]", "", phone)
    if not PHONE_PATTERN.match(cleaned):
        raise ValidationError("Invalid phone number", code="INVALID_PHONE")
    return cleaned


def hash_code(code: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    return bcrypt.hashpw(code.encode('utf-8'), salt).decode('utf-8')


def verify_code(code: str, code_hash: str) -> bool:
    """
    Verify code against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(code.encode('utf-8'), code_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_code() -> str:
    fixed = current_app.config.get("OTP_FIXED_CODE")
    if fixed:
        return fixed
    return f"{secrets.randbelow(1_000_000):06d}"


def send_otp(phone: str) -> OtpChallenge:
    """
    Issue a fresh login code for phone.

    Earlier live challenges for the same phone are consumed so only the
    newest code works. Delivery is delegated to the SMS collaborator, which
    here only logs.
    """
    phone = normalize_phone(phone)
    now = utcnow()

    live = db.session.query(OtpChallenge).filter(
        OtpChallenge.phone == phone,
        OtpChallenge.consumed_at.is_(None),
    ).all()
    for challenge in live:
        challenge.consumed_at = now

    code = generate_code()
    challenge = OtpChallenge(
        phone=phone,
        code_hash=hash_code(code),
        attempts=0,
        created_at=now,
        expires_at=now + timedelta(seconds=current_app.config["OTP_TTL_SECONDS"]),
    )
    db.session.add(challenge)
    db.session.commit()

    current_app.logger.info("[OTP SERVICE] Sent login code to %s", phone)
    return challenge


def verify_otp(phone: str, code: str, name: str | None = None) -> User:
    """
    Exchange a login code for the matching user.

    Registers a new CUSTOMER when the phone is unknown and a name is given.

    Raises:
        ValidationError: code missing, wrong, expired or exhausted
        NotFoundError: unknown phone and no name supplied
    """
    phone = normalize_phone(phone)
    if not code:
        raise ValidationError("Phone and OTP required", code="OTP_REQUIRED")

    now = utcnow()
    challenge = (
        db.session.query(OtpChallenge)
        .filter(OtpChallenge.phone == phone, OtpChallenge.consumed_at.is_(None))
        .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
        .first()
    )

    if not challenge or challenge.expires_at < now:
        raise ValidationError("Invalid OTP", code="INVALID_OTP")

    max_attempts = current_app.config["OTP_MAX_ATTEMPTS"]
    if not verify_code(str(code), challenge.code_hash):
        challenge.attempts += 1
        if challenge.attempts >= max_attempts:
            challenge.consumed_at = now
        db.session.commit()
        raise ValidationError("Invalid OTP", code="INVALID_OTP")

    challenge.consumed_at = now
    db.session.commit()

    user = db.session.query(User).filter_by(phone=phone).first()
    if user:
        if not user.is_active:
            raise AuthorizationError("User account is deactivated", code="USER_INACTIVE")
        return user

    if not name or not str(name).strip():
        raise NotFoundError(
            "User not found. Please provide name to register.",
            code="USER_NOT_FOUND",
        )

    return create_user(name=name, phone=phone, role=Role.CUSTOMER)


def create_user(
    name: str,
    phone: str,
    role: str = Role.CUSTOMER,
    email: str | None = None,
    address: str | None = None,
) -> User:
    """
    Create a user account.

    Raises:
        ValidationError: blank name, bad phone, unknown role
        ConflictError: phone or email already registered
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}")
    phone = normalize_phone(phone)
    email = email.strip().lower() if email else None

    if db.session.query(User).filter_by(phone=phone).first():
        raise ConflictError("Phone number already registered", code="PHONE_TAKEN")
    if email and db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already registered", code="EMAIL_TAKEN")

    user = User(
        name=name,
        phone=phone,
        email=email,
        address=address,
        role=role,
        pending_dues_cents=0,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Phone or email already registered", code="USER_EXISTS")
    return user
