# Overview: Request payload validation against model column metadata.

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text

from .errors import ValidationError
from .money import MAX_PRICE_CENTS


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which must be present on create.

    Anything outside writable_fields is rejected, not silently dropped, so
    fields like version_id or original_price_cents cannot be forged.
    """
    writable_fields: set[str]
    required_on_create: frozenset[str] = frozenset()


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for money and quantities.

    Accepts ints and plain digit strings. Rejects bools, floats, "12.5" and
    "1e5" rather than truncating them.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        text = value.strip()
        if "e" in text.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in text:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(text)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def _coerce_column(column, value: Any):
    if isinstance(column.type, Integer):
        return coerce_int(value, column.key)

    if isinstance(column.type, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{column.key} must be true or false")
        return value

    if isinstance(column.type, (String, Text)):
        text = str(value).strip()
        if not column.nullable and not text:
            raise ValidationError(f"{column.key} cannot be blank")
        if isinstance(column.type, String) and column.type.length and len(text) > column.type.length:
            raise ValidationError(f"{column.key} exceeds max length {column.type.length}")
        return text

    return value


def validate_payload(*, model, payload: dict, policy: ModelValidationPolicy, partial: bool) -> dict:
    """
    Turn a JSON body into a clean patch dict for model.

    partial=False (create) enforces required_on_create; partial=True
    (update) only checks the keys that were sent. Column nullability, type
    and String length come from the mapped table.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(policy.required_on_create - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}

    patch: dict = {}
    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _coerce_column(column, raw)
    return patch


def enforce_price_rules(price: int, field: str = "price_cents") -> None:
    if price < 0:
        raise ValidationError(f"{field} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """Rules the column metadata cannot express."""
    if patch.get("price_cents") is not None:
        enforce_price_rules(patch["price_cents"])
    if patch.get("stock") is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")
