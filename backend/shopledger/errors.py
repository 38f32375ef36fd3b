# Overview: Error taxonomy shared by services and routes.

"""
Service errors carry a stable kind (what class of failure) and an optional
code (which rule failed). Routes translate them to JSON with error_response().

KINDS:
- VALIDATION_ERROR: bad or missing input (400)
- NOT_FOUND: unknown product/order/user (404)
- CONFLICT: business rule conflict, stock race (409)
- AUTHORIZATION_ERROR: role or ownership mismatch (403)
- DEPENDENCY_ERROR: external collaborator failed (502); never aborts a ledger write
"""

from __future__ import annotations

from flask import jsonify


class ShopError(Exception):
    """Base class for expected, caller-facing failures."""

    kind = "ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": self.kind,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(ShopError):
    """400-level input problem."""

    kind = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ShopError):
    kind = "NOT_FOUND"
    status_code = 404


class ConflictError(ShopError):
    """409-level business rule conflict (e.g., insufficient stock)."""

    kind = "CONFLICT"
    status_code = 409


class AuthorizationError(ShopError):
    kind = "AUTHORIZATION_ERROR"
    status_code = 403


class DependencyError(ShopError):
    """External service (push, SMS) failure."""

    kind = "DEPENDENCY_ERROR"
    status_code = 502


def error_response(exc: ShopError):
    return jsonify(exc.to_dict()), exc.status_code
