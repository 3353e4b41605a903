# Overview: Typed domain errors shared by the ledger, purchasing and sales services.

"""
Every failure the core raises carries a `kind` so callers can branch without
matching on message text:

- NOT_FOUND: a referenced supplier/purchase/provisional sale/product/customer/company
  does not exist.
- INVALID_STATE: the aggregate's lifecycle forbids the operation (edit after
  conversion, addendum without expenses, converting a cancelled quote).
- VALIDATION: malformed input, rejected before any side effect.
- INCONSISTENT: stored state disagrees with itself (ledger drift, half-converted
  quote). Operators must reconcile.
- FORBIDDEN: the acting user's company does not own the aggregate.
"""

from __future__ import annotations

from flask import current_app, jsonify

NOT_FOUND = "NOT_FOUND"
INVALID_STATE = "INVALID_STATE"
VALIDATION = "VALIDATION"
INCONSISTENT = "INCONSISTENT"
FORBIDDEN = "FORBIDDEN"

HTTP_STATUS_BY_KIND = {
    NOT_FOUND: 404,
    INVALID_STATE: 409,
    VALIDATION: 400,
    INCONSISTENT: 500,
    FORBIDDEN: 403,
}


class DomainError(Exception):
    """Base class for errors surfaced to the caller with a human-readable message."""

    kind = VALIDATION

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(DomainError):
    kind = NOT_FOUND


class InvalidStateError(DomainError):
    kind = INVALID_STATE


class ValidationError(DomainError, ValueError):
    """400-level input problem."""

    kind = VALIDATION


class InconsistentStateError(DomainError):
    kind = INCONSISTENT


class AuthorizationError(DomainError):
    kind = FORBIDDEN


def error_response(exc: DomainError):
    """JSON body + status code for a domain error. Inconsistencies are logged before being returned."""
    if exc.kind == INCONSISTENT:
        current_app.logger.error("Inconsistent state detected: %s details=%s", exc.message, exc.details)
    return jsonify(exc.to_dict()), HTTP_STATUS_BY_KIND.get(exc.kind, 400)
