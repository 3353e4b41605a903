# Overview: Flask API routes for supplier accounts; parses input and returns JSON responses.

"""
Supplier Account Routes

All routes require an acting user (see require_actor).
Balances are in cents; a positive balance means the company owes the supplier.
"""

from flask import Blueprint, jsonify, current_app

from ..decorators import require_actor
from ..errors import DomainError, error_response
from ..extensions import db
from ..services.ledger_service import LedgerEngine
from ..services.supplier_account_service import SupplierAccountService


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("/summaries")
@require_actor
def list_summaries_route():
    """
    Every supplier with its current balance and has_debt flag.

    Returns:
        {items: [...], count: int}
    """
    try:
        summaries = SupplierAccountService(db.session).get_all_summaries()
        return jsonify({"items": summaries, "count": len(summaries)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list supplier summaries")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/account")
@require_actor
def get_account_route(supplier_id: int):
    """
    Supplier statement: header, current balance, totals and every entry
    (newest business date first).
    """
    try:
        return jsonify(LedgerEngine(db.session).get_account(supplier_id))
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load supplier account")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/balance")
@require_actor
def get_balance_route(supplier_id: int):
    try:
        balance = LedgerEngine(db.session).get_current_balance(supplier_id)
        return jsonify({"supplier_id": supplier_id, "current_balance_cents": balance})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load supplier balance")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/open-purchases")
@require_actor
def get_open_purchases_route(supplier_id: int):
    """Approved purchases whose main receipt is still unpaid."""
    try:
        items = SupplierAccountService(db.session).get_open_purchases(supplier_id)
        return jsonify({"items": items, "count": len(items)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list open purchases")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>/ledger/verify")
@require_actor
def verify_ledger_route(supplier_id: int):
    """
    Compare stored running balances with the fold over insertion order.

    Returns:
        {supplier_id, consistent: bool, drift: [...]}
    """
    try:
        drift = LedgerEngine(db.session).verify_balances(supplier_id)
        if drift:
            current_app.logger.error(
                "Supplier %s ledger drift detected on %d entries", supplier_id, len(drift)
            )
        return jsonify({"supplier_id": supplier_id, "consistent": not drift, "drift": drift})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify supplier ledger")
        return jsonify({"error": "Internal server error"}), 500
