# Overview: Flask API routes for provisional sales; parses input and returns JSON responses.

"""
Provisional Sale Routes

All routes require an acting user (see require_actor). Users bound to a
company may only change that company's provisional sales; system users may
change any.

Lifecycle: DRAFT -> PENDING -> APPROVED -> CONVERTED, CANCELLED from any
non-terminal state. A converted provisional sale is read-only.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError, error_response
from ..extensions import db
from ..services.provisional_sale_service import (
    PAYMENT_METHODS,
    ProvisionalSaleStateMachine,
    SALE_TYPES,
    STATUSES,
)
from ..validation import (
    parse_choice,
    parse_int,
    parse_lines,
    parse_optional_int,
    parse_optional_text,
    require_dict,
)


provisional_sales_bp = Blueprint("provisional_sales", __name__, url_prefix="/api/provisional-sales")


def _machine() -> ProvisionalSaleStateMachine:
    return ProvisionalSaleStateMachine(db.session, actor=g.actor)


def _optional_bool(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() == "true"


@provisional_sales_bp.get("")
@require_actor
def list_provisional_sales_route():
    """
    List provisional sales, newest first.

    Query parameters:
    - company_id, customer_id: filters (optional)
    - status: DRAFT | PENDING | APPROVED | CONVERTED | CANCELLED (optional)
    - is_converted: true | false (optional)
    - today_only: true to restrict to sales created today (default: false)
    - search: matches invoice number, notes or customer name
    - limit: Maximum results (default: 10, max 100)
    - offset: Pagination offset (default: 0)
    """
    limit = request.args.get("limit", 10, type=int)
    offset = request.args.get("offset", 0, type=int)
    limit = min(max(limit, 1), 100)
    offset = max(offset, 0)

    try:
        status = request.args.get("status")
        items, total = _machine().list_sales(
            company_id=parse_optional_int(request.args.get("company_id"), "company_id", minimum=1),
            customer_id=parse_optional_int(request.args.get("customer_id"), "customer_id", minimum=1),
            status=parse_choice(status, "status", STATUSES) if status else None,
            is_converted=_optional_bool("is_converted"),
            today_only=_optional_bool("today_only") or False,
            search=request.args.get("search") or None,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "items": [sale.to_dict() for sale in items],
            "count": total,
            "limit": limit,
            "offset": offset,
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list provisional sales")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.post("")
@require_actor
def create_provisional_sale_route():
    """
    Create a provisional sale.

    Request body:
    {
        "company_id": 1,                 // required
        "customer_id": 4,                // optional
        "status": "DRAFT",               // optional, DRAFT | PENDING | APPROVED
        "invoice_number": "Q-100",       // optional
        "notes": "...",                  // optional
        "lines": [{"product_id": 1, "qty": 3, "unit_price_cents": 2000}]
    }
    """
    try:
        data = require_dict(request.get_json(silent=True))
        sale = _machine().create(
            company_id=parse_int(data.get("company_id"), "company_id", minimum=1),
            customer_id=parse_optional_int(data.get("customer_id"), "customer_id", minimum=1),
            status=parse_choice(data.get("status"), "status", STATUSES, default="DRAFT"),
            invoice_number=parse_optional_text(data.get("invoice_number"), "invoice_number", max_length=64),
            notes=parse_optional_text(data.get("notes"), "notes", max_length=2000),
            lines=parse_lines(data.get("lines")),
        )
        return jsonify(sale.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create provisional sale")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.get("/<int:provisional_sale_id>")
@require_actor
def get_provisional_sale_route(provisional_sale_id: int):
    try:
        return jsonify(_machine().get(provisional_sale_id).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load provisional sale")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.put("/<int:provisional_sale_id>")
@require_actor
def update_provisional_sale_route(provisional_sale_id: int):
    """
    Partial update. Accepted fields: customer_id, invoice_number, status,
    notes, lines (replaces every line and recomputes the total).
    """
    try:
        data = require_dict(request.get_json(silent=True))
        sale = _machine().update(provisional_sale_id, data)
        return jsonify(sale.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update provisional sale")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.delete("/<int:provisional_sale_id>")
@require_actor
def delete_provisional_sale_route(provisional_sale_id: int):
    try:
        _machine().delete(provisional_sale_id)
        return jsonify({"deleted": True, "id": provisional_sale_id})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete provisional sale")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.patch("/<int:provisional_sale_id>/status")
@require_actor
def set_status_route(provisional_sale_id: int):
    """Move the provisional sale forward, or cancel it."""
    try:
        data = require_dict(request.get_json(silent=True))
        sale = _machine().set_status(provisional_sale_id, data.get("status"))
        return jsonify(sale.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change provisional sale status")
        return jsonify({"error": "Internal server error"}), 500


@provisional_sales_bp.post("/<int:provisional_sale_id>/convert")
@require_actor
def convert_provisional_sale_route(provisional_sale_id: int):
    """
    Convert into a firm sale and decrement stock.

    Request body:
    {
        "sale_type": "CASH",        // required, CASH | CREDIT
        "payment_method": "CASH"    // optional, CASH | BANK | CARD (default: CASH)
    }
    """
    try:
        data = require_dict(request.get_json(silent=True))
        sale = _machine().convert_to_sale(
            provisional_sale_id,
            sale_type=parse_choice(data.get("sale_type"), "sale_type", SALE_TYPES),
            payment_method=parse_choice(data.get("payment_method"), "payment_method", PAYMENT_METHODS, default="CASH"),
        )
        return jsonify(sale.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to convert provisional sale")
        return jsonify({"error": "Internal server error"}), 500
