# Overview: Flask API routes for supplier payment receipts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor
from ..errors import DomainError, error_response
from ..extensions import db
from ..services.payment_receipt_service import (
    PaymentReceiptService,
    RECEIPT_STATUSES,
    RECEIPT_TYPES,
)
from ..validation import (
    parse_amount_cents,
    parse_choice,
    parse_int,
    parse_optional_int,
    parse_optional_text,
    require_dict,
)


payment_receipts_bp = Blueprint("payment_receipts", __name__, url_prefix="/api/payment-receipts")


@payment_receipts_bp.get("")
@require_actor
def list_receipts_route():
    """
    List receipts, newest first.

    Query parameters:
    - supplier_id, purchase_id: filters (optional)
    - status: PENDING | PAID | CANCELLED (optional)
    - type: MAIN_PURCHASE | EXPENSE | RETURN (optional)
    - limit: Maximum results (default: 50, max 500)
    - offset: Pagination offset (default: 0)
    """
    limit = request.args.get("limit", 50, type=int)
    offset = request.args.get("offset", 0, type=int)
    limit = min(max(limit, 1), 500)
    offset = max(offset, 0)

    try:
        status = request.args.get("status")
        receipt_type = request.args.get("type")
        items, total = PaymentReceiptService(db.session).list_receipts(
            supplier_id=parse_optional_int(request.args.get("supplier_id"), "supplier_id", minimum=1),
            purchase_id=parse_optional_int(request.args.get("purchase_id"), "purchase_id", minimum=1),
            status=parse_choice(status, "status", RECEIPT_STATUSES) if status else None,
            receipt_type=parse_choice(receipt_type, "type", RECEIPT_TYPES) if receipt_type else None,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "items": [receipt.to_dict() for receipt in items],
            "count": total,
            "limit": limit,
            "offset": offset,
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payment receipts")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.get("/stats")
@require_actor
def receipt_stats_route():
    try:
        supplier_id = parse_optional_int(request.args.get("supplier_id"), "supplier_id", minimum=1)
        return jsonify(PaymentReceiptService(db.session).get_stats(supplier_id=supplier_id))
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute payment receipt stats")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.get("/<int:receipt_id>")
@require_actor
def get_receipt_route(receipt_id: int):
    try:
        return jsonify(PaymentReceiptService(db.session).get(receipt_id).to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment receipt")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.post("")
@require_actor
def create_receipt_route():
    """
    Issue a manual receipt (typically a RETURN).

    Request body:
    {
        "supplier_id": 3,            // required
        "amount_cents": 2500,        // required, > 0
        "type": "RETURN",            // required
        "purchase_id": 9,            // optional
        "description": "...",        // optional
        "notes": "..."               // optional
    }
    """
    try:
        data = require_dict(request.get_json(silent=True))
        receipt = PaymentReceiptService(db.session).create_receipt(
            supplier_id=parse_int(data.get("supplier_id"), "supplier_id", minimum=1),
            amount_cents=parse_amount_cents(data.get("amount_cents"), "amount_cents"),
            receipt_type=parse_choice(data.get("type"), "type", RECEIPT_TYPES),
            purchase_id=parse_optional_int(data.get("purchase_id"), "purchase_id", minimum=1),
            category_name=parse_optional_text(data.get("category_name"), "category_name", max_length=120),
            description=parse_optional_text(data.get("description"), "description"),
            notes=parse_optional_text(data.get("notes"), "notes"),
        )
        return jsonify(receipt.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create payment receipt")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.post("/<int:receipt_id>/pay")
@require_actor
def pay_receipt_route(receipt_id: int):
    """Mark a receipt PAID and book the payment DEBIT. Paying twice is a no-op."""
    try:
        data = require_dict(request.get_json(silent=True))
        receipt = PaymentReceiptService(db.session).pay(
            receipt_id, notes=parse_optional_text(data.get("notes"), "notes")
        )
        return jsonify(receipt.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to pay payment receipt")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.post("/<int:receipt_id>/cancel")
@require_actor
def cancel_receipt_route(receipt_id: int):
    try:
        data = require_dict(request.get_json(silent=True))
        receipt = PaymentReceiptService(db.session).cancel(
            receipt_id, reason=parse_optional_text(data.get("reason"), "reason")
        )
        return jsonify(receipt.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel payment receipt")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.put("/<int:receipt_id>/amount")
@require_actor
def update_receipt_amount_route(receipt_id: int):
    try:
        data = require_dict(request.get_json(silent=True))
        receipt = PaymentReceiptService(db.session).update_amount(
            receipt_id, parse_amount_cents(data.get("amount_cents"), "amount_cents")
        )
        return jsonify(receipt.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment receipt amount")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.get("/<int:receipt_id>/installments")
@require_actor
def list_installments_route(receipt_id: int):
    try:
        installments = PaymentReceiptService(db.session).list_installments(receipt_id)
        return jsonify({"items": [installment.to_dict() for installment in installments]})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payment installments")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.post("/<int:receipt_id>/installments")
@require_actor
def add_installment_route(receipt_id: int):
    """
    Record a partial payment.

    Request body:
    {
        "amount_cents": 3000,          // required, > 0, at most the remaining amount
        "payment_method": "BANK",      // optional
        "reference_number": "TRX-19",  // optional
        "notes": "..."                 // optional
    }
    """
    try:
        data = require_dict(request.get_json(silent=True))
        service = PaymentReceiptService(db.session)
        installment = service.add_installment(
            receipt_id,
            parse_amount_cents(data.get("amount_cents"), "amount_cents"),
            payment_method=parse_optional_text(data.get("payment_method"), "payment_method", max_length=16),
            reference_number=parse_optional_text(data.get("reference_number"), "reference_number", max_length=64),
            notes=parse_optional_text(data.get("notes"), "notes"),
        )
        return jsonify({
            "installment": installment.to_dict(),
            "receipt": service.get(receipt_id).to_dict(),
        }), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add payment installment")
        return jsonify({"error": "Internal server error"}), 500


@payment_receipts_bp.delete("/installments/<int:installment_id>")
@require_actor
def delete_installment_route(installment_id: int):
    try:
        receipt = PaymentReceiptService(db.session).delete_installment(installment_id)
        return jsonify(receipt.to_dict())
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete payment installment")
        return jsonify({"error": "Internal server error"}), 500
