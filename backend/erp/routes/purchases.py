# Overview: Flask API routes for purchases, approval and expenses; parses input and returns JSON responses.

"""
Purchase Routes

All routes require an acting user (see require_actor). Mutations are checked
against the actor's company by the workflow itself.

Approval request body:
{
    "expenses": [
        {
            "category_id": 1,          // required
            "amount_cents": 7500,      // required, > 0, in `currency`
            "supplier_id": 3,          // optional; creates an EXPENSE receipt
            "currency": "USD",         // optional, LYD | USD | EUR (default: base)
            "exchange_rate": "4.85",   // optional, default 1
            "notes": "Sea freight"     // optional
        }
    ]
}
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import DomainError, error_response
from ..extensions import db
from ..services.purchase_approval_service import PurchaseApprovalWorkflow
from ..validation import (
    parse_expenses,
    parse_int,
    parse_lines,
    parse_optional_int,
    parse_optional_text,
    require_dict,
)


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _workflow() -> PurchaseApprovalWorkflow:
    return PurchaseApprovalWorkflow(
        db.session,
        actor=g.actor,
        base_currency=current_app.config.get("BASE_CURRENCY", "LYD"),
    )


def _purchase_payload(purchase) -> dict:
    data = purchase.to_dict()
    data["lines"] = [line.to_dict() for line in purchase.lines]
    data["expenses"] = [expense.to_dict() for expense in purchase.expenses]
    return data


@purchases_bp.post("")
@require_actor
def create_purchase_route():
    """
    Create an unapproved purchase.

    Request body:
    {
        "company_id": 1,                 // required
        "supplier_id": 2,                // optional
        "invoice_number": "P-001",       // optional
        "lines": [{"product_id": 1, "qty": 10, "unit_price_cents": 500}]
    }
    """
    try:
        data = require_dict(request.get_json(silent=True))
        purchase = _workflow().create_purchase(
            company_id=parse_int(data.get("company_id"), "company_id", minimum=1),
            supplier_id=parse_optional_int(data.get("supplier_id"), "supplier_id", minimum=1),
            invoice_number=parse_optional_text(data.get("invoice_number"), "invoice_number", max_length=64),
            lines=parse_lines(data.get("lines")),
        )
        return jsonify(_purchase_payload(purchase)), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>")
@require_actor
def get_purchase_route(purchase_id: int):
    try:
        purchase = _workflow().get_purchase(purchase_id)
        return jsonify(_purchase_payload(purchase))
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/approve")
@require_actor
def approve_purchase_route(purchase_id: int):
    """
    Approve a purchase, or append expenses to an approved one.

    Returns:
        {purchase, product_costs: [...], payment_receipts: [...]}
    """
    try:
        data = require_dict(request.get_json(silent=True))
        base_currency = current_app.config.get("BASE_CURRENCY", "LYD")
        expenses = parse_expenses(data.get("expenses"), base_currency=base_currency)

        result = _workflow().approve(purchase_id, expenses, actor_id=g.actor.user_id)
        return jsonify({
            "purchase": _purchase_payload(result["purchase"]),
            "product_costs": [cost.to_dict() for cost in result["product_costs"]],
            "payment_receipts": [receipt.to_dict() for receipt in result["payment_receipts"]],
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_actor
def cancel_purchase_route(purchase_id: int):
    """Cancel an unapproved purchase."""
    try:
        return jsonify(_purchase_payload(_workflow().cancel_purchase(purchase_id)))
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/<int:purchase_id>/expenses")
@require_actor
def list_expenses_route(purchase_id: int):
    try:
        expenses = _workflow().list_purchase_expenses(purchase_id)
        return jsonify({"items": [expense.to_dict() for expense in expenses], "count": len(expenses)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list purchase expenses")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.delete("/expenses/<int:expense_id>")
@require_actor
def delete_expense_route(expense_id: int):
    """Delete an expense together with its receipts and their ledger entries."""
    try:
        result = _workflow().delete_purchase_expense(expense_id)
        return jsonify({
            "purchase": _purchase_payload(result["purchase"]),
            "deleted_receipts_count": result["deleted_receipts_count"],
        })
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete purchase expense")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/expense-categories")
@require_actor
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        categories = _workflow().list_expense_categories(include_inactive=include_inactive)
        return jsonify({"items": [category.to_dict() for category in categories], "count": len(categories)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list expense categories")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.post("/expense-categories")
@require_actor
def create_category_route():
    try:
        data = require_dict(request.get_json(silent=True))
        category = _workflow().create_expense_category(
            name=data.get("name") or "",
            description=parse_optional_text(data.get("description"), "description"),
        )
        return jsonify(category.to_dict()), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create expense category")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("/products/<int:product_id>/cost-history")
@require_actor
def cost_history_route(product_id: int):
    """
    Latest landed-cost snapshots of a product.

    Query parameters:
    - company_id: restrict to one company (optional)
    """
    try:
        company_id = parse_optional_int(request.args.get("company_id"), "company_id", minimum=1)
        history = _workflow().get_product_cost_history(product_id, company_id=company_id)
        return jsonify({"items": [row.to_dict() for row in history], "count": len(history)})
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product cost history")
        return jsonify({"error": "Internal server error"}), 500
