# backend/stockchain/routes/invoices.py
"""
Invoice release API routes. The acting user releases out of their own ledger.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..errors import StockChainError
from ..services import invoice_service
from . import parse_limit, service_error_response, unexpected_error_response


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.route("/<chain>", methods=["POST"])
@require_actor
def release_invoice(chain: str):
    """
    Release an invoice, consuming every line from the actor's stock.

    Request body:
    {
        "invoice_no": str,
        "items": [{"productId", "quantity", "unitPrice", "itemCode"?, "description"?}],
        "discount_percent": number (optional),
        "order_no", "date", "payment_method" (optional),
        "bill_to": {"name", "address", "phone"} (optional)
    }

    Returns:
        201: Invoice created
        400: Invalid request
        409: A line exceeds available stock (nothing consumed)
    """
    data = request.get_json() or {}

    try:
        invoice = invoice_service.release_invoice(
            chain=chain,
            owner=g.actor,
            invoice_no=data["invoice_no"],
            items=data["items"],
            discount_percent=data.get("discount_percent", 0),
            order_no=data.get("order_no"),
            invoice_date=data.get("date"),
            payment_method=data.get("payment_method"),
            bill_to=data.get("bill_to"),
        )
        return jsonify(invoice.to_dict()), 201

    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("release invoice")


@invoices_bp.route("/<chain>", methods=["GET"])
@require_actor
def list_invoices(chain: str):
    try:
        invoices = invoice_service.list_invoices(
            chain=chain,
            owner_id=g.actor.id,
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200
    except StockChainError as e:
        return service_error_response(e)
