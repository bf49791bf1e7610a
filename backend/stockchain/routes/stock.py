# backend/stockchain/routes/stock.py
"""
Stock ledger API routes.

Every route is scoped to one chain and one ledger owner:
/api/stock/<chain>/<owner_id>/...
"""
from datetime import date

from flask import Blueprint, request, jsonify, g

from ..chains import CHAIN_PROFILES, HEAD_OFFICE_ROLES
from ..decorators import require_actor, require_head_office
from ..errors import StockChainError, ValidationError
from ..identity import Actor
from ..services import stock_ledger_service, summary_service
from ..services.pricing import EntryPricing
from . import service_error_response, unexpected_error_response


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _check_owner_access(owner_id: str):
    """Owners see their own ledger; Head Office sees every ledger."""
    if g.actor.id != owner_id and g.actor.role not in HEAD_OFFICE_ROLES:
        return jsonify({"error": "Permission denied", "message": "Not your ledger"}), 403
    return None


def _owner_from_body(data: dict, owner_id: str) -> Actor:
    if data.get("owner"):
        owner = Actor.from_mapping(data["owner"])
    elif owner_id == g.actor.id:
        owner = g.actor
    else:
        raise ValidationError("owner is required when receiving stock for another user")
    if owner.id != owner_id:
        raise ValidationError("owner.id does not match the ledger owner")
    return owner


@stock_bp.route("/chains", methods=["GET"])
def list_chains():
    """List the chain profiles."""
    return jsonify({"chains": [p.to_dict() for p in CHAIN_PROFILES.values()]}), 200


@stock_bp.route("/<chain>/<owner_id>/summary", methods=["GET"])
@require_actor
def get_summary(chain: str, owner_id: str):
    """
    Per-product summaries for one owner.

    Returns:
        200: {"summary": [...]}
        403: Not the owner and not Head Office
        400: Unknown chain
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    try:
        summaries = stock_ledger_service.get_summary(chain=chain, owner_id=owner_id)
        return jsonify({"summary": [s.to_dict() for s in summaries]}), 200
    except StockChainError as e:
        return service_error_response(e)


@stock_bp.route("/<chain>/<owner_id>/entries", methods=["GET"])
@require_actor
def list_entries(chain: str, owner_id: str):
    """
    Owner's batches, newest first.

    Query params:
        product_id: optional product filter
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    try:
        entries = stock_ledger_service.get_entries(
            chain=chain,
            owner_id=owner_id,
            product_id=request.args.get("product_id"),
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except StockChainError as e:
        return service_error_response(e)


@stock_bp.route("/<chain>/<owner_id>/entries/<int:entry_id>", methods=["GET"])
@require_actor
def get_entry(chain: str, owner_id: str, entry_id: int):
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    try:
        entry = stock_ledger_service.get_entry(chain=chain, owner_id=owner_id, entry_id=entry_id)
        return jsonify(entry.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)


@stock_bp.route("/<chain>/<owner_id>/entries", methods=["POST"])
@require_actor
def receive_stock(chain: str, owner_id: str):
    """
    Record a directly received batch.

    Request body:
    {
        "product_id": str,
        "product_name": str,
        "quantity": int,
        "pricing": {"unitPrice", "discountPercent", "finalPrice"} (optional),
        "owner": {"id", "name", "role", ...} (required when not the actor),
        "request_id", "received_at", "location", "notes",
        "batch_number", "expiry_date" (optional)
    }

    Returns:
        201: Entry created
        400: Invalid request
        403: Not the owner and not Head Office
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    data = request.get_json() or {}

    try:
        owner = _owner_from_body(data, owner_id)
        expiry = data.get("expiry_date")
        entry = stock_ledger_service.receive_stock(
            chain=chain,
            owner=owner,
            product_id=data["product_id"],
            product_name=data.get("product_name") or data["product_id"],
            quantity=data["quantity"],
            actor=g.actor,
            request_id=data.get("request_id"),
            pricing=EntryPricing.from_mapping(data.get("pricing")),
            received_at=data.get("received_at"),
            location=data.get("location"),
            notes=data.get("notes"),
            batch_number=data.get("batch_number"),
            expiry_date=_parse_date(expiry),
        )
        return jsonify(entry.to_dict()), 201

    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except StockChainError as e:
        return service_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        return unexpected_error_response("receive stock")


def _parse_date(value):
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError("expiry_date must be YYYY-MM-DD")


@stock_bp.route("/<chain>/<owner_id>/consume", methods=["POST"])
@require_actor
def consume_stock(chain: str, owner_id: str):
    """
    Use units of a product, oldest batches first.

    Request body:
    {
        "product_id": str,
        "quantity": int,
        "reason": str (optional)
    }

    Returns:
        200: {"allocations": [...]}
        409: Insufficient stock (nothing consumed)
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    data = request.get_json() or {}

    try:
        allocations = stock_ledger_service.consume(
            chain=chain,
            owner_id=owner_id,
            product_id=data["product_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
        )
        return jsonify({
            "allocations": [
                {"entry_id": a["entry_id"], "quantity": a["quantity"], "remaining": a["remaining"]}
                for a in allocations
            ]
        }), 200

    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("consume stock")


@stock_bp.route("/<chain>/<owner_id>/transfer", methods=["POST"])
@require_actor
def transfer_stock(chain: str, owner_id: str):
    """
    Move units to another owner in the same chain.

    Request body:
    {
        "to_owner": {"id", "name", "role", ...},
        "product_id": str,
        "quantity": int,
        "reason": str (optional)
    }

    Returns:
        201: Destination entry created
        409: Insufficient stock (nothing moved)
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    data = request.get_json() or {}

    try:
        entry = stock_ledger_service.transfer(
            chain=chain,
            from_owner_id=owner_id,
            to_owner=Actor.from_mapping(data["to_owner"]),
            product_id=data["product_id"],
            quantity=data["quantity"],
            reason=data.get("reason"),
            actor=g.actor,
        )
        return jsonify(entry.to_dict()), 201

    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("transfer stock")


@stock_bp.route("/<chain>/<owner_id>/entries/<int:entry_id>", methods=["PATCH"])
@require_actor
def update_entry(chain: str, owner_id: str, entry_id: int):
    """
    Edit notes, location, batch_number or expiry_date of a batch.

    Returns:
        200: Updated entry
        400: Non-editable field
        404: Entry not found
    """
    denied = _check_owner_access(owner_id)
    if denied:
        return denied
    data = request.get_json() or {}

    try:
        entry = stock_ledger_service.update_entry(
            chain=chain, owner_id=owner_id, entry_id=entry_id, updates=data
        )
        return jsonify(entry.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("update stock entry")


@stock_bp.route("/<chain>/<owner_id>/entries/<int:entry_id>", methods=["DELETE"])
@require_actor
@require_head_office
def delete_entry(chain: str, owner_id: str, entry_id: int):
    """Admin delete of a batch; the owner's summary is rolled back."""
    try:
        deleted = stock_ledger_service.delete_entry(
            chain=chain, owner_id=owner_id, entry_id=entry_id, actor=g.actor
        )
        return jsonify({"deleted": deleted}), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("delete stock entry")


@stock_bp.route("/<chain>/<owner_id>/recalculate", methods=["POST"])
@require_actor
@require_head_office
def recalculate(chain: str, owner_id: str):
    """Repair entries, then rebuild the owner's summaries from them."""
    try:
        result = summary_service.recalculate(chain=chain, owner_id=owner_id, actor=g.actor)
        return jsonify(result), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("recalculate summaries")


@stock_bp.route("/<chain>/<owner_id>/drift", methods=["GET"])
@require_actor
@require_head_office
def drift(chain: str, owner_id: str):
    """Read-only report of summaries that disagree with their entries."""
    try:
        report = summary_service.detect_drift(chain=chain, owner_id=owner_id)
        return jsonify({"drift": report}), 200
    except StockChainError as e:
        return service_error_response(e)
