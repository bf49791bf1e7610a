# backend/stockchain/routes/claims.py
"""
Claim and approval-history API routes.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor
from ..errors import StockChainError
from ..services import claim_service
from . import parse_limit, service_error_response, unexpected_error_response


claims_bp = Blueprint("claims", __name__, url_prefix="/api")


@claims_bp.route("/claims", methods=["GET"])
@require_actor
def list_claimable():
    """Dispatches waiting for the acting user to claim."""
    records = claim_service.list_claimable(g.actor)
    return jsonify({"claimable": [r.to_dict() for r in records]}), 200


@claims_bp.route("/claims/<int:request_id>", methods=["POST"])
@require_actor
def claim_request(request_id: int):
    """
    Claim a dispatched request into the acting user's ledger.

    Request body:
    {
        "require_completed_by_fg": bool (optional)
    }

    Returns:
        200: {"request", "approval", "entries"}
        409: Nothing claimable for this user (including an already claimed request)
    """
    data = request.get_json(silent=True) or {}

    try:
        result = claim_service.claim(
            request_id=request_id,
            claimant=g.actor,
            require_completed_by_fg=bool(data.get("require_completed_by_fg")),
        )
        return jsonify(result), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("claim request")


@claims_bp.route("/approvals", methods=["GET"])
@require_actor
def list_approval_history():
    """
    Approval records, newest first.

    Query params:
        chain, requester_id, status, limit
    """
    try:
        records = claim_service.list_approval_history(
            chain=request.args.get("chain"),
            requester_id=request.args.get("requester_id"),
            status=request.args.get("status"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"approvals": [r.to_dict() for r in records]}), 200
    except StockChainError as e:
        return service_error_response(e)
