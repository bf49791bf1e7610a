# backend/stockchain/routes/requests.py
"""
Stock request workflow API routes.

Requesters create; the chain's approvers approve, reject and dispatch.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, require_chain_role
from ..errors import NotFound, StockChainError
from ..services import request_service
from . import parse_limit, service_error_response, unexpected_error_response


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


def _request_in_chain(chain: str, request_id: int):
    req = request_service.get_request(request_id)
    if req.chain != chain:
        raise NotFound(f"Request {request_id} not found")
    return req


@requests_bp.route("/<chain>", methods=["POST"])
@require_actor
@require_chain_role("request")
def create_request(chain: str):
    """
    Raise a stock request.

    Request body:
    {
        "items": {key: {"name", "qty"}} | {key: qty} | [{"productId"?, "name", "qty"}],
        "priority": "normal" | "urgent" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Request created (status pending)
        400: Invalid items
        403: Role cannot request in this chain
    """
    data = request.get_json() or {}

    try:
        req = request_service.create_request(
            chain=chain,
            requester=g.actor,
            items=data["items"],
            priority=data.get("priority") or "normal",
            notes=data.get("notes"),
        )
        return jsonify(req.to_dict()), 201

    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("create request")


@requests_bp.route("/<chain>", methods=["GET"])
@require_actor
def list_requests(chain: str):
    """
    List requests in a chain, newest first.

    Query params:
        status, requested_by, distributor_id, limit
    """
    try:
        reqs = request_service.list_requests(
            chain=chain,
            requested_by=request.args.get("requested_by"),
            status=request.args.get("status"),
            distributor_id=request.args.get("distributor_id"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"requests": [r.to_dict() for r in reqs]}), 200
    except StockChainError as e:
        return service_error_response(e)


@requests_bp.route("/<chain>/<int:request_id>", methods=["GET"])
@require_actor
def get_request(chain: str, request_id: int):
    try:
        return jsonify(_request_in_chain(chain, request_id).to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)


@requests_bp.route("/<chain>/<int:request_id>/approve", methods=["POST"])
@require_actor
@require_chain_role("approve")
def approve_request(chain: str, request_id: int):
    """
    Approve a pending request.

    Returns:
        200: Request approved
        409: Request not pending
    """
    data = request.get_json(silent=True) or {}

    try:
        _request_in_chain(chain, request_id)
        req = request_service.approve(request_id=request_id, approver=g.actor, notes=data.get("notes"))
        return jsonify(req.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("approve request")


@requests_bp.route("/<chain>/<int:request_id>/reject", methods=["POST"])
@require_actor
@require_chain_role("approve")
def reject_request(chain: str, request_id: int):
    """
    Reject a pending request.

    Request body:
    {
        "reason": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        _request_in_chain(chain, request_id)
        req = request_service.reject(request_id=request_id, approver=g.actor, reason=data.get("reason"))
        return jsonify(req.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("reject request")


@requests_bp.route("/<chain>/<int:request_id>/dispatch", methods=["POST"])
@require_actor
@require_chain_role("approve")
def dispatch_request(chain: str, request_id: int):
    """
    Dispatch an approved request with per-item pricing.

    Request body:
    {
        "quantities": {item_key: int} (optional, defaults to requested),
        "pricing": {item_key: {"unitPrice", "adjustmentType", "adjustmentValue"}} (optional),
        "notes": str (optional),
        "source_owner_id": str (optional, defaults to the dispatcher)
    }

    Returns:
        200: {"request", "approval", "shortfalls"}
        409: Request not approved, or insufficient stock under the strict policy
    """
    data = request.get_json(silent=True) or {}

    try:
        _request_in_chain(chain, request_id)
        outcome = request_service.dispatch_with_pricing(
            request_id=request_id,
            dispatcher=g.actor,
            quantities=data.get("quantities"),
            pricing=data.get("pricing"),
            notes=data.get("notes"),
            source_owner_id=data.get("source_owner_id"),
        )
        return jsonify(outcome.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("dispatch request")


@requests_bp.route("/<chain>/<int:request_id>/approve-and-dispatch", methods=["POST"])
@require_actor
@require_chain_role("approve")
def approve_and_dispatch_request(chain: str, request_id: int):
    """Head Office one-step approve + dispatch. Same body as /dispatch."""
    data = request.get_json(silent=True) or {}

    try:
        _request_in_chain(chain, request_id)
        outcome = request_service.approve_and_dispatch(
            request_id=request_id,
            dispatcher=g.actor,
            quantities=data.get("quantities"),
            pricing=data.get("pricing"),
            notes=data.get("notes"),
            source_owner_id=data.get("source_owner_id"),
        )
        return jsonify(outcome.to_dict()), 200
    except StockChainError as e:
        return service_error_response(e)
    except Exception:
        return unexpected_error_response("approve and dispatch request")
