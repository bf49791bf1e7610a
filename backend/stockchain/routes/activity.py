# backend/stockchain/routes/activity.py
from flask import Blueprint, request, jsonify

from ..decorators import require_actor
from ..services.activity_service import list_activity
from . import parse_limit


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.route("", methods=["GET"])
@require_actor
def get_activity():
    """
    Activity feed, newest first.

    Query params:
        chain, actor_id, request_id, category, limit
    """
    request_id = request.args.get("request_id", type=int)
    events = list_activity(
        chain=request.args.get("chain"),
        actor_id=request.args.get("actor_id"),
        request_id=request_id,
        event_category=request.args.get("category"),
        limit=parse_limit(request.args.get("limit")),
    )
    return jsonify({"events": [e.to_dict() for e in events]}), 200
