# Overview: Request decorators for API routes; actor context and chain role gates.

from functools import wraps
from flask import request, jsonify, g

from .chains import HEAD_OFFICE_ROLES, can_approve, can_request, get_chain
from .errors import ValidationError
from .identity import Actor


def _has_actor() -> bool:
    return hasattr(g, 'actor')


def require_actor(f):
    """
    Establish the acting user from identity headers.

    Sets g.actor (an Actor) from X-Actor-Id, X-Actor-Name, X-Actor-Role,
    X-Distributor-Id and X-Distributor-Name. The identity provider has
    already authenticated the caller; nothing is verified here.

    Returns 401 if X-Actor-Id or X-Actor-Role is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not request.headers.get("X-Actor-Id") or not request.headers.get("X-Actor-Role"):
            return jsonify({"error": "Actor identity required"}), 401

        try:
            g.actor = Actor.from_headers(request.headers)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400

        return f(*args, **kwargs)

    return decorated_function


def require_chain_role(action: str):
    """
    Gate a route on the chain profile's role sets.

    action: "request" (requester roles) or "approve" (approver roles).
    The chain code comes from the <chain> URL segment.
    """
    checks = {"request": can_request, "approve": can_approve}
    if action not in checks:
        raise ValueError(f"Unknown chain action: {action}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _has_actor():
                return jsonify({"error": "Actor identity required"}), 401

            try:
                profile = get_chain(kwargs.get("chain"))
            except ValidationError as e:
                return jsonify({"error": str(e)}), 404

            if not checks[action](g.actor.role, profile):
                return jsonify({
                    "error": "Permission denied",
                    "chain": profile.code,
                    "action": action,
                    "message": f"Role {g.actor.role} cannot {action} in chain {profile.code}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_head_office(f):
    """Require a Head Office role (admin maintenance: delete entries, recalculate)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _has_actor():
            return jsonify({"error": "Actor identity required"}), 401

        if g.actor.role not in HEAD_OFFICE_ROLES:
            return jsonify({
                "error": "Permission denied",
                "message": "Head Office role required",
            }), 403

        return f(*args, **kwargs)

    return decorated_function
