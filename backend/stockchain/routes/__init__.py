# Overview: Shared response helpers for the API blueprints.

from flask import current_app, jsonify

from ..errors import PartialWriteFailure, StockChainError
from ..extensions import db


def service_error_response(e: StockChainError):
    """Translate a service error to its JSON body and status. The service already rolled back."""
    db.session.rollback()
    if isinstance(e, PartialWriteFailure):
        current_app.logger.exception("%s failed part-way; transaction rolled back", e.operation)
    return jsonify(e.to_dict()), e.http_status


def unexpected_error_response(action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": f"Failed to {action}"}), 500


def parse_limit(value, default: int = 200, maximum: int = 1000) -> int:
    try:
        limit = int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
    return max(1, min(limit, maximum))
