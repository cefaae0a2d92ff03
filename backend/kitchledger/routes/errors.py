# backend/kitchledger/routes/errors.py
"""
Mapping from service-layer errors to HTTP responses.

Every route catches SERVICE_ERRORS and hands them to error_response();
anything else is logged with a traceback and returned as a 500.
"""
from flask import current_app, jsonify

from ..services.approval_service import InvalidStateTransition
from ..services.inventory_service import InsufficientInventory
from ..services.permission_service import PermissionDeniedError
from ..services.tenant_service import ScopeViolation
from ..units import from_milli
from ..validation import NotFoundError, ValidationError


SERVICE_ERRORS = (
    ValidationError,
    NotFoundError,
    PermissionDeniedError,
    InsufficientInventory,
    InvalidStateTransition,
    ScopeViolation,
)


def error_response(e: Exception):
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, PermissionDeniedError):
        return jsonify({"error": "Permission denied", "message": str(e)}), 403
    if isinstance(e, NotFoundError):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, InsufficientInventory):
        return jsonify({
            "error": str(e),
            "item_name": e.item_name,
            "unit": e.unit,
            "requested": from_milli(e.requested_milli),
            "available": from_milli(e.available_milli),
        }), 409
    if isinstance(e, InvalidStateTransition):
        return jsonify({"error": str(e)}), 409

    # ScopeViolation: a request reached a service without a tenant id
    current_app.logger.error("Scope violation surfaced to HTTP layer: %s", e)
    return jsonify({"error": "Internal server error"}), 500


def unexpected_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
