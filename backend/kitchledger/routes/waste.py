# backend/kitchledger/routes/waste.py
"""
Waste log routes.

Any known role logs waste at a branch it can access. The cost is computed
by the server from the ledger; a "cost" in the request body is rejected.
Edits and deletes need RESTAURANT_ADMIN or above.
"""
from flask import Blueprint, request, g

from ..decorators import require_tenant_context
from ..services import waste_service
from ..validation import (
    SEVERITIES,
    WasteLogUpdate,
    parse_bool,
    parse_choice,
    parse_datetime,
    parse_optional_int,
    parse_quantity_milli,
    parse_tags,
    reject_unknown_fields,
    require_fields,
)
from .errors import SERVICE_ERRORS, error_response, unexpected_error


waste_bp = Blueprint("waste", __name__, url_prefix="/api/waste")

WASTE_FIELDS = {
    "waste_kind", "item_name", "unit", "recipe_id", "quantity", "reason",
    "severity", "preventable", "tags", "branch_id",
}


@waste_bp.post("")
@require_tenant_context
def log_waste_route():
    """
    Request body:
    {
        "waste_kind": "RAW" | "PRODUCT",
        "item_name": str, "unit": str,     // RAW
        "recipe_id": int,                  // PRODUCT
        "quantity": "1.5",
        "reason": str,
        "severity": "LOW" | "MEDIUM" | "HIGH"?,
        "preventable": bool?,               // defaults from the derived tags
        "tags": [str]?,
        "branch_id": int?
    }
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(payload, WASTE_FIELDS)
        require_fields(payload, {"waste_kind", "quantity", "reason"})
        log = waste_service.log_waste(
            ctx,
            waste_kind=parse_choice(payload["waste_kind"], "waste_kind", waste_service.WASTE_KINDS),
            quantity_milli=parse_quantity_milli(payload["quantity"]),
            reason=str(payload["reason"]),
            item_name=payload.get("item_name"),
            unit=payload.get("unit"),
            recipe_id=parse_optional_int(payload.get("recipe_id"), "recipe_id"),
            branch_id=parse_optional_int(payload.get("branch_id"), "branch_id"),
            severity=(
                parse_choice(payload["severity"], "severity", SEVERITIES)
                if payload.get("severity") is not None else None
            ),
            preventable=(
                parse_bool(payload["preventable"], "preventable")
                if payload.get("preventable") is not None else None
            ),
            tags=parse_tags(payload.get("tags")),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to log waste")

    return {"waste_log": log.to_dict()}, 201


@waste_bp.get("")
@require_tenant_context
def list_waste_route():
    """Filters: ?branch_id= &waste_kind= &tag= &start= &end= (ISO-8601)."""
    ctx = g.tenant_context
    try:
        kind = request.args.get("waste_kind")
        rows = waste_service.list_waste_logs(
            ctx,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
            waste_kind=parse_choice(kind, "waste_kind", waste_service.WASTE_KINDS) if kind else None,
            tag=request.args.get("tag"),
            start=parse_datetime(request.args.get("start"), "start"),
            end=parse_datetime(request.args.get("end"), "end"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list waste logs")

    return {"waste_logs": [w.to_dict() for w in rows]}


@waste_bp.get("/<int:waste_id>")
@require_tenant_context
def get_waste_route(waste_id: int):
    ctx = g.tenant_context
    try:
        log = waste_service.get_waste_log(ctx, waste_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to get waste log")

    return {"waste_log": log.to_dict()}


@waste_bp.patch("/<int:waste_id>")
@require_tenant_context
def update_waste_route(waste_id: int):
    """Writable: reason, tags, severity, preventable. Cost is never writable."""
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        update = WasteLogUpdate.from_payload(payload)
        log = waste_service.update_waste_log(ctx, waste_id, update)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to update waste log")

    return {"waste_log": log.to_dict()}


@waste_bp.delete("/<int:waste_id>")
@require_tenant_context
def delete_waste_route(waste_id: int):
    ctx = g.tenant_context
    try:
        waste_service.delete_waste_log(ctx, waste_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to delete waste log")

    return {"deleted": True}
