# backend/kitchledger/routes/production.py
"""
Production routes.

Recording a run deducts every ingredient strictly; a short ingredient
returns 409 and nothing is deducted. The availability check answers the
same question without deducting anything.
"""
from flask import Blueprint, request, g

from ..decorators import require_tenant_context
from ..services import production_service
from ..services.permission_service import require_known_role
from ..validation import (
    parse_datetime,
    parse_int,
    parse_optional_int,
    parse_quantity_milli,
    reject_unknown_fields,
    require_fields,
)
from .errors import SERVICE_ERRORS, error_response, unexpected_error


production_bp = Blueprint("production", __name__, url_prefix="/api/production")

PRODUCTION_FIELDS = {"recipe_id", "quantity", "branch_id", "note"}


@production_bp.post("")
@require_tenant_context
def record_production_route():
    """
    Request body:
    {"recipe_id": int, "quantity": "8", "branch_id": int?, "note": str?}
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        require_known_role(ctx)
        reject_unknown_fields(payload, PRODUCTION_FIELDS)
        require_fields(payload, {"recipe_id", "quantity"})
        result = production_service.record_production(
            ctx,
            recipe_id=parse_int(payload["recipe_id"], "recipe_id"),
            quantity_produced_milli=parse_quantity_milli(payload["quantity"]),
            branch_id=parse_optional_int(payload.get("branch_id"), "branch_id"),
            note=payload.get("note"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to record production")

    return result, 201


@production_bp.get("")
@require_tenant_context
def list_production_route():
    """Filters: ?branch_id= &recipe_id= &start= &end= (ISO-8601)."""
    ctx = g.tenant_context
    try:
        runs = production_service.list_production_runs(
            ctx,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
            recipe_id=parse_optional_int(request.args.get("recipe_id"), "recipe_id"),
            start=parse_datetime(request.args.get("start"), "start"),
            end=parse_datetime(request.args.get("end"), "end"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list production runs")

    return {"production_runs": [r.to_dict() for r in runs]}


@production_bp.get("/<int:run_id>")
@require_tenant_context
def get_production_route(run_id: int):
    ctx = g.tenant_context
    try:
        run = production_service.get_production_run(ctx, run_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to get production run")

    return {"production_run": run.to_dict()}


@production_bp.get("/availability")
@require_tenant_context
def production_availability_route():
    """?recipe_id= &multiplier= (default "1") &branch_id="""
    ctx = g.tenant_context
    try:
        multiplier = request.args.get("multiplier")
        result = production_service.check_availability(
            ctx,
            parse_int(request.args.get("recipe_id"), "recipe_id"),
            multiplier_milli=parse_quantity_milli(multiplier, "multiplier") if multiplier else 1000,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to check ingredient availability")

    return result
