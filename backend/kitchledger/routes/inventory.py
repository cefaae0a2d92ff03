# backend/kitchledger/routes/inventory.py
"""
Inventory ledger routes.

All routes require a tenant context (gateway identity headers).
- Receiving and deductions: any known role at a branch it can access
- Batch edits/deletes and stock level configuration: RESTAURANT_ADMIN and up;
  branch admins file an approval request instead

Quantities are decimal strings or numbers on the wire ("2.5"), money is
integer cents. Datetimes are ISO-8601; the backend normalizes to UTC.
"""
from flask import Blueprint, request, g

from ..decorators import require_tenant_context
from ..services import inventory_service
from ..services.permission_service import require_known_role
from ..validation import (
    InventoryItemUpdate,
    parse_cents,
    parse_choice,
    parse_datetime,
    parse_int,
    parse_optional_int,
    parse_quantity_milli,
    reject_unknown_fields,
    require_fields,
)
from .errors import SERVICE_ERRORS, error_response, unexpected_error


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

BATCH_FIELDS = {
    "item_name", "unit", "quantity", "unit_cost_cents", "branch_id",
    "category", "received_at", "expires_at", "supplier",
}
DEDUCT_FIELDS = {"item_name", "unit", "quantity", "branch_id"}
STOCK_LEVEL_FIELDS = {"item_name", "category", "unit", "minimum", "maximum", "reorder", "branch_id"}


@inventory_bp.post("/batches")
@require_tenant_context
def create_batch_route():
    """
    Receive a new batch.

    Request body:
    {
        "item_name": str, "unit": str, "quantity": "2.5",
        "unit_cost_cents": int, "branch_id": int (tenant-wide roles),
        "category": str?, "received_at": iso?, "expires_at": iso?, "supplier": str?
    }
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        require_known_role(ctx)
        reject_unknown_fields(payload, BATCH_FIELDS)
        require_fields(payload, {"item_name", "unit", "quantity", "unit_cost_cents"})
        batch = inventory_service.add_batch(
            ctx,
            item_name=payload["item_name"],
            unit=payload["unit"],
            quantity_milli=parse_quantity_milli(payload["quantity"]),
            unit_cost_cents=parse_cents(payload["unit_cost_cents"], "unit_cost_cents"),
            branch_id=parse_optional_int(payload.get("branch_id"), "branch_id"),
            category=payload.get("category"),
            received_at=parse_datetime(payload.get("received_at"), "received_at"),
            expires_at=parse_datetime(payload.get("expires_at"), "expires_at"),
            supplier=payload.get("supplier"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to create inventory batch")

    return {"batch": batch.to_dict()}, 201


@inventory_bp.get("/batches")
@require_tenant_context
def list_batches_route():
    ctx = g.tenant_context
    try:
        rows = inventory_service.list_batches(
            ctx,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
            item_name=request.args.get("item_name"),
            category=request.args.get("category"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list inventory batches")

    return {"batches": [b.to_dict() for b in rows]}


@inventory_bp.get("/available")
@require_tenant_context
def available_route():
    """Batches with stock for ?item_name=&unit= in FIFO order, plus totals."""
    ctx = g.tenant_context
    try:
        require_fields(request.args, {"item_name", "unit"})
        rows = inventory_service.query_available(
            ctx,
            request.args["item_name"],
            request.args["unit"],
            parse_optional_int(request.args.get("branch_id"), "branch_id"),
            require_branch=False,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to query available inventory")

    return {
        "batches": [b.to_dict() for b in rows],
        "summary": inventory_service.summarize_batches(rows),
    }


@inventory_bp.post("/deduct")
@require_tenant_context
def deduct_route():
    """
    Strict FIFO deduction. 409 with the available quantity if stock is short;
    nothing is changed in that case.
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    from ..services.cost_service import exact_cost_cents

    try:
        require_known_role(ctx)
        reject_unknown_fields(payload, DEDUCT_FIELDS)
        require_fields(payload, {"item_name", "unit", "quantity"})
        result = inventory_service.deduct(
            ctx,
            item_name=payload["item_name"],
            unit=payload["unit"],
            quantity_milli=parse_quantity_milli(payload["quantity"]),
            branch_id=parse_optional_int(payload.get("branch_id"), "branch_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to deduct inventory")

    return {"deduction": result.to_dict(), "cost_cents": exact_cost_cents(result)}


@inventory_bp.patch("/batches/<int:batch_id>")
@require_tenant_context
def update_batch_route(batch_id: int):
    """
    Edit quantity, unit_cost_cents or expires_at. A quantity of 0 deletes
    the batch. Branch admins get 403 and must submit an approval request.
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        update = InventoryItemUpdate.from_payload(payload)
        batch = inventory_service.update_batch(ctx, batch_id, update)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to update inventory batch")

    if batch is None:
        return {"batch": None, "deleted": True}
    return {"batch": batch.to_dict(), "deleted": False}


@inventory_bp.delete("/batches/<int:batch_id>")
@require_tenant_context
def delete_batch_route(batch_id: int):
    ctx = g.tenant_context
    try:
        inventory_service.delete_batch(ctx, batch_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to delete inventory batch")

    return {"deleted": True}


@inventory_bp.get("/stock-levels/low")
@require_tenant_context
def low_stock_route():
    ctx = g.tenant_context
    try:
        rows = inventory_service.get_low_stock(
            ctx, parse_optional_int(request.args.get("branch_id"), "branch_id")
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to compute low stock")

    return {"items": rows}


@inventory_bp.put("/stock-levels")
@require_tenant_context
def set_stock_level_route():
    """
    Upsert thresholds for (item_name, category, unit) at a branch.

    Request body:
    {"item_name": str, "category": str, "unit": str, "minimum": "5",
     "maximum": "20"?, "reorder": "10"?, "branch_id": int}
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(payload, STOCK_LEVEL_FIELDS)
        require_fields(payload, {"item_name", "category", "unit", "minimum"})
        level = inventory_service.set_stock_level(
            ctx,
            item_name=payload["item_name"],
            category=payload["category"],
            unit=payload["unit"],
            minimum_milli=parse_quantity_milli(payload["minimum"], "minimum", allow_zero=True),
            maximum_milli=(
                parse_quantity_milli(payload["maximum"], "maximum", allow_zero=True)
                if payload.get("maximum") is not None else None
            ),
            reorder_milli=(
                parse_quantity_milli(payload["reorder"], "reorder", allow_zero=True)
                if payload.get("reorder") is not None else None
            ),
            branch_id=parse_optional_int(payload.get("branch_id"), "branch_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to set stock level")

    return {"stock_level": level.to_dict()}


@inventory_bp.get("/expiring")
@require_tenant_context
def expiring_route():
    """?days= overrides EXPIRY_WARNING_DAYS."""
    ctx = g.tenant_context
    try:
        days = request.args.get("days")
        report = inventory_service.get_expiring_batches(
            ctx,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
            days=parse_int(days, "days") if days not in (None, "") else None,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list expiring batches")

    return report


@inventory_bp.get("/movements")
@require_tenant_context
def list_movements_route():
    """Append-only movement history. Filters: ?branch_id= &item_name= &movement_type="""
    ctx = g.tenant_context
    try:
        movement_type = request.args.get("movement_type")
        rows = inventory_service.list_movements(
            ctx,
            branch_id=parse_optional_int(request.args.get("branch_id"), "branch_id"),
            item_name=request.args.get("item_name"),
            movement_type=(
                parse_choice(movement_type, "movement_type", sorted(inventory_service.MOVEMENT_TYPES))
                if movement_type else None
            ),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list inventory movements")

    return {"movements": [m.to_dict() for m in rows]}
