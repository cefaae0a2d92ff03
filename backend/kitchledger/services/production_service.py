# Overview: Service-layer operations for production runs; deducts recipe ingredients from the ledger.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InventoryBatch, ProductionRun
from ..time_utils import normalize_datetime
from ..units import divide_half_up, from_milli, MILLI
from ..validation import ValidationError
from .concurrency import run_with_retry
from .cost_service import exact_cost_cents
from .inventory_service import available_batches_query, deduct_in_transaction, require_positive_quantity
from .tenant_service import (
    TenantContext,
    production_runs,
    recipes,
    require_branch_access,
    resolve_branch_id,
)


def scale_ingredient_milli(ingredient_milli: int, produced_milli: int, portion_size_milli: int) -> int:
    """Ingredient quantity needed for produced_milli of product, rounded half-up."""
    return divide_half_up(ingredient_milli * produced_milli, portion_size_milli)


def record_production(
    ctx: TenantContext,
    *,
    recipe_id: int,
    quantity_produced_milli: int,
    branch_id: int | None = None,
    note: str | None = None,
) -> dict:
    """
    Produce quantity_produced_milli of a recipe at a branch.

    Every ingredient is deducted strictly (FIFO) in ONE unit of work: if any
    ingredient is short, InsufficientInventory aborts the whole run and no
    ingredient is touched. Total cost is the exact FIFO cost of everything
    consumed.
    """
    require_positive_quantity(quantity_produced_milli, "quantity_produced")

    def _op():
        resolved_branch = resolve_branch_id(ctx, branch_id)
        recipe = recipes.get(ctx, recipe_id)
        if not recipe.is_active:
            raise ValidationError(f"Recipe '{recipe.product_name}' is inactive")

        run = ProductionRun(
            tenant_id=ctx.tenant_id,
            branch_id=resolved_branch,
            recipe_id=recipe.id,
            quantity_produced_milli=quantity_produced_milli,
            note=note,
            produced_by=ctx.user_id,
        )
        production_runs.add(ctx, run)
        db.session.flush()

        deductions = []
        for ing in recipe.ingredients:
            required = scale_ingredient_milli(
                ing.quantity_milli, quantity_produced_milli, recipe.portion_size_milli
            )
            if required <= 0:
                continue
            deductions.append(deduct_in_transaction(
                ctx,
                item_name=ing.item_name,
                unit=ing.unit,
                branch_id=resolved_branch,
                quantity_milli=required,
                movement_type="PRODUCTION",
                reference_type="production_run",
                reference_id=run.id,
            ))

        total = sum(exact_cost_cents(d) for d in deductions)
        run.total_cost_cents = total
        run.unit_cost_cents = divide_half_up(total * MILLI, quantity_produced_milli)

        db.session.commit()
        current_app.logger.info(
            "Production run %s: recipe %s x %s at branch %s, cost %s cents",
            run.id, recipe.id, quantity_produced_milli, resolved_branch, total,
        )
        return {
            "production_run": run.to_dict(),
            "deductions": [d.to_dict() for d in deductions],
        }

    return run_with_retry(_op)


def list_production_runs(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    recipe_id: int | None = None,
    start=None,
    end=None,
    limit: int = 200,
) -> list[ProductionRun]:
    """Newest first; branch admins only see their own branch."""
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = production_runs.query(ctx)
    if resolved_branch is not None:
        q = q.filter(ProductionRun.branch_id == resolved_branch)
    if recipe_id is not None:
        q = q.filter(ProductionRun.recipe_id == recipe_id)
    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt:
        q = q.filter(ProductionRun.produced_at >= start_dt)
    if end_dt:
        q = q.filter(ProductionRun.produced_at <= end_dt)
    return q.order_by(ProductionRun.produced_at.desc(), ProductionRun.id.desc()).limit(limit).all()


def get_production_run(ctx: TenantContext, run_id: int) -> ProductionRun:
    run = production_runs.get(ctx, run_id)
    require_branch_access(ctx, run)
    return run


def check_availability(
    ctx: TenantContext,
    recipe_id: int,
    *,
    multiplier_milli: int = MILLI,
    branch_id: int | None = None,
) -> dict:
    """
    Whether multiplier x portion_size of a recipe can be produced at a
    branch from current stock.

    Uses the same scaling and the same FIFO stock query as
    record_production, so can_produce=True means a run started now would
    not raise InsufficientInventory. Takes no locks and writes nothing.
    """
    require_positive_quantity(multiplier_milli, "multiplier")
    resolved_branch = resolve_branch_id(ctx, branch_id)
    recipe = recipes.get(ctx, recipe_id)
    expected_yield = divide_half_up(recipe.portion_size_milli * multiplier_milli, MILLI)

    lines = []
    for ing in recipe.ingredients:
        required = scale_ingredient_milli(ing.quantity_milli, expected_yield, recipe.portion_size_milli)
        rows: list[InventoryBatch] = available_batches_query(
            ctx, ing.item_name, ing.unit, resolved_branch
        ).all()
        on_hand = sum(b.quantity_milli for b in rows)
        lines.append({
            "item_name": ing.item_name,
            "unit": ing.unit,
            "required": from_milli(required),
            "available": from_milli(on_hand),
            "shortage": from_milli(max(0, required - on_hand)),
            "sufficient": on_hand >= required,
        })

    missing = [line["item_name"] for line in lines if not line["sufficient"]]
    return {
        "recipe_id": recipe.id,
        "product_name": recipe.product_name,
        "branch_id": resolved_branch,
        "multiplier": from_milli(multiplier_milli),
        "expected_yield": from_milli(expected_yield),
        "portion_unit": recipe.portion_unit,
        "is_active": recipe.is_active,
        "ingredients": lines,
        "missing_ingredients": missing,
        "can_produce": recipe.is_active and expected_yield > 0 and not missing,
    }
