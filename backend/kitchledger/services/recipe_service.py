# Overview: Service-layer operations for recipes and advisory recipe costing.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryBatch, Recipe, RecipeIngredient
from ..units import divide_half_up, from_milli, MILLI
from ..validation import InvalidQuantity, ValidationError
from .concurrency import run_with_retry
from .inventory_service import available_batches_query, require_positive_quantity
from .permission_service import require_direct_mutation
from .tenant_service import TenantContext, production_runs, recipes, resolve_branch_id, waste_logs


@dataclass(frozen=True)
class IngredientInput:
    item_name: str
    unit: str
    quantity_milli: int


def _require_portion_size(portion_size_milli) -> None:
    if isinstance(portion_size_milli, bool) or not isinstance(portion_size_milli, int) or portion_size_milli <= 0:
        raise InvalidQuantity("portion_size must be greater than zero")


def _validate_ingredients(ingredients: list[IngredientInput]) -> None:
    if not ingredients:
        raise ValidationError("a recipe needs at least one ingredient")
    seen = set()
    for ing in ingredients:
        require_positive_quantity(ing.quantity_milli, f"quantity of {ing.item_name}")
        key = (ing.item_name.strip().lower(), ing.unit.strip().lower())
        if key in seen:
            raise ValidationError(f"Duplicate ingredient: {ing.item_name} ({ing.unit})")
        seen.add(key)


def _set_ingredients(recipe: Recipe, ingredients: list[IngredientInput]) -> None:
    recipe.ingredients = [
        RecipeIngredient(
            position=position,
            item_name=ing.item_name.strip(),
            unit=ing.unit.strip(),
            quantity_milli=ing.quantity_milli,
        )
        for position, ing in enumerate(ingredients, start=1)
    ]


def create_recipe(
    ctx: TenantContext,
    *,
    product_name: str,
    portion_size_milli: int,
    ingredients: list[IngredientInput],
    portion_unit: str = "portion",
    category: str | None = None,
) -> Recipe:
    """
    Create a recipe with its ingredients in declared order.

    Ingredient quantities are per portion_size_milli of product and must be
    positive. The same item/unit may not appear twice.
    """
    require_direct_mutation(ctx, "create recipes")
    if not product_name or not product_name.strip():
        raise ValidationError("product_name is required")
    _require_portion_size(portion_size_milli)
    _validate_ingredients(ingredients)

    def _op():
        exists = recipes.query(ctx, product_name=product_name.strip()).first()
        if exists is not None:
            raise ValidationError(f"Recipe '{product_name.strip()}' already exists")

        recipe = Recipe(
            tenant_id=ctx.tenant_id,
            product_name=product_name.strip(),
            category=category,
            portion_size_milli=portion_size_milli,
            portion_unit=portion_unit or "portion",
            created_by=ctx.user_id,
        )
        _set_ingredients(recipe, ingredients)
        recipes.add(ctx, recipe)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Recipe '{product_name.strip()}' already exists")
        return recipe

    return run_with_retry(_op)


def update_recipe(
    ctx: TenantContext,
    recipe_id: int,
    *,
    product_name: str | None = None,
    category: str | None = None,
    portion_size_milli: int | None = None,
    portion_unit: str | None = None,
    ingredients: list[IngredientInput] | None = None,
    is_active: bool | None = None,
) -> Recipe:
    """
    Edit a recipe. Fields left as None are unchanged.

    A new ingredient list replaces the old one entirely. Past production
    runs keep the costs they were recorded with. Setting is_active=False
    hides the recipe from listings and refuses new production, which is
    the way to retire a recipe that has history.
    """
    require_direct_mutation(ctx, "edit recipes")
    if product_name is not None and not product_name.strip():
        raise ValidationError("product_name cannot be empty")
    if portion_size_milli is not None:
        _require_portion_size(portion_size_milli)
    if ingredients is not None:
        _validate_ingredients(ingredients)

    def _op():
        recipe = recipes.get(ctx, recipe_id, lock=True)

        if product_name is not None and product_name.strip() != recipe.product_name:
            clash = recipes.query(ctx, product_name=product_name.strip()).first()
            if clash is not None:
                raise ValidationError(f"Recipe '{product_name.strip()}' already exists")
            recipe.product_name = product_name.strip()
        if category is not None:
            recipe.category = category or None
        if portion_size_milli is not None:
            recipe.portion_size_milli = portion_size_milli
        if portion_unit:
            recipe.portion_unit = portion_unit
        if ingredients is not None:
            _set_ingredients(recipe, ingredients)
        if is_active is not None:
            recipe.is_active = is_active

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"Recipe '{recipe.product_name}' already exists")
        current_app.logger.info(
            "Recipe %s updated by user %s (tenant %s)", recipe_id, ctx.user_id, ctx.tenant_id
        )
        return recipe

    return run_with_retry(_op)


def delete_recipe(ctx: TenantContext, recipe_id: int) -> None:
    """
    Delete a recipe that was never produced or wasted.

    Production runs and waste logs reference the recipe they costed, so a
    recipe with history can only be deactivated.
    """
    require_direct_mutation(ctx, "delete recipes")

    def _op():
        recipe = recipes.get(ctx, recipe_id, lock=True)
        if production_runs.query(ctx, recipe_id=recipe.id).first() is not None:
            raise ValidationError(
                "Cannot delete a recipe with production history; deactivate it instead"
            )
        if waste_logs.query(ctx, recipe_id=recipe.id).first() is not None:
            raise ValidationError(
                "Cannot delete a recipe with waste history; deactivate it instead"
            )
        recipes.delete(ctx, recipe)
        db.session.commit()
        current_app.logger.info(
            "Recipe %s deleted by user %s (tenant %s)", recipe_id, ctx.user_id, ctx.tenant_id
        )

    run_with_retry(_op)


def list_recipes(ctx: TenantContext, *, category: str | None = None, include_inactive: bool = False) -> list[Recipe]:
    q = recipes.query(ctx)
    if category:
        q = q.filter(Recipe.category == category)
    if not include_inactive:
        q = q.filter(Recipe.is_active.is_(True))
    return q.order_by(Recipe.product_name.asc(), Recipe.id.asc()).all()


def get_recipe(ctx: TenantContext, recipe_id: int) -> Recipe:
    return recipes.get(ctx, recipe_id)


def calculate_cost(ctx: TenantContext, recipe_id: int, branch_id: int | None = None) -> dict:
    """
    Advisory cost of one portion_size of a recipe from current stock.

    Per ingredient, the unit cost is the weighted average over the batches
    on hand right now:

        sum(batch.qty * batch.unit_cost) / sum(batch.qty)

    This is a snapshot, not the FIFO cost a real deduction would produce,
    and it never touches inventory. An ingredient with no stock costs 0 and
    is listed under unavailable_ingredients.

    branch_id=None (tenant-wide roles only) averages across every branch.
    """
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    recipe = recipes.get(ctx, recipe_id)
    if recipe.portion_size_milli <= 0:
        raise InvalidQuantity("Recipe portion size must be greater than zero")

    lines = []
    unavailable = []
    total_cents = 0

    for ing in recipe.ingredients:
        rows: list[InventoryBatch] = available_batches_query(ctx, ing.item_name, ing.unit, resolved_branch).all()
        on_hand = sum(b.quantity_milli for b in rows)
        value_numerator = sum(b.quantity_milli * b.unit_cost_cents for b in rows)

        if on_hand > 0:
            # Round once per ingredient: (avg cost) * qty with avg kept exact
            cost = divide_half_up(value_numerator * ing.quantity_milli, on_hand * MILLI)
            avg_unit = divide_half_up(value_numerator, on_hand)
        else:
            cost = 0
            avg_unit = None
            unavailable.append(ing.item_name)

        total_cents += cost
        lines.append({
            "item_name": ing.item_name,
            "unit": ing.unit,
            "quantity": from_milli(ing.quantity_milli),
            "average_unit_cost_cents": avg_unit,
            "cost_cents": cost,
            "available": from_milli(on_hand),
        })

    return {
        "recipe_id": recipe.id,
        "product_name": recipe.product_name,
        "branch_id": resolved_branch,
        "portion_size": from_milli(recipe.portion_size_milli),
        "portion_unit": recipe.portion_unit,
        "total_cost_cents": total_cents,
        "cost_per_portion_cents": divide_half_up(total_cents * MILLI, recipe.portion_size_milli),
        "ingredients": lines,
        "unavailable_ingredients": unavailable,
        "is_complete": not unavailable,
    }
