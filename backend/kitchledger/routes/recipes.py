# backend/kitchledger/routes/recipes.py
"""
Recipe routes.

Creating, editing and deleting recipes requires RESTAURANT_ADMIN or above.
Costing is a read: it never changes inventory.
"""
from flask import Blueprint, request, g

from ..decorators import require_tenant_context
from ..services import recipe_service
from ..services.recipe_service import IngredientInput
from ..validation import (
    ValidationError,
    parse_bool,
    parse_optional_int,
    parse_quantity_milli,
    reject_unknown_fields,
    require_fields,
)
from .errors import SERVICE_ERRORS, error_response, unexpected_error


recipes_bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")

RECIPE_FIELDS = {"product_name", "category", "portion_size", "portion_unit", "ingredients"}
INGREDIENT_FIELDS = {"item_name", "unit", "quantity"}


def _parse_ingredients(raw) -> list[IngredientInput]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("ingredients must be a non-empty list")
    parsed = []
    for i, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"ingredient {i} must be an object")
        reject_unknown_fields(item, INGREDIENT_FIELDS)
        require_fields(item, INGREDIENT_FIELDS)
        parsed.append(IngredientInput(
            item_name=str(item["item_name"]),
            unit=str(item["unit"]),
            quantity_milli=parse_quantity_milli(item["quantity"], f"ingredient {i} quantity"),
        ))
    return parsed


@recipes_bp.post("")
@require_tenant_context
def create_recipe_route():
    """
    Request body:
    {
        "product_name": str,
        "portion_size": "4",          // yield of the ingredient list, > 0
        "portion_unit": str?,         // default "portion"
        "category": str?,
        "ingredients": [{"item_name": str, "unit": str, "quantity": "0.5"}, ...]
    }
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(payload, RECIPE_FIELDS)
        require_fields(payload, {"product_name", "portion_size", "ingredients"})
        recipe = recipe_service.create_recipe(
            ctx,
            product_name=str(payload["product_name"]),
            portion_size_milli=parse_quantity_milli(payload["portion_size"], "portion_size"),
            ingredients=_parse_ingredients(payload["ingredients"]),
            portion_unit=payload.get("portion_unit") or "portion",
            category=payload.get("category"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to create recipe")

    return {"recipe": recipe.to_dict()}, 201


@recipes_bp.get("")
@require_tenant_context
def list_recipes_route():
    ctx = g.tenant_context
    try:
        include_inactive = request.args.get("include_inactive")
        rows = recipe_service.list_recipes(
            ctx,
            category=request.args.get("category"),
            include_inactive=(
                parse_bool(include_inactive, "include_inactive") if include_inactive else False
            ),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list recipes")

    return {"recipes": [r.to_dict() for r in rows]}


@recipes_bp.get("/<int:recipe_id>")
@require_tenant_context
def get_recipe_route(recipe_id: int):
    ctx = g.tenant_context
    try:
        recipe = recipe_service.get_recipe(ctx, recipe_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to get recipe")

    return {"recipe": recipe.to_dict()}


@recipes_bp.get("/<int:recipe_id>/cost")
@require_tenant_context
def recipe_cost_route(recipe_id: int):
    """Weighted-average cost snapshot; ?branch_id= limits to one branch."""
    ctx = g.tenant_context
    try:
        cost = recipe_service.calculate_cost(
            ctx,
            recipe_id,
            parse_optional_int(request.args.get("branch_id"), "branch_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to cost recipe")

    return cost


@recipes_bp.patch("/<int:recipe_id>")
@require_tenant_context
def update_recipe_route(recipe_id: int):
    """
    Any subset of the create fields plus "is_active": bool. A new
    "ingredients" list replaces the old one.
    """
    payload = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(payload, RECIPE_FIELDS | {"is_active"})
        if not payload:
            raise ValidationError("No fields to update")
        recipe = recipe_service.update_recipe(
            ctx,
            recipe_id,
            product_name=str(payload["product_name"]) if "product_name" in payload else None,
            category=payload.get("category"),
            portion_size_milli=(
                parse_quantity_milli(payload["portion_size"], "portion_size")
                if "portion_size" in payload else None
            ),
            portion_unit=payload.get("portion_unit"),
            ingredients=(
                _parse_ingredients(payload["ingredients"]) if "ingredients" in payload else None
            ),
            is_active=(
                parse_bool(payload["is_active"], "is_active") if "is_active" in payload else None
            ),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to update recipe")

    return {"recipe": recipe.to_dict()}


@recipes_bp.delete("/<int:recipe_id>")
@require_tenant_context
def delete_recipe_route(recipe_id: int):
    """Refused with 400 once the recipe has production or waste history."""
    ctx = g.tenant_context
    try:
        recipe_service.delete_recipe(ctx, recipe_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to delete recipe")

    return {"deleted": True}
