# Overview: Waste valuation engine; values waste events from the ledger and tags them for analytics.

"""
Waste Valuation Rules

RAW waste:
- The wasted item is deducted from the ledger FIFO (movement type WASTE).
- Stock that is no longer there does not block the log: the shortfall is
  priced by the cost engine (ESTIMATED, or UNCOSTED with no history).

PRODUCT waste:
- multiplier = quantity wasted / recipe portion size.
- Every ingredient is deducted at ingredient.qty * multiplier, each with
  the same shortfall fallback as RAW. One short ingredient never aborts
  the event; its cost line says which basis it was priced on.

Both kinds:
- cost_cents is computed here, inside the transaction that writes the log,
  and is never accepted from the caller.
- Deleting a waste log removes the record only. Stock that was wasted
  stays consumed.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import WasteCostLine, WasteLog
from ..time_utils import normalize_datetime
from ..validation import SEVERITIES, ValidationError, WasteLogUpdate
from .concurrency import run_with_retry
from .cost_service import COST_BASIS_EXACT, CostBreakdown, attribute_cost, combine_cost_basis
from .inventory_service import deduct_in_transaction, require_positive_quantity
from .permission_service import require_direct_mutation, require_known_role
from .production_service import scale_ingredient_milli
from .tenant_service import (
    TenantContext,
    recipes,
    require_branch_access,
    resolve_branch_id,
    waste_logs,
)


WASTE_KINDS = ("RAW", "PRODUCT")

# Ordered taxonomy: (tag, keywords matched as case-insensitive substrings)
WASTE_TAXONOMY = (
    ("expiry_spoilage", ("expir", "spoil", "rotten", "mold")),
    ("cooking_error", ("overcooked", "burnt", "ruined")),
    ("contamination", ("contaminat",)),
    ("over_ordering", ("overorder", "over-order", "excess", "surplus")),
    ("damage", ("dropped", "spilled", "damaged", "broken", "accident")),
    ("customer_related", ("customer", "returned", "leftover")),
)

AVOIDABLE_TAGS = {"expiry_spoilage", "cooking_error", "contamination", "over_ordering", "damage"}

KIND_TAGS = {"RAW": "raw_waste", "PRODUCT": "product_waste"}

_TAXONOMY_TAGS = {tag for tag, _ in WASTE_TAXONOMY}


def _normalize_tag(tag: str) -> str:
    return "_".join(tag.strip().lower().replace("-", " ").split())


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def derive_waste_tags(reason: str, waste_kind: str, user_tags=None) -> list[str]:
    """
    Deterministic tag set for a waste event.

    Order: taxonomy tags (in taxonomy order), then user tags (normalized, in
    the order given), then the waste-kind tag. Duplicates are dropped keeping
    the first occurrence.
    """
    text = (reason or "").lower()
    ordered = [
        tag for tag, keywords in WASTE_TAXONOMY
        if any(keyword in text for keyword in keywords)
    ]
    ordered.extend(_normalize_tag(t) for t in (user_tags or []))
    ordered.append(KIND_TAGS[waste_kind])

    seen = set()
    tags = []
    for tag in ordered:
        if tag and tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


def default_preventable(tags) -> bool:
    return any(tag in AVOIDABLE_TAGS for tag in tags)


def _user_tags(tags) -> list[str]:
    """Tags on a stored log that were neither derived nor the kind tag."""
    kind_tags = set(KIND_TAGS.values())
    return [t for t in tags if t not in _TAXONOMY_TAGS and t not in kind_tags]


def _cost_line(breakdown) -> WasteCostLine:
    return WasteCostLine(
        item_name=breakdown.item_name,
        unit=breakdown.unit,
        requested_milli=breakdown.requested_milli,
        consumed_milli=breakdown.consumed_milli,
        shortfall_milli=breakdown.shortfall_milli,
        exact_cost_cents=breakdown.exact_cost_cents,
        estimated_cost_cents=breakdown.estimated_cost_cents,
        cost_basis=breakdown.cost_basis,
    )


def log_waste(
    ctx: TenantContext,
    *,
    waste_kind: str,
    quantity_milli: int,
    reason: str,
    item_name: str | None = None,
    unit: str | None = None,
    recipe_id: int | None = None,
    branch_id: int | None = None,
    severity: str | None = None,
    preventable: bool | None = None,
    tags=None,
) -> WasteLog:
    """
    Record a waste event and value it.

    RAW needs item_name and unit; PRODUCT needs recipe_id. Any known role
    may log waste at a branch it can access.
    """
    require_known_role(ctx)
    if waste_kind not in WASTE_KINDS:
        raise ValidationError(f"waste_kind must be one of: {', '.join(WASTE_KINDS)}")
    require_positive_quantity(quantity_milli)
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    severity = severity or "MEDIUM"
    if severity not in SEVERITIES:
        raise ValidationError(f"severity must be one of: {', '.join(SEVERITIES)}")
    if waste_kind == "RAW" and (not item_name or not unit):
        raise ValidationError("item_name and unit are required for RAW waste")
    if waste_kind == "PRODUCT" and recipe_id is None:
        raise ValidationError("recipe_id is required for PRODUCT waste")

    derived_tags = derive_waste_tags(reason, waste_kind, tags)

    def _op():
        resolved_branch = resolve_branch_id(ctx, branch_id)

        recipe = recipes.get(ctx, recipe_id) if waste_kind == "PRODUCT" else None

        log = WasteLog(
            tenant_id=ctx.tenant_id,
            branch_id=resolved_branch,
            waste_kind=waste_kind,
            item_name=recipe.product_name if recipe else item_name.strip(),
            unit=recipe.portion_unit if recipe else unit.strip(),
            recipe_id=recipe.id if recipe else None,
            quantity_milli=quantity_milli,
            reason=reason.strip(),
            severity=severity,
            preventable=default_preventable(derived_tags) if preventable is None else preventable,
            logged_by=ctx.user_id,
        )
        log.tags = derived_tags
        waste_logs.add(ctx, log)
        db.session.flush()

        if recipe is None:
            wanted = [(log.item_name, log.unit, quantity_milli)]
        else:
            wanted = [
                (ing.item_name, ing.unit,
                 scale_ingredient_milli(ing.quantity_milli, quantity_milli, recipe.portion_size_milli))
                for ing in recipe.ingredients
            ]

        breakdowns = []
        for name, ing_unit, qty in wanted:
            if qty <= 0:
                # Scaled below one milli-unit: listed, nothing consumed
                breakdowns.append(CostBreakdown(
                    item_name=name, unit=ing_unit, requested_milli=0, consumed_milli=0,
                    shortfall_milli=0, exact_cost_cents=0, estimated_cost_cents=0,
                    estimate_unit_cost_cents=None, cost_basis=COST_BASIS_EXACT,
                ))
                continue
            result = deduct_in_transaction(
                ctx,
                item_name=name,
                unit=ing_unit,
                branch_id=resolved_branch,
                quantity_milli=qty,
                allow_shortfall=True,
                movement_type="WASTE",
                reference_type="waste_log",
                reference_id=log.id,
            )
            breakdowns.append(attribute_cost(ctx, result))

        for breakdown in breakdowns:
            log.cost_lines.append(_cost_line(breakdown))
        log.cost_cents = sum(b.total_cost_cents for b in breakdowns)
        log.cost_basis = combine_cost_basis(b.cost_basis for b in breakdowns)

        db.session.commit()
        if log.cost_basis != COST_BASIS_EXACT:
            current_app.logger.warning(
                "Waste log %s recorded with %s cost (%s cents)", log.id, log.cost_basis, log.cost_cents
            )
        return log

    return run_with_retry(_op)


def list_waste_logs(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    waste_kind: str | None = None,
    tag: str | None = None,
    start=None,
    end=None,
    limit: int = 200,
) -> list[WasteLog]:
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = waste_logs.query(ctx)
    if resolved_branch is not None:
        q = q.filter(WasteLog.branch_id == resolved_branch)
    if waste_kind:
        q = q.filter(WasteLog.waste_kind == waste_kind)
    if tag:
        needle = _escape_like(_normalize_tag(tag))
        # Tags are stored as a JSON list of strings
        q = q.filter(WasteLog.tags_json.like(f'%"{needle}"%', escape="\\"))
    start_dt = normalize_datetime(start)
    end_dt = normalize_datetime(end)
    if start_dt:
        q = q.filter(WasteLog.created_at >= start_dt)
    if end_dt:
        q = q.filter(WasteLog.created_at <= end_dt)
    return q.order_by(WasteLog.created_at.desc(), WasteLog.id.desc()).limit(limit).all()


def get_waste_log(ctx: TenantContext, waste_id: int) -> WasteLog:
    log = waste_logs.get(ctx, waste_id)
    require_branch_access(ctx, log)
    return log


def apply_waste_update(ctx: TenantContext, log: WasteLog, update: WasteLogUpdate) -> WasteLog:
    """
    Apply an update without committing.

    Cost fields are not updatable. Tags are always re-derived so taxonomy
    and kind tags stay consistent with the reason: explicit tags replace the
    user tags, otherwise the existing user tags are kept.
    """
    if update.reason is not None:
        log.reason = update.reason
    if update.severity is not None:
        log.severity = update.severity
    if update.preventable is not None:
        log.preventable = update.preventable

    if update.reason is not None or update.tags is not None:
        user_tags = list(update.tags) if update.tags is not None else _user_tags(log.tags)
        log.tags = derive_waste_tags(log.reason, log.waste_kind, user_tags)

    db.session.flush()
    return log


def apply_waste_delete(ctx: TenantContext, log: WasteLog) -> None:
    waste_logs.delete(ctx, log)
    db.session.flush()


def update_waste_log(ctx: TenantContext, waste_id: int, update: WasteLogUpdate) -> WasteLog:
    require_direct_mutation(ctx, "edit waste logs")

    def _op():
        log = waste_logs.get(ctx, waste_id, lock=True)
        apply_waste_update(ctx, log, update)
        db.session.commit()
        current_app.logger.info(
            "Waste log %s updated by user %s (tenant %s)", waste_id, ctx.user_id, ctx.tenant_id
        )
        return log

    return run_with_retry(_op)


def delete_waste_log(ctx: TenantContext, waste_id: int) -> None:
    require_direct_mutation(ctx, "delete waste logs")

    def _op():
        log = waste_logs.get(ctx, waste_id, lock=True)
        apply_waste_delete(ctx, log)
        db.session.commit()
        current_app.logger.info(
            "Waste log %s deleted by user %s (tenant %s)", waste_id, ctx.user_id, ctx.tenant_id
        )

    run_with_retry(_op)
