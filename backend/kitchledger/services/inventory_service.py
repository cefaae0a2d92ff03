# Overview: Service-layer operations for the batch inventory ledger; encapsulates business logic and database work.

"""
Inventory Ledger Invariants (authoritative)

Batch model:
- Stock is held as InventoryBatch rows per tenant + branch + item + unit.
- quantity_milli >= 0 and unit_cost_cents >= 0 on every row.
- A batch that reaches zero is DELETED in the same transaction, never kept.
- Replenishment always creates a new batch; existing batches only shrink
  (deduction) or are edited by a privileged actor.

FIFO contract:
- Available batches are ordered received_at ASC, id ASC. The id tiebreak
  makes the order total, so the same stock always deducts the same way.
- deduct() walks that list taking min(batch, remaining) from each batch.

Atomicity:
- The read of available batches (locked FOR UPDATE), the consumption plan
  and every batch write happen in ONE unit of work.
- A strict deduction that cannot be fully satisfied raises
  InsufficientInventory before a single row is written.

Audit:
- Every batch change appends an InventoryMovement in the same transaction.
- RECEIVE movements outlive their batches and are the cost history used to
  price a shortfall after stock has been consumed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InventoryBatch, InventoryMovement, StockLevel
from ..time_utils import normalize_datetime, utcnow, to_utc_z
from ..units import from_milli, line_cost_cents, divide_half_up
from ..validation import InvalidQuantity, InventoryItemUpdate, ValidationError
from .concurrency import lock_for_update, run_with_retry
from .permission_service import require_direct_mutation
from .tenant_service import (
    TenantContext,
    batches,
    movements,
    require_branch_access,
    resolve_branch_id,
    stock_levels,
)


MOVEMENT_TYPES = {"RECEIVE", "DEDUCT", "WASTE", "PRODUCTION", "ADJUST", "REMOVE"}


class InsufficientInventory(Exception):
    """Requested deduction exceeds the stock available for the item."""

    def __init__(self, item_name: str, unit: str, requested_milli: int, available_milli: int):
        self.item_name = item_name
        self.unit = unit
        self.requested_milli = requested_milli
        self.available_milli = available_milli
        super().__init__(
            f"Insufficient {item_name} inventory. "
            f"Need {from_milli(requested_milli)} {unit}, have {from_milli(available_milli)} {unit}"
        )


@dataclass(frozen=True)
class DeductionLine:
    """What one batch gave up. unit_cost_cents is the batch's own cost."""
    batch_id: int
    quantity_used_milli: int
    remaining_in_batch_milli: int
    unit_cost_cents: int

    @property
    def cost_cents(self) -> int:
        return line_cost_cents(self.quantity_used_milli, self.unit_cost_cents)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "quantity_used": from_milli(self.quantity_used_milli),
            "remaining_in_batch": from_milli(self.remaining_in_batch_milli),
            "unit_cost_cents": self.unit_cost_cents,
            "cost_cents": self.cost_cents,
        }


@dataclass(frozen=True)
class DeductionResult:
    item_name: str
    unit: str
    branch_id: int
    requested_milli: int
    lines: list[DeductionLine] = field(default_factory=list)

    @property
    def consumed_milli(self) -> int:
        return sum(line.quantity_used_milli for line in self.lines)

    @property
    def shortfall_milli(self) -> int:
        return self.requested_milli - self.consumed_milli

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "unit": self.unit,
            "branch_id": self.branch_id,
            "requested": from_milli(self.requested_milli),
            "consumed": from_milli(self.consumed_milli),
            "shortfall": from_milli(self.shortfall_milli),
            "lines": [line.to_dict() for line in self.lines],
        }


def require_positive_quantity(quantity_milli, field_name: str = "quantity") -> int:
    if isinstance(quantity_milli, bool) or not isinstance(quantity_milli, int):
        raise ValidationError(f"{field_name} must be an integer number of thousandths")
    if quantity_milli <= 0:
        raise InvalidQuantity(f"{field_name} must be greater than zero")
    return quantity_milli


def _require_non_negative_cents(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer number of cents")
    if value < 0:
        raise ValidationError(f"{field_name} cannot be negative")
    return value


def record_movement(
    ctx: TenantContext,
    *,
    branch_id: int,
    batch_id: int | None,
    item_name: str,
    unit: str,
    movement_type: str,
    quantity_delta_milli: int,
    unit_cost_cents: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    occurred_at=None,
    note: str | None = None,
) -> InventoryMovement:
    """
    Append-only movement record.

    - No updates or deletes of existing movements, ever.
    - Flushed, never committed: the caller's unit of work owns the commit.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type {movement_type!r}")

    mv = InventoryMovement(
        tenant_id=ctx.tenant_id,
        branch_id=branch_id,
        batch_id=batch_id,
        item_name=item_name,
        unit=unit,
        movement_type=movement_type,
        quantity_delta_milli=quantity_delta_milli,
        unit_cost_cents=unit_cost_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        actor_user_id=ctx.user_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
    )
    movements.add(ctx, mv)
    db.session.flush()
    return mv


# ================================================================================
# RECEIVING
# ================================================================================

def add_batch(
    ctx: TenantContext,
    *,
    item_name: str,
    unit: str,
    quantity_milli: int,
    unit_cost_cents: int,
    branch_id: int | None = None,
    category: str | None = None,
    received_at=None,
    expires_at=None,
    supplier: str | None = None,
) -> InventoryBatch:
    """
    Receive a new batch of stock.

    There is no upper bound on concurrent batches per item; every receipt is
    its own lot with its own cost.
    """
    require_positive_quantity(quantity_milli)
    _require_non_negative_cents(unit_cost_cents, "unit_cost_cents")
    if not item_name or not unit:
        raise ValidationError("item_name and unit are required")

    received_dt = normalize_datetime(received_at) or utcnow()
    expires_dt = normalize_datetime(expires_at)
    if received_dt > utcnow() + timedelta(minutes=2):
        raise ValidationError("received_at cannot be in the future")
    if expires_dt is not None and expires_dt < received_dt:
        raise ValidationError("expires_at cannot be before received_at")

    def _op():
        resolved_branch = resolve_branch_id(ctx, branch_id)

        batch = InventoryBatch(
            tenant_id=ctx.tenant_id,
            branch_id=resolved_branch,
            item_name=item_name.strip(),
            category=(category or "General").strip(),
            unit=unit.strip(),
            quantity_milli=quantity_milli,
            unit_cost_cents=unit_cost_cents,
            supplier=supplier,
            received_at=received_dt,
            expires_at=expires_dt,
        )
        batches.add(ctx, batch)
        db.session.flush()

        record_movement(
            ctx,
            branch_id=resolved_branch,
            batch_id=batch.id,
            item_name=batch.item_name,
            unit=batch.unit,
            movement_type="RECEIVE",
            quantity_delta_milli=quantity_milli,
            unit_cost_cents=unit_cost_cents,
            occurred_at=received_dt,
        )

        db.session.commit()
        return batch

    return run_with_retry(_op)


# ================================================================================
# QUERIES
# ================================================================================

def available_batches_query(ctx: TenantContext, item_name: str, unit: str, branch_id: int | None):
    q = batches.query(ctx, item_name=item_name, unit=unit).filter(
        InventoryBatch.quantity_milli > 0
    )
    if branch_id is not None:
        q = q.filter(InventoryBatch.branch_id == branch_id)
    return q.order_by(InventoryBatch.received_at.asc(), InventoryBatch.id.asc())


def query_available(
    ctx: TenantContext,
    item_name: str,
    unit: str,
    branch_id: int | None = None,
    *,
    require_branch: bool = True,
) -> list[InventoryBatch]:
    """
    Batches with stock left for item/unit, oldest received first.

    Read-only; takes no locks. With require_branch=False a tenant-wide
    caller may omit the branch to see every branch's stock.
    """
    resolved_branch = resolve_branch_id(ctx, branch_id, required=require_branch)
    return available_batches_query(ctx, item_name, unit, resolved_branch).all()


def summarize_batches(rows: list[InventoryBatch]) -> dict:
    """Quantity, value and weighted-average unit cost of a set of batches."""
    total_milli = sum(b.quantity_milli for b in rows)
    value_numerator = sum(b.quantity_milli * b.unit_cost_cents for b in rows)
    return {
        "quantity": from_milli(total_milli),
        "quantity_milli": total_milli,
        "value_cents": divide_half_up(value_numerator, 1000),
        "average_unit_cost_cents": (
            divide_half_up(value_numerator, total_milli) if total_milli > 0 else None
        ),
        "batch_count": len(rows),
    }


def list_batches(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    item_name: str | None = None,
    category: str | None = None,
    limit: int = 200,
) -> list[InventoryBatch]:
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = batches.query(ctx)
    if resolved_branch is not None:
        q = q.filter(InventoryBatch.branch_id == resolved_branch)
    if item_name:
        q = q.filter(InventoryBatch.item_name == item_name)
    if category:
        q = q.filter(InventoryBatch.category == category)
    return q.order_by(
        InventoryBatch.item_name.asc(),
        InventoryBatch.received_at.asc(),
        InventoryBatch.id.asc(),
    ).limit(limit).all()


def list_movements(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    item_name: str | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[InventoryMovement]:
    """Newest first. Movements are never edited, so this is the full history."""
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = movements.query(ctx)
    if resolved_branch is not None:
        q = q.filter(InventoryMovement.branch_id == resolved_branch)
    if item_name:
        q = q.filter(InventoryMovement.item_name == item_name)
    if movement_type:
        q = q.filter(InventoryMovement.movement_type == movement_type)
    return q.order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc()).limit(limit).all()


def get_batch(ctx: TenantContext, batch_id: int) -> InventoryBatch:
    batch = batches.get(ctx, batch_id)
    require_branch_access(ctx, batch)
    return batch


def get_recent_receive_cost_cents(
    ctx: TenantContext, item_name: str, unit: str, branch_id: int
) -> int | None:
    """
    Unit cost of the most recently received batch of item/unit at a branch.

    Reads the movement log, not the batch table: the batch may since have
    been fully consumed and deleted. None means no batch ever existed.
    """
    mv = movements.query(
        ctx,
        branch_id=branch_id,
        item_name=item_name,
        unit=unit,
        movement_type="RECEIVE",
    ).filter(
        InventoryMovement.unit_cost_cents.isnot(None),
    ).order_by(
        InventoryMovement.occurred_at.desc(),
        InventoryMovement.id.desc(),
    ).first()
    return mv.unit_cost_cents if mv else None


# ================================================================================
# FIFO DEDUCTION
# ================================================================================

def plan_fifo_deduction(
    available: list[InventoryBatch], quantity_milli: int
) -> tuple[list[DeductionLine], int]:
    """
    Pure FIFO walk over batches already in FIFO order.

    Returns (lines, shortfall_milli). Touches nothing; the caller decides
    whether a shortfall is an error and applies the lines.
    """
    lines: list[DeductionLine] = []
    remaining = quantity_milli

    for batch in available:
        if remaining <= 0:
            break
        if batch.quantity_milli <= 0:
            continue
        used = min(batch.quantity_milli, remaining)
        lines.append(DeductionLine(
            batch_id=batch.id,
            quantity_used_milli=used,
            remaining_in_batch_milli=batch.quantity_milli - used,
            unit_cost_cents=batch.unit_cost_cents,
        ))
        remaining -= used

    return lines, remaining


def deduct_in_transaction(
    ctx: TenantContext,
    *,
    item_name: str,
    unit: str,
    branch_id: int,
    quantity_milli: int,
    allow_shortfall: bool = False,
    movement_type: str = "DEDUCT",
    reference_type: str | None = None,
    reference_id: int | None = None,
) -> DeductionResult:
    """Core FIFO deduction without retry or commit.

    Called by deduct() and by the waste and production services, which run
    several deductions inside one unit of work. branch_id must already be
    resolved for ctx.

    With allow_shortfall=False nothing is written unless the full quantity
    is available. With allow_shortfall=True whatever stock exists is
    consumed and the result reports the shortfall.
    """
    require_positive_quantity(quantity_milli)

    available = lock_for_update(available_batches_query(ctx, item_name, unit, branch_id)).all()
    lines, shortfall = plan_fifo_deduction(available, quantity_milli)

    if shortfall > 0 and not allow_shortfall:
        raise InsufficientInventory(item_name, unit, quantity_milli, quantity_milli - shortfall)

    by_id = {b.id: b for b in available}
    for line in lines:
        batch = by_id[line.batch_id]
        if line.remaining_in_batch_milli == 0:
            batches.delete(ctx, batch)
        else:
            batch.quantity_milli = line.remaining_in_batch_milli

        record_movement(
            ctx,
            branch_id=branch_id,
            batch_id=line.batch_id,
            item_name=item_name,
            unit=unit,
            movement_type=movement_type,
            quantity_delta_milli=-line.quantity_used_milli,
            unit_cost_cents=line.unit_cost_cents,
            reference_type=reference_type,
            reference_id=reference_id,
        )

    db.session.flush()
    return DeductionResult(
        item_name=item_name,
        unit=unit,
        branch_id=branch_id,
        requested_milli=quantity_milli,
        lines=lines,
    )


def deduct(
    ctx: TenantContext,
    *,
    item_name: str,
    unit: str,
    quantity_milli: int,
    branch_id: int | None = None,
) -> DeductionResult:
    """
    Remove quantity_milli of item/unit from a branch, oldest stock first.

    All or nothing: if the branch holds less than requested, raises
    InsufficientInventory and every batch is left exactly as it was.
    The returned lines are the only basis for costing the deduction.
    """
    require_positive_quantity(quantity_milli)

    def _op():
        resolved_branch = resolve_branch_id(ctx, branch_id)
        result = deduct_in_transaction(
            ctx,
            item_name=item_name,
            unit=unit,
            branch_id=resolved_branch,
            quantity_milli=quantity_milli,
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


# ================================================================================
# DIRECT EDITS (privileged, or applied from an approved request)
# ================================================================================

def apply_batch_update(
    ctx: TenantContext, batch: InventoryBatch, update: InventoryItemUpdate
) -> InventoryBatch | None:
    """Apply an update without committing. Returns None if the batch was emptied and deleted."""
    if update.unit_cost_cents is not None:
        batch.unit_cost_cents = _require_non_negative_cents(update.unit_cost_cents, "unit_cost_cents")
    if update.expires_at is not None:
        batch.expires_at = update.expires_at

    if update.quantity_milli is not None and update.quantity_milli != batch.quantity_milli:
        if update.quantity_milli < 0:
            raise InvalidQuantity("quantity cannot be negative")
        delta = update.quantity_milli - batch.quantity_milli
        if update.quantity_milli == 0:
            return apply_batch_delete(ctx, batch, note="quantity edited to zero")

        batch.quantity_milli = update.quantity_milli
        record_movement(
            ctx,
            branch_id=batch.branch_id,
            batch_id=batch.id,
            item_name=batch.item_name,
            unit=batch.unit,
            movement_type="ADJUST",
            quantity_delta_milli=delta,
            unit_cost_cents=batch.unit_cost_cents,
        )

    db.session.flush()
    return batch


def apply_batch_delete(ctx: TenantContext, batch: InventoryBatch, note: str | None = None) -> None:
    record_movement(
        ctx,
        branch_id=batch.branch_id,
        batch_id=batch.id,
        item_name=batch.item_name,
        unit=batch.unit,
        movement_type="REMOVE",
        quantity_delta_milli=-batch.quantity_milli,
        unit_cost_cents=batch.unit_cost_cents,
        note=note,
    )
    batches.delete(ctx, batch)
    db.session.flush()
    return None


def update_batch(ctx: TenantContext, batch_id: int, update: InventoryItemUpdate) -> InventoryBatch | None:
    require_direct_mutation(ctx, "edit inventory")

    def _op():
        batch = batches.get(ctx, batch_id, lock=True)
        result = apply_batch_update(ctx, batch, update)
        db.session.commit()
        current_app.logger.info(
            "Inventory batch %s updated by user %s (tenant %s)", batch_id, ctx.user_id, ctx.tenant_id
        )
        return result

    return run_with_retry(_op)


def delete_batch(ctx: TenantContext, batch_id: int) -> None:
    require_direct_mutation(ctx, "delete inventory")

    def _op():
        batch = batches.get(ctx, batch_id, lock=True)
        apply_batch_delete(ctx, batch, note="deleted")
        db.session.commit()
        current_app.logger.info(
            "Inventory batch %s deleted by user %s (tenant %s)", batch_id, ctx.user_id, ctx.tenant_id
        )

    run_with_retry(_op)


# ================================================================================
# STOCK LEVELS & ALERTS
# ================================================================================

def set_stock_level(
    ctx: TenantContext,
    *,
    item_name: str,
    category: str,
    unit: str,
    minimum_milli: int,
    maximum_milli: int | None = None,
    reorder_milli: int | None = None,
    branch_id: int | None = None,
) -> StockLevel:
    """Create or replace the thresholds for one product at one branch."""
    require_direct_mutation(ctx, "configure stock levels")
    if minimum_milli < 0:
        raise InvalidQuantity("minimum cannot be negative")
    if maximum_milli is not None and maximum_milli < minimum_milli:
        raise ValidationError("maximum cannot be below minimum")

    def _op():
        resolved_branch = resolve_branch_id(ctx, branch_id)
        level = stock_levels.query(
            ctx,
            branch_id=resolved_branch,
            item_name=item_name,
            category=category,
            unit=unit,
        ).first()
        if level is None:
            level = StockLevel(
                tenant_id=ctx.tenant_id,
                branch_id=resolved_branch,
                item_name=item_name,
                category=category,
                unit=unit,
            )
            stock_levels.add(ctx, level)

        level.minimum_milli = minimum_milli
        level.maximum_milli = maximum_milli
        level.reorder_milli = reorder_milli
        db.session.commit()
        return level

    return run_with_retry(_op)


def get_low_stock(ctx: TenantContext, branch_id: int | None = None) -> list[dict]:
    """
    Products whose on-hand total is at or below their configured minimum.

    Products without a StockLevel row have no threshold and never appear.
    """
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)

    levels_q = stock_levels.query(ctx)
    if resolved_branch is not None:
        levels_q = levels_q.filter(StockLevel.branch_id == resolved_branch)
    levels = levels_q.all()
    if not levels:
        return []

    on_hand_q = batches.query(ctx).with_entities(
        InventoryBatch.branch_id,
        InventoryBatch.item_name,
        InventoryBatch.category,
        InventoryBatch.unit,
        func.coalesce(func.sum(InventoryBatch.quantity_milli), 0),
    )
    if resolved_branch is not None:
        on_hand_q = on_hand_q.filter(InventoryBatch.branch_id == resolved_branch)
    on_hand = {
        (row[0], row[1], row[2], row[3]): int(row[4])
        for row in on_hand_q.group_by(
            InventoryBatch.branch_id,
            InventoryBatch.item_name,
            InventoryBatch.category,
            InventoryBatch.unit,
        ).all()
    }

    low = []
    for level in levels:
        qty = on_hand.get((level.branch_id, level.item_name, level.category, level.unit), 0)
        if qty <= level.minimum_milli:
            low.append({
                "branch_id": level.branch_id,
                "item_name": level.item_name,
                "category": level.category,
                "unit": level.unit,
                "on_hand": from_milli(qty),
                "minimum": from_milli(level.minimum_milli),
                "reorder": from_milli(level.reorder_milli),
            })
    return sorted(low, key=lambda r: (r["branch_id"], r["item_name"]))


def get_expiring_batches(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    days: int | None = None,
    as_of=None,
) -> dict:
    """
    Batches on hand that expire within `days`, and those already expired.

    days defaults to EXPIRY_WARNING_DAYS. Batches without an expiry never appear.
    """
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    if days is None:
        days = current_app.config.get("EXPIRY_WARNING_DAYS", 7)
    now = normalize_datetime(as_of) or utcnow()
    horizon = now + timedelta(days=days)

    q = batches.query(ctx).filter(
        InventoryBatch.expires_at.isnot(None),
        InventoryBatch.expires_at <= horizon,
        InventoryBatch.quantity_milli > 0,
    )
    if resolved_branch is not None:
        q = q.filter(InventoryBatch.branch_id == resolved_branch)
    rows = q.order_by(InventoryBatch.expires_at.asc(), InventoryBatch.id.asc()).all()

    return {
        "as_of": to_utc_z(now),
        "days": days,
        "expired": [b.to_dict() for b in rows if b.expires_at < now],
        "expiring": [b.to_dict() for b in rows if b.expires_at >= now],
    }
