# Overview: Cost attribution for ledger deductions; exact FIFO cost plus flagged shortfall estimates.

"""
Cost Attribution Rules

1. Exact cost is the sum of line costs over the deduction lines, each line
   priced at the unit cost of the batch it drew from. No averaging.
2. Each line is rounded half-up to the cent on its own; the total is the
   sum of the rounded lines, so total == sum(line costs) always holds.
3. A shortfall (requested > consumed) is priced at the unit cost of the
   most recently RECEIVED batch of the item at that branch -> ESTIMATED.
4. If no batch of the item was ever received there, the shortfall costs 0
   and the breakdown is flagged UNCOSTED. This is not an error.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..units import from_milli, line_cost_cents
from .inventory_service import DeductionResult, get_recent_receive_cost_cents
from .tenant_service import TenantContext


COST_BASIS_EXACT = "EXACT"
COST_BASIS_ESTIMATED = "ESTIMATED"
COST_BASIS_UNCOSTED = "UNCOSTED"

# Worst basis wins when several breakdowns are combined
_BASIS_RANK = {COST_BASIS_EXACT: 0, COST_BASIS_ESTIMATED: 1, COST_BASIS_UNCOSTED: 2}


def combine_cost_basis(bases) -> str:
    worst = COST_BASIS_EXACT
    for basis in bases:
        if _BASIS_RANK[basis] > _BASIS_RANK[worst]:
            worst = basis
    return worst


@dataclass(frozen=True)
class CostBreakdown:
    item_name: str
    unit: str
    requested_milli: int
    consumed_milli: int
    shortfall_milli: int
    exact_cost_cents: int
    estimated_cost_cents: int
    estimate_unit_cost_cents: int | None
    cost_basis: str

    @property
    def total_cost_cents(self) -> int:
        return self.exact_cost_cents + self.estimated_cost_cents

    @property
    def is_exact(self) -> bool:
        return self.cost_basis == COST_BASIS_EXACT

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "unit": self.unit,
            "requested": from_milli(self.requested_milli),
            "consumed": from_milli(self.consumed_milli),
            "shortfall": from_milli(self.shortfall_milli),
            "exact_cost_cents": self.exact_cost_cents,
            "estimated_cost_cents": self.estimated_cost_cents,
            "estimate_unit_cost_cents": self.estimate_unit_cost_cents,
            "total_cost_cents": self.total_cost_cents,
            "cost_basis": self.cost_basis,
        }


def exact_cost_cents(result: DeductionResult) -> int:
    return sum(line.cost_cents for line in result.lines)


def attribute_cost(ctx: TenantContext, result: DeductionResult) -> CostBreakdown:
    """
    Price a deduction result.

    Must run inside the same unit of work as the deduction when the result
    has a shortfall: the estimate reads the movement log, which includes the
    RECEIVE rows of batches the deduction just deleted.
    """
    exact = exact_cost_cents(result)
    shortfall = result.shortfall_milli

    estimate_unit_cost = None
    estimated = 0
    basis = COST_BASIS_EXACT

    if shortfall > 0:
        estimate_unit_cost = get_recent_receive_cost_cents(
            ctx, result.item_name, result.unit, result.branch_id
        )
        if estimate_unit_cost is None:
            basis = COST_BASIS_UNCOSTED
            current_app.logger.warning(
                "No cost history for %s (%s) at branch %s; shortfall %s priced at 0",
                result.item_name, result.unit, result.branch_id, from_milli(shortfall),
            )
        else:
            basis = COST_BASIS_ESTIMATED
            estimated = line_cost_cents(shortfall, estimate_unit_cost)
            current_app.logger.warning(
                "Shortfall of %s %s of %s at branch %s estimated at %s cents/unit",
                from_milli(shortfall), result.unit, result.item_name,
                result.branch_id, estimate_unit_cost,
            )

    return CostBreakdown(
        item_name=result.item_name,
        unit=result.unit,
        requested_milli=result.requested_milli,
        consumed_milli=result.consumed_milli,
        shortfall_milli=shortfall,
        exact_cost_cents=exact,
        estimated_cost_cents=estimated,
        estimate_unit_cost_cents=estimate_unit_cost,
        cost_basis=basis,
    )
