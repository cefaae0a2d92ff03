# Overview: Pytest coverage for cost attribution of ledger deductions.

"""
Cost Attribution Tests

- Exact FIFO cost per consumed batch
- Shortfall priced at the most recent receipt cost (ESTIMATED)
- Shortfall with no cost history priced at 0 (UNCOSTED), not an error
- Worst basis wins when breakdowns are combined
"""

import pytest

from kitchledger.extensions import db
from kitchledger.services.cost_service import (
    COST_BASIS_ESTIMATED,
    COST_BASIS_EXACT,
    COST_BASIS_UNCOSTED,
    attribute_cost,
    combine_cost_basis,
)
from kitchledger.services.inventory_service import deduct_in_transaction


def _deduct_and_price(ctx, branch, item_name, unit, quantity_milli):
    result = deduct_in_transaction(
        ctx, item_name=item_name, unit=unit, branch_id=branch.id,
        quantity_milli=quantity_milli, allow_shortfall=True, movement_type="WASTE",
    )
    breakdown = attribute_cost(ctx, result)
    db.session.commit()
    return result, breakdown


class TestExactCost:
    """Fully satisfied deductions are priced from their own lines."""

    def test_exact_when_stock_covers_request(self, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Flour", 5000, 200, received_days_ago=2)
        make_batch(admin_a, branch_a, "Flour", 5000, 300, received_days_ago=1)

        result, breakdown = _deduct_and_price(admin_a, branch_a, "Flour", "kg", 7000)

        assert breakdown.cost_basis == COST_BASIS_EXACT
        assert breakdown.is_exact
        assert breakdown.exact_cost_cents == 1600
        assert breakdown.estimated_cost_cents == 0
        assert breakdown.total_cost_cents == 1600
        assert breakdown.shortfall_milli == 0

    def test_fractional_lines_round_half_up(self, db_session, admin_a, branch_a, make_batch):
        """0.125 kg at 1.00/kg is 12.5 cents -> 13."""
        make_batch(admin_a, branch_a, "Pepper", 1000, 100)

        _, breakdown = _deduct_and_price(admin_a, branch_a, "Pepper", "kg", 125)

        assert breakdown.exact_cost_cents == 13


class TestShortfallFallback:
    """Depleted stock never blocks valuation."""

    def test_shortfall_uses_most_recent_receipt_cost(self, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Tomato", 2000, 150, received_days_ago=3)
        make_batch(admin_a, branch_a, "Tomato", 1000, 250, received_days_ago=1)

        result, breakdown = _deduct_and_price(admin_a, branch_a, "Tomato", "kg", 5000)

        assert result.consumed_milli == 3000
        assert breakdown.cost_basis == COST_BASIS_ESTIMATED
        assert breakdown.exact_cost_cents == 300 + 250
        assert breakdown.estimate_unit_cost_cents == 250
        assert breakdown.estimated_cost_cents == 500
        assert breakdown.total_cost_cents == 1050

    def test_fully_depleted_item_still_estimated(self, db_session, admin_a, branch_a, make_batch):
        """All batches consumed earlier; the receipt history still prices it."""
        make_batch(admin_a, branch_a, "Lemon", 1000, 40, unit="each")
        _deduct_and_price(admin_a, branch_a, "Lemon", "each", 1000)

        result, breakdown = _deduct_and_price(admin_a, branch_a, "Lemon", "each", 2000)

        assert result.lines == []
        assert breakdown.cost_basis == COST_BASIS_ESTIMATED
        assert breakdown.total_cost_cents == 80

    def test_never_stocked_item_is_uncosted(self, db_session, admin_a, branch_a):
        result, breakdown = _deduct_and_price(admin_a, branch_a, "Dragonfruit", "each", 3000)

        assert result.lines == []
        assert breakdown.cost_basis == COST_BASIS_UNCOSTED
        assert breakdown.total_cost_cents == 0
        assert breakdown.estimate_unit_cost_cents is None

    def test_history_is_per_branch(self, db_session, admin_a, branch_a, branch_a2, make_batch):
        """Receipts at another branch do not price this branch's shortfall."""
        make_batch(admin_a, branch_a2, "Lime", 1000, 60, unit="each")

        _, breakdown = _deduct_and_price(admin_a, branch_a, "Lime", "each", 1000)

        assert breakdown.cost_basis == COST_BASIS_UNCOSTED

    def test_shortfall_never_goes_negative(self, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Garlic", 500, 800)

        _deduct_and_price(admin_a, branch_a, "Garlic", "kg", 2000)

        from kitchledger.models import InventoryBatch
        assert db.session.query(InventoryBatch).filter(InventoryBatch.quantity_milli < 0).count() == 0
        assert db.session.query(InventoryBatch).count() == 0


class TestCombineBasis:

    @pytest.mark.parametrize("bases,expected", [
        ([], COST_BASIS_EXACT),
        ([COST_BASIS_EXACT, COST_BASIS_EXACT], COST_BASIS_EXACT),
        ([COST_BASIS_EXACT, COST_BASIS_ESTIMATED], COST_BASIS_ESTIMATED),
        ([COST_BASIS_UNCOSTED, COST_BASIS_ESTIMATED], COST_BASIS_UNCOSTED),
    ])
    def test_worst_basis_wins(self, bases, expected):
        assert combine_cost_basis(bases) == expected
