# Overview: Pytest coverage for the batch inventory ledger and FIFO deduction.

"""
Inventory Ledger Tests

Covers:
1. FIFO order (received_at ASC, id ASC) and the worked $16 example
2. Atomicity: a short deduction changes nothing
3. Cost conservation: lines sum to the request and to the cost
4. Zero batches are deleted, never kept
5. Movement log entries for every change
6. Direct edits, stock levels, expiring batches
"""

from datetime import timedelta

import pytest

from kitchledger.extensions import db
from kitchledger.models import InventoryBatch, InventoryMovement, StockLevel
from kitchledger.services import inventory_service
from kitchledger.services.cost_service import exact_cost_cents
from kitchledger.services.inventory_service import InsufficientInventory, plan_fifo_deduction
from kitchledger.services.permission_service import PermissionDeniedError
from kitchledger.time_utils import utcnow
from kitchledger.validation import InvalidQuantity, InventoryItemUpdate, ValidationError


def _batch_state(tenant_id):
    rows = db.session.query(InventoryBatch).filter_by(tenant_id=tenant_id).order_by(InventoryBatch.id).all()
    return [(b.id, b.quantity_milli, b.unit_cost_cents) for b in rows]


class TestFifoDeduction:
    """FIFO walk over available batches."""

    def test_worked_example_costs_sixteen_dollars(self, db_session, admin_a, branch_a, make_batch):
        """B1(day1, 5 @ $2) + B2(day2, 5 @ $3), deduct 7 -> $16, B1 gone, B2 has 3."""
        b1 = make_batch(admin_a, branch_a, "Flour", 5000, 200, received_days_ago=2)
        b2 = make_batch(admin_a, branch_a, "Flour", 5000, 300, received_days_ago=1)
        b1_id, b2_id = b1.id, b2.id

        result = inventory_service.deduct(
            admin_a, item_name="Flour", unit="kg", quantity_milli=7000, branch_id=branch_a.id
        )

        assert [(l.batch_id, l.quantity_used_milli, l.remaining_in_batch_milli) for l in result.lines] == [
            (b1_id, 5000, 0),
            (b2_id, 2000, 3000),
        ]
        assert exact_cost_cents(result) == 1600
        assert db.session.get(InventoryBatch, b1_id) is None
        assert db.session.get(InventoryBatch, b2_id).quantity_milli == 3000

    def test_oldest_received_first_regardless_of_insert_order(self, db_session, admin_a, branch_a, make_batch):
        """A batch inserted later but received earlier is consumed first."""
        newer = make_batch(admin_a, branch_a, "Sugar", 1000, 500, received_days_ago=1)
        older = make_batch(admin_a, branch_a, "Sugar", 1000, 100, received_days_ago=5)
        older_id, newer_id = older.id, newer.id

        result = inventory_service.deduct(
            admin_a, item_name="Sugar", unit="kg", quantity_milli=1500, branch_id=branch_a.id
        )

        assert [l.batch_id for l in result.lines] == [older_id, newer_id]
        assert exact_cost_cents(result) == 100 + 250

    def test_same_received_at_breaks_tie_by_id(self, db_session, admin_a, branch_a):
        """Equal timestamps deduct in batch id order, every time."""
        received = utcnow() - timedelta(days=1)
        first = inventory_service.add_batch(
            admin_a, item_name="Salt", unit="kg", quantity_milli=1000, unit_cost_cents=50,
            branch_id=branch_a.id, received_at=received,
        )
        second = inventory_service.add_batch(
            admin_a, item_name="Salt", unit="kg", quantity_milli=1000, unit_cost_cents=70,
            branch_id=branch_a.id, received_at=received,
        )
        first_id, second_id = first.id, second.id

        available = inventory_service.query_available(admin_a, "Salt", "kg", branch_a.id)
        assert [b.id for b in available] == [first_id, second_id]

        result = inventory_service.deduct(
            admin_a, item_name="Salt", unit="kg", quantity_milli=500, branch_id=branch_a.id
        )
        assert result.lines[0].batch_id == first_id

    def test_only_matching_unit_and_branch(self, db_session, admin_a, branch_a, branch_a2, make_batch):
        """Other units and other branches are never touched."""
        make_batch(admin_a, branch_a, "Milk", 2000, 100, unit="l")
        other_unit = make_batch(admin_a, branch_a, "Milk", 2000, 100, unit="ml")
        other_branch = make_batch(admin_a, branch_a2, "Milk", 2000, 100, unit="l")
        other_unit_id, other_branch_id = other_unit.id, other_branch.id

        inventory_service.deduct(admin_a, item_name="Milk", unit="l", quantity_milli=2000, branch_id=branch_a.id)

        assert db.session.get(InventoryBatch, other_unit_id).quantity_milli == 2000
        assert db.session.get(InventoryBatch, other_branch_id).quantity_milli == 2000

    def test_exact_depletion_deletes_batch(self, db_session, admin_a, branch_a, make_batch):
        """No zero-quantity rows remain after a full deduction."""
        batch = make_batch(admin_a, branch_a, "Eggs", 12000, 25, unit="each")
        batch_id = batch.id

        inventory_service.deduct(admin_a, item_name="Eggs", unit="each", quantity_milli=12000, branch_id=branch_a.id)

        assert db.session.get(InventoryBatch, batch_id) is None
        assert db.session.query(InventoryBatch).filter(InventoryBatch.quantity_milli == 0).count() == 0

    def test_plan_is_pure(self):
        """The planner works on plain objects and mutates nothing."""
        b1 = InventoryBatch(id=1, quantity_milli=3000, unit_cost_cents=100)
        b2 = InventoryBatch(id=2, quantity_milli=3000, unit_cost_cents=200)

        lines, shortfall = plan_fifo_deduction([b1, b2], 4000)

        assert [(l.batch_id, l.quantity_used_milli) for l in lines] == [(1, 3000), (2, 1000)]
        assert shortfall == 0
        assert b1.quantity_milli == 3000 and b2.quantity_milli == 3000

    def test_plan_reports_shortfall(self):
        b1 = InventoryBatch(id=1, quantity_milli=1000, unit_cost_cents=100)
        lines, shortfall = plan_fifo_deduction([b1], 2500)
        assert sum(l.quantity_used_milli for l in lines) == 1000
        assert shortfall == 1500


class TestDeductionAtomicity:
    """A failed deduction leaves every batch exactly as it was."""

    def test_insufficient_stock_changes_nothing(self, db_session, admin_a, branch_a, make_batch, tenant_a):
        make_batch(admin_a, branch_a, "Flour", 5000, 200, received_days_ago=2)
        make_batch(admin_a, branch_a, "Flour", 5000, 300, received_days_ago=1)
        before = _batch_state(tenant_a.id)

        with pytest.raises(InsufficientInventory) as exc:
            inventory_service.deduct(
                admin_a, item_name="Flour", unit="kg", quantity_milli=20000, branch_id=branch_a.id
            )

        assert exc.value.requested_milli == 20000
        assert exc.value.available_milli == 10000
        assert _batch_state(tenant_a.id) == before
        assert db.session.query(InventoryMovement).filter_by(movement_type="DEDUCT").count() == 0

    def test_no_stock_at_all(self, db_session, admin_a, branch_a):
        with pytest.raises(InsufficientInventory):
            inventory_service.deduct(admin_a, item_name="Saffron", unit="g", quantity_milli=1, branch_id=branch_a.id)

    @pytest.mark.parametrize("quantity", [0, -1000])
    def test_non_positive_quantity_rejected(self, db_session, admin_a, branch_a, make_batch, tenant_a, quantity):
        make_batch(admin_a, branch_a, "Flour", 5000, 200)
        before = _batch_state(tenant_a.id)

        with pytest.raises(InvalidQuantity):
            inventory_service.deduct(
                admin_a, item_name="Flour", unit="kg", quantity_milli=quantity, branch_id=branch_a.id
            )
        assert _batch_state(tenant_a.id) == before

    def test_non_integer_quantity_rejected(self, db_session, admin_a, branch_a):
        with pytest.raises(ValidationError):
            inventory_service.deduct(admin_a, item_name="Flour", unit="kg", quantity_milli=1.5, branch_id=branch_a.id)


class TestCostConservation:
    """Lines always add up to the request and to the cost."""

    @pytest.mark.parametrize("quantity", [1, 999, 1000, 2333, 4500, 7001, 9999])
    def test_lines_sum_to_request_and_cost(self, db_session, admin_a, branch_a, make_batch, quantity):
        make_batch(admin_a, branch_a, "Oil", 2500, 333, unit="l", received_days_ago=3)
        make_batch(admin_a, branch_a, "Oil", 2500, 417, unit="l", received_days_ago=2)
        make_batch(admin_a, branch_a, "Oil", 5000, 289, unit="l", received_days_ago=1)

        result = inventory_service.deduct(
            admin_a, item_name="Oil", unit="l", quantity_milli=quantity, branch_id=branch_a.id
        )

        assert sum(l.quantity_used_milli for l in result.lines) == quantity
        assert result.shortfall_milli == 0
        assert exact_cost_cents(result) == sum(l.cost_cents for l in result.lines)

    def test_repeated_deductions_do_not_drift(self, db_session, admin_a, branch_a, make_batch):
        """Ten deductions of 0.1 kg cost the same as one of 1 kg from one batch."""
        make_batch(admin_a, branch_a, "Cocoa", 1000, 1000)

        total = 0
        for _ in range(10):
            result = inventory_service.deduct(
                admin_a, item_name="Cocoa", unit="kg", quantity_milli=100, branch_id=branch_a.id
            )
            total += exact_cost_cents(result)

        assert total == 1000


class TestMovementLog:
    """Every batch change appends a movement in the same transaction."""

    def test_receive_and_deduct_movements(self, db_session, admin_a, branch_a, make_batch):
        b1 = make_batch(admin_a, branch_a, "Rice", 3000, 150, received_days_ago=2)
        b2 = make_batch(admin_a, branch_a, "Rice", 3000, 180, received_days_ago=1)
        b1_id, b2_id = b1.id, b2.id

        inventory_service.deduct(admin_a, item_name="Rice", unit="kg", quantity_milli=4000, branch_id=branch_a.id)

        receives = db.session.query(InventoryMovement).filter_by(movement_type="RECEIVE").count()
        deducts = (
            db.session.query(InventoryMovement)
            .filter_by(movement_type="DEDUCT")
            .order_by(InventoryMovement.id)
            .all()
        )
        assert receives == 2
        assert [(m.batch_id, m.quantity_delta_milli, m.unit_cost_cents) for m in deducts] == [
            (b1_id, -3000, 150),
            (b2_id, -1000, 180),
        ]
        assert all(m.actor_user_id == admin_a.user_id for m in deducts)

    def test_recent_receive_cost_survives_batch_deletion(self, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Basil", 100, 900, unit="bunch", received_days_ago=3)
        make_batch(admin_a, branch_a, "Basil", 100, 1100, unit="bunch", received_days_ago=1)

        inventory_service.deduct(admin_a, item_name="Basil", unit="bunch", quantity_milli=200, branch_id=branch_a.id)

        assert inventory_service.query_available(admin_a, "Basil", "bunch", branch_a.id) == []
        assert inventory_service.get_recent_receive_cost_cents(admin_a, "Basil", "bunch", branch_a.id) == 1100

    def test_recent_receive_cost_none_without_history(self, db_session, admin_a, branch_a):
        assert inventory_service.get_recent_receive_cost_cents(admin_a, "Truffle", "g", branch_a.id) is None


class TestReceiving:
    """add_batch validation."""

    def test_future_receipt_rejected(self, db_session, admin_a, branch_a):
        with pytest.raises(ValidationError):
            inventory_service.add_batch(
                admin_a, item_name="Flour", unit="kg", quantity_milli=1000, unit_cost_cents=100,
                branch_id=branch_a.id, received_at=utcnow() + timedelta(days=1),
            )

    def test_expiry_before_receipt_rejected(self, db_session, admin_a, branch_a):
        now = utcnow()
        with pytest.raises(ValidationError):
            inventory_service.add_batch(
                admin_a, item_name="Flour", unit="kg", quantity_milli=1000, unit_cost_cents=100,
                branch_id=branch_a.id, received_at=now, expires_at=now - timedelta(days=1),
            )

    def test_negative_cost_rejected(self, db_session, admin_a, branch_a):
        with pytest.raises(ValidationError):
            inventory_service.add_batch(
                admin_a, item_name="Flour", unit="kg", quantity_milli=1000, unit_cost_cents=-1,
                branch_id=branch_a.id,
            )

    def test_tenant_wide_role_must_name_branch(self, db_session, admin_a):
        with pytest.raises(ValidationError):
            inventory_service.add_batch(
                admin_a, item_name="Flour", unit="kg", quantity_milli=1000, unit_cost_cents=100,
            )

    def test_branch_admin_defaults_to_own_branch(self, db_session, branch_admin_a, branch_a):
        batch = inventory_service.add_batch(
            branch_admin_a, item_name="Flour", unit="kg", quantity_milli=1000, unit_cost_cents=100,
        )
        assert batch.branch_id == branch_a.id

    def test_branch_admin_cannot_receive_elsewhere(self, db_session, branch_admin_a, branch_a2):
        with pytest.raises(PermissionDeniedError):
            inventory_service.add_batch(
                branch_admin_a, item_name="Flour", unit="kg", quantity_milli=1000,
                unit_cost_cents=100, branch_id=branch_a2.id,
            )


class TestDirectEdits:
    """Privileged batch edits and deletes."""

    def test_quantity_edit_records_adjustment(self, db_session, admin_a, branch_a, make_batch):
        batch = make_batch(admin_a, branch_a, "Butter", 4000, 800)
        batch_id = batch.id

        updated = inventory_service.update_batch(admin_a, batch_id, InventoryItemUpdate(quantity_milli=3500))

        assert updated.quantity_milli == 3500
        adjust = db.session.query(InventoryMovement).filter_by(movement_type="ADJUST").one()
        assert adjust.quantity_delta_milli == -500

    def test_quantity_edit_to_zero_deletes(self, db_session, admin_a, branch_a, make_batch):
        batch = make_batch(admin_a, branch_a, "Butter", 4000, 800)
        batch_id = batch.id

        result = inventory_service.update_batch(admin_a, batch_id, InventoryItemUpdate(quantity_milli=0))

        assert result is None
        assert db.session.get(InventoryBatch, batch_id) is None
        assert db.session.query(InventoryMovement).filter_by(movement_type="REMOVE").count() == 1

    def test_cost_and_expiry_edit(self, db_session, admin_a, branch_a, make_batch):
        batch = make_batch(admin_a, branch_a, "Butter", 4000, 800)
        expiry = utcnow().replace(microsecond=0) + timedelta(days=20)

        updated = inventory_service.update_batch(
            admin_a, batch.id, InventoryItemUpdate(unit_cost_cents=850, expires_at=expiry)
        )

        assert updated.unit_cost_cents == 850
        assert updated.expires_at == expiry
        assert updated.quantity_milli == 4000

    def test_branch_admin_cannot_edit_directly(self, db_session, admin_a, branch_admin_a, branch_a, make_batch):
        batch = make_batch(admin_a, branch_a, "Butter", 4000, 800)
        with pytest.raises(PermissionDeniedError):
            inventory_service.update_batch(branch_admin_a, batch.id, InventoryItemUpdate(quantity_milli=1000))
        with pytest.raises(PermissionDeniedError):
            inventory_service.delete_batch(branch_admin_a, batch.id)

    def test_delete_batch(self, db_session, admin_a, branch_a, make_batch):
        batch = make_batch(admin_a, branch_a, "Butter", 4000, 800)
        batch_id = batch.id

        inventory_service.delete_batch(admin_a, batch_id)

        assert db.session.get(InventoryBatch, batch_id) is None
        remove = db.session.query(InventoryMovement).filter_by(movement_type="REMOVE").one()
        assert remove.quantity_delta_milli == -4000


class TestStockLevels:
    """Threshold upsert and the low-stock report."""

    def test_upsert_keeps_one_row(self, db_session, admin_a, branch_a):
        for minimum in (5000, 8000):
            inventory_service.set_stock_level(
                admin_a, item_name="Flour", category="Dry", unit="kg",
                minimum_milli=minimum, branch_id=branch_a.id,
            )

        levels = db.session.query(StockLevel).all()
        assert len(levels) == 1
        assert levels[0].minimum_milli == 8000

    def test_low_stock_report(self, db_session, admin_a, branch_a, make_batch):
        make_batch(admin_a, branch_a, "Flour", 3000, 100, category="Dry")
        make_batch(admin_a, branch_a, "Sugar", 9000, 100, category="Dry")
        for item in ("Flour", "Sugar", "Yeast"):
            inventory_service.set_stock_level(
                admin_a, item_name=item, category="Dry", unit="kg",
                minimum_milli=5000, branch_id=branch_a.id,
            )

        low = inventory_service.get_low_stock(admin_a, branch_a.id)

        assert [(r["item_name"], r["on_hand"]) for r in low] == [("Flour", "3.000"), ("Yeast", "0.000")]

    def test_maximum_below_minimum_rejected(self, db_session, admin_a, branch_a):
        with pytest.raises(ValidationError):
            inventory_service.set_stock_level(
                admin_a, item_name="Flour", category="Dry", unit="kg",
                minimum_milli=5000, maximum_milli=1000, branch_id=branch_a.id,
            )


class TestExpiringBatches:
    """Expiry report windows."""

    def test_expiring_and_expired(self, db_session, admin_a, branch_a, make_batch):
        soon = make_batch(admin_a, branch_a, "Cream", 1000, 300, unit="l", expires_in_days=3)
        expired = make_batch(admin_a, branch_a, "Yogurt", 1000, 200, unit="l",
                             received_days_ago=10, expires_in_days=-2)
        make_batch(admin_a, branch_a, "Cheese", 1000, 900, expires_in_days=30)
        make_batch(admin_a, branch_a, "Salt", 1000, 50)
        soon_id, expired_id = soon.id, expired.id

        report = inventory_service.get_expiring_batches(admin_a, branch_id=branch_a.id, days=7)

        assert [b["id"] for b in report["expiring"]] == [soon_id]
        assert [b["id"] for b in report["expired"]] == [expired_id]
