# Overview: Pytest coverage for production runs.

import pytest

from kitchledger.extensions import db
from kitchledger.models import InventoryBatch, InventoryMovement, ProductionRun
from kitchledger.services import production_service, recipe_service
from kitchledger.services.inventory_service import InsufficientInventory
from kitchledger.services.permission_service import PermissionDeniedError
from kitchledger.services.recipe_service import IngredientInput
from kitchledger.validation import InvalidQuantity, NotFoundError, ValidationError


@pytest.fixture
def dough(db_session, admin_a):
    """4 portions of dough: 1 kg flour, 0.6 l water."""
    return recipe_service.create_recipe(
        admin_a, product_name="Pizza Dough", portion_size_milli=4000,
        ingredients=[IngredientInput("Flour", "kg", 1000), IngredientInput("Water", "l", 600)],
    )


class TestRecordProduction:

    def test_deducts_every_ingredient_at_exact_cost(self, db_session, admin_a, branch_a, make_batch, dough):
        make_batch(admin_a, branch_a, "Flour", 1000, 100, received_days_ago=2)
        make_batch(admin_a, branch_a, "Flour", 5000, 150, received_days_ago=1)
        make_batch(admin_a, branch_a, "Water", 10000, 10, unit="l")

        # 8 portions -> 2 kg flour (1 @ 100 + 1 @ 150), 1.2 l water @ 10
        result = production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=8000, branch_id=branch_a.id,
        )

        run = result["production_run"]
        assert run["total_cost_cents"] == 100 + 150 + 12
        assert run["unit_cost_cents"] == 33
        assert run["quantity_produced"] == "8.000"
        assert [d["item_name"] for d in result["deductions"]] == ["Flour", "Water"]

        movements = db.session.query(InventoryMovement).filter_by(movement_type="PRODUCTION").all()
        assert len(movements) == 3
        assert {m.reference_type for m in movements} == {"production_run"}
        assert {m.reference_id for m in movements} == {run["id"]}
        assert sum(m.quantity_delta_milli for m in movements if m.item_name == "Flour") == -2000

    def test_short_ingredient_aborts_whole_run(self, db_session, admin_a, branch_a, make_batch, dough):
        make_batch(admin_a, branch_a, "Flour", 10000, 100)
        make_batch(admin_a, branch_a, "Water", 500, 10, unit="l")

        with pytest.raises(InsufficientInventory) as exc:
            production_service.record_production(
                admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a.id,
            )

        assert exc.value.item_name == "Water"
        assert exc.value.available_milli == 500
        assert db.session.query(ProductionRun).count() == 0
        assert db.session.query(InventoryMovement).filter_by(movement_type="PRODUCTION").count() == 0
        quantities = {b.item_name: b.quantity_milli for b in db.session.query(InventoryBatch).all()}
        assert quantities == {"Flour": 10000, "Water": 500}

    def test_branch_admin_produces_at_own_branch(self, db_session, branch_admin_a, branch_a, make_batch, dough):
        make_batch(branch_admin_a, branch_a, "Flour", 1000, 100)
        make_batch(branch_admin_a, branch_a, "Water", 1000, 10, unit="l")

        result = production_service.record_production(
            branch_admin_a, recipe_id=dough.id, quantity_produced_milli=1000,
        )
        assert result["production_run"]["branch_id"] == branch_a.id
        assert result["production_run"]["produced_by"] == branch_admin_a.user_id

    def test_non_positive_quantity_rejected(self, db_session, admin_a, branch_a, dough):
        with pytest.raises(InvalidQuantity):
            production_service.record_production(
                admin_a, recipe_id=dough.id, quantity_produced_milli=0, branch_id=branch_a.id,
            )

    def test_unknown_recipe_not_found(self, db_session, admin_a, branch_a):
        with pytest.raises(NotFoundError):
            production_service.record_production(
                admin_a, recipe_id=999999, quantity_produced_milli=1000, branch_id=branch_a.id,
            )

    def test_scaling_rounds_half_up(self):
        # 0.001 kg per 3 portions, 2 portions produced -> 0.000667 -> 1 milli
        assert production_service.scale_ingredient_milli(1, 2000, 3000) == 1
        assert production_service.scale_ingredient_milli(600, 8000, 4000) == 1200


class TestProductionHistory:

    @pytest.fixture
    def stocked(self, db_session, admin_a, branch_a, branch_a2, make_batch):
        for branch in (branch_a, branch_a2):
            make_batch(admin_a, branch, "Flour", 10000, 100)
            make_batch(admin_a, branch, "Water", 10000, 10, unit="l")

    def test_list_newest_first_and_branch_scoped(
        self, db_session, admin_a, branch_admin_a, branch_a, branch_a2, stocked, dough
    ):
        first = production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a.id,
        )["production_run"]
        second = production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a.id,
        )["production_run"]
        other = production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a2.id,
        )["production_run"]

        own = production_service.list_production_runs(branch_admin_a)
        assert [r.id for r in own] == [second["id"], first["id"]]
        assert len(production_service.list_production_runs(admin_a, recipe_id=dough.id)) == 3

        with pytest.raises(PermissionDeniedError):
            production_service.get_production_run(branch_admin_a, other["id"])
        assert production_service.get_production_run(admin_a, other["id"]).branch_id == branch_a2.id

    def test_foreign_run_not_found(self, db_session, admin_a, admin_b, branch_a, stocked, dough):
        run = production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a.id,
        )["production_run"]

        with pytest.raises(NotFoundError):
            production_service.get_production_run(admin_b, run["id"])
        assert production_service.list_production_runs(admin_b) == []


class TestCheckAvailability:

    def test_reports_shortage_without_deducting(self, db_session, admin_a, branch_a, make_batch, dough):
        make_batch(admin_a, branch_a, "Flour", 3000, 100)
        make_batch(admin_a, branch_a, "Water", 1000, 10, unit="l")

        # 2x dough -> 8 portions: 2 kg flour, 1.2 l water
        result = production_service.check_availability(
            admin_a, dough.id, multiplier_milli=2000, branch_id=branch_a.id,
        )

        assert result["expected_yield"] == "8.000"
        assert result["can_produce"] is False
        assert result["missing_ingredients"] == ["Water"]
        water = result["ingredients"][1]
        assert (water["required"], water["available"], water["shortage"]) == ("1.200", "1.000", "0.200")
        assert result["ingredients"][0]["sufficient"] is True
        assert sorted(b.quantity_milli for b in db.session.query(InventoryBatch).all()) == [1000, 3000]
        assert db.session.query(InventoryMovement).filter_by(movement_type="PRODUCTION").count() == 0

    def test_agrees_with_record_production(self, db_session, admin_a, branch_a, make_batch, dough):
        make_batch(admin_a, branch_a, "Flour", 1000, 100)
        make_batch(admin_a, branch_a, "Water", 600, 10, unit="l")

        result = production_service.check_availability(admin_a, dough.id, branch_id=branch_a.id)
        assert result["can_produce"] is True

        production_service.record_production(
            admin_a, recipe_id=dough.id, quantity_produced_milli=4000, branch_id=branch_a.id,
        )
        after = production_service.check_availability(admin_a, dough.id, branch_id=branch_a.id)
        assert after["can_produce"] is False
        assert after["missing_ingredients"] == ["Flour", "Water"]

    def test_counts_only_the_named_branch(self, db_session, admin_a, branch_admin_a, branch_a, branch_a2,
                                          make_batch, dough):
        make_batch(admin_a, branch_a2, "Flour", 10000, 100)
        make_batch(admin_a, branch_a2, "Water", 10000, 10, unit="l")

        assert production_service.check_availability(branch_admin_a, dough.id)["can_produce"] is False
        assert production_service.check_availability(
            admin_a, dough.id, branch_id=branch_a2.id,
        )["can_produce"] is True

    def test_inactive_recipe_cannot_produce(self, db_session, admin_a, branch_a, make_batch, dough):
        make_batch(admin_a, branch_a, "Flour", 10000, 100)
        make_batch(admin_a, branch_a, "Water", 10000, 10, unit="l")
        recipe_service.update_recipe(admin_a, dough.id, is_active=False)

        assert production_service.check_availability(admin_a, dough.id, branch_id=branch_a.id)["can_produce"] is False
        with pytest.raises(ValidationError):
            production_service.record_production(
                admin_a, recipe_id=dough.id, quantity_produced_milli=1000, branch_id=branch_a.id,
            )

    def test_non_positive_multiplier_rejected(self, db_session, admin_a, branch_a, dough):
        with pytest.raises(InvalidQuantity):
            production_service.check_availability(admin_a, dough.id, multiplier_milli=0, branch_id=branch_a.id)
