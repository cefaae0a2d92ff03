from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..units import from_milli


class Recipe(db.Model):
    """
    A finished product and the ingredients one portion_size of it consumes.

    portion_size_milli is the yield the ingredient list produces, in
    thousandths of portion_unit (4 portions == 4000). Always > 0.
    """
    __tablename__ = "recipes"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_name", name="uq_recipes_tenant_product"),
        db.CheckConstraint("portion_size_milli > 0", name="ck_recipes_portion_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)
    portion_size_milli = db.Column(db.Integer, nullable=False)
    portion_unit = db.Column(db.String(32), nullable=False, default="portion")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    ingredients = db.relationship(
        "RecipeIngredient",
        backref="recipe",
        order_by="RecipeIngredient.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_ingredients: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_name": self.product_name,
            "category": self.category,
            "portion_size": from_milli(self.portion_size_milli),
            "portion_unit": self.portion_unit,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_ingredients:
            data["ingredients"] = [i.to_dict() for i in self.ingredients]
        return data


class RecipeIngredient(db.Model):
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        db.CheckConstraint("quantity_milli > 0", name="ck_recipe_ingredients_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey("recipes.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    item_name = db.Column(db.String(255), nullable=False)
    # Must match InventoryBatch.unit for cost lookups to find stock
    unit = db.Column(db.String(32), nullable=False)
    quantity_milli = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "unit": self.unit,
            "quantity": from_milli(self.quantity_milli),
            "position": self.position,
        }


class ProductionRun(db.Model):
    """Record of a recipe being produced; costs are exact FIFO costs at run time."""
    __tablename__ = "production_runs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey("recipes.id"), nullable=False, index=True)

    quantity_produced_milli = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)

    produced_by = db.Column(db.Integer, nullable=True)
    produced_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    recipe = db.relationship("Recipe")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "recipe_id": self.recipe_id,
            "quantity_produced": from_milli(self.quantity_produced_milli),
            "total_cost_cents": self.total_cost_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "note": self.note,
            "produced_by": self.produced_by,
            "produced_at": to_utc_z(self.produced_at),
        }
