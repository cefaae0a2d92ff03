from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z
from ..units import from_milli


class WasteLog(db.Model):
    """
    A recorded waste event.

    COST IS NEVER USER-SUPPLIED: cost_cents is computed when the log is
    created, from the ledger (RAW) or the recipe's ingredients (PRODUCT),
    and the per-item breakdown is kept in WasteCostLine rows.

    cost_basis summarizes the breakdown:
    - EXACT: every unit was drawn from a costed batch
    - ESTIMATED: some shortfall was priced at the latest receipt cost
    - UNCOSTED: some shortfall had no cost history and was priced at 0
    """
    __tablename__ = "waste_logs"
    __table_args__ = (
        db.Index("ix_waste_tenant_branch_created", "tenant_id", "branch_id", "created_at"),
        db.CheckConstraint("cost_cents >= 0", name="ck_waste_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    waste_kind = db.Column(db.String(16), nullable=False, index=True)  # RAW, PRODUCT
    item_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    recipe_id = db.Column(db.Integer, db.ForeignKey("recipes.id"), nullable=True, index=True)

    quantity_milli = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_basis = db.Column(db.String(16), nullable=False, default="EXACT")

    reason = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(16), nullable=False, default="MEDIUM")
    preventable = db.Column(db.Boolean, nullable=False, default=False)
    tags_json = db.Column(db.Text, nullable=False, default="[]")

    logged_by = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    cost_lines = db.relationship(
        "WasteCostLine",
        backref="waste_log",
        order_by="WasteCostLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def tags(self) -> list[str]:
        return json.loads(self.tags_json or "[]")

    @tags.setter
    def tags(self, value: list[str]) -> None:
        self.tags_json = json.dumps(list(value))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "waste_kind": self.waste_kind,
            "item_name": self.item_name,
            "unit": self.unit,
            "recipe_id": self.recipe_id,
            "quantity": from_milli(self.quantity_milli),
            "cost_cents": self.cost_cents,
            "cost_basis": self.cost_basis,
            "reason": self.reason,
            "severity": self.severity,
            "preventable": self.preventable,
            "tags": self.tags,
            "logged_by": self.logged_by,
            "cost_lines": [line.to_dict() for line in self.cost_lines],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WasteCostLine(db.Model):
    __tablename__ = "waste_cost_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    waste_log_id = db.Column(db.Integer, db.ForeignKey("waste_logs.id"), nullable=False, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    requested_milli = db.Column(db.Integer, nullable=False)
    consumed_milli = db.Column(db.Integer, nullable=False)
    shortfall_milli = db.Column(db.Integer, nullable=False, default=0)

    exact_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    estimated_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_basis = db.Column(db.String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "item_name": self.item_name,
            "unit": self.unit,
            "requested": from_milli(self.requested_milli),
            "consumed": from_milli(self.consumed_milli),
            "shortfall": from_milli(self.shortfall_milli),
            "exact_cost_cents": self.exact_cost_cents,
            "estimated_cost_cents": self.estimated_cost_cents,
            "cost_basis": self.cost_basis,
        }
