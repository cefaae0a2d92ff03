from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..units import from_milli


class InventoryBatch(db.Model):
    """
    One lot of stock received at one time, with its own cost and expiry.

    QUANTITY SEMANTICS:
    - quantity_milli is thousandths of `unit` (2.5 kg == 2500).
    - unit_cost_cents is the cost of ONE whole unit.
    - A batch whose quantity reaches zero is deleted, never kept as a zero row.
    - Quantity only goes down (FIFO deduction) or is edited by a privileged
      actor; replenishment always creates a new batch.

    FIFO ORDER: received_at ASC, id ASC. The composite index below backs the
    available-batches query.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.Index(
            "ix_batches_fifo",
            "tenant_id", "branch_id", "item_name", "unit", "received_at", "id",
        ),
        db.CheckConstraint("quantity_milli >= 0", name="ck_batches_quantity_nonneg"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_batches_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="General")
    unit = db.Column(db.String(32), nullable=False)

    quantity_milli = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    supplier = db.Column(db.String(255), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch id={self.id} item={self.item_name!r} "
            f"qty_milli={self.quantity_milli} branch_id={self.branch_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "item_name": self.item_name,
            "category": self.category,
            "unit": self.unit,
            "quantity": from_milli(self.quantity_milli),
            "quantity_milli": self.quantity_milli,
            "unit_cost_cents": self.unit_cost_cents,
            "supplier": self.supplier,
            "received_at": to_utc_z(self.received_at),
            "expires_at": to_utc_z(self.expires_at),
            "version_id": self.version_id,
        }


class InventoryMovement(db.Model):
    """
    Append-only log of every change to batch stock.

    - Written in the same DB transaction as the batch change it records.
    - batch_id is a plain integer (no FK): batches are deleted when empty,
      their movements are not.
    - RECEIVE rows double as the cost history used to price a shortfall
      when no stock is left to consume.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_movements_item", "tenant_id", "branch_id", "item_name", "unit", "movement_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    batch_id = db.Column(db.Integer, nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)

    # RECEIVE, DEDUCT, WASTE, PRODUCTION, ADJUST, REMOVE
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta_milli = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "batch_id": self.batch_id,
            "item_name": self.item_name,
            "unit": self.unit,
            "movement_type": self.movement_type,
            "quantity_delta": from_milli(self.quantity_delta_milli),
            "unit_cost_cents": self.unit_cost_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class StockLevel(db.Model):
    """
    Per-branch stock thresholds for one product (item + category + unit).
    """
    __tablename__ = "stock_levels"
    __table_args__ = (
        db.UniqueConstraint(
            "item_name", "category", "unit", "tenant_id", "branch_id",
            name="uq_stock_levels_product_branch",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    item_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    unit = db.Column(db.String(32), nullable=False)

    minimum_milli = db.Column(db.Integer, nullable=False, default=0)
    maximum_milli = db.Column(db.Integer, nullable=True)
    reorder_milli = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "item_name": self.item_name,
            "category": self.category,
            "unit": self.unit,
            "minimum": from_milli(self.minimum_milli),
            "maximum": from_milli(self.maximum_milli),
            "reorder": from_milli(self.reorder_milli),
            "updated_at": to_utc_z(self.updated_at),
        }
