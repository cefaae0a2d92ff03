from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class ApprovalRequest(db.Model):
    """
    A branch-level edit/delete held for higher-privilege review.

    LIFECYCLE: PENDING -> APPROVED | REJECTED. Both outcomes are terminal
    and the row is immutable afterwards.

    payload_json is the validated change set captured at submission and
    applied verbatim on approval. snapshot_json is the target as the
    submitter saw it; it is informational and never re-checked.
    """
    __tablename__ = "approval_requests"
    __table_args__ = (
        db.Index("ix_approvals_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    submitted_by = db.Column(db.Integer, nullable=True, index=True)
    target_type = db.Column(db.String(32), nullable=False)  # INVENTORY_ITEM, WASTE_LOG
    target_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(16), nullable=False)  # UPDATE, DELETE

    reason = db.Column(db.Text, nullable=True)
    payload_json = db.Column(db.Text, nullable=False, default="{}")
    snapshot_json = db.Column(db.Text, nullable=False, default="{}")

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reviewed_by = db.Column(db.Integer, nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    review_comment = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payload(self) -> dict:
        return json.loads(self.payload_json or "{}")

    @property
    def snapshot(self) -> dict:
        return json.loads(self.snapshot_json or "{}")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "submitted_by": self.submitted_by,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "action": self.action,
            "reason": self.reason,
            "payload": self.payload,
            "snapshot": self.snapshot,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_utc_z(self.reviewed_at),
            "review_comment": self.review_comment,
            "created_at": to_utc_z(self.created_at),
        }
