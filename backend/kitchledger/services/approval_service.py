# Overview: Approval workflow; gates branch-level edits and deletes behind higher-privilege review.

"""
Approval Workflow

================================================================================
PURPOSE: Hold edits/deletes from branch admins until a reviewer decides
================================================================================

STATE MACHINE:
    PENDING -> APPROVED
    PENDING -> REJECTED

    PENDING:  Submitted, target untouched
    APPROVED: Terminal. The payload was applied in the SAME transaction that
              set this status
    REJECTED: Terminal. Target untouched

RULES (NON-NEGOTIABLE):
1. Only branch admins submit; only restaurant/platform admins review
2. Terminal requests are immutable; reviewing one raises InvalidStateTransition
3. The payload is validated at submission and applied verbatim on approval;
   at review time the target is only checked for existence
4. If applying the payload fails (e.g. the target was deleted meanwhile),
   the whole review rolls back and the request stays PENDING
5. A rejected change needs a brand-new request

================================================================================
"""

from __future__ import annotations

import json

from flask import current_app

from ..extensions import db
from ..models import ApprovalRequest
from ..time_utils import utcnow
from ..validation import UPDATE_PAYLOAD_TYPES, ValidationError
from .concurrency import run_with_retry
from .inventory_service import apply_batch_delete, apply_batch_update
from .permission_service import require_reviewer, require_submitter
from .tenant_service import (
    TenantContext,
    approval_requests,
    batches,
    require_branch_access,
    resolve_branch_id,
    waste_logs,
)
from .waste_service import apply_waste_delete, apply_waste_update


TARGET_TYPES = ("INVENTORY_ITEM", "WASTE_LOG")
ACTIONS = ("UPDATE", "DELETE")
STATUSES = ("PENDING", "APPROVED", "REJECTED")

# Reviewer decisions accepted on the wire, mapped to the resulting status
DECISIONS = {
    "APPROVE": "APPROVED",
    "APPROVED": "APPROVED",
    "REJECT": "REJECTED",
    "REJECTED": "REJECTED",
}


class InvalidStateTransition(Exception):
    """
    Raised when a resolved approval request is reviewed again.

    This is a domain error: the request has already been decided and
    nothing about it can change.
    """
    pass


_TARGET_REPOSITORIES = {
    "INVENTORY_ITEM": batches,
    "WASTE_LOG": waste_logs,
}

_APPLY_UPDATE = {
    "INVENTORY_ITEM": apply_batch_update,
    "WASTE_LOG": apply_waste_update,
}

_APPLY_DELETE = {
    "INVENTORY_ITEM": apply_batch_delete,
    "WASTE_LOG": apply_waste_delete,
}


def submit(
    ctx: TenantContext,
    *,
    target_type: str,
    target_id: int,
    action: str,
    reason: str,
    update=None,
) -> ApprovalRequest:
    """
    File a PENDING request against an inventory batch or waste log.

    For UPDATE, `update` is the already-validated variant for target_type
    (InventoryItemUpdate or WasteLogUpdate). For DELETE it must be None.
    The target itself is not modified.
    """
    require_submitter(ctx)
    if target_type not in TARGET_TYPES:
        raise ValidationError(f"target_type must be one of: {', '.join(TARGET_TYPES)}")
    if action not in ACTIONS:
        raise ValidationError(f"action must be one of: {', '.join(ACTIONS)}")
    if not reason or not reason.strip():
        raise ValidationError("reason is required")

    if action == "UPDATE":
        variant = UPDATE_PAYLOAD_TYPES[target_type]
        if not isinstance(update, variant):
            raise ValidationError(f"UPDATE of {target_type} needs a {variant.__name__} payload")
        payload = update.to_dict()
    else:
        if update is not None:
            raise ValidationError("DELETE requests carry no payload")
        payload = {}

    def _op():
        target = _TARGET_REPOSITORIES[target_type].get(ctx, target_id)
        require_branch_access(ctx, target)

        request = ApprovalRequest(
            tenant_id=ctx.tenant_id,
            branch_id=target.branch_id,
            submitted_by=ctx.user_id,
            target_type=target_type,
            target_id=target.id,
            action=action,
            reason=reason.strip(),
            payload_json=json.dumps(payload),
            snapshot_json=json.dumps(target.to_dict()),
            status="PENDING",
        )
        approval_requests.add(ctx, request)
        db.session.commit()
        return request

    return run_with_retry(_op)


def _apply_request(ctx: TenantContext, request: ApprovalRequest) -> None:
    """Apply an approved request's payload to its target. Never commits."""
    target = _TARGET_REPOSITORIES[request.target_type].get(ctx, request.target_id, lock=True)

    if request.action == "DELETE":
        _APPLY_DELETE[request.target_type](ctx, target)
        return

    update = UPDATE_PAYLOAD_TYPES[request.target_type].from_dict(request.payload)
    _APPLY_UPDATE[request.target_type](ctx, target, update)


def review(
    ctx: TenantContext,
    request_id: int,
    *,
    decision: str,
    comment: str | None = None,
) -> ApprovalRequest:
    """
    Approve or reject a PENDING request.

    Status, reviewer and (for approvals) the change to the target are
    committed together or not at all.
    """
    require_reviewer(ctx)
    status = DECISIONS.get(str(decision or "").strip().upper())
    if status is None:
        raise ValidationError("decision must be APPROVE or REJECT")

    def _op():
        request = approval_requests.get(ctx, request_id, lock=True)
        if request.status != "PENDING":
            raise InvalidStateTransition(
                f"Approval request {request.id} is already {request.status}"
            )

        if status == "APPROVED":
            _apply_request(ctx, request)

        request.status = status
        request.reviewed_by = ctx.user_id
        request.reviewed_at = utcnow()
        request.review_comment = comment

        db.session.commit()
        current_app.logger.info(
            "Approval request %s %s by user %s (%s %s %s)",
            request.id, status, ctx.user_id,
            request.action, request.target_type, request.target_id,
        )
        return request

    return run_with_retry(_op)


def list_requests(
    ctx: TenantContext,
    *,
    status: str | None = None,
    action: str | None = None,
    target_type: str | None = None,
    submitted_by: int | None = None,
    branch_id: int | None = None,
    limit: int = 200,
) -> list[ApprovalRequest]:
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = approval_requests.query(ctx)
    if resolved_branch is not None:
        q = q.filter(ApprovalRequest.branch_id == resolved_branch)
    if status:
        q = q.filter(ApprovalRequest.status == status)
    if action:
        q = q.filter(ApprovalRequest.action == action)
    if target_type:
        q = q.filter(ApprovalRequest.target_type == target_type)
    if submitted_by is not None:
        q = q.filter(ApprovalRequest.submitted_by == submitted_by)
    return q.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc()).limit(limit).all()


def get_request(ctx: TenantContext, request_id: int) -> ApprovalRequest:
    request = approval_requests.get(ctx, request_id)
    require_branch_access(ctx, request)
    return request


def pending_count(ctx: TenantContext, branch_id: int | None = None) -> int:
    resolved_branch = resolve_branch_id(ctx, branch_id, required=False)
    q = approval_requests.query(ctx, status="PENDING")
    if resolved_branch is not None:
        q = q.filter(ApprovalRequest.branch_id == resolved_branch)
    return q.count()
