"""
Multi-Tenant Service: the tenant guard every data access goes through.

WHY: Tenant isolation must not depend on every service author remembering
a filter. All reads and writes of tenant-scoped models go through a
TenantRepository, which cannot be called without a TenantContext carrying
a tenant id.

SECURITY INVARIANTS:
1. Every read is filtered by ctx.tenant_id before any caller filter applies
2. Every write carries a tenant_id in the row itself, equal to ctx.tenant_id
3. A missing tenant id is a ScopeViolation raised BEFORE the session is touched
4. Ids that exist in another tenant are reported exactly like ids that
   do not exist (NotFoundError), so existence never leaks across tenants
5. Branch-bound actors are pinned to their own branch
6. A context without a recognised role is refused (PermissionDeniedError)

USAGE:
    from kitchledger.services.tenant_service import TenantContext, batches

    ctx = TenantContext(tenant_id=1, branch_id=3, user_id=7, role="BRANCH_ADMIN")
    rows = batches.query(ctx, item_name="Flour").all()
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import (
    ApprovalRequest,
    Branch,
    InventoryBatch,
    InventoryMovement,
    ProductionRun,
    Recipe,
    StockLevel,
    WasteLog,
)
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update
from .permission_service import PermissionDeniedError, is_branch_bound, require_known_role


class ScopeViolation(Exception):
    """
    A tenant-scoped operation was attempted without (or with a mismatched)
    tenant id.

    This is a programming error, not a user error: it aborts the operation
    before any side effect and is never retried.
    """
    pass


@dataclass(frozen=True)
class TenantContext:
    """
    Verified caller identity, passed explicitly into every service call.

    tenant_id is mandatory for any tenant-scoped work. branch_id is the
    caller's home branch (None for tenant-wide roles).
    """
    tenant_id: int | None
    branch_id: int | None = None
    user_id: int | None = None
    role: str | None = None


def require_tenant(ctx: TenantContext | None, operation: str) -> int:
    if ctx is None or not ctx.tenant_id:
        current_app.logger.error("Scope violation: %s attempted without tenant id", operation)
        raise ScopeViolation(f"tenant id is required for {operation}")
    return ctx.tenant_id


class TenantRepository:
    """
    Tenant-scoped access to one model.

    There is no method that reads or writes without a context.
    """

    def __init__(self, model, label: str):
        if not hasattr(model, "tenant_id"):
            raise TypeError(f"{model.__name__} is not tenant-scoped")
        self.model = model
        self.label = label

    def query(self, ctx: TenantContext, **filters):
        tenant_id = require_tenant(ctx, f"{self.model.__name__} read")
        require_known_role(ctx)
        q = db.session.query(self.model).filter(self.model.tenant_id == tenant_id)
        if filters:
            q = q.filter_by(**filters)
        return q

    def get(self, ctx: TenantContext, entity_id: int, *, lock: bool = False):
        q = self.query(ctx, id=entity_id)
        if lock:
            q = lock_for_update(q)
        entity = q.first()
        if entity is None:
            raise NotFoundError(f"{self.label} not found")
        return entity

    def add(self, ctx: TenantContext, entity):
        tenant_id = require_tenant(ctx, f"{self.model.__name__} write")
        require_known_role(ctx)
        self._check_owned(tenant_id, entity)
        db.session.add(entity)
        return entity

    def delete(self, ctx: TenantContext, entity) -> None:
        tenant_id = require_tenant(ctx, f"{self.model.__name__} delete")
        require_known_role(ctx)
        self._check_owned(tenant_id, entity)
        db.session.delete(entity)

    def _check_owned(self, tenant_id: int, entity) -> None:
        if not entity.tenant_id:
            current_app.logger.error(
                "Scope violation: %s written without tenant id", self.model.__name__
            )
            raise ScopeViolation(f"{self.model.__name__} payload is missing tenant_id")
        if entity.tenant_id != tenant_id:
            current_app.logger.error(
                "Scope violation: %s for tenant %s written under tenant %s",
                self.model.__name__, entity.tenant_id, tenant_id,
            )
            raise ScopeViolation(f"{self.model.__name__} belongs to a different tenant")


branches = TenantRepository(Branch, "Branch")
batches = TenantRepository(InventoryBatch, "Inventory item")
movements = TenantRepository(InventoryMovement, "Inventory movement")
stock_levels = TenantRepository(StockLevel, "Stock level")
recipes = TenantRepository(Recipe, "Recipe")
production_runs = TenantRepository(ProductionRun, "Production run")
waste_logs = TenantRepository(WasteLog, "Waste log")
approval_requests = TenantRepository(ApprovalRequest, "Approval request")


def require_branch_in_tenant(ctx: TenantContext, branch_id: int) -> Branch:
    """
    Validate that a branch belongs to the caller's tenant.

    A branch of another tenant is reported as "not found".
    """
    try:
        return branches.get(ctx, branch_id)
    except NotFoundError:
        current_app.logger.warning(
            "Branch %s not found for tenant %s", branch_id, ctx.tenant_id
        )
        raise NotFoundError("Branch not found")


def resolve_branch_id(
    ctx: TenantContext,
    branch_id: int | None = None,
    *,
    required: bool = True,
) -> int | None:
    """
    Decide which branch an operation runs against.

    - Branch-bound roles always get their own branch; naming another one
      is refused.
    - Tenant-wide roles must name one when required, and it must belong to
      their tenant.
    """
    require_tenant(ctx, "branch resolution")
    require_known_role(ctx)

    if is_branch_bound(ctx.role):
        if not ctx.branch_id:
            raise PermissionDeniedError("Branch admin has no branch assigned")
        if branch_id is not None and branch_id != ctx.branch_id:
            raise PermissionDeniedError("Access denied to this branch")
        branch_id = ctx.branch_id

    if branch_id is None:
        if required:
            raise ValidationError("branch_id is required")
        return None

    require_branch_in_tenant(ctx, branch_id)
    return branch_id


def require_branch_access(ctx: TenantContext, entity) -> None:
    """Branch-bound actors only see rows of their own branch."""
    if is_branch_bound(ctx.role) and entity.branch_id != ctx.branch_id:
        raise PermissionDeniedError("Access denied to this branch")
