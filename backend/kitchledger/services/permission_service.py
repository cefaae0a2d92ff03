# Overview: Role ranking and the privilege checks that gate mutations and reviews.

"""
Roles (lowest to highest):

    BRANCH_ADMIN      pinned to one branch; may create batches and waste logs,
                      but edits/deletes go through an approval request
    RESTAURANT_ADMIN  tenant-wide; mutates directly and reviews approvals
    PLATFORM_ADMIN    operator account; same rights as RESTAURANT_ADMIN

The caller's role arrives already verified in the TenantContext; nothing
here looks anything up.
"""

from __future__ import annotations

ROLE_BRANCH_ADMIN = "BRANCH_ADMIN"
ROLE_RESTAURANT_ADMIN = "RESTAURANT_ADMIN"
ROLE_PLATFORM_ADMIN = "PLATFORM_ADMIN"

ROLE_RANK = {
    ROLE_BRANCH_ADMIN: 1,
    ROLE_RESTAURANT_ADMIN: 2,
    ROLE_PLATFORM_ADMIN: 3,
}

VALID_ROLES = set(ROLE_RANK)


class PermissionDeniedError(Exception):
    """Raised when the caller's role does not allow the operation."""
    pass


def role_rank(role: str | None) -> int:
    return ROLE_RANK.get(role or "", 0)


def is_branch_bound(role: str | None) -> bool:
    return role == ROLE_BRANCH_ADMIN


def can_mutate_directly(role: str | None) -> bool:
    """Edits and deletes of existing rows skip the approval queue."""
    return role_rank(role) >= ROLE_RANK[ROLE_RESTAURANT_ADMIN]


def require_known_role(ctx) -> None:
    if ctx.role not in VALID_ROLES:
        raise PermissionDeniedError(f"Unknown role '{ctx.role}'")


def require_direct_mutation(ctx, what: str) -> None:
    require_known_role(ctx)
    if not can_mutate_directly(ctx.role):
        raise PermissionDeniedError(
            f"{ctx.role} must submit an approval request to {what}"
        )


def require_submitter(ctx) -> None:
    """Only the lowest mutating role files approval requests."""
    if ctx.role != ROLE_BRANCH_ADMIN:
        raise PermissionDeniedError(
            "Only branch admins submit approval requests; apply the change directly"
        )


def require_reviewer(ctx) -> None:
    require_known_role(ctx)
    if role_rank(ctx.role) < ROLE_RANK[ROLE_RESTAURANT_ADMIN]:
        raise PermissionDeniedError(f"{ctx.role} cannot review approval requests")
