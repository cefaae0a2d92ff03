# Overview: Request decorators that establish the tenant context for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services.tenant_service import TenantContext


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw in (None, ""):
        return None
    return int(raw)


def require_tenant_context(f):
    """
    Build the caller's TenantContext from the gateway identity headers.

    Authentication happens upstream; the gateway forwards the verified
    identity as:
    - X-Tenant-Id:  tenant id - REQUIRED
    - X-Branch-Id:  home branch (branch admins)
    - X-User-Id:    user id
    - X-User-Role:  BRANCH_ADMIN, RESTAURANT_ADMIN or PLATFORM_ADMIN

    Sets g.tenant_context. Returns 401 when the tenant id is missing or
    any id header is not an integer, before any service is called.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            tenant_id = _header_int("X-Tenant-Id")
            branch_id = _header_int("X-Branch-Id")
            user_id = _header_int("X-User-Id")
        except ValueError:
            return jsonify({"error": "Invalid identity headers"}), 401

        if not tenant_id:
            current_app.logger.warning(
                "Request to %s %s without tenant context", request.method, request.path
            )
            return jsonify({"error": "Missing tenant context"}), 401

        g.tenant_context = TenantContext(
            tenant_id=tenant_id,
            branch_id=branch_id,
            user_id=user_id,
            role=(request.headers.get("X-User-Role") or "").strip().upper() or None,
        )
        return f(*args, **kwargs)

    return decorated_function
