# backend/kitchledger/routes/approvals.py
"""
Approval workflow routes.

- POST /            branch admins file an UPDATE/DELETE request
- POST /<id>/review restaurant/platform admins approve or reject
- 409 when reviewing a request that is no longer PENDING
"""
from flask import Blueprint, request, g

from ..decorators import require_tenant_context
from ..services import approval_service
from ..validation import (
    parse_choice,
    parse_int,
    parse_optional_int,
    parse_update_payload,
    reject_unknown_fields,
    require_fields,
)
from .errors import SERVICE_ERRORS, error_response, unexpected_error


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")

SUBMIT_FIELDS = {"target_type", "target_id", "action", "payload", "reason"}
REVIEW_FIELDS = {"decision", "comment"}


@approvals_bp.post("")
@require_tenant_context
def submit_route():
    """
    Request body:
    {
        "target_type": "INVENTORY_ITEM" | "WASTE_LOG",
        "target_id": int,
        "action": "UPDATE" | "DELETE",
        "payload": {...},     // UPDATE only; validated now, applied on approval
        "reason": str
    }
    """
    body = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(body, SUBMIT_FIELDS)
        require_fields(body, {"target_type", "target_id", "action", "reason"})
        target_type = parse_choice(body["target_type"], "target_type", approval_service.TARGET_TYPES)
        action = parse_choice(body["action"], "action", approval_service.ACTIONS)
        update = (
            parse_update_payload(target_type, body.get("payload"))
            if action == "UPDATE" else None
        )
        approval = approval_service.submit(
            ctx,
            target_type=target_type,
            target_id=parse_int(body["target_id"], "target_id"),
            action=action,
            reason=str(body["reason"]),
            update=update,
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to submit approval request")

    return {"approval": approval.to_dict()}, 201


@approvals_bp.get("")
@require_tenant_context
def list_route():
    """Filters: ?status= &action= &target_type= &submitted_by= &branch_id="""
    ctx = g.tenant_context
    args = request.args
    try:
        rows = approval_service.list_requests(
            ctx,
            status=parse_choice(args["status"], "status", approval_service.STATUSES) if args.get("status") else None,
            action=parse_choice(args["action"], "action", approval_service.ACTIONS) if args.get("action") else None,
            target_type=(
                parse_choice(args["target_type"], "target_type", approval_service.TARGET_TYPES)
                if args.get("target_type") else None
            ),
            submitted_by=parse_optional_int(args.get("submitted_by"), "submitted_by"),
            branch_id=parse_optional_int(args.get("branch_id"), "branch_id"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to list approval requests")

    return {"approvals": [a.to_dict() for a in rows]}


@approvals_bp.get("/pending-count")
@require_tenant_context
def pending_count_route():
    ctx = g.tenant_context
    try:
        count = approval_service.pending_count(
            ctx, parse_optional_int(request.args.get("branch_id"), "branch_id")
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to count pending approvals")

    return {"pending": count}


@approvals_bp.get("/<int:request_id>")
@require_tenant_context
def get_route(request_id: int):
    ctx = g.tenant_context
    try:
        approval = approval_service.get_request(ctx, request_id)
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to get approval request")

    return {"approval": approval.to_dict()}


@approvals_bp.post("/<int:request_id>/review")
@require_tenant_context
def review_route(request_id: int):
    """Request body: {"decision": "APPROVE" | "REJECT", "comment": str?}"""
    body = request.get_json(silent=True) or {}
    ctx = g.tenant_context

    try:
        reject_unknown_fields(body, REVIEW_FIELDS)
        require_fields(body, {"decision"})
        approval = approval_service.review(
            ctx,
            request_id,
            decision=body["decision"],
            comment=body.get("comment"),
        )
    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        return unexpected_error("Failed to review approval request")

    return {"approval": approval.to_dict()}
