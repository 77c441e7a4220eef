# drivecrm/routes/leads.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from drivecrm.deps import get_permission_store, require_mapped_permission
from drivecrm.models import CountOut, LeadsPageOut
from drivecrm.security.errors import forbidden
from drivecrm.security.route_auth import Granted
from drivecrm.security.scope import (
    apply_scope_to_where, enforce_branch_scope, get_allowed_branch_ids, get_scope, where_branch_scope,
    where_owner_scope,
)
from drivecrm.store import PermissionStore

router = APIRouter(prefix="/api/leads", tags=["leads"])


def _lead_out(row: dict) -> dict:
    out = dict(row)
    for key in ("id", "owner_id", "branch_id"):
        if out.get(key) is not None:
            out[key] = str(out[key])
    created_at = out.get("created_at")
    if created_at is not None and hasattr(created_at, "isoformat"):
        out["created_at"] = created_at.isoformat()
    return out


@router.get("", response_model=LeadsPageOut)
def list_leads(
    status: Optional[str] = None,
    source: Optional[str] = None,
    branch_id: Optional[str] = None,
    mine: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    granted: Granted = Depends(require_mapped_permission),
    store: PermissionStore = Depends(get_permission_store),
):
    principal, subject = granted.auth, granted.subject
    where: dict = {}
    if status:
        where["status"] = status
    if source:
        where["source"] = source
    if branch_id:
        allowed = get_allowed_branch_ids(principal, store, subject=subject)
        if enforce_branch_scope(branch_id, allowed) is None:
            raise forbidden("Branch is outside your scope")
        where["branch_id"] = branch_id
    if mine:
        where = where_owner_scope(principal, where)

    scope = get_scope(principal, store, subject=subject)
    scoped = apply_scope_to_where(where, scope, "lead")

    total = store.count_leads(scoped)
    rows = store.fetch_leads(scoped, page_size, (page - 1) * page_size)
    return {
        "items": [_lead_out(r) for r in rows],
        "page": page,
        "page_size": page_size,
        "total": total,
        "scope": scope.to_dict(),
    }


@router.get("/unassigned-count", response_model=CountOut)
def unassigned_count(
    granted: Granted = Depends(require_mapped_permission),
    store: PermissionStore = Depends(get_permission_store),
):
    allowed = get_allowed_branch_ids(granted.auth, store, subject=granted.subject)
    where = where_branch_scope(granted.auth, {"owner_id": None}, allowed)
    return {"count": store.count_leads(where)}
