from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorOut(BaseModel):
    error: ErrorDetail


class PrincipalOut(BaseModel):
    id: str
    role: str
    email: Optional[str] = None


class MeOut(BaseModel):
    user: PrincipalOut


class PermissionsOut(BaseModel):
    role: str
    permissions: List[str]
    modules: Dict[str, List[str]]


class OverrideOut(BaseModel):
    module: str
    action: str
    allowed: bool


class UserSummaryOut(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
    group_id: Optional[str] = None


class UserPermissionsOut(BaseModel):
    user: UserSummaryOut
    overrides: List[OverrideOut]
    effective_permissions: List[str]


class PutOverridesIn(BaseModel):
    # Validated by parse_permission_entries so bad rules map to INVALID_RULES
    overrides: Any = Field(default=None, description="[{'module': 'leads', 'action': 'VIEW', 'allowed': true}]")
    group_id: Optional[str] = None


class LeadOut(BaseModel):
    id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    status: Optional[str] = None
    source: Optional[str] = None
    owner_id: Optional[str] = None
    branch_id: Optional[str] = None
    created_at: Optional[str] = None


class LeadsPageOut(BaseModel):
    items: List[LeadOut]
    page: int
    page_size: int
    total: int
    scope: Dict[str, str]


class CountOut(BaseModel):
    count: int
