from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from familyos.core.permissions import Role


class FamilyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = "🏠"


class FamilyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    icon: Optional[str] = None


class FamilyResponse(BaseModel):
    id: str
    name: str
    owner_id: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class FamilyWithRoleResponse(FamilyResponse):
    role: Role


class FamilyPreviewResponse(BaseModel):
    id: str
    name: str
    icon: Optional[str] = None


class FamilyJoin(BaseModel):
    invite_code: str = Field(..., min_length=1)


class FamilyMemberResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role: Role
    created_at: datetime

    class Config:
        from_attributes = True


class FamilyJoinResponse(BaseModel):
    member: FamilyMemberResponse
    already_member: bool = False


class MemberRoleUpdate(BaseModel):
    role: Role


class FamilyInviteResponse(BaseModel):
    group_id: str
    invite_code: str
    invite_link: str


class PermissionSummaryResponse(BaseModel):
    group_id: str
    user_id: str
    role: Optional[Role] = None
    is_owner: bool
    is_member: bool
    is_viewer: bool
    can_create: bool
    can_change_edit_mode: bool
    can_manage_members: bool
    can_manage_family_settings: bool
    can_invite_members: bool
    can_change_roles: bool
