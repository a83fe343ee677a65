import logging
import secrets
import string
from supabase import Client
from familyos.config import settings
from familyos.config.permissions_config import CREATOR_ROLE, JOIN_ROLE
from familyos.core.dependencies import permission_denied
from familyos.core.permissions import DenialReason, PermissionCheckResult, Role
from familyos.modules.families.schemas import (
    FamilyCreate, FamilyUpdate, FamilyResponse, FamilyWithRoleResponse, FamilyPreviewResponse,
    FamilyMemberResponse, FamilyJoinResponse, FamilyInviteResponse
)
from typing import List, Optional
from fastapi import HTTPException

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_lowercase + string.digits
INVITE_CODE_LENGTH = 12
PUBLIC_FAMILY_COLUMNS = "id, name, owner_id, icon, created_at"
ONLY_CREATOR_DELETES = "only the family creator can delete the family"


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


class FamilyService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _get_family_row(self, group_id: str) -> dict:
        result = self.supabase.table("family_groups")\
            .select("*")\
            .eq("id", group_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=404, detail="Family not found")
        return result.data[0]

    def create_family(self, family_data: FamilyCreate, user_id: str) -> FamilyResponse:
        """Create a new family; the creator becomes its owner"""
        try:
            result = self.supabase.table("family_groups").insert({
                "name": family_data.name.strip(),
                "owner_id": user_id,
                "invite_code": generate_invite_code(),
                "icon": family_data.icon
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create family")

            family = result.data[0]
            try:
                self.supabase.table("group_members").insert({
                    "group_id": family["id"],
                    "user_id": user_id,
                    "role": CREATOR_ROLE
                }).execute()
            except Exception:
                # Do not leave a family without an owner behind
                self.supabase.table("family_groups").delete().eq("id", family["id"]).execute()
                raise

            logger.info(f"User {user_id} created family {family['id']}")
            return FamilyResponse(**family)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating family: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def get_family(self, group_id: str) -> FamilyResponse:
        """Get family by ID"""
        try:
            return FamilyResponse(**self._get_family_row(group_id))
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def preview_family(self, invite_code: str) -> FamilyPreviewResponse:
        """Name and icon of the family behind an invite code"""
        try:
            result = self.supabase.table("family_groups")\
                .select("id, name, icon")\
                .eq("invite_code", invite_code.strip())\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Invalid invite code")
            return FamilyPreviewResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_families(self, user_id: str, limit: int = 50, offset: int = 0) -> List[FamilyWithRoleResponse]:
        """List families the user belongs to, with the user's role in each"""
        try:
            members_result = self.supabase.table("group_members")\
                .select("group_id, role")\
                .eq("user_id", user_id)\
                .execute()
            if not members_result.data:
                return []
            roles = {m["group_id"]: m["role"] for m in members_result.data}

            result = self.supabase.table("family_groups")\
                .select(PUBLIC_FAMILY_COLUMNS)\
                .in_("id", list(roles.keys()))\
                .order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [
                FamilyWithRoleResponse(**family, role=roles[family["id"]])
                for family in result.data
            ]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_family(self, group_id: str, family_data: FamilyUpdate) -> FamilyResponse:
        """Update family name and icon"""
        try:
            update_data = {}
            if family_data.name:
                update_data["name"] = family_data.name.strip()
            if family_data.icon is not None:
                update_data["icon"] = family_data.icon
            if not update_data:
                raise HTTPException(status_code=400, detail="Nothing to update")

            result = self.supabase.table("family_groups")\
                .update(update_data)\
                .eq("id", group_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Family not found")

            return FamilyResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_family(self, group_id: str, user_id: str) -> bool:
        """Delete family; only its original creator may do this"""
        try:
            family = self._get_family_row(group_id)
            if family.get("owner_id") != user_id:
                raise permission_denied(PermissionCheckResult.deny(DenialReason.OWNERSHIP_MISMATCH, ONLY_CREATOR_DELETES))

            # Delete members first
            self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .execute()

            result = self.supabase.table("family_groups")\
                .delete()\
                .eq("id", group_id)\
                .eq("owner_id", user_id)\
                .execute()

            logger.info(f"User {user_id} deleted family {group_id}")
            return len(result.data) > 0
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_membership(self, group_id: str, user_id: str) -> Optional[dict]:
        result = self.supabase.table("group_members")\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def join_family(self, invite_code: str, user_id: str) -> FamilyJoinResponse:
        """Join a family by invite code as a member"""
        try:
            family = self.preview_family(invite_code)

            existing = self.get_membership(family.id, user_id)
            if existing:
                return FamilyJoinResponse(member=FamilyMemberResponse(**existing), already_member=True)

            result = self.supabase.table("group_members").insert({
                "group_id": family.id,
                "user_id": user_id,
                "role": JOIN_ROLE
            }).execute()

            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to join family")

            logger.info(f"User {user_id} joined family {family.id}")
            return FamilyJoinResponse(member=FamilyMemberResponse(**result.data[0]))
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_members(self, group_id: str) -> List[FamilyMemberResponse]:
        """List all members of a family"""
        try:
            result = self.supabase.table("group_members")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at")\
                .execute()

            return [FamilyMemberResponse(**member) for member in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def remove_member(self, group_id: str, user_id: str) -> bool:
        """Remove a member from the family; the creator cannot be removed"""
        try:
            family = self._get_family_row(group_id)
            if family.get("owner_id") == user_id:
                raise HTTPException(status_code=400, detail="The family creator cannot be removed")

            result = self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Member not found")
            logger.info(f"Removed user {user_id} from family {group_id}")
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def leave_family(self, group_id: str, user_id: str) -> bool:
        """Leave a family; the creator must delete it instead"""
        try:
            family = self._get_family_row(group_id)
            if family.get("owner_id") == user_id:
                raise HTTPException(
                    status_code=400,
                    detail="The family creator cannot leave; delete the family instead"
                )
            result = self.supabase.table("group_members")\
                .delete()\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()
            return len(result.data) > 0
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def change_member_role(self, group_id: str, user_id: str, role: Role, acting_user_id: str) -> FamilyMemberResponse:
        """Overwrite a member's role"""
        try:
            family = self._get_family_row(group_id)
            member = self.get_membership(group_id, user_id)
            if not member:
                raise HTTPException(status_code=404, detail="Member not found")

            role = Role(role)
            if member.get("role") == role.value:
                return FamilyMemberResponse(**member)

            if family.get("owner_id") == user_id and role is not Role.OWNER:
                raise HTTPException(status_code=400, detail="The family creator always remains an owner")

            if user_id == acting_user_id and role is not Role.OWNER:
                owners = self.supabase.table("group_members")\
                    .select("id")\
                    .eq("group_id", group_id)\
                    .eq("role", Role.OWNER.value)\
                    .execute()
                if len(owners.data or []) <= 1:
                    raise HTTPException(status_code=400, detail="A family must keep at least one owner")

            result = self.supabase.table("group_members")\
                .update({"role": role.value})\
                .eq("group_id", group_id)\
                .eq("user_id", user_id)\
                .execute()

            if not result.data:
                raise HTTPException(status_code=404, detail="Member not found")

            logger.info(f"User {acting_user_id} set role of {user_id} in family {group_id} to {role.value}")
            return FamilyMemberResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_invite(self, group_id: str) -> FamilyInviteResponse:
        """Invite code and shareable link"""
        try:
            family = self._get_family_row(group_id)
            return FamilyInviteResponse(
                group_id=group_id,
                invite_code=family["invite_code"],
                invite_link=settings.build_site_url(f"/invite/{family['invite_code']}")
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def regenerate_invite_code(self, group_id: str) -> FamilyInviteResponse:
        """Replace the invite code; links using the old code stop working"""
        try:
            invite_code = generate_invite_code()
            result = self.supabase.table("family_groups")\
                .update({"invite_code": invite_code})\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail="Family not found")
            return FamilyInviteResponse(
                group_id=group_id,
                invite_code=invite_code,
                invite_link=settings.build_site_url(f"/invite/{invite_code}")
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
