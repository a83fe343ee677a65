import logging
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from familyos.database.supabase_client import SupabaseClient, get_supabase, get_async_supabase
from familyos.modules.families.schemas import (
    FamilyCreate, FamilyUpdate, FamilyResponse, FamilyWithRoleResponse, FamilyPreviewResponse,
    FamilyJoin, FamilyJoinResponse, FamilyMemberResponse, MemberRoleUpdate,
    FamilyInviteResponse, PermissionSummaryResponse
)
from familyos.modules.families.service import FamilyService
from familyos.modules.families.role_store import RoleStore, RoleWatcher
from familyos.modules.auth.service import AuthService
from familyos.core.dependencies import (
    get_current_user_id, get_permission_engine, get_user_supabase, require_family_member, require_capability
)
from familyos.core.permissions import Action, PermissionEngine
from supabase import AsyncClient, Client
from typing import Dict, List

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/families", tags=["families"])


def get_family_service(supabase: Client = Depends(get_user_supabase)) -> FamilyService:
    return FamilyService(supabase)


def get_public_family_service(supabase: Client = Depends(get_supabase)) -> FamilyService:
    """Anon access, for the invite preview shown before sign in"""
    return FamilyService(supabase)


@router.post("", response_model=FamilyResponse, status_code=201)
async def create_family(
    family_data: FamilyCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: FamilyService = Depends(get_family_service)
):
    """Create a new family; the caller becomes its owner"""
    return service.create_family(family_data, user_data["id"])


@router.get("", response_model=List[FamilyWithRoleResponse])
async def list_families(
    limit: int = 50,
    offset: int = 0,
    user_data: Dict = Depends(get_current_user_id),
    service: FamilyService = Depends(get_family_service)
):
    """List families the caller belongs to"""
    return service.list_families(user_data["id"], limit=limit, offset=offset)


@router.post("/join", response_model=FamilyJoinResponse)
async def join_family(
    join_data: FamilyJoin,
    user_data: Dict = Depends(get_current_user_id),
    service: FamilyService = Depends(get_family_service)
):
    """Join a family with an invite code (joins as member)"""
    return service.join_family(join_data.invite_code, user_data["id"])


@router.get("/invite/{invite_code}", response_model=FamilyPreviewResponse)
async def preview_invite(
    invite_code: str,
    service: FamilyService = Depends(get_public_family_service)
):
    """Family name and icon for an invite link, shown before sign in"""
    return service.preview_family(invite_code)


@router.get("/{group_id}", response_model=FamilyResponse)
async def get_family(
    group_id: str,
    engine: PermissionEngine = Depends(require_family_member),
    service: FamilyService = Depends(get_family_service)
):
    """Get family by ID (members only)"""
    return service.get_family(group_id)


@router.patch("/{group_id}", response_model=FamilyResponse)
async def update_family(
    group_id: str,
    family_data: FamilyUpdate,
    engine: PermissionEngine = Depends(require_capability(Action.MANAGE_FAMILY_SETTINGS)),
    service: FamilyService = Depends(get_family_service)
):
    """Rename the family or change its icon (owners only)"""
    return service.update_family(group_id, family_data)


@router.delete("/{group_id}", status_code=204)
async def delete_family(
    group_id: str,
    engine: PermissionEngine = Depends(require_capability(Action.MANAGE_FAMILY_SETTINGS)),
    service: FamilyService = Depends(get_family_service)
):
    """Delete the family (its creator only)"""
    service.delete_family(group_id, engine.actor_id)
    return None


@router.get("/{group_id}/permissions", response_model=PermissionSummaryResponse)
async def get_permissions(
    group_id: str,
    engine: PermissionEngine = Depends(get_permission_engine)
):
    """Caller's role and capabilities in the family; all false for non-members"""
    return PermissionSummaryResponse(group_id=group_id, user_id=engine.actor_id, **engine.summary())


@router.get("/{group_id}/members", response_model=List[FamilyMemberResponse])
async def list_members(
    group_id: str,
    engine: PermissionEngine = Depends(require_family_member),
    service: FamilyService = Depends(get_family_service)
):
    """List all members of a family (members only)"""
    return service.list_members(group_id)


@router.delete("/{group_id}/members/{user_id}", status_code=204)
async def remove_member(
    group_id: str,
    user_id: str,
    engine: PermissionEngine = Depends(require_capability(Action.MANAGE_MEMBERS)),
    service: FamilyService = Depends(get_family_service)
):
    """Remove a member from the family (owners only)"""
    service.remove_member(group_id, user_id)
    return None


@router.put("/{group_id}/members/{user_id}/role", response_model=FamilyMemberResponse)
async def change_member_role(
    group_id: str,
    user_id: str,
    role_update: MemberRoleUpdate,
    engine: PermissionEngine = Depends(require_capability(Action.CHANGE_ROLES)),
    service: FamilyService = Depends(get_family_service)
):
    """Change a member's role (owners only)"""
    return service.change_member_role(group_id, user_id, role_update.role, engine.actor_id)


@router.post("/{group_id}/leave", status_code=204)
async def leave_family(
    group_id: str,
    engine: PermissionEngine = Depends(require_family_member),
    service: FamilyService = Depends(get_family_service)
):
    """Leave the family"""
    service.leave_family(group_id, engine.actor_id)
    return None


@router.get("/{group_id}/invite", response_model=FamilyInviteResponse)
async def get_invite(
    group_id: str,
    engine: PermissionEngine = Depends(require_capability(Action.INVITE_MEMBERS)),
    service: FamilyService = Depends(get_family_service)
):
    """Invite code and link (owners only)"""
    return service.get_invite(group_id)


@router.post("/{group_id}/invite/regenerate", response_model=FamilyInviteResponse)
async def regenerate_invite(
    group_id: str,
    engine: PermissionEngine = Depends(require_capability(Action.INVITE_MEMBERS)),
    service: FamilyService = Depends(get_family_service)
):
    """Issue a new invite code (owners only)"""
    return service.regenerate_invite_code(group_id)


@router.websocket("/{group_id}/permissions/ws")
async def permissions_feed(
    websocket: WebSocket,
    group_id: str,
    token: str,
    supabase: Client = Depends(get_supabase),
    realtime: AsyncClient = Depends(get_async_supabase)
):
    """Push the caller's permission summary now and after every role change"""
    try:
        user_data = AuthService(supabase).get_current_user(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def push(engine: PermissionEngine):
        await websocket.send_json({"group_id": group_id, "user_id": engine.actor_id, **engine.summary()})

    store = RoleStore(SupabaseClient.get_user_client(token))
    watcher = RoleWatcher(store, group_id, user_data["id"], on_update=push)
    try:
        engine = await watcher.start(realtime)
        await push(engine)
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Permission feed closed for user {user_data['id']} in family {group_id}")
    except Exception as e:
        logger.error(f"Permission feed failed for user {user_data['id']} in family {group_id}: {e}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        await watcher.stop()
