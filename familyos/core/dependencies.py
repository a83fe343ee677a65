"""
Core dependencies for route protection and permission checking

Every family-scoped route resolves the caller's role from group_members on the
server and builds a PermissionEngine from it. Client-side checks are advisory;
these dependencies are what actually gate mutations before they reach Supabase.
Table queries run on a per-request client carrying the caller's JWT, so the
database policies see the same user the engine judged.
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from familyos.database.supabase_client import SupabaseClient, get_session_supabase, get_supabase
from familyos.modules.auth.service import AuthService
from familyos.modules.families.role_store import RoleStore
from familyos.core.permissions import Action, PermissionCheckResult, PermissionEngine
from supabase import Client
from typing import Dict
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

PERMISSION_DENIED = "permission_denied"


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    """Token lookups only; get_user does not touch the shared client's session"""
    return AuthService(supabase)


def get_session_auth_service(supabase: Client = Depends(get_session_supabase)) -> AuthService:
    """Sign-in, sign-up and sign-out on a throwaway client"""
    return AuthService(supabase)


def get_user_supabase(
    credentials: HTTPAuthorizationCredentials = Security(security)
) -> Client:
    return SupabaseClient.get_user_client(credentials.credentials)


def get_role_store(supabase: Client = Depends(get_user_supabase)) -> RoleStore:
    return RoleStore(supabase)


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    token = credentials.credentials
    user_data = auth_service.get_current_user(token)
    return user_data


def _get_request_engines(request: Request) -> Dict[str, PermissionEngine]:
    """Request-scoped engines keyed by group_id, so one request resolves a role once."""
    if not hasattr(request.state, "permission_engines"):
        request.state.permission_engines = {}
    return request.state.permission_engines


def permission_denied(result: PermissionCheckResult) -> HTTPException:
    """403 carrying the engine's reason, distinct from validation and backend errors"""
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={
            "code": PERMISSION_DENIED,
            "denial": result.denial.value if result.denial else None,
            "reason": result.reason,
        }
    )


def ensure_allowed(result: PermissionCheckResult) -> None:
    if not result.allowed:
        raise permission_denied(result)


def get_permission_engine(
    group_id: str,
    request: Request,
    user_data: dict = Depends(get_current_user_id),
    role_store: RoleStore = Depends(get_role_store)
) -> PermissionEngine:
    """PermissionEngine for the current user in the family from the path"""
    engines = _get_request_engines(request)
    if group_id not in engines:
        try:
            engines[group_id] = role_store.engine_for(group_id, user_data["id"])
        except Exception as e:
            logger.error(f"Could not resolve role of user {user_data['id']} in family {group_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Family membership is temporarily unavailable"
            )
    return engines[group_id]


def require_family_member(
    engine: PermissionEngine = Depends(get_permission_engine)
) -> PermissionEngine:
    """Any role in the family; non-members get a 403"""
    if engine.role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": PERMISSION_DENIED,
                "denial": "not_a_member",
                "reason": "You must be a member of this family",
            }
        )
    return engine


def require_capability(action: Action):
    """Factory function to create a capability check dependency"""
    def check_capability(
        engine: PermissionEngine = Depends(require_family_member)
    ) -> PermissionEngine:
        result = engine.check(action)
        if not result.allowed:
            logger.info(f"Denied {action.value} for user {engine.actor_id}: {result.reason}")
            raise permission_denied(result)
        return engine
    return check_capability
