from fastapi import APIRouter, Body, Depends
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from familyos.modules.resources.schemas import (
    ResourceResponse, ResourceType, VisibilityUpdate, ImportanceUpdate, parse_create, parse_update
)
from familyos.modules.resources.service import ResourceService
from familyos.core.dependencies import ensure_allowed, get_user_supabase, require_capability, require_family_member
from familyos.core.permissions import Action, PermissionEngine
from supabase import Client
from typing import Any, Dict, List

router = APIRouter(prefix="/families/{group_id}/resources", tags=["resources"])


def get_resource_service(
    resource_type: ResourceType,
    supabase: Client = Depends(get_user_supabase)
) -> ResourceService:
    return ResourceService(supabase, resource_type)


def _validate(parser, resource_type: ResourceType, payload: Dict[str, Any]):
    try:
        return parser(resource_type, payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False, include_context=False))


@router.get("/{resource_type}", response_model=List[ResourceResponse])
async def list_resources(
    group_id: str,
    resource_type: ResourceType,
    limit: int = 100,
    offset: int = 0,
    engine: PermissionEngine = Depends(require_family_member),
    service: ResourceService = Depends(get_resource_service)
):
    """List a family's resources of one type (members only)"""
    return service.list_resources(group_id, limit=limit, offset=offset)


@router.get("/{resource_type}/{resource_id}", response_model=ResourceResponse)
async def get_resource(
    group_id: str,
    resource_type: ResourceType,
    resource_id: str,
    engine: PermissionEngine = Depends(require_family_member),
    service: ResourceService = Depends(get_resource_service)
):
    """Get one resource (members only)"""
    return service.get_resource(group_id, resource_id)


@router.post("/{resource_type}", response_model=ResourceResponse, status_code=201)
async def create_resource(
    group_id: str,
    resource_type: ResourceType,
    payload: Dict[str, Any] = Body(...),
    engine: PermissionEngine = Depends(require_capability(Action.CREATE)),
    service: ResourceService = Depends(get_resource_service)
):
    """Create a resource (owners and members)"""
    data = _validate(parse_create, resource_type, payload)
    return service.create_resource(group_id, data, engine.actor_id)


@router.patch("/{resource_type}/{resource_id}", response_model=ResourceResponse)
async def update_resource(
    group_id: str,
    resource_type: ResourceType,
    resource_id: str,
    payload: Dict[str, Any] = Body(...),
    engine: PermissionEngine = Depends(require_family_member),
    service: ResourceService = Depends(get_resource_service)
):
    """Update a resource the caller may modify"""
    data = _validate(parse_update, resource_type, payload)
    resource = service.get_resource(group_id, resource_id)
    ensure_allowed(engine.can_modify(resource))
    return service.update_resource(group_id, resource_id, data, engine.actor_id)


@router.put("/{resource_type}/{resource_id}/visibility", response_model=ResourceResponse)
async def set_visibility(
    group_id: str,
    resource_type: ResourceType,
    resource_id: str,
    visibility_update: VisibilityUpdate,
    engine: PermissionEngine = Depends(require_capability(Action.CHANGE_EDIT_MODE)),
    service: ResourceService = Depends(get_resource_service)
):
    """Make a resource private or public (owners only)"""
    return service.set_visibility(group_id, resource_id, visibility_update.visibility, engine.actor_id)


@router.put("/{resource_type}/{resource_id}/important", response_model=ResourceResponse)
async def mark_important(
    group_id: str,
    resource_type: ResourceType,
    resource_id: str,
    importance: ImportanceUpdate,
    engine: PermissionEngine = Depends(require_family_member),
    service: ResourceService = Depends(get_resource_service)
):
    """Flag or unflag the family's important note"""
    resource = service.get_resource(group_id, resource_id)
    ensure_allowed(engine.can_modify(resource))
    return service.mark_important(group_id, resource_id, importance.is_important, engine.actor_id)


@router.delete("/{resource_type}/{resource_id}", status_code=204)
async def delete_resource(
    group_id: str,
    resource_type: ResourceType,
    resource_id: str,
    engine: PermissionEngine = Depends(require_family_member),
    service: ResourceService = Depends(get_resource_service)
):
    """Delete a resource the caller may delete"""
    resource = service.get_resource(group_id, resource_id)
    ensure_allowed(engine.can_delete(resource))
    service.delete_resource(group_id, resource_id)
    return None
