import logging
from datetime import datetime, timezone
from supabase import Client
from familyos.config.permissions_config import DEFAULT_VISIBILITY
from familyos.core.permissions import Visibility
from familyos.modules.resources.schemas import ResourceResponse, ResourceType
from typing import Any, Dict, List
from fastapi import HTTPException
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Columns that generic updates may never touch; edit_mode has its own owner-only mutation
PROTECTED_COLUMNS = {"id", "group_id", "created_by", "created_at", "edit_mode", "visibility", "updated_by", "updated_at"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResourceService:
    """CRUD for one kind of shared family resource"""

    def __init__(self, supabase: Client, resource_type: ResourceType):
        self.supabase = supabase
        self.resource_type = ResourceType(resource_type)
        self.table = self.resource_type.table

    def _label(self) -> str:
        return self.resource_type.value.rstrip("s").capitalize()

    def list_resources(self, group_id: str, limit: int = 100, offset: int = 0) -> List[ResourceResponse]:
        """List a family's resources, newest first"""
        try:
            result = self.supabase.table(self.table)\
                .select("*")\
                .eq("group_id", group_id)\
                .order("created_at", desc=True)\
                .limit(limit)\
                .offset(offset)\
                .execute()
            return [ResourceResponse(**row) for row in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_resource(self, group_id: str, resource_id: str) -> ResourceResponse:
        """Get one resource of a family"""
        try:
            result = self.supabase.table(self.table)\
                .select("*")\
                .eq("id", resource_id)\
                .eq("group_id", group_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail=f"{self._label()} not found")
            return ResourceResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_resource(self, group_id: str, payload: BaseModel, actor_id: str) -> ResourceResponse:
        """Create a resource owned by actor_id; new resources are public"""
        try:
            now = _now()
            row: Dict[str, Any] = {
                key: value
                for key, value in payload.model_dump(mode="json").items()
                if key not in PROTECTED_COLUMNS
            }
            row.update({
                "group_id": group_id,
                "created_by": actor_id,
                "edit_mode": DEFAULT_VISIBILITY,
                "updated_by": actor_id,
                "updated_at": now,
            })
            result = self.supabase.table(self.table).insert(row).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail=f"Failed to create {self._label().lower()}")
            logger.info(f"User {actor_id} created {self.resource_type.value} row {result.data[0].get('id')} in family {group_id}")
            return ResourceResponse(**result.data[0])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating {self.resource_type.value} in family {group_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    def _write(self, group_id: str, resource_id: str, update_data: Dict[str, Any], actor_id: str) -> ResourceResponse:
        update_data = dict(update_data)
        update_data["updated_by"] = actor_id
        update_data["updated_at"] = _now()
        result = self.supabase.table(self.table)\
            .update(update_data)\
            .eq("id", resource_id)\
            .eq("group_id", group_id)\
            .execute()
        if not result.data:
            raise HTTPException(status_code=404, detail=f"{self._label()} not found")
        return ResourceResponse(**result.data[0])

    def update_resource(self, group_id: str, resource_id: str, payload: BaseModel, actor_id: str) -> ResourceResponse:
        """Update the type-specific fields of a resource"""
        try:
            update_data = {
                key: value
                for key, value in payload.model_dump(mode="json", exclude_unset=True).items()
                if key not in PROTECTED_COLUMNS
            }
            if not update_data:
                raise HTTPException(status_code=400, detail="Nothing to update")
            return self._write(group_id, resource_id, update_data, actor_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def set_visibility(self, group_id: str, resource_id: str, visibility: Visibility, actor_id: str) -> ResourceResponse:
        """Switch a resource between private and public (owner-only mutation)"""
        try:
            resource = self._write(group_id, resource_id, {"edit_mode": Visibility(visibility).value}, actor_id)
            logger.info(f"User {actor_id} set {self.resource_type.value} row {resource_id} to {resource.visibility.value}")
            return resource
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def mark_important(self, group_id: str, resource_id: str, is_important: bool, actor_id: str) -> ResourceResponse:
        """Flag a note as the family's important note; at most one note is flagged"""
        if self.resource_type is not ResourceType.NOTES:
            raise HTTPException(status_code=400, detail="Only notes can be marked important")
        try:
            if is_important:
                self.supabase.table(self.table)\
                    .update({"is_important": False})\
                    .eq("group_id", group_id)\
                    .eq("is_important", True)\
                    .neq("id", resource_id)\
                    .execute()
            return self._write(group_id, resource_id, {"is_important": is_important}, actor_id)
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_resource(self, group_id: str, resource_id: str) -> bool:
        """Delete a resource"""
        try:
            result = self.supabase.table(self.table)\
                .delete()\
                .eq("id", resource_id)\
                .eq("group_id", group_id)\
                .execute()
            if not result.data:
                raise HTTPException(status_code=404, detail=f"{self._label()} not found")
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
