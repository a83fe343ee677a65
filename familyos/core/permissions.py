"""
Role-based permission engine for family groups.

Roles are owner, member and viewer. Every shared resource (note, card,
document, event, list, subscription) carries the id of its creator and a
visibility flag; the engine decides from (role, actor id, resource) whether an
action is allowed and, if not, why.

The engine is a pure value object: it performs no I/O, never raises, and is
rebuilt whenever the actor's role changes. It is advisory for clients; the API
re-applies it server-side and the database enforces the same decision table
through row-level security.
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict

from familyos.config.permissions_config import ROLE_INFO, ROLE_PRIORITY

logger = logging.getLogger(__name__)


class Role(str, Enum):
    OWNER = "owner"
    MEMBER = "member"
    VIEWER = "viewer"


class Visibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class Action(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    CHANGE_EDIT_MODE = "change_edit_mode"
    MANAGE_MEMBERS = "manage_members"
    MANAGE_FAMILY_SETTINGS = "manage_family_settings"
    INVITE_MEMBERS = "invite_members"
    CHANGE_ROLES = "change_roles"


class DenialReason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    INSUFFICIENT_ROLE = "insufficient_role"
    OWNERSHIP_MISMATCH = "ownership_mismatch"
    VISIBILITY_RESTRICTED = "visibility_restricted"


NOT_AUTHENTICATED = "not authenticated"
VIEWER_CANNOT_MODIFY = "viewers cannot modify resources"
VIEWER_CANNOT_DELETE = "viewers cannot delete resources"
PRIVATE_RESOURCE = "resource is private; only the owner may modify it"
NOT_CREATOR = "you can only delete resources you created"
OWNER_ONLY = "only family owners can perform this action"
VIEWER_CANNOT_CREATE = "viewers cannot create resources"
RESOURCE_REQUIRED = "this action needs a resource to check against"


class Resource(Protocol):
    """Anything the engine can judge: a creator id and a visibility flag"""

    created_by: Optional[str]
    visibility: Visibility


class PermissionCheckResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: Optional[str] = None
    denial: Optional[DenialReason] = None

    @classmethod
    def allow(cls) -> "PermissionCheckResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, denial: DenialReason, reason: str) -> "PermissionCheckResult":
        return cls(allowed=False, reason=reason, denial=denial)

    def __bool__(self) -> bool:
        return self.allowed


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Coerce a raw role value to Role. Unknown values become None."""
    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        logger.warning(f"Ignoring unknown family role: {value!r}")
        return None


def parse_visibility(value: Union[Visibility, str, None]) -> Visibility:
    """
    Coerce a stored edit mode to Visibility.
    Missing values read as public; unknown values read as private.
    """
    if isinstance(value, Visibility):
        return value
    if not value:
        return Visibility.PUBLIC
    try:
        return Visibility(value)
    except ValueError:
        logger.warning(f"Treating unknown edit mode {value!r} as private")
        return Visibility.PRIVATE


def _resource_field(resource: Any, name: str) -> Any:
    # Supabase rows arrive as plain dicts; models expose attributes
    if isinstance(resource, Mapping):
        return resource.get(name)
    return getattr(resource, name, None)


def is_valid_role(value: Any) -> bool:
    return isinstance(value, str) and value in Role._value2member_map_


def all_roles() -> List[Role]:
    return [Role.OWNER, Role.MEMBER, Role.VIEWER]


def role_priority(role: Role) -> int:
    return ROLE_PRIORITY[Role(role).value]


def has_higher_or_equal_role(role: Role, target_role: Role) -> bool:
    return role_priority(role) >= role_priority(target_role)


def get_role_label(role: Role) -> str:
    return ROLE_INFO[Role(role).value]["label"]


def get_role_description(role: Role) -> str:
    return ROLE_INFO[Role(role).value]["description"]


def get_role_icon(role: Role) -> str:
    return ROLE_INFO[Role(role).value]["icon"]


class PermissionEngine:
    """
    Permission checks for one actor in one family group.

    Construct a new engine whenever the role changes; instances are immutable
    and safe to share.
    """

    __slots__ = ("_role", "_actor_id")

    def __init__(self, role: Union[Role, str, None], actor_id: Optional[str]):
        object.__setattr__(self, "_role", parse_role(role))
        object.__setattr__(self, "_actor_id", actor_id or None)

    def __setattr__(self, name, value):
        raise AttributeError("PermissionEngine is immutable; use with_role() instead")

    def __eq__(self, other):
        if not isinstance(other, PermissionEngine):
            return NotImplemented
        return self._role == other._role and self._actor_id == other._actor_id

    def __hash__(self):
        return hash((self._role, self._actor_id))

    def __repr__(self):
        role = self._role.value if self._role else None
        return f"PermissionEngine(role={role!r}, actor_id={self._actor_id!r})"

    @property
    def role(self) -> Optional[Role]:
        return self._role

    @property
    def actor_id(self) -> Optional[str]:
        return self._actor_id

    def with_role(self, role: Union[Role, str, None]) -> "PermissionEngine":
        return PermissionEngine(role, self._actor_id)

    def _is_authenticated(self) -> bool:
        return self._role is not None and self._actor_id is not None

    def _is_creator(self, resource: Resource) -> bool:
        created_by = _resource_field(resource, "created_by")
        return created_by is not None and created_by == self._actor_id

    @staticmethod
    def _is_public(resource: Resource) -> bool:
        if resource is None:
            return False
        if isinstance(resource, Mapping) and "visibility" not in resource:
            return parse_visibility(resource.get("edit_mode")) is Visibility.PUBLIC
        return parse_visibility(_resource_field(resource, "visibility")) is Visibility.PUBLIC

    # Resource actions

    def can_create(self) -> bool:
        return self._role in (Role.OWNER, Role.MEMBER)

    def can_modify(self, resource: Resource) -> PermissionCheckResult:
        if not self._is_authenticated():
            return PermissionCheckResult.deny(DenialReason.UNAUTHENTICATED, NOT_AUTHENTICATED)

        # Owner can modify everything
        if self._role is Role.OWNER:
            return PermissionCheckResult.allow()

        if self._role is Role.VIEWER:
            return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, VIEWER_CANNOT_MODIFY)

        # Member can modify own resources or public ones
        if self._is_creator(resource):
            return PermissionCheckResult.allow()
        if self._is_public(resource):
            return PermissionCheckResult.allow()
        return PermissionCheckResult.deny(DenialReason.VISIBILITY_RESTRICTED, PRIVATE_RESOURCE)

    def can_delete(self, resource: Resource) -> PermissionCheckResult:
        if not self._is_authenticated():
            return PermissionCheckResult.deny(DenialReason.UNAUTHENTICATED, NOT_AUTHENTICATED)

        if self._role is Role.OWNER:
            return PermissionCheckResult.allow()

        if self._role is Role.VIEWER:
            return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, VIEWER_CANNOT_DELETE)

        # Visibility never grants delete to members
        if self._is_creator(resource):
            return PermissionCheckResult.allow()
        return PermissionCheckResult.deny(DenialReason.OWNERSHIP_MISMATCH, NOT_CREATOR)

    # Governance

    def can_change_edit_mode(self) -> bool:
        return self._role is Role.OWNER

    def can_manage_members(self) -> bool:
        return self._role is Role.OWNER

    def can_manage_family_settings(self) -> bool:
        return self._role is Role.OWNER

    def can_invite_members(self) -> bool:
        return self._role is Role.OWNER

    def can_change_roles(self) -> bool:
        return self._role is Role.OWNER

    # Role checks

    def is_owner(self) -> bool:
        return self._role is Role.OWNER

    def is_member(self) -> bool:
        return self._role is Role.MEMBER

    def is_viewer(self) -> bool:
        return self._role is Role.VIEWER

    def check(self, action: Union[Action, str], resource: Optional[Resource] = None) -> PermissionCheckResult:
        """Structured result for any action, for callers that report a reason"""
        try:
            action = Action(action)
        except ValueError:
            return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, f"unknown action: {action}")

        if not self._is_authenticated():
            return PermissionCheckResult.deny(DenialReason.UNAUTHENTICATED, NOT_AUTHENTICATED)

        if action in (Action.MODIFY, Action.DELETE):
            if resource is None:
                return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, RESOURCE_REQUIRED)
            if action is Action.MODIFY:
                return self.can_modify(resource)
            return self.can_delete(resource)

        if action is Action.CREATE:
            if self.can_create():
                return PermissionCheckResult.allow()
            return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, VIEWER_CANNOT_CREATE)

        governance = {
            Action.CHANGE_EDIT_MODE: self.can_change_edit_mode,
            Action.MANAGE_MEMBERS: self.can_manage_members,
            Action.MANAGE_FAMILY_SETTINGS: self.can_manage_family_settings,
            Action.INVITE_MEMBERS: self.can_invite_members,
            Action.CHANGE_ROLES: self.can_change_roles,
        }
        if governance[action]():
            return PermissionCheckResult.allow()
        return PermissionCheckResult.deny(DenialReason.INSUFFICIENT_ROLE, OWNER_ONLY)

    def summary(self) -> Dict[str, Any]:
        """Role and every boolean capability, for clients gating their UI"""
        return {
            "role": self._role.value if self._role else None,
            "is_owner": self.is_owner(),
            "is_member": self.is_member(),
            "is_viewer": self.is_viewer(),
            "can_create": self.can_create(),
            "can_change_edit_mode": self.can_change_edit_mode(),
            "can_manage_members": self.can_manage_members(),
            "can_manage_family_settings": self.can_manage_family_settings(),
            "can_invite_members": self.can_invite_members(),
            "can_change_roles": self.can_change_roles(),
        }


def create_permission_engine(role: Union[Role, str, None], actor_id: Optional[str]) -> PermissionEngine:
    return PermissionEngine(role, actor_id)
