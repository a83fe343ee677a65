"""
Role resolution for family members.

Roles live in the group_members table. RoleStore reads them with the sync
Supabase client and follows changes through a realtime channel on the async
client. Delivery from the channel is at-least-once and may lag; consumers
rebuild their PermissionEngine on every delivered role.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from supabase import AsyncClient, Client

from familyos.core.permissions import PermissionEngine, Role, parse_role

logger = logging.getLogger(__name__)

RoleCallback = Callable[[Optional[Role]], Union[None, Awaitable[None]]]

REFRESH = "refresh"
REMOVED = "removed"


def _change_records(payload: Dict[str, Any]):
    """Return (event type, new record, old record) from a postgres_changes payload"""
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    event_type = data.get("type") or data.get("eventType")
    new_record = data.get("record") or data.get("new") or {}
    old_record = data.get("old_record") or data.get("old") or {}
    return event_type, new_record, old_record


def role_change_for(payload: Dict[str, Any], user_id: str) -> Optional[str]:
    """
    Classify a group_members change for one user.

    Returns REFRESH when the user's role must be re-read, REMOVED when the
    user's membership row was deleted, and None when the change concerns
    someone else.
    """
    event_type, new_record, old_record = _change_records(payload)
    if new_record.get("user_id") == user_id:
        return REFRESH
    if old_record.get("user_id") == user_id:
        return REMOVED
    # Without REPLICA IDENTITY FULL a delete only carries the row id
    if event_type == "DELETE" and "user_id" not in old_record:
        return REFRESH
    return None


class RoleSubscription:
    """Handle for an open role-change channel"""

    def __init__(self, client: AsyncClient, channel: Any):
        self._client = client
        self._channel = channel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            await self._client.remove_channel(self._channel)
        except Exception as e:
            logger.error(f"Error removing role channel: {e}")


class RoleStore:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self._pending: Set[asyncio.Task] = set()

    def resolve_role(self, group_id: Optional[str], user_id: Optional[str]) -> Optional[Role]:
        """
        Role of user in group, or None for non-members and unauthenticated callers.
        Backend errors propagate; they are not a missing membership.
        """
        if not group_id or not user_id:
            return None
        result = self.supabase.table("group_members")\
            .select("role")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return parse_role(result.data[0].get("role"))

    def engine_for(self, group_id: Optional[str], user_id: Optional[str]) -> PermissionEngine:
        return PermissionEngine(self.resolve_role(group_id, user_id), user_id)

    async def _deliver(self, callback: RoleCallback, group_id: str, user_id: str, decision: str):
        if decision == REMOVED:
            role = None
        else:
            try:
                role = await asyncio.to_thread(self.resolve_role, group_id, user_id)
            except Exception as e:
                # Keep the last delivered role; the next change triggers another read
                logger.error(f"Error re-reading role for user {user_id} in group {group_id}: {e}")
                return
        try:
            result = callback(role)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(f"Role change callback failed for user {user_id} in group {group_id}")

    async def subscribe_to_role_changes(
        self,
        group_id: str,
        user_id: str,
        callback: RoleCallback,
        realtime_client: AsyncClient
    ) -> RoleSubscription:
        """Call callback with the user's new role whenever their membership changes"""
        loop = asyncio.get_running_loop()

        def on_change(payload: Dict[str, Any]):
            decision = role_change_for(payload, user_id)
            if decision is None:
                return
            logger.debug(f"Role change for user {user_id} in group {group_id}: {decision}")
            task = loop.create_task(self._deliver(callback, group_id, user_id, decision))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        channel = realtime_client.channel(f"group_members:{group_id}:{user_id}")
        channel.on_postgres_changes(
            "*",
            schema="public",
            table="group_members",
            filter=f"group_id=eq.{group_id}",
            callback=on_change,
        )
        await channel.subscribe()
        logger.info(f"Subscribed to role changes for user {user_id} in group {group_id}")
        return RoleSubscription(realtime_client, channel)


class RoleWatcher:
    """
    Keeps the latest PermissionEngine for one (group, user) pair.

    The engine is replaced, never mutated, on every role delivered by the
    store; the most recently observed role wins.
    """

    def __init__(
        self,
        store: RoleStore,
        group_id: str,
        user_id: str,
        on_update: Optional[Callable[[PermissionEngine], Union[None, Awaitable[None]]]] = None
    ):
        self.store = store
        self.group_id = group_id
        self.user_id = user_id
        self.on_update = on_update
        self._engine = PermissionEngine(None, user_id)
        self._subscription: Optional[RoleSubscription] = None

    @property
    def engine(self) -> PermissionEngine:
        return self._engine

    async def apply(self, role: Optional[Role]):
        self._engine = self._engine.with_role(role)
        if self.on_update is not None:
            result = self.on_update(self._engine)
            if inspect.isawaitable(result):
                await result

    async def start(self, realtime_client: AsyncClient) -> PermissionEngine:
        self._engine = await asyncio.to_thread(self.store.engine_for, self.group_id, self.user_id)
        self._subscription = await self.store.subscribe_to_role_changes(
            self.group_id, self.user_id, self.apply, realtime_client
        )
        return self._engine

    async def stop(self):
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None
