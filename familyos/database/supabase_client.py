from typing import Optional

from supabase import AsyncClient, Client, ClientOptions, acreate_client, create_client
from familyos.config import settings


class SupabaseClient:
    _client: Client = None
    _async_client: Optional[AsyncClient] = None

    @classmethod
    def get_client(cls) -> Client:
        """Shared anon client. Never signs in, so it never carries a user session."""
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def create_session_client(cls) -> Client:
        """Fresh client for sign-in flows; its session dies with the request."""
        return create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(auto_refresh_token=False, persist_session=False)
        )

    @classmethod
    def get_user_client(cls, access_token: str) -> Client:
        """Client whose table queries run as the caller, so RLS sees auth.uid()"""
        client = cls.create_session_client()
        client.postgrest.auth(access_token)
        return client

    @classmethod
    async def get_async_client(cls) -> AsyncClient:
        """
        Async client for realtime channels. Uses the service_role key when set so
        group_members changes are delivered regardless of RLS; callers filter by user.
        """
        if cls._async_client is None:
            key = settings.supabase_service_role_key or settings.supabase_key
            cls._async_client = await acreate_client(settings.supabase_url, key)
        return cls._async_client


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_session_supabase() -> Client:
    return SupabaseClient.create_session_client()


async def get_async_supabase() -> AsyncClient:
    return await SupabaseClient.get_async_client()
