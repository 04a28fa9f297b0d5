from fastapi import Depends
from supabase import create_client, Client, ClientOptions
from app.config.settings import settings
from app.core.security import get_clerk_token


class SupabaseClient:
    _client: Client = None
    _service_client: Client = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Client with service_role key; bypasses RLS. Use only in webhook handlers and OAuth callbacks."""
        if cls._service_client is None:
            if not settings.supabase_service_role_key:
                raise RuntimeError(
                    "SUPABASE_SERVICE_ROLE_KEY is required for service role operations"
                )
            cls._service_client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options=ClientOptions(auto_refresh_token=False, persist_session=False),
            )
        return cls._service_client

    @classmethod
    def get_scoped_client(cls, clerk_token: str) -> Client:
        """Client that runs PostgREST queries as the Clerk user, so RLS policies apply."""
        if not clerk_token:
            raise ValueError("Clerk token is required to create a scoped Supabase client")
        client = create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(auto_refresh_token=False, persist_session=False),
        )
        client.postgrest.auth(clerk_token)
        return client

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase(clerk_token: str = Depends(get_clerk_token)) -> Client:
    return SupabaseClient.get_scoped_client(clerk_token)


def get_admin_supabase() -> Client:
    return SupabaseClient.get_service_client()
