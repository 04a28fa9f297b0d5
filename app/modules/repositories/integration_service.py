from supabase import Client
from app.config.settings import settings
from app.core.errors import NotFoundError
from app.modules.repositories.github_client import (
    GitHubClient, GitHubOAuthClient, GitHubAPIError, GitHubTokenInvalidError
)
from app.modules.repositories.oauth_state import OAuthStateManager, oauth_state_manager
from app.modules.repositories.schemas import GitProvider, GitHubStatusResponse
from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException
import httpx
import logging

logger = logging.getLogger(__name__)


class OAuthCallbackError(Exception):
    """The GitHub callback could not be completed; the message is shown to the user."""


class GitIntegrationService:
    """
    Per-user OAuth credentials for Git providers (one row per user per provider).

    Routes build this with the caller-scoped client; the OAuth callback builds
    it with the service-role client because GitHub redirects without a Clerk
    session.
    """

    def __init__(
        self,
        supabase: Client,
        http_client: Optional[httpx.AsyncClient] = None,
        state_manager: OAuthStateManager = oauth_state_manager,
    ):
        self.supabase = supabase
        self.http_client = http_client
        self.state_manager = state_manager

    def github_client(self, access_token: str) -> GitHubClient:
        return GitHubClient(access_token, http_client=self.http_client)

    def upsert_integration(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = {**data, "updated_at": datetime.now(timezone.utc).isoformat()}
        try:
            result = self.supabase.table("git_integrations")\
                .upsert(row, on_conflict="user_id,provider")\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to save git integration: {e}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to save git integration")
        return result.data[0]

    def get_user_integration(
        self, user_id: str, provider: GitProvider = GitProvider.GITHUB
    ) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("git_integrations")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("provider", provider.value)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch git integration: {e}")
        return result.data[0] if result.data else None

    def get_integration_by_id(self, integration_id: str) -> Dict[str, Any]:
        try:
            result = self.supabase.table("git_integrations")\
                .select("*")\
                .eq("id", integration_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch git integration: {e}")
        if not result.data:
            raise NotFoundError("Git integration")
        return result.data[0]

    def delete_integration(self, integration_id: str) -> bool:
        try:
            result = self.supabase.table("git_integrations")\
                .delete()\
                .eq("id", integration_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to delete git integration: {e}")

    async def get_github_status(self, user_id: str) -> GitHubStatusResponse:
        """Connection state of the user's GitHub account; the token itself is never returned."""
        integration = self.get_user_integration(user_id)
        if integration is None:
            return GitHubStatusResponse(connected=False)

        try:
            await self.github_client(integration["access_token"]).get_user()
        except GitHubTokenInvalidError:
            logger.info("GitHub token for user %s is no longer valid", user_id)
            return GitHubStatusResponse(connected=False, requires_reconnect=True)
        except GitHubAPIError as e:
            # GitHub unreachable; report what is stored
            logger.warning("Could not validate GitHub token for user %s: %s", user_id, e)

        return GitHubStatusResponse(
            connected=True,
            username=integration.get("provider_username"),
            scopes=integration.get("scopes") or [],
            created_at=integration.get("created_at"),
        )

    def initiate_auth(self, user_id: str) -> str:
        """Authorization URL carrying a fresh one-time state bound to the user"""
        oauth = GitHubOAuthClient(http_client=self.http_client)
        if not oauth.client_id:
            raise HTTPException(status_code=500, detail="GitHub OAuth not configured")
        state = self.state_manager.issue_state(user_id, ttl_seconds=settings.oauth_state_ttl_seconds)
        return oauth.build_authorize_url(state)

    async def complete_auth(self, code: str, state: str) -> Dict[str, Any]:
        """
        Finish the OAuth flow: consume the state, exchange the code, look up
        the GitHub account and store the token for the user who started it.
        """
        if not code:
            raise OAuthCallbackError("Authorization code is missing")
        if not state:
            raise OAuthCallbackError("State parameter is missing")

        user_id = self.state_manager.consume_state(state)
        if user_id is None:
            raise OAuthCallbackError("OAuth state is invalid or expired. Please try again.")

        oauth = GitHubOAuthClient(http_client=self.http_client)
        try:
            token_data = await oauth.exchange_code(code)
            gh_user = await self.github_client(token_data["access_token"]).get_user()
        except GitHubAPIError as e:
            raise OAuthCallbackError(str(e)) from e

        expires_at = None
        if token_data.get("expires_in"):
            expires_at = (
                datetime.now(timezone.utc) + timedelta(seconds=int(token_data["expires_in"]))
            ).isoformat()

        integration = self.upsert_integration({
            "user_id": user_id,
            "provider": GitProvider.GITHUB.value,
            "provider_user_id": str(gh_user["id"]),
            "provider_username": gh_user["login"],
            "access_token": token_data["access_token"],
            "refresh_token": token_data.get("refresh_token"),
            "token_expires_at": expires_at,
            "scopes": [s.strip() for s in (token_data.get("scope") or "").split(",") if s.strip()],
        })
        logger.info("Connected GitHub account %s for user %s", gh_user["login"], user_id)
        return integration

    def disconnect_github(self, user_id: str) -> bool:
        """Forget the stored token. Connected repositories stay in their workspaces."""
        integration = self.get_user_integration(user_id)
        if integration is None:
            raise NotFoundError("GitHub integration")
        return self.delete_integration(integration["id"])
