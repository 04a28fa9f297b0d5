from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from app.config.settings import settings
from app.database.supabase_client import get_supabase, get_admin_supabase
from app.modules.repositories.integration_service import GitIntegrationService, OAuthCallbackError
from app.modules.repositories.schemas import GitHubStatusResponse, GitHubAuthorizeResponse, SuccessResponse
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict, Optional
from urllib.parse import urlencode
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/github", tags=["github"])


def get_integration_service(supabase: Client = Depends(get_supabase)) -> GitIntegrationService:
    return GitIntegrationService(supabase)


def get_admin_integration_service(admin_supabase: Client = Depends(get_admin_supabase)) -> GitIntegrationService:
    return GitIntegrationService(admin_supabase)


def _frontend_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.frontend_url.rstrip('/')}/auth/callback/github?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=302)


@router.get("/status", response_model=GitHubStatusResponse)
async def github_status(
    user_data: Dict = Depends(get_current_user),
    service: GitIntegrationService = Depends(get_integration_service)
):
    return await service.get_github_status(user_data["id"])


@router.get("/authorize", response_model=GitHubAuthorizeResponse)
async def github_authorize(
    user_data: Dict = Depends(get_current_user),
    service: GitIntegrationService = Depends(get_integration_service)
):
    return GitHubAuthorizeResponse(auth_url=service.initiate_auth(user_data["id"]))


@router.get("/callback")
async def github_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    service: GitIntegrationService = Depends(get_admin_integration_service)
):
    """GitHub redirects here without a Clerk session; the result goes back to the frontend."""
    try:
        await service.complete_auth(code, state)
    except OAuthCallbackError as e:
        logger.warning("GitHub OAuth callback failed: %s", e)
        return _frontend_redirect(github="error", message=str(e))
    except Exception:
        logger.exception("GitHub OAuth callback error")
        return _frontend_redirect(github="error", message="Failed to connect GitHub account")
    return _frontend_redirect(github="connected")


@router.get("/disconnect", response_model=SuccessResponse)
async def github_disconnect(
    user_data: Dict = Depends(get_current_user),
    service: GitIntegrationService = Depends(get_integration_service)
):
    service.disconnect_github(user_data["id"])
    return SuccessResponse()
