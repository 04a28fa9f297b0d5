from fastapi import APIRouter, Depends, HTTPException, Query, status
from app.database.supabase_client import get_supabase, get_admin_supabase
from app.modules.users.schemas import (
    UserProfileSync, UserUpdate, UserResponse, UserListResponse, UsernameAvailabilityResponse
)
from app.modules.users.service import UserService
from app.modules.workspaces.lifecycle import WorkspaceLifecycleManager
from app.core.dependencies import get_current_user
from app.core.errors import WorkspaceCreationFailedError
from supabase import Client
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(supabase: Client = Depends(get_supabase)) -> UserService:
    return UserService(supabase)


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_profile(user_data["id"])


@router.put("/me", response_model=UserResponse)
async def update_me(
    updates: UserUpdate,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    if updates.username is not None:
        if not updates.username.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username cannot be empty")
        if not service.is_username_available(updates.username, exclude_user_id=user_data["id"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")
    return service.update_user_profile(user_data["id"], updates)


@router.delete("/me", status_code=204)
async def delete_me(
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    service.delete_user(user_data["id"])
    return None


@router.post("/sync", response_model=UserResponse)
async def sync_me(
    profile: UserProfileSync,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
    admin_supabase: Client = Depends(get_admin_supabase)
):
    """
    Direct-login sync: upsert the caller from the identity provider snapshot
    and make sure they have a default workspace.
    """
    if profile.email is None and user_data.get("email"):
        profile.email = user_data["email"]
    user = service.sync_user(user_data["id"], profile)

    try:
        WorkspaceLifecycleManager(admin_supabase).ensure_default_workspace(
            user.id, profile.first_name, profile.last_name, user.email
        )
    except WorkspaceCreationFailedError as e:
        # Profile sync still succeeded; listing workspaces retries creation
        logger.error("Default workspace creation failed for %s during sync: %s", user.id, e)
    return user


@router.get("/check-username/{username}", response_model=UsernameAvailabilityResponse)
async def check_username(
    username: str,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    available = service.is_username_available(username, exclude_user_id=user_data["id"])
    return UsernameAvailabilityResponse(username=username.lower(), available=available)


@router.get("/id/{user_id}", response_model=UserResponse)
async def get_user_by_id(
    user_id: str,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_profile(user_id)


@router.get("/email/{email}", response_model=UserResponse)
async def get_user_by_email(
    email: str,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_by_email(email)


@router.get("/username/{username}", response_model=UserResponse)
async def get_user_by_username(
    username: str,
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.get_user_by_username(username)


@router.get("", response_model=UserListResponse)
async def list_users(
    email: Optional[str] = None,
    username: Optional[str] = None,
    provider: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_data: Dict = Depends(get_current_user),
    service: UserService = Depends(get_user_service)
):
    return service.list_users(email=email, username=username, provider=provider, page=page, limit=limit)
