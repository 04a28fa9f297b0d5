"""
Core dependencies for route protection and workspace permission checking
"""

from fastapi import Depends, HTTPException, status
from app.core.security import get_clerk_token
from app.modules.auth.service import ClerkAuthService
from app.modules.workspaces.schemas import WorkspaceRole
from app.modules.workspaces.service import WorkspaceService
from supabase import Client
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)


def get_auth_service() -> ClerkAuthService:
    return ClerkAuthService()


def get_current_user(
    token: str = Depends(get_clerk_token),
    auth_service: ClerkAuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Verified Clerk user for the request; "id" is the Clerk user ID"""
    return auth_service.get_current_user(token)


def check_workspace_access(workspace_id: str, user_data: dict, supabase: Client) -> WorkspaceRole:
    """Allow any member of the workspace; returns the caller's role"""
    role = WorkspaceService(supabase).get_user_role_in_workspace(workspace_id, user_data["id"])
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this workspace"
        )
    return role


def check_workspace_admin(workspace_id: str, user_data: dict, supabase: Client, action: str = "perform this action") -> WorkspaceRole:
    """Allow OWNER or ADMIN of the workspace"""
    role = WorkspaceService(supabase).get_user_role_in_workspace(workspace_id, user_data["id"])
    if role not in (WorkspaceRole.OWNER, WorkspaceRole.ADMIN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only workspace admins and owners can {action}"
        )
    return role


def check_workspace_owner(workspace_id: str, user_data: dict, supabase: Client, action: str = "perform this action") -> WorkspaceRole:
    role = WorkspaceService(supabase).get_user_role_in_workspace(workspace_id, user_data["id"])
    if role != WorkspaceRole.OWNER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only the workspace owner can {action}"
        )
    return role
