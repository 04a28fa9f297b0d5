from fastapi import APIRouter, Depends, HTTPException, status
from app.database.supabase_client import get_supabase
from app.modules.workspaces.schemas import (
    WorkspaceCreate, WorkspaceUpdate, WorkspaceResponse, WorkspaceWithRoleResponse,
    WorkspaceMemberAdd, WorkspaceMemberRoleUpdate, WorkspaceMemberResponse,
    WorkspaceRole, WorkspaceRoleResponse
)
from app.modules.workspaces.service import WorkspaceService
from app.core.dependencies import get_current_user, check_workspace_access, check_workspace_admin, check_workspace_owner
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


def get_workspace_service(supabase: Client = Depends(get_supabase)) -> WorkspaceService:
    return WorkspaceService(supabase)


@router.post("", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    workspace_data: WorkspaceCreate,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service)
):
    name = workspace_data.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Workspace name is required")
    return service.create_workspace(user_data["id"], name)


@router.get("", response_model=List[WorkspaceWithRoleResponse])
async def list_workspaces(
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service)
):
    """Workspaces the caller is a member of (creates a default one on first use)"""
    return service.get_user_workspaces(user_data["id"])


@router.get("/owned", response_model=List[WorkspaceResponse])
async def list_owned_workspaces(
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service)
):
    return service.get_owned_workspaces(user_data["id"])


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: str,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(workspace_id, user_data, supabase)
    return service.get_workspace_by_id(workspace_id)


@router.put("/{workspace_id}", response_model=WorkspaceResponse)
async def update_workspace(
    workspace_id: str,
    workspace_data: WorkspaceUpdate,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(workspace_id, user_data, supabase, "update workspace settings")
    name = workspace_data.name.strip() if workspace_data.name is not None else None
    if name == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Workspace name cannot be empty")
    return service.update_workspace(workspace_id, name=name)


@router.delete("/{workspace_id}", status_code=204)
async def delete_workspace(
    workspace_id: str,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_owner(workspace_id, user_data, supabase, "delete the workspace")
    service.delete_workspace(workspace_id)
    return None


@router.get("/{workspace_id}/members", response_model=List[WorkspaceMemberResponse])
async def list_workspace_members(
    workspace_id: str,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(workspace_id, user_data, supabase)
    return service.get_workspace_members(workspace_id)


@router.post("/{workspace_id}/members", response_model=WorkspaceMemberResponse, status_code=201)
async def add_workspace_member(
    workspace_id: str,
    member_data: WorkspaceMemberAdd,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    caller_role = check_workspace_admin(workspace_id, user_data, supabase, "add members")
    if member_data.role == WorkspaceRole.OWNER and caller_role != WorkspaceRole.OWNER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the workspace owner can add other owners")
    return service.add_workspace_member(workspace_id, member_data.user_id, member_data.role)


@router.delete("/{workspace_id}/members/{member_id}", status_code=204)
async def remove_workspace_member(
    workspace_id: str,
    member_id: str,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    caller_role = check_workspace_admin(workspace_id, user_data, supabase, "remove members")
    member_role = service.get_user_role_in_workspace(workspace_id, member_id)
    if member_role == WorkspaceRole.OWNER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot remove workspace owner. Transfer ownership first.")
    if member_role == WorkspaceRole.ADMIN and caller_role != WorkspaceRole.OWNER:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the workspace owner can remove admins")
    service.remove_workspace_member(workspace_id, member_id)
    return None


@router.put("/{workspace_id}/members/{member_id}", response_model=WorkspaceMemberResponse)
async def update_workspace_member_role(
    workspace_id: str,
    member_id: str,
    role_data: WorkspaceMemberRoleUpdate,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service),
    supabase: Client = Depends(get_supabase)
):
    caller_role = check_workspace_admin(workspace_id, user_data, supabase, "update member roles")
    is_owner = caller_role == WorkspaceRole.OWNER
    member_role = service.get_user_role_in_workspace(workspace_id, member_id)

    if (role_data.role == WorkspaceRole.OWNER or member_role == WorkspaceRole.OWNER) and not is_owner:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the workspace owner can manage owner roles")
    # Admins cannot demote other admins
    if not is_owner and member_role == WorkspaceRole.ADMIN and role_data.role != WorkspaceRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the workspace owner can change admin roles")

    return service.update_workspace_member_role(workspace_id, member_id, role_data.role)


@router.get("/{workspace_id}/role", response_model=WorkspaceRoleResponse)
async def get_my_role(
    workspace_id: str,
    user_data: Dict = Depends(get_current_user),
    service: WorkspaceService = Depends(get_workspace_service)
):
    role = service.get_user_role_in_workspace(workspace_id, user_data["id"])
    if role is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User is not a member of this workspace")
    return WorkspaceRoleResponse(role=role)
