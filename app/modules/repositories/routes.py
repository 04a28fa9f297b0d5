from fastapi import APIRouter, Depends, HTTPException, Query
from app.database.supabase_client import get_supabase
from app.modules.repositories.schemas import (
    RepositoryCreate, RepositoryUpdate, RepositoryResponse, GitHubConnectRequest,
    AvailableRepositoriesResponse, RequiresSetup, RequiresReconnect, SuccessResponse,
    FileTreeNode, RepositoryFileContent
)
from app.modules.repositories.service import RepositoryService
from app.core.dependencies import get_current_user, check_workspace_access, check_workspace_admin
from supabase import Client
from typing import List, Dict, Optional

router = APIRouter(prefix="/repositories", tags=["repositories"])


def get_repository_service(supabase: Client = Depends(get_supabase)) -> RepositoryService:
    return RepositoryService(supabase)


@router.get("", response_model=List[RepositoryResponse])
async def list_workspace_repositories(
    workspace_id: str = Query(..., alias="workspaceId", min_length=1),
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_access(workspace_id, user_data, supabase)
    return service.get_workspace_repositories(workspace_id)


@router.post("", response_model=RepositoryResponse, status_code=201)
async def add_repository(
    repository_data: RepositoryCreate,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(repository_data.workspace_id, user_data, supabase, "add repositories")
    return service.add_repository(repository_data)


@router.get("/github/available", response_model=AvailableRepositoriesResponse)
async def list_available_github_repositories(
    page: int = Query(1, ge=1),
    per_page: int = Query(30, ge=1, le=100, alias="perPage"),
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service)
):
    """Caller's GitHub repositories, or a setup/reconnect prompt"""
    result = await service.list_available_remote_repositories(user_data["id"], page=page, per_page=per_page)
    if isinstance(result, RequiresSetup):
        return AvailableRepositoriesResponse(message=result.message, requires_setup=True)
    if isinstance(result, RequiresReconnect):
        return AvailableRepositoriesResponse(message=result.message, requires_reconnect=True)
    return AvailableRepositoriesResponse(data=result.repositories)


@router.post("/github/connect", response_model=RepositoryResponse, status_code=201)
async def connect_github_repository(
    body: GitHubConnectRequest,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    check_workspace_admin(body.workspace_id, user_data, supabase, "connect repositories")
    return await service.connect(user_data["id"], body.workspace_id, body.owner, body.repo)


@router.get("/{repository_id}", response_model=RepositoryResponse)
async def get_repository(
    repository_id: str,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    repository = service.get_repository_by_id(repository_id)
    check_workspace_access(repository.workspace_id, user_data, supabase)
    return repository


@router.put("/{repository_id}", response_model=RepositoryResponse)
async def update_repository(
    repository_id: str,
    updates: RepositoryUpdate,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    repository = service.get_repository_by_id(repository_id)
    check_workspace_admin(repository.workspace_id, user_data, supabase, "update repositories")
    return service.update_repository(repository_id, updates)


@router.delete("/{repository_id}", response_model=SuccessResponse)
async def disconnect_repository(
    repository_id: str,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    repository = service.get_repository_by_id(repository_id)
    check_workspace_admin(repository.workspace_id, user_data, supabase, "delete repositories")
    service.disconnect(repository_id)
    return SuccessResponse()


@router.post("/{repository_id}/sync", response_model=RepositoryResponse)
async def sync_repository(
    repository_id: str,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    repository = service.get_repository_by_id(repository_id)
    check_workspace_access(repository.workspace_id, user_data, supabase)
    return await service.sync(repository_id, user_id=user_data["id"])


@router.get("/{repository_id}/tree", response_model=List[FileTreeNode])
async def get_repository_file_tree(
    repository_id: str,
    branch: Optional[str] = None,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    repository = service.get_repository_by_id(repository_id)
    check_workspace_access(repository.workspace_id, user_data, supabase)
    return await service.get_file_tree(repository_id, user_id=user_data["id"], branch=branch)


@router.get("/{repository_id}/file", response_model=RepositoryFileContent)
async def get_repository_file_content(
    repository_id: str,
    path: Optional[str] = None,
    branch: Optional[str] = None,
    user_data: Dict = Depends(get_current_user),
    service: RepositoryService = Depends(get_repository_service),
    supabase: Client = Depends(get_supabase)
):
    """Raw content of one file at branch (default branch when omitted)"""
    if not path:
        raise HTTPException(status_code=400, detail="path query parameter is required")
    repository = service.get_repository_by_id(repository_id)
    check_workspace_access(repository.workspace_id, user_data, supabase)
    return await service.get_file_content(repository_id, path, user_id=user_data["id"], branch=branch)
