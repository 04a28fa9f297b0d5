from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal, Union
from datetime import datetime


class GitProvider(str, Enum):
    GITHUB = "GITHUB"
    GITLAB = "GITLAB"
    BITBUCKET = "BITBUCKET"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class RepositoryCreate(BaseModel):
    workspace_id: str
    git_integration_id: Optional[str] = None
    name: str
    full_name: str
    description: Optional[str] = None
    url: str
    provider: GitProvider = GitProvider.GITHUB
    provider_repo_id: str
    default_branch: str = "main"
    is_private: bool = False
    language: Optional[str] = None
    topics: List[str] = []
    stars_count: int = 0
    forks_count: int = 0


class RepositoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    default_branch: Optional[str] = None
    language: Optional[str] = None
    topics: Optional[List[str]] = None
    stars_count: Optional[int] = None
    forks_count: Optional[int] = None


class RepositoryResponse(BaseModel):
    id: str
    workspace_id: str
    git_integration_id: Optional[str] = None
    name: str
    full_name: str
    description: Optional[str] = None
    url: str
    provider: GitProvider
    provider_repo_id: str
    default_branch: str
    is_private: bool = False
    language: Optional[str] = None
    topics: List[str] = []
    stars_count: int = 0
    forks_count: int = 0
    last_synced_at: Optional[datetime] = None
    sync_status: Optional[SyncStatus] = None
    sync_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GitHubConnectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workspace_id: str = Field(alias="workspaceId", min_length=1)
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)


class GitHubRepositorySummary(BaseModel):
    """A repository as GitHub returns it from /user/repos"""
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    full_name: str
    description: Optional[str] = None
    html_url: str
    private: bool = False
    default_branch: Optional[str] = None
    language: Optional[str] = None
    topics: List[str] = []
    stargazers_count: int = 0
    forks_count: int = 0


# Outcomes of listing the caller's remote repositories


class AvailableRepositories(BaseModel):
    kind: Literal["available"] = "available"
    repositories: List[GitHubRepositorySummary]
    page: int
    per_page: int


class RequiresSetup(BaseModel):
    kind: Literal["requires_setup"] = "requires_setup"
    message: str = "GitHub account not connected. Please connect your GitHub account to view repositories."


class RequiresReconnect(BaseModel):
    kind: Literal["requires_reconnect"] = "requires_reconnect"
    message: str = "GitHub authorization expired. Please reconnect your GitHub account."


RemoteRepositoriesResult = Union[AvailableRepositories, RequiresSetup, RequiresReconnect]


class AvailableRepositoriesResponse(BaseModel):
    data: List[GitHubRepositorySummary] = []
    message: Optional[str] = None
    requires_setup: bool = False
    requires_reconnect: bool = False


class GitHubStatusResponse(BaseModel):
    connected: bool
    requires_reconnect: bool = False
    username: Optional[str] = None
    scopes: List[str] = []
    created_at: Optional[datetime] = None


class GitHubAuthorizeResponse(BaseModel):
    auth_url: str


class SuccessResponse(BaseModel):
    success: bool = True


class FileTreeNode(BaseModel):
    name: str
    path: str
    type: Literal["directory", "file"]
    children: Optional[List["FileTreeNode"]] = None


class RepositoryFileContent(BaseModel):
    path: str
    content: str
