from supabase import Client
from app.core.errors import (
    NotFoundError, DuplicateRepositoryError, UpstreamUnavailableError, ReconnectRequiredError,
    is_unique_violation
)
from app.modules.repositories.github_client import (
    GitHubClient, GitHubAPIError, GitHubTokenInvalidError, GitHubNotFoundError
)
from app.modules.repositories.integration_service import GitIntegrationService
from app.modules.repositories.schemas import (
    RepositoryCreate, RepositoryUpdate, RepositoryResponse, GitProvider, SyncStatus,
    GitHubRepositorySummary, AvailableRepositories, RequiresSetup, RequiresReconnect,
    RemoteRepositoriesResult, FileTreeNode, RepositoryFileContent
)
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
from fastapi import HTTPException
import logging

logger = logging.getLogger(__name__)

# Columns refreshed from GitHub on sync
SYNCED_FIELDS = (
    "name", "description", "default_branch", "is_private", "language",
    "topics", "stars_count", "forks_count", "url",
)


def map_github_repository(
    gh_repo: Dict[str, Any], workspace_id: str, git_integration_id: Optional[str]
) -> RepositoryCreate:
    return RepositoryCreate(
        workspace_id=workspace_id,
        git_integration_id=git_integration_id,
        name=gh_repo["name"],
        full_name=gh_repo["full_name"],
        description=gh_repo.get("description"),
        url=gh_repo["html_url"],
        provider=GitProvider.GITHUB,
        provider_repo_id=str(gh_repo["id"]),
        default_branch=gh_repo.get("default_branch") or "main",
        is_private=bool(gh_repo.get("private")),
        language=gh_repo.get("language"),
        topics=gh_repo.get("topics") or [],
        stars_count=gh_repo.get("stargazers_count") or 0,
        forks_count=gh_repo.get("forks_count") or 0,
    )


def build_file_tree(entries: List[Dict[str, Any]]) -> List[FileTreeNode]:
    """
    Nest GitHub's flat recursive tree listing into directories and files.

    Top-level dot entries (.git, .github, .env ...) and everything under them
    are left out. Each level lists directories first, then files, both
    alphabetically ignoring case.
    """
    visible = sorted(
        (e for e in entries if not e["path"].startswith(".")),
        key=lambda e: e["path"],
    )
    nodes: Dict[str, FileTreeNode] = {}
    root: List[FileTreeNode] = []
    for entry in visible:
        parent_path, _, name = entry["path"].rpartition("/")
        is_directory = entry.get("type") == "tree"
        node = FileTreeNode(
            name=name,
            path=entry["path"],
            type="directory" if is_directory else "file",
            children=[] if is_directory else None,
        )
        nodes[entry["path"]] = node
        if not parent_path:
            root.append(node)
            continue
        parent = nodes.get(parent_path)
        if parent is not None and parent.children is not None:
            parent.children.append(node)
    _sort_tree(root)
    return root


def _sort_tree(nodes: List[FileTreeNode]) -> None:
    nodes.sort(key=lambda n: (n.type != "directory", n.name.lower()))
    for node in nodes:
        if node.children:
            _sort_tree(node.children)


class RepositoryService:
    def __init__(self, supabase: Client, integrations: Optional[GitIntegrationService] = None):
        self.supabase = supabase
        self.integrations = integrations or GitIntegrationService(supabase)

    # CRUD

    def add_repository(self, data: RepositoryCreate) -> RepositoryResponse:
        """Insert a repository; (workspace_id, full_name) must be new"""
        if self._find_in_workspace(data.workspace_id, data.full_name) is not None:
            raise DuplicateRepositoryError(data.full_name)
        try:
            result = self.supabase.table("repositories")\
                .insert(data.model_dump(mode="json"))\
                .execute()
        except Exception as e:
            # Lost a race with a concurrent connect of the same repository
            if is_unique_violation(e):
                raise DuplicateRepositoryError(data.full_name)
            raise HTTPException(status_code=500, detail=f"Failed to add repository: {e}")
        if not result.data:
            raise HTTPException(status_code=500, detail="Failed to add repository")
        return RepositoryResponse(**result.data[0])

    def _find_in_workspace(self, workspace_id: str, full_name: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.supabase.table("repositories")\
                .select("id")\
                .eq("workspace_id", workspace_id)\
                .eq("full_name", full_name)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to check repository existence: {e}")
        return result.data[0] if result.data else None

    def get_repository_by_id(self, repository_id: str) -> RepositoryResponse:
        try:
            result = self.supabase.table("repositories")\
                .select("*")\
                .eq("id", repository_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch repository: {e}")
        if not result.data:
            raise NotFoundError("Repository")
        return RepositoryResponse(**result.data[0])

    def get_workspace_repositories(self, workspace_id: str) -> List[RepositoryResponse]:
        try:
            result = self.supabase.table("repositories")\
                .select("*")\
                .eq("workspace_id", workspace_id)\
                .order("created_at", desc=True)\
                .execute()
            return [RepositoryResponse(**r) for r in result.data]
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to fetch repositories: {e}")

    def update_repository(self, repository_id: str, updates: RepositoryUpdate) -> RepositoryResponse:
        update_data = updates.model_dump(exclude_none=True)
        if not update_data:
            return self.get_repository_by_id(repository_id)
        return self._update(repository_id, update_data)

    def _update(self, repository_id: str, update_data: Dict[str, Any]) -> RepositoryResponse:
        update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            result = self.supabase.table("repositories")\
                .update(update_data)\
                .eq("id", repository_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to update repository: {e}")
        if not result.data:
            raise NotFoundError("Repository")
        return RepositoryResponse(**result.data[0])

    def disconnect(self, repository_id: str) -> None:
        """Remove the repository from its workspace. The GitHub token is left alone."""
        try:
            result = self.supabase.table("repositories")\
                .delete()\
                .eq("id", repository_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=f"Failed to delete repository: {e}")
        if not result.data:
            raise NotFoundError("Repository")

    # GitHub-backed operations

    async def list_available_remote_repositories(
        self, user_id: str, page: int = 1, per_page: int = 30
    ) -> RemoteRepositoriesResult:
        """
        The caller's GitHub repositories.

        A missing integration or a dead token come back as RequiresSetup /
        RequiresReconnect so the UI can prompt; other GitHub failures raise
        UpstreamUnavailableError.
        """
        integration = self.integrations.get_user_integration(user_id)
        if integration is None:
            return RequiresSetup()

        client = self.integrations.github_client(integration["access_token"])
        try:
            repos = await client.list_repositories(page=page, per_page=per_page)
        except GitHubTokenInvalidError:
            logger.info("GitHub token for user %s rejected while listing repositories", user_id)
            return RequiresReconnect()
        except GitHubAPIError as e:
            raise UpstreamUnavailableError(f"Failed to fetch GitHub repositories: {e}")

        return AvailableRepositories(
            repositories=[GitHubRepositorySummary(**r) for r in repos],
            page=page,
            per_page=per_page,
        )

    async def connect(self, user_id: str, workspace_id: str, owner: str, repo_name: str) -> RepositoryResponse:
        integration = self.integrations.get_user_integration(user_id)
        if integration is None:
            raise HTTPException(
                status_code=400,
                detail="GitHub integration not found. Please connect your GitHub account first."
            )

        client = self.integrations.github_client(integration["access_token"])
        try:
            gh_repo = await client.get_repository(owner, repo_name)
        except GitHubTokenInvalidError:
            raise ReconnectRequiredError()
        except GitHubNotFoundError:
            raise NotFoundError(f"GitHub repository {owner}/{repo_name}")
        except GitHubAPIError as e:
            raise UpstreamUnavailableError(f"Failed to fetch GitHub repository: {e}")

        repository = self.add_repository(map_github_repository(gh_repo, workspace_id, integration["id"]))
        logger.info("Connected %s to workspace %s", repository.full_name, workspace_id)
        return repository

    async def sync(self, repository_id: str, user_id: Optional[str] = None) -> RepositoryResponse:
        """
        Re-fetch metadata from GitHub and refresh the stored row.

        Uses the integration that connected the repository, falling back to
        the caller's own if that one was disconnected. A failed fetch is
        recorded on the row (sync_status 'error') before raising.
        """
        repository = self.get_repository_by_id(repository_id)
        integration = self._integration_for(repository, user_id)

        owner, _, repo_name = repository.full_name.partition("/")
        client = self.integrations.github_client(integration["access_token"])
        try:
            gh_repo = await client.get_repository(owner, repo_name)
        except GitHubTokenInvalidError:
            self._record_sync_error(repository_id, "GitHub token expired or revoked")
            raise ReconnectRequiredError()
        except GitHubNotFoundError:
            self._record_sync_error(repository_id, "Repository no longer exists on GitHub")
            raise NotFoundError(f"GitHub repository {repository.full_name}")
        except GitHubAPIError as e:
            self._record_sync_error(repository_id, str(e))
            raise UpstreamUnavailableError(f"Failed to sync repository: {e}")

        mapped = map_github_repository(gh_repo, repository.workspace_id, integration["id"])
        update_data = mapped.model_dump(mode="json", include=set(SYNCED_FIELDS))
        update_data.update({
            "last_synced_at": datetime.now(timezone.utc).isoformat(),
            "sync_status": SyncStatus.SUCCESS.value,
            "sync_error": None,
        })
        return self._update(repository_id, update_data)

    async def get_file_tree(
        self, repository_id: str, user_id: Optional[str] = None, branch: Optional[str] = None
    ) -> List[FileTreeNode]:
        """Nested file tree of the repository at branch (default branch when omitted)"""
        repository = self.get_repository_by_id(repository_id)
        client = self._github_client_for(repository, user_id)
        owner, _, repo_name = repository.full_name.partition("/")
        ref = branch or repository.default_branch
        try:
            entries = await client.get_tree(owner, repo_name, ref)
        except GitHubTokenInvalidError:
            raise ReconnectRequiredError()
        except GitHubNotFoundError:
            raise NotFoundError(f"Branch {ref} of {repository.full_name}")
        except GitHubAPIError as e:
            raise UpstreamUnavailableError(f"Failed to fetch repository file tree: {e}")
        return build_file_tree(entries)

    async def get_file_content(
        self, repository_id: str, path: str, user_id: Optional[str] = None, branch: Optional[str] = None
    ) -> RepositoryFileContent:
        repository = self.get_repository_by_id(repository_id)
        client = self._github_client_for(repository, user_id)
        owner, _, repo_name = repository.full_name.partition("/")
        try:
            content = await client.get_file_content(owner, repo_name, path, branch or repository.default_branch)
        except GitHubTokenInvalidError:
            raise ReconnectRequiredError()
        except GitHubNotFoundError:
            raise NotFoundError(f"File {path}")
        except GitHubAPIError as e:
            raise UpstreamUnavailableError(f"Failed to fetch file content: {e}")
        return RepositoryFileContent(path=path, content=content)

    def _github_client_for(self, repository: RepositoryResponse, user_id: Optional[str]) -> GitHubClient:
        integration = self._integration_for(repository, user_id)
        return self.integrations.github_client(integration["access_token"])

    def _integration_for(self, repository: RepositoryResponse, user_id: Optional[str]) -> Dict[str, Any]:
        if repository.git_integration_id:
            try:
                return self.integrations.get_integration_by_id(repository.git_integration_id)
            except NotFoundError:
                pass
        integration = self.integrations.get_user_integration(user_id) if user_id else None
        if integration is None:
            raise HTTPException(
                status_code=400,
                detail="GitHub integration not found. Please connect your GitHub account first."
            )
        return integration

    def _record_sync_error(self, repository_id: str, message: str) -> None:
        try:
            self.supabase.table("repositories").update({
                "sync_status": SyncStatus.ERROR.value,
                "sync_error": message,
                "last_synced_at": datetime.now(timezone.utc).isoformat(),
            }).eq("id", repository_id).execute()
        except Exception:
            logger.exception("Failed to record sync error for repository %s", repository_id)
