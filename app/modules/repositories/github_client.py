"""
Thin async client for the GitHub REST API and OAuth endpoints.
"""

from app.config.settings import settings
from app.utils.retry import retry_external_api, RETRYABLE_STATUS_CODES
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode
import httpx
import logging

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
OAUTH_SCOPES = ("repo", "read:user", "user:email")
DEFAULT_TIMEOUT = 15.0


class GitHubAPIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class GitHubTokenInvalidError(GitHubAPIError):
    """401 from GitHub: the token expired or was revoked."""


class GitHubNotFoundError(GitHubAPIError):
    pass


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return response.reason_phrase or f"HTTP {response.status_code}"


def _raise_for_github_status(response: httpx.Response) -> None:
    if response.status_code == 401:
        raise GitHubTokenInvalidError(
            "GitHub access token has expired or been revoked", status_code=401
        )
    if response.status_code == 404:
        raise GitHubNotFoundError(f"GitHub resource not found: {response.request.url.path}", status_code=404)
    if response.status_code == 403:
        message = _error_message(response)
        if "rate limit" in message.lower():
            raise GitHubAPIError("GitHub API rate limit exceeded. Please try again later.", status_code=403)
        raise GitHubAPIError(f"GitHub API access forbidden: {message}", status_code=403)
    raise GitHubAPIError(f"GitHub API error: {_error_message(response)}", status_code=response.status_code)


class _BaseGitHubClient:
    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send with retries for network errors and 5xx/429/408. Once retries are
        exhausted those surface as GitHubAPIError; other statuses are mapped
        without retrying.
        """
        client = self._http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        try:
            async for attempt in retry_external_api():
                with attempt:
                    response = await client.request(method, url, **kwargs)
                    if response.status_code >= 500 or response.status_code in RETRYABLE_STATUS_CODES:
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GitHubAPIError(
                f"GitHub API error: {_error_message(e.response)}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"Could not reach GitHub: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if response.is_error:
            _raise_for_github_status(response)
        return response


class GitHubClient(_BaseGitHubClient):
    """REST calls made with a user's OAuth access token."""

    def __init__(self, access_token: str, http_client: Optional[httpx.AsyncClient] = None):
        super().__init__(http_client)
        self.access_token = access_token
        self.base_url = settings.github_api_base_url.rstrip("/")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = await self._send("GET", f"{self.base_url}{path}", headers=self.headers, params=params)
        return response.json()

    async def get_user(self) -> Dict[str, Any]:
        return await self._get("/user")

    async def list_repositories(self, page: int = 1, per_page: int = 30) -> List[Dict[str, Any]]:
        """Repositories the user owns or collaborates on, most recently updated first"""
        return await self._get("/user/repos", params={
            "page": page,
            "per_page": per_page,
            "sort": "updated",
            "affiliation": "owner,collaborator",
        })

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}")

    async def get_tree(self, owner: str, repo: str, ref: str) -> List[Dict[str, Any]]:
        """Flat recursive listing of the tree at ref (branch, tag or sha)"""
        data = await self._get(f"/repos/{owner}/{repo}/git/trees/{quote(ref)}", params={"recursive": "1"})
        if data.get("truncated"):
            logger.warning("GitHub truncated the tree of %s/%s at %s", owner, repo, ref)
        return data.get("tree", [])

    async def get_file_content(self, owner: str, repo: str, path: str, ref: Optional[str] = None) -> str:
        headers = {**self.headers, "Accept": "application/vnd.github.raw+json"}
        file_path = quote(path.lstrip("/"))
        response = await self._send(
            "GET",
            f"{self.base_url}/repos/{owner}/{repo}/contents/{file_path}",
            headers=headers,
            params={"ref": ref} if ref else None,
        )
        return response.text


class GitHubOAuthClient(_BaseGitHubClient):
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_client)
        self.client_id = client_id if client_id is not None else settings.github_client_id
        self.client_secret = client_secret if client_secret is not None else settings.github_client_secret
        self.redirect_uri = redirect_uri or settings.github_redirect_uri

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def build_authorize_url(self, state: str) -> str:
        query = urlencode({
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": ",".join(OAUTH_SCOPES),
            "state": state,
        })
        return f"{settings.github_oauth_authorize_url}?{query}"

    async def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Trade an authorization code for a token.

        GitHub answers 200 with an "error" field for bad codes, so the body is
        checked as well as the status.
        """
        if not self.is_configured:
            raise GitHubAPIError("GitHub OAuth credentials not configured")
        response = await self._send(
            "POST",
            settings.github_oauth_token_url,
            headers={"Accept": "application/json"},
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
        )
        data = response.json()
        if data.get("error"):
            raise GitHubAPIError(f"GitHub OAuth error: {data.get('error_description') or data['error']}")
        if not data.get("access_token"):
            raise GitHubAPIError("GitHub OAuth error: no access token returned")
        return data
