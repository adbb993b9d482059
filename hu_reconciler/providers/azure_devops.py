"""Azure DevOps Git provider implementation using direct REST API calls.

Two layers live here:

- ``AzureDevOpsTransport`` composes the API root
  (``{base_url}/{organization}/{project}/_apis/git``), appends the
  ``api-version`` parameter, injects Basic authentication built from a
  personal access token and maps HTTP failures onto the exception hierarchy.
- ``AzureDevOpsProvider`` issues the Git queries a reconciliation needs and
  parses the payloads into domain models. It raises on failure; fault
  tolerance is the job of ``hu_reconciler.engine.evidence``.
"""

import base64
import re
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from hu_reconciler.exceptions import ExternalServiceError, TransientServiceError
from hu_reconciler.models.domain import (
    BRANCH_REF_PREFIX,
    Commit,
    PullRequest,
    Repository,
    strip_branch_ref,
)
from hu_reconciler.providers.base import HostTransport
from hu_reconciler.utils.connection_pool import HTTPConnectionPool, get_pool
from hu_reconciler.utils.retry import async_retry

log = structlog.get_logger(__name__)

# Azure reports 7 fractional digits; fromisoformat() accepts at most 6.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an Azure DevOps ISO 8601 timestamp, returning None when unusable."""
    if not value:
        return None
    normalized = _FRACTION_RE.sub(r"\1", value.replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        log.debug("timestamp_unparseable", value=value)
        return None


def branch_ref(branch: str) -> str:
    """Return the full ref name (``refs/heads/<branch>``) of a branch."""
    if branch.startswith(BRANCH_REF_PREFIX):
        return branch
    return f"{BRANCH_REF_PREFIX}{branch}"


class AzureDevOpsTransport(HostTransport):
    """Authenticated JSON transport to the Azure DevOps Git REST API."""

    def __init__(
        self,
        organization: str,
        project: str,
        token: str,
        api_version: str = "7.1",
        base_url: str = "https://dev.azure.com",
        timeout: float = 30.0,
        max_connections: int = 20,
        max_concurrent_requests: int = 16,
    ):
        """Initialize Azure DevOps transport.

        Args:
            organization: Azure DevOps organization name
            project: Project name
            token: Personal access token
            api_version: Value of the api-version query parameter
            base_url: Host base URL (e.g., https://dev.azure.com)
            timeout: Request timeout in seconds
            max_connections: Pooled connection limit
            max_concurrent_requests: Requests allowed in flight at once
        """
        self.base_url = base_url.rstrip("/")
        self.organization = organization
        self.project = project
        self.api_base = f"{self.base_url}/{quote(organization)}/{quote(project)}/_apis/git"
        self.api_version = api_version
        self.token = token.strip() if token else ""
        self.timeout = timeout
        self.max_connections = max_connections
        self.max_concurrent_requests = max_concurrent_requests
        self._pool: HTTPConnectionPool | None = None

    def _auth_headers(self) -> dict[str, str]:
        credentials = base64.b64encode(f":{self.token}".encode()).decode("ascii")
        return {
            "Authorization": f"Basic {credentials}",
            "Content-Type": "application/json",
        }

    async def connect(self) -> None:
        """Initialize the connection pool."""
        if self._pool is not None:
            return
        self._pool = await get_pool(
            name=f"azure-devops-{self.api_base}",
            base_url=self.api_base,
            max_connections=self.max_connections,
            max_concurrent_requests=self.max_concurrent_requests,
            timeout=self.timeout,
            headers=self._auth_headers(),
        )
        log.info(
            "azure_devops_connected",
            organization=self.organization,
            project=self.project,
            token_present=bool(self.token),
        )

    async def disconnect(self) -> None:
        """Clear pool reference (pool manager handles actual cleanup)."""
        self._pool = None

    def _with_version(self, params: dict[str, Any] | None) -> dict[str, Any]:
        merged = dict(params or {})
        merged["api-version"] = self.api_version
        return merged

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(TransientServiceError,))
    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``path`` below the API root and decode the JSON body."""
        return await self._request("GET", path, params=self._with_version(params))

    @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(TransientServiceError,))
    async def post_json(
        self,
        path: str,
        body: dict[str, Any],
        params: dict[str, Any] | None = None,
    ) -> Any:
        """POST a JSON body to ``path`` below the API root and decode the JSON body."""
        return await self._request("POST", path, json=body, params=self._with_version(params))

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self._pool is None:
            await self.connect()
        assert self._pool is not None

        send = self._pool.get if method == "GET" else self._pool.post
        try:
            response = await send(path, **kwargs)
        except httpx.TransportError as e:
            raise TransientServiceError(f"Azure DevOps {method} {path} failed: {e}") from e
        return self._decode(response, method, path)

    def _decode(self, response: httpx.Response, method: str, path: str) -> Any:
        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientServiceError(
                f"Azure DevOps {method} {path} failed",
                status_code=status,
                response_text=response.text,
            )
        if status >= 400:
            raise ExternalServiceError(
                f"Azure DevOps {method} {path} failed",
                status_code=status,
                response_text=response.text,
            )
        # An expired PAT makes Azure redirect to a sign-in page instead of a 401
        if status >= 300:
            raise ExternalServiceError(
                f"Azure DevOps {method} {path} redirected; check the personal access token",
                status_code=status,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"Azure DevOps {method} {path} returned a non-JSON body",
                status_code=status,
                response_text=response.text[:200],
            ) from e


class AzureDevOpsProvider:
    """Azure DevOps Git queries used by a reconciliation run.

    Every method raises ``ExternalServiceError`` on failure; nothing here
    swallows errors.
    """

    def __init__(self, transport: HostTransport):
        self.transport = transport

    @staticmethod
    def _repo_path(repository_id: str, suffix: str = "") -> str:
        return f"/repositories/{quote(repository_id, safe='')}{suffix}"

    async def list_repositories(self) -> list[Repository]:
        """List all Git repositories of the project."""
        log.info("list_repositories")
        data = await self.transport.get_json("/repositories")
        return [self._parse_repository(item) for item in _values(data)]

    async def list_branches(self, repository_id: str) -> list[str]:
        """List branch names of a repository, ref prefix stripped."""
        log.info("list_branches", repository=repository_id)
        data = await self.transport.get_json(
            self._repo_path(repository_id, "/refs"),
            params={"filter": "heads/"},
        )
        return [strip_branch_ref(ref.get("name")) for ref in _values(data) if ref.get("name")]

    async def get_commits_diff(
        self,
        repository_id: str,
        source_branch: str,
        target_branch: str,
        top: int = 200,
    ) -> list[Commit]:
        """Commits reachable from ``source_branch`` but not from ``target_branch``.

        Uses the commitsbatch endpoint: ``itemVersion`` is the base (target)
        and ``compareVersion`` the branch carrying the new work (source).
        """
        log.info("get_commits_diff", repository=repository_id, source=source_branch, target=target_branch)
        body = {
            "$top": top,
            "itemVersion": {"version": target_branch, "versionType": "branch"},
            "compareVersion": {"version": source_branch, "versionType": "branch"},
            "includeComment": True,
        }
        data = await self.transport.post_json(self._repo_path(repository_id, "/commitsbatch"), body)
        return [self._parse_commit(item) for item in _values(data)]

    async def get_commits(self, repository_id: str, branch: str, top: int = 100) -> list[Commit]:
        """Most recent commits on a branch."""
        log.info("get_commits", repository=repository_id, branch=branch, top=top)
        data = await self.transport.get_json(
            self._repo_path(repository_id, "/commits"),
            params={
                "searchCriteria.itemVersion.version": branch,
                "searchCriteria.itemVersion.versionType": "branch",
                "searchCriteria.$top": top,
            },
        )
        return [self._parse_commit(item) for item in _values(data)]

    async def get_commit(self, repository_id: str, commit_id: str) -> Commit:
        """Single commit with its full, untruncated comment."""
        log.debug("get_commit", repository=repository_id, commit=commit_id)
        data = await self.transport.get_json(self._repo_path(repository_id, f"/commits/{commit_id}"))
        return self._parse_commit(data)

    async def query_pull_requests_by_commits(
        self, repository_id: str, commit_ids: list[str]
    ) -> list[PullRequest]:
        """Pull requests whose last merge commit is one of ``commit_ids``.

        The host answers ``{"results": [{commitId: [PR, ...]}, ...]}``; the
        commit keys are ignored and the PR lists flattened. Callers must keep
        ``commit_ids`` within the host's query-size limit.
        """
        log.info("query_pull_requests_by_commits", repository=repository_id, commits=len(commit_ids))
        body = {"queries": [{"type": "lastMergeCommit", "items": list(commit_ids)}]}
        data = await self.transport.post_json(self._repo_path(repository_id, "/pullrequestquery"), body)

        results = (data or {}).get("results") or []
        if not results:
            log.warning("pull_request_query_empty", repository=repository_id, commits=len(commit_ids))
            return []

        pull_requests: list[PullRequest] = []
        for result in results:
            if not isinstance(result, dict):
                continue
            for prs in result.values():
                if isinstance(prs, list):
                    pull_requests.extend(self._parse_pull_request(pr) for pr in prs if pr)
        return pull_requests

    async def list_pull_requests(
        self,
        repository_id: str,
        status: str = "all",
        target_branch: str | None = None,
        source_branch: str | None = None,
        top: int = 100,
    ) -> list[PullRequest]:
        """List pull requests filtered by status and branch refs."""
        log.info(
            "list_pull_requests",
            repository=repository_id,
            status=status,
            target=target_branch,
            source=source_branch,
            top=top,
        )
        params: dict[str, Any] = {"searchCriteria.status": status, "$top": top}
        if target_branch:
            params["searchCriteria.targetRefName"] = branch_ref(target_branch)
        if source_branch:
            params["searchCriteria.sourceRefName"] = branch_ref(source_branch)

        data = await self.transport.get_json(self._repo_path(repository_id, "/pullrequests"), params=params)
        return [self._parse_pull_request(item) for item in _values(data)]

    def _parse_repository(self, data: dict[str, Any]) -> Repository:
        """Parse a repository entry of the /repositories listing.

        Field mappings:
            - data["id"] -> id (GUID, stable across renames)
            - data["name"] -> name
            - data["url"] -> url (API URL)
            - data["defaultBranch"] -> default_branch (ref prefix stripped)
        """
        default_branch = data.get("defaultBranch")
        return Repository(
            id=data["id"],
            name=data.get("name", ""),
            url=data.get("url", ""),
            default_branch=strip_branch_ref(default_branch) if default_branch else None,
        )

    def _parse_commit(self, data: dict[str, Any]) -> Commit:
        author = data.get("author") or {}
        return Commit(
            commit_id=data["commitId"],
            comment=data.get("comment") or "",
            author_name=author.get("name") or "",
            author_date=parse_timestamp(author.get("date")),
            comment_truncated=bool(data.get("commentTruncated", False)),
        )

    def _parse_pull_request(self, data: dict[str, Any]) -> PullRequest:
        """Parse an Azure DevOps GitPullRequest payload.

        Field mappings:
            - data["pullRequestId"] -> pull_request_id
            - data["title"] / data["description"] -> title / description ("" if missing)
            - data["sourceRefName"] / data["targetRefName"] -> full refs
            - data["status"] -> status (lower-cased raw value)
            - data["creationDate"] -> creation_date
            - data["createdBy"]["displayName"] -> created_by
            - data["lastMergeCommit"]["commitId"] -> last_merge_commit_id
        """
        created_by = data.get("createdBy") or {}
        last_merge = data.get("lastMergeCommit") or {}
        return PullRequest(
            pull_request_id=int(data["pullRequestId"]),
            title=data.get("title") or "",
            description=data.get("description") or "",
            source_ref_name=data.get("sourceRefName") or "",
            target_ref_name=data.get("targetRefName") or "",
            status=(data.get("status") or "").lower(),
            creation_date=parse_timestamp(data.get("creationDate")),
            created_by=created_by.get("displayName") or "",
            last_merge_commit_id=last_merge.get("commitId"),
        )


def _values(data: Any) -> list[dict[str, Any]]:
    """Unwrap the ``{"count": n, "value": [...]}`` envelope of list responses."""
    if isinstance(data, dict):
        return [item for item in data.get("value") or [] if isinstance(item, dict)]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return []
