"""
Fault-tolerant evidence source adapters.

Each adapter wraps one ``AzureDevOpsProvider`` query for a single
reconciliation run. Adapters never raise: a failing host call is logged,
recorded on the run's ``RunDiagnostics`` and replaced by an empty list, so one
broken query degrades the evidence instead of aborting the run.

Adapters:
    diff_commits          commits on source that are not on target
    commits_for_branch    recent commits of one branch
    prs_by_commit_ids     PRs whose last merge commit is one of the ids (chunked)
    prs_by_target_branch  PRs merged into a branch
    prs_by_source_branch  PRs opened from a branch
    all_prs               repository-wide PR listing (last-resort discovery)
    search_prs_by_text    PRs mentioning a text (strict verification only)

Example:
    >>> sources = EvidenceSources(provider, diagnostics)
    >>> commits = await sources.diff_commits(repo.id, "develop", "QA")
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import structlog

from hu_reconciler.models.diagnostics import RunDiagnostics
from hu_reconciler.models.domain import Commit, PullRequest
from hu_reconciler.providers.azure_devops import AzureDevOpsProvider

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 25
DEFAULT_FALLBACK_LIMIT = 1000


def chunked(items: list[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [items[i : i + size] for i in range(0, len(items), size)]


def dedupe_pull_requests(pull_requests: list[PullRequest]) -> list[PullRequest]:
    """Deduplicate by PR id, keeping first-seen order and the latest snapshot."""
    unique: dict[int, PullRequest] = {}
    for pr in pull_requests:
        if pr is None:
            continue
        unique[pr.pull_request_id] = pr
    return list(unique.values())


class EvidenceSources:
    """Per-run evidence adapters over an Azure DevOps provider.

    Args:
        provider: Raw host queries (raise on failure).
        diagnostics: Run diagnostics that collect every swallowed failure.
        chunk_size: Commit ids per pull-request query.
        diff_top: Maximum commits requested from the dedicated diff endpoint.
        fallback_limit: Commits fetched per branch when the diff endpoint fails.
    """

    def __init__(
        self,
        provider: AzureDevOpsProvider,
        diagnostics: RunDiagnostics,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        diff_top: int = 200,
        fallback_limit: int = DEFAULT_FALLBACK_LIMIT,
    ):
        self.provider = provider
        self.diagnostics = diagnostics
        self.chunk_size = chunk_size
        self.diff_top = diff_top
        self.fallback_limit = fallback_limit
        self._listing_lock = asyncio.Lock()
        self._search_listings: dict[tuple[str, int], list[PullRequest]] = {}

    async def _guarded(self, operation: str, call: Awaitable[list[T]], **details: Any) -> list[T]:
        """Await ``call``; on failure log, record and return an empty list."""
        try:
            return await call
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("evidence_fetch_failed", operation=operation, error=str(e), **details)
            self.diagnostics.record_failure(operation, e, **details)
            return []

    async def diff_commits(self, repository_id: str, source_branch: str, target_branch: str) -> list[Commit]:
        """Commits reachable from source but not from target.

        Prefers the dedicated diff endpoint. When that call fails, fetches up
        to ``fallback_limit`` commits of each branch and subtracts target from
        source by commit id, keeping source order. Never raises.
        """
        try:
            commits = await self.provider.get_commits_diff(
                repository_id, source_branch, target_branch, top=self.diff_top
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(
                "diff_fallback_engaged",
                repository=repository_id,
                source=source_branch,
                target=target_branch,
                error=str(e),
            )
            self.diagnostics.record_failure(
                "diff_commits", e, repository=repository_id, source=source_branch, target=target_branch
            )
            self.diagnostics.diff_fallback_used = True
            commits = await self._diff_by_branch_listing(repository_id, source_branch, target_branch)

        return await self._hydrate_truncated(repository_id, commits)

    async def _diff_by_branch_listing(
        self, repository_id: str, source_branch: str, target_branch: str
    ) -> list[Commit]:
        source_commits, target_commits = await asyncio.gather(
            self.commits_for_branch(repository_id, source_branch, self.fallback_limit),
            self.commits_for_branch(repository_id, target_branch, self.fallback_limit),
        )
        target_ids = {c.commit_id for c in target_commits}
        seen: set[str] = set()
        diff = []
        for commit in source_commits:
            if commit.commit_id in target_ids or commit.commit_id in seen:
                continue
            seen.add(commit.commit_id)
            diff.append(commit)
        log.info(
            "diff_fallback_computed",
            source_commits=len(source_commits),
            target_commits=len(target_commits),
            diff=len(diff),
        )
        return diff

    async def _hydrate_truncated(self, repository_id: str, commits: list[Commit]) -> list[Commit]:
        """Replace truncated commit comments with the full commit detail."""
        truncated = [c for c in commits if c.comment_truncated]
        if not truncated:
            return commits

        details = await asyncio.gather(
            *[self.provider.get_commit(repository_id, c.commit_id) for c in truncated],
            return_exceptions=True,
        )
        full: dict[str, Commit] = {}
        for commit, detail in zip(truncated, details, strict=False):
            if isinstance(detail, BaseException):
                # Keep the truncated comment; ticket keys usually sit at the start
                log.debug("commit_detail_failed", commit=commit.commit_id, error=str(detail))
                continue
            full[commit.commit_id] = detail
        return [full.get(c.commit_id, c) for c in commits]

    async def commits_for_branch(self, repository_id: str, branch: str, limit: int) -> list[Commit]:
        return await self._guarded(
            "commits_for_branch",
            self.provider.get_commits(repository_id, branch, top=limit),
            repository=repository_id,
            branch=branch,
        )

    async def prs_by_commit_ids(self, repository_id: str, commit_ids: list[str]) -> list[PullRequest]:
        """PRs whose last merge commit is one of ``commit_ids``.

        Ids are queried in chunks of ``chunk_size``, all chunks concurrently.
        A failing chunk only loses its own results.
        """
        ids = list(dict.fromkeys(i for i in commit_ids if i))
        if not ids:
            return []

        chunks = chunked(ids, self.chunk_size)
        results = await asyncio.gather(
            *[
                self._guarded(
                    "prs_by_commit_ids",
                    self.provider.query_pull_requests_by_commits(repository_id, chunk),
                    repository=repository_id,
                    chunk=index,
                    commits=len(chunk),
                )
                for index, chunk in enumerate(chunks)
            ]
        )
        merged = dedupe_pull_requests([pr for chunk_prs in results for pr in chunk_prs])
        log.info("prs_by_commit_ids_fetched", chunks=len(chunks), commits=len(ids), pull_requests=len(merged))
        return merged

    async def prs_by_target_branch(
        self, repository_id: str, branch: str, status: str = "completed", limit: int = 200
    ) -> list[PullRequest]:
        return await self._guarded(
            "prs_by_target_branch",
            self.provider.list_pull_requests(repository_id, status=status, target_branch=branch, top=limit),
            repository=repository_id,
            branch=branch,
        )

    async def prs_by_source_branch(self, repository_id: str, branch: str, limit: int = 200) -> list[PullRequest]:
        return await self._guarded(
            "prs_by_source_branch",
            self.provider.list_pull_requests(repository_id, status="all", source_branch=branch, top=limit),
            repository=repository_id,
            branch=branch,
        )

    async def all_prs(self, repository_id: str, limit: int = 1000) -> list[PullRequest]:
        return await self._guarded(
            "all_prs",
            self.provider.list_pull_requests(repository_id, status="all", top=limit),
            repository=repository_id,
        )

    async def search_prs_by_text(self, repository_id: str, text: str, limit: int = 1000) -> list[PullRequest]:
        """PRs whose title or description contains ``text`` (case-insensitive).

        Azure DevOps Git has no server-side PR text search, so this lists PRs
        of every status and filters locally. The listing is fetched once per
        run and shared by every search, including a failed (empty) listing.
        """
        needle = text.strip().upper()
        if not needle:
            return []
        pull_requests = await self._search_listing(repository_id, limit)
        return [pr for pr in pull_requests if pr.mentions(needle)]

    async def _search_listing(self, repository_id: str, limit: int) -> list[PullRequest]:
        key = (repository_id, limit)
        async with self._listing_lock:
            if key not in self._search_listings:
                self._search_listings[key] = await self._guarded(
                    "search_prs_by_text",
                    self.provider.list_pull_requests(repository_id, status="all", top=limit),
                    repository=repository_id,
                )
                log.debug(
                    "search_listing_loaded",
                    repository=repository_id,
                    pull_requests=len(self._search_listings[key]),
                )
            return self._search_listings[key]
