"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from hu_reconciler.config.settings import AnalysisConfig
from hu_reconciler.engine.tickets import TicketExtractor
from hu_reconciler.exceptions import ExternalServiceError
from hu_reconciler.models.domain import Commit, PullRequest, Repository, SelectionContext


def make_commit(commit_id: str, comment: str = "", truncated: bool = False) -> Commit:
    """Build a commit with a fixed author."""
    return Commit(commit_id=commit_id, comment=comment, author_name="dev", comment_truncated=truncated)


def make_pr(
    pr_id: int,
    title: str = "",
    description: str = "",
    status: str = "completed",
    target: str = "QA",
    source: str = "feature/x",
    merge_commit: str | None = None,
) -> PullRequest:
    """Build a pull request with branch names expanded to full refs."""
    return PullRequest(
        pull_request_id=pr_id,
        title=title,
        description=description,
        source_ref_name=f"refs/heads/{source}",
        target_ref_name=f"refs/heads/{target}",
        status=status,
        created_by="dev",
        last_merge_commit_id=merge_commit,
    )


@dataclass
class FakeAzureProvider:
    """In-memory stand-in for AzureDevOpsProvider.

    ``branches`` maps branch name to its commits (newest first). Operation
    names listed in ``failing`` raise ExternalServiceError. Every call is
    appended to ``calls`` as ``(operation, kwargs)``.
    """

    repositories: list[Repository] = field(default_factory=list)
    branches: dict[str, list[Commit]] = field(default_factory=dict)
    pull_requests: list[PullRequest] = field(default_factory=list)
    failing: set[str] = field(default_factory=set)
    calls: list[tuple[str, dict]] = field(default_factory=list)

    def _enter(self, operation: str, **kwargs: object) -> None:
        self.calls.append((operation, kwargs))
        if operation in self.failing:
            raise ExternalServiceError(f"{operation} failed", status_code=500)

    def calls_to(self, operation: str) -> list[dict]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    async def list_repositories(self) -> list[Repository]:
        self._enter("list_repositories")
        return list(self.repositories)

    async def list_branches(self, repository_id: str) -> list[str]:
        self._enter("list_branches", repository_id=repository_id)
        return list(self.branches)

    async def get_commits_diff(
        self, repository_id: str, source_branch: str, target_branch: str, top: int = 200
    ) -> list[Commit]:
        self._enter("get_commits_diff", source=source_branch, target=target_branch)
        target_ids = {c.commit_id for c in self.branches.get(target_branch, [])}
        return [c for c in self.branches.get(source_branch, []) if c.commit_id not in target_ids][:top]

    async def get_commits(self, repository_id: str, branch: str, top: int = 100) -> list[Commit]:
        self._enter("get_commits", branch=branch, top=top)
        return list(self.branches.get(branch, []))[:top]

    async def get_commit(self, repository_id: str, commit_id: str) -> Commit:
        self._enter("get_commit", commit_id=commit_id)
        for commits in self.branches.values():
            for commit in commits:
                if commit.commit_id == commit_id:
                    return Commit(commit_id=commit_id, comment=commit.comment, author_name=commit.author_name)
        raise ExternalServiceError(f"commit {commit_id} not found", status_code=404)

    async def query_pull_requests_by_commits(self, repository_id: str, commit_ids: list[str]) -> list[PullRequest]:
        self._enter("query_pull_requests_by_commits", commit_ids=list(commit_ids))
        wanted = set(commit_ids)
        return [pr for pr in self.pull_requests if pr.last_merge_commit_id in wanted]

    async def list_pull_requests(
        self,
        repository_id: str,
        status: str = "all",
        target_branch: str | None = None,
        source_branch: str | None = None,
        top: int = 100,
    ) -> list[PullRequest]:
        self._enter(
            "list_pull_requests", status=status, target_branch=target_branch, source_branch=source_branch, top=top
        )
        result = []
        for pr in self.pull_requests:
            if status != "all" and pr.status != status:
                continue
            if target_branch and pr.target_branch != target_branch:
                continue
            if source_branch and pr.source_branch != source_branch:
                continue
            result.append(pr)
        return result[:top]


@pytest.fixture
def repository() -> Repository:
    """Sample repository."""
    return Repository(
        id="6a7e3f1c-0000-4000-8000-000000000001",
        name="Juridico",
        url="https://dev.azure.com/org/proj/_apis/git/repositories/6a7e3f1c",
        default_branch="develop",
    )


@pytest.fixture
def selection(repository: Repository) -> SelectionContext:
    """develop -> QA selection."""
    return SelectionContext(repository=repository, source_branch="develop", target_branch="QA")


@pytest.fixture
def extractor() -> TicketExtractor:
    """Extractor for PROJ-<n> tickets."""
    return TicketExtractor(r"PROJ-\d+")


@pytest.fixture
def analysis() -> AnalysisConfig:
    """Analysis settings with production defaults."""
    return AnalysisConfig()


@pytest.fixture
def fake_provider(repository: Repository) -> FakeAzureProvider:
    """Empty fake provider knowing the sample repository and its two branches."""
    return FakeAzureProvider(repositories=[repository], branches={"develop": [], "QA": []})


@pytest.fixture
def pr_factory():
    """Factory for PullRequest objects (see make_pr)."""
    return make_pr


@pytest.fixture
def commit_factory():
    """Factory for Commit objects (see make_commit)."""
    return make_commit
