"""
Domain models for hu-reconciler.

This module contains the read-only projections of repository host state that
a reconciliation run works with (repositories, commits, pull requests), the
immutable selection that drives a run, and the result handed back to the
presentation layer. Models are converted from Azure DevOps payloads by
``hu_reconciler.providers.azure_devops``.

Example:
    Building a selection for one run::

        selection = SelectionContext(
            repository=Repository(id="3f1c...", name="Juridico", url="https://..."),
            source_branch="develop",
            target_branch="QA",
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from hu_reconciler.enums import PullRequestStatus, ResultConfidence
from hu_reconciler.exceptions import InvalidSelectionError

BRANCH_REF_PREFIX = "refs/heads/"


def strip_branch_ref(ref_name: str | None) -> str:
    """Return the branch name of a ref, dropping any ``refs/heads/`` prefix."""
    if not ref_name:
        return ""
    if ref_name.startswith(BRANCH_REF_PREFIX):
        return ref_name[len(BRANCH_REF_PREFIX) :]
    return ref_name


@dataclass(frozen=True)
class Repository:
    """A Git repository on the host.

    The ``id`` is stable across renames; ``name`` is not. Resolution accepts
    either.
    """

    id: str
    """Opaque host identifier (a GUID on Azure DevOps)."""

    name: str
    """Human-readable repository name."""

    url: str = ""
    """API URL of the repository."""

    default_branch: str | None = None
    """Default branch name with the ref prefix stripped, if the host reports one."""


@dataclass(frozen=True)
class Commit:
    """An immutable commit as reported by the host."""

    commit_id: str
    """Content hash identifying the commit."""

    comment: str = ""
    """Commit message. May be truncated by list endpoints."""

    author_name: str = ""
    """Author display name."""

    author_date: datetime | None = None
    """Authoring timestamp."""

    comment_truncated: bool = False
    """Whether the host shortened ``comment`` in a list response."""


@dataclass(frozen=True)
class PullRequest:
    """Latest snapshot of a pull request.

    ``status`` holds the raw lower-cased host value so classification can tell
    ``completed`` and ``merged`` apart from anything unexpected; use ``state``
    for the normalized enum.
    """

    pull_request_id: int
    title: str = ""
    description: str = ""
    source_ref_name: str = ""
    target_ref_name: str = ""
    status: str = ""
    creation_date: datetime | None = None
    created_by: str = ""
    last_merge_commit_id: str | None = None

    @property
    def state(self) -> PullRequestStatus:
        return PullRequestStatus.from_host(self.status)

    @property
    def is_completed(self) -> bool:
        return self.state == PullRequestStatus.COMPLETED

    @property
    def is_active(self) -> bool:
        return self.state == PullRequestStatus.ACTIVE

    @property
    def source_branch(self) -> str:
        return strip_branch_ref(self.source_ref_name)

    @property
    def target_branch(self) -> str:
        return strip_branch_ref(self.target_ref_name)

    @property
    def text(self) -> str:
        """Title and description joined by a single space."""
        return f"{self.title or ''} {self.description or ''}"

    def mentions(self, ticket_id: str) -> bool:
        """Check whether the upper-cased PR text contains ``ticket_id``."""
        return ticket_id in self.text.upper()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.pull_request_id,
            "title": self.title,
            "status": self.status,
            "source": self.source_branch,
            "target": self.target_branch,
            "created_by": self.created_by,
            "creation_date": self.creation_date.isoformat() if self.creation_date else None,
        }


@dataclass(frozen=True)
class SelectionContext:
    """The immutable input triple of one reconciliation run.

    Raises:
        InvalidSelectionError: If a branch is blank or both branches are equal.
    """

    repository: Repository
    source_branch: str
    target_branch: str

    def __post_init__(self) -> None:
        source = (self.source_branch or "").strip()
        target = (self.target_branch or "").strip()
        if not source or not target:
            raise InvalidSelectionError("Both a source and a target branch are required")
        if source == target:
            raise InvalidSelectionError(
                f"Source and target branch are the same ({source}); choose different branches"
            )
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "source_branch", source)
        object.__setattr__(self, "target_branch", target)

    def to_dict(self) -> dict[str, str]:
        return {
            "repository": self.repository.name,
            "source": self.source_branch,
            "target": self.target_branch,
        }


@dataclass
class PendingTicket:
    """A ticket present on the source branch but not yet on the target branch."""

    ticket_id: str
    pull_requests: list[PullRequest] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.ticket_id,
            "pull_requests": [pr.to_dict() for pr in self.pull_requests],
        }


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation run.

    ``tickets`` is sorted ascending by ticket id. An empty list is a valid
    result meaning nothing is pending. ``commits_without_ticket`` is a
    diagnostic signal, not a failure.
    """

    selection: SelectionContext
    tickets: list[PendingTicket] = field(default_factory=list)
    commits_without_ticket: list[Commit] = field(default_factory=list)
    confidence: ResultConfidence = ResultConfidence.FULL
    diagnostics: Any = None

    @property
    def ticket_ids(self) -> list[str]:
        return [ticket.ticket_id for ticket in self.tickets]

    def to_dict(self, include_diagnostics: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "selection": self.selection.to_dict(),
            "confidence": self.confidence.value,
            "tickets": [ticket.to_dict() for ticket in self.tickets],
            "commits_without_ticket": [
                {"commit_id": c.commit_id, "comment": c.comment, "author": c.author_name}
                for c in self.commits_without_ticket
            ],
        }
        if include_diagnostics and self.diagnostics is not None:
            data["diagnostics"] = self.diagnostics.to_dict()
        return data
