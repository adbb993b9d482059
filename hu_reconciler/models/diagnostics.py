"""Diagnostic models for reconciliation runs.

These collections are observational only: they let the presentation layer
show what evidence a run considered and which host queries failed. The
engine never reads them back.

Example:
    Inspecting a degraded run::

        result = await analyzer.analyze(selection)
        for failure in result.diagnostics.failures:
            print(failure.operation, failure.error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hu_reconciler.models.domain import Commit, PullRequest


@dataclass
class EvidenceFailure:
    """A host query that failed and was replaced by an empty result."""

    operation: str
    """Adapter name, e.g. "diff_commits" or "prs_by_commit_ids"."""

    error: str
    """String form of the caught exception."""

    details: dict[str, Any] = field(default_factory=dict)
    """Identifiers involved (repository, branch, chunk index, ticket)."""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operation": self.operation, "error": self.error}
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class RunDiagnostics:
    """Everything a run looked at, for troubleshooting display."""

    selection: dict[str, str] = field(default_factory=dict)
    diff_commit_ids: list[str] = field(default_factory=list)
    diff_fallback_used: bool = False
    source_commits: list[Commit] = field(default_factory=list)
    source_branch_prs: list[PullRequest] = field(default_factory=list)
    repository_prs: list[PullRequest] = field(default_factory=list)
    observed_prs: list[PullRequest] = field(default_factory=list)
    target_prs: list[PullRequest] = field(default_factory=list)
    target_commits: list[Commit] = field(default_factory=list)
    source_tickets: list[str] = field(default_factory=list)
    target_tickets: list[str] = field(default_factory=list)
    failures: list[EvidenceFailure] = field(default_factory=list)

    def record_failure(self, operation: str, error: BaseException, **details: Any) -> None:
        self.failures.append(EvidenceFailure(operation=operation, error=str(error), details=details))

    def failed(self, *operations: str, **details: Any) -> bool:
        """Check whether any of the given operations recorded a failure.

        Keyword arguments narrow the check to failures whose details carry
        the same values, e.g. ``failed("commits_for_branch", branch="QA")``.
        """
        return any(
            f.operation in operations and all(f.details.get(k) == v for k, v in details.items())
            for f in self.failures
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "selection": self.selection,
            "diff_commit_ids": self.diff_commit_ids,
            "diff_fallback_used": self.diff_fallback_used,
            "source_commits": len(self.source_commits),
            "source_branch_prs": [pr.pull_request_id for pr in self.source_branch_prs],
            "repository_prs": len(self.repository_prs),
            "observed_prs": [pr.pull_request_id for pr in self.observed_prs],
            "target_prs": len(self.target_prs),
            "target_commits": len(self.target_commits),
            "source_tickets": self.source_tickets,
            "target_tickets": self.target_tickets,
            "failures": [f.to_dict() for f in self.failures],
        }
