"""Enumerations for hu-reconciler."""

from enum import Enum


class PullRequestStatus(str, Enum):
    """Normalized pull request status.

    Azure DevOps reports ``active``, ``completed`` and ``abandoned``; other
    hosts report ``merged`` for what Azure calls completed. Anything else
    collapses into OTHER.
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_host(cls, value: str | None) -> "PullRequestStatus":
        """Map a raw host status string onto the normalized enum."""
        normalized = (value or "").strip().lower()
        if normalized == "merged":
            return cls.COMPLETED
        try:
            return cls(normalized)
        except ValueError:
            return cls.OTHER


class ResultConfidence(str, Enum):
    """How much evidence backed a reconciliation result.

    FULL means every deep-exclusion query succeeded. DEGRADED means the
    target-side safety net was missing at least partly and the pending set
    relies on the narrow discovery queries only.
    """

    FULL = "full"
    DEGRADED = "degraded"

    def __str__(self) -> str:
        return self.value
