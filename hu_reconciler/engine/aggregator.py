"""
Evidence aggregation: classify commits and pull requests into ticket sets.

The aggregator turns the raw adapter results of one run into two sets of
ticket ids:

- ``source_tickets``: work present on the source branch (or on its way to the
  target through an open PR) that still has to be promoted.
- ``target_tickets``: work that already reached the target branch.

Pull Request Classification:
    status completed/merged, target == target branch  -> target_tickets
    status completed/merged, target == source branch  -> source_tickets
    status active,           target == target branch  -> source_tickets
    anything else                                      -> ignored

Commits of the source/target diff always feed ``source_tickets``. The deep
exclusion evidence (every PR merged into target and every commit on target,
fetched with a high limit) always feeds ``target_tickets``; it catches tickets
that reached the target through routes the diff does not show.
"""

from dataclasses import dataclass, field

import structlog

from hu_reconciler.engine.evidence import dedupe_pull_requests
from hu_reconciler.engine.tickets import TicketExtractor
from hu_reconciler.models.domain import Commit, PullRequest, SelectionContext

log = structlog.get_logger(__name__)


@dataclass
class Evidence:
    """Raw adapter results of one run."""

    diff_commits: list[Commit] = field(default_factory=list)
    discovery_prs: list[PullRequest] = field(default_factory=list)
    """PRs from the diff commit ids, PRs merged into source and PRs opened from source."""

    repository_prs: list[PullRequest] = field(default_factory=list)
    target_prs: list[PullRequest] = field(default_factory=list)
    target_commits: list[Commit] = field(default_factory=list)


@dataclass
class TicketSets:
    """Classified ticket ids plus the deduplicated pull requests observed."""

    source_tickets: set[str] = field(default_factory=set)
    target_tickets: set[str] = field(default_factory=set)
    observed_prs: list[PullRequest] = field(default_factory=list)


class EvidenceAggregator:
    """Merge adapter evidence into source-side and target-side ticket sets."""

    def __init__(self, extractor: TicketExtractor):
        self.extractor = extractor

    def classify_pull_request(self, pull_request: PullRequest, selection: SelectionContext) -> str | None:
        """Return "source", "target" or None (ignored) for a pull request."""
        target = pull_request.target_branch
        status = (pull_request.status or "").lower()

        if status in ("completed", "merged"):
            if target == selection.target_branch:
                return "target"
            if target == selection.source_branch:
                return "source"
            return None
        if status == "active" and target == selection.target_branch:
            return "source"
        return None

    def aggregate(self, selection: SelectionContext, evidence: Evidence) -> TicketSets:
        sets = TicketSets()

        # Repository-wide listing first, then the narrower discovery queries
        observed = dedupe_pull_requests(evidence.repository_prs + evidence.discovery_prs)
        for pr in observed:
            role = self.classify_pull_request(pr, selection)
            if role is None:
                continue
            tickets = self.extractor.extract_from_pull_request(pr)
            if role == "target":
                sets.target_tickets |= tickets
            else:
                sets.source_tickets |= tickets

        for commit in evidence.diff_commits:
            sets.source_tickets |= self.extractor.extract_from_commit(commit)

        for pr in evidence.target_prs:
            sets.target_tickets |= self.extractor.extract_from_pull_request(pr)
        for commit in evidence.target_commits:
            sets.target_tickets |= self.extractor.extract_from_commit(commit)

        sets.observed_prs = observed
        log.info(
            "evidence_aggregated",
            observed_prs=len(observed),
            diff_commits=len(evidence.diff_commits),
            source_tickets=len(sets.source_tickets),
            target_tickets=len(sets.target_tickets),
        )
        return sets
