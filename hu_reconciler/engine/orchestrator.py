"""
Reconciliation run orchestration.

``PromotionAnalyzer.analyze`` runs one reconciliation for an immutable
``SelectionContext``:

Execution Flow:
    1. Wave 1 (concurrent): diff commits followed by the PRs of those commits,
       recent source-branch commits, PRs merged into source, PRs opened from
       source, and the repository-wide PR listing.
    2. Wave 2 (concurrent): deep exclusion, i.e. every PR merged into target
       and every commit on target, with a high limit.
    3. Aggregate the evidence into source/target ticket sets.
    4. Reconcile (set difference, optional strict verification, attribution).

Error Handling:
    Adapter failures never reach the caller; they are recorded on the run
    diagnostics. When a deep-exclusion query fails the result is still
    produced, marked ``ResultConfidence.DEGRADED``. Invalid selections are
    rejected by ``SelectionContext`` before this module is reached.
"""

import asyncio

import structlog

from hu_reconciler.config.settings import AnalysisConfig
from hu_reconciler.engine.aggregator import Evidence, EvidenceAggregator
from hu_reconciler.engine.evidence import EvidenceSources, dedupe_pull_requests
from hu_reconciler.engine.reconciler import ReconciliationEngine
from hu_reconciler.engine.tickets import TicketExtractor
from hu_reconciler.enums import ResultConfidence
from hu_reconciler.models.diagnostics import RunDiagnostics
from hu_reconciler.models.domain import Commit, PullRequest, ReconciliationResult, SelectionContext
from hu_reconciler.providers.azure_devops import AzureDevOpsProvider

log = structlog.get_logger(__name__)

DEEP_EXCLUSION_OPERATIONS = ("prs_by_target_branch", "commits_for_branch")


class PromotionAnalyzer:
    """Run reconciliations against one Azure DevOps project.

    Holds no per-run state: every call to ``analyze`` builds its own
    diagnostics, adapters and working sets, so concurrent runs never share
    mutable data.

    Args:
        provider: Raw Azure DevOps queries.
        extractor: Ticket extractor applied to every text field.
        analysis: Query limits and the default strict-mode flag.
    """

    def __init__(
        self,
        provider: AzureDevOpsProvider,
        extractor: TicketExtractor,
        analysis: AnalysisConfig | None = None,
    ):
        self.provider = provider
        self.extractor = extractor
        self.analysis = analysis or AnalysisConfig()
        self.aggregator = EvidenceAggregator(extractor)

    async def analyze(self, selection: SelectionContext, strict: bool | None = None) -> ReconciliationResult:
        """Reconcile ``selection`` and return the pending tickets.

        Args:
            selection: Repository, source branch and target branch.
            strict: Override the configured strict mode.
        """
        strict = self.analysis.strict_mode if strict is None else strict
        repository_id = selection.repository.id
        diagnostics = RunDiagnostics(selection=selection.to_dict())
        sources = EvidenceSources(
            self.provider,
            diagnostics,
            chunk_size=self.analysis.commit_id_chunk_size,
            diff_top=self.analysis.diff_top,
            fallback_limit=self.analysis.fallback_commit_limit,
        )

        with structlog.contextvars.bound_contextvars(
            repository=selection.repository.name,
            source=selection.source_branch,
            target=selection.target_branch,
        ):
            log.info("analysis_started", strict=strict)

            (diff_commits, diff_prs), source_commits, source_merged, source_opened, repository_prs = (
                await asyncio.gather(
                    self._diff_with_pull_requests(sources, selection),
                    sources.commits_for_branch(
                        repository_id, selection.source_branch, self.analysis.source_commit_limit
                    ),
                    sources.prs_by_target_branch(
                        repository_id,
                        selection.source_branch,
                        status="completed",
                        limit=self.analysis.source_pr_limit,
                    ),
                    sources.prs_by_source_branch(
                        repository_id, selection.source_branch, limit=self.analysis.source_pr_limit
                    ),
                    sources.all_prs(repository_id, limit=self.analysis.repository_pr_limit),
                )
            )
            log.info(
                "discovery_complete",
                diff_commits=len(diff_commits),
                diff_prs=len(diff_prs),
                source_merged=len(source_merged),
                source_opened=len(source_opened),
                repository_prs=len(repository_prs),
            )

            target_prs, target_commits = await asyncio.gather(
                sources.prs_by_target_branch(
                    repository_id,
                    selection.target_branch,
                    status="completed",
                    limit=self.analysis.deep_exclusion_limit,
                ),
                sources.commits_for_branch(
                    repository_id, selection.target_branch, self.analysis.deep_exclusion_limit
                ),
            )
            # Target-side listings include the diff fallback's target commits
            degraded = diagnostics.failed(*DEEP_EXCLUSION_OPERATIONS, branch=selection.target_branch)
            confidence = ResultConfidence.DEGRADED if degraded else ResultConfidence.FULL
            if degraded:
                log.warning(
                    "deep_exclusion_incomplete",
                    failed=sorted(
                        {
                            f.operation
                            for f in diagnostics.failures
                            if f.details.get("branch") == selection.target_branch
                        }
                    ),
                )

            evidence = Evidence(
                diff_commits=diff_commits,
                discovery_prs=diff_prs + source_merged + source_opened,
                repository_prs=repository_prs,
                target_prs=target_prs,
                target_commits=target_commits,
            )
            sets = self.aggregator.aggregate(selection, evidence)

            async def search(ticket: str) -> list[PullRequest]:
                return await sources.search_prs_by_text(
                    repository_id, ticket, limit=self.analysis.search_pr_limit
                )

            engine = ReconciliationEngine(searcher=search)
            tickets = await engine.reconcile(
                sets.source_tickets,
                sets.target_tickets,
                sets.observed_prs,
                strict=strict,
                target_branch=selection.target_branch,
            )

            commits_without_ticket: list[Commit] = []
            if not sets.source_tickets and diff_commits:
                commits_without_ticket = [c for c in diff_commits if c.comment]

            diagnostics.diff_commit_ids = [c.commit_id for c in diff_commits]
            diagnostics.source_commits = source_commits
            diagnostics.source_branch_prs = dedupe_pull_requests(source_merged + source_opened)
            diagnostics.repository_prs = repository_prs
            diagnostics.observed_prs = sets.observed_prs
            diagnostics.target_prs = target_prs
            diagnostics.target_commits = target_commits
            diagnostics.source_tickets = sorted(sets.source_tickets)
            diagnostics.target_tickets = sorted(sets.target_tickets)

            log.info(
                "analysis_complete",
                pending=len(tickets),
                source_tickets=len(sets.source_tickets),
                confidence=confidence.value,
                failures=len(diagnostics.failures),
            )
            return ReconciliationResult(
                selection=selection,
                tickets=tickets,
                commits_without_ticket=commits_without_ticket,
                confidence=confidence,
                diagnostics=diagnostics,
            )

    async def _diff_with_pull_requests(
        self, sources: EvidenceSources, selection: SelectionContext
    ) -> tuple[list[Commit], list[PullRequest]]:
        repository_id = selection.repository.id
        commits = await sources.diff_commits(repository_id, selection.source_branch, selection.target_branch)
        if not commits:
            return commits, []
        pull_requests = await sources.prs_by_commit_ids(repository_id, [c.commit_id for c in commits])
        return commits, pull_requests
