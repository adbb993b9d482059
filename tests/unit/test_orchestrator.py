"""Tests for hu_reconciler/engine/orchestrator.py."""

import pytest

from hu_reconciler.config.settings import AnalysisConfig
from hu_reconciler.engine.orchestrator import PromotionAnalyzer
from hu_reconciler.enums import ResultConfidence
from hu_reconciler.exceptions import ExternalServiceError


@pytest.fixture
def analyzer(fake_provider, extractor, analysis) -> PromotionAnalyzer:
    return PromotionAnalyzer(fake_provider, extractor, analysis)


# =============================================================================
# End-to-end runs
# =============================================================================


class TestAnalyze:
    """End-to-end reconciliation against the in-memory provider."""

    @pytest.mark.asyncio
    async def test_commit_only_ticket_is_pending(self, analyzer, fake_provider, selection, commit_factory) -> None:
        """Should report a ticket from a diff commit with no supporting PR."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1: fix bug")]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-1"]
        assert result.tickets[0].pull_requests == []
        assert result.confidence == ResultConfidence.FULL
        assert result.commits_without_ticket == []

    @pytest.mark.asyncio
    async def test_ticket_already_merged_into_target_is_excluded(
        self, analyzer, fake_provider, selection, commit_factory, pr_factory
    ) -> None:
        """Should drop a ticket whose PR was completed into target."""
        fake_provider.branches["develop"] = [
            commit_factory("c1", "PROJ-1: fix bug"),
            commit_factory("c2", "PROJ-2: add report"),
        ]
        fake_provider.pull_requests = [pr_factory(10, title="PROJ-2 report", target="QA", source="develop")]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-1"]
        assert "PROJ-2" in result.diagnostics.target_tickets

    @pytest.mark.asyncio
    async def test_active_pr_into_target_is_pending_and_attributed(
        self, analyzer, fake_provider, selection, pr_factory
    ) -> None:
        """Should report an open promotion PR and attach it to its ticket."""
        open_pr = pr_factory(20, title="PROJ-4 promote", status="active", target="QA", source="develop")
        fake_provider.pull_requests = [open_pr]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-4"]
        assert result.tickets[0].pull_requests == [open_pr]

    @pytest.mark.asyncio
    async def test_cherry_picked_commit_on_target_is_excluded(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        """Should use target commits as exclusion evidence."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-5 feature")]
        fake_provider.branches["QA"] = [commit_factory("q1", "cherry-pick PROJ-5")]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == []

    @pytest.mark.asyncio
    async def test_pending_disjoint_from_target_and_sorted(
        self, analyzer, fake_provider, selection, commit_factory, pr_factory
    ) -> None:
        """Should return a sorted list with no target ticket in it."""
        fake_provider.branches["develop"] = [
            commit_factory("c3", "PROJ-30"),
            commit_factory("c1", "PROJ-10 and PROJ-20"),
        ]
        fake_provider.pull_requests = [pr_factory(1, title="PROJ-20", target="QA")]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-10", "PROJ-30"]
        assert not set(result.ticket_ids) & set(result.diagnostics.target_tickets)
        assert set(result.ticket_ids) <= set(result.diagnostics.source_tickets)

    @pytest.mark.asyncio
    async def test_idempotent(self, analyzer, fake_provider, selection, commit_factory, pr_factory) -> None:
        """Should return the same result for the same host state."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1"), commit_factory("c2", "PROJ-2")]
        fake_provider.pull_requests = [pr_factory(1, title="PROJ-2", status="active", target="QA", merge_commit="c2")]

        first = await analyzer.analyze(selection)
        second = await analyzer.analyze(selection)

        assert first.to_dict() == second.to_dict()

    @pytest.mark.asyncio
    async def test_diff_prs_are_queried_by_commit_id(
        self, analyzer, fake_provider, selection, commit_factory, pr_factory
    ) -> None:
        """Should look up PRs by the diff's commit ids and attribute them."""
        fake_provider.branches["develop"] = [commit_factory("c1", "Merged PR 55: PROJ-8 login")]
        merged = pr_factory(55, title="PROJ-8 login", target="develop", merge_commit="c1")
        fake_provider.pull_requests = [merged]

        result = await analyzer.analyze(selection)

        assert fake_provider.calls_to("query_pull_requests_by_commits") == [{"commit_ids": ["c1"]}]
        assert result.tickets[0].pull_requests == [merged]

    @pytest.mark.asyncio
    async def test_no_diff_skips_commit_id_query(self, analyzer, fake_provider, selection) -> None:
        """Should not query PRs by commit ids when the diff is empty."""
        result = await analyzer.analyze(selection)

        assert result.tickets == []
        assert fake_provider.calls_to("query_pull_requests_by_commits") == []


class TestCommitsWithoutTicket:
    """Tests for the commits-without-ticket diagnostic."""

    @pytest.mark.asyncio
    async def test_reported_when_no_source_ticket(self, analyzer, fake_provider, selection, commit_factory) -> None:
        """Should list diff commits with a message when no ticket was found."""
        fake_provider.branches["develop"] = [commit_factory("c1", "refactor logging"), commit_factory("c2", "")]

        result = await analyzer.analyze(selection)

        assert result.tickets == []
        assert [c.commit_id for c in result.commits_without_ticket] == ["c1"]

    @pytest.mark.asyncio
    async def test_not_reported_when_tickets_exist(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        fake_provider.branches["develop"] = [commit_factory("c1", "refactor"), commit_factory("c2", "PROJ-1")]

        result = await analyzer.analyze(selection)

        assert result.commits_without_ticket == []


# =============================================================================
# Degraded evidence
# =============================================================================


class TestDegradedEvidence:
    """Tests for partial host failures."""

    @pytest.mark.asyncio
    async def test_deep_exclusion_failure_marks_degraded(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        """Should still answer, flagged as degraded, when target listings fail."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1")]
        fake_provider.failing.add("get_commits")

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-1"]
        assert result.confidence == ResultConfidence.DEGRADED
        assert result.diagnostics.failed("commits_for_branch")

    @pytest.mark.asyncio
    async def test_discovery_failure_keeps_full_confidence(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        """Should not degrade confidence for a failing discovery query."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1")]
        fake_provider.failing.add("query_pull_requests_by_commits")

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-1"]
        assert result.confidence == ResultConfidence.FULL
        assert result.diagnostics.failed("prs_by_commit_ids")

    @pytest.mark.asyncio
    async def test_source_commit_failure_keeps_full_confidence(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        """Should only degrade for failures on the target branch."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1")]
        list_commits = fake_provider.get_commits

        async def get_commits(repository_id, branch, top=100):
            if branch == "develop":
                raise ExternalServiceError("develop listing failed", status_code=500)
            return await list_commits(repository_id, branch, top=top)

        fake_provider.get_commits = get_commits

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-1"]
        assert result.confidence == ResultConfidence.FULL
        assert result.diagnostics.failed("commits_for_branch", branch="develop")

    @pytest.mark.asyncio
    async def test_fallback_target_listing_failure_marks_degraded(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        fake_provider.failing.update({"get_commits_diff", "get_commits"})
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-1")]

        result = await analyzer.analyze(selection)

        assert result.confidence == ResultConfidence.DEGRADED
        assert result.diagnostics.diff_fallback_used is True

    @pytest.mark.asyncio
    async def test_diff_endpoint_failure_uses_fallback(
        self, analyzer, fake_provider, selection, commit_factory
    ) -> None:
        fake_provider.failing.add("get_commits_diff")
        fake_provider.branches["develop"] = [commit_factory("c2", "PROJ-2"), commit_factory("c0", "base")]
        fake_provider.branches["QA"] = [commit_factory("c0", "base")]

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-2"]
        assert result.diagnostics.diff_fallback_used is True
        assert result.diagnostics.diff_commit_ids == ["c2"]

    @pytest.mark.asyncio
    async def test_everything_failing_yields_empty_result(self, analyzer, fake_provider, selection) -> None:
        """Should return an empty, degraded result instead of raising."""
        fake_provider.failing.update(
            {"get_commits_diff", "get_commits", "list_pull_requests", "query_pull_requests_by_commits"}
        )

        result = await analyzer.analyze(selection)

        assert result.tickets == []
        assert result.confidence == ResultConfidence.DEGRADED


# =============================================================================
# Strict mode and limits
# =============================================================================


class TestStrictMode:
    """Tests for strict verification through the analyzer."""

    @pytest.mark.asyncio
    async def test_strict_drops_ticket_completed_elsewhere(
        self, fake_provider, extractor, selection, commit_factory, pr_factory
    ) -> None:
        """Should drop a ticket whose PR was completed into an unrelated branch."""
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-3"), commit_factory("c2", "PROJ-4")]
        fake_provider.pull_requests = [pr_factory(9, title="PROJ-3 hotfix", target="hotfix/1")]
        analyzer = PromotionAnalyzer(fake_provider, extractor, AnalysisConfig(strict_mode=True))

        result = await analyzer.analyze(selection)

        assert result.ticket_ids == ["PROJ-4"]

    @pytest.mark.asyncio
    async def test_strict_override_per_call(
        self, analyzer, fake_provider, selection, commit_factory, pr_factory
    ) -> None:
        fake_provider.branches["develop"] = [commit_factory("c1", "PROJ-3")]
        fake_provider.pull_requests = [pr_factory(9, title="PROJ-3 hotfix", target="hotfix/1")]

        assert (await analyzer.analyze(selection)).ticket_ids == ["PROJ-3"]
        assert (await analyzer.analyze(selection, strict=True)).ticket_ids == []

    @pytest.mark.asyncio
    async def test_strict_lists_repository_once_for_all_tickets(
        self, fake_provider, extractor, selection, commit_factory
    ) -> None:
        """Should verify every pending ticket against a single PR listing."""
        fake_provider.branches["develop"] = [commit_factory(f"c{n}", f"PROJ-{n}") for n in range(30)]
        analyzer = PromotionAnalyzer(fake_provider, extractor, AnalysisConfig(strict_mode=True))

        result = await analyzer.analyze(selection)

        assert len(result.tickets) == 30
        repository_listings = [
            call
            for call in fake_provider.calls_to("list_pull_requests")
            if call["target_branch"] is None and call["source_branch"] is None
        ]
        # one discovery listing, one shared by the strict searches
        assert len(repository_listings) == 2


class TestQueryLimits:
    """Tests for configured query limits."""

    @pytest.mark.asyncio
    async def test_limits_are_forwarded(self, fake_provider, extractor, selection) -> None:
        analysis = AnalysisConfig(
            source_commit_limit=7, source_pr_limit=40, deep_exclusion_limit=900, repository_pr_limit=300
        )
        analyzer = PromotionAnalyzer(fake_provider, extractor, analysis)

        await analyzer.analyze(selection)

        commit_tops = {call["branch"]: call["top"] for call in fake_provider.calls_to("get_commits")}
        assert commit_tops == {"develop": 7, "QA": 900}
        listings = fake_provider.calls_to("list_pull_requests")
        assert {"status": "completed", "target_branch": "develop", "source_branch": None, "top": 40} in listings
        assert {"status": "all", "target_branch": None, "source_branch": "develop", "top": 40} in listings
        assert {"status": "completed", "target_branch": "QA", "source_branch": None, "top": 900} in listings
        assert {"status": "all", "target_branch": None, "source_branch": None, "top": 300} in listings
