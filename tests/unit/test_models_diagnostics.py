"""Unit tests for hu_reconciler.models.diagnostics module."""

from __future__ import annotations

import json

from hu_reconciler.exceptions import ExternalServiceError
from hu_reconciler.models.diagnostics import EvidenceFailure, RunDiagnostics


class TestEvidenceFailure:
    """Tests for EvidenceFailure dataclass."""

    def test_to_dict_without_details(self) -> None:
        failure = EvidenceFailure(operation="all_prs", error="boom")

        assert failure.to_dict() == {"operation": "all_prs", "error": "boom"}

    def test_to_dict_with_details(self) -> None:
        failure = EvidenceFailure(operation="prs_by_commit_ids", error="boom", details={"chunk": 2})

        assert failure.to_dict()["details"] == {"chunk": 2}


class TestRunDiagnostics:
    """Tests for RunDiagnostics."""

    def test_record_failure(self) -> None:
        diagnostics = RunDiagnostics()

        diagnostics.record_failure(
            "commits_for_branch", ExternalServiceError("down", status_code=503), branch="QA"
        )

        assert diagnostics.failures[0].operation == "commits_for_branch"
        assert diagnostics.failures[0].error == "down (HTTP 503)"
        assert diagnostics.failures[0].details == {"branch": "QA"}

    def test_failed(self) -> None:
        diagnostics = RunDiagnostics()
        diagnostics.record_failure("all_prs", RuntimeError("x"))

        assert diagnostics.failed("all_prs", "diff_commits")
        assert not diagnostics.failed("diff_commits")

    def test_failed_narrowed_by_details(self) -> None:
        diagnostics = RunDiagnostics()
        diagnostics.record_failure("commits_for_branch", RuntimeError("x"), repository="r", branch="develop")

        assert diagnostics.failed("commits_for_branch", branch="develop")
        assert not diagnostics.failed("commits_for_branch", branch="QA")

    def test_to_dict_is_json_serializable(self, pr_factory, commit_factory) -> None:
        diagnostics = RunDiagnostics(
            selection={"repository": "Juridico", "source": "develop", "target": "QA"},
            diff_commit_ids=["c1"],
            source_commits=[commit_factory("c1", "PROJ-1")],
            observed_prs=[pr_factory(4), pr_factory(5)],
            target_tickets=["PROJ-2"],
        )
        diagnostics.record_failure("all_prs", RuntimeError("x"), repository="r")

        data = json.loads(json.dumps(diagnostics.to_dict()))

        assert data["observed_prs"] == [4, 5]
        assert data["source_commits"] == 1
        assert data["failures"] == [{"operation": "all_prs", "error": "x", "details": {"repository": "r"}}]
