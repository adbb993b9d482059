"""Domain models for branch reconciliation.

This package defines the read-only projections of repository host state and
the result/diagnostic records produced by a reconciliation run.

Key Models:
    - Repository: Git repository (id, name, url)
    - Commit: Commit with message and author
    - PullRequest: Latest pull request snapshot
    - SelectionContext: Immutable repository/source/target triple of a run
    - PendingTicket: Ticket awaiting promotion with its pull requests
    - ReconciliationResult: Sorted pending tickets plus diagnostics
    - RunDiagnostics: Evidence considered and failures recorded by a run

Example:
    >>> from hu_reconciler.models.domain import Repository, SelectionContext
    >>> repo = Repository(id="3f1c", name="Juridico")
    >>> selection = SelectionContext(repository=repo, source_branch="develop", target_branch="QA")
"""
