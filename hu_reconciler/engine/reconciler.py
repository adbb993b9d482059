"""
Reconciliation engine: pending = source tickets - target tickets.

Given the classified ticket sets of a run, the engine computes the tickets
still waiting for promotion, optionally re-verifies each one with a text
search ("strict mode"), and attributes every remaining ticket to the observed
pull requests that mention it.

Strict Verification:
    For every pending ticket, concurrently, PRs mentioning the ticket are
    searched. If any returned PR contains the ticket in its title or
    description and is either completed or aimed at the target branch, the
    ticket is treated as already integrated and dropped. A failed search keeps
    the ticket: the check filters false positives, it is not the primary
    signal.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable

import structlog

from hu_reconciler.models.domain import PendingTicket, PullRequest

log = structlog.get_logger(__name__)

PullRequestSearch = Callable[[str], Awaitable[list[PullRequest]]]


class ReconciliationEngine:
    """Compute the pending ticket list of a run.

    Args:
        searcher: Async callable returning PRs that mention a text. Required
            for strict mode only.
    """

    def __init__(self, searcher: PullRequestSearch | None = None):
        self.searcher = searcher

    async def reconcile(
        self,
        source_tickets: Iterable[str],
        target_tickets: Iterable[str],
        observed_prs: list[PullRequest],
        strict: bool = False,
        target_branch: str | None = None,
    ) -> list[PendingTicket]:
        """Return pending tickets sorted ascending, each with its supporting PRs.

        Args:
            source_tickets: Ticket ids found on the source side.
            target_tickets: Ticket ids already on the target side.
            observed_prs: Deduplicated pull requests used for attribution.
            strict: Re-verify each pending ticket with a text search.
            target_branch: Target branch name, consulted by strict verification.
        """
        target = {t.upper() for t in target_tickets}
        pending = {t.upper() for t in source_tickets} - target

        if strict and pending:
            pending = await self._verify(pending, target_branch)

        result = []
        for ticket_id in sorted(pending):
            supporting = [pr for pr in observed_prs if pr.mentions(ticket_id)]
            result.append(PendingTicket(ticket_id=ticket_id, pull_requests=supporting))

        log.info("reconciliation_complete", pending=len(result), target_tickets=len(target), strict=strict)
        return result

    async def _verify(self, pending: set[str], target_branch: str | None) -> set[str]:
        if self.searcher is None:
            log.warning("strict_mode_without_searcher", pending=len(pending))
            return pending

        tickets = sorted(pending)
        outcomes = await asyncio.gather(
            *[self._is_integrated(ticket, target_branch) for ticket in tickets],
            return_exceptions=True,
        )

        remaining = set()
        for ticket, outcome in zip(tickets, outcomes, strict=False):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                log.warning("strict_verification_failed", ticket=ticket, error=str(outcome))
                remaining.add(ticket)
            elif outcome:
                log.info("strict_verification_dropped", ticket=ticket)
            else:
                remaining.add(ticket)

        log.info("strict_verification_complete", checked=len(tickets), remaining=len(remaining))
        return remaining

    async def _is_integrated(self, ticket: str, target_branch: str | None) -> bool:
        assert self.searcher is not None
        for pr in await self.searcher(ticket):
            if not pr.mentions(ticket):
                continue
            if pr.is_completed or (target_branch is not None and pr.target_branch == target_branch):
                return True
        return False
