"""Supersedable comparison session.

When a new comparison is requested while the previous one is still running,
the previous run is cancelled and its in-flight host calls abandoned. Only the
newest run may publish a result, so a slow superseded run can never overwrite
a newer one.

Example:
    >>> session = ComparisonSession(analyzer)
    >>> first = session.submit(selection_a)
    >>> second = session.submit(selection_b)   # cancels ``first``
    >>> result = await second
    >>> session.latest is result
    True
"""

import asyncio

import structlog

from hu_reconciler.engine.orchestrator import PromotionAnalyzer
from hu_reconciler.models.domain import ReconciliationResult, SelectionContext

log = structlog.get_logger(__name__)


class ComparisonSession:
    """Run comparisons one at a time, newest request wins."""

    def __init__(self, analyzer: PromotionAnalyzer):
        self.analyzer = analyzer
        self.latest: ReconciliationResult | None = None
        self.last_selection: SelectionContext | None = None
        self._generation = 0
        self._current: asyncio.Task[ReconciliationResult] | None = None

    @property
    def running(self) -> bool:
        return self._current is not None and not self._current.done()

    def submit(self, selection: SelectionContext, strict: bool | None = None) -> "asyncio.Task[ReconciliationResult]":
        """Start a comparison, cancelling any run still in flight.

        Must be called from within a running event loop.
        """
        if self.running:
            assert self._current is not None
            log.info("comparison_superseded", generation=self._generation)
            self._current.cancel()

        self._generation += 1
        self.last_selection = selection
        self._current = asyncio.create_task(self._run(self._generation, selection, strict))
        return self._current

    async def _run(self, generation: int, selection: SelectionContext, strict: bool | None) -> ReconciliationResult:
        result = await self.analyzer.analyze(selection, strict=strict)
        if generation == self._generation:
            self.latest = result
        else:
            log.info("stale_comparison_discarded", generation=generation, current=self._generation)
        return result

    async def cancel(self) -> None:
        """Cancel the run in flight, if any, and wait for it to unwind."""
        if not self.running:
            return
        assert self._current is not None
        self._current.cancel()
        try:
            await self._current
        except asyncio.CancelledError:
            pass
