"""Branch reconciliation engine.

This package holds the logic that decides which tickets are pending
promotion from a source branch to a target branch.

Key Components:
    - TicketExtractor: Ticket-key pattern matching and normalization
    - EvidenceSources: Fault-tolerant host queries for one run
    - EvidenceAggregator: Classification into source/target ticket sets
    - ReconciliationEngine: Set difference, strict verification, attribution
    - RepositoryResolver: Repository lookup and branch listing
    - PromotionAnalyzer: Orchestrates the concurrent fetch waves of a run
    - ComparisonSession: Cancels superseded runs

The CLI runs a single comparison per invocation. Interactive front ends that
re-run the comparison whenever the selection changes should go through
``ComparisonSession`` so only the newest selection's result is published.

Example:
    >>> from hu_reconciler.engine import ComparisonSession, PromotionAnalyzer
    >>> session = ComparisonSession(PromotionAnalyzer(provider, extractor))
    >>> session.submit(selection)
    >>> result = await session.submit(other_selection)
"""

from hu_reconciler.engine.aggregator import EvidenceAggregator
from hu_reconciler.engine.evidence import EvidenceSources
from hu_reconciler.engine.orchestrator import PromotionAnalyzer
from hu_reconciler.engine.reconciler import ReconciliationEngine
from hu_reconciler.engine.resolver import RepositoryResolver
from hu_reconciler.engine.session import ComparisonSession
from hu_reconciler.engine.tickets import TicketExtractor

__all__ = [
    "ComparisonSession",
    "EvidenceAggregator",
    "EvidenceSources",
    "PromotionAnalyzer",
    "ReconciliationEngine",
    "RepositoryResolver",
    "TicketExtractor",
]
