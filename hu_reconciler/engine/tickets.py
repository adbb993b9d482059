"""Ticket identifier extraction.

Pulls every ticket key (e.g. ``JURP01-1234``) out of commit messages and pull
request text with a configurable regular expression.
"""

import re

from hu_reconciler.exceptions import ConfigurationError
from hu_reconciler.models.domain import Commit, PullRequest


class TicketExtractor:
    """Extract normalized ticket ids from free text.

    Every whole match is trimmed and upper-cased, so a pattern written in
    mixed case cannot yield case-duplicates.

    Args:
        pattern: Regular expression whose entire match is the ticket id.
        word_boundaries: Wrap the pattern in ``\\b`` anchors. Off by default,
            since some ticket keys arrive glued to neighbouring characters
            (``fix/JURP01-12``).
        ignore_case: Match case-insensitively.

    Raises:
        ConfigurationError: If the pattern does not compile.

    Example:
        >>> extractor = TicketExtractor(r"PROJ-\\d+")
        >>> sorted(extractor.extract("proj-2 and PROJ-1, again proj-1"))
        ['PROJ-1', 'PROJ-2']
    """

    def __init__(self, pattern: str, word_boundaries: bool = False, ignore_case: bool = True):
        self.pattern = pattern
        self.word_boundaries = word_boundaries
        self.ignore_case = ignore_case

        source = rf"\b(?:{pattern})\b" if word_boundaries else pattern
        flags = re.IGNORECASE if ignore_case else 0
        try:
            self._regex = re.compile(source, flags)
        except re.error as e:
            raise ConfigurationError(f"Invalid ticket pattern {pattern!r}: {e}") from e

    def extract(self, text: str | None) -> set[str]:
        """Return the set of ticket ids found in ``text``. Empty input yields an empty set."""
        if not text:
            return set()
        tickets = set()
        for match in self._regex.finditer(text):
            ticket = match.group(0).strip().upper()
            if ticket:
                tickets.add(ticket)
        return tickets

    def extract_from_commit(self, commit: Commit) -> set[str]:
        return self.extract(commit.comment)

    def extract_from_pull_request(self, pull_request: PullRequest) -> set[str]:
        return self.extract(pull_request.text)
