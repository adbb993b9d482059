"""Custom exception hierarchy for hu-reconciler.

This module defines a structured exception hierarchy that separates errors
which must abort a reconciliation run from errors that only degrade the
evidence collected for it.

Exception Hierarchy:
    HuReconcilerError (base)
    ├── ConfigurationError
    ├── ExternalServiceError
    │   └── TransientServiceError
    ├── RepositoryNotFoundError
    └── InvalidSelectionError

Adapter-level failures (ExternalServiceError and friends) are caught by the
evidence layer and never reach the caller of a run. Resolution and selection
errors propagate to the caller.

Example Usage:
    >>> from hu_reconciler.exceptions import RepositoryNotFoundError
    >>> try:
    ...     repository = await resolver.resolve("Juridico")
    ... except RepositoryNotFoundError as e:
    ...     print(e.identifier)
"""


class HuReconcilerError(Exception):
    """Base exception for all hu-reconciler errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(HuReconcilerError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Ticket pattern that does not compile
        - Missing required configuration fields
    """

    pass


class ExternalServiceError(HuReconcilerError):
    """Repository host communication errors.

    Raised when a call to the repository host fails (HTTP error status,
    malformed payload, network failure).

    Attributes:
        status_code: HTTP status code (if applicable)
        response_text: Response body text (if applicable)
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_text: str | None = None,
    ) -> None:
        """Initialize exception.

        Args:
            message: Error message
            status_code: HTTP status code (if applicable)
            response_text: Response body text (if applicable)
        """
        self.status_code = status_code
        self.response_text = response_text

        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"

        super().__init__(full_message)
        self.message = message


class TransientServiceError(ExternalServiceError):
    """Host error worth retrying (rate limiting, 5xx responses)."""

    pass


class RepositoryNotFoundError(HuReconcilerError):
    """No repository matches the given identifier or name.

    Attributes:
        identifier: The identifier that failed to resolve
    """

    def __init__(self, identifier: str) -> None:
        """Initialize exception.

        Args:
            identifier: Repository id or name that matched nothing
        """
        self.identifier = identifier
        super().__init__(f"Repository not found: {identifier}")


class InvalidSelectionError(HuReconcilerError):
    """The branch selection cannot be compared.

    Raised before any network call when the source and target branches are
    equal or one of them is blank.
    """

    pass
