"""Repository and branch resolution.

Maps a user-supplied repository id or name onto a canonical ``Repository``
and lists its branches. Transport failures propagate unchanged
(``ExternalServiceError``) so callers can tell them apart from
``RepositoryNotFoundError``.
"""

import structlog

from hu_reconciler.exceptions import InvalidSelectionError, RepositoryNotFoundError
from hu_reconciler.models.domain import Repository
from hu_reconciler.providers.azure_devops import AzureDevOpsProvider

log = structlog.get_logger(__name__)

DEFAULT_SOURCE_PREFERENCES = ("develop", "main")
DEFAULT_TARGET_PREFERENCES = ("QA", "master")
SUGGESTION_LIMIT = 50


def match_repository(repositories: list[Repository], identifier: str) -> Repository | None:
    """Find a repository by exact id, else by case-insensitive name."""
    wanted = identifier.strip()
    for repository in repositories:
        if repository.id == wanted:
            return repository
    lowered = wanted.lower()
    for repository in repositories:
        if repository.name.lower() == lowered:
            return repository
    return None


def default_repository(repositories: list[Repository], preferred: str | None = None) -> Repository | None:
    """Pick the preferred repository when listed, else the first one."""
    if not repositories:
        return None
    if preferred:
        found = match_repository(repositories, preferred)
        if found is not None:
            return found
    return repositories[0]


def auto_select(
    branches: list[str],
    source_preferences: list[str] | tuple[str, ...] = DEFAULT_SOURCE_PREFERENCES,
    target_preferences: list[str] | tuple[str, ...] = DEFAULT_TARGET_PREFERENCES,
) -> tuple[str | None, str | None]:
    """Suggest a (source, target) pair from the first preferred names present."""
    available = set(branches)
    source = next((name for name in source_preferences if name in available), None)
    target = next((name for name in target_preferences if name in available), None)
    return source, target


def filter_names(names: list[str], term: str | None, limit: int = SUGGESTION_LIMIT) -> list[str]:
    """Autocomplete filter: case-insensitive substring match, at most ``limit`` names."""
    needle = (term or "").strip().lower()
    if not needle:
        return names[:limit]
    return [name for name in names if needle in name.lower()][:limit]


class RepositoryResolver:
    """Resolve repositories and list branches through the provider."""

    def __init__(self, provider: AzureDevOpsProvider):
        self.provider = provider

    async def list_repositories(self) -> list[Repository]:
        return await self.provider.list_repositories()

    async def resolve(self, identifier: str) -> Repository:
        """Resolve an id or name to a repository.

        Raises:
            RepositoryNotFoundError: If nothing matches by id or name.
            ExternalServiceError: If the repository listing failed.
        """
        if not identifier or not identifier.strip():
            raise RepositoryNotFoundError(identifier or "")

        repositories = await self.provider.list_repositories()
        repository = match_repository(repositories, identifier)
        if repository is None:
            log.warning("repository_not_found", identifier=identifier, candidates=len(repositories))
            raise RepositoryNotFoundError(identifier)

        log.info("repository_resolved", identifier=identifier, repository_id=repository.id, name=repository.name)
        return repository

    async def resolve_default(self, preferred: str | None = None) -> Repository:
        """Pick ``preferred`` when the project has it, else its first repository.

        Raises:
            InvalidSelectionError: If the project has no repositories.
            ExternalServiceError: If the repository listing failed.
        """
        repositories = await self.provider.list_repositories()
        repository = default_repository(repositories, preferred)
        if repository is None:
            raise InvalidSelectionError("No repository given and the project has no repositories")

        if preferred and match_repository(repositories, preferred) is None:
            log.warning("default_repository_missing", preferred=preferred, fallback=repository.name)
        log.info("repository_defaulted", repository_id=repository.id, name=repository.name)
        return repository

    async def list_branches(self, repository: Repository) -> list[str]:
        """Branch names of ``repository`` in host order."""
        return await self.provider.list_branches(repository.id)
