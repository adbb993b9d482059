"""CLI entry point for hu-reconciler."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import click
import structlog

from hu_reconciler.config.settings import ReconcilerSettings
from hu_reconciler.engine.orchestrator import PromotionAnalyzer
from hu_reconciler.engine.resolver import RepositoryResolver, auto_select, filter_names
from hu_reconciler.engine.tickets import TicketExtractor
from hu_reconciler.enums import ResultConfidence
from hu_reconciler.exceptions import ConfigurationError, HuReconcilerError, InvalidSelectionError
from hu_reconciler.models.domain import ReconciliationResult, SelectionContext
from hu_reconciler.providers.azure_devops import AzureDevOpsProvider, AzureDevOpsTransport
from hu_reconciler.utils.connection_pool import close_all_pools
from hu_reconciler.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--config",
    default="hu_reconciler.yaml",
    envvar="HU_RECONCILER_CONFIG",
    help="Path to configuration file",
)
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str) -> None:
    """hu-reconciler: tickets pending promotion between two branches."""
    configure_logging(log_level)

    config_path = Path(config)
    if not config_path.exists():
        click.echo(f"Error: Configuration file not found: {config}", err=True)
        sys.exit(1)

    try:
        settings = ReconcilerSettings.from_yaml(str(config_path))
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


def build_provider(settings: ReconcilerSettings) -> AzureDevOpsProvider:
    """Create the Azure DevOps provider described by ``settings``."""
    transport = AzureDevOpsTransport(
        organization=settings.azure.organization,
        project=settings.azure.project,
        token=settings.azure.personal_access_token.get_secret_value(),
        api_version=settings.azure.api_version,
        base_url=settings.azure.base_url,
        timeout=settings.http.timeout,
        max_connections=settings.http.max_connections,
        max_concurrent_requests=settings.http.max_concurrent_requests,
    )
    return AzureDevOpsProvider(transport)


def build_extractor(settings: ReconcilerSettings) -> TicketExtractor:
    return TicketExtractor(
        settings.tickets.pattern,
        word_boundaries=settings.tickets.word_boundaries,
        ignore_case=settings.tickets.ignore_case,
    )


def _run(coro_factory: Callable[[], Awaitable[None]]) -> None:
    """Run an async command body with the CLI's error handling."""

    async def runner() -> None:
        try:
            await coro_factory()
        finally:
            await close_all_pools()

    try:
        asyncio.run(runner())
    except InvalidSelectionError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(2)
    except HuReconcilerError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("command_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


@cli.command("repos")
@click.option("--filter", "term", default=None, help="Only repositories whose name contains TERM")
@click.pass_context
def repos_command(ctx: click.Context, term: str | None) -> None:
    """List repositories of the configured project."""
    settings: ReconcilerSettings = ctx.obj["settings"]

    async def body() -> None:
        resolver = RepositoryResolver(build_provider(settings))
        repositories = await resolver.list_repositories()
        by_name = {repo.name: repo for repo in repositories}
        for name in filter_names([repo.name for repo in repositories], term):
            click.echo(f"{by_name[name].id}  {name}")

    _run(body)


@cli.command("branches")
@click.argument("repository")
@click.option("--filter", "term", default=None, help="Only branches whose name contains TERM")
@click.pass_context
def branches_command(ctx: click.Context, repository: str, term: str | None) -> None:
    """List branches of REPOSITORY (id or name)."""
    settings: ReconcilerSettings = ctx.obj["settings"]

    async def body() -> None:
        resolver = RepositoryResolver(build_provider(settings))
        repo = await resolver.resolve(repository)
        branches = await resolver.list_branches(repo)
        for name in filter_names(branches, term):
            click.echo(name)

    _run(body)


@cli.command("compare")
@click.argument("repository", required=False)
@click.option("--source", "source_branch", default=None, help="Branch whose unpromoted work is measured")
@click.option("--target", "target_branch", default=None, help="Promotion destination branch")
@click.option("--strict/--no-strict", default=None, help="Re-verify pending tickets with a text search")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format",
)
@click.option("--diagnostics", is_flag=True, help="Include diagnostic collections")
@click.pass_context
def compare_command(
    ctx: click.Context,
    repository: str | None,
    source_branch: str | None,
    target_branch: str | None,
    strict: bool | None,
    output_format: str,
    diagnostics: bool,
) -> None:
    """Report tickets on the source branch that are not yet on the target branch.

    Without REPOSITORY the configured default_repository is used, or the
    project's first repository when that is unset or no longer exists.
    Missing branches are auto-selected from the configured preferences
    (develop/main as source, QA/master as target by default).
    """
    settings: ReconcilerSettings = ctx.obj["settings"]
    if source_branch and target_branch and source_branch.strip() == target_branch.strip():
        click.echo("Error: Source and target branch are the same; choose different branches", err=True)
        sys.exit(2)

    async def body() -> None:
        provider = build_provider(settings)
        resolver = RepositoryResolver(provider)
        if repository:
            repo = await resolver.resolve(repository)
        else:
            repo = await resolver.resolve_default(settings.selection.default_repository)

        source, target = source_branch, target_branch
        if not source or not target:
            branches = await resolver.list_branches(repo)
            suggested_source, suggested_target = auto_select(
                branches,
                settings.selection.source_preferences,
                settings.selection.target_preferences,
            )
            source = source or suggested_source
            target = target or suggested_target

        selection = SelectionContext(repository=repo, source_branch=source or "", target_branch=target or "")
        analyzer = PromotionAnalyzer(provider, build_extractor(settings), settings.analysis)
        result = await analyzer.analyze(selection, strict=strict)

        if output_format == "json":
            click.echo(json.dumps(result.to_dict(include_diagnostics=diagnostics), indent=2))
        else:
            render_text(result, diagnostics)

    _run(body)


def render_text(result: ReconciliationResult, include_diagnostics: bool = False) -> None:
    """Print a reconciliation result for humans."""
    selection = result.selection
    click.echo(
        f"Repository {selection.repository.name}: "
        f"{selection.source_branch} -> {selection.target_branch}"
    )
    if result.confidence == ResultConfidence.DEGRADED:
        click.echo("Warning: target-side evidence was incomplete; some listed tickets may already be promoted")

    if not result.tickets:
        click.echo("Nothing pending.")
    else:
        click.echo(f"{len(result.tickets)} ticket(s) pending:")
        for ticket in result.tickets:
            click.echo(f"  {ticket.ticket_id}")
            for pr in ticket.pull_requests:
                click.echo(f"    PR {pr.pull_request_id} [{pr.status or 'unknown'}] {pr.title}")

    if result.commits_without_ticket:
        click.echo(f"{len(result.commits_without_ticket)} commit(s) without a ticket:")
        for commit in result.commits_without_ticket:
            first_line = commit.comment.splitlines()[0] if commit.comment else ""
            click.echo(f"  {commit.commit_id[:8]} {first_line}")

    if include_diagnostics and result.diagnostics is not None:
        diag = result.diagnostics
        click.echo("Diagnostics:")
        click.echo(f"  diff commits: {len(diag.diff_commit_ids)} (fallback: {diag.diff_fallback_used})")
        click.echo(f"  pull requests considered: {len(diag.observed_prs)}")
        click.echo(f"  target PRs / commits: {len(diag.target_prs)} / {len(diag.target_commits)}")
        click.echo(f"  source tickets: {', '.join(diag.source_tickets) or '-'}")
        click.echo(f"  target tickets: {len(diag.target_tickets)}")
        for failure in diag.failures:
            click.echo(f"  failed {failure.operation}: {failure.error}")


if __name__ == "__main__":
    cli()
