"""CLI entry point for glean."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

T = TypeVar("T")

# Every glean error is a RuntimeError (clients, agents, workflow) or a
# LookupError (missing idea/draft).
_HANDLED_ERRORS = (RuntimeError, LookupError)


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """glean: turn reading highlights into grounded blog drafts."""


# ---------------------------------------------------------------------------
# pipeline stages
# ---------------------------------------------------------------------------


@main.command()
@click.option("--incremental", is_flag=True, help="Only fetch highlights updated since the last sync")
def sync(incremental: bool) -> None:
    """Pull highlights from Readwise into the local store."""
    settings = _settings()
    components = _components(settings)

    with console.status("[bold green]Syncing highlights..."):
        result = _run(components, components.orchestrator.sync_highlights(incremental))

    console.print(
        Panel(
            f"Fetched [bold]{result.highlights_count}[/bold] highlights\n"
            f"New: {result.new_highlights}  Updated: {result.updated_highlights}",
            title="Sync complete",
            subtitle=f"sync log {result.sync_log_id}",
        )
    )


@main.command()
@click.option("--feedback", "-f", default=None, help="Guidance for the new batch")
@click.option("--no-curate", is_flag=True, help="Skip scoring the new batch")
def generate(feedback: str | None, no_curate: bool) -> None:
    """Generate a batch of ideas from the most recent highlights."""
    settings = _settings()
    _check_api_key(settings)
    components = _components(settings)
    orchestrator = components.orchestrator

    async def _generate():
        ideas = await orchestrator.generate_ideas(feedback)
        curation = None if no_curate else await orchestrator.curate_ideas(ideas.batch_id)
        return ideas, curation

    with console.status("[bold green]Generating ideas..."):
        ideas, curation = _run(components, _generate())

    console.print(f"\n[bold]Batch {ideas.batch_id}:[/bold] {len(ideas.idea_ids)} ideas stored")
    _print_ideas(components.store.ideas_in_batch(ideas.batch_id), components.store)
    if curation is not None:
        _print_curation(curation)


@main.command()
@click.argument("batch_id", type=int)
def curate(batch_id: int) -> None:
    """Score the ideas in BATCH_ID and shortlist the best."""
    settings = _settings()
    components = _components(settings)
    result = _run(components, components.orchestrator.curate_ideas(batch_id))
    if not result.feedback:
        console.print(f"[yellow]Batch {batch_id} has no ideas.[/yellow]")
        return
    _print_curation(result)


@main.command()
@click.argument("idea_ids", type=int, nargs=-1, required=True)
def draft(idea_ids: tuple[int, ...]) -> None:
    """Write a full draft for each of IDEA_IDS."""
    settings = _settings()
    _check_api_key(settings)
    components = _components(settings)

    with console.status(f"[bold green]Creating {len(idea_ids)} draft(s)..."):
        outcomes = _run(components, components.orchestrator.create_drafts(list(idea_ids)))

    _print_outcomes(outcomes)
    if not any(o.ok for o in outcomes):
        raise SystemExit(1)


@main.command()
def run() -> None:
    """Run the full pipeline: sync, generate, curate, draft."""
    from glean.orchestrator import WorkflowError

    settings = _settings()
    _check_api_key(settings)
    components = _components(settings)

    try:
        with console.status("[bold green]Running workflow..."):
            result = asyncio.run(_closing(components, components.orchestrator.run_workflow()))
    except WorkflowError as e:
        state = e.result.state
        console.print(f"[bold red]Error:[/bold red] workflow failed at {state.step.value}: {e}")
        raise SystemExit(1)

    if result.sync:
        console.print(
            f"Synced {result.sync.highlights_count} highlights "
            f"({result.sync.new_highlights} new)"
        )
    if result.ideas:
        console.print(
            f"Batch {result.ideas.batch_id}: {len(result.ideas.idea_ids)} ideas "
            f"after {result.regeneration_attempts} regeneration(s)"
        )
    if result.curation:
        _print_curation(result.curation)
    _print_outcomes(result.drafts)


# ---------------------------------------------------------------------------
# drafts
# ---------------------------------------------------------------------------


@main.command()
@click.argument("draft_id", type=int)
@click.option("--prompt", "-p", "custom_prompt", default=None, help="Extra evaluation criteria")
def judge(draft_id: int, custom_prompt: str | None) -> None:
    """Score DRAFT_ID for accuracy, readability, brand relevance and style."""
    settings = _settings()
    if not (settings.judge_api_key or settings.anthropic_api_key):
        console.print(
            "[bold red]Error:[/bold red] JUDGE_API_KEY or ANTHROPIC_API_KEY not set.\n"
            "Edit .env and add a key."
        )
        raise SystemExit(1)
    components = _components(settings)

    with console.status("[bold green]Judging draft..."):
        result = _run(components, components.judge.judge_draft(draft_id, custom_prompt))

    table = Table(title=f"Draft {draft_id}")
    table.add_column("Dimension", width=20)
    table.add_column("Score", width=6, justify="right")
    table.add_row("Accuracy", f"{result.accuracy:.2f}")
    table.add_row("Readability", f"{result.readability:.2f}")
    table.add_row("Brand relevance", f"{result.brand_relevance:.2f}")
    table.add_row("Style consistency", f"{result.style_consistency:.2f}")
    table.add_row("[bold]Overall[/bold]", f"[bold]{result.overall_score:.2f}[/bold]")
    console.print(table)
    console.print(Panel(result.feedback, title="Feedback"))


@main.command()
@click.argument("draft_id", type=int)
@click.option(
    "--file", "-f", "file_path", type=click.Path(exists=True, dir_okay=False), required=True,
    help="Text file holding the new draft body",
)
def edit(draft_id: int, file_path: str) -> None:
    """Replace the body of DRAFT_ID with the contents of a file."""
    from glean.storage.repository import DraftNotFoundError, Store

    settings = _settings()
    body = Path(file_path).read_text(encoding="utf-8")
    try:
        updated = Store(settings.db_path).update_draft_body(draft_id, body)
    except DraftNotFoundError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)
    console.print(f"[green]Draft {updated.id} updated:[/green] {updated.word_count} words")


# ---------------------------------------------------------------------------
# inspection
# ---------------------------------------------------------------------------


@main.command()
@click.option("--check-token", is_flag=True, help="Verify the Readwise token")
def status(check_token: bool) -> None:
    """Show the last sync and store totals."""
    from glean.storage.repository import Store

    settings = _settings()
    store = Store(settings.db_path)

    last = store.latest_sync()
    last_ok = store.last_successful_sync()

    console.print(f"\n[bold]Highlights:[/bold] {store.count_highlights()}")
    console.print(f"[bold]Ideas:[/bold] {store.count_ideas()}")
    console.print(f"[bold]Drafts:[/bold] {store.count_drafts()}")
    if last is None:
        console.print("[bold]Last sync:[/bold] never")
    else:
        line = (
            f"[bold]Last sync:[/bold] {last.sync_type} {last.status} "
            f"at {last.started_at:%Y-%m-%d %H:%M} ({last.highlights_count} highlights)"
        )
        if last.error_message:
            line += f"\n  [red]{last.error_message}[/red]"
        console.print(line)
    if last_ok and last and last_ok.id != last.id and last_ok.completed_at:
        console.print(f"[bold]Last success:[/bold] {last_ok.completed_at:%Y-%m-%d %H:%M}")

    if check_token:
        from glean.sources.readwise import ReadwiseClient

        client = ReadwiseClient(settings.readwise_token)

        async def _verify() -> bool:
            try:
                return await client.verify_token()
            finally:
                await client.close()

        if asyncio.run(_verify()):
            console.print("[green]Readwise token is valid.[/green]")
        else:
            console.print("[red]Readwise token is missing or invalid.[/red]")
            raise SystemExit(1)
    console.print()


@main.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def clear(yes: bool) -> None:
    """Delete all highlights with their embeddings and idea/draft links."""
    from glean.storage.repository import Store

    settings = _settings()
    if not yes:
        click.confirm("Delete every stored highlight?", abort=True)
    deleted = Store(settings.db_path).clear_highlights()
    console.print(f"[green]Deleted {deleted} highlights.[/green]")


@main.command()
@click.option("--limit", "-n", default=20, help="Number of highlights to show")
@click.option("--offset", default=0, help="Skip this many highlights")
def highlights(limit: int, offset: int) -> None:
    """List the most recent highlights."""
    from glean.storage.repository import Store

    settings = _settings()
    store = Store(settings.db_path)
    rows = store.recent_highlights(limit, offset)
    if not rows:
        console.print("[yellow]No highlights yet. Run 'glean sync' first.[/yellow]")
        return

    table = Table(title=f"Highlights ({store.count_highlights()} total)")
    table.add_column("ID", width=4, justify="right")
    table.add_column("Title", width=30)
    table.add_column("Highlight", width=60)
    table.add_column("Created", width=12)
    for h in rows:
        table.add_row(str(h.id), h.title[:30], h.text[:60], h.created_at.strftime("%Y-%m-%d"))
    console.print(table)


@main.command()
@click.option("--limit", "-n", default=30, help="Number of ideas to show")
def ideas(limit: int) -> None:
    """List ideas with their latest curator score."""
    from glean.storage.repository import Store

    settings = _settings()
    store = Store(settings.db_path)
    rows = store.list_ideas(limit)
    if not rows:
        console.print("[yellow]No ideas yet. Run 'glean generate' first.[/yellow]")
        return
    _print_ideas(rows, store)


@main.command()
@click.option("--limit", "-n", default=20, help="Number of drafts to show")
def drafts(limit: int) -> None:
    """List drafts."""
    from glean.storage.repository import Store

    settings = _settings()
    store = Store(settings.db_path)
    rows = store.list_drafts(limit)
    if not rows:
        console.print("[yellow]No drafts yet.[/yellow]")
        return

    table = Table(title="Drafts")
    table.add_column("ID", width=4, justify="right")
    table.add_column("Idea", width=50)
    table.add_column("Words", width=6, justify="right")
    table.add_column("Sources", width=7, justify="right")
    table.add_column("Created", width=12)
    for d in rows:
        idea = store.get_idea(d.idea_id)
        table.add_row(
            str(d.id),
            (idea.title if idea else f"#{d.idea_id}")[:50],
            str(d.word_count),
            str(len(store.draft_highlight_ids(d.id))),
            d.created_at.strftime("%Y-%m-%d"),
        )
    console.print(table)


@main.command()
@click.option("--init", "init_", is_flag=True, help="Write the default profile to the config path")
def brand(init_: bool) -> None:
    """Show the brand profile in effect."""
    from glean.brand.profile import BrandProfile

    settings = _settings()
    path = settings.brand_config_path

    if init_:
        if path.exists():
            console.print(f"[yellow]{path} already exists; not overwriting.[/yellow]")
            raise SystemExit(1)
        BrandProfile.default().save(path)
        console.print(f"[green]Wrote default brand profile to {path}[/green]")
        return

    profile = BrandProfile.load(path, settings.brand_profile)
    source = str(path) if path.exists() else "built-in default"
    console.print(Panel(profile.to_prompt_fragment(), title=profile.profile, subtitle=source))


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _settings():
    from glean.config import get_settings
    from glean.log import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


def _components(settings):
    from glean.orchestrator import build_components

    return build_components(settings)


async def _closing(components, coro: Awaitable[T]) -> T:
    try:
        return await coro
    finally:
        await components.aclose()


def _run(components, coro: Awaitable[T]) -> T:
    """Run one coroutine to completion, turning glean errors into exit code 1."""
    try:
        return asyncio.run(_closing(components, coro))
    except _HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1)


def _check_api_key(settings: object) -> None:
    """Exit with a helpful message if the API key is not set."""
    if not getattr(settings, "anthropic_api_key", ""):
        console.print(
            "[bold red]Error:[/bold red] ANTHROPIC_API_KEY not set.\n"
            "Edit .env and add your key."
        )
        raise SystemExit(1)


def _print_ideas(rows, store) -> None:
    table = Table(title="Ideas")
    table.add_column("ID", width=4, justify="right")
    table.add_column("Batch", width=5, justify="right")
    table.add_column("Title", width=50)
    table.add_column("Score", width=5, justify="right")
    table.add_column("Short", width=5, justify="center")
    for idea in rows:
        score = store.latest_score(idea.id)
        table.add_row(
            str(idea.id),
            str(idea.generation_batch),
            idea.title[:50],
            f"{score.average_score:.2f}" if score else "-",
            ("[green]yes[/green]" if score.shortlisted else "no") if score else "-",
        )
    console.print(table)


def _print_curation(result) -> None:
    table = Table(title="Curation")
    table.add_column("Idea", width=5, justify="right")
    table.add_column("Avg", width=5, justify="right")
    table.add_column("Short", width=5, justify="center")
    table.add_column("Feedback", width=70)
    for idea_id, fb in result.feedback.items():
        table.add_row(
            str(idea_id),
            f"{fb.average_score:.2f}",
            "[green]yes[/green]" if fb.shortlisted else "no",
            fb.feedback,
        )
    console.print(table)
    shortlist = ", ".join(str(i) for i in result.shortlisted_ideas) or "none"
    console.print(f"[bold]Shortlist:[/bold] {shortlist}")
    if result.should_regenerate:
        console.print("[yellow]Batch is weak; consider 'glean generate --feedback ...'[/yellow]")


def _print_outcomes(outcomes) -> None:
    for outcome in outcomes:
        if outcome.ok:
            console.print(
                f"  [green]Draft {outcome.draft_id}[/green] for idea {outcome.idea_id}: "
                f"{outcome.word_count} words"
            )
        else:
            console.print(f"  [red]Idea {outcome.idea_id} failed:[/red] {outcome.error}")
