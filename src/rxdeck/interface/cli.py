"""rxdeck CLI: deck management, admission preview and the terminal study loop."""

import asyncio
import json
import logging
import random
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from rxdeck.application.config import resolve_config
from rxdeck.domain.errors import PersistenceError
from rxdeck.domain.models import Grade, StudyMode

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="rxdeck: spaced-repetition drills for generic/brand drug names.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage rxdeck configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

GRADE_KEYS = {"1": Grade.AGAIN, "2": Grade.HARD, "3": Grade.GOOD, "4": Grade.EASY}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(ctx: typer.Context, **overrides: Any):
    obj = ctx.obj or {}
    config = resolve_config(
        {"db_path": obj.get("db_path"), "verbose": obj.get("verbose"), **overrides}
    )
    logging.getLogger().setLevel(logging.DEBUG if config.verbose > 1 else logging.INFO)
    return config


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine; store failures are reported and exit with status 1."""
    try:
        return asyncio.run(coro)
    except PersistenceError as e:
        typer.secho(f"Storage error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity (debug logging)."),
    ] = 0,
    db: Annotated[Path | None, typer.Option("--db", help="Path to the card database.")] = None,
):
    """Global settings for rxdeck."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = 1 + verbose if verbose else None
    ctx.obj["db_path"] = db


# ---------------------------------------------------------------------------
# Deck commands
# ---------------------------------------------------------------------------


@app.command()
def decks(ctx: typer.Context):
    """List decks with their due and total card counts."""
    from rxdeck.application.deck_service import DeckService
    from rxdeck.application.factory import open_store

    config = _resolve(ctx)

    async def run():
        with open_store(config) as store:
            return await DeckService(store, config).deck_summaries()

    summaries = _run(run())
    if not summaries:
        typer.secho("No decks yet. Run 'rxdeck seed' or 'rxdeck import FILE'.", fg="yellow")
        return

    for s in summaries:
        typer.echo(f"{s.deck.id}  {s.deck.name}  ({s.due} due / {s.total} cards)")


@app.command("import")
def import_deck(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="YAML file with 'deck' and 'cards' keys.")],
    name: Annotated[str | None, typer.Option(help="Override the deck name.")] = None,
):
    """[bold green]Import[/bold green] a deck of generic/brand pairs from YAML."""
    from rxdeck.application.deck_service import DeckService, load_pairs_file
    from rxdeck.application.factory import open_store

    if not file.exists():
        typer.secho(f"File not found: {file}", fg="red", err=True)
        raise typer.Exit(1)

    try:
        deck_name, pairs = load_pairs_file(file)
    except ValueError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e

    config = _resolve(ctx)

    async def run():
        with open_store(config) as store:
            return await DeckService(store, config).import_pairs(name or deck_name, pairs)

    try:
        deck, cards = _run(run())
    except ValueError as e:
        typer.secho(str(e), fg="red", err=True)
        raise typer.Exit(1) from e

    typer.secho(f"Imported '{deck.name}' ({len(cards)} cards) as {deck.id}", fg="green")


@app.command()
def seed(ctx: typer.Context):
    """Create or refresh the bundled preloaded decks."""
    from rxdeck.application.deck_service import DeckService
    from rxdeck.application.factory import open_store

    config = _resolve(ctx)

    async def run():
        with open_store(config) as store:
            return await DeckService(store, config).sync_preloaded_decks()

    report = _run(run())
    typer.secho(
        f"Decks created: {len(report.decks_created)}, "
        f"cards created: {report.cards_created}, cards updated: {report.cards_updated}",
        fg="green",
    )


@app.command()
def cards(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    search: Annotated[str | None, typer.Option("--search", "-s", help="Substring filter.")] = None,
):
    """List the cards of a deck (read-only)."""
    from rxdeck.application.deck_service import DeckService
    from rxdeck.application.factory import open_store

    config = _resolve(ctx)

    async def run():
        with open_store(config) as store:
            if await store.get_deck(deck_id) is None:
                return None
            return await DeckService(store, config).search_cards(deck_id, search)

    found = _run(run())
    if found is None:
        typer.secho(f"Deck not found: {deck_id}", fg="red", err=True)
        raise typer.Exit(1)

    for c in found:
        typer.echo(f"{c.id}  {c.generic} -> {c.brand}  [{c.state.value}, {c.difficulty_score}]")
    typer.echo(f"{len(found)} cards")


# ---------------------------------------------------------------------------
# Scheduling commands
# ---------------------------------------------------------------------------


@app.command()
def due(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    new_cards_per_day: Annotated[int | None, typer.Option(help="Cap on new cards.")] = None,
    reviews_per_day: Annotated[int | None, typer.Option(help="Cap on review cards.")] = None,
):
    """Show the admitted set for a deck: learning, review and new partitions."""
    from rxdeck.application.admission import due_cards
    from rxdeck.application.factory import open_store

    config = _resolve(ctx, new_cards_per_day=new_cards_per_day, reviews_per_day=reviews_per_day)

    async def run():
        with open_store(config) as store:
            return await due_cards(
                store,
                deck_id,
                new_cards_per_day=config.new_cards_per_day,
                reviews_per_day=config.reviews_per_day,
            )

    result = _run(run())
    typer.echo(f"Learning: {len(result.learning)}")
    typer.echo(f"Review: {len(result.review)} (+{result.skipped_review} over limit)")
    typer.echo(f"New: {len(result.new)} (+{result.skipped_new} over limit)")
    for card in result.admitted:
        typer.echo(f"  [{card.state.value}] {card.generic} -> {card.brand}")


@app.command()
def preview(
    ctx: typer.Context,
    card_id: Annotated[str, typer.Argument(help="Card id.")],
):
    """Show the next interval each grade would give a card, without changing it."""
    from rxdeck.application.factory import open_store
    from rxdeck.application.scheduler import SchedulerSettings, preview_all

    config = _resolve(ctx)

    async def run():
        with open_store(config) as store:
            return await store.get_card(card_id)

    card = _run(run())
    if card is None:
        typer.secho(f"Card not found: {card_id}", fg="red", err=True)
        raise typer.Exit(1)

    previews = preview_all(card, SchedulerSettings.from_config(config))
    typer.echo(f"{card.generic} -> {card.brand} ({card.state.value})")
    typer.echo("  ".join(f"{g.name.title()}: {d}" for g, d in previews.items()))


@app.command()
def study(
    ctx: typer.Context,
    deck_id: Annotated[str, typer.Argument(help="Deck id.")],
    mode: Annotated[
        StudyMode | None, typer.Option(help="Which name is shown first.")
    ] = None,
    scope: Annotated[
        str, typer.Option(help="'all' drills the whole deck, 'due' only admitted cards.")
    ] = "all",
    seed_value: Annotated[
        int | None, typer.Option("--seed", help="Random seed for reproducible order.")
    ] = None,
):
    """[bold green]Study[/bold green] a deck in the terminal. Grades 1-4, q quits."""
    from rxdeck.application.factory import open_store
    from rxdeck.application.scheduler import SchedulerSettings, preview_all
    from rxdeck.application.session import StudySession

    if scope not in ("all", "due"):
        typer.secho(f"Unknown scope '{scope}'; use 'all' or 'due'.", fg="red", err=True)
        raise typer.Exit(2)

    config = _resolve(ctx, study_mode=mode)
    sched = SchedulerSettings.from_config(config)

    async def run():
        with open_store(config) as store:
            if await store.get_deck(deck_id) is None:
                typer.secho(f"Deck not found: {deck_id}", fg="red", err=True)
                raise typer.Exit(1)

            session = StudySession(store, config, rng=random.Random(seed_value))
            await session.start(deck_id, scope=scope)
            graded = 0

            while not session.is_complete:
                face = session.face
                stats = session.stats
                typer.echo(
                    f"\n[batch {stats.active} | done {stats.confident} | left {stats.unseen}]"
                )
                typer.secho(f"{face.front_label}: {face.front_text}", bold=True)
                reveal = typer.prompt("Enter to reveal, q to quit", default="", show_default=False)
                if reveal.strip().lower() == "q":
                    break

                typer.echo(f"{face.back_label}: {face.back_text}")
                previews = preview_all(session.current.card, sched)
                typer.echo(
                    "  ".join(f"{int(g)}={g.name.title()} ({d})" for g, d in previews.items())
                )

                key = ""
                while key not in GRADE_KEYS and key != "q":
                    key = typer.prompt("Grade").strip().lower()
                if key == "q":
                    break

                outcome = await session.apply_grade(GRADE_KEYS[key])
                graded += 1
                typer.secho(outcome.feedback, fg="cyan")
                if outcome.promoted:
                    typer.secho(f"{len(outcome.promoted)} cards moved to the easy pool", fg="green")

            if session.is_complete:
                typer.secho("Nothing to study in this deck.", fg="yellow")
            return graded

    graded = _run(run())
    typer.echo(f"Graded {graded} cards.")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8777,
    reload: Annotated[bool, typer.Option(help="Auto-reload on code changes.")] = False,
):
    """Run the HTTP study server."""
    import uvicorn

    typer.echo(f"Starting rxdeck server on {host}:{port}")
    uvicorn.run("rxdeck.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve(ctx)
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    app()
