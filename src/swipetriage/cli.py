"""Typer-based CLI entry point."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.markup import escape

from swipetriage.application.services.batch_selector import BatchSelector
from swipetriage.application.state_machine import SessionPhase
from swipetriage.config import DEFAULT_BATCH_SIZE
from swipetriage.domain.models import ImageTier, SwipeDirection
from swipetriage.errors import (
    AssetEnumerationError,
    EmptyLibraryError,
    PermissionDeniedError,
    SettingsError,
    SwipeTriageError,
)
from swipetriage.events.bus import EventBus
from swipetriage.gui.viewmodels.session_viewmodel import SessionViewModel
from swipetriage.infrastructure.sources.filesystem_source import FilesystemAssetSource
from swipetriage.settings.manager import SettingsManager, TriageSettings
from swipetriage.utils.console_logger import ensure_console_logger

app = typer.Typer(help="Swipe through a random batch of photos from a folder")


class DecisionMode(str, Enum):
    KEEP = "keep"
    ARCHIVE = "archive"
    ALTERNATE = "alternate"

    def direction(self, swipe_number: int) -> SwipeDirection:
        if self is DecisionMode.KEEP:
            return SwipeDirection.RIGHT
        if self is DecisionMode.ARCHIVE:
            return SwipeDirection.LEFT
        return SwipeDirection.RIGHT if swipe_number % 2 == 0 else SwipeDirection.LEFT


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (SettingsError, AssetEnumerationError, PermissionDeniedError) as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except SwipeTriageError as exc:
            typer.echo(f"Unexpected error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


@app.command()
@_handle_errors
def sample(
    library: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder to sample from"),
    batch_size: int = typer.Option(DEFAULT_BATCH_SIZE, "--batch-size", "-n", min=1),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for a repeatable batch"),
) -> None:
    """Print one randomly sampled batch."""

    source = FilesystemAssetSource(library)
    try:
        assets = asyncio.run(source.list_image_assets())
    finally:
        source.shutdown()
    try:
        batch = BatchSelector(batch_size, random.Random(seed)).select(assets)
    except EmptyLibraryError:
        print(f"[yellow]No photos found in {library}")
        return
    print(f"[green]Sampled {len(batch)} of {len(assets)} photos")
    for number, asset in enumerate(batch, start=1):
        print(f"{number:>3}. {escape(asset.id)}")


@app.command()
@_handle_errors
def run(
    library: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder to triage"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-n", min=1),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for a repeatable batch"),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON file"),
    decision: DecisionMode = typer.Option(DecisionMode.ALTERNATE, "--decision"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log cache and fetch activity"),
) -> None:
    """Swipe through one batch headlessly and report cache behaviour."""

    ensure_console_logger(
        logging.getLogger("swipetriage"),
        "swipe-triage-cli",
        level=logging.DEBUG if verbose else logging.WARNING,
    )
    manager = SettingsManager(settings_path)
    manager.load()
    triage = manager.triage_settings()
    if batch_size is not None:
        triage = replace(triage, batch_size=batch_size)

    source = FilesystemAssetSource(library, recursive=triage.recursive)
    bus = EventBus()
    try:
        session = asyncio.run(_run_session(source, bus, triage, decision, seed))
    finally:
        source.shutdown()
        bus.shutdown()

    state = session.state
    if state.phase is SessionPhase.ERROR:
        typer.echo(f"Error: {state.message}", err=True)
        raise typer.Exit(1)
    if state.phase is SessionPhase.NO_PHOTOS:
        print(f"[yellow]No photos found in {library}")
        return
    _print_summary(session)


async def _run_session(
    source: FilesystemAssetSource,
    bus: EventBus,
    settings: TriageSettings,
    mode: DecisionMode,
    seed: Optional[int],
) -> SessionViewModel:
    session = SessionViewModel.create(source, bus, settings, rng=random.Random(seed))
    await session.request_permission_and_start()

    swipes = 0
    while session.current_card is not None and session.state.phase is SessionPhase.IDLE:
        card = session.current_card
        direction = mode.direction(swipes)
        tier = card.tier.value if card.tier is not None else "placeholder"
        print(f"[bold]{session.progress.value}[/bold] {escape(card.asset_id)} [dim]({tier})[/dim] -> {direction.decision}")
        await session.advance(direction)
        swipes += 1

    await session.stack.wait_for_background()
    session.dispose()
    return session


def _print_summary(session: SessionViewModel) -> None:
    print(
        f"[green]Batch complete:[/green] {session.kept_count} kept, "
        f"{session.archived_count} archived"
    )
    stats = session.stack.cache.stats
    for tier in ImageTier:
        snapshot = stats.get(tier.value)
        print(
            f"  {tier.value:<9} hits {snapshot.hits:>3}  misses {snapshot.misses:>3}  "
            f"evictions {snapshot.evictions:>3}  hit rate {snapshot.hit_rate:.0%}"
        )


if __name__ == "__main__":
    app()
