"""
vocalog.cli - Typer CLI entry point.

Exposes the speech-session operations over one storage directory.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, TypeVar

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from vocalog import __version__
from vocalog.backup import read_backup_file, write_backup_file
from vocalog.config import CONFIG_FILENAME, VocalogConfig, default_base_dir, write_config
from vocalog.exceptions import DependencyError, VocalogError
from vocalog.io import read_text
from vocalog.logging import configure_logging
from vocalog.models import ModelDownloadProgress, ModelStatusEvent, ModelStatusKind
from vocalog.provision import MODEL_PROGRESS_EVENT, MODEL_STATUS_EVENT
from vocalog.service import SpeechService
from vocalog.utils import format_bytes, format_duration, preview, session_duration

app = typer.Typer(
    name="vocalog",
    help="Local speech-session transcription.\n\n"
    "Transcribes WAV recordings with whisper.cpp and keeps an editable, "
    "exportable history of sessions.",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


def version_callback(value: bool) -> None:
    if value:
        console.print(f"vocalog {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    base_dir: Path | None = typer.Option(
        None,
        "--base-dir",
        "-d",
        help="Storage directory (default: $VOCALOG_HOME or ~/.local/share/vocalog)",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Vocalog - local speech-session transcription."""
    configure_logging(verbose)
    ctx.obj = {"base_dir": (base_dir or default_base_dir()).expanduser()}


def _service(ctx: typer.Context, **kwargs: Any) -> SpeechService:
    try:
        return SpeechService(ctx.obj["base_dir"], **kwargs)
    except VocalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except DependencyError as e:
        console.print(f"[red]Error: {e}[/red]")
        if e.install_hint:
            console.print(f"[dim]  {e.install_hint}[/dim]")
        raise typer.Exit(1)
    except VocalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


# Setup


@app.command("init")
def init_config(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
) -> None:
    """Write a default vocalog.yaml into the storage directory."""
    config_file = ctx.obj["base_dir"] / CONFIG_FILENAME
    if config_file.exists() and not force:
        console.print(f"[red]Error: {config_file} already exists (use --force to overwrite)[/red]")
        raise typer.Exit(1)

    write_config(VocalogConfig().model_dump(mode="json"), config_file)
    console.print(f"[green]✓[/green] Wrote default config to {config_file}")


# Model


@app.command("model")
def ensure_model(ctx: typer.Context) -> None:
    """Make sure the acoustic model is available, downloading it if needed."""
    progress = Progress(
        TextColumn("[cyan]Downloading model"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
        transient=True,
    )
    task_id = progress.add_task("download", total=None, start=False)

    def on_event(name: str, payload: BaseModel) -> None:
        if name == MODEL_PROGRESS_EVENT and isinstance(payload, ModelDownloadProgress):
            progress.start_task(task_id)
            progress.update(
                task_id,
                completed=payload.downloaded_bytes,
                total=payload.total_bytes,
            )
        elif name == MODEL_STATUS_EVENT and isinstance(payload, ModelStatusEvent):
            if payload.status is ModelStatusKind.DOWNLOADING:
                progress.start()
            elif payload.status in (ModelStatusKind.FINISHED, ModelStatusKind.FAILED):
                progress.stop()

    service = _service(ctx, emit=on_event)
    try:
        status = _run(service.ensure_model())
    finally:
        progress.stop()

    if status.downloaded:
        console.print(f"[green]✓[/green] Downloaded model to {status.model_path}")
    else:
        console.print(f"[green]✓[/green] Model ready at {status.model_path}")


@app.command("status")
def show_status(ctx: typer.Context) -> None:
    """Show model readiness and session count."""
    service = _service(ctx)
    status = service.model_status()
    sessions = _run(service.list_sessions())

    table = Table(title="Vocalog Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    if status.ready:
        size = format_bytes(Path(status.model_path or "").stat().st_size)
        table.add_row("Model", "✓ Ready", f"{status.model_path} ({size})")
    else:
        table.add_row("Model", "✗ Missing", "Run 'vocalog model'")
    table.add_row("Sessions", str(len(sessions)), str(service.base_dir))

    console.print(table)


# Transcription


@app.command("transcribe")
def transcribe(
    ctx: typer.Context,
    audio_file: Path = typer.Argument(..., help="WAV recording to transcribe"),
    language: str | None = typer.Option(
        None, "--language", "-l", help="Language code: en or zh (default from config)"
    ),
    title: str | None = typer.Option(None, "--title", "-t", help="Session title"),
) -> None:
    """Transcribe a WAV recording into a new session."""
    if not audio_file.is_file():
        console.print(f"[red]Error: File not found: {audio_file}[/red]")
        raise typer.Exit(1)

    service = _service(ctx)
    audio = audio_file.read_bytes()

    console.print(f"[cyan]Transcribing {audio_file.name}...[/cyan]")
    try:
        session = _run(service.transcribe(audio, language, title))
    except KeyboardInterrupt:
        console.print("[yellow]Transcription interrupted[/yellow]")
        raise typer.Exit(130)

    console.print(f"[green]✓[/green] Session {session.id}: {session.title}")
    console.print(f"[dim]  {len(session.segments)} segments, {format_duration(session_duration(session))}[/dim]")
    if session.transcript:
        console.print(session.transcript)


# Sessions


@app.command("list")
def list_sessions(ctx: typer.Context) -> None:
    """List stored sessions, newest first."""
    service = _service(ctx)
    sessions = _run(service.list_sessions())

    if not sessions:
        console.print("[yellow]No sessions yet. Run 'vocalog transcribe' first.[/yellow]")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Lang", style="green")
    table.add_column("Duration", style="green")
    table.add_column("Created", style="dim")
    table.add_column("Transcript")

    for session in sessions:
        table.add_row(
            session.id,
            session.title,
            session.language.value,
            format_duration(session_duration(session)),
            session.created_at,
            preview(session.transcript, 40),
        )

    console.print(table)


@app.command("show")
def show_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    segments: bool = typer.Option(False, "--segments", "-s", help="Show timestamped segments"),
) -> None:
    """Show one session's transcript."""
    service = _service(ctx)
    session = _run(service.get_session(session_id))

    console.print(f"[bold]{session.title}[/bold] [dim]({session.language.display_name}, {session.created_at})[/dim]")
    console.print(f"[dim]{service.base_dir / session.audio_path}[/dim]\n")

    if segments:
        for segment in session.segments:
            console.print(
                f"[cyan]{format_duration(segment.start)} → {format_duration(segment.end)}[/cyan]  {segment.text}"
            )
    else:
        console.print(session.transcript or "[dim](empty transcript)[/dim]")


@app.command("update")
def update_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
    title: str | None = typer.Option(None, "--title", "-t", help="New title"),
    transcript_file: Path | None = typer.Option(
        None, "--transcript-file", "-f", help="Text file with the corrected transcript"
    ),
) -> None:
    """Rename a session or replace its transcript."""
    if title is None and transcript_file is None:
        console.print("[yellow]Nothing to update. Pass --title and/or --transcript-file.[/yellow]")
        raise typer.Exit(1)

    transcript = None
    if transcript_file is not None:
        if not transcript_file.is_file():
            console.print(f"[red]Error: File not found: {transcript_file}[/red]")
            raise typer.Exit(1)
        transcript = read_text(transcript_file)

    service = _service(ctx)
    session = _run(service.update_session(session_id, title=title, transcript=transcript))
    console.print(f"[green]✓[/green] Updated session {session.id}: {session.title}")


@app.command("delete")
def delete_session(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID"),
) -> None:
    """Delete a session and its recording."""
    service = _service(ctx)
    removed = _run(service.delete_session(session_id))
    if removed:
        console.print(f"[green]✓[/green] Deleted session {session_id}")
    else:
        console.print(f"[dim]No session {session_id}; nothing to delete[/dim]")


# Backup


@app.command("export")
def export_sessions(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Backup file to write (JSON)"),
) -> None:
    """Export all sessions, with embedded audio, to a backup file."""
    service = _service(ctx)
    records = _run(service.export_sessions())
    try:
        write_backup_file(output, records)
    except VocalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Exported {len(records)} session(s) to {output}")


@app.command("import")
def import_sessions(
    ctx: typer.Context,
    backup_file: Path = typer.Argument(..., help="Backup file to read (JSON)"),
) -> None:
    """Import sessions from a backup file, replacing sessions with the same ID."""
    service = _service(ctx)
    try:
        records = read_backup_file(backup_file)
    except VocalogError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    count = _run(service.import_sessions(records))
    console.print(f"[green]✓[/green] Imported {count} session(s)")
