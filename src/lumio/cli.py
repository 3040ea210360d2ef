"""Lumio CLI - lumio command line tool."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lumio import __version__
from lumio.assistant import Assistant
from lumio.common.events import Event
from lumio.common.logging import setup_logging
from lumio.config import Config, load_config
from lumio.gestures import GESTURE_GUIDE, Gesture, TapCounter
from lumio.identity.gallery import GalleryRepository

app = typer.Typer(
    name="lumio",
    help="Lumio camera assistant",
    no_args_is_help=True,
)
console = Console()

KEY_GESTURES = {
    "d": Gesture.DOUBLE_TAP,
    "t": Gesture.TRIPLE_TAP,
    "f": Gesture.TWO_FINGER_TAP,
    "s": Gesture.TWO_FINGER_SWIPE,
}

KEY_HELP = (
    "[bold]d[/] double tap  [bold]t[/] triple tap  [bold].[/] single tap  "
    "[bold]f[/] two-finger tap  [bold]s[/] two-finger swipe  "
    "[bold]n NAME[/] save typed name  [bold]?[/] status  [bold]q[/] quit"
)


def get_config(config_path: Optional[Path] = None) -> Config:
    """Get configuration."""
    return load_config(config_path)


def status_table(status: dict) -> Table:
    """Render an assistant status snapshot."""
    table = Table(title="Lumio status")
    table.add_column("Component", style="cyan")
    table.add_column("State")

    for name in ("status", "armed_mode", "enrollment", "known_faces"):
        table.add_row(name, str(status[name]))
    for name in ("camera", "vision"):
        details = ", ".join(f"{k}={v}" for k, v in status[name].items())
        table.add_row(name, details)

    return table


def parse_command(line: str) -> tuple[str, str | None]:
    """Split a console line into a command key and its argument.

    Returns:
        (key, argument); key is "" for a blank line.
    """
    line = line.strip()
    if not line:
        return "", None
    key, _, rest = line.partition(" ")
    return key.lower(), rest.strip() or None


async def run_console(assistant: Assistant) -> None:
    """Read gesture keys from the terminal until quit."""
    taps = TapCounter(assistant.handle_gesture)

    @assistant.events.subscribe("status.changed")
    async def on_status(event: Event) -> None:
        console.print(f"[dim]status:[/] {event.data['status']}")

    @assistant.events.subscribe("enrollment.*")
    async def on_enrollment(event: Event) -> None:
        console.print(f"[dim]enrollment:[/] {event.topic.split('.', 1)[1]}")

    @assistant.events.subscribe("gallery.saved")
    async def on_gallery_saved(event: Event) -> None:
        if not event.data["saved"]:
            console.print(f"[red]Could not write gallery[/] ({event.data['name']} kept until exit)")

    console.print(Panel(KEY_HELP, title=f"Lumio v{__version__}"))
    loop = asyncio.get_running_loop()

    while assistant.running:
        try:
            line = await loop.run_in_executor(None, input, "> ")
        except EOFError:
            break

        key, argument = parse_command(line)
        if key == "q":
            break
        if key in KEY_GESTURES:
            await assistant.handle_gesture(KEY_GESTURES[key])
        elif key == ".":
            await taps.tap()
        elif key == "?":
            console.print(status_table(assistant.get_status()))
        elif key == "n":
            if not await assistant.submit_typed_name(argument or ""):
                console.print("[yellow]No name saved.[/] Open typing with a triple tap first.")
        elif key:
            console.print(f"[red]Unknown key:[/] {key}")

    taps.reset()


async def run_assistant(config: Config, mock: bool) -> None:
    assistant = Assistant(config, mock_mode=mock)
    await assistant.start()
    try:
        await run_console(assistant)
    finally:
        await assistant.stop()


@app.command()
def run(
    mock: bool = typer.Option(False, "--mock", help="Run with mock camera, classifiers and speech"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Log as JSON"),
):
    """Run the assistant."""
    cfg = get_config(config_path)
    setup_logging(cfg.device.log_level, json_output=json_logs or cfg.device.mode == "production")

    try:
        asyncio.run(run_assistant(cfg, mock))
    except RuntimeError as e:
        console.print(f"[red]Error:[/] {e}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass


# Gallery commands
gallery_cmd = typer.Typer(help="Known faces")
app.add_typer(gallery_cmd, name="gallery")


@gallery_cmd.command("list")
def gallery_list(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
):
    """List enrolled faces."""
    cfg = get_config(config_path)
    repository = GalleryRepository(
        Path(cfg.identity.gallery_path).expanduser(),
        storage_key=cfg.identity.storage_key,
    )
    gallery = repository.load()

    if not len(gallery):
        console.print("[dim]No faces enrolled[/]")
        return

    table = Table(title=f"Known faces ({repository.path})")
    table.add_column("Name", style="cyan")
    table.add_column("Points", justify="right")

    for name, signature in gallery.items():
        table.add_row(name, str(len(signature)))

    console.print(table)


@app.command()
def gestures():
    """Show the gesture guide."""
    table = Table(title="Gestures")
    table.add_column("Gesture", style="cyan")
    table.add_column("Key")
    table.add_column("Action")
    table.add_column("While adding a person")

    keys = {gesture: key for key, gesture in KEY_GESTURES.items()}
    for gesture, action, enrolling_action in GESTURE_GUIDE:
        table.add_row(gesture.value.replace("_", " "), keys[gesture], action, enrolling_action)

    console.print(table)


# Config command
@app.command()
def config(
    json_output: bool = False,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config file"),
):
    """Show configuration."""
    cfg = get_config(config_path)

    if json_output:
        print(json.dumps(cfg.model_dump(), indent=2, default=str))
    else:
        console.print("[bold]Configuration[/]")
        console.print(f"  Device: {cfg.device.name}")
        console.print(f"  Mode: {cfg.device.mode}")
        console.print(f"  Mock Mode: {cfg.mock_mode}")
        console.print("\n[bold]Analysis[/]")
        console.print(f"  Scene threshold: {cfg.analysis.scene_min_confidence}")
        console.print(f"  Object threshold: {cfg.analysis.object_min_confidence}")
        console.print(f"  Object model: {cfg.analysis.object_model_path or 'not configured'}")
        console.print("\n[bold]Identity[/]")
        console.print(f"  Match threshold: {cfg.identity.match_threshold}")
        console.print(f"  Gallery: {cfg.identity.gallery_path}")
        console.print("\n[bold]Speech[/]")
        console.print(f"  Rate: {cfg.speech.rate}")
        console.print(f"  Voice: {cfg.speech.voice}")


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Lumio[/] v{__version__}")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
