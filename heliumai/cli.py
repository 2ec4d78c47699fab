"""heliumai Command-Line Interface.

This module provides CLI commands for inspecting the model catalog,
managing persisted preferences and chatting with a model from the
terminal using Click.

Available Commands:
    - models: Show the model catalog
    - resolve: Show which provider/model/endpoint a mode resolves to
    - prefs show: Show persisted preferences for both modes
    - prefs set-default: Persist provider and model for a mode
    - prefs clear: Forget the persisted provider and model for a mode
    - prefs set-endpoint: Persist (or remove) a provider endpoint
    - chat: Interactive session; Ctrl-C cancels the in-flight response
"""

import asyncio
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from heliumai._version import get_version
from heliumai.models.model_config import NETWORK_PROVIDERS, AIMode, ModelConfig, ModelProvider

console = Console()

MODE_CHOICE = click.Choice([mode.value for mode in AIMode])
PROVIDER_CHOICE = click.Choice([provider.value for provider in ModelProvider])


def _load_models(catalog: Path | None) -> list[ModelConfig]:
    from heliumai.catalog import load_catalog, merge_catalog
    from heliumai.config import get_settings

    path = catalog or get_settings().catalog_path
    installed = load_catalog(path) if path else []
    return merge_catalog(installed)


def _preferences():
    from heliumai.config import get_settings
    from heliumai.preferences import JsonFilePreferenceStore, Preferences

    return Preferences(JsonFilePreferenceStore(get_settings().preferences_path))


def _format_size(size_bytes: int | None) -> str:
    from heliumai.prompts import format_file_size

    return format_file_size(size_bytes) if size_bytes else "-"


@click.group()
@click.version_option(get_version(), prog_name="heliumai")
def cli() -> None:
    """heliumai CLI - inspect models, manage preferences and chat.

    Use --help with any command for more information.
    """
    from heliumai.telemetry import configure_tracing

    configure_tracing()


@cli.command()
@click.option("--catalog", "-c", type=click.Path(exists=True, path_type=Path), help="JSON catalog of installed models")
def models(catalog: Path | None) -> None:
    """Show the model catalog (installed models first, then known models)."""
    table = Table(title="Model Catalog")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Provider", style="magenta")
    table.add_column("Size", justify="right")
    table.add_column("Recommended for")
    table.add_column("Installed")

    for model in _load_models(catalog):
        table.add_row(
            model.id,
            model.name,
            model.provider.value,
            _format_size(model.size_bytes),
            ", ".join(mode.value for mode in model.recommended_for) or "-",
            "[green]yes[/green]" if model.is_available else "[dim]no[/dim]",
        )
    console.print(table)


@cli.command()
@click.option("--mode", "-m", type=MODE_CHOICE, default=AIMode.QA.value, help="Mode to resolve")
@click.option("--catalog", "-c", type=click.Path(exists=True, path_type=Path), help="JSON catalog of installed models")
def resolve(mode: str, catalog: Path | None) -> None:
    """Show which provider, model and endpoint a mode resolves to."""
    from heliumai.preferences import PreferenceResolver, Unresolved

    resolver = PreferenceResolver(_preferences())
    resolution = resolver.resolve(AIMode(mode), _load_models(catalog))

    if isinstance(resolution, Unresolved):
        console.print(
            f"[bold red]✗ Unresolved[/bold red] ({resolution.reason}) for provider {resolution.provider.value}"
        )
        raise SystemExit(1)

    console.print(f"[bold]Mode:[/bold] {resolution.mode.value}")
    console.print(f"[bold]Provider:[/bold] {resolution.provider.value}")
    console.print(f"[bold]Model:[/bold] {resolution.model.id} ({resolution.model.name})")
    console.print(f"[bold]Endpoint:[/bold] {resolution.endpoint or '-'}")
    console.print(f"[bold]Source:[/bold] {resolution.source}")
    if not resolution.is_available:
        console.print("[yellow]⚠ Model is not installed; download it before chatting[/yellow]")


@cli.group()
def prefs() -> None:
    """Manage persisted per-mode preferences."""
    pass


@prefs.command("show")
def prefs_show() -> None:
    """Show persisted preferences for both modes."""
    preferences = _preferences()

    table = Table(title="Preferences")
    table.add_column("Mode", style="cyan")
    table.add_column("Provider", style="magenta")
    table.add_column("Model")
    table.add_column("Endpoint")
    for mode in AIMode:
        record = preferences.load(mode)
        table.add_row(
            mode.value,
            record.provider.value if record.provider else "-",
            record.model_id or "-",
            record.endpoint or "-",
        )
    console.print(table)

    endpoints = [(p, preferences.endpoint_for(p)) for p in sorted(NETWORK_PROVIDERS, key=lambda p: p.value)]
    for provider, endpoint in endpoints:
        if endpoint:
            console.print(f"[bold]{provider.value} endpoint:[/bold] {endpoint}")


@prefs.command("set-default")
@click.option("--mode", "-m", type=MODE_CHOICE, required=True, help="Mode to configure")
@click.option("--provider", "-p", type=PROVIDER_CHOICE, required=True, help="Provider for the mode")
@click.option("--model", "model_id", required=True, help="Catalog model id for the mode")
def prefs_set_default(mode: str, provider: str, model_id: str) -> None:
    """Persist provider and model for a mode."""
    from heliumai.preferences import PreferenceRecord

    _preferences().save(PreferenceRecord(mode=AIMode(mode), provider=ModelProvider(provider), model_id=model_id))
    console.print(f"[bold green]✓ Saved[/bold green] {mode}: {provider} / {model_id}")


@prefs.command("clear")
@click.option("--mode", "-m", type=MODE_CHOICE, required=True, help="Mode to clear")
def prefs_clear(mode: str) -> None:
    """Forget the persisted provider and model for a mode."""
    _preferences().clear(AIMode(mode))
    console.print(f"[bold green]✓ Cleared[/bold green] {mode} defaults")


@prefs.command("set-endpoint")
@click.argument("provider", type=PROVIDER_CHOICE)
@click.argument("endpoint", required=False)
def prefs_set_endpoint(provider: str, endpoint: str | None) -> None:
    """Persist an endpoint for a network provider (omit ENDPOINT to remove it)."""
    try:
        _preferences().set_endpoint(ModelProvider(provider), endpoint)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PROVIDER") from e

    if endpoint:
        console.print(f"[bold green]✓ Saved[/bold green] {provider} endpoint: {endpoint}")
    else:
        console.print(f"[bold green]✓ Removed[/bold green] {provider} endpoint")


@cli.command()
@click.option("--mode", "-m", type=MODE_CHOICE, default=AIMode.QA.value, help="Starting mode")
@click.option("--model", "model_id", default=None, help="Catalog model id to use instead of the resolved one")
@click.option("--catalog", "-c", type=click.Path(exists=True, path_type=Path), help="JSON catalog of installed models")
@click.option("--path", "current_path", default=None, help="Directory to describe as file-system context")
def chat(mode: str, model_id: str | None, catalog: Path | None, current_path: str | None) -> None:
    """Interactive chat. Ctrl-C cancels the response in flight.

    Type /qa or /agent to switch modes and /exit to leave.
    """
    from heliumai.backends import AnyLLMBackend
    from heliumai.errors import HeliumError
    from heliumai.events import SessionEvent
    from heliumai.models.inference import FileSystemContext
    from heliumai.orchestrator import SessionOrchestrator

    def on_status(event: SessionEvent) -> None:
        if event.kind == "stream_chunk":
            console.print(event.content, end="", markup=False)
        elif event.kind == "tool_execution":
            console.print(f"\n[dim]⚙ {event.tool_name}: {event.tool_status}[/dim]")
        elif event.kind == "cancelled":
            console.print("\n[yellow]⚠ Cancelled[/yellow]")

    async def run_chat():
        orchestrator = SessionOrchestrator(
            backend=AnyLLMBackend(),
            preferences=_preferences(),
            available_models=_load_models(catalog),
            mode=AIMode(mode),
            on_status=on_status,
        )
        if model_id:
            try:
                orchestrator.select_model(model_id)
            except HeliumError as e:
                console.print(f"[red]✗ {e}[/red]")
                return

        fs_context = FileSystemContext(current_path=current_path) if current_path else None
        loop = asyncio.get_running_loop()

        while True:
            selected = orchestrator.selected_model
            label = selected.id if selected else "no model"
            text = await asyncio.to_thread(console.input, f"\n[bold cyan]{orchestrator.mode.value}[/bold cyan] ({label})> ")
            text = text.strip()
            if not text:
                continue
            if text == "/exit":
                break
            if text in ("/qa", "/agent"):
                await orchestrator.change_mode(AIMode(text[1:]))
                continue

            loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(orchestrator.cancel()))
            try:
                message = await orchestrator.send(text, fs_context=fs_context)
            finally:
                loop.remove_signal_handler(signal.SIGINT)

            if message is None:
                continue
            if message.error:
                console.print(f"\n[red]✗ {message.content}[/red]")
            else:
                # Streamed text may include tool markup; show the cleaned final text
                console.print()
                console.rule(style="dim")
                console.print(message.content, markup=False)

    asyncio.run(run_chat())


if __name__ == "__main__":
    cli()
