"""CLI entry point.

Provides the main CLI application with commands for:
- status: Show which AI credentials are configured
- login: Connect an AI account (API key, device code, or import)
- logout: Forget stored credentials
- chat: Build a canvas by talking to the assistant
- version: Show version information
"""

# Configure logging early before other imports
from src.logging_config import configure_logging

configure_logging()

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from src.exceptions import BlockPilotError

app = typer.Typer(
    name="blockpilot",
    help="AI assistant that builds app canvases from plain-language instructions",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.command()
def status() -> None:
    """Show the configured AI credentials."""
    asyncio.run(_show_status())


async def _show_status() -> None:
    from src.auth import get_config_store

    store = get_config_store()
    try:
        auth = await store.get()
    except BlockPilotError as e:
        console.print(f"[red]Could not read AI config: {e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title="AI connection")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Authenticated", "[green]yes[/green]" if auth.authenticated else "[red]no[/red]")
    table.add_row("API key", "set" if auth.has_api_key else "-")
    table.add_row("Device / imported tokens", "set" if auth.has_external_auth else "-")
    table.add_row("Auth method", auth.auth_method or "-")
    table.add_row("External CLI credentials found", "yes" if auth.external_available else "no")
    console.print(table)


@app.command()
def login(
    api_key: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--api-key", "-k", help="Store this API key without prompting"),
    ] = None,
) -> None:
    """Connect an AI account.

    Without options an interactive menu offers an API key, a device code
    sign-in, or importing the external CLI's credentials.
    """
    asyncio.run(_login(api_key))


async def _login(api_key: str | None) -> None:
    from src.auth import AuthMenuController, AuthMenuState, DeviceAuthFlow, get_config_store

    store = get_config_store()
    controller = AuthMenuController(store, DeviceAuthFlow(store))

    if api_key is not None:
        controller.open_api_key_form()
        if not await controller.submit_api_key(api_key):
            console.print(f"[red]{controller.last_error}[/red]")
            raise typer.Exit(code=1)
        console.print("[green]API key saved.[/green]")
        return

    while controller.state != AuthMenuState.CHAT:
        if controller.last_error:
            console.print(f"[red]{controller.last_error}[/red]")
        choice = Prompt.ask(
            "[bold]Connect AI[/bold]: [cyan]1[/cyan] API key, [cyan]2[/cyan] sign in with a device code, "
            "[cyan]3[/cyan] import CLI credentials, [cyan]q[/cyan] quit",
            choices=["1", "2", "3", "q"],
            default="2",
        )
        if choice == "q":
            raise typer.Exit(code=1)

        if choice == "1":
            controller.open_api_key_form()
            key = Prompt.ask("API key", password=True)
            if not await controller.submit_api_key(key):
                controller.back()
        elif choice == "2":
            await _device_login(controller)
        else:
            method = await controller.import_external()
            if method:
                console.print(f"[green]Imported credentials ({method}).[/green]")

    console.print("[green]AI connected.[/green]")


async def _device_login(controller) -> None:
    try:
        authorization = await controller.start_device_flow()
    except BlockPilotError as e:
        controller.last_error = f"Could not start sign-in: {e}"
        return

    console.print(
        Panel(
            f"Open [link={authorization.verification_url}]{authorization.verification_url}[/link]\n"
            f"and enter the code [bold yellow]{authorization.user_code}[/bold yellow]\n\n"
            f"[dim]Waiting for approval (expires in {authorization.expires_in_seconds // 60} min, "
            "Ctrl+C to cancel)...[/dim]",
            title="Sign in",
            border_style="blue",
        )
    )
    try:
        await controller.wait_for_device_flow()
    except asyncio.CancelledError:
        controller.cancel_device_flow()
        raise


@app.command()
def logout() -> None:
    """Forget the stored AI credentials."""
    asyncio.run(_logout())


async def _logout() -> None:
    from src.auth import get_config_store

    try:
        await get_config_store().put(clear=True)
    except BlockPilotError as e:
        console.print(f"[red]Could not clear credentials: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print("AI credentials cleared.")


@app.command()
def chat(
    message: Annotated[
        Optional[str],  # noqa: UP007
        typer.Argument(help="Initial instruction (or leave empty for interactive mode)"),
    ] = None,
    screenshot: Annotated[
        Optional[str],  # noqa: UP007
        typer.Option("--screenshot", "-s", help="Image file the canvas renderer keeps up to date"),
    ] = None,
) -> None:
    """Interactive chat that edits an in-memory canvas.

    Examples:
        blockpilot chat "Add a login form"
        blockpilot chat --screenshot /tmp/canvas.png
    """
    asyncio.run(_chat(message, screenshot))


def _render_canvas(document) -> None:
    view = document.current_container()
    table = Table(title=f"Canvas ({view.key})")
    for column in ("Name", "Type", "x", "y", "w", "h"):
        table.add_column(column)
    for key, cell in sorted(view.layout.items(), key=lambda kv: (kv[1].y, kv[1].x)):
        item = view.items[key]
        table.add_row(item.name, item.comp_type, str(cell.x), str(cell.y), str(cell.w), str(cell.h))
    console.print(table)


async def _chat(initial_message: str | None, screenshot: str | None) -> None:
    from src.auth import get_config_store
    from src.chat import ChatStreamClient, ConversationSession, FileSnapshotProvider
    from src.document import ActionExecutor, CanvasDocument

    try:
        auth = await get_config_store().get()
    except BlockPilotError as e:
        console.print(f"[red]Could not read AI config: {e}[/red]")
        raise typer.Exit(code=1) from e
    if not auth.authenticated:
        console.print("[yellow]No AI connection configured. Run [cyan]blockpilot login[/cyan] first.[/yellow]")
        raise typer.Exit(code=1)

    document = CanvasDocument()
    session = ConversationSession(
        ChatStreamClient(),
        ActionExecutor(document),
        snapshots=FileSnapshotProvider(screenshot) if screenshot else None,
    )

    console.print(
        Panel(
            "Describe what you want to build.\n"
            "Type [cyan]'canvas'[/cyan] to show the components, "
            "[cyan]'exit'[/cyan] or [cyan]'quit'[/cyan] to end.",
            title="BlockPilot",
            border_style="blue",
        )
    )

    shown = 0
    pending = initial_message
    while True:
        user_input = pending if pending is not None else Prompt.ask("[bold cyan]You[/bold cyan]")
        pending = None
        if user_input.strip().lower() in {"exit", "quit"}:
            break
        if user_input.strip().lower() == "canvas":
            _render_canvas(document)
            continue

        with console.status("Thinking..."):
            report = await session.send(user_input)
        if report is None:
            continue

        for msg in session.messages[shown:]:
            if msg.role == "assistant":
                style = "green" if msg.applied else "white"
                console.print(f"[bold {style}]Assistant:[/bold {style}] {msg.content}")
        shown = len(session.messages)
        if report.review_rounds:
            console.print(f"[dim]Self-review rounds: {report.review_rounds}[/dim]")

    console.print("\n[dim]Chat session ended.[/dim]")


@app.command()
def version() -> None:
    """Show BlockPilot version information."""
    from src.settings import get_settings

    settings = get_settings()
    console.print(
        Panel(
            "[bold]BlockPilot[/bold] v0.1.0\n"
            "AI canvas builder client\n\n"
            f"[dim]Backend: {settings.api_base_url} ({settings.config_backend} credentials)[/dim]",
            title="Version",
            border_style="blue",
        )
    )


# Entry point for: python -m src.cli.main
if __name__ == "__main__":
    app()
