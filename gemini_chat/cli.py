import asyncio
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.live import Live
from rich.markdown import Markdown
from rich.panel import Panel

from gemini_chat.client.exceptions import SessionBusyError, TurnValidationError
from gemini_chat.client.images import MAX_IMAGES_PER_TURN, load_image
from gemini_chat.client.session import DEFAULT_THINKING_BUDGET, ChatSession
from gemini_chat.config import settings as app_settings
from gemini_chat.schemas.chat import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_SYSTEM_INSTRUCTION,
    ChatMessage,
    GenerationSettings,
    ImageAttachment,
)

console = Console()
cli_app = typer.Typer(name="gemini-chat", help="Gemini chat relay and terminal client")

HELP_TEXT = (
    "[dim]/image PATH[/dim] attach an image  "
    "[dim]/regenerate[/dim] retry last reply  "
    "[dim]/model[/dim] switch flash/pro  "
    "[dim]/clear[/dim] new chat  "
    "[dim]/exit[/dim] quit"
)


@cli_app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the streaming relay."""
    import uvicorn

    uvicorn.run("gemini_chat.main:app", host=host, port=port, reload=reload)


class _LiveRenderer:
    """Re-renders the assistant message being streamed as markdown."""

    def __init__(self):
        self.live: Live | None = None

    def __call__(self, message: ChatMessage) -> None:
        if message.role != "assistant" or self.live is None:
            return
        self.live.update(_render(message))

    def start(self) -> None:
        self.live = Live(Markdown(""), console=console, refresh_per_second=12)
        self.live.start()

    def stop(self) -> None:
        if self.live is not None:
            self.live.stop()
            self.live = None


def _render(message: ChatMessage) -> Panel:
    title = "Gemini" if message.complete else "Gemini [dim](streaming)[/dim]"
    return Panel(Markdown(message.content or "…"), title=title, title_align="left", border_style="blue")


async def _turn(renderer: _LiveRenderer, coro_factory) -> None:
    renderer.start()
    try:
        await coro_factory()
    finally:
        renderer.stop()


async def _chat_loop(session: ChatSession, renderer: _LiveRenderer, pending: list[ImageAttachment]) -> None:
    console.print(Panel(f"Model: [cyan]{session.settings.model}[/cyan]\n{HELP_TEXT}", title="Gemini chat"))
    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold green]You[/bold green] › ")
        except (EOFError, KeyboardInterrupt):
            return
        command, _, argument = line.strip().partition(" ")

        try:
            if command == "/exit":
                return
            if command == "/clear":
                session.clear()
                console.print("[dim]Chat cleared.[/dim]")
            elif command == "/model":
                console.print(f"[dim]Now using[/dim] [cyan]{session.switch_model()}[/cyan]")
            elif command == "/image":
                if len(pending) >= MAX_IMAGES_PER_TURN:
                    raise TurnValidationError(f"You can upload up to {MAX_IMAGES_PER_TURN} images at once.")
                pending.append(load_image(Path(argument.strip())))
                console.print(f"[dim]{len(pending)}/{MAX_IMAGES_PER_TURN} images selected[/dim]")
            elif command == "/regenerate":
                last = len(session.messages) - 1
                await _turn(renderer, lambda: session.regenerate(last))
            elif line.strip() or pending:
                images = list(pending)
                pending.clear()
                await _turn(renderer, lambda: session.send(line.strip(), images))
        except (TurnValidationError, SessionBusyError, OSError, IndexError) as e:
            console.print(f"[yellow]{e}[/yellow]")


@cli_app.command("chat")
def chat(
    url: str = typer.Option(app_settings.chat_relay_url, "--url", help="Relay base URL"),
    model: str = typer.Option(app_settings.chat_default_model, "--model", help="Gemini model id"),
    system: str = typer.Option(DEFAULT_SYSTEM_INSTRUCTION, "--system", help="System instruction"),
    temperature: float = typer.Option(1.0, "--temperature", help="Sampling temperature (0-2)"),
    max_output_tokens: int = typer.Option(DEFAULT_MAX_OUTPUT_TOKENS, "--max-output-tokens"),
    thinking: bool = typer.Option(True, "--thinking/--no-thinking", help="Let the model reason before answering"),
    thinking_budget: int = typer.Option(DEFAULT_THINKING_BUDGET, "--thinking-budget", help="Reasoning budget (0-10000)"),
    search: bool = typer.Option(True, "--search/--no-search", help="Allow Google Search grounding"),
    image: list[Path] = typer.Option([], "--image", help="Image to attach to the first message"),
):
    """Interactive terminal chat against a running relay."""
    generation = GenerationSettings(
        model=model,
        system_instruction=system,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        enable_thinking=thinking,
        thinking_budget=thinking_budget,
        enable_google_search=search,
    )

    async def _run():
        renderer = _LiveRenderer()
        async with httpx.AsyncClient(
            base_url=url,
            timeout=httpx.Timeout(connect=app_settings.chat_http_connect_timeout, read=None, write=5.0, pool=5.0),
        ) as client:
            # The access route answers with the auth cookie; the client keeps it
            await client.get(app_settings.chat_access_path)
            session = ChatSession(
                client,
                settings=generation,
                on_update=renderer,
                on_error=lambda error: console.print(f"[bold red]Request failed:[/bold red] {error}"),
            )
            pending = [load_image(path) for path in image]
            await _chat_loop(session, renderer, pending)

    try:
        asyncio.run(_run())
    except (TurnValidationError, httpx.HTTPError) as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1)


def main():
    cli_app()


if __name__ == "__main__":
    main()
