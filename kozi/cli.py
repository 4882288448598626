# kozi/cli.py
from __future__ import annotations

import os
import asyncio
from typing import Optional
import typer
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from dotenv import load_dotenv
load_dotenv()

from kozi.utils.logging import setup_logger
from kozi.settings import SETTINGS
from kozi.exceptions import SessionNotFoundError
from kozi.jobs.client import JobsClient
from kozi.orchestrator.agent import build_orchestrator, describe_search
from kozi.rag.knowledge import KnowledgeLoader

app = typer.Typer(add_completion=False, help="Kozi conversational assistant")

# -----------------------
# Rich Theme
# -----------------------
KOZI_THEME = Theme({
    "info": "blue",
    "success": "green",
    "warning": "yellow",
    "error": "bold red",
    "prompt": "bold blue",
    "banner": "bold blue",
    "user": "bold green",
    "assistant": "cyan",
    "table.title": "bold blue",
    "table.header": "green",
})
console = Console(theme=KOZI_THEME)

BANNER_ASCII = r"""
 ██╗  ██╗ ██████╗ ███████╗██╗
 ██║ ██╔╝██╔═══██╗╚══███╔╝██║
 █████╔╝ ██║   ██║  ███╔╝ ██║
 ██╔═██╗ ██║   ██║ ███╔╝  ██║
 ██║  ██╗╚██████╔╝███████╗██║
 ╚═╝  ╚═╝ ╚═════╝ ╚══════╝╚═╝

 profile • jobs • cv
"""

EXIT_WORDS = {"/quit", "/exit", "/q"}


def _print_ascii_banner(console: Console) -> None:
    """Startup banner; disable with KOZI_NO_BANNER=1."""
    if os.getenv("KOZI_NO_BANNER", "").strip().lower() in {"1", "true", "yes"}:
        return
    banner = Text(BANNER_ASCII, style="banner")
    console.print(Panel(banner.append("\nWelcome to Kozi", style="banner"), padding=(0, 2)))


def _init() -> None:
    setup_logger(SETTINGS.log_level, SETTINGS.log_json)


@app.command()
def chat(
    user_id: str = typer.Option(..., "--user-id", help="Kozi user id the conversation belongs to"),
):
    """Interactive chat session (type /quit to leave)."""
    _init()
    _print_ascii_banner(console)
    orchestrator = build_orchestrator()
    started = orchestrator.start_session(user_id)
    session_id = started["session_id"]
    console.print(f"[dim]session {session_id}[/dim]")
    console.print(f"[assistant]Kozi:[/assistant] {started['message']}\n")

    async def _loop() -> None:
        while True:
            message = Prompt.ask("[user]You[/user]", console=console).strip()
            if not message:
                continue
            if message.lower() in EXIT_WORDS:
                break
            reply = await orchestrator.handle(session_id, user_id, message)
            console.print(f"\n[assistant]Kozi:[/assistant] {reply['message']}\n")

    try:
        asyncio.run(_loop())
    except (KeyboardInterrupt, EOFError):
        console.print()
    ended = orchestrator.end_session(session_id)
    console.print(f"[success]{ended['message']}[/success]")


@app.command("load-knowledge")
def load_knowledge(
    docs_dir: Optional[str] = typer.Option(None, help="Folder of .pdf/.docx files to index"),
):
    """Embed the built-in Kozi knowledge plus local documents into the vector store."""
    _init()
    orchestrator = build_orchestrator()
    loader = KnowledgeLoader(orchestrator.retrieval, docs_dir)
    added = asyncio.run(loader.load_all())
    total = orchestrator.retrieval.store.count()
    console.print(f"[success]Added {added} documents[/success] ({total} in store)")


@app.command()
def jobs(
    category: Optional[str] = typer.Option(None, help="Category substring, e.g. cleaning"),
    location: Optional[str] = typer.Option(None, help="Location substring, e.g. Kigali"),
    work_type: Optional[str] = typer.Option(None, help="full-time, part-time, ..."),
):
    """List currently open jobs from the Kozi jobs API."""
    _init()
    filters = {k: v for k, v in {"category": category, "location": location, "work_type": work_type}.items() if v}
    found = asyncio.run(JobsClient().fetch_jobs(filters))
    if not found:
        console.print(f"[warning]No {describe_search(filters)} available right now.[/warning]")
        raise typer.Exit(code=1)

    table = Table(
        title=f"Open {describe_search(filters)}",
        title_style="table.title",
        header_style="table.header",
    )
    table.add_column("#", justify="right")
    table.add_column("Title", style="bold", overflow="fold", ratio=3)
    table.add_column("Category", overflow="fold", ratio=2)
    table.add_column("Location", overflow="fold", ratio=2)
    table.add_column("Type")
    table.add_column("Deadline")
    for i, job in enumerate(found, 1):
        table.add_row(
            str(i), job.title, job.category, job.location, job.work_type, job.application_deadline or "—"
        )
    console.print(table)


@app.command()
def history(session_id: str = typer.Argument(..., help="Session id printed when the chat started")):
    """Print the transcript of a stored session."""
    _init()
    orchestrator = build_orchestrator()
    try:
        data = orchestrator.get_history(session_id)
    except SessionNotFoundError as e:
        console.print(f"[error]{e}[/error]")
        raise typer.Exit(code=1)
    state = "active" if data["is_active"] else "ended"
    console.print(f"[dim]session {data['session_id']} ({state})[/dim]\n")
    for m in data["messages"]:
        who = "[user]You[/user]" if m["sender"] == "user" else "[assistant]Kozi[/assistant]"
        console.print(f"{who} [dim]{m['timestamp']}[/dim]\n{m['text']}\n")


if __name__ == "__main__":
    app()
