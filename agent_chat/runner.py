"""
CLI entrypoint for Agent Chat.
"""
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from agent_chat.client.api_client import AgentServerClient
from agent_chat.client.chat_session import ChatSession, LocalFile
from agent_chat.client.visualizer import ChatVisualizer
from agent_chat.shared.config import settings
from agent_chat.shared.errors import AgentChatError
from agent_chat.shared.formatting import format_relative_time

app = typer.Typer(help="Agent Chat CLI: talk to an agent server and watch replies stream in")
console = Console()


@app.callback()
def main(log_level: str = typer.Option(settings.LOG_LEVEL, help="Log level for the stderr sink")):
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper())

@app.command()
def server():
    """Start the development agent server using Uvicorn."""
    import uvicorn
    typer.echo(f"Starting server on port {settings.PORT}...")
    uvicorn.run("agent_chat.server.main:app", host="0.0.0.0", port=settings.PORT, log_level=settings.LOG_LEVEL.lower())

@app.command()
def chat(
    message: str = typer.Argument(..., help="What to say to the agent"),
    conversation: Optional[str] = typer.Option(None, help="Continue an existing conversation"),
    file: List[Path] = typer.Option([], "--file", help="Attach a file (repeatable)"),
    agent: str = typer.Option(settings.AGENT_ID, help="Agent to talk to"),
    base_url: str = typer.Option(settings.BASE_URL, help="Agent server base URL"),
):
    """Send one message and render the reply live. Ctrl+C stops the reply."""
    visualizer = ChatVisualizer(console)

    async def run_turn() -> ChatSession:
        async with AgentServerClient(base_url) as client:
            session = ChatSession(client, agent_id=agent, callbacks=visualizer.callbacks())
            if conversation:
                await session.load_conversation(conversation)
            if session.error is None:
                session.add_files(LocalFile.from_path(p) for p in file)
                await visualizer.run(session, message)
            return session

    try:
        session = asyncio.run(run_turn())
    except KeyboardInterrupt:
        typer.echo("Stopped.")
        return

    if session.error is not None:
        typer.echo(f"Error: {session.error.message}", err=True)
        raise typer.Exit(1)
    if session.conversation is not None:
        typer.echo(f"Conversation: {session.conversation.id}")

@app.command()
def agents(base_url: str = typer.Option(settings.BASE_URL, help="Agent server base URL")):
    """List the agents the server offers."""
    async def fetch():
        async with AgentServerClient(base_url) as client:
            return await client.get_agents()

    try:
        found = asyncio.run(fetch())
    except AgentChatError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)

    table = Table(title="Agents")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Description")
    for a in found:
        table.add_row(a.id, a.name, a.description or "")
    console.print(table)

@app.command()
def conversations(
    agent: str = typer.Option(settings.AGENT_ID, help="Agent whose conversations to list"),
    limit: int = typer.Option(20, help="Page size"),
    offset: int = typer.Option(0, help="Page offset"),
    base_url: str = typer.Option(settings.BASE_URL, help="Agent server base URL"),
):
    """List recent conversations with one agent."""
    async def fetch():
        async with AgentServerClient(base_url) as client:
            return await client.get_conversations(agent_id=agent, limit=limit, offset=offset)

    try:
        page = asyncio.run(fetch())
    except AgentChatError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(1)

    table = Table(title=f"Conversations ({page.total})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="magenta")
    table.add_column("Updated", style="green")
    for c in page.conversations:
        table.add_row(c.id, c.title or "Untitled", format_relative_time(c.updated_at))
    console.print(table)
    if page.has_more:
        typer.echo(f"More available: --offset {page.offset + len(page.conversations)}")

if __name__ == "__main__":
    app()
