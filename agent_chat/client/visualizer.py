"""
MODULE OVERVIEW:
The Rich terminal view for one chat turn.

WHAT IS HAPPENING HERE:
We hook the ChatSession callbacks to keep a status line and a short timeline, and
redraw a Layout from the session's state a few times per second while the send runs:
the reply text as it grows, the tool calls with their status, and the progress line.
Ctrl+C stops the reply in flight; whatever text already arrived stays on screen.
"""
import asyncio
import time
from collections import deque
from datetime import datetime
from typing import Any

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from agent_chat.client.chat_session import ChatCallbacks, ChatSession
from agent_chat.shared.errors import AgentChatError
from agent_chat.shared.formatting import format_tool_name, message_text_content
from agent_chat.shared.models import Conversation, Message


class ChatVisualizer:
    def __init__(self, console: Console | None = None):
        self.console = console
        self.session: ChatSession | None = None
        self.status = "IDLE"
        self.timeline = deque(maxlen=6)
        self._tool_seen_at: dict[str, float] = {}

    def callbacks(self) -> ChatCallbacks:
        return ChatCallbacks(
            on_message_sent=lambda m: self.on_status_change("SENDING"),
            on_message_received=self._on_message_received,
            on_stream_text=lambda delta, full: self._set_status("STREAMING"),
            on_tool_call=self._on_tool_call,
            on_tool_result=lambda name, result: self._log(f"Tool finished: {format_tool_name(name)}"),
            on_error=self._on_error,
            on_conversation_created=self._on_conversation_created,
        )

    def attach(self, session: ChatSession) -> None:
        self.session = session

    def on_status_change(self, status: str) -> None:
        self.status = status
        self._log(f"State: {status}")

    def _set_status(self, status: str) -> None:
        # Text deltas arrive often, only log the transition.
        if self.status != status:
            self.on_status_change(status)

    def _log(self, line: str) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        self.timeline.appendleft(f"[{ts}] {escape(line)}")

    def _on_tool_call(self, name: str, args: dict[str, Any]) -> None:
        self._set_status("TOOL CALL")
        self._log(f"Tool called: {format_tool_name(name)}")

    def _on_message_received(self, message: Message) -> None:
        self.on_status_change("INTERRUPTED" if message.is_interrupted else "DONE")

    def _on_error(self, error: AgentChatError) -> None:
        self.on_status_change("ERROR")
        self._log(error.message)

    def _on_conversation_created(self, conversation: Conversation) -> None:
        self._log(f"Conversation created: {conversation.id}")

    # ==========================
    # RENDERING
    # ==========================
    def generate_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="main"),
            Layout(name="footer", size=3),
        )
        layout["main"].split_row(
            Layout(name="reply", ratio=2),
            Layout(name="side", ratio=1),
        )
        layout["side"].split_column(
            Layout(name="tools"),
            Layout(name="timeline"),
        )

        session = self.session
        agent_id = session.agent_id if session else "-"
        conversation_id = session.conversation.id if session and session.conversation else "new"
        color = "red" if self.status == "ERROR" else "green" if self.status in ("DONE", "STREAMING") else "yellow"
        layout["header"].update(Panel(
            f"[{color} bold]Agent: {escape(agent_id)} | Conversation: {escape(conversation_id)} | Status: {self.status}[/]",
            style=color,
        ))

        layout["reply"].update(Panel(Text(self._reply_text()), title="Reply"))
        layout["tools"].update(Panel(self._tool_table(), title="Tool Calls"))
        layout["timeline"].update(Panel("\n".join(self.timeline), title="Timeline"))

        if session and session.error:
            footer = Text(session.error.message, style="red")
        else:
            footer = Text(session.progress_text if session else "")
        layout["footer"].update(Panel(footer, title="Progress"))
        return layout

    def _last_assistant(self) -> Message | None:
        if self.session and self.session.messages and self.session.messages[-1].role == "assistant":
            return self.session.messages[-1]
        return None

    def _reply_text(self) -> str:
        if self.session is None:
            return ""
        if self.session.streaming_text:
            return self.session.streaming_text
        last = self._last_assistant()
        return message_text_content(last.content) if last else ""

    def _tool_table(self) -> Table:
        table = Table(expand=True)
        table.add_column("Tool", style="magenta")
        table.add_column("Status", style="cyan")
        table.add_column("Duration", justify="right", style="green")

        if self.session and self.session.active_tool_calls:
            now = time.monotonic()
            for record in self.session.active_tool_calls:
                seen_at = self._tool_seen_at.setdefault(record.id, now)
                table.add_row(
                    record.display_name or format_tool_name(record.name),
                    "Completed" if record.completed else "Running",
                    f"{now - seen_at:.1f}s",
                )
            return table

        last = self._last_assistant()
        details = (last.metadata or {}).get("toolCallDetails", []) if last else []
        duration = (last.metadata or {}).get("toolCallDurationSeconds") if last else None
        for detail in details:
            table.add_row(
                detail.get("displayName") or format_tool_name(detail.get("name", "")),
                "Completed" if "result" in detail else "Running",
                f"{duration}s" if duration is not None else "",
            )
        return table

    # ==========================
    # LOOP
    # ==========================
    async def run(self, session: ChatSession, message: str) -> None:
        self.attach(session)
        self._tool_seen_at = {}
        send_task = asyncio.create_task(session.send_message(message))

        with Live(self.generate_layout(), console=self.console, refresh_per_second=8) as live:
            try:
                while not send_task.done():
                    live.update(self.generate_layout())
                    await asyncio.sleep(0.125)
            except asyncio.CancelledError:
                session.stop()
                await send_task
                live.update(self.generate_layout())
                raise
            live.update(self.generate_layout())
        await send_task
