"""
MODULE OVERVIEW:
A scripted agent that produces a realistic stream of events for any user message.

WHAT IS HAPPENING HERE:
A real deployment would forward the message to a model and relay what it emits. Here we
replay a fixed script so the client always has something to chew on:

    start -> progress -> (tool_call -> tool_result, if asked to search) -> text deltas -> done

`delay_s` paces the deltas so the live view has time to show them arriving.
"""
import asyncio
from typing import AsyncIterator

from agent_chat.shared.client_utils import generate_id
from agent_chat.shared.models import (
    Citation,
    StreamDoneEvent,
    StreamEvent,
    StreamProgressEvent,
    StreamStartEvent,
    StreamTextEvent,
    StreamToolCallEvent,
    StreamToolResultEvent,
    Usage,
)

SEARCH_TOOL = "search_web"


def compose_reply(text: str) -> str:
    return f"You said: {text}"


def split_deltas(reply: str) -> list[str]:
    """Word-sized pieces that join back into `reply` exactly."""
    words = reply.split(" ")
    return [word if i == 0 else f" {word}" for i, word in enumerate(words)]


def _search_results(query: str) -> list[Citation]:
    return [
        Citation(
            id="cite_1",
            title=f"Results for {query}",
            link="https://example.com/search",
            description="A canned search result from the echo agent.",
        ),
    ]


async def echo_agent_events(
    conversation_id: str,
    message_id: str,
    text: str,
    delay_s: float = 0.0,
) -> AsyncIterator[StreamEvent]:
    yield StreamStartEvent(conversation_id=conversation_id, message_id=message_id)
    yield StreamProgressEvent(stage="thinking", message="Thinking...")

    citations = None
    if "search" in text.lower():
        call_id = f"call_{generate_id()}"
        citations = _search_results(text)
        yield StreamToolCallEvent(
            tool_name=SEARCH_TOOL,
            tool_call_id=call_id,
            args={"query": text},
            reasoning="The message asks for a search.",
        )
        await asyncio.sleep(delay_s)
        yield StreamToolResultEvent(
            tool_name=SEARCH_TOOL,
            tool_call_id=call_id,
            result={"results": [c.to_wire() for c in citations]},
        )

    reply = compose_reply(text)
    deltas = split_deltas(reply)
    for i, delta in enumerate(deltas):
        await asyncio.sleep(delay_s)
        yield StreamTextEvent(text=delta, is_final=i == len(deltas) - 1)

    words_in = len(text.split())
    words_out = len(deltas)
    yield StreamDoneEvent(
        conversation_id=conversation_id,
        message_id=message_id,
        content=reply,
        citations=citations,
        usage=Usage(input_tokens=words_in, output_tokens=words_out, total_tokens=words_in + words_out),
    )
