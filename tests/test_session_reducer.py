import pytest

from agent_chat.client.session import StreamObserver, StreamSessionReducer
from agent_chat.shared.errors import StreamError, TransportError
from agent_chat.shared.models import (
    StreamDoneEvent,
    StreamErrorEvent,
    StreamProgressEvent,
    StreamStartEvent,
    StreamTextEvent,
    StreamThinkingEvent,
    StreamToolCallEvent,
    StreamToolResultEvent,
    Usage,
)


class Recorder:
    def __init__(self):
        self.calls: list[tuple] = []

    def observer(self) -> StreamObserver:
        return StreamObserver(
            on_start=lambda e: self.calls.append(("start", e.message_id)),
            on_text=lambda delta, full: self.calls.append(("text", delta, full)),
            on_progress=lambda e: self.calls.append(("progress", e.message)),
            on_tool_call=lambda e, r: self.calls.append(("tool_call", r)),
            on_tool_result=lambda e, r: self.calls.append(("tool_result", e.tool_call_id, r)),
            on_error=lambda err: self.calls.append(("error", err)),
            on_done=lambda m, e: self.calls.append(("done", m)),
            on_cancel=lambda m: self.calls.append(("cancel", m)),
        )

    def named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def start(message_id="m1"):
    return StreamStartEvent(conversation_id="c1", message_id=message_id)


def text(delta):
    return StreamTextEvent(text=delta)


def done(content, **kwargs):
    return StreamDoneEvent(conversation_id="c1", message_id="m1", content=content, **kwargs)


@pytest.fixture
def recorder():
    return Recorder()


def test_happy_path_uses_authoritative_done_content(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    for event in [start(), text("Hel"), text("lo"), done("Hello!")]:
        reducer.apply(event)

    assert [c[2] for c in recorder.named("text")] == ["Hel", "Hello"]
    [(_, message)] = recorder.named("done")
    assert message.content == "Hello!"
    assert message.role == "assistant"
    assert message.id == "m1"
    assert message.tool_calls is None
    assert reducer.result.status == "completed"
    assert reducer.state.accumulated_text == ""
    assert reducer.is_active is False


def test_tool_call_then_answer_records_details(recorder):
    clock = FakeClock()
    reducer = StreamSessionReducer("c1", recorder.observer(), clock=clock)
    reducer.apply(StreamToolCallEvent(tool_call_id="t1", tool_name="search"))
    clock.now += 1.234
    reducer.apply(StreamToolResultEvent(tool_call_id="t1", tool_name="search", result={"hits": 3}))
    reducer.apply(text("Found 3 results"))
    reducer.apply(done("Found 3 results"))

    [(_, message)] = recorder.named("done")
    details = message.metadata["toolCallDetails"]
    assert len(details) == 1
    assert details[0]["name"] == "search"
    assert details[0]["result"] == {"hits": 3}
    assert message.metadata["toolCallDurationSeconds"] == 1.23
    assert message.tool_calls[0].id == "t1"
    assert message.tool_calls[0].arguments == "{}"


def test_cancellation_keeps_partial_text(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(start("m-partial"))
    reducer.apply(text("Partial"))

    message = reducer.cancel()

    assert message.content == "Partial"
    assert message.id == "m-partial"
    assert message.metadata["interrupted"] is True
    assert message.is_interrupted
    assert reducer.state.accumulated_text == ""
    assert reducer.state.tool_calls == ()
    assert recorder.named("error") == []
    assert recorder.named("cancel") == [("cancel", message)]
    assert reducer.result.status == "cancelled"


def test_cancel_without_text_produces_no_message(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(start())
    assert reducer.cancel() is None
    assert recorder.named("cancel") == [("cancel", None)]
    assert reducer.result.message is None


def test_cancel_is_idempotent(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(text("x"))
    reducer.cancel()
    assert reducer.cancel() is None
    assert len(recorder.named("cancel")) == 1


def test_stream_error_discards_text(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    for event in [start(), text("So far"), StreamErrorEvent(error="rate limited", code="429")]:
        reducer.apply(event)

    [(_, error)] = recorder.named("error")
    assert isinstance(error, StreamError)
    assert error.message == "rate limited"
    assert error.code == "429"
    assert recorder.named("done") == []
    assert reducer.state.accumulated_text == ""
    assert reducer.result.status == "failed"
    assert reducer.result.message is None


def test_events_after_terminal_state_are_ignored(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(done("final"))
    reducer.apply(text("late"))
    reducer.apply(done("again"))
    reducer.fail(TransportError("late failure"))

    assert len(recorder.named("done")) == 1
    assert recorder.named("text") == []
    assert recorder.named("error") == []
    assert reducer.cancel() is None


def test_cumulative_text_only_grows(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    pieces = ["a", "bc", "", "def", "g"]
    for piece in pieces:
        reducer.apply(text(piece))

    cumulative = [c[2] for c in recorder.named("text")]
    for before, after in zip(cumulative, cumulative[1:]):
        assert after.startswith(before)
    assert cumulative[-1] == "".join(pieces)


def test_thinking_shares_the_text_buffer(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamThinkingEvent(thinking="Let me see. "))
    reducer.apply(text("Answer"))
    assert reducer.state.accumulated_text == "Let me see. Answer"


def test_progress_is_cleared_by_text(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamProgressEvent(message="Searching..."))
    assert reducer.state.progress_text == "Searching..."
    reducer.apply(text("Hi"))
    assert reducer.state.progress_text == ""


def test_tool_result_for_unknown_call_is_ignored(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamToolResultEvent(tool_call_id="nope", tool_name="search", result=1))
    assert reducer.state.tool_calls == ()
    assert recorder.named("tool_result") == [("tool_result", "nope", None)]
    assert reducer.is_active


def test_tool_call_lifecycle_and_null_result(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamToolCallEvent(tool_call_id="t1", tool_name="lookup", args={"q": "x"}))
    pending = reducer.state.tool_call("t1")
    assert pending.completed is False

    reducer.apply(StreamToolResultEvent(tool_call_id="t1", tool_name="lookup", result=None))
    finished = reducer.state.tool_call("t1")
    assert finished.completed is True
    assert finished.result is None
    assert "result" in finished.to_detail()
    assert "result" not in pending.to_detail()


def test_duplicate_tool_call_id_updates_record(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamToolCallEvent(tool_call_id="t1", tool_name="search", args={"q": "a"}, reasoning="first"))
    reducer.apply(StreamToolCallEvent(tool_call_id="t1", tool_name="search", args={"q": "b"}))

    [record] = reducer.state.tool_calls
    assert record.args == {"q": "b"}
    assert record.reasoning == "first"


def test_done_carries_usage_and_citations(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(done("ok", citations=[{"id": "1", "title": "Doc"}], usage=Usage(total_tokens=7)))
    [(_, message)] = recorder.named("done")
    assert message.citations[0].title == "Doc"
    assert message.metadata["usage"] == {"totalTokens": 7}


def test_snapshots_do_not_change_after_later_events(recorder):
    reducer = StreamSessionReducer("c1", recorder.observer())
    reducer.apply(StreamToolCallEvent(tool_call_id="t1", tool_name="search"))
    [(_, snapshot)] = recorder.named("tool_call")
    reducer.apply(StreamToolResultEvent(tool_call_id="t1", tool_name="search", result="r"))
    assert snapshot.completed is False
    assert reducer.state.tool_call("t1").completed is True


def test_observer_is_optional():
    reducer = StreamSessionReducer("c1")
    reducer.apply(text("x"))
    reducer.apply(done("x"))
    assert reducer.result.message.content == "x"
