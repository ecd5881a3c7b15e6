import asyncio

import pytest

from agent_chat.client.cancellation import CancellationToken


def test_callbacks_run_once_in_order():
    token = CancellationToken()
    calls = []
    token.add_callback(lambda: calls.append("first"))
    token.add_callback(lambda: calls.append("second"))

    assert token.cancel() is True
    assert token.cancel() is False
    assert calls == ["first", "second"]
    assert token.cancelled


def test_callback_added_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls = []
    token.add_callback(lambda: calls.append("late"))
    assert calls == ["late"]


def test_removed_callback_does_not_run():
    token = CancellationToken()
    calls = []

    def callback():
        calls.append("x")

    token.add_callback(callback)
    token.remove_callback(callback)
    token.remove_callback(callback)
    token.cancel()
    assert calls == []


@pytest.mark.asyncio
async def test_wait_wakes_on_cancel():
    token = CancellationToken()
    waiter = asyncio.create_task(token.wait())
    await asyncio.sleep(0)
    assert not waiter.done()
    token.cancel()
    await asyncio.wait_for(waiter, timeout=1)
