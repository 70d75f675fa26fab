"""
Tests for the inbound SMS pipeline: rate gate, parsing fallbacks, reply
generation and the broadcast cycle.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from app.config import ERROR_MESSAGES, StoreConfig
from app.sms_handler import build_handler

ALICE = "+15550000001"
BOB = "+15550000002"


def _llm(text="reply 💀"):
    llm = AsyncMock()
    llm.ainvoke.return_value = SimpleNamespace(content=text)
    return llm


@pytest.fixture
def handler(transport, clock):
    return build_handler(config=StoreConfig(), transport=transport, llm=_llm(), clock=clock)


async def test_happy_path_broadcasts_and_marks_window(handler, transport, clock):
    status, body = await handler.handle("(555) 000-0001", "buddi roast bob")

    assert (status, body) == (200, "OK")
    assert transport.sent == [(ALICE, "reply 💀")]
    assert handler.store.is_active(ALICE)
    assert handler.store.get_history(ALICE)[0].target == "bob"
    assert handler.store.rate_windows.read(ALICE, lambda w: w.last_command_at) == clock.now


async def test_reply_fans_out_to_other_members(handler, transport, clock):
    await handler.handle(BOB, "buddi truth or dare")
    clock.advance(1)
    transport.sent.clear()

    status, _ = await handler.handle(ALICE, "buddi roast bob")

    assert status == 200
    assert sorted(r for r, _ in transport.sent) == [ALICE, BOB]


async def test_invalid_number(handler, transport):
    assert await handler.handle("12", "buddi roast bob") == (400, "Invalid phone number")
    assert transport.attempts == []


async def test_rate_limited_second_message(handler, transport, clock):
    await handler.handle(ALICE, "buddi roast bob")
    clock.advance(1)
    transport.sent.clear()

    assert await handler.handle(ALICE, "buddi roast bob") == (200, "Rate limited")
    assert transport.sent == [(ALICE, ERROR_MESSAGES["RATE_LIMIT"])]


async def test_admitted_again_after_window(handler, clock):
    await handler.handle(ALICE, "buddi roast bob")
    clock.advance(6)
    assert await handler.handle(ALICE, "buddi roast jim") == (200, "OK")


async def test_empty_message(handler, transport):
    assert await handler.handle(ALICE, "   ") == (200, "Empty message handled")
    assert transport.sent == [(ALICE, ERROR_MESSAGES["EMPTY_MESSAGE"])]


async def test_unknown_command(handler, transport):
    assert await handler.handle(ALICE, "hello there") == (200, "Unknown command handled")
    assert transport.sent == [(ALICE, ERROR_MESSAGES["UNKNOWN_COMMAND"])]
    assert not handler.store.is_active(ALICE)


async def test_generation_failure_still_broadcasts_fallback(transport, clock):
    llm = AsyncMock()
    llm.ainvoke.side_effect = RuntimeError("openai down")
    handler = build_handler(config=StoreConfig(), transport=transport, llm=llm, clock=clock)

    assert await handler.handle(ALICE, "buddi roast bob") == (200, "OK")
    assert transport.sent == [(ALICE, ERROR_MESSAGES["API_FAILURE"])]


async def test_failed_broadcast_sends_fallback(make_transport, clock):
    transport = make_transport(rejecting={ALICE})
    handler = build_handler(config=StoreConfig(), transport=transport, llm=_llm(), clock=clock)

    assert await handler.handle(ALICE, "buddi roast bob") == (500, "Internal server error")
    # broadcast attempt plus the fallback notice
    assert transport.attempts == [ALICE, ALICE]


async def test_broadcast_error_does_not_mark_window(handler, transport, clock):
    with patch.object(handler.store, "list_active", side_effect=RuntimeError("boom")):
        status, _ = await handler.handle(ALICE, "buddi roast bob")
    assert status == 500
    start = handler.store.rate_windows.read(ALICE, lambda w: w.last_command_at)
    assert start == clock.now  # window from admission only


async def test_notify_swallows_transport_errors(make_transport, clock):
    transport = make_transport(failing={ALICE})
    handler = build_handler(config=StoreConfig(), transport=transport, llm=_llm(), clock=clock)
    assert await handler.notify(ALICE, "hi") is False
