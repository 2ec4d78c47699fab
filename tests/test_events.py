"""Tests for status event emission."""

from unittest.mock import AsyncMock, Mock

import pytest

from heliumai.events import SessionEvent, emit_status

pytestmark = pytest.mark.asyncio


async def test_sync_callback():
    callback = Mock()
    event = SessionEvent(kind="stream_chunk", session_id="s1", content="He")

    await emit_status(event, callback)

    callback.assert_called_once_with(event)


async def test_async_callback_is_awaited():
    callback = AsyncMock()
    event = SessionEvent(kind="complete", session_id="s1", content="Hello")

    await emit_status(event, callback)

    callback.assert_awaited_once_with(event)


async def test_no_callback():
    await emit_status(SessionEvent(kind="cancelled"), None)


async def test_callback_errors_propagate():
    with pytest.raises(ValueError):
        await emit_status(SessionEvent(kind="error"), Mock(side_effect=ValueError("ui crashed")))
