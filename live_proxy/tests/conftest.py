"""
pytest Configuration and Fixtures

Provides fakes for the Gemini SDK surface used by the proxy:
    - FakeLiveSession / FakeLiveContext: client.aio.live.connect(...)
    - fake_chat: client.aio.chats.create(...)
    - fake_genai_client: MagicMock client wiring the fakes together
    - proxy_config: ProxyConfig with a test project
"""

import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from live_proxy.config import ProxyConfig
from live_proxy.session_manager import SessionMode, SessionRecord


class FakeLiveSession:
    """
    Stand-in for a Live API session.

    Each entry in ``turns`` is the list of messages yielded by one receive()
    call. When ``hold_open`` is set, receive() blocks after the scripted turns
    until close; otherwise it yields nothing, which ends the upstream stream.
    """

    def __init__(self, turns: Optional[List[List[Dict[str, Any]]]] = None, hold_open: bool = True):
        self.turns = list(turns or [])
        self.hold_open = hold_open
        self.sent_audio: List[Any] = []
        self.sent_content: List[Dict[str, Any]] = []
        self.closed = False

    async def receive(self):
        if self.turns:
            for message in self.turns.pop(0):
                yield message
            return
        while self.hold_open and not self.closed:
            await asyncio.sleep(0.01)

    async def send_realtime_input(self, audio=None, **kwargs):
        self.sent_audio.append(audio)

    async def send_client_content(self, turns=None, turn_complete=False):
        self.sent_content.append({"turns": turns, "turn_complete": turn_complete})


class FakeLiveContext:
    """Async context manager returned by client.aio.live.connect()."""

    def __init__(self, session: FakeLiveSession, error: Optional[Exception] = None):
        self.session = session
        self.error = error
        self.exited = False

    async def __aenter__(self):
        if self.error:
            raise self.error
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        self.exited = True
        self.session.closed = True
        return False


def make_chunk(text: Optional[str] = None, total_tokens: Optional[int] = None) -> SimpleNamespace:
    usage = SimpleNamespace(total_token_count=total_tokens) if total_tokens is not None else None
    return SimpleNamespace(text=text, usage_metadata=usage)


async def stream_of(chunks, error: Optional[Exception] = None):
    for chunk in chunks:
        yield chunk
    if error:
        raise error


@pytest.fixture
def proxy_config():
    return ProxyConfig(project_id="test-project", location="us-central1")


@pytest.fixture
def live_session():
    return FakeLiveSession()


@pytest.fixture
def fake_chat():
    chat = MagicMock()
    chat.send_message_stream = AsyncMock(
        side_effect=lambda message: stream_of([make_chunk("Hello "), make_chunk("John.")])
    )
    return chat


@pytest.fixture
def fake_genai_client(live_session, fake_chat):
    """MagicMock client; tests may replace live.connect / models.generate_content_stream."""
    client = MagicMock()
    client.aio.live.connect = MagicMock(side_effect=lambda model, config: FakeLiveContext(live_session))
    client.aio.chats.create = MagicMock(return_value=fake_chat)
    client.aio.models.generate_content_stream = AsyncMock(
        side_effect=lambda **kwargs: stream_of([make_chunk("ok", total_tokens=12)])
    )
    return client


@pytest.fixture
def fake_websocket():
    websocket = MagicMock()
    websocket.send_json = AsyncMock()
    return websocket


@pytest.fixture
def make_record():
    def _make(mode: SessionMode = SessionMode.VOICE) -> SessionRecord:
        return SessionRecord(session_id="test-session", mode=mode)
    return _make


def sent_frames(fake_websocket) -> List[Dict[str, Any]]:
    return [call.args[0] for call in fake_websocket.send_json.call_args_list]
