"""
Mode handlers for the Gemini Live Proxy

One handler is created per browser connection, chosen by the ``mode`` query
parameter:

    voice       Live API native-audio conversation; every upstream message is
                forwarded to the browser as {"type": "message", "data": ...}
    stt         Live API transcription only; forwards input transcriptions
    text        Chat session with streamed text responses
    playground  One-shot generate_content_stream requests with custom config

Handlers forward vendor SDK calls and callbacks one-to-one. There is no retry:
a setup failure propagates to the caller, which reports it and closes the socket.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect
from google import genai
from google.genai import types
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from live_proxy.config import ProxyConfig
from live_proxy.gemini_client import (
    build_stt_config,
    build_text_chat_config,
    build_voice_config,
    classify_setup_error,
    upstream_close_reason,
)
from live_proxy.models import (
    AudioMessage,
    ClientMessage,
    PingMessage,
    PlaygroundComplete,
    PlaygroundMetadata,
    PlaygroundRequest,
    ResetMessage,
    TextMessage,
    error_message,
    parse_client_message,
    session_close,
    session_open,
)
from live_proxy.session_manager import SessionMode, SessionRecord
from live_proxy.structured_logger import StructuredLogger
from live_proxy.system_prompt import PatientInfo
from live_proxy.utils import (
    AudioPayloadError,
    decode_audio_payload,
    parse_structured_output,
    pcm_mime_type,
    serialize_server_message,
)

logger = logging.getLogger(__name__)
slog = StructuredLogger(logger)


class ModeHandler:
    """Base class: owns the client socket side of one session."""

    mode: SessionMode

    def __init__(
        self,
        websocket: WebSocket,
        client: genai.Client,
        config: ProxyConfig,
        record: SessionRecord,
        patient: Optional[PatientInfo] = None,
    ):
        self.websocket = websocket
        self.client = client
        self.config = config
        self.record = record
        self.patient = patient or PatientInfo(
            name=config.patient_name, age=config.patient_age, gender=config.patient_gender
        )
        self.closed = False

    @property
    def session_id(self) -> str:
        return self.record.session_id

    async def send_json(self, payload: Dict[str, Any]) -> bool:
        """Send a frame to the browser; returns False if the socket is gone."""
        try:
            await self.websocket.send_json(payload)
        except (WebSocketDisconnect, RuntimeError, ConnectionClosed) as e:
            logger.debug(f"Dropping {payload.get('type')} for closed session {self.session_id}: {e}")
            return False
        self.record.messages_out += 1
        return True

    async def setup(self) -> None:
        raise NotImplementedError

    async def dispatch(self, payload: Dict[str, Any]) -> None:
        """
        Route one decoded JSON frame from the browser.

        Unknown message types are ignored; invalid fields are logged.
        """
        try:
            message = parse_client_message(payload)
        except ValidationError as e:
            logger.warning(f"Invalid {payload.get('type')} message for session {self.session_id}: {e}")
            return
        if message is None:
            logger.debug(f"Ignoring message type '{payload.get('type')}' in {self.mode.value} mode")
            return

        if isinstance(message, PingMessage):
            await self.send_json({"type": "pong", "session_id": self.session_id, "timestamp": time.time()})
            return

        if isinstance(message, ResetMessage):
            self.record.transcript.reset()
            logger.info(f"Transcript cleared for session {self.session_id}")
            await self.send_json({"type": "transcript_reset", "session_id": self.session_id})
            return

        await self.handle(message)

    async def handle(self, message: ClientMessage) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        self.closed = True


# ============================================================================
# Live API modes
# ============================================================================

class LiveHandler(ModeHandler):
    """Shared lifecycle for Live API sessions (voice and stt)."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.session = None
        self._session_context = None
        self._receive_task: Optional[asyncio.Task] = None
        self.upstream_closed = False

    @property
    def model(self) -> str:
        raise NotImplementedError

    def build_config(self) -> types.LiveConnectConfig:
        raise NotImplementedError

    async def setup(self) -> None:
        logger.info(f"Connecting to Vertex AI Live API with model: {self.model}")
        try:
            self._session_context = self.client.aio.live.connect(
                model=self.model,
                config=self.build_config(),
            )
            self.session = await self._session_context.__aenter__()
        except Exception as e:
            self._session_context = None
            error = classify_setup_error(e)
            if error is e:
                raise
            raise error from e

        slog.session_opened(self.session_id, self.mode.value, self.model)
        await self.send_json(session_open(self.mode.value))
        self._receive_task = asyncio.create_task(self._receive_loop())

    async def _receive_loop(self) -> None:
        """Forward upstream messages until the Live session ends."""
        reason = "unknown"
        try:
            while not self.closed:
                received = 0
                async for message in self.session.receive():
                    received += 1
                    await self.on_server_message(message)
                if received == 0:
                    # receive() yields nothing once the upstream stream is exhausted
                    reason = "upstream ended"
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            close_reason = upstream_close_reason(e)
            if close_reason is None:
                slog.upstream_error(self.session_id, e, stage="receive")
                await self.send_json(error_message(str(e)))
                reason = str(e) or type(e).__name__
            else:
                reason = close_reason

        self.upstream_closed = True
        logger.info(f"Vertex AI {self.mode.value} session closed: {self.session_id} ({reason})")
        if not self.closed:
            await self.send_json(session_close(reason))

    async def on_server_message(self, message: Any) -> None:
        raise NotImplementedError

    def _drop_if_upstream_closed(self, kind: str) -> bool:
        if self.upstream_closed:
            logger.debug(f"Dropping {kind} for session {self.session_id}: upstream already closed")
        return self.upstream_closed

    async def send_audio(self, message: AudioMessage) -> None:
        if self._drop_if_upstream_closed("audio"):
            return
        try:
            audio_bytes = decode_audio_payload(message.data)
        except AudioPayloadError as e:
            await self.send_json({"type": "error", "message": str(e), "errors": e.errors})
            return
        await self.session.send_realtime_input(
            audio=types.Blob(data=audio_bytes, mime_type=pcm_mime_type(self.config.input_sample_rate))
        )

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True

        if self._receive_task and not self._receive_task.done():
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        if self._session_context is not None:
            try:
                await self._session_context.__aexit__(None, None, None)
                logger.info(f"Gemini {self.mode.value} session closed gracefully: {self.session_id}")
            except Exception as e:
                logger.error(f"Error closing Gemini session {self.session_id}: {e}")
            finally:
                self.session = None
                self._session_context = None


class VoiceHandler(LiveHandler):
    mode = SessionMode.VOICE

    @property
    def model(self) -> str:
        return self.config.voice_model

    def build_config(self) -> types.LiveConnectConfig:
        return build_voice_config(self.config, self.patient)

    async def on_server_message(self, message: Any) -> None:
        data = serialize_server_message(message)
        self.record.transcript.apply_server_content(data.get("serverContent"))
        await self.send_json({"type": "message", "data": data})

    async def handle(self, message: ClientMessage) -> None:
        if isinstance(message, AudioMessage):
            await self.send_audio(message)
        elif isinstance(message, TextMessage) and message.text:
            if self._drop_if_upstream_closed("text"):
                return
            self.record.transcript.add_user_text(message.text)
            await self.session.send_client_content(
                turns=types.Content(role="user", parts=[types.Part(text=message.text)]),
                turn_complete=True,
            )


class SttHandler(LiveHandler):
    mode = SessionMode.STT

    @property
    def model(self) -> str:
        return self.config.stt_model

    def build_config(self) -> types.LiveConnectConfig:
        return build_stt_config(self.config)

    async def on_server_message(self, message: Any) -> None:
        data = serialize_server_message(message)
        server_content = data.get("serverContent") or {}
        transcription = server_content.get("inputTranscription")
        if not transcription:
            return
        await self.send_json({
            "type": "transcription",
            "text": transcription.get("text", ""),
            "finished": bool(transcription.get("finished", False)),
        })
        self.record.transcript.apply_server_content({"inputTranscription": transcription})

    async def handle(self, message: ClientMessage) -> None:
        if isinstance(message, AudioMessage):
            await self.send_audio(message)


# ============================================================================
# Text and playground modes
# ============================================================================

class TextHandler(ModeHandler):
    """Chat session with automatic history management."""

    mode = SessionMode.TEXT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.chat = None

    async def setup(self) -> None:
        logger.info(f"Setting up text mode with standard streaming API ({self.config.text_model})")
        try:
            self.chat = self.client.aio.chats.create(
                model=self.config.text_model,
                config=build_text_chat_config(self.patient),
            )
        except Exception as e:
            error = classify_setup_error(e)
            if error is e:
                raise
            raise error from e
        slog.session_opened(self.session_id, self.mode.value, self.config.text_model)
        await self.send_json(session_open(self.mode.value))

    async def handle(self, message: ClientMessage) -> None:
        if not isinstance(message, TextMessage) or not message.text:
            return

        logger.info(f"Received text message: {message.text[:50]}...")
        self.record.transcript.add_user_text(message.text)

        full_text = ""
        try:
            stream = await self.chat.send_message_stream(message.text)
            async for chunk in stream:
                if chunk.text:
                    full_text += chunk.text
                    await self.send_json({"type": "text_chunk", "text": chunk.text})
        except Exception as e:
            slog.upstream_error(self.session_id, e, stage="text_stream")
            await self.send_json(error_message(str(e)))
            return

        self.record.transcript.add_ai_text(full_text)
        await self.send_json({"type": "text_complete"})


class PlaygroundHandler(ModeHandler):
    """Experiment with models, sampling parameters and structured output."""

    mode = SessionMode.PLAYGROUND

    async def setup(self) -> None:
        logger.info("Setting up playground mode")
        slog.session_opened(self.session_id, self.mode.value)
        await self.send_json(session_open(self.mode.value))

    async def handle(self, message: ClientMessage) -> None:
        if not isinstance(message, PlaygroundRequest):
            return

        logger.info(
            f"Playground request: model={message.model}, structured={message.use_structured_output}"
        )
        start_time = time.monotonic()
        full_text = ""
        usage_metadata = None

        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=message.model,
                contents=[types.Content(role="user", parts=[types.Part(text=message.user_prompt)])],
                config=message.to_generation_config(),
            )
            async for chunk in stream:
                if chunk.text:
                    full_text += chunk.text
                    await self.send_json({"type": "playground_chunk", "text": chunk.text})
                if chunk.usage_metadata:
                    usage_metadata = chunk.usage_metadata
        except Exception as e:
            slog.upstream_error(self.session_id, e, stage="playground_stream")
            await self.send_json({"type": "playground_error", "error": str(e)})
            return

        latency_ms = int((time.monotonic() - start_time) * 1000)
        response = parse_structured_output(full_text) if message.use_structured_output else full_text

        complete = PlaygroundComplete(
            response=response,
            metadata=PlaygroundMetadata(
                model=message.model,
                total_tokens=getattr(usage_metadata, "total_token_count", None),
                latency_ms=latency_ms,
            ),
        )
        await self.send_json(complete.to_wire())


HANDLERS = {
    SessionMode.VOICE: VoiceHandler,
    SessionMode.STT: SttHandler,
    SessionMode.TEXT: TextHandler,
    SessionMode.PLAYGROUND: PlaygroundHandler,
}


def create_handler(
    mode: SessionMode,
    websocket: WebSocket,
    client: genai.Client,
    config: ProxyConfig,
    record: SessionRecord,
    patient: Optional[PatientInfo] = None,
) -> ModeHandler:
    """Instantiate the handler for a session mode."""
    return HANDLERS[mode](websocket, client, config, record, patient)
