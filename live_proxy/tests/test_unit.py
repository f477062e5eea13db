"""
Unit Tests for the Gemini Live Proxy

Tests core functionality without the Gemini API:
    - ProxyConfig validation and environment loading
    - Assistant instructions and patient info
    - Client message parsing and generation config
    - Audio payload decoding
    - Transcript accumulation
    - Session manager bookkeeping

Run with:
    pytest live_proxy/tests/test_unit.py -v
"""

import asyncio
import base64
import json
import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors, types

from live_proxy.config import ConfigurationError, ProxyConfig
from live_proxy.gemini_client import (
    GeminiQuotaExceededError,
    build_stt_config,
    build_voice_config,
    classify_setup_error,
    upstream_close_reason,
)
from live_proxy.models import (
    AudioMessage,
    PlaygroundComplete,
    PlaygroundMetadata,
    PlaygroundRequest,
    ResetMessage,
    TextMessage,
    ValidationError,
    parse_client_message,
)
from live_proxy.session_manager import SessionManager, SessionMode
from live_proxy.system_prompt import STT_INSTRUCTIONS, PatientInfo, get_assistant_instructions
from live_proxy.transcript import Transcript
from live_proxy.utils import (
    AudioPayloadError,
    decode_audio_payload,
    parse_structured_output,
    pcm_mime_type,
    serialize_server_message,
    validate_audio_chunk,
)


ENV_VARS = [
    "NODE_ENV", "APP_ENV", "K_SERVICE", "GOOGLE_CLOUD_PROJECT", "GOOGLE_APPLICATION_CREDENTIALS",
    "SERVICE_ACCOUNT_PATH", "VERTEX_AI_LOCATION", "PORT", "CORS_ORIGINS", "VOICE_NAME", "WS_PATH",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        # setenv first so monkeypatch restores variables the code under test exports
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


class TestProxyConfig:
    """Test ProxyConfig validation and environment loading."""

    def test_default_values(self, clean_env):
        config = ProxyConfig.from_env()

        assert config.production is False
        assert config.project_id is None
        assert config.location == "us-central1"
        assert config.port == 3001
        assert config.ws_path == "/ws"
        assert config.voice_name == "Puck"
        assert config.text_model == "gemini-2.5-flash"
        assert config.cors_origins == ["*"]
        assert config.environment_name == "development"

    def test_production_detection(self, clean_env):
        clean_env.setenv("K_SERVICE", "live-proxy")
        clean_env.setenv("GOOGLE_CLOUD_PROJECT", "prod-project")

        config = ProxyConfig.from_env()

        assert config.production is True
        assert config.project_id == "prod-project"
        assert config.environment_name == "production"

    def test_node_env_production(self, clean_env):
        clean_env.setenv("NODE_ENV", "production")
        assert ProxyConfig.from_env().production is True

    def test_service_account_project(self, clean_env, tmp_path):
        key_file = tmp_path / "service-account.json"
        key_file.write_text(json.dumps({"project_id": "from-key-file", "type": "service_account"}))
        clean_env.setenv("SERVICE_ACCOUNT_PATH", str(key_file))

        config = ProxyConfig.from_env()

        assert config.project_id == "from-key-file"
        assert config.service_account_path == str(key_file)
        assert os.environ["GOOGLE_APPLICATION_CREDENTIALS"] == str(key_file)

    def test_explicit_project_wins_over_key_file(self, clean_env, tmp_path):
        key_file = tmp_path / "service-account.json"
        key_file.write_text(json.dumps({"project_id": "from-key-file"}))
        clean_env.setenv("SERVICE_ACCOUNT_PATH", str(key_file))
        clean_env.setenv("GOOGLE_CLOUD_PROJECT", "explicit")

        assert ProxyConfig.from_env().project_id == "explicit"

    def test_missing_key_file_leaves_project_unset(self, clean_env, tmp_path):
        clean_env.setenv("SERVICE_ACCOUNT_PATH", str(tmp_path / "missing.json"))
        assert ProxyConfig.from_env().project_id is None

    def test_cors_origins_split(self, clean_env):
        clean_env.setenv("CORS_ORIGINS", "http://localhost:5173, https://example.com,")
        assert ProxyConfig.from_env().cors_origins == ["http://localhost:5173", "https://example.com"]

    def test_invalid_vad_values_normalized(self):
        config = ProxyConfig(
            vad_start_sensitivity="VERY_HIGH",
            vad_end_sensitivity="nope",
            vad_prefix_padding_ms=5000,
            vad_silence_duration_ms=-1,
        )

        assert config.vad_start_sensitivity == "START_SENSITIVITY_HIGH"
        assert config.vad_end_sensitivity == "END_SENSITIVITY_LOW"
        assert config.vad_prefix_padding_ms == 300
        assert config.vad_silence_duration_ms == 500

    def test_invalid_port_and_mode_rejected(self):
        with pytest.raises(ValueError, match="port"):
            ProxyConfig(port=0)
        with pytest.raises(ValueError, match="default_mode"):
            ProxyConfig(default_mode="video")

    def test_ws_path_gets_leading_slash(self):
        assert ProxyConfig(ws_path="live").ws_path == "/live"

    def test_validate_credentials(self):
        ProxyConfig(project_id="p").validate_credentials()

        with pytest.raises(ConfigurationError, match="GOOGLE_CLOUD_PROJECT"):
            ProxyConfig(production=True).validate_credentials()
        with pytest.raises(ConfigurationError, match="service account"):
            ProxyConfig().validate_credentials()


class TestSystemPrompt:
    """Test assistant instructions rendering."""

    def test_patient_details_interpolated(self):
        text = get_assistant_instructions(PatientInfo(name="Maria Lopez", age="52", gender="Female"))

        assert "• Name: Maria Lopez" in text
        assert "• Age: 52" in text
        assert "• Gender: Female" in text
        assert "Hello Maria Lopez, I'm doctor assist" in text
        assert "$name" not in text

    def test_conversation_states_present(self):
        text = get_assistant_instructions(PatientInfo())

        for state_id in ("1_greeting", "3_hpi", "6_medications_allergies", "10_summary_confirmation", "11_closure"):
            assert f'"id": "{state_id}"' in text
        assert 'introduce yourself as "Anzu"' in text

    def test_patient_from_query_falls_back_per_field(self):
        default = PatientInfo(name="John Doe", age="35", gender="Male")

        patient = PatientInfo.from_query({"name": "Ana", "age": "  "}, default)

        assert patient == PatientInfo(name="Ana", age="35", gender="Male")

    def test_stt_instructions(self):
        assert "transcribe only" in STT_INSTRUCTIONS


class TestGeminiConfigs:
    """Test Live API session configs."""

    def test_voice_config(self, proxy_config):
        live_config = build_voice_config(proxy_config, PatientInfo(name="Ana"))

        assert live_config.response_modalities == [types.Modality.AUDIO]
        assert live_config.input_audio_transcription is not None
        assert live_config.output_audio_transcription is not None
        assert live_config.speech_config.voice_config.prebuilt_voice_config.voice_name == "Puck"
        detection = live_config.realtime_input_config.automatic_activity_detection
        assert detection.disabled is False
        assert detection.start_of_speech_sensitivity == types.StartSensitivity.START_SENSITIVITY_HIGH
        assert detection.end_of_speech_sensitivity == types.EndSensitivity.END_SENSITIVITY_LOW
        assert detection.prefix_padding_ms == 300
        assert detection.silence_duration_ms == 500
        assert "Ana" in live_config.system_instruction.parts[0].text

    def test_stt_config(self, proxy_config):
        live_config = build_stt_config(proxy_config)

        assert live_config.response_modalities == [types.Modality.TEXT]
        assert live_config.input_audio_transcription is not None
        assert live_config.output_audio_transcription is None
        assert live_config.system_instruction.parts[0].text == STT_INSTRUCTIONS

    def test_quota_errors_classified(self):
        error = classify_setup_error(RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded"))
        assert isinstance(error, GeminiQuotaExceededError)

        other = ValueError("bad model")
        assert classify_setup_error(other) is other

    def test_upstream_close_reason(self):
        assert upstream_close_reason(errors.APIError(1000, "session timeout")) == "session timeout"
        assert upstream_close_reason(errors.APIError(1001, "")) == "unknown"
        assert upstream_close_reason(errors.APIError(1011, "Internal error")) is None
        assert upstream_close_reason(errors.APIError(4000, "app close")) is None
        assert upstream_close_reason(errors.ClientError(400, {"error": {"message": "bad"}})) is None
        assert upstream_close_reason(ValueError("boom")) is None


class TestModels:
    """Test client message parsing."""

    def test_parse_known_types(self):
        assert isinstance(parse_client_message({"type": "audio", "data": "AAAA"}), AudioMessage)
        assert isinstance(parse_client_message({"type": "text", "text": "hi"}), TextMessage)
        assert isinstance(parse_client_message({"type": "reset"}), ResetMessage)

    def test_unknown_type_ignored(self):
        assert parse_client_message({"type": "video", "data": "x"}) is None
        assert parse_client_message({"text": "no type"}) is None

    def test_invalid_fields_raise(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "audio"})

    def test_playground_request_camel_case(self):
        request = parse_client_message({
            "type": "playground_request",
            "model": "gemini-2.5-pro",
            "systemInstruction": "Be terse",
            "userPrompt": "Hi",
            "useStructuredOutput": False,
            "temperature": 0.2,
            "topK": 20,
            "topP": 0.9,
            "maxOutputTokens": 256,
        })

        assert isinstance(request, PlaygroundRequest)
        assert request.system_instruction == "Be terse"
        assert request.top_k == 20
        assert request.max_output_tokens == 256

    def test_generation_config_only_sets_provided_values(self):
        request = PlaygroundRequest(type="playground_request", user_prompt="Hi", temperature=0.5)

        config = request.to_generation_config()

        assert config.temperature == 0.5
        assert config.top_k is None
        assert config.top_p is None
        assert config.max_output_tokens is None
        assert config.system_instruction is None
        assert config.response_mime_type is None

    def test_structured_output_requires_schema(self):
        schema = {"type": "object", "properties": {"name": {"type": "string"}}}

        without_schema = PlaygroundRequest(type="playground_request", use_structured_output=True)
        assert without_schema.to_generation_config().response_mime_type is None

        with_schema = PlaygroundRequest(
            type="playground_request", use_structured_output=True, response_json_schema=schema
        )
        config = with_schema.to_generation_config()
        assert config.response_mime_type == "application/json"
        assert config.response_json_schema == schema

        disabled = PlaygroundRequest(type="playground_request", response_json_schema=schema)
        assert disabled.to_generation_config().response_mime_type is None

    def test_playground_complete_wire_format(self):
        complete = PlaygroundComplete(
            response={"name": "Ana"},
            metadata=PlaygroundMetadata(model="gemini-2.5-flash", total_tokens=None, latency_ms=42),
        )

        wire = complete.to_wire()

        assert wire == {
            "type": "playground_complete",
            "response": {"name": "Ana"},
            "metadata": {"model": "gemini-2.5-flash", "latencyMs": 42},
        }


class TestUtils:
    """Test audio decoding and serialization helpers."""

    def test_decode_valid_pcm(self):
        pcm = b"\x01\x00" * 160
        assert decode_audio_payload(base64.b64encode(pcm).decode()) == pcm

    def test_decode_rejects_bad_payloads(self):
        with pytest.raises(AudioPayloadError, match="empty"):
            decode_audio_payload("")
        with pytest.raises(AudioPayloadError, match="base64"):
            decode_audio_payload("not base64!!")
        with pytest.raises(AudioPayloadError) as excinfo:
            decode_audio_payload(base64.b64encode(b"\x01\x02\x03").decode())
        assert any("16-bit" in error for error in excinfo.value.errors)

    def test_validate_audio_chunk_limits(self):
        assert validate_audio_chunk(b"")["valid"] is False
        assert validate_audio_chunk(b"\x00" * 2)["valid"] is True
        too_large = validate_audio_chunk(b"\x00" * (1024 * 1024 + 2))
        assert too_large["valid"] is False
        assert validate_audio_chunk(b"\x00" * (80 * 1024))["warnings"]

    def test_pcm_mime_type(self):
        assert pcm_mime_type(16000) == "audio/pcm;rate=16000"

    def test_serialize_sdk_message_camel_case(self):
        message = types.LiveServerMessage(
            server_content=types.LiveServerContent(
                turn_complete=True,
                output_transcription=types.Transcription(text="Hello"),
            )
        )

        data = serialize_server_message(message)

        assert data["serverContent"]["turnComplete"] is True
        assert data["serverContent"]["outputTranscription"]["text"] == "Hello"
        assert "server_content" not in data

    def test_serialize_passes_dicts_through(self):
        payload = {"serverContent": {"interrupted": True}}
        assert serialize_server_message(payload) is payload

    def test_parse_structured_output(self):
        assert parse_structured_output('{"a": 1}') == {"a": 1}
        assert parse_structured_output("not json") == "not json"


class TestTranscript:
    """Test rolling transcript accumulation."""

    def test_user_and_ai_turns_committed_in_arrival_order(self):
        transcript = Transcript()

        transcript.apply_server_content({"inputTranscription": {"text": "I have a "}})
        transcript.apply_server_content({"inputTranscription": {"text": "headache", "finished": True}})
        transcript.apply_server_content({"outputTranscription": {"text": "Sorry to "}})
        transcript.apply_server_content({"outputTranscription": {"text": "hear that."}})
        committed = transcript.apply_server_content({"turnComplete": True})

        assert [(e.role, e.text) for e in transcript.history] == [
            ("user", "I have a headache"),
            ("ai", "Sorry to hear that."),
        ]
        assert [e.role for e in committed] == ["ai"]
        assert transcript.current_user_input == ""
        assert transcript.current_ai_output == ""

    def test_blank_buffers_not_committed(self):
        transcript = Transcript()
        transcript.apply_server_content({"inputTranscription": {"text": "   ", "finished": True}})
        transcript.apply_server_content({"turnComplete": True})

        assert len(transcript) == 0

    def test_interruption_discards_ai_output(self):
        transcript = Transcript()
        transcript.apply_server_content({"outputTranscription": {"text": "Let me explain"}})
        transcript.apply_server_content({"interrupted": True})
        transcript.apply_server_content({"turnComplete": True})

        assert len(transcript) == 0

    def test_reset_clears_everything(self):
        transcript = Transcript()
        transcript.add_user_text("hello")
        transcript.apply_server_content({"outputTranscription": {"text": "partial"}})

        transcript.reset()

        assert transcript.to_dict() == {"history": [], "current_user_input": "", "current_ai_output": ""}

    def test_ignores_empty_payload(self):
        assert Transcript().apply_server_content(None) == []


class TestSessionManager:
    """Test session record bookkeeping."""

    def test_mode_parsing(self):
        assert SessionMode.parse("text") == SessionMode.TEXT
        assert SessionMode.parse(" STT ") == SessionMode.STT
        assert SessionMode.parse(None) == SessionMode.VOICE
        assert SessionMode.parse("video") == SessionMode.VOICE
        assert SessionMode.parse("video", SessionMode.TEXT) == SessionMode.TEXT

    @pytest.mark.asyncio
    async def test_create_unique_ids(self):
        manager = SessionManager()

        records = await asyncio.gather(*(manager.create(SessionMode.TEXT) for _ in range(20)))

        assert len({r.session_id for r in records}) == 20
        assert len(manager) == 20
        assert manager.stats()["by_mode"]["text"] == 20

    @pytest.mark.asyncio
    async def test_close_awaits_handle_and_is_idempotent(self):
        manager = SessionManager()
        handle = MagicMock()
        handle.close = AsyncMock()
        record = await manager.create(SessionMode.VOICE)
        await manager.attach(record.session_id, handle)

        assert await manager.close(record.session_id) is True
        assert await manager.close(record.session_id) is False
        handle.close.assert_awaited_once()
        assert manager.get(record.session_id) is None

    @pytest.mark.asyncio
    async def test_close_without_handle(self):
        manager = SessionManager()
        record = await manager.create(SessionMode.PLAYGROUND)

        assert await manager.close(record.session_id) is True
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_close_survives_handle_error(self):
        manager = SessionManager()
        handle = MagicMock()
        handle.close = AsyncMock(side_effect=RuntimeError("boom"))
        record = await manager.create(SessionMode.STT, handle=handle)

        assert await manager.close(record.session_id) is True
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_touch_and_summary(self):
        manager = SessionManager()
        record = await manager.create(SessionMode.TEXT)

        manager.touch(record.session_id)
        manager.touch(record.session_id, inbound=False)
        manager.touch("missing")

        summary = manager.list()[0]
        assert summary["messages_in"] == 1
        assert summary["messages_out"] == 1
        assert summary["mode"] == "text"
        assert summary["upstream_attached"] is False

    @pytest.mark.asyncio
    async def test_close_all(self):
        manager = SessionManager()
        for mode in SessionMode:
            await manager.create(mode)

        assert await manager.close_all() == 4
        assert manager.stats()["active_sessions"] == 0
        assert manager.stats()["total_created"] == 4
