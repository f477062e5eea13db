"""
Gemini client construction and session configuration for the proxy.

Authenticates to Vertex AI through Application Default Credentials: the
service account file in development, the runtime identity on Cloud Run.
"""

import logging
from typing import Optional

from google import genai
from google.genai import errors, types

from live_proxy.config import ProxyConfig
from live_proxy.system_prompt import STT_INSTRUCTIONS, PatientInfo, get_assistant_instructions

logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("quota", "1011", "billing", "exceeded", "resource_exhausted")


class GeminiQuotaExceededError(Exception):
    """Raised when Gemini API quota is exceeded"""
    pass


def create_client(config: ProxyConfig) -> genai.Client:
    """Create a Vertex AI backed GenAI client."""
    return genai.Client(
        vertexai=True,
        project=config.project_id,
        location=config.location,
    )


def build_voice_config(config: ProxyConfig, patient: PatientInfo) -> types.LiveConnectConfig:
    """
    Live session config for voice conversations.

    Audio responses with transcription in both directions, a prebuilt voice,
    and automatic activity detection tuned for short answers.
    """
    return types.LiveConnectConfig(
        system_instruction=types.Content(
            parts=[types.Part(text=get_assistant_instructions(patient))]
        ),
        response_modalities=[types.Modality.AUDIO],
        input_audio_transcription=types.AudioTranscriptionConfig(),
        output_audio_transcription=types.AudioTranscriptionConfig(),
        speech_config=types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=config.voice_name)
            )
        ),
        realtime_input_config=types.RealtimeInputConfig(
            automatic_activity_detection=types.AutomaticActivityDetection(
                disabled=False,
                start_of_speech_sensitivity=types.StartSensitivity(config.vad_start_sensitivity),
                end_of_speech_sensitivity=types.EndSensitivity(config.vad_end_sensitivity),
                prefix_padding_ms=config.vad_prefix_padding_ms,
                silence_duration_ms=config.vad_silence_duration_ms,
            )
        ),
    )


def build_stt_config(config: ProxyConfig) -> types.LiveConnectConfig:
    """Live session config for transcription only (TEXT modality)."""
    return types.LiveConnectConfig(
        system_instruction=types.Content(parts=[types.Part(text=STT_INSTRUCTIONS)]),
        response_modalities=[types.Modality.TEXT],
        input_audio_transcription=types.AudioTranscriptionConfig(),
    )


def build_text_chat_config(patient: PatientInfo) -> types.GenerateContentConfig:
    return types.GenerateContentConfig(system_instruction=get_assistant_instructions(patient))


def classify_setup_error(error: Exception) -> Exception:
    """
    Map quota and billing failures to GeminiQuotaExceededError.

    Other errors are returned unchanged.
    """
    error_msg = str(error).lower()
    if any(marker in error_msg for marker in QUOTA_MARKERS):
        logger.error(f"Gemini API quota exceeded: {error}")
        return GeminiQuotaExceededError(f"Gemini API quota exceeded: {error}")
    return error


def upstream_close_reason(error: Exception) -> Optional[str]:
    """
    Return the close reason when the SDK reports a normal Live socket close.

    The SDK re-raises websocket closes as APIError carrying the close code and
    the reason string. Internal errors (1011) and application close codes
    (>= 1100) are failures and return None, as do all other exceptions.
    """
    if not isinstance(error, errors.APIError):
        return None
    code = error.code
    if not isinstance(code, int) or code < 1000 or code >= 1100 or code == 1011:
        return None
    return error.details if isinstance(error.details, str) and error.details else "unknown"
