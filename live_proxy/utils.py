"""
Utility Functions for the Gemini Live Proxy

Functions:
    decode_audio_payload: Decode and validate a base64 PCM frame from the browser
    validate_audio_chunk: Validate incoming PCM audio chunks
    pcm_mime_type: MIME type for raw PCM at a sample rate
    serialize_server_message: Convert a vendor server message to camelCase JSON
    parse_structured_output: Best-effort JSON parsing of a model response
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

MIN_CHUNK_BYTES = 2
MAX_CHUNK_BYTES = 1024 * 1024


class AudioPayloadError(ValueError):
    """Raised when an audio frame cannot be decoded or fails validation"""

    def __init__(self, message: str, errors: List[str] = None):
        super().__init__(message)
        self.errors = errors or [message]


def validate_audio_chunk(audio_data: bytes) -> Dict[str, Any]:
    """
    Validate incoming PCM audio chunks.

    Checks:
    - Size constraints (min 2 bytes, max 1MB)
    - Whole 16-bit samples (even byte length)

    Args:
        audio_data: Raw PCM audio bytes

    Returns:
        dict: {
            "valid": bool,
            "errors": List[str],
            "warnings": List[str],
            "size_bytes": int
        }
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not audio_data:
        errors.append("Audio data is empty")
        return {
            "valid": False,
            "errors": errors,
            "warnings": warnings,
            "size_bytes": 0
        }

    size_bytes = len(audio_data)

    if size_bytes < MIN_CHUNK_BYTES:
        errors.append(f"Audio chunk too small: {size_bytes} bytes (min: {MIN_CHUNK_BYTES})")

    if size_bytes > MAX_CHUNK_BYTES:
        errors.append(f"Audio chunk too large: {size_bytes} bytes (max: {MAX_CHUNK_BYTES})")

    if size_bytes % 2 != 0:
        errors.append(f"Audio chunk is not 16-bit aligned: {size_bytes} bytes")

    if size_bytes > 64 * 1024:
        warnings.append("Large audio chunk (> 64KB), consider smaller chunks for smoother streaming")

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "size_bytes": size_bytes
    }


def decode_audio_payload(data: str) -> bytes:
    """
    Decode a base64 audio frame and validate the PCM it carries.

    Raises:
        AudioPayloadError: If the payload is empty, not base64, or invalid PCM
    """
    if not data:
        raise AudioPayloadError("Audio data is empty")

    try:
        audio_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise AudioPayloadError(f"Audio data is not valid base64: {e}")

    result = validate_audio_chunk(audio_bytes)
    if not result["valid"]:
        raise AudioPayloadError("Invalid audio chunk", result["errors"])
    for warning in result["warnings"]:
        logger.debug(warning)

    return audio_bytes


def pcm_mime_type(sample_rate: int) -> str:
    return f"audio/pcm;rate={sample_rate}"


def serialize_server_message(message: Any) -> Dict[str, Any]:
    """
    Convert a vendor server message into a JSON-safe camelCase dict.

    SDK models serialize bytes (inline audio) as base64. Plain dicts pass through.
    """
    if isinstance(message, dict):
        return message
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_structured_output(text: str) -> Any:
    """Parse a structured-output response, keeping the raw string if it is not JSON."""
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return text
