"""
Pydantic models for the Gemini Live Proxy

Defines the JSON frames exchanged with the browser over the WebSocket.
Field names on the wire are camelCase to match the browser client.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from google.genai import types


AVAILABLE_MODELS: List[Dict[str, str]] = [
    {"id": "gemini-2.5-flash", "name": "Gemini 2.5 Flash"},
    {"id": "gemini-2.5-pro", "name": "Gemini 2.5 Pro"},
    {"id": "gemini-2.0-flash", "name": "Gemini 2.0 Flash"},
]

DEFAULT_PLAYGROUND_CONFIG: Dict[str, Any] = {
    "model": "gemini-2.5-flash",
    "systemInstruction": "",
    "userPrompt": "",
    "useStructuredOutput": False,
    "temperature": 1.0,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 1024,
}


class CamelModel(BaseModel):
    """Base model accepting both camelCase (wire) and snake_case (Python) names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Client -> proxy
# ============================================================================

class AudioMessage(CamelModel):
    """Microphone chunk: base64 16-bit PCM, mono"""
    type: Literal["audio"]
    data: str = Field(..., description="Base64 encoded PCM audio")


class TextMessage(CamelModel):
    """User text turn"""
    type: Literal["text"]
    text: str = ""


class PingMessage(CamelModel):
    """Keepalive"""
    type: Literal["ping"]


class ResetMessage(CamelModel):
    """Clear the session transcript"""
    type: Literal["reset"]


class PlaygroundRequest(CamelModel):
    """One-shot generation request from the playground"""
    type: Literal["playground_request"]
    model: str = DEFAULT_PLAYGROUND_CONFIG["model"]
    system_instruction: str = ""
    user_prompt: str = ""
    response_json_schema: Optional[Dict[str, Any]] = None
    use_structured_output: bool = False
    temperature: Optional[float] = None
    top_k: Optional[float] = None
    top_p: Optional[float] = None
    max_output_tokens: Optional[int] = None

    def to_generation_config(self) -> types.GenerateContentConfig:
        """
        Build the SDK generation config.

        Only sampling parameters that were provided are set. Structured output
        is enabled only when requested and a schema is present.
        """
        config: Dict[str, Any] = {}
        if self.temperature is not None:
            config["temperature"] = self.temperature
        if self.top_k is not None:
            config["top_k"] = self.top_k
        if self.top_p is not None:
            config["top_p"] = self.top_p
        if self.max_output_tokens is not None:
            config["max_output_tokens"] = self.max_output_tokens
        if self.system_instruction:
            config["system_instruction"] = self.system_instruction

        if self.use_structured_output and self.response_json_schema:
            config["response_mime_type"] = "application/json"
            config["response_json_schema"] = self.response_json_schema

        return types.GenerateContentConfig(**config)


ClientMessage = Union[AudioMessage, TextMessage, PingMessage, ResetMessage, PlaygroundRequest]

_CLIENT_MESSAGE_TYPES = {
    "audio": AudioMessage,
    "text": TextMessage,
    "ping": PingMessage,
    "reset": ResetMessage,
    "playground_request": PlaygroundRequest,
}


def parse_client_message(payload: Dict[str, Any]) -> Optional[ClientMessage]:
    """
    Parse a decoded JSON frame into a client message model.

    Returns:
        The message model, or None when the type is unknown.

    Raises:
        ValidationError: If a known message type has invalid fields
    """
    model = _CLIENT_MESSAGE_TYPES.get(payload.get("type"))
    if model is None:
        return None
    return model.model_validate(payload)


# ============================================================================
# Proxy -> client
# ============================================================================

class PlaygroundMetadata(CamelModel):
    model: str
    total_tokens: Optional[int] = None
    latency_ms: int


class PlaygroundComplete(CamelModel):
    type: Literal["playground_complete"] = "playground_complete"
    response: Union[Dict[str, Any], List[Any], str, int, float, bool, None]
    metadata: PlaygroundMetadata

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if data["metadata"]["totalTokens"] is None:
            del data["metadata"]["totalTokens"]
        return data


def session_open(mode: str) -> Dict[str, Any]:
    return {"type": "session_open", "mode": mode}


def session_close(reason: Optional[str] = None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"type": "session_close"}
    if reason is not None:
        message["reason"] = reason
    return message


def error_message(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


__all__ = [
    "AVAILABLE_MODELS",
    "DEFAULT_PLAYGROUND_CONFIG",
    "AudioMessage",
    "TextMessage",
    "PingMessage",
    "ResetMessage",
    "PlaygroundRequest",
    "PlaygroundMetadata",
    "PlaygroundComplete",
    "ClientMessage",
    "ValidationError",
    "parse_client_message",
    "session_open",
    "session_close",
    "error_message",
]
