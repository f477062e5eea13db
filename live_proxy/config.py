"""
Configuration for the Gemini Live Proxy

Loads configuration from environment variables for container deployment.
No load_dotenv() calls - follows microservice pattern.

Environment detection:
    - Production (Cloud Run): K_SERVICE is set or NODE_ENV/APP_ENV is "production".
      Project comes from GOOGLE_CLOUD_PROJECT and the runtime service identity.
    - Development: a service account JSON file supplies credentials and,
      when GOOGLE_CLOUD_PROJECT is unset, the project id.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

logger = logging.getLogger(__name__)

VALID_MODES = ("voice", "text", "stt", "playground")
VALID_START_SENSITIVITIES = ["START_SENSITIVITY_UNSPECIFIED", "START_SENSITIVITY_HIGH", "START_SENSITIVITY_LOW"]
VALID_END_SENSITIVITIES = ["END_SENSITIVITY_UNSPECIFIED", "END_SENSITIVITY_HIGH", "END_SENSITIVITY_LOW"]


class ConfigurationError(Exception):
    """Raised when the proxy cannot resolve the settings it needs to start"""
    pass


def _is_production() -> bool:
    return (
        os.getenv("NODE_ENV", "").lower() == "production"
        or os.getenv("APP_ENV", "").lower() == "production"
        or bool(os.getenv("K_SERVICE"))
    )


def _read_service_account_project(path: Optional[str]) -> Optional[str]:
    """Return project_id from a service account JSON file, or None if unreadable."""
    if not path or not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            credentials = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read service account file {path}: {e}")
        return None
    return credentials.get("project_id")


@dataclass
class ProxyConfig:
    """Configuration for the Gemini Live Proxy"""

    # Environment
    production: bool = False
    project_id: Optional[str] = None
    location: str = "us-central1"
    service_account_path: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    ws_path: str = "/ws"
    dist_dir: str = "dist"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    default_mode: str = "voice"

    # Models
    voice_model: str = "gemini-live-2.5-flash-preview-native-audio-09-2025"
    text_model: str = "gemini-2.5-flash"
    stt_model: str = "gemini-2.0-flash-live-preview-04-09"
    voice_name: str = "Puck"

    # Audio
    input_sample_rate: int = 16000

    # Automatic activity detection, tuned for short utterances like "yes" / "no"
    vad_start_sensitivity: str = "START_SENSITIVITY_HIGH"
    vad_end_sensitivity: str = "END_SENSITIVITY_LOW"
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 500

    # Patient defaults for the assistant persona
    patient_name: str = "John Doe"
    patient_age: str = "35"
    patient_gender: str = "Male"

    # Logging
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "ProxyConfig":
        """
        Load configuration from environment variables.

        Returns:
            ProxyConfig: Configuration instance loaded from environment
        """
        production = _is_production()
        service_account_path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or os.getenv("SERVICE_ACCOUNT_PATH")
        project_id = os.getenv("GOOGLE_CLOUD_PROJECT")

        if not production and service_account_path:
            if os.path.isfile(service_account_path):
                project_id = project_id or _read_service_account_project(service_account_path)
                # The SDK reads credentials from this variable
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = service_account_path
            else:
                logger.warning(f"Service account file not found for local development: {service_account_path}")

        cors = os.getenv("CORS_ORIGINS", "*")

        return ProxyConfig(
            production=production,
            project_id=project_id,
            location=os.getenv("VERTEX_AI_LOCATION", "us-central1"),
            service_account_path=service_account_path,
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            ws_path=os.getenv("WS_PATH", "/ws"),
            dist_dir=os.getenv("DIST_DIR", "dist"),
            cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
            default_mode=os.getenv("DEFAULT_MODE", "voice"),
            voice_model=os.getenv("VOICE_MODEL", "gemini-live-2.5-flash-preview-native-audio-09-2025"),
            text_model=os.getenv("TEXT_MODEL", "gemini-2.5-flash"),
            stt_model=os.getenv("STT_MODEL", "gemini-2.0-flash-live-preview-04-09"),
            voice_name=os.getenv("VOICE_NAME", "Puck"),
            input_sample_rate=int(os.getenv("INPUT_SAMPLE_RATE", "16000")),
            vad_start_sensitivity=os.getenv("VAD_START_SENSITIVITY", "START_SENSITIVITY_HIGH"),
            vad_end_sensitivity=os.getenv("VAD_END_SENSITIVITY", "END_SENSITIVITY_LOW"),
            vad_prefix_padding_ms=int(os.getenv("VAD_PREFIX_PADDING_MS", "300")),
            vad_silence_duration_ms=int(os.getenv("VAD_SILENCE_DURATION_MS", "500")),
            patient_name=os.getenv("PATIENT_NAME", "John Doe"),
            patient_age=os.getenv("PATIENT_AGE", "35"),
            patient_gender=os.getenv("PATIENT_GENDER", "Male"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def __post_init__(self):
        """Validate and normalize configuration"""
        if self.port <= 0:
            raise ValueError("port must be positive")
        if self.default_mode not in VALID_MODES:
            raise ValueError(f"default_mode must be one of {VALID_MODES}, got '{self.default_mode}'")

        if not (0 <= self.vad_prefix_padding_ms <= 1000):
            logger.warning(f"Invalid vad_prefix_padding_ms={self.vad_prefix_padding_ms}, using default 300")
            self.vad_prefix_padding_ms = 300
        if not (0 <= self.vad_silence_duration_ms <= 5000):
            logger.warning(f"Invalid vad_silence_duration_ms={self.vad_silence_duration_ms}, using default 500")
            self.vad_silence_duration_ms = 500

        if self.vad_start_sensitivity not in VALID_START_SENSITIVITIES:
            logger.warning(f"Invalid vad_start_sensitivity '{self.vad_start_sensitivity}', defaulting to START_SENSITIVITY_HIGH")
            self.vad_start_sensitivity = "START_SENSITIVITY_HIGH"
        if self.vad_end_sensitivity not in VALID_END_SENSITIVITIES:
            logger.warning(f"Invalid vad_end_sensitivity '{self.vad_end_sensitivity}', defaulting to END_SENSITIVITY_LOW")
            self.vad_end_sensitivity = "END_SENSITIVITY_LOW"

        if not self.ws_path.startswith("/"):
            self.ws_path = "/" + self.ws_path

    @property
    def environment_name(self) -> str:
        return "production" if self.production else "development"

    def validate_credentials(self) -> None:
        """
        Ensure a Vertex AI project can be resolved.

        Raises:
            ConfigurationError: If no project id is configured
        """
        if not self.project_id:
            if self.production:
                raise ConfigurationError("GOOGLE_CLOUD_PROJECT must be set in production")
            raise ConfigurationError(
                "No project id found. Set GOOGLE_CLOUD_PROJECT or point "
                "GOOGLE_APPLICATION_CREDENTIALS at a service account JSON file."
            )
