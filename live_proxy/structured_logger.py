import json
import logging
import time
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Lightweight structured logger that emits JSON log lines.

    Wraps a standard `logging.Logger` so the existing logging configuration
    keeps working, while session lifecycle events stay machine-parseable.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def _log(
        self,
        level: str,
        event_type: str,
        message: str,
        session_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry: Dict[str, Any] = {
            "timestamp": time.time(),
            "event_type": event_type,
            "message": message,
        }

        if session_id is not None:
            entry["session_id"] = session_id

        if data:
            entry["data"] = dict(data)

        log_method = getattr(self.logger, level.lower(), self.logger.info)
        try:
            log_method(json.dumps(entry, default=str))
        except (TypeError, ValueError):
            log_method(f"[STRUCTURED_LOG_FALLBACK] {entry}")

    # ------------------------------------------------------------------ #
    # Public helpers
    # ------------------------------------------------------------------ #

    def event(
        self,
        session_id: Optional[str],
        event_type: str,
        message: str,
        level: str = "INFO",
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Generic structured event."""
        self._log(level=level, event_type=event_type, message=message, session_id=session_id, data=data)

    def session_opened(self, session_id: str, mode: str, model: Optional[str] = None) -> None:
        data: Dict[str, Any] = {"mode": mode}
        if model:
            data["model"] = model
        self._log("INFO", "session_opened", f"{mode} session opened", session_id=session_id, data=data)

    def session_closed(self, session_id: str, mode: str, reason: Optional[str] = None, duration_s: Optional[float] = None) -> None:
        data: Dict[str, Any] = {"mode": mode}
        if reason:
            data["reason"] = reason
        if duration_s is not None:
            data["duration_s"] = round(duration_s, 3)
        self._log("INFO", "session_closed", f"{mode} session closed", session_id=session_id, data=data)

    def upstream_error(self, session_id: Optional[str], error: Exception, stage: str) -> None:
        self._log(
            "ERROR",
            "upstream_error",
            str(error),
            session_id=session_id,
            data={"stage": stage, "error_type": type(error).__name__},
        )
