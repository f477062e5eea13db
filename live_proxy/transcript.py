"""
Rolling conversation transcript.

Accumulates transcription fragments from Live API server content into
completed, role-tagged entries. User speech is committed when the input
transcription reports it is finished; model speech is committed when the
turn completes, and discarded on interruption.
"""

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

Role = Literal["user", "ai"]


@dataclass
class TranscriptEntry:
    role: Role
    text: str
    timestamp: float = field(default_factory=time.time)


class Transcript:
    """Ordered list of completed entries plus the in-progress buffers."""

    def __init__(self):
        self.history: List[TranscriptEntry] = []
        self.current_user_input: str = ""
        self.current_ai_output: str = ""

    def _commit(self, role: Role, text: str) -> Optional[TranscriptEntry]:
        text = text.strip()
        if not text:
            return None
        entry = TranscriptEntry(role=role, text=text)
        self.history.append(entry)
        return entry

    def add_user_text(self, text: str) -> Optional[TranscriptEntry]:
        return self._commit("user", text)

    def add_ai_text(self, text: str) -> Optional[TranscriptEntry]:
        return self._commit("ai", text)

    def apply_server_content(self, server_content: Optional[Dict[str, Any]]) -> List[TranscriptEntry]:
        """
        Apply one camelCase ``serverContent`` payload.

        Returns:
            Entries committed by this payload, in commit order
        """
        committed: List[TranscriptEntry] = []
        if not server_content:
            return committed

        input_tx = server_content.get("inputTranscription") or {}
        if input_tx.get("text"):
            self.current_user_input += input_tx["text"]
        if input_tx.get("finished"):
            entry = self._commit("user", self.current_user_input)
            if entry:
                committed.append(entry)
            self.current_user_input = ""

        output_tx = server_content.get("outputTranscription") or {}
        if output_tx.get("text"):
            self.current_ai_output += output_tx["text"]

        if server_content.get("turnComplete"):
            entry = self._commit("ai", self.current_ai_output)
            if entry:
                committed.append(entry)
            self.current_ai_output = ""

        if server_content.get("interrupted"):
            self.current_ai_output = ""

        return committed

    def reset(self) -> None:
        self.history = []
        self.current_user_input = ""
        self.current_ai_output = ""

    def __len__(self) -> int:
        return len(self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "history": [asdict(entry) for entry in self.history],
            "current_user_input": self.current_user_input,
            "current_ai_output": self.current_ai_output,
        }
