"""Streaming session data models"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .hook import CamelModel, GenerationRecord, PartialRecordView

DEFAULT_HOOK_TYPE_PHRASES: tuple[str, ...] = (
    "before swap",
    "after swap",
    "before initialize",
    "after initialize",
    "before modify position",
    "after modify position",
)


class FrameType(str, Enum):
    """Kinds of frames carried by the event stream"""

    DATA = "data"
    ERROR = "error"
    DONE = "done"
    UNKNOWN = "unknown"


class StreamFrame(BaseModel):
    """A decoded transport frame"""

    model_config = ConfigDict(populate_by_name=True)

    type: FrameType
    content: Any = None
    error_type: str | None = Field(default=None, alias="errorType")
    error: str | None = None  # Underlying provider message, if any


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({SessionState.DONE, SessionState.ERRORED, SessionState.CANCELLED})


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    ERRORED = "errored"
    INCOMPLETE = "incomplete"


class SessionError(CamelModel):
    """Transport-level failure reported by an error frame"""

    message: str
    error_type: str | None = None
    detail: str | None = None


class SessionResult(CamelModel):
    """Finalized record and reply, emitted once per session"""

    record: GenerationRecord
    reply: str


class SessionOutcome(CamelModel):
    """How a streaming session ended"""

    status: OutcomeStatus
    result: SessionResult | None = None
    error: SessionError | None = None
    partial: PartialRecordView | None = None  # Last view seen before the session ended


class SessionConfig(BaseModel):
    """Per-session parser settings"""

    hook_type_phrases: tuple[str, ...] = DEFAULT_HOOK_TYPE_PHRASES
    enable_json_fallback: bool = True
    progress_floor: int = 5
    progress_ceiling: int = 95
    progress_chars_per_point: int = 50

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SessionConfig":
        """Build from the "stream" section of the backend configuration"""
        section = config.get("stream") or {}
        return cls(**{k: v for k, v in section.items() if k in cls.model_fields})
