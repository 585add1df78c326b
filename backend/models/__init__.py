"""Models module - Pydantic data models"""

from .hook import (
    ChatMessage,
    Complexity,
    FeatureDetail,
    GenerationRecord,
    HookChatRequest,
    HookCodeEntry,
    HookType,
    InitSessionRequest,
    InitSessionResponse,
    MessageRole,
    PartialRecordView,
    SessionMessage,
    WorkingRecord,
    finalize_record,
)
from .stream import (
    FrameType,
    OutcomeStatus,
    SessionConfig,
    SessionError,
    SessionOutcome,
    SessionResult,
    SessionState,
    StreamFrame,
)

__all__ = [
    # Hook models
    "ChatMessage",
    "Complexity",
    "FeatureDetail",
    "GenerationRecord",
    "HookChatRequest",
    "HookCodeEntry",
    "HookType",
    "InitSessionRequest",
    "InitSessionResponse",
    "MessageRole",
    "PartialRecordView",
    "SessionMessage",
    "WorkingRecord",
    "finalize_record",
    # Stream models
    "FrameType",
    "OutcomeStatus",
    "SessionConfig",
    "SessionError",
    "SessionOutcome",
    "SessionResult",
    "SessionState",
    "StreamFrame",
]
