"""Hook generation data models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model with camelCase wire names and snake_case attributes"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HookType(str, Enum):
    """Uniswap v4 hook callback the generated contract targets"""

    BEFORE_SWAP = "beforeSwap"
    AFTER_SWAP = "afterSwap"
    BEFORE_INITIALIZE = "beforeInitialize"
    AFTER_INITIALIZE = "afterInitialize"
    BEFORE_MODIFY_POSITION = "beforeModifyPosition"
    AFTER_MODIFY_POSITION = "afterModifyPosition"
    CUSTOM = "custom"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FeatureDetail(CamelModel):
    """One <feature> block from <implementationDetails>"""

    name: str
    description: str | None = None
    code_snippet: str | None = None


class GenerationRecord(CamelModel):
    """Structured hook artifact as exposed to renderers and storage"""

    name: str | None = None
    description: str | None = None
    code: str | None = None
    hook_type: HookType | None = None
    gas_estimate: int | None = None
    complexity: Complexity | None = None
    functionalities: list[str] | None = None
    implementation_details: list[FeatureDetail] | None = None
    dependencies: list[str] | None = None
    test_code: str | None = None
    examples: list[str] | None = None
    version: str | None = None
    author: str | None = None
    timestamp: str | None = None

    def has_data(self) -> bool:
        """True once any structured field has been populated"""
        return any(
            getattr(self, field) not in (None, "", [])
            for field in GenerationRecord.model_fields
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


DIAGNOSTIC_FIELDS = frozenset({"raw_content", "reply_content"})


class WorkingRecord(GenerationRecord):
    """Record under assembly, carrying diagnostic-only fields"""

    raw_content: str = ""
    reply_content: str = ""


def finalize_record(record: WorkingRecord) -> GenerationRecord:
    """Project a working record onto the consumer-facing record"""
    return GenerationRecord(**record.model_dump(exclude=DIAGNOSTIC_FIELDS))


class PartialRecordView(CamelModel):
    """Snapshot returned after each ingested fragment"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    record: WorkingRecord
    progress: int
    discovered: list[str] = []  # Record attributes changed by this fragment
    code_changed: bool = False
    reply_delta: str = ""  # Reply text completed by this fragment


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class SessionMessage(CamelModel):
    """A single persisted chat message"""

    id: str
    role: MessageRole
    content: str


class HookCodeEntry(CamelModel):
    """Finalized record stored against a session"""

    id: str
    session_id: str
    record: GenerationRecord
    created_at: str


class InitSessionRequest(CamelModel):
    """Request to open a hook generation session"""

    initial_message: str | None = None


class InitSessionResponse(CamelModel):
    session_id: str
    message: str


class ChatMessage(CamelModel):
    """Message as sent by the client"""

    role: MessageRole
    content: str
    id: str | None = None


class HookChatRequest(CamelModel):
    """Request for a streamed hook generation turn"""

    session_id: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    context: str | None = None  # Optional retrieval context supplied by the caller
