"""Hook generation API endpoints"""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from models.hook import (
    GenerationRecord,
    HookChatRequest,
    HookCodeEntry,
    InitSessionRequest,
    InitSessionResponse,
    MessageRole,
    SessionMessage,
)
from models.stream import SessionConfig, SessionResult
from services.config_manager import ConfigManager
from services.frames import data_frame, done_frame, encode_frame, error_frame
from services.llm_service import LLMService
from services.session_store import SessionStore
from services.stream_session import LoggingObserver, StreamSessionController

router = APIRouter()

# In-memory session storage
session_store = SessionStore()

HOOK_SYSTEM_PROMPT = """You are HookGPT, a friendly assistant and expert Uniswap v4 hooks developer.
Help the user design a hook, and generate complete, production-ready Solidity code for it.
If the user only greets you or has not described a hook yet, chat with them and ask what the hook should do.

CONTEXT:
{context}

MESSAGE HISTORY:
{message_history}

CURRENT HOOK CODE:
{hook_code}

Guidelines:
- Guard against reentrancy and other common attacks, validate inputs, and apply access control
- Implement the appropriate callbacks (beforeInitialize, afterInitialize, beforeModifyPosition,
  afterModifyPosition, beforeSwap, afterSwap) and keep hook gas usage low
- Generate complete code with all imports; never leave placeholders for the user to fill in

Structure your response with these tags:

<reply>Your explanation and conversational answer</reply>
<hookCode>The complete Solidity contract</hookCode>
<name>Name of the hook</name>
<description>Brief description of what the hook does</description>
<gasEstimate>Estimated gas cost as a whole number</gasEstimate>
<implementationDetails>
  <feature>
    <name>Feature or function name</name>
    <description>How the feature works</description>
    <codeSnippet>Relevant code snippet</codeSnippet>
  </feature>
</implementationDetails>
<testCode>Optional Foundry test for the hook</testCode>
<examples>
  <example>Usage example</example>
</examples>"""


def build_system_prompt(message_history: str, context: str | None, hook_code: GenerationRecord | None) -> str:
    """Fill the hook system prompt for one chat turn"""
    formatted_hook_code = json.dumps(hook_code.to_wire(), indent=2) if hook_code else "None yet"
    return HOOK_SYSTEM_PROMPT.format(
        context=context or "None provided",
        message_history=message_history or "No previous messages",
        hook_code=formatted_hook_code,
    )


def persist_result(session_id: str, result: SessionResult) -> None:
    """Store the finalized record and the assistant reply"""
    if result.record.has_data():
        session_store.save_hook_code(session_id, result.record)
    if result.reply:
        session_store.add_message(session_id, MessageRole.ASSISTANT, result.reply)


@router.post("/init-session", response_model=InitSessionResponse)
async def init_session(request: InitSessionRequest | None = None) -> InitSessionResponse:
    """Create a new hook generation session"""
    session_id = session_store.create_session()

    if request and request.initial_message:
        session_store.add_message(session_id, MessageRole.USER, request.initial_message)

    return InitSessionResponse(session_id=session_id, message="Session initialized successfully")


@router.post("/chat")
async def hook_chat(request: HookChatRequest):
    """Stream a hook generation turn as SSE frames"""
    if not request.session_id:
        raise HTTPException(status_code=400, detail="Session ID is required")
    if not request.messages:
        raise HTTPException(status_code=400, detail="At least one message is required")
    if not session_store.has_session(request.session_id):
        raise HTTPException(status_code=404, detail="Session not found")

    config = ConfigManager.get_instance().get_config()
    llm_service = LLMService(config)

    session_id = request.session_id
    message = request.messages[-1].content
    latest = session_store.latest_hook_code(session_id)
    system_prompt = build_system_prompt(
        session_store.format_history(session_id),
        request.context,
        latest.record if latest else None,
    )
    session_store.add_message(session_id, MessageRole.USER, message)

    controller = StreamSessionController(
        SessionConfig.from_config(config),
        observer=LoggingObserver(session_id),
    )

    async def event_generator():
        try:
            try:
                async for chunk in llm_service.generate_response_stream(message, system_prompt=system_prompt):
                    frame = data_frame(chunk)
                    controller.handle_frame(frame)
                    yield {"event": "message", "data": encode_frame(frame)}
            except Exception as e:
                print(f"[HooksRouter] Error generating hook code: {e}")
                frame = error_frame(
                    "Failed to generate hook code. Please try again.",
                    error_type="hookCodeError",
                    error=str(e),
                )
                controller.handle_frame(frame)
                yield {"event": "message", "data": encode_frame(frame)}
                yield {"event": "message", "data": encode_frame(done_frame())}
                return

            frame = done_frame()
            result = controller.handle_frame(frame)
            persist_result(session_id, result)
            yield {"event": "message", "data": encode_frame(frame)}

        except (asyncio.CancelledError, GeneratorExit):
            controller.cancel("Client disconnected")
            raise

    return EventSourceResponse(event_generator())


@router.get("/{session_id}", response_model=HookCodeEntry, response_model_exclude_none=True)
async def get_hook_code(session_id: str) -> HookCodeEntry:
    """Latest finalized hook for a session"""
    if not session_store.has_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")

    entry = session_store.latest_hook_code(session_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="No hook code generated for this session")
    return entry


@router.get("/{session_id}/messages", response_model=list[SessionMessage])
async def get_messages(session_id: str) -> list[SessionMessage]:
    """Ordered message history for a session"""
    if not session_store.has_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return session_store.get_messages(session_id)
