"""
Stream Session Controller - Drive one streaming session over framed events

idle -> streaming -> finalizing -> done, with errored reachable from
streaming/finalizing and cancelled from idle/streaming.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterable, Callable

from models.hook import PartialRecordView
from models.stream import (
    TERMINAL_STATES,
    FrameType,
    OutcomeStatus,
    SessionConfig,
    SessionError,
    SessionOutcome,
    SessionResult,
    SessionState,
    StreamFrame,
)
from services.frames import parse_frame
from services.stream_parser import IncrementalStreamParser, StreamContractError

logger = logging.getLogger(__name__)

CONTRACT_ERROR_TYPE = "contractViolation"
CANCELLED_ERROR_TYPE = "cancelled"


class StreamObserver:
    """Lifecycle callbacks invoked by the controller; all no-ops by default"""

    def on_state_change(self, old: SessionState, new: SessionState) -> None:
        pass

    def on_ingest_start(self, fragment: str) -> None:
        pass

    def on_ingest_end(self, view: PartialRecordView) -> None:
        pass

    def on_field_discovered(self, field: str, value: Any) -> None:
        pass

    def on_hook_code(self, code: str) -> None:
        pass

    def on_unknown_frame(self, frame: StreamFrame) -> None:
        pass

    def on_finalize(self, result: SessionResult) -> None:
        pass

    def on_error(self, error: SessionError) -> None:
        pass

    def on_cancel(self, reason: str) -> None:
        pass


class LoggingObserver(StreamObserver):
    """Observer that reports session activity through the logging module"""

    def __init__(self, session_id: str | None = None, log: logging.Logger | None = None):
        self.session_id = session_id or "-"
        self.log = log or logger

    def on_state_change(self, old, new):
        self.log.info("[StreamSession %s] %s -> %s", self.session_id, old.value, new.value)

    def on_ingest_start(self, fragment):
        self.log.debug("[StreamSession %s] Ingesting fragment (%d chars)", self.session_id, len(fragment))

    def on_ingest_end(self, view):
        self.log.debug(
            "[StreamSession %s] Buffer now %d chars, progress %d%%",
            self.session_id,
            len(view.record.raw_content),
            view.progress,
        )

    def on_field_discovered(self, field, value):
        self.log.debug("[StreamSession %s] Field discovered: %s", self.session_id, field)

    def on_hook_code(self, code):
        self.log.info("[StreamSession %s] Hook code available (%d chars)", self.session_id, len(code))

    def on_unknown_frame(self, frame):
        self.log.warning("[StreamSession %s] Ignoring unknown frame: %r", self.session_id, frame.content)

    def on_finalize(self, result):
        fields = sorted(result.record.model_dump(exclude_none=True))
        self.log.info("[StreamSession %s] Finalized record fields: %s", self.session_id, ", ".join(fields))

    def on_error(self, error):
        self.log.warning(
            "[StreamSession %s] Stream error (%s): %s", self.session_id, error.error_type, error.message
        )

    def on_cancel(self, reason):
        self.log.warning("[StreamSession %s] Session cancelled: %s", self.session_id, reason)


class StreamSessionController:
    """Per-request orchestrator feeding transport frames to a parser"""

    def __init__(
        self,
        config: SessionConfig | None = None,
        observer: StreamObserver | None = None,
        on_hook_code: Callable[[str], None] | None = None,
    ):
        self.config = config or SessionConfig()
        self.observer = observer or StreamObserver()
        self._on_hook_code = on_hook_code
        self._state = SessionState.IDLE
        self._parser: IncrementalStreamParser | None = None
        self._reply = ""
        self._partial: PartialRecordView | None = None
        self._result: SessionResult | None = None
        self._error: SessionError | None = None

    # ========== State ==========

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def reply(self) -> str:
        return self._reply

    @property
    def partial(self) -> PartialRecordView | None:
        """Latest best-effort view, kept after errors and cancellation"""
        return self._partial

    @property
    def result(self) -> SessionResult | None:
        return self._result

    @property
    def error(self) -> SessionError | None:
        return self._error

    @property
    def outcome(self) -> SessionOutcome | None:
        """None while the session is still running"""
        if self._state == SessionState.DONE:
            return SessionOutcome(status=OutcomeStatus.COMPLETED, result=self._result, partial=self._partial)
        if self._state == SessionState.ERRORED:
            return SessionOutcome(status=OutcomeStatus.ERRORED, error=self._error, partial=self._partial)
        if self._state == SessionState.CANCELLED:
            return SessionOutcome(status=OutcomeStatus.INCOMPLETE, error=self._error, partial=self._partial)
        return None

    def _set_state(self, new: SessionState) -> None:
        old, self._state = self._state, new
        self.observer.on_state_change(old, new)

    # ========== Lifecycle ==========

    def start(self) -> None:
        if self._state != SessionState.IDLE:
            raise StreamContractError(f"Cannot start a session in state '{self._state.value}'")
        self._parser = IncrementalStreamParser(self.config)
        self._reply = ""
        self._set_state(SessionState.STREAMING)

    def handle_frame(self, frame: StreamFrame | dict | str) -> PartialRecordView | SessionResult | SessionError | None:
        """Classify and apply one transport frame"""
        if self._state in TERMINAL_STATES:
            raise StreamContractError(f"Frame received after session reached '{self._state.value}'")
        if self._state == SessionState.IDLE:
            self.start()

        frame = parse_frame(frame)
        if frame.type == FrameType.DATA:
            return self._ingest(frame.content)
        if frame.type == FrameType.ERROR:
            return self._fail(SessionError(message=str(frame.content), error_type=frame.error_type, detail=frame.error))
        if frame.type == FrameType.DONE:
            return self._finish()

        self.observer.on_unknown_frame(frame)
        return None

    def cancel(self, reason: str = "Stream aborted before completion") -> SessionOutcome:
        """End the session as incomplete without finalizing"""
        if self._state in TERMINAL_STATES:
            return self.outcome
        self._error = SessionError(message=reason, error_type=CANCELLED_ERROR_TYPE)
        self.observer.on_cancel(reason)
        self._set_state(SessionState.CANCELLED)
        return self.outcome

    async def consume(self, frames: AsyncIterable[StreamFrame | dict | str]) -> SessionOutcome:
        """Drive the session until a terminal state or the end of frames"""
        try:
            async for frame in frames:
                self.handle_frame(frame)
                if self._state in TERMINAL_STATES:
                    break
        except asyncio.CancelledError:
            self.cancel("Consumer task cancelled")
            raise
        except StreamContractError:
            raise
        except Exception as e:
            self.cancel(f"Transport aborted: {e}")
            raise

        if self._state not in TERMINAL_STATES:
            self.cancel("Stream ended without a terminal marker")
        return self.outcome

    # ========== Frame handlers ==========

    def _ingest(self, content: Any) -> PartialRecordView:
        if content is None:
            fragment = ""
        elif isinstance(content, str):
            fragment = content
        else:
            fragment = json.dumps(content)

        self.observer.on_ingest_start(fragment)
        if isinstance(content, dict):
            view = self._parser.ingest_object(content)
        else:
            view = self._parser.ingest(fragment)
        self._partial = view

        if view.reply_delta:
            self._reply += view.reply_delta
        for field in view.discovered:
            self.observer.on_field_discovered(field, getattr(view.record, field))
        if view.code_changed and view.record.code:
            self.observer.on_hook_code(view.record.code)
            if self._on_hook_code is not None:
                self._on_hook_code(view.record.code)

        self.observer.on_ingest_end(view)
        return view

    def _fail(self, error: SessionError) -> SessionError:
        self._error = error
        self.observer.on_error(error)
        self._set_state(SessionState.ERRORED)
        return error

    def _finish(self) -> SessionResult:
        self._set_state(SessionState.FINALIZING)
        try:
            record = self._parser.finalize()
        except StreamContractError as e:
            self._fail(SessionError(message=str(e), error_type=CONTRACT_ERROR_TYPE))
            raise

        self._result = SessionResult(record=record, reply=self._reply or self._parser.json_reply)
        self.observer.on_finalize(self._result)
        self._set_state(SessionState.DONE)
        return self._result
