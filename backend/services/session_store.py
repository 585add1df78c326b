"""
Session Store - In-memory sessions, message history and finalized hooks
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from models.hook import GenerationRecord, HookCodeEntry, MessageRole, SessionMessage


class SessionStore:
    """Process-local storage for hook generation sessions"""

    def __init__(self):
        self._messages: dict[str, list[SessionMessage]] = {}
        self._hook_codes: dict[str, list[HookCodeEntry]] = {}

    def create_session(self) -> str:
        session_id = str(uuid.uuid4())
        self._messages[session_id] = []
        self._hook_codes[session_id] = []
        return session_id

    def has_session(self, session_id: str) -> bool:
        return session_id in self._messages

    def add_message(self, session_id: str, role: MessageRole, content: str) -> SessionMessage:
        """Append a message; raises KeyError for unknown sessions"""
        message = SessionMessage(id=str(uuid.uuid4()), role=role, content=content)
        self._messages[session_id].append(message)
        return message

    def get_messages(self, session_id: str) -> list[SessionMessage]:
        return list(self._messages.get(session_id, []))

    def save_hook_code(self, session_id: str, record: GenerationRecord) -> HookCodeEntry:
        entry = HookCodeEntry(
            id=str(uuid.uuid4()),
            session_id=session_id,
            record=record,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._hook_codes[session_id].append(entry)
        return entry

    def latest_hook_code(self, session_id: str) -> HookCodeEntry | None:
        entries = self._hook_codes.get(session_id)
        return entries[-1] if entries else None

    def format_history(self, session_id: str) -> str:
        """History as 'User Message: ...' / 'Assistant Message: ...' lines"""
        lines = []
        for message in self._messages.get(session_id, []):
            label = "User Message" if message.role == MessageRole.USER else "Assistant Message"
            lines.append(f"{label}: {message.content}")
        return "\n".join(lines)
