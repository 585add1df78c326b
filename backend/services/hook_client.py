"""
Hook Stream Client - Consume the hook generation SSE stream

Reads frames from /api/hooks/chat and drives a StreamSessionController,
surfacing hook code the moment it is complete.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable

import aiohttp

from models.hook import ChatMessage, HookChatRequest, InitSessionRequest, MessageRole
from models.stream import SessionConfig, SessionOutcome, StreamFrame
from services.frames import parse_sse_line
from services.stream_session import StreamObserver, StreamSessionController


async def iter_sse_frames(lines: AsyncIterator[bytes]) -> AsyncIterator[StreamFrame]:
    """Decode frames from raw SSE lines"""
    async for line in lines:
        frame = parse_sse_line(line.decode("utf-8"))
        if frame is not None:
            yield frame


class HookStreamClient:
    """Client for the hook generation API"""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout_seconds: int = 120,
        config: SessionConfig | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.config = config or SessionConfig()

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(f"{self.base_url}{path}", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise Exception(f"Hook API error ({response.status}): {error_text}")
                return await response.json()

    async def init_session(self, initial_message: str | None = None) -> str:
        """Open a session and return its id"""
        request = InitSessionRequest(initial_message=initial_message)
        data = await self._post_json(
            "/api/hooks/init-session", request.model_dump(mode="json", by_alias=True, exclude_none=True)
        )
        return data["sessionId"]

    async def chat(
        self,
        session_id: str,
        message: str,
        context: str | None = None,
        on_hook_code: Callable[[str], None] | None = None,
        observer: StreamObserver | None = None,
    ) -> SessionOutcome:
        """Send one message and consume the streamed answer"""
        controller = StreamSessionController(self.config, observer=observer, on_hook_code=on_hook_code)
        request = HookChatRequest(
            session_id=session_id,
            messages=[ChatMessage(role=MessageRole.USER, content=message)],
            context=context,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                f"{self.base_url}/api/hooks/chat",
                json=request.model_dump(mode="json", by_alias=True, exclude_none=True),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise Exception(f"Hook API error ({response.status}): {error_text}")
                try:
                    return await controller.consume(iter_sse_frames(response.content))
                except aiohttp.ClientError as e:
                    print(f"[HookStreamClient] Stream aborted: {e}")
                    return controller.outcome
