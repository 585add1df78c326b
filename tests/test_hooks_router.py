import json

import pytest
from fastapi.testclient import TestClient

from main import app
from routers import hooks
from services.frames import DONE_SENTINEL
from services.session_store import SessionStore

TURN_ONE = [
    "<reply>Here is a fee ",
    "hook.</reply><hookCode>contract Fee",
    " {}</hookCode><name>Fee Hook</name>",
    "<description>Charges a fee before swap</description>",
]


class FakeLLMService:
    """Stands in for LLMService and records each system prompt"""

    chunks: list = []
    failure: Exception | None = None
    system_prompts: list = []

    def __init__(self, config):
        self.config = config

    async def generate_response_stream(self, prompt, context=None, system_prompt=None):
        FakeLLMService.system_prompts.append(system_prompt)
        for chunk in FakeLLMService.chunks:
            yield chunk
        if FakeLLMService.failure is not None:
            raise FakeLLMService.failure


@pytest.fixture
def client(config_dir, monkeypatch):
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None

    FakeLLMService.chunks = list(TURN_ONE)
    FakeLLMService.failure = None
    FakeLLMService.system_prompts = []
    monkeypatch.setattr(hooks, "LLMService", FakeLLMService)
    monkeypatch.setattr(hooks, "session_store", SessionStore())

    with TestClient(app) as test_client:
        yield test_client


def read_frames(response):
    payloads = []
    for line in response.text.splitlines():
        if line.startswith("data:"):
            payloads.append(line[len("data:") :].strip())
    return [p if p == DONE_SENTINEL else json.loads(p) for p in payloads]


def new_session(client, initial_message=None):
    body = {"initialMessage": initial_message} if initial_message else {}
    response = client.post("/api/hooks/init-session", json=body)
    assert response.status_code == 200
    return response.json()["sessionId"]


def send(client, session_id, content):
    return client.post(
        "/api/hooks/chat",
        json={"sessionId": session_id, "messages": [{"role": "user", "content": content}]},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "hookgpt-backend"}


def test_init_session_stores_initial_message(client):
    session_id = new_session(client, "I want a fee hook")

    messages = client.get(f"/api/hooks/{session_id}/messages").json()
    assert [m["role"] for m in messages] == ["user"]
    assert messages[0]["content"] == "I want a fee hook"


def test_chat_streams_frames_and_persists_result(client):
    session_id = new_session(client)

    response = send(client, session_id, "Build a fee hook")
    assert response.status_code == 200

    frames = read_frames(response)
    assert frames[-1] == DONE_SENTINEL
    assert [f["content"] for f in frames[:-1]] == TURN_ONE
    assert all(f["type"] == "data" for f in frames[:-1])

    hook = client.get(f"/api/hooks/{session_id}").json()
    assert hook["sessionId"] == session_id
    assert hook["record"]["name"] == "Fee Hook"
    assert hook["record"]["code"] == "contract Fee {}"
    assert hook["record"]["hookType"] == "beforeSwap"
    assert "rawContent" not in hook["record"]

    messages = client.get(f"/api/hooks/{session_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "Build a fee hook"),
        ("assistant", "Here is a fee hook."),
    ]


def test_second_turn_prompt_carries_history_and_hook(client):
    session_id = new_session(client)
    send(client, session_id, "Build a fee hook")

    FakeLLMService.chunks = ["<reply>Updated.</reply>"]
    send(client, session_id, "Make it cheaper")

    first_prompt, second_prompt = FakeLLMService.system_prompts
    assert "No previous messages" in first_prompt
    assert "None yet" in first_prompt
    assert "User Message: Build a fee hook" in second_prompt
    assert "Assistant Message: Here is a fee hook." in second_prompt
    assert "Make it cheaper" not in second_prompt
    assert '"name": "Fee Hook"' in second_prompt


def test_reply_only_turn_stores_no_hook(client):
    FakeLLMService.chunks = ["<reply>Hello! What should your hook do?</reply>"]
    session_id = new_session(client)

    send(client, session_id, "hi")

    assert client.get(f"/api/hooks/{session_id}").status_code == 404
    messages = client.get(f"/api/hooks/{session_id}/messages").json()
    assert messages[-1]["content"] == "Hello! What should your hook do?"


def test_provider_failure_sends_error_then_done(client):
    FakeLLMService.chunks = ["<name>Fee Hook</name>"]
    FakeLLMService.failure = RuntimeError("OpenAI API error: overloaded")
    session_id = new_session(client)

    frames = read_frames(send(client, session_id, "Build a fee hook"))

    assert frames[0] == {"type": "data", "content": "<name>Fee Hook</name>"}
    assert frames[1]["type"] == "error"
    assert frames[1]["content"] == "Failed to generate hook code. Please try again."
    assert frames[1]["errorType"] == "hookCodeError"
    assert "overloaded" in frames[1]["error"]
    assert frames[2] == DONE_SENTINEL

    assert client.get(f"/api/hooks/{session_id}").status_code == 404
    messages = client.get(f"/api/hooks/{session_id}/messages").json()
    assert [m["role"] for m in messages] == ["user"]


def test_chat_requires_session_id(client):
    response = client.post("/api/hooks/chat", json={"messages": [{"role": "user", "content": "hi"}]})
    assert response.status_code == 400


def test_chat_requires_messages(client):
    session_id = new_session(client)
    response = client.post("/api/hooks/chat", json={"sessionId": session_id, "messages": []})
    assert response.status_code == 400


def test_chat_unknown_session(client):
    assert send(client, "missing", "hi").status_code == 404


def test_lookups_for_unknown_session(client):
    assert client.get("/api/hooks/missing").status_code == 404
    assert client.get("/api/hooks/missing/messages").status_code == 404
