import pytest

from services.llm_service import LLMService, call_llm_stream


@pytest.fixture
def service():
    return LLMService({"provider": "openai", "openai": {"apiKey": "sk-test", "model": "gpt-4o"}})


def test_openai_messages_include_system_prompt_and_context(service):
    messages = service._build_openai_messages("Build a hook", context="pool docs", system_prompt="You are HookGPT")

    assert messages == [
        {"role": "system", "content": "You are HookGPT"},
        {"role": "system", "content": "Context:\npool docs"},
        {"role": "user", "content": "Build a hook"},
    ]


def test_single_text_prompt():
    service = LLMService({"provider": "gemini"})

    assert service._build_prompt("Build a hook") == "Build a hook"
    assert service._build_prompt("Build a hook", system_prompt="Rules") == "Rules\n\nUser Request:\nBuild a hook"


def test_openai_stream_line_parsing(service):
    line = 'data: {"choices": [{"delta": {"content": "<reply>Hi"}}]}'

    assert service._parse_openai_stream_line(line) == "<reply>Hi"
    assert service._parse_openai_stream_line("data: [DONE]") is None
    assert service._parse_openai_stream_line('data: {"choices": [{"delta": {}}]}') is None
    assert service._parse_openai_stream_line(": keep-alive") is None
    assert service._parse_openai_stream_line("data: {broken") is None


def test_gemini_stream_line_parsing(service):
    line = 'data: {"candidates": [{"content": {"parts": [{"text": "<name>X</name>"}]}}]}'

    assert service._parse_gemini_stream_line(line) == "<name>X</name>"


def test_openai_payload(service):
    payload = service._build_openai_payload("gpt-4o", [], stream=True)

    assert payload["stream"] is True
    assert payload["temperature"] == 0.0


def test_gemini_thinking_budget_for_25_models():
    service = LLMService({"provider": "gemini", "gemini": {"model": "gemini-2.5-flash"}})

    payload = service._build_gemini_payload("hi")

    assert payload["generationConfig"]["thinkingConfig"] == {"thinkingBudget": 8192}


@pytest.mark.asyncio
async def test_missing_api_key_raises_when_streaming(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = LLMService({"provider": "openai", "openai": {"apiKey": ""}})

    with pytest.raises(ValueError, match="OpenAI API key not configured"):
        async for _ in service.generate_response_stream("hi"):
            pass


@pytest.mark.asyncio
async def test_unsupported_provider_raises():
    service = LLMService({"provider": "mystery"})

    with pytest.raises(ValueError, match="Unsupported provider"):
        async for _ in service.generate_response_stream("hi"):
            pass


@pytest.mark.asyncio
async def test_call_llm_stream_builds_service_from_config():
    with pytest.raises(ValueError, match="Unsupported provider"):
        async for _ in call_llm_stream("hi", {"provider": "mystery"}):
            pass


@pytest.mark.asyncio
async def test_api_errors_are_not_retried(service):
    calls = []

    async def failing():
        calls.append(1)
        raise Exception("OpenAI API error: bad request")

    with pytest.raises(Exception, match="API error"):
        await service._retry_with_backoff(failing)

    assert len(calls) == 1
