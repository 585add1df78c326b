"""
LLM Service - Handles interactions with different LLM providers

Each instance is built from an explicit config dict; there is no shared
model state between requests.
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import aiohttp

OPENAI_KEY_ENV = "OPENAI_API_KEY"
GEMINI_KEY_ENV = "GEMINI_API_KEY"


class LLMService:
    """Service for interacting with various LLM providers"""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        self.provider = config.get("provider", "openai")

    # ========== Config Helpers ==========

    def _get_gemini_config(self) -> tuple[str, str]:
        """Get Gemini config: (api_key, base_url). Raises if api_key missing."""
        cfg = self.config.get("gemini", {})
        api_key = cfg.get("apiKey") or os.environ.get(GEMINI_KEY_ENV)
        if not api_key:
            raise ValueError("Gemini API key not configured")
        model = cfg.get("model", "gemini-2.5-flash")
        base_url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}"
        return api_key, base_url

    def _get_openai_config(self) -> tuple[str, str, dict[str, str]]:
        """Get OpenAI config: (model, url, headers). Raises if api_key missing."""
        cfg = self.config.get("openai", {})
        api_key = cfg.get("apiKey") or os.environ.get(OPENAI_KEY_ENV)
        if not api_key:
            raise ValueError("OpenAI API key not configured")
        model = cfg.get("model", "gpt-4o")
        url = "https://api.openai.com/v1/chat/completions"
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return model, url, headers

    def _get_vllm_config(self) -> tuple[str, str, dict[str, str]]:
        """Get vLLM config: (model, url, headers)."""
        cfg = self.config.get("vllm", {})
        endpoint = cfg.get("endpoint", "http://localhost:8000")
        model = cfg.get("model", "default")
        url = f"{endpoint}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        if cfg.get("apiKey"):
            headers["Authorization"] = f"Bearer {cfg['apiKey']}"
        return model, url, headers

    # ========== Message/Payload Builders ==========

    def _build_prompt(self, prompt: str, context: str | None = None, system_prompt: str | None = None) -> str:
        """Build a single-text prompt for providers without chat roles"""
        parts = []
        if system_prompt:
            parts.append(system_prompt)
        if context:
            parts.append(f"Context:\n{context}")
        parts.append(f"User Request:\n{prompt}" if parts else prompt)
        return "\n\n".join(parts)

    def _build_openai_messages(
        self, prompt: str, context: str | None = None, system_prompt: str | None = None
    ) -> list:
        """Build OpenAI-style messages array"""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if context:
            messages.append({"role": "system", "content": f"Context:\n{context}"})
        messages.append({"role": "user", "content": prompt})
        return messages

    async def _retry_with_backoff(self, operation, max_retries: int = 3):
        """Execute operation with exponential backoff retry logic"""
        for attempt in range(max_retries):
            try:
                return await operation()
            except asyncio.TimeoutError:
                if attempt < max_retries - 1:
                    wait_time = (2**attempt) * 3
                    print(
                        f"[LLMService] Request timeout. Retrying in {wait_time}s... "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise Exception(f"Request timeout after {max_retries} retries")
            except Exception as e:
                error_msg = str(e)
                # Rate limit (429)
                if "rate limit" in error_msg.lower() or "(429)" in error_msg:
                    if attempt < max_retries - 1:
                        wait_time = 40 + (attempt * 20)
                        print(
                            f"[LLMService] Rate limit hit. Waiting {wait_time}s before retry... "
                            f"(attempt {attempt + 1}/{max_retries})"
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    raise Exception(
                        f"Rate limit exceeded after {max_retries} retries. "
                        "Please wait a minute and try again."
                    )
                # Server overloaded (503)
                if "overloaded" in error_msg.lower() or "(503)" in error_msg:
                    if attempt < max_retries - 1:
                        wait_time = (2**attempt) * 5
                        print(
                            f"[LLMService] Server overloaded. Retrying in {wait_time}s... "
                            f"(attempt {attempt + 1}/{max_retries})"
                        )
                        await asyncio.sleep(wait_time)
                        continue
                    raise
                # Configuration and API errors are not retried
                if isinstance(e, ValueError) or "API error" in error_msg:
                    raise
                # Network errors - retry
                if attempt < max_retries - 1:
                    wait_time = (2**attempt) * 2
                    print(
                        f"[LLMService] Network error: {e}. Retrying in {wait_time}s... "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise

    @asynccontextmanager
    async def _request(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout_seconds: int = 60,
        provider: str = "API",
    ):
        """Context manager for HTTP POST requests with automatic session cleanup"""
        timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status == 429:
                    raise Exception(f"{provider} API rate limit (429): {await response.text()}")
                if response.status == 503:
                    raise Exception(f"{provider} API overloaded (503): {await response.text()}")
                if response.status != 200:
                    error_text = await response.text()
                    print(f"[LLMService] {provider} API Error: {error_text}")
                    raise Exception(f"{provider} API error: {error_text}")
                yield response

    async def _request_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        provider: str = "API",
    ) -> dict[str, Any]:
        """Make request (with retries) and return JSON response"""

        async def _execute_request():
            async with self._request(url, payload, headers, provider=provider) as response:
                return await response.json()

        return await self._retry_with_backoff(_execute_request)

    async def _stream_response(
        self, url: str, payload: dict[str, Any], headers: dict[str, str] | None, provider: str, line_parser
    ) -> AsyncIterator[str]:
        """Stream response and yield parsed content"""
        async with self._request(url, payload, headers, timeout_seconds=120, provider=provider) as response:
            async for line in response.content:
                line_text = line.decode("utf-8").strip()
                content = line_parser(line_text)
                if content:
                    yield content

    # ========== Response Parsers ==========

    def _parse_openai_response(self, data: dict[str, Any]) -> str:
        """Parse OpenAI-compatible response format"""
        if "choices" in data and len(data["choices"]) > 0:
            choice = data["choices"][0]
            if "message" in choice and "content" in choice["message"]:
                return choice["message"]["content"]
            elif "text" in choice:
                return choice["text"]
        raise Exception("No valid response from API")

    def _extract_gemini_text(self, data: dict[str, Any]) -> str | None:
        """Extract text from Gemini response data"""
        if "candidates" in data and len(data["candidates"]) > 0:
            candidate = data["candidates"][0]
            if "content" in candidate and "parts" in candidate["content"]:
                parts = candidate["content"]["parts"]
                if len(parts) > 0 and "text" in parts[0]:
                    return parts[0]["text"]
        return None

    def _parse_gemini_response(self, data: dict[str, Any]) -> str:
        """Parse Gemini API response format"""
        text = self._extract_gemini_text(data)
        if text is not None:
            return text
        raise Exception("No valid response from Gemini API")

    def _parse_sse_line(self, line_text: str, extractor) -> str | None:
        """Parse SSE line with given extractor function"""
        if not line_text.startswith("data: "):
            return None
        data_str = line_text[6:]
        if data_str == "[DONE]":
            return None
        try:
            data = json.loads(data_str)
            return extractor(data)
        except json.JSONDecodeError:
            return None

    def _extract_openai_delta(self, data: dict[str, Any]) -> str | None:
        """Extract content delta from OpenAI stream data"""
        if "choices" in data and len(data["choices"]) > 0:
            delta = data["choices"][0].get("delta", {})
            return delta.get("content", "") or None
        return None

    def _parse_openai_stream_line(self, line_text: str) -> str | None:
        return self._parse_sse_line(line_text, self._extract_openai_delta)

    def _parse_gemini_stream_line(self, line_text: str) -> str | None:
        return self._parse_sse_line(line_text, self._extract_gemini_text)

    def _build_openai_payload(
        self,
        model: str,
        messages: list,
        max_tokens: int = 8192,
        temperature: float = 0.0,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Build OpenAI-compatible request payload"""
        return {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": stream,
        }

    def _build_gemini_payload(self, prompt: str, max_output_tokens: int = 32768) -> dict[str, Any]:
        """Build Gemini API request payload"""
        cfg = self.config.get("gemini", {})
        model = cfg.get("model", "gemini-2.5-flash")

        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": cfg.get("temperature", 0.0),
                "topK": 1,
                "topP": 0.95,
                "maxOutputTokens": max_output_tokens,
            },
        }

        # Gemini 2.5 models have built-in "thinking"
        if "2.5" in model or "2-5" in model:
            payload["generationConfig"]["thinkingConfig"] = {"thinkingBudget": 8192}

        return payload

    # ========== Public API ==========

    async def generate_response_stream(
        self, prompt: str, context: str | None = None, system_prompt: str | None = None
    ) -> AsyncIterator[str]:
        """Generate a streaming response from the configured LLM provider"""
        if self.provider == "gemini":
            stream = self._call_gemini_stream(prompt, context, system_prompt)
        elif self.provider == "vllm":
            stream = self._call_openai_compatible_stream(self._get_vllm_config(), "vLLM", prompt, context, system_prompt)
        elif self.provider == "openai":
            stream = self._call_openai_compatible_stream(
                self._get_openai_config(), "OpenAI", prompt, context, system_prompt
            )
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

        async for chunk in stream:
            yield chunk

    async def generate_response(
        self, prompt: str, context: str | None = None, system_prompt: str | None = None
    ) -> str:
        """Generate a response from the configured LLM provider"""
        if self.provider == "gemini":
            api_key, base_url = self._get_gemini_config()
            url = f"{base_url}:generateContent?key={api_key}"
            payload = self._build_gemini_payload(self._build_prompt(prompt, context, system_prompt))
            data = await self._request_json(url, payload, provider="Gemini")
            return self._parse_gemini_response(data)
        elif self.provider in ("vllm", "openai"):
            if self.provider == "vllm":
                model, url, headers = self._get_vllm_config()
                provider = "vLLM"
            else:
                model, url, headers = self._get_openai_config()
                provider = "OpenAI"
            messages = self._build_openai_messages(prompt, context, system_prompt)
            payload = self._build_openai_payload(model, messages, stream=False)
            data = await self._request_json(url, payload, headers, provider=provider)
            return self._parse_openai_response(data)
        else:
            raise ValueError(f"Unsupported provider: {self.provider}")

    async def _call_gemini_stream(
        self, prompt: str, context: str | None = None, system_prompt: str | None = None
    ) -> AsyncIterator[str]:
        """Call Google Gemini API with streaming"""
        api_key, base_url = self._get_gemini_config()
        url = f"{base_url}:streamGenerateContent?key={api_key}&alt=sse"
        payload = self._build_gemini_payload(self._build_prompt(prompt, context, system_prompt))

        async for content in self._stream_response(url, payload, None, "Gemini", self._parse_gemini_stream_line):
            yield content

    async def _call_openai_compatible_stream(
        self,
        provider_config: tuple[str, str, dict[str, str]],
        provider: str,
        prompt: str,
        context: str | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[str]:
        """Call an OpenAI-compatible chat completions endpoint with streaming"""
        model, url, headers = provider_config
        messages = self._build_openai_messages(prompt, context, system_prompt)
        payload = self._build_openai_payload(model, messages, stream=True)

        async for content in self._stream_response(url, payload, headers, provider, self._parse_openai_stream_line):
            yield content


async def call_llm_stream(
    prompt: str, config: dict[str, Any], context: str | None = None, system_prompt: str | None = None
) -> AsyncIterator[str]:
    """Convenience function to stream LLM response with the given config."""
    service = LLMService(config)
    async for chunk in service.generate_response_stream(prompt, context, system_prompt):
        yield chunk
