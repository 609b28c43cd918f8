"""
Structured-output clients for the generation providers.

Both clients talk to the provider's REST API over httpx (no vendor SDKs) and
expose the same boundary:

    await client.generate(prompt, output_schema, images=None) -> dict

ClaudeClient also answers free-text conversations through ``chat``.

The output schema is appended to the prompt as an example JSON shape, and the
first JSON object found in the model's text is parsed and returned.

Failures are classified here, not by the caller:
- ProviderOverloadedError: HTTP 429/503/529, an overloaded/exhausted status in
  the error body, or this client's circuit breaker being open
- ProviderError: every other HTTP, timeout or parsing failure

Environment configuration:
- GOOGLE_GEMINI_API_KEY, GEMINI_MODEL, GEMINI_API_BASE
- ANTHROPIC_API_KEY, CLAUDE_MODEL, ANTHROPIC_API_BASE
- LLM_TIMEOUT_SECONDS (default 30)
"""
import asyncio
import json
import os
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from kupado.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from kupado.core.errors import ConfigurationError, ProviderError, ProviderOverloadedError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_provider_error

logger = get_logger(__name__)

OVERLOAD_STATUS_CODES = {429, 503, 529}
OVERLOAD_ERROR_MARKERS = ("overloaded", "rate_limit", "resource_exhausted", "unavailable")

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_DATA_URI = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL)


def build_structured_prompt(prompt: str, output_schema: Dict[str, Any]) -> str:
    schema = json.dumps(output_schema, ensure_ascii=False, indent=2)
    return f"{prompt}\n\nPlease respond with valid JSON that matches this schema:\n{schema}"


def extract_json_object(text: str, provider: str) -> Dict[str, Any]:
    """Parse the outermost ``{...}`` block of a model response."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ProviderError("No JSON found in response", provider=provider)
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Invalid JSON in response: {exc}", provider=provider) from exc
    if not isinstance(payload, dict):
        raise ProviderError("Response JSON is not an object", provider=provider)
    return payload


def _error_body_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or ""
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        parts = [str(error.get(k, "")) for k in ("type", "status", "message")]
        return " ".join(p for p in parts if p)
    return json.dumps(body)


class StructuredGenerator:
    """
    Base class for provider clients.

    Subclasses implement ``_build_request`` and ``_parse_text``; retries,
    circuit breaking and error classification live here.
    """

    provider = "generic"

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str],
        model: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 1,
        retry_backoff_seconds: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._transport = transport
        self._sleep = sleep
        self.circuit_breaker = CircuitBreaker(
            name=f"llm_{self.provider}",
            failure_threshold=0.5,
            time_window_seconds=60,
            open_duration_seconds=30,
        )

    def _build_request(self, prompt: str, images: List[str]) -> tuple[str, Dict[str, str], Dict[str, Any]]:
        raise NotImplementedError

    def _parse_text(self, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            try:
                response = await client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException as exc:
                record_provider_error(self.provider, "timeout")
                raise ProviderError(f"{self.provider} request timed out", provider=self.provider) from exc
            except httpx.HTTPError as exc:
                record_provider_error(self.provider, "http_error")
                raise ProviderError(f"{self.provider} request failed: {exc}", provider=self.provider) from exc

        if response.status_code >= 400:
            detail = _error_body_text(response)
            if response.status_code in OVERLOAD_STATUS_CODES or any(
                marker in detail.lower() for marker in OVERLOAD_ERROR_MARKERS
            ):
                record_provider_error(self.provider, "overloaded")
                raise ProviderOverloadedError(provider=self.provider, upstream_status=response.status_code)
            record_provider_error(self.provider, f"http_{response.status_code}")
            raise ProviderError(
                f"{self.provider} returned HTTP {response.status_code}: {detail}",
                provider=self.provider,
            )

        try:
            return response.json()
        except ValueError as exc:
            record_provider_error(self.provider, "invalid_body")
            raise ProviderError(f"{self.provider} returned a non-JSON body", provider=self.provider) from exc

    def _require_api_key(self) -> None:
        if not self.api_key:
            record_provider_error(self.provider, "missing_api_key")
            raise ConfigurationError(f"{self.provider} API key is not configured")

    async def generate_text(self, prompt: str, images: Optional[List[str]] = None) -> str:
        self._require_api_key()
        url, headers, payload = self._build_request(prompt, images or [])
        return await self._send(url, headers, payload)

    async def _send(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> str:
        """POST under the circuit breaker with this client's retry policy; returns the reply text."""
        last_error: Optional[ProviderError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                data = await self.circuit_breaker.call_async(self._post, url, headers, payload)
                return self._parse_text(data)
            except CircuitBreakerOpenError as exc:
                logger.warning("llm_circuit_open", provider=self.provider)
                raise ProviderOverloadedError(provider=self.provider) from exc
            except ProviderOverloadedError:
                raise
            except ProviderError as exc:
                last_error = exc
                logger.warning(
                    "llm_attempt_failed",
                    provider=self.provider,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=str(exc),
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.retry_backoff_seconds * attempt)

        assert last_error is not None
        raise last_error

    async def generate(
        self,
        prompt: str,
        output_schema: Dict[str, Any],
        images: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Generate a JSON object shaped like ``output_schema``."""
        text = await self.generate_text(build_structured_prompt(prompt, output_schema), images)
        try:
            return extract_json_object(text, self.provider)
        except ProviderError:
            record_provider_error(self.provider, "no_json")
            logger.warning("llm_invalid_json", provider=self.provider, raw=text[:500])
            raise


class GeminiClient(StructuredGenerator):
    """Google Gemini ``generateContent`` client."""

    provider = "gemini"

    generation_config = {
        "temperature": 0.7,
        "maxOutputTokens": 2048,
        "topP": 0.95,
        "topK": 40,
    }

    def _image_part(self, image: str) -> Dict[str, Any]:
        match = _DATA_URI.match(image)
        if match:
            return {"inline_data": {"mime_type": match.group(1), "data": match.group(2)}}
        return {"file_data": {"mime_type": "image/jpeg", "file_uri": image}}

    def _build_request(self, prompt, images):
        parts: List[Dict[str, Any]] = [self._image_part(image) for image in images]
        parts.append({"text": prompt})
        url = f"{self.api_base}/models/{self.model}:generateContent"
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key or ""}
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": dict(self.generation_config),
        }
        return url, headers, payload

    def _parse_text(self, data):
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError("Gemini returned no candidates", provider=self.provider)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        usage = data.get("usageMetadata") or {}
        logger.debug(
            "llm_usage",
            provider=self.provider,
            model=self.model,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
        )
        return "".join(part.get("text", "") for part in parts)


class ClaudeClient(StructuredGenerator):
    """Anthropic Messages API client."""

    provider = "claude"
    api_version = "2023-06-01"
    max_tokens = 1024
    temperature = 0.7

    def _image_block(self, image: str) -> Dict[str, Any]:
        if image.startswith(("http://", "https://")):
            return {"type": "image", "source": {"type": "url", "url": image}}
        match = _DATA_URI.match(image)
        media_type, data = (match.group(1), match.group(2)) if match else ("image/jpeg", image)
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}

    def _build_request(self, prompt, images):
        content: List[Dict[str, Any]] = [self._image_block(image) for image in images]
        content.append({"type": "text", "text": prompt})
        url = f"{self.api_base}/v1/messages"
        headers = {
            "Content-Type": "application/json",
            "x-api-key": self.api_key or "",
            "anthropic-version": self.api_version,
        }
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": content}],
        }
        return url, headers, payload

    async def chat(
        self,
        history: List[Dict[str, str]],
        message: str,
        system: Optional[str] = None,
    ) -> str:
        """
        Free-text reply to ``message`` given the earlier turns.

        Args:
            history: prior ``{"role": "user"|"assistant", "content": str}`` turns
            message: the new user turn
            system: optional system prompt
        """
        self._require_api_key()
        url, headers, payload = self._build_request(message, [])
        turns = [
            {"role": turn["role"], "content": turn["content"]}
            for turn in history
            if turn.get("role") in ("user", "assistant") and isinstance(turn.get("content"), str)
        ]
        payload["messages"] = turns + payload["messages"]
        if system:
            payload["system"] = system
        return await self._send(url, headers, payload)

    def _parse_text(self, data):
        blocks = data.get("content") or []
        text_blocks = [block.get("text", "") for block in blocks if block.get("type") == "text"]
        if not text_blocks:
            raise ProviderError("Unexpected response format from Claude", provider=self.provider)
        usage = data.get("usage") or {}
        logger.debug(
            "llm_usage",
            provider=self.provider,
            model=self.model,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )
        return "".join(text_blocks)


_providers: Optional[Dict[str, StructuredGenerator]] = None


def get_providers() -> Dict[str, StructuredGenerator]:
    """
    Process-wide provider clients keyed by provider name.

    A missing API key does not fail here; the client raises
    ConfigurationError on first use so unrelated routes keep working.
    """
    global _providers
    if _providers is None:
        timeout = float(os.getenv("LLM_TIMEOUT_SECONDS", "30") or "30")
        _providers = {
            "gemini": GeminiClient(
                api_base=os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"),
                api_key=os.getenv("GOOGLE_GEMINI_API_KEY"),
                model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash-exp"),
                timeout_seconds=timeout,
                max_attempts=3,
            ),
            "claude": ClaudeClient(
                api_base=os.getenv("ANTHROPIC_API_BASE", "https://api.anthropic.com"),
                api_key=os.getenv("ANTHROPIC_API_KEY"),
                model=os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514"),
                timeout_seconds=timeout,
                max_attempts=1,
            ),
        }
    return _providers
