# lead_enricher/services/ai/gemini_client.py
"""
Gemini API client for JSON-producing prompts.

Sends one generateContent request per attempt with a hard timeout, retries
overloaded (503) and network failures with backoff, and falls back once to
the alternate model when the primary is overloaded, rate limited, or
unreachable after every retry.

Per logical request:
    Attempting(n) -> Success
                  -> RetryScheduled(n+1) -> Attempting(n+1)      n < 3
                  -> FallbackScheduled(other) -> Attempting(0)   once
                  -> Failed(kind)
"""

import asyncio
import json
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from lead_enricher.config import settings
from lead_enricher.errors import (
    EmptyResponse,
    GeminiApiError,
    GeminiNetworkError,
    InvalidResponseFormat,
)
from lead_enricher.infrastructure.observability.logging import get_logger, log_ai_call
from lead_enricher.services.ai.models import MAX_RETRIES, RETRY_DELAYS_MS, fallback_model
from lead_enricher.services.ai.rate_limiter import RateLimiter, rate_limiter

logger = get_logger(__name__)

FALLBACK_STATUS_CODES = {429, 503}
OVERLOADED_STATUS = 503

_FENCE_START = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_END = re.compile(r"\s*```\s*$")

NETWORK_ERRORS = (httpx.TransportError, asyncio.TimeoutError)


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json / ``` marker and a trailing ``` marker."""
    return _FENCE_END.sub("", _FENCE_START.sub("", text)).strip()


def extract_text(data: Any) -> str:
    """Pull the first candidate's first part text out of a response body."""
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not candidates:
        logger.error("No candidates in Gemini response")
        raise EmptyResponse()

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        logger.error("No content parts in Gemini candidate")
        raise EmptyResponse()

    text = parts[0].get("text") if isinstance(parts[0], dict) else None
    if not isinstance(text, str) or not text.strip():
        logger.error("Empty text content in Gemini response part")
        raise EmptyResponse()

    return text


class GeminiClient:
    """
    Client for Gemini generateContent with retry and model fallback.

    Successful calls (a parseable JSON answer) are reported to the rate
    limiter's usage accounting against the model that actually answered.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.rate_limiter = rate_limiter
        self.http_client = http_client
        self.sleep = sleep
        self.base_url = (base_url or settings.GEMINI_API_BASE_URL).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.GEMINI_TIMEOUT_SECONDS

    def _build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": settings.gemini_config(),
        }

    async def _post(self, url: str, api_key: str, body: dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        params = {"key": api_key}
        if self.http_client is not None:
            return await self.http_client.post(url, params=params, json=body, headers=headers)

        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, params=params, json=body, headers=headers)

    async def _attempt(self, prompt: str, api_key: str, model: str) -> Any:
        """Run one request. wait_for is the absolute deadline for connect, send and read."""
        url = f"{self.base_url}/{model}:generateContent"
        response = await asyncio.wait_for(
            self._post(url, api_key, self._build_request_body(prompt)),
            timeout=self.timeout_seconds,
        )

        if not response.is_success:
            logger.error(
                "Gemini API error", model=model, status=response.status_code, body=response.text[:500]
            )
            raise GeminiApiError(response.status_code, response.text[:500])

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponseFormat() from e

        cleaned = strip_code_fence(extract_text(data))

        try:
            return json.loads(cleaned)
        except json.JSONDecodeError as e:
            logger.error(
                "Could not parse Gemini JSON response", model=model, raw_result=cleaned[:500]
            )
            raise InvalidResponseFormat() from e

    async def _backoff(self, model: str, attempt: int, reason: str) -> None:
        delay_ms = RETRY_DELAYS_MS[attempt]
        logger.warning(
            "Retrying Gemini call",
            model=model,
            reason=reason,
            delay_ms=delay_ms,
            attempt=attempt + 1,
            max_retries=MAX_RETRIES,
        )
        await self.sleep(delay_ms / 1000)

    async def call(self, prompt: str, api_key: str, model: str | None = None, attempt: int = 0) -> Any:
        """
        Send prompt to Gemini and return the parsed JSON answer.

        Args:
            prompt: Full prompt text
            api_key: Gemini API key
            model: Model identifier (defaults to GEMINI_DEFAULT_MODEL)
            attempt: Starting retry index

        Raises:
            GeminiApiError: Non-success status that is not retried
            EmptyResponse: Response carried no text
            InvalidResponseFormat: Text was not valid JSON
            GeminiNetworkError: Transport failures exhausted retries and fallback
        """
        model = model or settings.GEMINI_DEFAULT_MODEL
        fallback_used = False

        while True:
            if not 0 <= attempt <= MAX_RETRIES:
                raise ValueError(f"attempt must be within 0..{MAX_RETRIES}, got {attempt}")

            logger.info(
                "Calling Gemini API", model=model, attempt=attempt + 1, max_attempts=MAX_RETRIES + 1
            )
            started = time.monotonic()

            try:
                result = await self._attempt(prompt, api_key, model)

            except GeminiApiError as e:
                log_ai_call(model, attempt, "http_error", _elapsed_ms(started), error=str(e.status))

                if e.status == OVERLOADED_STATUS and attempt < MAX_RETRIES:
                    await self._backoff(model, attempt, reason="overloaded")
                    attempt += 1
                    continue

                if e.status in FALLBACK_STATUS_CODES and attempt == 0 and not fallback_used:
                    next_model = fallback_model(model)
                    logger.warning(
                        "Falling back to alternate model",
                        model=model,
                        fallback_model=next_model,
                        status=e.status,
                    )
                    model, attempt, fallback_used = next_model, 0, True
                    continue

                raise

            except NETWORK_ERRORS as e:
                is_timeout = isinstance(e, (asyncio.TimeoutError, httpx.TimeoutException))
                reason = "timeout" if is_timeout else "network error"
                log_ai_call(
                    model, attempt, reason, _elapsed_ms(started), error=str(e) or type(e).__name__
                )

                if attempt < MAX_RETRIES:
                    await self._backoff(model, attempt, reason=reason)
                    attempt += 1
                    continue

                if not fallback_used:
                    next_model = fallback_model(model)
                    logger.warning(
                        "All retries failed, attempting fallback model",
                        model=model,
                        fallback_model=next_model,
                    )
                    model, attempt, fallback_used = next_model, 0, True
                    continue

                raise GeminiNetworkError(f"Gemini unreachable after retries and fallback: {reason}") from e

            except (EmptyResponse, InvalidResponseFormat) as e:
                log_ai_call(model, attempt, "invalid_response", _elapsed_ms(started), error=str(e))
                raise

            log_ai_call(model, attempt, "success", _elapsed_ms(started))
            await self.rate_limiter.record_success(model)
            return result


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 1)


# Singleton instance for application use
gemini_client = GeminiClient(rate_limiter)


# Convenience functions for easy import
async def generate_json(prompt: str, api_key: str, model: str | None = None) -> Any:
    """Reserve a rate-limit slot and run a single free-form prompt."""
    model = model or settings.GEMINI_DEFAULT_MODEL
    await rate_limiter.acquire_slot(model)
    return await gemini_client.call(prompt, api_key, model)
