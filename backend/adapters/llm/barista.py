"""Barista assistant adapter over the OpenAI chat completions API."""
from __future__ import annotations

import asyncio
from typing import Any

from openai import APIError, AsyncOpenAI

from adapters.llm.base import AssistantAdapter
from observability.logger import log_event, now_ms
from orchestrator.retry import (
    FailureType,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)
from spec import ASSISTANT_NO_KEY_MESSAGE, ASSISTANT_REQUEST_TIMEOUT_S


class BaristaAdapter(AssistantAdapter):
    """
    Concrete assistant adapter.

    Design notes:
    - One request per reply, non-streaming (replies are one sentence).
    - Init failures and timeouts are retried per orchestrator.retry.
    - Without a client (no API key configured) every reply is the
      fixed "key required" line.
    """

    def __init__(
        self,
        *,
        client: Any | None,  # Type: openai.AsyncOpenAI
        model: str,
        provider: str = "openai",
        instance_id: str | None = None,
        timeout_s: float = ASSISTANT_REQUEST_TIMEOUT_S,
    ) -> None:
        self._client = client
        self._model = model
        self._provider = provider
        self._instance_id = instance_id
        self._timeout_s = timeout_s

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def reply(
        self,
        *,
        messages: list[dict[str, str]],
        fallback: str | None,
        empty_fallback: str,
    ) -> str | None:
        if self._client is None:
            return ASSISTANT_NO_KEY_MESSAGE

        attempt = reset_attempt()
        while True:
            failure: FailureType
            error: BaseException | None = None
            try:
                text = await asyncio.wait_for(
                    self._complete(messages), timeout=self._timeout_s
                )
            except asyncio.TimeoutError:
                failure = FailureType.TIMEOUT
            except (APIError, OSError) as exc:
                failure = FailureType.INIT_ERROR
                error = exc
            else:
                if text:
                    return text
                failure = FailureType.EMPTY_REPLY

            self._log_failure(failure, attempt.attempt, error)

            if not should_retry(failure=failure, attempt=attempt):
                return empty_fallback if failure is FailureType.EMPTY_REPLY else fallback

            await asyncio.sleep(get_retry_delay_ms() / 1000.0)
            attempt = next_attempt(attempt)

    async def _complete(self, messages: list[dict[str, str]]) -> str:
        resp = await self._client.chat.completions.create(  # type: ignore[union-attr]
            model=self._model,
            messages=messages,
        )
        if not resp.choices:
            return ""
        content = resp.choices[0].message.content
        return (content or "").strip()

    def _log_failure(
        self, failure: FailureType, attempt: int, exc: BaseException | None
    ) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "assistant_request_failed",
            "instance_id": self._instance_id,
            "provider": self._provider,
            "failure": failure.value,
            "attempt": attempt,
            "exception": type(exc).__name__ if exc else None,
            "message": str(exc) if exc else None,
        })


def build_llm_client(*, provider: str, api_key: str | None) -> AsyncOpenAI | None:
    """Build an LLM client for the provider, or None if no key is set."""
    if not api_key:
        return None
    if provider.lower() == "groq":
        return AsyncOpenAI(
            api_key=api_key,
            base_url="https://api.groq.com/openai/v1",
        )
    return AsyncOpenAI(api_key=api_key)
