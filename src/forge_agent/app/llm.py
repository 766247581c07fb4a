from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Protocol
from urllib import error, request

from forge_agent.config.settings import Settings

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504})


class MissingCredentialError(RuntimeError):
    """Raised when a model call is requested without an API key configured."""


class ModelClient(Protocol):
    """Single request/response call to a language model."""

    async def send(self, prompt: str, credential: str) -> str | None: ...


class OpenAIChatCompletionsClient:
    """Small OpenAI client using the chat completions REST API.

    The blocking HTTP call runs in a worker thread so several interactions can
    wait on the model concurrently. Any failure is logged and reported as None.
    """

    def __init__(
        self,
        *,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        system_prompt: str = "You are a helpful assistant for project asset management.",
        temperature: float = 0.7,
        timeout_s: float = 60.0,
        max_retries: int = 0,
        backoff_s: float = 0.5,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)

    async def send(self, prompt: str, credential: str) -> str | None:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
        }
        try:
            response_json = await asyncio.to_thread(self._request_with_retry, payload, credential)
            content = self._extract_content(response_json)
        except Exception as exc:  # noqa: BLE001
            logger.warning("model_call event=failed model=%s reason=%s", self.model, exc)
            return None
        if content is None:
            logger.warning("model_call event=empty_content model=%s", self.model)
        return content

    def _request_with_retry(self, payload: dict[str, Any], credential: str) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request(payload, credential)
            except (TimeoutError, error.URLError) as exc:
                # Only transient HTTP statuses are retried.
                if isinstance(exc, error.HTTPError) and exc.code not in _RETRYABLE_STATUS:
                    raise
                last_error = exc
                logger.warning(
                    "model_call event=retry attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    self.model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s * (attempt + 1))
        if last_error is None:
            raise RuntimeError("LLM request failed with unknown error")
        raise last_error

    def _request(self, payload: dict[str, Any], credential: str) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        raw_payload = json.dumps(payload).encode("utf-8")
        req = request.Request(
            url=url,
            data=raw_payload,
            method="POST",
            headers={
                "Authorization": f"Bearer {credential}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise error.HTTPError(
                exc.url,
                exc.code,
                f"OpenAI API request failed: {raw_error}",
                exc.headers,
                exc.fp,
            ) from exc
        return json.loads(body)

    @staticmethod
    def _extract_content(response_json: dict[str, Any]) -> str | None:
        """Return the first choice's text, or None when the model sent nothing usable."""
        choices = response_json.get("choices") or []
        if not choices:
            return None

        message = choices[0].get("message") or {}
        content = message.get("content", "")
        if isinstance(content, str) and content.strip():
            return content
        if isinstance(content, list):
            text_segments: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    text = item.get("text")
                    if isinstance(text, str):
                        text_segments.append(text)
            merged = "".join(text_segments).strip()
            if merged:
                return merged
        return None


def build_model_client(settings: Settings) -> ModelClient:
    provider = settings.llm_provider.strip().lower()
    if provider != "openai":
        raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}")
    return OpenAIChatCompletionsClient(
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        system_prompt=settings.llm_system_prompt,
        temperature=settings.llm_temperature,
        timeout_s=settings.llm_timeout_s,
        max_retries=settings.llm_max_retries,
        backoff_s=settings.llm_backoff_s,
    )
