"""
boxsafe — OpenAI provider adapter

File: src/boxsafe/synthesis_plane/providers/openai_adapter.py

Purpose
- Generate responses through the OpenAI Responses API.

Functional requirements
- The ``openai`` SDK is an optional dependency (extra ``providers``), imported only when
  the first request is made; an injected client skips the import.
- The API key comes from the configured environment variable.
- Transient failures are retried with bounded backoff; everything else becomes a
  ``ProviderError`` subclass.
"""

from __future__ import annotations

import asyncio
import importlib
import os
import time
from collections.abc import Mapping, Sequence
from typing import Protocol, cast

import structlog

from boxsafe.synthesis_plane.providers.base import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    is_retryable_error,
)
from boxsafe.utils.retry import RetryPolicy, SleepFn, run_with_retries

_logger = structlog.get_logger(__name__)


class _OpenAIResponsesAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _OpenAIClient(Protocol):
    responses: _OpenAIResponsesAPI


class OpenAIProvider:
    """OpenAI responses adapter with optional SDK dependency and injected client support."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        model: str,
        api_key_env: str = "OPENAI_API_KEY",
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        if not model.strip():
            raise ValueError("model cannot be empty")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.model = model.strip()
        self._api_key_env = api_key_env
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._client = client
        self._retry_policy = (
            retry_policy
            if retry_policy is not None
            else RetryPolicy(max_attempts=3, initial_delay_seconds=1.0, max_delay_seconds=8.0)
        )
        self._sleep = sleep
        self._environ = environ

    async def generate(self, prompt: str) -> str:
        client = self._ensure_client()

        async def operation() -> str:
            started = time.perf_counter()
            try:
                raw = await client.responses.create(model=self.model, input=prompt)
            except Exception as exc:
                raise self._map_exception(exc) from exc
            text = _extract_output_text(raw)
            _logger.info(
                "provider_response_received",
                provider=self.provider_name,
                model=self.model,
                latency_ms=int((time.perf_counter() - started) * 1000),
                length=len(text),
            )
            return text

        return await run_with_retries(
            operation,
            policy=self._retry_policy,
            retryable=is_retryable_error,
            sleep=self._sleep,
            operation_name="openai_generate",
        )

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is None:
            self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        api_key = self._resolve_api_key()
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK is not installed (pip install 'boxsafe[providers]')",
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK does not expose AsyncOpenAI",
            )

        init_kwargs: dict[str, object] = {"api_key": api_key}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        env = os.environ if self._environ is None else self._environ
        configured = env.get(self._api_key_env, "")
        if not configured.strip():
            raise ProviderAuthenticationError(
                provider=self.provider_name,
                detail=f"missing OpenAI API key in configured env var {self._api_key_env}",
                http_status=401,
            )
        return configured.strip()

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc

        status_code = _read_status_code(exc)
        class_name = exc.__class__.__name__.lower()
        detail = _exception_detail(exc)

        if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
            return ProviderAuthenticationError(
                provider=self.provider_name, detail=detail, http_status=status_code
            )
        if status_code == 429 or "ratelimit" in class_name:
            return ProviderRateLimitError(
                provider=self.provider_name, detail=detail, http_status=status_code
            )
        if isinstance(exc, TimeoutError) or "timeout" in class_name:
            return ProviderTimeoutError(provider=self.provider_name, detail=detail)
        if status_code is not None and 400 <= status_code < 500:
            return ProviderServiceError(
                provider=self.provider_name,
                detail=detail,
                retryable=False,
                http_status=status_code,
            )
        return ProviderServiceError(
            provider=self.provider_name,
            detail=detail,
            retryable=True,
            http_status=status_code,
        )


def _extract_output_text(raw_response: object) -> str:
    direct = _read_str(raw_response, "output_text")
    if direct:
        return direct

    chunks: list[str] = []
    for item in _read_sequence(raw_response, "output"):
        if (_read_str(item, "type") or "").lower() != "message":
            continue
        for part in _read_sequence(item, "content"):
            if (_read_str(part, "type") or "").lower() in {"output_text", "text"}:
                text = _read_str(part, "text")
                if text:
                    chunks.append(text)
    combined = "\n".join(chunks)
    if not combined.strip():
        raise ProviderResponseError(provider="openai", detail="response does not contain text")
    return combined


def _exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def _read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int):
            return nested
    return None


def _read_value(value: object, key: str) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key))
    return cast("object | None", getattr(value, key, None))


def _read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = _read_value(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


def _read_str(value: object, key: str) -> str | None:
    candidate = _read_value(value, key)
    if isinstance(candidate, str) and candidate.strip():
        return candidate
    return None


__all__ = ["OpenAIProvider"]
