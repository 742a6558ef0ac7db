"""Model providers and the factory selecting one from ``[model]`` settings."""

from __future__ import annotations

from collections.abc import Mapping

from boxsafe.config.settings import ModelSettings
from boxsafe.synthesis_plane.providers.base import (
    ModelProvider,
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    is_retryable_error,
)
from boxsafe.synthesis_plane.providers.mock import ScriptedProvider, mock_response
from boxsafe.synthesis_plane.providers.openai_adapter import OpenAIProvider

SUPPORTED_PROVIDERS: tuple[str, ...] = ("mock", "openai")


def create_provider(
    settings: ModelSettings,
    *,
    language: str = "sh",
    environ: Mapping[str, str] | None = None,
) -> ModelProvider:
    name = settings.provider.strip().lower()
    if name == "mock":
        return ScriptedProvider(language=language)
    if name == "openai":
        return OpenAIProvider(
            model=settings.name,
            api_key_env=settings.api_key_env,
            environ=environ,
        )
    raise ProviderUnavailableError(f"unknown provider: {settings.provider}", provider=name or "?")


__all__ = [
    "SUPPORTED_PROVIDERS",
    "ModelProvider",
    "OpenAIProvider",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ScriptedProvider",
    "create_provider",
    "is_retryable_error",
    "mock_response",
]
