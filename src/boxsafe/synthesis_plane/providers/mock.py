"""Offline provider replaying canned responses; the default for ``model.provider = "mock"``."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Final

import structlog

from boxsafe.constants import DEFAULT_SUCCESS_MARKER
from boxsafe.domain.languages import canonical_language
from boxsafe.synthesis_plane.providers.base import ProviderResponseError

_logger = structlog.get_logger(__name__)

_SUCCESS_SNIPPETS: Final[dict[str, str]] = {
    "py": f'print("{DEFAULT_SUCCESS_MARKER}")',
    "js": f'console.log("{DEFAULT_SUCCESS_MARKER}");',
    "ts": f'console.log("{DEFAULT_SUCCESS_MARKER}");',
    "rb": f'puts "{DEFAULT_SUCCESS_MARKER}"',
}
_FENCE_TAGS: Final[dict[str, str]] = {"py": "python", "sh": "bash"}

ResponseFn = Callable[[str, int], str]


def mock_response(language: str = "sh") -> str:
    """A single fenced block that prints the default success marker."""
    canonical = canonical_language(language)
    snippet = _SUCCESS_SNIPPETS.get(canonical)
    if snippet is None:
        return f'```bash\necho "{DEFAULT_SUCCESS_MARKER}"\n```'
    return f"```{_FENCE_TAGS.get(canonical, canonical)}\n{snippet}\n```"


class ScriptedProvider:
    """Returns ``responses`` in order, then keeps repeating the last one.

    A callable receives ``(prompt, call_index)`` instead. Every prompt is recorded.
    """

    provider_name = "mock"

    def __init__(
        self,
        responses: Sequence[str] | ResponseFn | None = None,
        *,
        language: str = "sh",
    ) -> None:
        if responses is None:
            responses = (mock_response(language),)
        if not callable(responses) and not responses:
            raise ValueError("responses must not be empty")
        self._responses = responses
        self._prompts: list[str] = []

    @property
    def prompts(self) -> tuple[str, ...]:
        return tuple(self._prompts)

    @property
    def calls(self) -> int:
        return len(self._prompts)

    async def generate(self, prompt: str) -> str:
        index = len(self._prompts)
        self._prompts.append(prompt)
        if callable(self._responses):
            response = self._responses(prompt, index)
        else:
            response = self._responses[min(index, len(self._responses) - 1)]
        if not isinstance(response, str):
            raise ProviderResponseError("scripted response must be text", provider="mock")
        _logger.debug("mock_response_served", call=index, length=len(response))
        return response


__all__ = ["ScriptedProvider", "mock_response"]
