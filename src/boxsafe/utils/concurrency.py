"""Cooperative cancellation primitives shared by the loop, executor and scorer."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


async def await_unless_cancelled(
    awaitable: Awaitable[T],
    cancel_token: CancellationToken | None,
) -> T:
    """Await ``awaitable`` but abandon it with ``CancelledError`` once the token fires.

    Used around model generation, which has no natural termination signal of its own.
    """
    if cancel_token is None:
        return await awaitable

    cancel_token.raise_if_cancelled()
    task: asyncio.Task[T] = asyncio.ensure_future(awaitable)
    cancel_wait_task = asyncio.create_task(cancel_token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        if task in done:
            return task.result()
        raise asyncio.CancelledError("operation cancelled")
    finally:
        if not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


__all__ = [
    "CancellationToken",
    "await_unless_cancelled",
]
