from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, TypeVar

from core.errors import RequestCancelled

T = TypeVar("T")


class SessionKind(str, Enum):
    PRIMARY = "primary"
    DEBUG = "debug"


class CancellationToken:
    """
    Cooperative cancellation handle for one pipeline run.

    The generation number identifies the run within its session kind so that
    completion handlers can tell whether they still own the session.
    """

    def __init__(self, kind: SessionKind, generation: int) -> None:
        self.kind = kind
        self.generation = generation
        self._event = asyncio.Event()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"CancellationToken({self.kind.value}#{self.generation}, {state})"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelled(
                f"{self.kind.value} request #{self.generation} was cancelled"
            )

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        When the token fires the request task is cancelled and
        RequestCancelled is raised in its place.
        """
        self.raise_if_cancelled()
        request = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not request.done():
                request.cancel()

        if request.cancelled() or not request.done():
            self.raise_if_cancelled()
            raise RequestCancelled()
        return request.result()
