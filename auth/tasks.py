"""
auth/tasks.py -- Invalidatable handles for async work owned by a component.

A component (SessionManager, an OTP flow) opens a TaskScope for its lifetime.
Each async operation takes a TaskHandle before its first await and checks
handle.valid before applying results. teardown() closes the scope, which
invalidates every outstanding handle: in-flight requests still finish, but
their results are dropped instead of being applied to a dead component.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

T = TypeVar("T")


class TaskHandle:
    def __init__(self, scope: "TaskScope") -> None:
        self._scope = scope
        self._valid = True
        self.task: Optional[asyncio.Task] = None

    @property
    def valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        self._valid = False

    def release(self) -> None:
        self._scope._handles.discard(self)


class TaskScope:
    def __init__(self) -> None:
        self._handles: set[TaskHandle] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def handle(self) -> TaskHandle:
        """Take a handle for an operation about to start.

        A handle taken from a closed scope is born invalid.
        """
        h = TaskHandle(self)
        if self._closed:
            h.invalidate()
        else:
            self._handles.add(h)
        return h

    def spawn(self, fn: Callable[[TaskHandle], Awaitable[T]]) -> TaskHandle:
        """Run fn(handle) as a background task. Must be called inside a running loop."""
        h = self.handle()

        async def runner() -> T:
            try:
                return await fn(h)
            finally:
                h.release()

        h.task = asyncio.get_running_loop().create_task(runner())
        return h

    @property
    def pending(self) -> int:
        return len(self._handles)

    def close(self) -> None:
        self._closed = True
        for h in list(self._handles):
            h.invalidate()
        self._handles.clear()
