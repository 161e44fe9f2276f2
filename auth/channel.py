"""
auth/channel.py -- In-process "session changed" event channel.

Every tab of one origin shares a single SessionChannel. Storage writes are
published here; SessionManagers subscribe and re-hydrate when another tab
touches a session key. The channel knows nothing about storage, so it can be
swapped for another transport without touching its consumers.

Delivery is synchronous and in subscription order. A failing listener is
logged and does not stop delivery to the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("jobhub.auth.channel")


@dataclass(frozen=True)
class StorageEvent:
    """One storage mutation. new_value is None when the key was removed."""

    key: str
    old_value: Optional[str]
    new_value: Optional[str]
    source: str  # tab id of the writer


Listener = Callable[[StorageEvent], None]


class SessionChannel:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Session channel listener failed for key %s", event.key)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)
