"""Change notifications for registry mutations."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    """What happened to a record."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class RegistryChange:
    """A single registry mutation."""

    entity: str  # "site", "story_folder" or "story_asset"
    kind: ChangeKind
    uuid: str


class Subscription:
    """Handle returned by ``EventChannel.subscribe``; call ``unsubscribe`` on teardown."""

    def __init__(self, channel: EventChannel, handler: Callable[..., object]) -> None:
        self._channel = channel
        self._handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        """Stop delivering changes to the handler. Safe to call more than once."""
        if self.active:
            self._channel._remove(self._handler)
            self.active = False


class EventChannel:
    """Delivers registry changes to registered handlers.

    Handlers may be plain functions or coroutine functions. A failing handler
    is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: list[Callable[[RegistryChange], Awaitable[None] | None]] = []

    def subscribe(
        self, handler: Callable[[RegistryChange], Awaitable[None] | None]
    ) -> Subscription:
        """Register a handler and return its subscription."""
        if handler not in self._handlers:
            self._handlers.append(handler)
        return Subscription(self, handler)

    def _remove(self, handler: Callable[..., object]) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, change: RegistryChange) -> None:
        """Deliver a change to every current handler."""
        for handler in list(self._handlers):
            try:
                result = handler(change)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Change handler failed for %s %s", change.entity, change.kind)

    def clear(self) -> None:
        """Drop all handlers."""
        self._handlers.clear()
