"""In-process publish/subscribe bus with typed channels."""

from __future__ import annotations

import inspect
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from devlink.errors import SubscriptionError
from devlink.models import MachineStateEvent, MachineStatusChanged, WorkspaceAgentEvent

logger = logging.getLogger(__name__)

E = TypeVar("E")

Handler = Callable[[E], Awaitable[None] | None]


@dataclass(frozen=True)
class Channel(Generic[E]):
    name: str
    event_type: type[E]


MACHINE_STATUS: Channel[MachineStatusChanged] = Channel(
    "machine.status.changed", MachineStatusChanged
)
MACHINE_STATE: Channel[MachineStateEvent] = Channel("machine.state", MachineStateEvent)
AGENT_STATE: Channel[WorkspaceAgentEvent] = Channel(
    "workspace.agent.state", WorkspaceAgentEvent
)


class EventBus:
    """Delivers events to subscribers of a channel.

    ``publish`` awaits each subscriber in subscription order, so a publisher
    resumes only after every handler (and whatever it awaited) has finished.
    A failing handler is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, tuple[str, Handler[Any]]] = {}
        self._channel_index: dict[str, list[str]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, channel: Channel[E], handler: Handler[E]) -> str:
        if self._closed:
            raise SubscriptionError(f"Cannot subscribe to '{channel.name}': bus is closed")
        sub_id = str(uuid.uuid4())
        self._subscribers[sub_id] = (channel.name, handler)
        self._channel_index.setdefault(channel.name, []).append(sub_id)
        return sub_id

    def unsubscribe(self, sub_id: str) -> None:
        name, _ = self._subscribers.pop(sub_id, (None, None))
        if name and name in self._channel_index:
            self._channel_index[name].remove(sub_id)
            if not self._channel_index[name]:
                self._channel_index.pop(name, None)

    def subscriber_count(self, channel: Channel[Any]) -> int:
        return len(self._channel_index.get(channel.name, ()))

    async def publish(self, channel: Channel[E], event: E) -> None:
        if not isinstance(event, channel.event_type):
            raise TypeError(
                f"Channel '{channel.name}' carries {channel.event_type.__name__}, "
                f"got {type(event).__name__}"
            )
        for handler in self._copy_handlers(channel.name):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error("Handler error on %s: %s", channel.name, exc, exc_info=True)

    def close(self) -> None:
        self._closed = True
        self._subscribers.clear()
        self._channel_index.clear()

    def _copy_handlers(self, name: str) -> list[Handler[Any]]:
        sub_ids = list(self._channel_index.get(name, ()))
        return [self._subscribers[sid][1] for sid in sub_ids if sid in self._subscribers]
