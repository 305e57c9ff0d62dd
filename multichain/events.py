"""
Typed publish/subscribe for chain manager notifications.

Each :class:`EventName` is bound to exactly one payload model. Delivery is
synchronous and in subscription order; a failing handler is logged and does
not stop delivery to the remaining handlers.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Type, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict

from multichain.exceptions import NetworkErrorType
from multichain.models import ChainConfig


class EventName(str, Enum):
    CHAIN_CHANGED = "chainChanged"
    CHAIN_ADDED = "chainAdded"
    CHAIN_REMOVED = "chainRemoved"
    NETWORK_ERROR = "networkError"


class ChainChangedEvent(BaseModel):
    previous_chain_id: str
    current_chain_id: str
    chain_config: ChainConfig
    timestamp: int
    reason: Literal["user", "auto", "error_recovery"] = "user"


class ChainAddedEvent(BaseModel):
    chain_config: ChainConfig
    timestamp: int
    source: Literal["user", "auto", "config"] = "user"


class ChainRemovedEvent(BaseModel):
    chain_id: str
    chain_name: str
    timestamp: int
    reason: Literal["user", "auto", "maintenance"] = "user"


class NetworkErrorEvent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    chain_id: str
    error: Exception
    error_type: NetworkErrorType
    timestamp: int


EVENT_PAYLOADS: Dict[EventName, Type[BaseModel]] = {
    EventName.CHAIN_CHANGED: ChainChangedEvent,
    EventName.CHAIN_ADDED: ChainAddedEvent,
    EventName.CHAIN_REMOVED: ChainRemovedEvent,
    EventName.NETWORK_ERROR: NetworkErrorEvent,
}

Handler = Callable[[Any], None]
EventKey = Union[EventName, str]


class _Listener:
    __slots__ = ("handler", "once")

    def __init__(self, handler: Handler, once: bool) -> None:
        self.handler = handler
        self.once = once


class Subscription:
    """
    Handle returned by :meth:`EventBus.on` and :meth:`EventBus.once`.

    ``unsubscribe`` removes exactly this registration and may be called any
    number of times. Usable as a context manager to scope a subscription.
    """

    def __init__(self, bus: "EventBus", event: EventName, listener: _Listener) -> None:
        self._bus = bus
        self.event = event
        self._listener = listener

    @property
    def handler(self) -> Handler:
        return self._listener.handler

    @property
    def active(self) -> bool:
        return self._bus._has_listener(self.event, self._listener)

    def unsubscribe(self) -> None:
        self._bus._remove_listener(self.event, self._listener)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *args: object) -> None:
        self.unsubscribe()


class EventBus:
    """Synchronous publish/subscribe registry over the closed set of events."""

    def __init__(self) -> None:
        self._listeners: Dict[EventName, List[_Listener]] = {}

    @staticmethod
    def _event(event: EventKey) -> EventName:
        return EventName(event)

    def _subscribe(self, event: EventKey, handler: Handler, once: bool) -> Subscription:
        if not callable(handler):
            raise TypeError(f"Event handler must be callable, got {handler!r}")
        name = self._event(event)
        listener = _Listener(handler, once)
        self._listeners.setdefault(name, []).append(listener)
        return Subscription(self, name, listener)

    def on(self, event: EventKey, handler: Handler) -> Subscription:
        return self._subscribe(event, handler, once=False)

    def once(self, event: EventKey, handler: Handler) -> Subscription:
        """Subscribe ``handler`` for the next delivery of ``event`` only."""
        return self._subscribe(event, handler, once=True)

    def off(self, event: EventKey, handler: Handler) -> None:
        """Remove the earliest registration of ``handler`` for ``event``, if any."""
        listeners = self._listeners.get(self._event(event), [])
        for listener in listeners:
            if listener.handler == handler:
                listeners.remove(listener)
                return

    def _has_listener(self, event: EventName, listener: _Listener) -> bool:
        return any(item is listener for item in self._listeners.get(event, []))

    def _remove_listener(self, event: EventName, listener: _Listener) -> None:
        listeners = self._listeners.get(event, [])
        for index, item in enumerate(listeners):
            if item is listener:
                del listeners[index]
                return

    def emit(self, event: EventKey, payload: BaseModel) -> None:
        """
        Deliver ``payload`` to every current subscriber of ``event``.

        Raises:
            TypeError: If ``payload`` is not the model bound to ``event``.
        """
        name = self._event(event)
        expected = EVENT_PAYLOADS[name]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{name.value} expects {expected.__name__}, got {type(payload).__name__}",
            )

        for listener in list(self._listeners.get(name, [])):
            if listener.once:
                self._remove_listener(name, listener)
            try:
                listener.handler(payload)
            except Exception:
                logger.exception(f"Error in event listener for {name.value}")

    def remove_all_listeners(self, event: Optional[EventKey] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(self._event(event), None)

    def listener_count(self, event: EventKey) -> int:
        return len(self._listeners.get(self._event(event), []))
