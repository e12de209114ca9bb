"""Boundary adapter between string-keyed panel signals and the broadcast bus."""

from typing import TYPE_CHECKING, Any, Optional, Protocol

from panelbus.default_subscriber import ControlSubscriber
from panelbus.errors import UnknownSubscriber
from panelbus.observability import get_logger
from panelbus.protocol import (
    BROADCAST_KEY,
    SUBSCRIBE_KEY,
    BroadcastRequest,
    BroadcastSubscribeRequest,
)

if TYPE_CHECKING:
    from panelbus.bus import BroadcastBus
    from panelbus.panel import Control
    from panelbus.registry import SubscriptionToken


class ControlResolver(Protocol):
    def find(self, name: str) -> Optional["Control"]:
        ...


class BroadcastSignals:
    """Handles the ``broadcast-subscribe`` and ``broadcast`` signals for a bus.

    Both signals are fire-and-forget: bad data and unknown controls are
    logged, never raised back to the sender.
    """

    KEYS = (SUBSCRIBE_KEY, BROADCAST_KEY)

    def __init__(self, bus: "BroadcastBus", resolver: ControlResolver) -> None:
        self._bus = bus
        self._resolver = resolver
        self._logger = get_logger(f"panelbus.signals.{bus.name}")

    def handles(self, key: str) -> bool:
        return key in self.KEYS

    def notify(self, key: str, data: Any) -> bool:
        """Dispatch one signal. Returns False if the key is not a broadcast key."""
        if key == SUBSCRIBE_KEY:
            try:
                req = BroadcastSubscribeRequest.from_dict(data)
            except (KeyError, TypeError) as e:
                self._bad_request(key, data, e)
                return True
            self.subscribe(req.topic, req.control_name)
            return True
        if key == BROADCAST_KEY:
            try:
                req = BroadcastRequest.from_dict(data)
            except (KeyError, TypeError) as e:
                self._bad_request(key, data, e)
                return True
            self.broadcast(req.topic, req.message)
            return True
        return False

    def subscribe(self, pattern: str, control_name: str) -> Optional["SubscriptionToken"]:
        """Resolve ``control_name`` in the panel and subscribe it to ``pattern``."""
        control = self._resolver.find(control_name)
        if control is None:
            self._bus.report(UnknownSubscriber(control_name, pattern))
            return None
        return self._bus.subscribe(pattern, ControlSubscriber(control))

    def broadcast(self, topic: str, message: Any = None) -> None:
        self._bus.publish(topic, message)

    def _bad_request(self, key: str, data: Any, error: Exception) -> None:
        self._logger.warning(
            "bad_signal",
            extra={"key": key, "data_type": type(data).__name__, "error": str(error)},
        )
