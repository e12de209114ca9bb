"""Abstract Subscriber and base implementation for observability."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from panelbus.observability import get_logger

if TYPE_CHECKING:
    from panelbus.message import Message


class Subscriber(ABC):
    """Anything the bus can deliver a (topic, payload) message to."""

    def __init__(self, subscriber_id: str) -> None:
        self._subscriber_id = subscriber_id
        self._logger = get_logger(f"panelbus.subscriber.{subscriber_id}")

    @property
    def subscriber_id(self) -> str:
        return self._subscriber_id

    @abstractmethod
    def on_message(self, topic: str, payload: object) -> None:
        """Handle a delivered message. Must be implemented by subclasses."""
        pass

    def deliver_message(self, message: "Message") -> None:
        """Called by the bus for every matching publish; default implementation calls on_message."""
        self.on_message(message.topic, message.payload)

    def on_subscribe(self, pattern: str) -> None:
        """Called when a subscription for this subscriber is registered (for observability)."""
        self._logger.info(
            "subscribed",
            extra={"pattern": pattern, "subscriber_id": self._subscriber_id},
        )

    def on_unsubscribe(self, pattern: str) -> None:
        """Called when a subscription for this subscriber is removed (for observability)."""
        self._logger.info(
            "unsubscribed",
            extra={"pattern": pattern, "subscriber_id": self._subscriber_id},
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._subscriber_id!r})"
