"""Publisher: a named message source bound to a bus."""

from typing import TYPE_CHECKING, Any

from panelbus.observability import get_logger

if TYPE_CHECKING:
    from panelbus.bus import BroadcastBus


class Publisher:
    """Publishes to a bus under a fixed publisher id (for observability)."""

    def __init__(self, publisher_id: str, bus: "BroadcastBus") -> None:
        self._publisher_id = publisher_id
        self._bus = bus
        self._logger = get_logger(f"panelbus.publisher.{publisher_id}")

    @property
    def publisher_id(self) -> str:
        return self._publisher_id

    def publish(self, topic: str, payload: Any = None) -> None:
        """Log and publish; delivery happens before this returns."""
        self._logger.info(
            "published",
            extra={"topic": topic, "publisher_id": self._publisher_id},
        )
        self._bus.publish(topic, payload)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self._publisher_id!r})"
