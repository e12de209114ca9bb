"""Broadcast bus: topic-pattern subscriptions and synchronous in-process delivery."""

from typing import TYPE_CHECKING, Any, Callable, List, Optional, Union

from panelbus.default_subscriber import CallbackSubscriber, ControlSubscriber
from panelbus.errors import BusError, MalformedPattern, SubscriberDeliveryFailure, UnknownSubscriber
from panelbus.message import Message
from panelbus.observability import Metrics, get_logger
from panelbus.pattern import MatchMode
from panelbus.registry import Subscription, SubscriptionRegistry, SubscriptionToken
from panelbus.subscriber import Subscriber

if TYPE_CHECKING:
    from panelbus.panel import Control

ErrorHandler = Callable[[BusError], None]
SubscriberLike = Union[Subscriber, Callable[[str, Any], None], None]


class BroadcastBus:
    """Delivers each published (topic, payload) to every subscriber whose pattern matches.

    Delivery is synchronous, in subscription order. Neither ``subscribe`` nor
    ``publish`` raises: unknown subscribers, malformed patterns and failing
    handlers are passed to ``error_handler`` (logged by default) and skipped.
    """

    def __init__(
        self,
        name: str = "panel",
        match_mode: MatchMode = MatchMode.SEARCH,
        error_handler: Optional[ErrorHandler] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._name = name
        self._match_mode = MatchMode.parse(match_mode)
        self._registry = SubscriptionRegistry()
        self._metrics = metrics or Metrics()
        self._error_handler = error_handler or self._log_error
        self._logger = get_logger(f"panelbus.bus.{name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def match_mode(self) -> MatchMode:
        return self._match_mode

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def subscribe(
        self,
        pattern: str,
        subscriber: SubscriberLike,
        mode: Optional[MatchMode] = None,
    ) -> Optional[SubscriptionToken]:
        """Register interest in every topic matching ``pattern``.

        The pattern is not validated here; a malformed one only surfaces when
        a publish evaluates it. Returns a token for ``unsubscribe``, or None
        when there is no subscriber to register.
        """
        if subscriber is None:
            self.report(UnknownSubscriber(None, pattern))
            return None
        if not isinstance(subscriber, Subscriber):
            if not callable(subscriber):
                self.report(UnknownSubscriber(repr(subscriber), pattern))
                return None
            subscriber = CallbackSubscriber(subscriber)
        try:
            match_mode = MatchMode.parse(mode or self._match_mode)
        except ValueError as e:
            self._logger.warning("bad_match_mode", extra={"pattern": pattern, "error": str(e)})
            match_mode = self._match_mode
        entry = self._registry.add(pattern, subscriber, match_mode)
        self._metrics.increment("subscribed")
        self._metrics.set_gauge("subscriptions", len(self._registry))
        subscriber.on_subscribe(pattern)
        return entry.token

    def unsubscribe(self, token: SubscriptionToken) -> bool:
        """Remove one subscription. Publishes already scanning are unaffected."""
        entry = self._registry.remove(token)
        if entry is None:
            self._logger.warning("unsubscribe_unknown", extra={"token": str(token)})
            return False
        self._metrics.increment("unsubscribed")
        self._metrics.set_gauge("subscriptions", len(self._registry))
        entry.subscriber.on_unsubscribe(entry.pattern)
        return True

    def unsubscribe_control(self, control: "Control") -> int:
        """Remove every subscription delivering to ``control``. Returns how many were removed."""
        removed = self._registry.remove_where(
            lambda entry: isinstance(entry.subscriber, ControlSubscriber)
            and entry.subscriber.bound_to(control)
        )
        if removed:
            self._metrics.increment("unsubscribed", len(removed))
            self._metrics.set_gauge("subscriptions", len(self._registry))
        for entry in removed:
            entry.subscriber.on_unsubscribe(entry.pattern)
        return len(removed)

    def publish(self, topic: str, payload: Any = None) -> None:
        """Deliver ``payload`` to every subscription whose pattern matches ``topic``.

        Scans a snapshot taken at call time: subscriptions added while
        delivering are not seen by this call.
        """
        if not isinstance(topic, str):
            self._logger.warning("publish_bad_topic", extra={"topic_type": type(topic).__name__})
            return
        message = Message(topic=topic, payload=payload)
        entries = self._registry.snapshot()
        self._metrics.increment("published")
        delivered = 0
        for entry in entries:
            if not self._matches(entry, topic):
                continue
            if self._deliver(entry, message):
                delivered += 1
        self._logger.debug(
            "published",
            extra={
                "topic": topic,
                "message_id": message.message_id,
                "subscriptions": len(entries),
                "delivered": delivered,
            },
        )

    def reset(self) -> None:
        """Discard every subscription, as at the start of a new session."""
        dropped = self._registry.clear()
        self._metrics.reset()
        self._metrics.set_gauge("subscriptions", 0)
        self._logger.info("reset", extra={"dropped": dropped, "generation": self._registry.generation})

    def subscriptions(self) -> List[Subscription]:
        return list(self._registry.snapshot())

    def stats(self) -> dict:
        snapshot = self._metrics.snapshot()
        snapshot["gauges"]["subscriptions"] = len(self._registry)
        return snapshot

    def report(self, error: BusError) -> None:
        """Hand an error to the error handler; a failing handler is logged, never raised."""
        self._metrics.increment(error.kind)
        try:
            self._error_handler(error)
        except Exception:
            self._logger.exception("error_handler_failed", extra={"error": str(error)})

    def _matches(self, entry: Subscription, topic: str) -> bool:
        try:
            return entry.matches(topic)
        except MalformedPattern as e:
            self.report(e)
            return False

    def _deliver(self, entry: Subscription, message: Message) -> bool:
        try:
            entry.subscriber.deliver_message(message)
        except Exception as e:
            self.report(SubscriberDeliveryFailure(entry, message.topic, e))
            return False
        self._metrics.increment("delivered")
        return True

    def _log_error(self, error: BusError) -> None:
        if isinstance(error, SubscriberDeliveryFailure):
            self._logger.error(
                "delivery_failed",
                exc_info=error.cause,
                extra={
                    "topic": error.topic,
                    "subscriber_id": error.subscription.subscriber.subscriber_id,
                    "error": str(error.cause),
                },
            )
        elif isinstance(error, MalformedPattern):
            self._logger.error(
                "pattern_error",
                extra={"pattern": error.pattern, "error": error.reason},
            )
        elif isinstance(error, UnknownSubscriber):
            self._logger.warning(
                "unknown_subscriber",
                extra={"subscriber": error.name, "pattern": error.pattern},
            )
        else:
            self._logger.error("bus_error", extra={"error": str(error)})

    def __repr__(self) -> str:
        return f"BroadcastBus(name={self._name!r}, subscriptions={len(self._registry)})"
