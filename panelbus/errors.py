"""Errors reported by the broadcast bus. None of them escape subscribe or publish."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from panelbus.registry import Subscription


class BusError(Exception):
    """Base class for everything the bus reports to its error handler."""

    kind = "bus_error"


class UnknownSubscriber(BusError):
    """A subscribe request named a control that does not resolve."""

    kind = "unknown_subscriber"

    def __init__(self, name: Optional[str], pattern: Optional[str] = None) -> None:
        self.name = name
        self.pattern = pattern
        super().__init__(f"unknown subscriber {name!r}")


class MalformedPattern(BusError):
    """A subscription pattern cannot be evaluated against a topic."""

    kind = "malformed_pattern"

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"malformed pattern {pattern!r}: {reason}")


class SubscriberDeliveryFailure(BusError):
    """A matching subscriber raised while handling a delivery."""

    kind = "delivery_failed"

    def __init__(self, subscription: "Subscription", topic: str, cause: BaseException) -> None:
        self.subscription = subscription
        self.topic = topic
        self.cause = cause
        super().__init__(
            f"delivery of {topic!r} to {subscription.subscriber!r} failed: {cause!s}"
        )
