"""Topic broadcast bus for panels of named controls (in-memory, synchronous)."""

from panelbus.adapter import BroadcastSignals
from panelbus.bus import BroadcastBus
from panelbus.default_subscriber import CallbackSubscriber, ControlSubscriber
from panelbus.errors import BusError, MalformedPattern, SubscriberDeliveryFailure, UnknownSubscriber
from panelbus.message import Message
from panelbus.panel import Control, Panel
from panelbus.pattern import MatchMode
from panelbus.publisher import Publisher
from panelbus.registry import Subscription, SubscriptionToken
from panelbus.remote_control import RemoteControl
from panelbus.subscriber import Subscriber

__all__ = [
    "BroadcastBus",
    "BroadcastSignals",
    "BusError",
    "CallbackSubscriber",
    "Control",
    "ControlSubscriber",
    "MalformedPattern",
    "MatchMode",
    "Message",
    "Panel",
    "Publisher",
    "RemoteControl",
    "Subscriber",
    "SubscriberDeliveryFailure",
    "Subscription",
    "SubscriptionToken",
    "UnknownSubscriber",
]
