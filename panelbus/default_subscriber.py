"""Concrete Subscriber implementations: plain callables and panel controls."""

import weakref
from typing import TYPE_CHECKING, Any, Callable

from panelbus.subscriber import Subscriber

if TYPE_CHECKING:
    from panelbus.panel import Control

Handler = Callable[[str, Any], None]


class CallbackSubscriber(Subscriber):
    """Subscriber that forwards every delivery to a callable ``handler(topic, payload)``."""

    def __init__(self, handler: Handler, subscriber_id: str | None = None) -> None:
        name = subscriber_id or getattr(handler, "__qualname__", None) or repr(handler)
        super().__init__(name)
        self._handler = handler

    def on_message(self, topic: str, payload: Any) -> None:
        self._handler(topic, payload)


class ControlSubscriber(Subscriber):
    """Delivers to a panel control as ``control.notify(topic, payload)``.

    The control is held through a weak reference: its lifetime belongs to the
    panel, not to the bus. Delivering to a control that has since been
    collected raises LookupError, which the bus reports as a delivery failure.
    """

    def __init__(self, control: "Control") -> None:
        super().__init__(control.name)
        self._control = weakref.ref(control)

    def bound_to(self, control: "Control") -> bool:
        return self._control() is control

    def on_message(self, topic: str, payload: Any) -> None:
        control = self._control()
        if control is None:
            raise LookupError(f"control {self.subscriber_id!r} no longer exists")
        control.notify(topic, payload)
