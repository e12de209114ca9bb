"""Panel host model: a tree of named controls and the root panel that owns the bus."""

from typing import Any, Callable, Dict, Iterator, List, Optional

from panelbus.adapter import BroadcastSignals
from panelbus.bus import BroadcastBus, ErrorHandler
from panelbus.observability import get_logger
from panelbus.pattern import MatchMode
from panelbus.protocol import BROADCAST_KEY, SUBSCRIBE_KEY

NotifyHandler = Callable[[str, Any], None]


class Control:
    """A named node in the panel. Receives signals through ``notify(key, data)``."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._parent: Optional["Control"] = None
        self._children: List["Control"] = []
        self._handlers: Dict[str, NotifyHandler] = {}
        self._logger = get_logger(f"panelbus.control.{name}")

    @property
    def name(self) -> str:
        return self._name

    @property
    def parent(self) -> Optional["Control"]:
        return self._parent

    @property
    def children(self) -> List["Control"]:
        return list(self._children)

    @property
    def root(self) -> "Control":
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    def add(self, child: "Control") -> "Control":
        """Attach a child control and return it."""
        if child._parent is not None:
            child._parent.remove(child)
        child._parent = self
        self._children.append(child)
        return child

    def remove(self, child: "Control") -> bool:
        if child not in self._children:
            return False
        self._children.remove(child)
        child._parent = None
        return True

    def walk(self) -> Iterator["Control"]:
        """Depth-first, self first."""
        yield self
        for child in list(self._children):
            yield from child.walk()

    def find(self, name: str) -> Optional["Control"]:
        """First control named ``name`` in this subtree (depth-first), or None."""
        for control in self.walk():
            if control.name == name:
                return control
        return None

    def on(self, key: str, handler: NotifyHandler) -> None:
        """Route signals with this exact key to ``handler(key, data)``."""
        self._handlers[key] = handler

    def notify(self, key: str, data: Any = None) -> None:
        handler = self._handlers.get(key)
        if handler is not None:
            handler(key, data)
        else:
            self.on_notify(key, data)

    def on_notify(self, key: str, data: Any) -> None:
        """Signals without a registered handler; subclasses override."""
        self._logger.debug("notify_unhandled", extra={"key": key})

    def subscribe(self, pattern: str) -> None:
        """Ask the panel to deliver every broadcast matching ``pattern`` to this control."""
        self.root.notify(SUBSCRIBE_KEY, {"topic": pattern, "controlName": self._name})

    def broadcast(self, topic: str, message: Any = None) -> None:
        self.root.notify(BROADCAST_KEY, {"topic": topic, "message": message})

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self._name!r})"


class Panel(Control):
    """Root of a control tree. Each panel owns its own bus; nothing is shared between panels."""

    def __init__(
        self,
        name: str = "panel",
        match_mode: MatchMode = MatchMode.SEARCH,
        error_handler: Optional[ErrorHandler] = None,
    ) -> None:
        super().__init__(name)
        self._bus = BroadcastBus(name=name, match_mode=match_mode, error_handler=error_handler)
        self._signals = BroadcastSignals(self._bus, self)

    @property
    def bus(self) -> BroadcastBus:
        return self._bus

    @property
    def signals(self) -> BroadcastSignals:
        return self._signals

    def notify(self, key: str, data: Any = None) -> None:
        if self._signals.notify(key, data):
            return
        super().notify(key, data)

    def control_count(self) -> int:
        return sum(1 for _ in self.walk()) - 1

    def reset(self) -> None:
        """New session: forget every subscription. Controls stay attached."""
        self._bus.reset()
