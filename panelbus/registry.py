"""Ordered, in-memory subscription registry."""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Tuple

from panelbus.pattern import MatchMode, matches
from panelbus.subscriber import Subscriber


@dataclass(frozen=True)
class SubscriptionToken:
    """Stable handle for one subscription. Tokens from an earlier session never match."""

    generation: int
    serial: int

    def __str__(self) -> str:
        return f"{self.generation}:{self.serial}"

    @classmethod
    def parse(cls, value: str) -> "SubscriptionToken":
        """Inverse of str(); raises ValueError on anything else."""
        generation, sep, serial = str(value).partition(":")
        if not sep:
            raise ValueError(f"invalid subscription token {value!r}")
        return cls(int(generation), int(serial))


@dataclass(frozen=True)
class Subscription:
    """One (pattern, subscriber) entry. Never mutated after insertion."""

    token: SubscriptionToken
    pattern: str
    subscriber: Subscriber = field(compare=False)
    mode: MatchMode = MatchMode.SEARCH

    def matches(self, topic: str) -> bool:
        """Evaluate the pattern against a topic. Raises MalformedPattern."""
        return matches(self.pattern, topic, self.mode)

    def to_dict(self) -> dict:
        return {
            "id": str(self.token),
            "pattern": self.pattern,
            "subscriber": self.subscriber.subscriber_id,
            "mode": self.mode.value,
        }


class SubscriptionRegistry:
    """Insertion-ordered subscriptions; insertion order is dispatch order.

    Readers take a snapshot under the lock and iterate it without holding the
    lock, so a publish never sees a half-applied add or remove and a handler
    may subscribe or unsubscribe while it is being delivered to.
    """

    def __init__(self) -> None:
        self._entries: List[Subscription] = []
        self._lock = threading.Lock()
        self._generation = 1
        self._serial = itertools.count(1)

    @property
    def generation(self) -> int:
        return self._generation

    def add(
        self,
        pattern: str,
        subscriber: Subscriber,
        mode: MatchMode = MatchMode.SEARCH,
    ) -> Subscription:
        """Append a subscription. No validation and no deduplication."""
        with self._lock:
            token = SubscriptionToken(self._generation, next(self._serial))
            entry = Subscription(token=token, pattern=pattern, subscriber=subscriber, mode=mode)
            self._entries.append(entry)
        return entry

    def remove(self, token: SubscriptionToken) -> Subscription | None:
        """Remove the subscription with this token. Returns it, or None if unknown or stale."""
        with self._lock:
            if token.generation != self._generation:
                return None
            for i, entry in enumerate(self._entries):
                if entry.token == token:
                    del self._entries[i]
                    return entry
        return None

    def remove_where(self, predicate: Callable[[Subscription], bool]) -> List[Subscription]:
        """Remove every entry the predicate accepts, in one step. Returns them in order."""
        with self._lock:
            kept: List[Subscription] = []
            removed: List[Subscription] = []
            for entry in self._entries:
                (removed if predicate(entry) else kept).append(entry)
            self._entries = kept
        return removed

    def snapshot(self) -> Tuple[Subscription, ...]:
        """Return the current entries, in order (under lock)."""
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> int:
        """Start a new session: drop every entry and invalidate outstanding tokens."""
        with self._lock:
            dropped = len(self._entries)
            self._entries = []
            self._generation += 1
            self._serial = itertools.count(1)
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[Subscription]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"SubscriptionRegistry(generation={self._generation}, entries={len(self)})"
