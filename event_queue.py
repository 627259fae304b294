# event_queue.py
import random
from collections import deque
from typing import Iterable, Optional

from events import ThrottleEvent


class EventQueue:
    """FIFO of pending events.

    When a throttle is configured, every throttlable event (the end of a key
    press, the lift of a gesture, a rotation, ...) is followed by a
    ThrottleEvent, so the wait lands between bursts and flows through the same
    injection path as real events.
    """

    def __init__(self, rng: random.Random, throttle_ms: int = 0, randomize_throttle: bool = False):
        if throttle_ms < 0:
            raise ValueError("throttle must be >= 0")
        self._rng = rng
        self._items = deque()
        self.throttle_ms = throttle_ms
        self.randomize_throttle = randomize_throttle

    def __len__(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def add_last(self, event) -> None:
        self._items.append(event)
        if self.throttle_ms > 0 and event.is_throttlable():
            self._items.append(ThrottleEvent(self._next_throttle()))

    def extend(self, events: Iterable) -> None:
        for e in events:
            self.add_last(e)

    def remove_first(self) -> Optional[object]:
        if not self._items:
            return None
        return self._items.popleft()

    def _next_throttle(self) -> int:
        if self.randomize_throttle:
            # uniform in 1..throttle
            return self._rng.randrange(self.throttle_ms) + 1
        return self.throttle_ms
