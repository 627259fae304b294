"""Tests for the throttled event queue."""
import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from event_queue import EventQueue
from events import ACTION_DOWN, ACTION_UP, FlipEvent, KeyEvent, ThrottleEvent


class TestOrdering:
    def test_fifo(self, rng) -> None:
        q = EventQueue(rng)
        events = [KeyEvent(ACTION_DOWN, 19), KeyEvent(ACTION_UP, 19), FlipEvent(True)]
        q.extend(events)
        assert len(q) == 3
        assert [q.remove_first() for _ in range(3)] == events
        assert q.is_empty()

    def test_remove_from_empty(self, rng) -> None:
        assert EventQueue(rng).remove_first() is None

    def test_negative_throttle_rejected(self, rng) -> None:
        with pytest.raises(ValueError):
            EventQueue(rng, throttle_ms=-1)


class TestThrottleInsertion:
    def test_no_throttle_configured(self, rng) -> None:
        q = EventQueue(rng, throttle_ms=0)
        q.add_last(KeyEvent(ACTION_UP, 4))
        assert len(q) == 1

    def test_only_after_throttlable(self, rng) -> None:
        q = EventQueue(rng, throttle_ms=100)
        q.add_last(KeyEvent(ACTION_DOWN, 4))
        q.add_last(KeyEvent(ACTION_UP, 4))
        items = [q.remove_first() for _ in range(len(q))]
        assert items == [KeyEvent(ACTION_DOWN, 4), KeyEvent(ACTION_UP, 4), ThrottleEvent(100)]

    def test_throttle_event_is_never_throttled(self, rng) -> None:
        q = EventQueue(rng, throttle_ms=100)
        q.add_last(ThrottleEvent(5))
        assert len(q) == 1

    @given(throttle=st.integers(min_value=1, max_value=10_000),
           seed=st.integers(min_value=0, max_value=2**32))
    def test_randomized_within_bounds(self, throttle, seed) -> None:
        q = EventQueue(random.Random(seed), throttle_ms=throttle, randomize_throttle=True)
        for _ in range(20):
            q.add_last(FlipEvent(False))
        pauses = [e.duration_ms for e in (q.remove_first() for _ in range(len(q)))
                  if isinstance(e, ThrottleEvent)]
        assert len(pauses) == 20
        assert all(1 <= p <= throttle for p in pauses)
