# event_source.py
import abc
import logging
import math
import random
from typing import Callable, List, Mapping, Optional, Sequence

from errors import InvalidDistribution, KeySelectionExhausted
from event_queue import EventQueue
from events import (
    ACTION_DOWN, ACTION_UP, ACTION_MOVE, ACTION_POINTER_DOWN, ACTION_POINTER_UP,
    ACTION_POINTER_INDEX_SHIFT, ROTATION_DEGREES, MAX_KEYCODE,
    KEYCODE_DPAD_UP, KEYCODE_DPAD_DOWN, KEYCODE_DPAD_LEFT, KEYCODE_DPAD_RIGHT,
    KEYCODE_MENU, KEYCODE_DPAD_CENTER, KEYCODE_HOME, KEYCODE_BACK, KEYCODE_CALL,
    KEYCODE_ENDCALL, KEYCODE_VOLUME_UP, KEYCODE_VOLUME_DOWN, KEYCODE_VOLUME_MUTE,
    KEYCODE_MUTE, KEYCODE_POWER, KEYCODE_SLEEP, KEYCODE_SOFT_SLEEP,
    Pointer, KeyEvent, MotionEvent, TrackballEvent, RotationEvent,
    PermissionEvent, ActivityEvent, FlipEvent,
)

log = logging.getLogger(__name__)

NAV_KEYS = (KEYCODE_DPAD_UP, KEYCODE_DPAD_DOWN, KEYCODE_DPAD_LEFT, KEYCODE_DPAD_RIGHT)
MAJOR_NAV_KEYS = (KEYCODE_MENU, KEYCODE_DPAD_CENTER)
SYS_KEYS = (
    KEYCODE_HOME, KEYCODE_BACK, KEYCODE_CALL, KEYCODE_ENDCALL,
    KEYCODE_VOLUME_UP, KEYCODE_VOLUME_DOWN, KEYCODE_VOLUME_MUTE, KEYCODE_MUTE,
)
# never injected: they would put the target to sleep or hang up on it
DENIED_KEYS = frozenset({KEYCODE_POWER, KEYCODE_ENDCALL, KEYCODE_SLEEP, KEYCODE_SOFT_SLEEP})

# Category order matters: the cumulative table is built in this order.
CATEGORIES = (
    "touch", "motion", "pinchzoom", "trackball", "rotation", "permission",
    "nav", "majornav", "syskeys", "appswitch", "flip", "anyevent",
)
(FACTOR_TOUCH, FACTOR_MOTION, FACTOR_PINCHZOOM, FACTOR_TRACKBALL, FACTOR_ROTATION,
 FACTOR_PERMISSION, FACTOR_NAV, FACTOR_MAJORNAV, FACTOR_SYSOPS, FACTOR_APPSWITCH,
 FACTOR_FLIP, FACTOR_ANYTHING) = range(len(CATEGORIES))
FACTORZ_COUNT = len(CATEGORIES)

# Straight percentages. Zero entries count as user-specified zeros.
DEFAULT_FACTORS = (15.0, 10.0, 2.0, 15.0, 0.0, 0.0, 25.0, 15.0, 2.0, 2.0, 1.0, 13.0)

GESTURE_TAP = 0
GESTURE_DRAG = 1
GESTURE_PINCH_OR_ZOOM = 2


def category_index(name: str) -> int:
    try:
        return CATEGORIES.index(name)
    except ValueError:
        raise InvalidDistribution(f"unknown event category {name!r}") from None


class WeightTable:
    """Per-category event percentages, turned into a cumulative distribution.

    User-specified weights are stored as non-positive sentinels (the magnitude
    is the percentage); positive entries are defaults that get rescaled to
    absorb whatever the user left over.
    """

    def __init__(self, defaults: Sequence[float] = DEFAULT_FACTORS):
        if len(defaults) != FACTORZ_COUNT:
            raise ValueError(f"expected {FACTORZ_COUNT} factors, got {len(defaults)}")
        self._factors = [float(f) for f in defaults]
        self._percentages: Optional[List[float]] = None
        self._cumulative: Optional[tuple] = None

    def set_user_weight(self, category: str, percent: float) -> None:
        if not math.isfinite(percent) or percent < 0:
            raise InvalidDistribution(f"{category} percentage must be a finite value >= 0, got {percent}")
        self._factors[category_index(category)] = -float(percent)

    def set_user_weights(self, weights: Mapping[str, float]) -> None:
        for name, pct in weights.items():
            self.set_user_weight(name, pct)

    @property
    def percentages(self) -> tuple:
        if self._percentages is None:
            raise RuntimeError("weights not normalized yet")
        return tuple(self._percentages)

    @property
    def cumulative(self) -> tuple:
        if self._cumulative is None:
            raise RuntimeError("weights not normalized yet")
        return self._cumulative

    def normalize(self, check: Optional[Callable[[Sequence[float]], None]] = None) -> tuple:
        """Validate, rescale defaults, run `check` on the percentages, build the running sum."""
        user_sum = 0.0
        default_sum = 0.0
        default_count = 0
        for f in self._factors:
            if f <= 0.0:
                user_sum -= f
            else:
                default_sum += f
                default_count += 1

        if user_sum > 100.0:
            raise InvalidDistribution(f"event weights > 100% ({user_sum:g}%)")
        if default_count == 0 and (user_sum < 99.9 or user_sum > 100.1):
            raise InvalidDistribution(f"event weights != 100% ({user_sum:g}%)")

        adjustment = (100.0 - user_sum) / default_sum if default_count else 0.0
        pcts = [-f if f <= 0.0 else f * adjustment for f in self._factors]

        if check is not None:
            check(pcts)

        running = 0.0
        cumulative = []
        for p in pcts:
            running += p / 100.0
            cumulative.append(running)

        self._percentages = pcts
        self._cumulative = tuple(cumulative)
        return self._cumulative

    def select(self, draw: float) -> int:
        """First category whose threshold exceeds `draw`; the last one otherwise."""
        for i, threshold in enumerate(self.cumulative):
            if draw < threshold:
                return i
        return FACTORZ_COUNT - 1


class EventSource(abc.ABC):
    """Anything that can feed the cycle controller.

    `counts_events` False means a None from next_event() marks the end of one
    logical iteration rather than exhaustion of the source.
    """
    counts_events = True

    def __init__(self):
        self.verbose = 0

    @abc.abstractmethod
    def validate(self) -> None:
        """Raise ConfigurationError if the source cannot run."""

    @abc.abstractmethod
    def next_event(self):
        """Next event, or None when nothing is available."""


class RandomEventSource(EventSource):
    """Weighted stochastic generator. All randomness comes from `rng`."""

    def __init__(self, rng: random.Random, device, main_apps: Sequence[str],
                 throttle_ms: int = 0, randomize_throttle: bool = False,
                 max_key_attempts: int = 1000):
        super().__init__()
        self.rng = rng
        self.device = device
        self.main_apps = list(main_apps)
        self.queue = EventQueue(rng, throttle_ms, randomize_throttle)
        self.weights = WeightTable()
        self.max_key_attempts = max_key_attempts
        self.keyboard_open = False
        self.bursts = 0
        self._key_exists = [bool(device.has_key(k)) for k in range(MAX_KEYCODE + 1)]
        self._permissions: dict = {}

    def configure(self, weights: Mapping[str, float]) -> None:
        self.weights.set_user_weights(weights)
        self.validate()

    def validate(self) -> None:
        self._permissions = {
            pkg: list(perms)
            for pkg, perms in sorted(self.device.runtime_permissions().items())
            if perms
        }
        self.weights.normalize(self._check_categories)
        if self.verbose > 0:
            log.info("// Event percentages:")
            for i, pct in enumerate(self.weights.percentages):
                log.info("//   %d (%s): %.2f%%", i, CATEGORIES[i], pct)

    def _check_categories(self, pcts: Sequence[float]) -> None:
        self._validate_key_category("NAV_KEYS", NAV_KEYS, pcts[FACTOR_NAV])
        self._validate_key_category("MAJOR_NAV_KEYS", MAJOR_NAV_KEYS, pcts[FACTOR_MAJORNAV])
        self._validate_key_category("SYS_KEYS", SYS_KEYS, pcts[FACTOR_SYSOPS])
        if pcts[FACTOR_PERMISSION] > 0.0 and not self._permissions:
            raise InvalidDistribution("permission events requested but target exposes no runtime permissions")

    def _validate_key_category(self, name: str, keys: Sequence[int], pct: float) -> None:
        if pct < 0.1:
            return
        if any(self._key_exists[k] for k in keys):
            return
        raise InvalidDistribution(f"{name} has no physical keys but with factor {pct:g}%")

    # ---- generation -------------------------------------------------------

    def generate_activity(self) -> None:
        self.queue.add_last(ActivityEvent(self.main_apps[self.rng.randrange(len(self.main_apps))]))

    def generate_burst(self) -> list:
        """Draw a category and queue one burst of events for it."""
        burst = self._generate_events()
        self.queue.extend(burst)
        return burst

    def next_event(self):
        if self.queue.is_empty():
            self.generate_burst()
        return self.queue.remove_first()

    def _generate_events(self) -> list:
        cls = self.rng.random()
        category = self.weights.select(cls)

        if category == FACTOR_TOUCH:
            return self._pointer_burst(GESTURE_TAP)
        if category == FACTOR_MOTION:
            return self._pointer_burst(GESTURE_DRAG)
        if category == FACTOR_PINCHZOOM:
            return self._pointer_burst(GESTURE_PINCH_OR_ZOOM)
        if category == FACTOR_TRACKBALL:
            return self._trackball_burst()
        if category == FACTOR_ROTATION:
            degree = ROTATION_DEGREES[self.rng.randrange(len(ROTATION_DEGREES))]
            return [RotationEvent(degree, self.rng.random() < 0.5)]
        if category == FACTOR_PERMISSION:
            return [self._permission_event()]
        if category == FACTOR_APPSWITCH:
            return [ActivityEvent(self.main_apps[self.rng.randrange(len(self.main_apps))])]
        if category == FACTOR_FLIP:
            e = FlipEvent(self.keyboard_open)
            self.keyboard_open = not self.keyboard_open
            return [e]

        key = self._pick_key(category)
        return [KeyEvent(ACTION_DOWN, key), KeyEvent(ACTION_UP, key)]

    def _pick_key(self, category: int) -> int:
        for _ in range(self.max_key_attempts):
            if category == FACTOR_NAV:
                key = NAV_KEYS[self.rng.randrange(len(NAV_KEYS))]
            elif category == FACTOR_MAJORNAV:
                key = MAJOR_NAV_KEYS[self.rng.randrange(len(MAJOR_NAV_KEYS))]
            elif category == FACTOR_SYSOPS:
                key = SYS_KEYS[self.rng.randrange(len(SYS_KEYS))]
            else:
                key = 1 + self.rng.randrange(MAX_KEYCODE - 1)
            if key not in DENIED_KEYS and self._key_exists[key]:
                return key
        raise KeySelectionExhausted(
            f"no usable key for {CATEGORIES[category]} after {self.max_key_attempts} attempts")

    def _permission_event(self) -> PermissionEvent:
        packages = list(self._permissions)
        pkg = packages[self.rng.randrange(len(packages))]
        perms = self._permissions[pkg]
        perm = perms[self.rng.randrange(len(perms))]
        return PermissionEvent(pkg, perm, self.rng.random() < 0.5)

    # ---- pointer gestures -------------------------------------------------

    def _random_point(self, width: int, height: int) -> list:
        return [float(self.rng.randrange(width)), float(self.rng.randrange(height))]

    def _random_vector(self) -> tuple:
        return ((self.rng.random() - 0.5) * 50, (self.rng.random() - 0.5) * 50)

    def _random_walk(self, width: int, height: int, point: list, vector: tuple) -> None:
        point[0] = max(min(point[0] + self.rng.random() * vector[0], width), 0)
        point[1] = max(min(point[1] + self.rng.random() * vector[1], height), 0)

    def _pointer_burst(self, gesture: int) -> list:
        width, height = self.device.display_size()
        self.bursts += 1
        burst = self.bursts
        p1 = self._random_point(width, height)
        v1 = self._random_vector()

        def one():
            return (Pointer(0, p1[0], p1[1]),)

        def two():
            return (Pointer(0, p1[0], p1[1]), Pointer(1, p2[0], p2[1]))

        out = [MotionEvent(ACTION_DOWN, one(), burst, intermediate=False)]

        if gesture == GESTURE_DRAG:
            for _ in range(self.rng.randrange(10)):
                self._random_walk(width, height, p1, v1)
                out.append(MotionEvent(ACTION_MOVE, one(), burst, intermediate=True))
        elif gesture == GESTURE_PINCH_OR_ZOOM:
            p2 = self._random_point(width, height)
            v2 = self._random_vector()
            self._random_walk(width, height, p1, v1)
            out.append(MotionEvent(ACTION_POINTER_DOWN | (1 << ACTION_POINTER_INDEX_SHIFT),
                                   two(), burst, intermediate=True))
            for _ in range(self.rng.randrange(10)):
                self._random_walk(width, height, p1, v1)
                self._random_walk(width, height, p2, v2)
                out.append(MotionEvent(ACTION_MOVE, two(), burst, intermediate=True))
            self._random_walk(width, height, p1, v1)
            self._random_walk(width, height, p2, v2)
            out.append(MotionEvent(ACTION_POINTER_UP | (1 << ACTION_POINTER_INDEX_SHIFT),
                                   two(), burst, intermediate=True))

        self._random_walk(width, height, p1, v1)
        out.append(MotionEvent(ACTION_UP, one(), burst, intermediate=False))
        return out

    def _trackball_burst(self) -> list:
        self.bursts += 1
        burst = self.bursts
        out = []
        for i in range(10):
            dx = self.rng.randrange(10) - 5
            dy = self.rng.randrange(10) - 5
            out.append(TrackballEvent(ACTION_MOVE, (Pointer(0, float(dx), float(dy)),), burst, intermediate=i > 0))

        # 1 in 10 trackball bursts end with a click
        if self.rng.randrange(10) == 0:
            out.append(TrackballEvent(ACTION_DOWN, (Pointer(0, 0.0, 0.0),), burst, intermediate=True))
            out.append(TrackballEvent(ACTION_UP, (Pointer(0, 0.0, 0.0),), burst, intermediate=False))
        return out
