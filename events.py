# events.py
import json
from dataclasses import dataclass, asdict, field
from typing import ClassVar, Tuple

# Motion actions
ACTION_DOWN = 0
ACTION_UP = 1
ACTION_MOVE = 2
ACTION_POINTER_DOWN = 5
ACTION_POINTER_UP = 6
ACTION_POINTER_INDEX_SHIFT = 8

# Key codes the generator cares about
KEYCODE_HOME = 3
KEYCODE_BACK = 4
KEYCODE_CALL = 5
KEYCODE_ENDCALL = 6
KEYCODE_DPAD_UP = 19
KEYCODE_DPAD_DOWN = 20
KEYCODE_DPAD_LEFT = 21
KEYCODE_DPAD_RIGHT = 22
KEYCODE_DPAD_CENTER = 23
KEYCODE_VOLUME_UP = 24
KEYCODE_VOLUME_DOWN = 25
KEYCODE_POWER = 26
KEYCODE_MENU = 82
KEYCODE_MUTE = 91
KEYCODE_VOLUME_MUTE = 164
KEYCODE_SLEEP = 223
KEYCODE_SOFT_SLEEP = 276
MAX_KEYCODE = 288

ROTATION_DEGREES = (0, 90, 180, 270)


@dataclass(frozen=True)
class Pointer:
    pointer_id: int
    x: float
    y: float


@dataclass(frozen=True)
class KeyEvent:
    kind: ClassVar[str] = "key"
    action: int
    key_code: int

    def is_throttlable(self) -> bool:
        return self.action == ACTION_UP


@dataclass(frozen=True)
class MotionEvent:
    """Touch or trackball motion. `burst` ties a gesture's events together."""
    kind: ClassVar[str] = "touch"
    action: int
    pointers: Tuple[Pointer, ...]
    burst: int = 0
    intermediate: bool = False

    def is_throttlable(self) -> bool:
        return self.action == ACTION_UP


@dataclass(frozen=True)
class TrackballEvent(MotionEvent):
    kind: ClassVar[str] = "trackball"


@dataclass(frozen=True)
class RotationEvent:
    kind: ClassVar[str] = "rotation"
    degree: int
    persist: bool = False

    def is_throttlable(self) -> bool:
        return True


@dataclass(frozen=True)
class PermissionEvent:
    kind: ClassVar[str] = "permission"
    package: str
    permission: str
    grant: bool

    def is_throttlable(self) -> bool:
        return True


@dataclass(frozen=True)
class ActivityEvent:
    kind: ClassVar[str] = "activity"
    component: str  # "package/.Activity"

    @property
    def package(self) -> str:
        return self.component.split("/", 1)[0]

    def is_throttlable(self) -> bool:
        return True


@dataclass(frozen=True)
class FlipEvent:
    kind: ClassVar[str] = "flip"
    keyboard_open: bool

    def is_throttlable(self) -> bool:
        return True


@dataclass(frozen=True)
class ThrottleEvent:
    kind: ClassVar[str] = "throttle"
    duration_ms: int = field(default=0)

    def is_throttlable(self) -> bool:
        return False


def serialize(event) -> bytes:
    body = {"kind": event.kind, **asdict(event)}
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
