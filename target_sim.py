# target_sim.py
import random
from collections import Counter
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence

from coordinator import ReportKind, ReportRequest
from events import ACTION_DOWN, ACTION_UP, ACTION_MOVE, ACTION_POINTER_DOWN, ACTION_POINTER_UP, KEYCODE_HOME


class InjectResult(IntEnum):
    SUCCESS = 1
    FAIL = 0
    FATAL_TRANSPORT_ERROR = -1
    SECURITY_ERROR = -2


DEFAULT_APPS = (
    "com.example.notes/.MainActivity",
    "com.example.camera/.CameraActivity",
    "com.example.settings/.Settings",
)
DEFAULT_LAUNCHER = "com.example.launcher/.Home"
DEFAULT_PERMISSIONS = {
    "com.example.camera": ("android.permission.CAMERA", "android.permission.RECORD_AUDIO"),
    "com.example.notes": ("android.permission.READ_CONTACTS",),
}


class DeviceSimulator:
    """Tiny in-process device with input invariants and a foreground app.

    Implements the target side of the exerciser: capability queries used to
    build the generator, `inject()` returning an InjectResult, and diagnostics
    for the report sink. Invariant violations (a MOVE with no finger down, a
    key released twice, ...) come back as FAIL, i.e. a dropped event.
    """

    def __init__(self, width: int = 1080, height: int = 1920,
                 missing_keys: Iterable[int] = (),
                 apps: Sequence[str] = DEFAULT_APPS,
                 permissions: Optional[Dict[str, Sequence[str]]] = None,
                 protected_packages: Iterable[str] = (),
                 launcher: str = DEFAULT_LAUNCHER,
                 drop_rate: float = 0.0, seed: int = 0):
        self.width = width
        self.height = height
        self.missing_keys = frozenset(missing_keys)
        self.apps = tuple(apps)
        self.launcher = launcher
        self.permissions = dict(DEFAULT_PERMISSIONS if permissions is None else permissions)
        self.protected_packages = frozenset(protected_packages)
        self.drop_rate = drop_rate
        self._rng = random.Random(seed)
        self.controller = None
        self.reset()

    def reset(self):
        self.alive = True
        self.foreground: Optional[str] = None
        self.rotation = 0
        self.keyboard_open = False
        self.keys_down = set()
        self.active_burst: Optional[int] = None
        self.granted = set()
        self.injected = Counter()
        self.rejected = Counter()
        self.anr_traces: List[tuple] = []   # (mtime, text)

    # ---- capabilities -------------------------------------------------------

    def display_size(self) -> tuple:
        return (self.width, self.height)

    def has_key(self, key_code: int) -> bool:
        return key_code not in self.missing_keys

    def runtime_permissions(self) -> Dict[str, Sequence[str]]:
        return dict(self.permissions)

    def main_apps(self) -> List[str]:
        return list(self.apps)

    def launcher_package(self) -> str:
        return self.launcher.split("/", 1)[0]

    def set_activity_controller(self, controller) -> None:
        self.controller = controller

    # ---- injection ----------------------------------------------------------

    def inject(self, event) -> InjectResult:
        if not self.alive:
            return InjectResult.FATAL_TRANSPORT_ERROR
        if self.drop_rate and self._rng.random() < self.drop_rate:
            self.rejected[event.kind] += 1
            return InjectResult.FAIL

        handler = getattr(self, "_inject_" + event.kind, None)
        result = handler(event) if handler else InjectResult.SUCCESS
        if result == InjectResult.SUCCESS:
            self.injected[event.kind] += 1
        elif result == InjectResult.FAIL:
            self.rejected[event.kind] += 1
        return result

    def _inject_key(self, e) -> InjectResult:
        if e.action == ACTION_DOWN:
            if e.key_code in self.keys_down:
                return InjectResult.FAIL
            self.keys_down.add(e.key_code)
        elif e.action == ACTION_UP:
            if e.key_code not in self.keys_down:
                return InjectResult.FAIL
            self.keys_down.discard(e.key_code)
            if e.key_code == KEYCODE_HOME:
                self._start_activity(self.launcher, is_home=True)
        return InjectResult.SUCCESS

    def _inject_touch(self, e) -> InjectResult:
        for p in e.pointers:
            if not (0 <= p.x <= self.width and 0 <= p.y <= self.height):
                return InjectResult.FAIL
        action = e.action & 0xFF
        if action == ACTION_DOWN:
            if self.active_burst is not None:
                return InjectResult.FAIL
            self.active_burst = e.burst
        elif action in (ACTION_MOVE, ACTION_POINTER_DOWN, ACTION_POINTER_UP):
            if self.active_burst != e.burst:
                return InjectResult.FAIL
        elif action == ACTION_UP:
            if self.active_burst != e.burst:
                return InjectResult.FAIL
            self.active_burst = None
        return InjectResult.SUCCESS

    def _inject_rotation(self, e) -> InjectResult:
        self.rotation = e.degree
        return InjectResult.SUCCESS

    def _inject_permission(self, e) -> InjectResult:
        if e.permission not in self.permissions.get(e.package, ()):
            return InjectResult.FAIL
        key = (e.package, e.permission)
        if e.grant:
            self.granted.add(key)
        else:
            self.granted.discard(key)
        return InjectResult.SUCCESS

    def _inject_activity(self, e) -> InjectResult:
        if e.package in self.protected_packages:
            return InjectResult.SECURITY_ERROR
        self._start_activity(e.component)
        return InjectResult.SUCCESS

    def _start_activity(self, component: str, is_home: bool = False) -> None:
        package = component.split("/", 1)[0]
        allow = True
        if self.controller is not None:
            allow = self.controller.on_activity_starting(component, package, is_home)
        if allow:
            self.foreground = package

    def _inject_flip(self, e) -> InjectResult:
        self.keyboard_open = e.keyboard_open
        return InjectResult.SUCCESS

    # ---- diagnostics --------------------------------------------------------

    def collect_diagnostics(self, request: ReportRequest) -> List[str]:
        kind = request.kind
        if kind is ReportKind.ANR_TRACES:
            if not self.anr_traces:
                return []
            _, text = max(self.anr_traces, key=lambda t: t[0])
            return text.splitlines()
        if kind is ReportKind.MEMINFO:
            return [f"{app.split('/')[0]}: {1024 * (i + 1)} kB" for i, app in enumerate(self.apps)]
        if kind is ReportKind.PROCRANK:
            return [f"{i + 1:>5}  {app.split('/')[0]}" for i, app in enumerate(self.apps)]
        lines = [
            f"== {kind.name} ==",
            f"process: {request.process_name or '-'}",
            f"foreground: {self.foreground}",
            f"rotation: {self.rotation}",
            f"keyboard_open: {self.keyboard_open}",
        ]
        lines += [f"injected.{k}: {v}" for k, v in sorted(self.injected.items())]
        lines += [f"rejected.{k}: {v}" for k, v in sorted(self.rejected.items())]
        return lines
