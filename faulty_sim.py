# faulty_sim.py (SIMULATION ONLY)
import logging
import os
import threading
from typing import Optional

from events import ACTION_POINTER_UP, ACTION_UP, KeyEvent
from target_sim import DeviceSimulator, InjectResult

log = logging.getLogger(__name__)

KEYCODE_CAMERA = 27


class FaultyDevice(DeviceSimulator):
    """
    Extends the clean simulator with DELIBERATE faults so a run has something to find:
    - App crash: pressing the camera key crashes the foreground app.
    - ANR: rotating to 270 degrees with persist set hangs the foreground app.
    - Watchdog: every `watchdog_every`-th keyboard flip wedges the whole system.
    - Native crash: lifting the second finger of a pinch writes a tombstone.
    - Transport death: after `fatal_after` injections the device stops answering.
    Crash reports arrive on their own threads, like a real target's would.
    """

    def __init__(self, tombstone_dir=None, watchdog_every: int = 3,
                 fatal_after: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.tombstone_dir = os.fspath(tombstone_dir) if tombstone_dir is not None else None
        self.watchdog_every = watchdog_every
        self.fatal_after = fatal_after
        self.flips = 0
        self.total = 0
        self.tombstones = 0
        self.notifiers = []

    def inject(self, event) -> InjectResult:
        self.total += 1
        if self.fatal_after is not None and self.total > self.fatal_after:
            if self.alive:
                log.warning("[Simulated transport death] device stopped answering")
            self.alive = False

        result = super().inject(event)
        if result != InjectResult.SUCCESS:
            return result

        app = self.foreground or "system"
        if isinstance(event, KeyEvent) and event.key_code == KEYCODE_CAMERA and event.action == ACTION_UP:
            log.warning("[Simulated crash] %s died on camera key", app)
            self._notify("on_process_crashed", app, 1000 + self.total,
                         "java.lang.IllegalStateException", "camera busy",
                         "at com.example.Camera.open(Camera.java:42)\nat android.app.Activity.onKey")
        elif event.kind == "rotation" and event.degree == 270 and event.persist:
            log.warning("[Simulated ANR] %s stopped responding after rotation", app)
            self.anr_traces.append((self.total, f"----- pid {1000 + self.total} -----\n"
                                                f"Cmd line: {app}\n\"main\" waiting on lock"))
            self._notify("on_process_unresponsive", app, 1000 + self.total,
                         f"CPU usage: 98% {app}")
        elif event.kind == "flip":
            self.flips += 1
            if self.watchdog_every and self.flips % self.watchdog_every == 0:
                log.warning("[Simulated watchdog] system_server blocked on input")
                self._notify("on_system_unresponsive", "Blocked in handler on input thread")
        elif event.kind == "touch" and (event.action & 0xFF) == ACTION_POINTER_UP:
            self._write_tombstone()
        return result

    def _notify(self, method: str, *args) -> None:
        if self.controller is None:
            return
        t = threading.Thread(target=getattr(self.controller, method), args=args,
                             name=f"notify-{method}", daemon=True)
        self.notifiers.append(t)
        t.start()

    def _write_tombstone(self) -> None:
        if self.tombstone_dir is None:
            return
        os.makedirs(self.tombstone_dir, exist_ok=True)
        path = os.path.join(self.tombstone_dir, f"tombstone_{self.tombstones:02d}")
        self.tombstones += 1
        with open(path, "w") as f:
            f.write(f"*** *** *** pid: {1000 + self.total} signal 11 (SIGSEGV)\n")
        log.warning("[Simulated native crash] wrote %s", path)
