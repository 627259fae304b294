# coordinator.py
"""Crash/hang notifications from the target, and the state they share with the loop.

The target calls CrashCoordinator from its own threads. Nothing here raises
across that boundary: every notification becomes a message on RunState, which
the cycle controller drains once per iteration.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from package_filter import PackageFilter

log = logging.getLogger(__name__)


class ReportKind(Enum):
    # value is the report name (bugreports get a timestamp appended)
    ANR_TRACES = "anr traces"
    MEMINFO = "meminfo"
    PROCRANK = "procrank"
    ANR_BUGREPORT = "anr_"
    WATCHDOG_BUGREPORT = "anr_watchdog_"
    APP_CRASH_BUGREPORT = "app_crash"
    NATIVE_CRASH_BUGREPORT = "native_crash_"
    PERIODIC_BUGREPORT = "Bugreport_"

    @property
    def is_bugreport(self) -> bool:
        return self.value.endswith("_") or self is ReportKind.APP_CRASH_BUGREPORT


@dataclass(frozen=True)
class ReportRequest:
    kind: ReportKind
    process_name: Optional[str] = None


@dataclass
class Drained:
    """What one iteration took off the channel."""
    reports: List[ReportRequest] = field(default_factory=list)
    abort: bool = False
    acknowledged_hang: bool = False


class RunState:
    """Single-consumer channel between notifier threads and the cycle controller.

    One condition variable guards everything. Notifiers only append under it;
    the controller drains and clears under it, then does any I/O after release.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._inbox = deque()
        self._abort = False
        self._hang_waiting = False
        self._closed = False

    def post(self, *requests: ReportRequest, abort: bool = False) -> None:
        with self._cond:
            self._post_locked(requests, abort)

    def request_abort(self) -> None:
        with self._cond:
            self._abort = True

    @property
    def aborted(self) -> bool:
        with self._cond:
            return self._abort

    @property
    def hang_waiting(self) -> bool:
        with self._cond:
            return self._hang_waiting

    def pending(self) -> int:
        with self._cond:
            return len(self._inbox)

    def post_and_wait(self, *requests: ReportRequest, abort: bool = False) -> None:
        """Post, then block until the controller's next drain acknowledges it."""
        with self._cond:
            self._post_locked(requests, abort)
            if self._closed:
                return
            self._hang_waiting = True
            while self._hang_waiting and not self._closed:
                self._cond.wait()

    def drain(self) -> Drained:
        with self._cond:
            out = Drained(abort=self._abort)
            seen = {}
            while self._inbox:
                req = self._inbox.popleft()
                # one action per kind; latest process name wins
                seen[req.kind] = req
            out.reports = list(seen.values())
            if self._hang_waiting:
                self._hang_waiting = False
                out.acknowledged_hang = True
                self._cond.notify_all()
            return out

    def close(self) -> None:
        """End of run: release anyone still blocked in post_and_wait."""
        with self._cond:
            self._closed = True
            self._hang_waiting = False
            self._cond.notify_all()

    def _post_locked(self, requests, abort: bool) -> None:
        self._inbox.extend(requests)
        if abort:
            self._abort = True


class CrashCoordinator:
    """Notification surface registered with the target (its activity controller)."""

    def __init__(self, config, run_state: RunState, package_filter: PackageFilter,
                 launcher_package: Optional[str] = None):
        self.config = config
        self.run_state = run_state
        self.package_filter = package_filter
        self.launcher_package = launcher_package
        self.current_package: Optional[str] = None

    def _matches(self, *texts: Optional[str]) -> bool:
        needle = self.config.match_description
        if needle is None:
            return True
        return any(needle in t for t in texts if t)

    # ---- activity gating --------------------------------------------------

    def on_activity_starting(self, component: str, package: str, is_home: bool = False) -> bool:
        allow = self.package_filter.is_allowed(package)
        if not allow and is_home and package == self.launcher_package:
            # launching home with the launcher filtered out would wedge the target
            allow = True
        if self.config.verbose > 0:
            log.info("    // %s start of %s in package %s",
                     "Allowing" if allow else "Rejecting", component, package)
        self.current_package = package
        return allow

    def on_activity_resuming(self, package: str) -> bool:
        log.info("    // activityResuming(%s)", package)
        allow = self.package_filter.is_allowed(package)
        if not allow and self.config.verbose > 0:
            log.info("    // Rejecting resume of package %s", package)
        self.current_package = package
        return allow

    # ---- failures ---------------------------------------------------------

    def on_process_crashed(self, process_name: str, pid: int, short_msg: str,
                           long_msg: str, stack_trace: str) -> bool:
        """Returns True to keep the crashed process alive for inspection."""
        log.error("// CRASH: %s (pid %d)", process_name, pid)
        log.error("// Short Msg: %s", short_msg)
        log.error("// Long Msg: %s", long_msg)
        log.error("// %s", (stack_trace or "").replace("\n", "\n// "))

        cfg = self.config
        if not self._matches(short_msg, long_msg, stack_trace):
            return False
        if cfg.ignore_crashes and not cfg.request_bugreport:
            return False

        requests = ()
        if cfg.request_bugreport:
            requests = (ReportRequest(ReportKind.APP_CRASH_BUGREPORT, process_name),)
        self.run_state.post(*requests, abort=not cfg.ignore_crashes)
        return not cfg.kill_process_after_error

    def on_app_early_not_responding(self, process_name: str, pid: int, annotation: str) -> int:
        return 0

    def on_process_unresponsive(self, process_name: str, pid: int, process_stats: str) -> int:
        """Returns -1 to kill the process, 1 to keep waiting."""
        log.error("// NOT RESPONDING: %s (pid %d)", process_name, pid)
        log.error("%s", process_stats)

        cfg = self.config
        if self._matches(process_stats):
            requests = [
                ReportRequest(ReportKind.ANR_TRACES),
                ReportRequest(ReportKind.MEMINFO),
                ReportRequest(ReportKind.PROCRANK),
            ]
            if cfg.request_bugreport:
                requests.append(ReportRequest(ReportKind.ANR_BUGREPORT, process_name))
            self.run_state.post(*requests, abort=not cfg.ignore_timeouts)
        return -1 if cfg.kill_process_after_error else 1

    def on_system_unresponsive(self, message: str) -> int:
        """Watchdog report. Blocks until the cycle controller has seen it."""
        log.error("// WATCHDOG: %s", message)

        cfg = self.config
        requests = ()
        abort = False
        if self._matches(message):
            abort = not cfg.ignore_crashes
            if cfg.request_bugreport:
                requests = (ReportRequest(ReportKind.WATCHDOG_BUGREPORT),)
        self.run_state.post_and_wait(*requests, abort=abort)
        return -1 if cfg.kill_process_after_error else 1
