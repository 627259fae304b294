# controller.py
import logging
import random
import threading
import time
from collections import Counter
from typing import Any, Dict, Optional

from config import MonkeyConfig
from coordinator import CrashCoordinator, ReportKind, ReportRequest, RunState
from errors import ConfigurationError, NoLaunchableApps
from event_source import EventSource, RandomEventSource
from events import RotationEvent, serialize
from native_crash import NativeCrashPoller
from package_filter import PackageFilter
from reports import ReportSink, bugreport_name, calendar_time
from target_sim import InjectResult

log = logging.getLogger(__name__)

DROP_BUCKETS = {
    "key": "keys",
    "touch": "pointers",
    "trackball": "trackballs",
    "flip": "flips",
    "rotation": "rotations",
}


class Monkey:
    """Drives one run: setup, the injection loop, and the final report.

    Everything a run touches hangs off this object (config, rng, run state,
    counters); the target only sees the CrashCoordinator it registers.
    """

    def __init__(self, config: MonkeyConfig, device, source: Optional[EventSource] = None,
                 poller: Optional[NativeCrashPoller] = None, event_log=None):
        self.config = config
        self.device = device
        self.seed = config.seed or (int(time.time() * 1000) + id(self))
        self.rng = random.Random(self.seed)
        self.run_state = RunState()
        self.source = source
        self.poller = poller
        if self.poller is None and config.monitor_native_crashes:
            self.poller = NativeCrashPoller(config.tombstone_dir)
        self.reports = ReportSink(config.reports_dir if config.request_bugreport else None)
        self.event_log = event_log
        self.package_filter: Optional[PackageFilter] = None
        self.coordinator: Optional[CrashCoordinator] = None

        self.dropped = {bucket: 0 for bucket in DROP_BUCKETS.values()}
        self.event_mix = Counter()
        self.stats = {
            "events_injected": 0, "cycles": 0,
            "aborted": False, "system_crashed": False, "loop_error": None,
        }
        self.timeline = []
        self._interrupt = threading.Event()

    # ---- setup --------------------------------------------------------------

    def setup(self) -> None:
        cfg = self.config
        if cfg.throttle_ms < 0:
            raise ConfigurationError(f"throttle must be >= 0, got {cfg.throttle_ms}")
        freq = cfg.periodic_bugreport_frequency
        if freq is not None and freq <= 0:
            raise ConfigurationError(f"periodic bugreport frequency must be > 0, got {freq}")
        self.package_filter = PackageFilter(cfg.allowed_packages, cfg.denied_packages)
        if cfg.verbose > 0:
            log.info(":Monkey: seed=%d count=%d", self.seed, cfg.count)
            self.package_filter.dump()

        apps = [a for a in self.device.main_apps()
                if self.package_filter.is_allowed(a.split("/", 1)[0])]
        if not apps:
            raise NoLaunchableApps("no activities found to run, monkey aborted")

        self.coordinator = CrashCoordinator(cfg, self.run_state, self.package_filter,
                                            self.device.launcher_package())
        self.device.set_activity_controller(self.coordinator)

        if self.source is None:
            if cfg.verbose >= 2:
                log.info("// Seeded: %d", self.seed)
            src = RandomEventSource(self.rng, self.device, apps,
                                    throttle_ms=cfg.throttle_ms,
                                    randomize_throttle=cfg.randomize_throttle,
                                    max_key_attempts=cfg.max_key_attempts)
            src.verbose = cfg.verbose
            src.weights.set_user_weights(cfg.weights)
            # a random run always opens on some app
            src.generate_activity()
            self.source = src
        self.source.validate()

    def run(self) -> int:
        """Process-style result: 0 for a full run, events-so-far if cut short, <0 on bad setup."""
        cfg = self.config
        try:
            self.setup()
        except ConfigurationError as e:
            log.error("** %s", e)
            return e.exit_code

        try:
            crashed_at = self.run_cycles()
        finally:
            self._restore_rotation()
            self._finish()

        if cfg.verbose > 0:
            log.info(":Dropped: keys=%d pointers=%d trackballs=%d flips=%d rotations=%d",
                     self.dropped["keys"], self.dropped["pointers"], self.dropped["trackballs"],
                     self.dropped["flips"], self.dropped["rotations"])

        if crashed_at < cfg.count - 1:
            log.error("** System appears to have crashed at event %d of %d using seed %d",
                      crashed_at, cfg.count, self.seed)
            return crashed_at
        if cfg.verbose > 0:
            log.info("// Monkey finished")
        return 0

    def interrupt(self) -> None:
        """Cut short the current throttle wait."""
        self._interrupt.set()

    def stop(self) -> None:
        """Abort at the next iteration, waking the loop if it is throttling."""
        self.run_state.request_abort()
        self.interrupt()

    # ---- main loop ----------------------------------------------------------

    def run_cycles(self) -> int:
        """Run up to `count` cycles; returns the number of events injected."""
        cfg = self.config
        event_counter = 0
        cycle_counter = 0
        system_crashed = False

        try:
            while not system_crashed and cycle_counter < cfg.count:
                drained = self.run_state.drain()
                abort = drained.abort
                reports = list(drained.reports)
                if drained.acknowledged_hang:
                    self._note(event_counter, "watchdog acknowledged")

                if self.poller is not None:
                    # the first poll only sets up the baseline
                    if self.poller.poll() and event_counter > 0:
                        log.info("** New native crash detected.")
                        self._note(event_counter, "native crash")
                        if cfg.request_bugreport:
                            reports.append(ReportRequest(ReportKind.NATIVE_CRASH_BUGREPORT))
                        if not cfg.ignore_native_crashes or cfg.kill_process_after_error:
                            self.run_state.request_abort()
                            abort = True

                # reports run with the lock released so notifiers can keep posting
                self._write_reports(reports, event_counter)

                if abort:
                    log.info("** Monkey aborted due to error.")
                    log.info("Events injected: %d", event_counter)
                    self.stats["aborted"] = True
                    self._note(event_counter, "abort")
                    return self._done(event_counter, cycle_counter)

                if cfg.send_no_events:
                    event_counter += 1
                    cycle_counter += 1
                    continue

                if cfg.verbose > 0 and event_counter % 100 == 0 and event_counter != 0:
                    log.info("    //[calendar_time:%s system_uptime:%d]",
                             calendar_time(), int(time.monotonic() * 1000))
                    log.info("    // Sending event #%d", event_counter)

                ev = self.source.next_event()
                if ev is not None:
                    result = self._inject(ev)
                    if result == InjectResult.FAIL:
                        log.info("    // Injection Failed")
                        bucket = DROP_BUCKETS.get(ev.kind)
                        if bucket is not None:
                            self.dropped[bucket] += 1
                    elif result == InjectResult.FATAL_TRANSPORT_ERROR:
                        system_crashed = True
                        log.error("** Error: transport failure while injecting event.")
                        self._note(event_counter, "transport failure")
                    elif result == InjectResult.SECURITY_ERROR:
                        system_crashed = not cfg.ignore_security_exceptions
                        if system_crashed:
                            log.error("** Error: security failure while injecting event.")
                            self._note(event_counter, "security failure")

                    # throttling is not an event
                    if ev.kind != "throttle":
                        event_counter += 1
                        self.event_mix[ev.kind] += 1
                        if self.event_log is not None:
                            self.event_log.write(serialize(ev) + b"\n")
                        if self.source.counts_events:
                            cycle_counter += 1
                elif not self.source.counts_events:
                    cycle_counter += 1
                    freq = cfg.periodic_bugreport_frequency
                    if freq and cycle_counter % freq == 0:
                        self.run_state.post(ReportRequest(ReportKind.PERIODIC_BUGREPORT))
                else:
                    # source has nothing more to give
                    break
        except Exception as e:
            log.exception("** Error: an exception occurred in the event loop")
            self.stats["aborted"] = True
            self.stats["loop_error"] = f"{type(e).__name__}: {e}"
            self._note(event_counter, "loop error")

        self.stats["system_crashed"] = system_crashed
        log.info("Events injected: %d", event_counter)
        return self._done(event_counter, cycle_counter)

    def _done(self, events: int, cycles: int) -> int:
        self.stats["events_injected"] = events
        self.stats["cycles"] = cycles
        return events

    def _inject(self, ev) -> InjectResult:
        if ev.kind == "throttle":
            if self.config.verbose > 1:
                log.info("Wait Event for %d milliseconds", ev.duration_ms)
            if self._interrupt.wait(ev.duration_ms / 1000.0):
                self._interrupt.clear()
                log.info("** Monkey interrupted in sleep.")
                return InjectResult.FAIL
            return InjectResult.SUCCESS
        return InjectResult(self.device.inject(ev))

    # ---- reports ------------------------------------------------------------

    def _write_reports(self, requests, event_counter: int) -> None:
        for req in requests:
            if req.kind.is_bugreport:
                prefix = req.kind.value
                if req.process_name:
                    prefix += req.process_name + "_"
                name = bugreport_name(prefix)
            else:
                name = req.kind.value
            try:
                lines = list(self.device.collect_diagnostics(req))
            except Exception:
                log.exception("// Exception collecting %s", name)
                continue
            self.reports.write(name, lines)
            self._note(event_counter, f"report {req.kind.name}")

    def _restore_rotation(self) -> None:
        if self.coordinator is None:
            return
        try:
            self.device.inject(RotationEvent(0, False))
        except Exception:
            log.exception("** Failed to restore rotation")

    def _finish(self) -> None:
        drained = self.run_state.drain()
        self._write_reports(drained.reports, self.stats["events_injected"])
        self.run_state.close()

    def _note(self, event_counter: int, what: str) -> None:
        self.timeline.append({"event": event_counter, "what": what, "t": time.time()})

    def summary(self) -> Dict[str, Any]:
        return {
            "seed": self.seed,
            "count": self.config.count,
            "events_injected": self.stats["events_injected"],
            "cycles": self.stats["cycles"],
            "aborted": self.stats["aborted"],
            "system_crashed": self.stats["system_crashed"],
            "loop_error": self.stats["loop_error"],
            "dropped": dict(self.dropped),
            "event_mix": dict(sorted(self.event_mix.items())),
            "reports_written": list(self.reports.written),
            "reports_failed": list(self.reports.failed),
            "native_crashes": list(self.poller.found) if self.poller else [],
            "timeline": list(self.timeline),
        }
