"""Tests for the simulated target and its fault-injecting variant."""
import os

import pytest

from config import MonkeyConfig
from coordinator import CrashCoordinator, ReportKind, ReportRequest, RunState
from events import (
    ACTION_DOWN, ACTION_MOVE, ACTION_POINTER_UP, ACTION_UP, KEYCODE_HOME, ActivityEvent, FlipEvent,
    KeyEvent, MotionEvent, PermissionEvent, Pointer, RotationEvent,
)
from faulty_sim import KEYCODE_CAMERA, FaultyDevice
from package_filter import PackageFilter
from target_sim import DeviceSimulator, InjectResult


def touch(action, burst=1, x=10.0, y=10.0):
    return MotionEvent(action, (Pointer(0, x, y),), burst)


class TestInvariants:
    def test_key_released_twice_fails(self) -> None:
        dev = DeviceSimulator()
        assert dev.inject(KeyEvent(ACTION_DOWN, 19)) == InjectResult.SUCCESS
        assert dev.inject(KeyEvent(ACTION_UP, 19)) == InjectResult.SUCCESS
        assert dev.inject(KeyEvent(ACTION_UP, 19)) == InjectResult.FAIL
        assert dev.rejected["key"] == 1

    def test_move_without_down_fails(self) -> None:
        dev = DeviceSimulator()
        assert dev.inject(touch(ACTION_MOVE)) == InjectResult.FAIL
        assert dev.inject(touch(ACTION_DOWN)) == InjectResult.SUCCESS
        assert dev.inject(touch(ACTION_MOVE)) == InjectResult.SUCCESS
        assert dev.inject(touch(ACTION_UP, burst=2)) == InjectResult.FAIL
        assert dev.inject(touch(ACTION_UP)) == InjectResult.SUCCESS

    def test_off_screen_fails(self) -> None:
        dev = DeviceSimulator(width=100, height=100)
        assert dev.inject(touch(ACTION_DOWN, x=101.0)) == InjectResult.FAIL

    def test_unknown_permission_fails(self) -> None:
        dev = DeviceSimulator()
        ok = PermissionEvent("com.example.notes", "android.permission.READ_CONTACTS", True)
        bad = PermissionEvent("com.example.notes", "android.permission.CAMERA", True)
        assert dev.inject(ok) == InjectResult.SUCCESS
        assert ("com.example.notes", "android.permission.READ_CONTACTS") in dev.granted
        assert dev.inject(bad) == InjectResult.FAIL

    def test_dead_device(self) -> None:
        dev = DeviceSimulator()
        dev.alive = False
        assert dev.inject(FlipEvent(True)) == InjectResult.FATAL_TRANSPORT_ERROR

    def test_protected_package(self) -> None:
        dev = DeviceSimulator(protected_packages={"com.example.settings"})
        result = dev.inject(ActivityEvent("com.example.settings/.Settings"))
        assert result == InjectResult.SECURITY_ERROR

    def test_drop_rate(self) -> None:
        dev = DeviceSimulator(drop_rate=1.0)
        assert dev.inject(RotationEvent(90)) == InjectResult.FAIL
        assert dev.rotation == 0


class TestActivityController:
    def test_rejected_start_keeps_foreground(self) -> None:
        dev = DeviceSimulator()
        dev.set_activity_controller(CrashCoordinator(
            MonkeyConfig(), RunState(), PackageFilter(denied={"com.example.camera"})))
        dev.inject(ActivityEvent("com.example.notes/.MainActivity"))
        assert dev.foreground == "com.example.notes"
        assert dev.inject(ActivityEvent("com.example.camera/.CameraActivity")) == InjectResult.SUCCESS
        assert dev.foreground == "com.example.notes"

    def test_home_key_starts_launcher_past_allowlist(self) -> None:
        dev = DeviceSimulator()
        dev.set_activity_controller(CrashCoordinator(
            MonkeyConfig(), RunState(), PackageFilter(allowed={"com.example.notes"}),
            dev.launcher_package()))
        dev.inject(ActivityEvent("com.example.notes/.MainActivity"))
        dev.inject(KeyEvent(ACTION_DOWN, KEYCODE_HOME))
        assert dev.foreground == "com.example.notes"
        dev.inject(KeyEvent(ACTION_UP, KEYCODE_HOME))
        assert dev.foreground == "com.example.launcher"

    def test_launcher_not_exempt_without_home(self) -> None:
        dev = DeviceSimulator()
        dev.set_activity_controller(CrashCoordinator(
            MonkeyConfig(), RunState(), PackageFilter(allowed={"com.example.notes"}),
            dev.launcher_package()))
        dev.inject(ActivityEvent("com.example.launcher/.Home"))
        assert dev.foreground is None


class TestDiagnostics:
    def test_latest_anr_trace(self) -> None:
        dev = DeviceSimulator()
        dev.anr_traces += [(2, "new\ntrace"), (1, "old")]
        assert dev.collect_diagnostics(ReportRequest(ReportKind.ANR_TRACES)) == ["new", "trace"]

    def test_no_anr_trace(self) -> None:
        assert DeviceSimulator().collect_diagnostics(ReportRequest(ReportKind.ANR_TRACES)) == []

    def test_bugreport_mentions_process(self) -> None:
        lines = DeviceSimulator().collect_diagnostics(
            ReportRequest(ReportKind.APP_CRASH_BUGREPORT, "com.example.notes"))
        assert "process: com.example.notes" in lines


class TestFaultyDevice:
    def connect(self, dev, **cfg):
        state = RunState()
        dev.set_activity_controller(CrashCoordinator(MonkeyConfig(**cfg), state, PackageFilter()))
        return state

    def join(self, dev):
        for t in dev.notifiers:
            t.join(5)

    def test_camera_key_crashes_app(self) -> None:
        dev = FaultyDevice()
        state = self.connect(dev)
        dev.inject(KeyEvent(ACTION_DOWN, KEYCODE_CAMERA))
        assert not dev.notifiers
        dev.inject(KeyEvent(ACTION_UP, KEYCODE_CAMERA))
        self.join(dev)
        assert state.aborted

    def test_persisted_270_rotation_hangs_app(self) -> None:
        dev = FaultyDevice()
        state = self.connect(dev, ignore_timeouts=True)
        dev.inject(RotationEvent(270, persist=False))
        assert not dev.notifiers
        dev.inject(RotationEvent(270, persist=True))
        self.join(dev)
        kinds = {r.kind for r in state.drain().reports}
        assert kinds == {ReportKind.ANR_TRACES, ReportKind.MEMINFO, ReportKind.PROCRANK}
        assert dev.anr_traces

    def test_pinch_lift_writes_tombstone(self, tmp_path) -> None:
        dev = FaultyDevice(tombstone_dir=tmp_path)
        two = (Pointer(0, 1.0, 1.0), Pointer(1, 5.0, 5.0))
        dev.inject(touch(ACTION_DOWN))
        dev.inject(MotionEvent(ACTION_POINTER_UP | (1 << 8), two, 1))
        assert os.listdir(tmp_path) == ["tombstone_00"]

    def test_transport_death(self) -> None:
        dev = FaultyDevice(fatal_after=2)
        results = [dev.inject(FlipEvent(i % 2 == 0)) for i in range(4)]
        assert results[:2] == [InjectResult.SUCCESS] * 2
        assert results[2:] == [InjectResult.FATAL_TRANSPORT_ERROR] * 2

    @pytest.mark.parametrize("every", [1, 2])
    def test_watchdog_every_nth_flip(self, every) -> None:
        dev = FaultyDevice(watchdog_every=every)
        state = self.connect(dev)
        for i in range(2):
            dev.inject(FlipEvent(i == 0))
        assert len(dev.notifiers) == 2 // every
        state.close()
        self.join(dev)
        assert state.aborted
