"""Pytest configuration for the monkey test suite."""
import random

import pytest
from hypothesis import settings

settings.register_profile("monkey", max_examples=100, deadline=None)
settings.load_profile("monkey")


class StubDevice:
    """Target double: answers inject() from a script of results, records events."""

    def __init__(self, results=None, apps=("com.example.app/.Main",), missing_keys=(),
                 permissions=None, size=(480, 800), launcher="com.example.launcher"):
        self.results = list(results or [])
        self.apps = list(apps)
        self.missing_keys = set(missing_keys)
        self.permissions = permissions or {}
        self.size = size
        self.launcher = launcher
        self.events = []
        self.controller = None
        self.diagnostics = []

    def display_size(self):
        return self.size

    def has_key(self, code):
        return code not in self.missing_keys

    def runtime_permissions(self):
        return dict(self.permissions)

    def main_apps(self):
        return list(self.apps)

    def launcher_package(self):
        return self.launcher

    def set_activity_controller(self, controller):
        self.controller = controller

    def inject(self, event):
        self.events.append(event)
        if self.results:
            return self.results.pop(0)
        return 1

    def collect_diagnostics(self, request):
        self.diagnostics.append(request)
        return [f"report {request.kind.name}"]


@pytest.fixture
def device():
    return StubDevice()


@pytest.fixture
def make_device():
    return StubDevice


@pytest.fixture
def rng():
    return random.Random(42)
