# package_filter.py
import logging
from typing import Iterable, Set

from errors import ConfigurationError

log = logging.getLogger(__name__)


class PackageFilter:
    """Decides which packages the target may bring to the foreground."""

    def __init__(self, allowed: Iterable[str] = (), denied: Iterable[str] = ()):
        self.allowed: Set[str] = set(allowed)
        self.denied: Set[str] = set(denied)
        if self.allowed and self.denied:
            raise ConfigurationError("can't specify both a package allowlist and a denylist")

    def is_allowed(self, package: str) -> bool:
        # deny-list wins whenever one is configured
        if self.denied:
            return package not in self.denied
        if self.allowed:
            return package in self.allowed
        return True

    def dump(self) -> None:
        for pkg in sorted(self.allowed):
            log.info(":AllowPackage: %s", pkg)
        for pkg in sorted(self.denied):
            log.info(":DisallowPackage: %s", pkg)


def load_package_list(path) -> Set[str]:
    """One package per line; blank lines are skipped."""
    try:
        with open(path) as f:
            return {line.strip() for line in f if line.strip()}
    except OSError as e:
        raise ConfigurationError(f"error reading package list {path}: {e}") from e
