# config.py
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Mapping, Optional


@dataclass(frozen=True)
class MonkeyConfig:
    count: int = 1000
    seed: int = 0                      # 0: pick one from the clock at run start
    verbose: int = 0
    throttle_ms: int = 0
    randomize_throttle: bool = False
    weights: Mapping[str, float] = field(default_factory=dict)

    ignore_crashes: bool = False
    ignore_timeouts: bool = False
    ignore_security_exceptions: bool = False
    monitor_native_crashes: bool = False
    ignore_native_crashes: bool = False
    kill_process_after_error: bool = False
    match_description: Optional[str] = None

    request_bugreport: bool = False
    periodic_bugreport_frequency: Optional[int] = None
    send_no_events: bool = False

    allowed_packages: FrozenSet[str] = frozenset()
    denied_packages: FrozenSet[str] = frozenset()

    tombstone_dir: Path = Path("/data/tombstones")
    reports_dir: Optional[Path] = None
    max_key_attempts: int = 1000
