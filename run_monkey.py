import argparse, json, logging, os, signal, time
from pathlib import Path

from config import MonkeyConfig
from controller import Monkey
from errors import ConfigurationError
from event_source import CATEGORIES
from faulty_sim import FaultyDevice
from package_filter import load_package_list
from target_sim import DeviceSimulator

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def build_parser():
    ap = argparse.ArgumentParser(description="Inject a seeded stream of random input events into a simulated device.")
    ap.add_argument("count", type=int, help="number of events to inject")
    ap.add_argument("-s", "--seed", type=int, default=0)
    ap.add_argument("-v", "--verbose", action="count", default=0)
    ap.add_argument("-p", "--package", action="append", default=[], dest="packages",
                    help="only allow this package (repeatable)")
    ap.add_argument("--throttle", type=int, default=0, help="delay in ms between events")
    ap.add_argument("--randomize-throttle", action="store_true")
    for name in CATEGORIES:
        ap.add_argument(f"--pct-{name}", type=float, default=None, metavar="PCT")
    ap.add_argument("--ignore-crashes", action="store_true")
    ap.add_argument("--ignore-timeouts", action="store_true")
    ap.add_argument("--ignore-security-exceptions", action="store_true")
    ap.add_argument("--monitor-native-crashes", action="store_true")
    ap.add_argument("--ignore-native-crashes", action="store_true")
    ap.add_argument("--kill-process-after-error", action="store_true")
    ap.add_argument("--match-description", default=None)
    ap.add_argument("--bugreport", action="store_true")
    ap.add_argument("--periodic-bugreport", type=int, default=None, metavar="N")
    ap.add_argument("--dbg-no-events", action="store_true")
    ap.add_argument("--pkg-blacklist-file", default=None)
    ap.add_argument("--pkg-whitelist-file", default=None)
    ap.add_argument("--results_dir", default="results")
    ap.add_argument("--faulty", action="store_true", help="use the simulator with deliberate faults")
    ap.add_argument("--drop-rate", type=float, default=0.0)
    return ap


def config_from_args(args) -> MonkeyConfig:
    allowed = set(args.packages)
    denied = set()
    if args.pkg_whitelist_file:
        allowed |= load_package_list(args.pkg_whitelist_file)
    if args.pkg_blacklist_file:
        denied |= load_package_list(args.pkg_blacklist_file)
    weights = {
        name: getattr(args, f"pct_{name}")
        for name in CATEGORIES
        if getattr(args, f"pct_{name}") is not None
    }
    return MonkeyConfig(
        count=args.count,
        seed=args.seed,
        verbose=args.verbose,
        throttle_ms=args.throttle,
        randomize_throttle=args.randomize_throttle,
        weights=weights,
        ignore_crashes=args.ignore_crashes,
        ignore_timeouts=args.ignore_timeouts,
        ignore_security_exceptions=args.ignore_security_exceptions,
        monitor_native_crashes=args.monitor_native_crashes,
        ignore_native_crashes=args.ignore_native_crashes,
        kill_process_after_error=args.kill_process_after_error,
        match_description=args.match_description,
        request_bugreport=args.bugreport,
        periodic_bugreport_frequency=args.periodic_bugreport,
        send_no_events=args.dbg_no_events,
        allowed_packages=frozenset(allowed),
        denied_packages=frozenset(denied),
        tombstone_dir=Path(args.results_dir) / "tombstones",
        reports_dir=Path(args.results_dir) / "reports",
    )


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format=LOG_FORMAT)
    log = logging.getLogger("run_monkey")

    try:
        cfg = config_from_args(args)
    except ConfigurationError as e:
        log.error("** %s", e)
        return e.exit_code

    if args.faulty:
        device = FaultyDevice(tombstone_dir=cfg.tombstone_dir, drop_rate=args.drop_rate, seed=args.seed)
    else:
        device = DeviceSimulator(drop_rate=args.drop_rate, seed=args.seed)

    os.makedirs(args.results_dir, exist_ok=True)
    t0 = time.time()
    with open(os.path.join(args.results_dir, "events.jsonl"), "wb") as event_log:
        monkey = Monkey(cfg, device, event_log=event_log)
        previous = signal.signal(signal.SIGINT, lambda signum, frame: monkey.stop())
        try:
            code = monkey.run()
        finally:
            signal.signal(signal.SIGINT, previous)
    dt = time.time() - t0

    summary = {**monkey.summary(), "exit_code": code, "seconds": dt}
    with open(os.path.join(args.results_dir, "summary.json"), "w") as f:
        json.dump(summary, f, indent=2)

    print("\n=== MONKEY SUMMARY ===")
    print(json.dumps(summary, indent=2))
    print(f"\nEvents saved to {args.results_dir}/events.jsonl\n")
    return code


if __name__ == "__main__":
    raise SystemExit(main())
