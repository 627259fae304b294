# make_metrics.py
import argparse, json, os, collections


def load_summary(path):
    with open(path) as f:
        return json.load(f)


def load_events(path):
    events = []
    if not os.path.exists(path):
        return events
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                events.append(json.loads(line))
    return events


def compute_metrics(summary, events):
    injected = summary.get("events_injected", 0)
    count = summary.get("count", 0)
    seconds = summary.get("seconds", None)
    dropped = summary.get("dropped", {})
    mix = summary.get("event_mix", {})

    dropped_total = sum(dropped.values())
    throughput = injected / seconds if (seconds and seconds > 0) else None

    # dropped-bucket name -> event kind it counts
    bucket_kind = {"keys": "key", "pointers": "touch", "trackballs": "trackball",
                   "flips": "flip", "rotations": "rotation"}
    drop_rates = {}
    for bucket, n in dropped.items():
        sent = mix.get(bucket_kind.get(bucket, bucket), 0)
        drop_rates[bucket] = round(n / sent, 4) if sent else 0.0

    bursts = set()
    actions = collections.Counter()
    for e in events:
        if e.get("kind") in ("touch", "trackball"):
            bursts.add((e["kind"], e.get("burst")))
            actions[e.get("action")] += 1

    incidents = collections.Counter(t.get("what", "") for t in summary.get("timeline", []))

    return {
        "seed": summary.get("seed"),
        "count": count,
        "events_injected": injected,
        "completion": round(injected / count, 4) if count else 0.0,
        "exit_code": summary.get("exit_code"),
        "aborted": summary.get("aborted", False),
        "system_crashed": summary.get("system_crashed", False),
        "seconds": seconds,
        "throughput_events_per_sec": throughput,
        "dropped_total": dropped_total,
        "dropped": dropped,
        "drop_rates": drop_rates,
        "event_mix": mix,
        "gesture_bursts": len(bursts),
        "motion_actions": dict(sorted((str(k), v) for k, v in actions.items())),
        "incidents": incidents.most_common(),
        "reports_written": len(summary.get("reports_written", [])),
        "native_crashes": len(summary.get("native_crashes", [])),
    }


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--results_dir", default="results")
    ap.add_argument("--out_dir", default="results")
    args = ap.parse_args()

    summary = load_summary(os.path.join(args.results_dir, "summary.json"))
    events = load_events(os.path.join(args.results_dir, "events.jsonl"))
    metrics = compute_metrics(summary, events)

    os.makedirs(args.out_dir, exist_ok=True)
    with open(os.path.join(args.out_dir, "metrics.json"), "w") as f:
        json.dump(metrics, f, indent=2)

    md = []
    md.append("# Monkey Run Metrics\n")
    md.append(f"- Seed: **{metrics['seed']}**")
    md.append(f"- Events injected: **{metrics['events_injected']}** of {metrics['count']} "
              f"({metrics['completion']:.2%})")
    md.append(f"- Exit code: **{metrics['exit_code']}**")
    if metrics["throughput_events_per_sec"]:
        md.append(f"- Throughput: **{metrics['throughput_events_per_sec']:.1f} events/sec**")
    md.append(f"- Aborted: **{metrics['aborted']}**, system crashed: **{metrics['system_crashed']}**")
    md.append("")
    md.append("## Event mix")
    for k, v in sorted(metrics["event_mix"].items(), key=lambda kv: -kv[1]):
        md.append(f"- {k}: {v}")
    md.append("")
    md.append(f"## Dropped events ({metrics['dropped_total']})")
    for k, v in metrics["dropped"].items():
        md.append(f"- {k}: {v} (rate {metrics['drop_rates'].get(k, 0.0):.2%})")
    md.append("")
    md.append("## Incidents")
    for what, n in metrics["incidents"]:
        md.append(f"- {what}: {n}")
    md.append(f"- Reports written: {metrics['reports_written']}")
    md.append(f"- Native crashes: {metrics['native_crashes']}")
    with open(os.path.join(args.out_dir, "metrics.md"), "w") as f:
        f.write("\n".join(md))

    print("Wrote:", os.path.join(args.out_dir, "metrics.json"))
    print("Wrote:", os.path.join(args.out_dir, "metrics.md"))


if __name__ == "__main__":
    main()
