# make_plots.py
# Usage:
#   pip install matplotlib
#   python make_plots.py --results_dir results

import argparse, os, json, collections
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt


def load_json(path):
    with open(path) as f:
        return json.load(f)


def load_jsonl(path):
    rows = []
    if not os.path.exists(path):
        return rows
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line:
                rows.append(json.loads(line))
    return rows


def bar_chart(labels, values, title, xlabel, ylabel, out_path, rotation=25):
    plt.figure()
    x = range(len(labels))
    plt.bar(x, values)
    plt.xticks(list(x), labels, rotation=rotation, ha="right")
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


def line_chart(xs, ys, title, xlabel, ylabel, out_path):
    plt.figure()
    plt.step(xs, ys, where="post")
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_path)
    plt.close()


def make_plots(results_dir):
    summary_path = os.path.join(results_dir, "summary.json")
    events_path = os.path.join(results_dir, "events.jsonl")
    if not os.path.exists(summary_path):
        raise SystemExit(f"Missing {summary_path}. Run run_monkey.py first.")

    summary = load_json(summary_path)
    written = []

    # -------- Bar: event mix --------
    mix = sorted(summary.get("event_mix", {}).items(), key=lambda kv: -kv[1])
    if mix:
        out = os.path.join(results_dir, "event_mix.png")
        bar_chart([k for k, _ in mix], [v for _, v in mix], "Injected Events by Kind", "Kind", "Count", out)
        written.append(out)

    # -------- Bar: dropped events --------
    dropped = summary.get("dropped", {})
    if dropped:
        out = os.path.join(results_dir, "dropped_events.png")
        bar_chart(list(dropped), list(dropped.values()), "Dropped Events", "Category", "Count", out, rotation=0)
        written.append(out)

    # -------- Line: cumulative incidents over events --------
    timeline = summary.get("timeline", [])
    if timeline:
        xs, ys = [], []
        for i, row in enumerate(sorted(timeline, key=lambda r: r.get("event", 0))):
            xs.append(row.get("event", 0))
            ys.append(i + 1)
        out = os.path.join(results_dir, "incidents_over_events.png")
        line_chart(xs, ys, "Cumulative Incidents", "Event #", "Incidents", out)
        written.append(out)

    # -------- Bar: gesture length distribution --------
    sizes = collections.Counter()
    for e in load_jsonl(events_path):
        if e.get("kind") == "touch":
            sizes[e.get("burst")] += 1
    if sizes:
        hist = collections.Counter(sizes.values())
        lengths = sorted(hist)
        out = os.path.join(results_dir, "gesture_lengths.png")
        bar_chart([str(n) for n in lengths], [hist[n] for n in lengths],
                  "Touch Gesture Length", "Events per gesture", "Gestures", out, rotation=0)
        written.append(out)
    return written


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--results_dir", default="results")
    args = ap.parse_args()
    make_plots(args.results_dir)
    print("Charts written to:", args.results_dir)


if __name__ == "__main__":
    main()
