# bytestacks/tools/trace_analyse.py
import sys
from collections import Counter

from ..core.observe import load_events


def analyse(path: str) -> dict:
    events = Counter()
    entered = Counter()
    threads = Counter()
    anomalies = Counter()
    depth_hist = Counter()

    for ev in load_events(path):
        kind = ev.get("event", "?")
        events[kind] += 1
        threads[ev.get("thread", "?")] += 1
        depth_hist[ev.get("stack_depth", 0)] += 1
        if kind in ("enter", "reenter"):
            entered[ev.get("frame", "?")] += 1
        for a in ev.get("anomalies", []) or []:
            anomalies[a] += 1

    return {
        "events": dict(events),
        "top_frames": entered.most_common(10),
        "threads": dict(threads),
        "max_stack_depth": max(depth_hist.keys() or [0]),
        "anomalies": anomalies.most_common(),
    }


def print_summary(summary: dict):
    print("Events:", summary["events"])
    print("Top entered frames:", summary["top_frames"])
    print("By thread:", summary["threads"])
    print("Max stack depth:", summary["max_stack_depth"])
    print("Anomalies:", summary["anomalies"])


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m bytestacks.tools.trace_analyse <transitions.jsonl>")
        sys.exit(2)
    print_summary(analyse(sys.argv[1]))
