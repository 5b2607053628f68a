# core/observe.py
import json
import sys
from typing import Optional, Dict, Any, List


class TraceSink:
    """Simple sink that appends JSON lines to a file path or a list-like collector."""
    def __init__(self, path: Optional[str] = None, collector: Optional[list] = None):
        self.path = path
        self.collector = collector
        self._fh = None

    def open(self):
        """Open the target file now so a bad path fails before any event."""
        if self.path and self._fh is None:
            # transition logs run to millions of lines; keep the file open
            self._fh = open(self.path, "a", encoding="utf-8")
        return self

    def emit(self, event: Dict[str, Any]):
        if self.path:
            if self._fh is None:
                self.open()
            self._fh.write(json.dumps(event, separators=(",", ":")) + "\n")
        elif self.collector is not None:
            self.collector.append(event)

    def close(self):
        if self._fh is not None:
            self._fh.close()
            self._fh = None


def new_metrics() -> Dict[str, Any]:
    return {
        "line_count": 0,
        "bytecode_count": 0,
        "junk_lines": 0,
        "frames_created": 0,
        "threads": 0,
        "returns": 0,
        "throws": 0,
        "unwinds": 0,
        "unwind_fallbacks": 0,
        "max_stack_depth": 0,
        "by_thread": {},            # thread -> bytecode count
    }


def debug(verbose: bool, *parts: Any):
    if verbose:
        print("DEBUG:", *parts, file=sys.stderr)


def load_events(path: str) -> List[Dict[str, Any]]:
    events = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                events.append(json.loads(line))
    return events
