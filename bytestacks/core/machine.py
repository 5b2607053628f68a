# machine.py: per-thread stack machine rebuilding call trees from bytecode traces
from typing import Dict, Iterable, Optional, Tuple

from .classify import LineKind, classify_line, closes_frame, throws, thread_of, method_name
from .frames import CallFrame, new_root
from .observe import TraceSink, new_metrics, debug

# Frame transitions reported by resolve_frame
STAY = "stay"
ENTER = "enter"
REENTER = "reenter"
RETURN = "return"
UNWIND = "unwind"
UNWIND_FALLBACK = "unwind_fallback"

DEFAULT_LOOKBACK = 2


def _root_of(frame: CallFrame) -> CallFrame:
    while frame.parent is not None:
        frame = frame.parent
    return frame


def resolve_frame(cursor: CallFrame, name: str, exception_pending: bool,
                  lookback: int = DEFAULT_LOOKBACK) -> Tuple[CallFrame, str]:
    """
    Reconcile a thread's cursor with the frame named by a block header.
    Returns (new_cursor, transition):
      exception pending:
        - nearest non-root frame named 'name' from the cursor upwards -> UNWIND
        - otherwise a child 'name' under the cursor's grandparent (root if
          there is none) -> UNWIND_FALLBACK
      no exception:
        - same name as the cursor -> STAY
        - a non-root ancestor within 'lookback' levels -> RETURN
        - otherwise a child of the cursor -> ENTER (new) or REENTER (reused)
    """
    if exception_pending:
        f = cursor
        while f.parent is not None and f.name != name:
            f = f.parent
        if f.parent is not None:
            return f, UNWIND
        parent = cursor.parent
        base = parent.parent if parent is not None and parent.parent is not None else _root_of(cursor)
        return base.enter(name), UNWIND_FALLBACK

    if cursor.name == name:
        return cursor, STAY

    f = cursor
    steps = 0
    while steps < lookback and f.parent is not None and f.name != name:
        f = f.parent
        steps += 1
    if f.parent is not None and f.name == name:
        return f, RETURN

    transition = REENTER if name in cursor.children else ENTER
    return cursor.enter(name), transition


class ThreadState:
    """Cursor and pending-throw flag of one traced thread."""
    def __init__(self, cursor: CallFrame):
        self.cursor = cursor
        self.threw = False

    def __repr__(self):
        return f"ThreadState(cursor={self.cursor.name!r}, threw={self.threw})"


class StackMachine:
    """
    Streaming interpreter for -XX:+TraceBytecodes output.
    Feed it trimmed or untrimmed lines in order; the call tree under
    'root' holds per-frame bytecode counts when the stream ends.
      - blank lines close blocks (return/goto pops, throw arms an unwind)
      - the first line of a block names the frame the thread is in
      - every further line of a block is one executed bytecode
    Malformed lines never raise; they are skipped or best-effort attached.
    """

    def __init__(
        self,
        root: Optional[CallFrame] = None,
        constants=None,
        main_thread_only: bool = False,
        lookback: int = DEFAULT_LOOKBACK,
        verbose: bool = False,
    ):
        self.root = root if root is not None else new_root()
        self.constants = constants          # optional scanner with observe(line)
        self.main_thread_only = main_thread_only
        self.lookback = lookback
        self.verbose = verbose

        self.threads: Dict[str, ThreadState] = {}
        self.main_thread: Optional[str] = None
        self.current_thread: Optional[str] = None
        self.previous_line = ""
        self.line_num = 0

        # Observability
        self.trace_sink = None          # type: Optional[TraceSink]
        self.metrics = new_metrics()
        self._anomaly_rules = []        # list of callables(event)->list[str]

    def set_trace_sink(self, sink):
        self.trace_sink = sink

    def add_anomaly_rule(self, rule_callable):
        """rule(event_dict) -> list[str] of triggered rule IDs"""
        self._anomaly_rules.append(rule_callable)

    def cursor(self, thread: str) -> Optional[CallFrame]:
        state = self.threads.get(thread)
        return state.cursor if state else None

    # -----------------------------------------------------------------------
    # Line processing
    # -----------------------------------------------------------------------
    def process(self, line: str):
        line = line.strip()
        self.line_num += 1
        self.metrics["line_count"] += 1
        kind = classify_line(line, self.previous_line)

        if kind is LineKind.BLANK:
            if self.previous_line:
                self._close_block()
            self.previous_line = line
        elif kind is LineKind.JUNK:
            self.metrics["junk_lines"] += 1
        elif kind is LineKind.FRAME_HEADER:
            # a discarded header keeps the blank context for the next line
            if self._open_block(line):
                self.previous_line = line
        else:
            self._count_bytecode(line)
            self.previous_line = line

    def feed(self, lines: Iterable[str]) -> "StackMachine":
        for line in lines:
            self.process(line)
        return self

    def finish(self):
        """Finalize metrics and release the trace sink."""
        self.metrics["frames_created"] = sum(1 for _ in self.root.iter_frames()) - 1
        self.metrics["threads"] = len(self.threads)
        if self.trace_sink is not None and hasattr(self.trace_sink, "close"):
            self.trace_sink.close()
        return self.metrics

    def _close_block(self):
        state = self.threads.get(self.current_thread)
        if state is None:
            return
        prev = self.previous_line
        if closes_frame(prev):
            # a return at the root keeps the thread at the root
            if state.cursor.parent is not None:
                state.cursor = state.cursor.parent
            state.threw = False
            self.metrics["returns"] += 1
            self._emit(RETURN, state.cursor)
        elif throws(prev):
            state.threw = True
            self.metrics["throws"] += 1
            self._emit("throw", state.cursor)

    def _open_block(self, line: str) -> bool:
        thread = thread_of(line)
        if thread is None:
            # blank line inside a block; keep the current frame
            return False
        if self.main_thread is None:
            self.main_thread = thread
        if self.main_thread_only and thread != self.main_thread:
            return False

        self.current_thread = thread
        state = self.threads.get(thread)
        if state is None:
            state = ThreadState(self.root)
            self.threads[thread] = state
            debug(self.verbose, f"line {self.line_num}: new thread {thread}")

        name = method_name(line, state.cursor.name)
        if name is None:
            debug(self.verbose, f"line {self.line_num}: discarded header {line!r}")
            return False

        pending = state.threw
        state.threw = False
        frame, transition = resolve_frame(state.cursor, name, pending, self.lookback)
        state.cursor = frame

        if transition == UNWIND:
            self.metrics["unwinds"] += 1
        elif transition == UNWIND_FALLBACK:
            self.metrics["unwinds"] += 1
            self.metrics["unwind_fallbacks"] += 1
            debug(self.verbose, f"line {self.line_num}: no unwind target for {name}, attached under {frame.parent.name}")
        if transition != STAY:
            self._emit(transition, frame)
        return True

    def _count_bytecode(self, line: str):
        state = self.threads[self.current_thread]
        state.cursor.bytecodes += 1
        self.metrics["bytecode_count"] += 1
        by_thread = self.metrics["by_thread"]
        by_thread[self.current_thread] = 1 + by_thread.get(self.current_thread, 0)
        if self.constants is not None:
            self.constants.observe(line)

    # -----------------------------------------------------------------------
    # Observability
    # -----------------------------------------------------------------------
    def _emit(self, transition: str, frame: CallFrame):
        depth = frame.depth()
        self.metrics["max_stack_depth"] = max(self.metrics["max_stack_depth"], depth)
        if not self.trace_sink:
            return
        event = {
            "line": self.line_num,
            "thread": self.current_thread,
            "event": transition,
            "frame": frame.name,
            "stack_depth": depth,
            "anomalies": [],
        }
        for rule in self._anomaly_rules:
            try:
                hits = rule(event) or []
                event["anomalies"].extend(hits)
            except Exception as e:
                debug(self.verbose, f"anomaly rule {getattr(rule, '__name__', rule)} failed: {e}")
        self.trace_sink.emit(event)
