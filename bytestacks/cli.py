# bytestacks/cli.py: command-line front end for the bytecode trace → FlameGraph stacks converter
# Reads -XX:+TraceBytecodes output and prints folded stacks (or unused static fields).
#
#   java -XX:+TraceBytecodes ... > tracebytecodes.out
#   bytestacks tracebytecodes.out --granularity 25 > tracebytecodes.stacks
#   flamegraph.pl --cp tracebytecodes.stacks > tracebytecodes.svg

import argparse
import io
import json
import sys
from pathlib import Path
from typing import Optional, List

# Local module imports
from bytestacks.core.machine import StackMachine, DEFAULT_LOOKBACK
from bytestacks.core.observe import TraceSink, debug
from bytestacks.tools.folding import write_stacks, DEFAULT_GRANULARITY
from bytestacks.tools.constants import ConstantUsage
from bytestacks.tools.anomaly_rules import (
    rule_deep_recursion,
    rule_lost_unwind,
    rule_frequent_unwind,
    rule_root_return,
)

TRACE_ENCODING = "iso-8859-1"

EXIT_OK = 0
EXIT_IO_ERROR = 1


# -----------------------------------------------------------------------------
# Utilities
# -----------------------------------------------------------------------------

def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1 (got {value})")
    return value


def _error(msg: str) -> int:
    print(f"Error: {msg}", file=sys.stderr)
    return EXIT_IO_ERROR


def _reason(e: OSError) -> str:
    return e.strerror or str(e)


# stdin/stdout are re-wrapped so both ends use the trace encoding,
# whatever the locale says; the wrappers are detached, never closed.

def _open_trace(path: str):
    if path == "-":
        return io.TextIOWrapper(sys.stdin.buffer, encoding=TRACE_ENCODING)
    return open(path, "r", encoding=TRACE_ENCODING)


def _open_out(path: Optional[str]):
    if not path:
        sys.stdout.flush()
        return io.TextIOWrapper(sys.stdout.buffer, encoding=TRACE_ENCODING, newline="\n")
    return open(path, "w", encoding=TRACE_ENCODING, newline="\n")


def _release(stream, is_std: bool):
    if is_std:
        stream.detach()
    else:
        stream.close()


def _wire_observability(machine: StackMachine, args: argparse.Namespace):
    """Attach a JSONL sink and the anomaly rules; raises OSError on a bad path."""
    if not args.trace_file:
        return
    machine.set_trace_sink(TraceSink(path=args.trace_file).open())
    unwind_state = {}
    machine.add_anomaly_rule(rule_deep_recursion)
    machine.add_anomaly_rule(rule_lost_unwind)
    machine.add_anomaly_rule(rule_root_return)
    machine.add_anomaly_rule(lambda ev: rule_frequent_unwind(ev, unwind_state))
    print(f"Tracing to '{args.trace_file}'", file=sys.stderr)


# -----------------------------------------------------------------------------
# Command handler
# -----------------------------------------------------------------------------

def cmd_convert(args: argparse.Namespace) -> int:
    constants = ConstantUsage() if args.constants else None
    machine = StackMachine(
        constants=constants,
        main_thread_only=args.main_thread_only,
        lookback=args.lookback,
        verbose=args.verbose,
    )

    try:
        _wire_observability(machine, args)
    except OSError as e:
        return _error(f"cannot write '{args.trace_file}': {_reason(e)}")

    try:
        trace = _open_trace(args.file)
    except OSError as e:
        machine.finish()
        return _error(f"cannot read '{args.file}': {_reason(e)}")

    try:
        for line in trace:
            machine.process(line)
    except OSError as e:
        return _error(f"failed reading '{args.file}' at line {machine.line_num + 1}: {e}")
    finally:
        _release(trace, args.file == "-")
        metrics = machine.finish()

    debug(args.verbose, f"{metrics['line_count']} lines, {metrics['bytecode_count']} bytecodes, "
                        f"{metrics['threads']} threads, {metrics['frames_created']} frames")

    try:
        out = _open_out(args.out)
    except OSError as e:
        return _error(f"cannot write '{args.out}': {_reason(e)}")

    try:
        if constants is not None:
            n = constants.write_report(out)
            debug(args.verbose, f"{n} unused constants")
        else:
            n = write_stacks(machine.root, args.granularity, out)
            debug(args.verbose, f"{n} stack lines at granularity {args.granularity}")
    finally:
        _release(out, not args.out)

    # Dump metrics if requested
    if args.trace_metrics:
        try:
            Path(args.trace_metrics).write_text(json.dumps(metrics, indent=2), encoding="utf-8")
        except OSError as e:
            return _error(f"cannot write '{args.trace_metrics}': {_reason(e)}")
        print(f"Metrics saved to '{args.trace_metrics}'", file=sys.stderr)

    return EXIT_OK


# -----------------------------------------------------------------------------
# Argument parsing
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="bytestacks",
        description="Convert -XX:+TraceBytecodes output into FlameGraph folded stacks",
    )
    p.add_argument("file", help="Bytecode trace file ('-' for stdin)")
    p.add_argument("--granularity", type=_positive_int, nargs="?", const=DEFAULT_GRANULARITY,
                   default=DEFAULT_GRANULARITY,
                   help="Minimum bytecodes for a frame to get its own line; smaller frames fold into the caller")
    p.add_argument("--constants", action="store_true",
                   help="Report static fields written but never read instead of stacks")
    p.add_argument("--main-thread-only", dest="main_thread_only", action="store_true",
                   help="Only follow the first thread seen in the trace")
    p.add_argument("--lookback", type=int, default=DEFAULT_LOOKBACK,
                   help="Ancestor levels searched when a block names a different frame")
    p.add_argument("-o", "--out", help="Write output to file instead of stdout")
    p.add_argument("--trace-file", help="Write JSONL frame transitions to file")
    p.add_argument("--trace-metrics", help="Write metrics JSON to file")
    p.add_argument("-v", "--verbose", action="store_true", help="Print diagnostics to stderr")
    return p


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.lookback < 0:
        parser.error("--lookback must be >= 0")
    return cmd_convert(args)


if __name__ == "__main__":
    sys.exit(main())
