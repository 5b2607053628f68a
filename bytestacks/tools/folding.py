# folding.py: fold the call tree into FlameGraph stack lines ("a;b;c 123")
from typing import Dict, List, TextIO, Tuple

from ..core.frames import CallFrame

DEFAULT_GRANULARITY = 25


def fold(root: CallFrame, granularity: int = DEFAULT_GRANULARITY) -> List[Tuple[List[str], int]]:
    """
    Post-order walk (children in name order) returning (path, weight) pairs.
    A frame whose own count plus the unprinted weight of its children stays
    below 'granularity' is not emitted; its weight moves up to the parent
    instead. Printed weight is never passed up again. Weight that reaches
    the root unprinted is dropped with the root.
    """
    if granularity < 1:
        raise ValueError(f"granularity must be >= 1 (got {granularity})")

    out: List[Tuple[List[str], int]] = []
    carry: Dict[int, int] = {}
    stack = [(root, False)]
    while stack:
        frame, expanded = stack.pop()
        if not expanded:
            stack.append((frame, True))
            for child in reversed(frame.sorted_children()):
                stack.append((child, False))
            continue

        weight = sum(carry.pop(id(c), 0) for c in frame.children.values())
        if frame.is_root:
            continue
        weight += frame.bytecodes
        if weight < granularity:
            carry[id(frame)] = weight
        else:
            out.append((frame.path(), weight))
            carry[id(frame)] = 0
    return out


def format_stack(path: List[str], weight: int) -> str:
    return ";".join(path) + " " + str(weight)


def format_stacks(root: CallFrame, granularity: int = DEFAULT_GRANULARITY) -> List[str]:
    return [format_stack(p, w) for p, w in fold(root, granularity)]


def write_stacks(root: CallFrame, granularity: int, out: TextIO) -> int:
    """Write one line per surviving frame; returns the number of lines."""
    lines = format_stacks(root, granularity)
    for line in lines:
        out.write(line + "\n")
    return len(lines)
