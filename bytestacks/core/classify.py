# classify.py: line categories and field extraction for -XX:+TraceBytecodes output
from enum import Enum
from typing import Optional

RETURN_MARKERS = ("return", "return_register_finalizer")
JUMP_MARKER = "goto"
THROW_MARKER = "throw"


class LineKind(Enum):
    BLANK = "blank"
    JUNK = "junk"
    FRAME_HEADER = "frame_header"
    BYTECODE = "bytecode"


def classify_line(line: str, previous_line: str) -> LineKind:
    """Categorize a trimmed line given the previously recorded trimmed line.

    A header is only a candidate: the machine may still demote it to a
    blank continuation when no thread bracket or method token can be read.
    """
    if not line:
        return LineKind.BLANK
    if not line.startswith("["):
        # multi-line constant data, e.g. string literals
        return LineKind.JUNK
    if not previous_line:
        return LineKind.FRAME_HEADER
    return LineKind.BYTECODE


def closes_frame(line: str) -> bool:
    """True if the last line of a block ends the active frame's scope."""
    return line.endswith(RETURN_MARKERS) or JUMP_MARKER in line


def throws(line: str) -> bool:
    return line.endswith(THROW_MARKER)


def thread_of(line: str) -> Optional[str]:
    """Return the '[...]' thread bracket, or None if the line has none."""
    end = line.find("]")
    if not line.startswith("[") or end == -1:
        return None
    return line[:end + 1]


def method_start(line: str) -> int:
    """Offset of the fourth space-delimited field (0 if there is none)."""
    index = line.find(" ") + 1
    index = line.find(" ", index) + 1
    index = line.find(" ", index) + 1
    return index


def method_name(line: str, current_name: str) -> Optional[str]:
    """Extract the frame name of a header line.

    Returns current_name when the field starts with two spaces (a bytecode
    row opening a block, i.e. the same frame continues), and None when the
    line carries no usable signature.
    """
    start = method_start(line)
    end = line.find(")", start)
    if start == 0 or end == -1:
        return None
    if line.startswith("  ", start):
        return current_name
    name = line[start:end + 1]
    if not name[0].isalpha():
        return None
    return name
