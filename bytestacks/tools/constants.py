# constants.py: static fields written (putstatic) but never read (getstatic)
from typing import Dict, List, Optional, TextIO

PUT_MARKER = "putstatic"
GET_MARKER = "getstatic"
HEADING = "Unused constants:"


def field_ref(line: str) -> Optional[str]:
    """Text between the first '<' and the first '>' ('pkg/Cls.field/Desc')."""
    lt = line.find("<")
    gt = line.find(">")
    if lt == -1 or gt <= lt:
        return None
    return line[lt + 1:gt]


class ConstantUsage:
    """Tracks static field writes and reads seen in bytecode lines."""

    def __init__(self):
        self.fields: Dict[str, bool] = {}   # field -> written and not read since

    def observe(self, line: str):
        if PUT_MARKER in line:
            ref = field_ref(line)
            if ref is not None and ref not in self.fields:
                self.fields[ref] = True
        elif GET_MARKER in line:
            ref = field_ref(line)
            if ref is not None:
                self.fields[ref] = False

    def unused(self) -> List[str]:
        return [k for k in sorted(self.fields) if self.fields[k]]

    def report(self) -> List[str]:
        lines = [HEADING]
        for ref in self.unused():
            entry = format_unused(ref)
            if entry is not None:
                lines.append(entry)
        return lines

    def write_report(self, out: TextIO) -> int:
        lines = self.report()
        for line in lines:
            out.write(line + "\n")
        return len(lines) - 1


def format_unused(ref: str) -> Optional[str]:
    """
    'pkg/Cls.field/Ljava/util/Map;' -> 'pkg/Cls.field (Ljava/util/Map;)'.
    Only object and array typed fields are reported, strings excluded.
    """
    dot = ref.find(".")
    slash = ref.find("/", dot) if dot != -1 else -1
    if slash == -1 or slash + 1 >= len(ref):
        return None
    index = slash + 1
    kind = ref[index]
    if kind not in "[L" or ref.find("Ljava/lang/String") == index:
        return None
    return f"{ref[:slash]} ({ref[index:]})"
