# frames.py: CallFrame tree with per-frame bytecode counters
from typing import Dict, Iterator, List, Optional

ROOT_NAME = "root"


class CallFrame:
    """One call-stack position. Children are keyed by name, so repeated
    calls from the same parent accumulate into a single node."""

    def __init__(self, name: str, parent: Optional["CallFrame"] = None):
        self.name = name
        self.parent = parent
        self.bytecodes: int = 0
        self.children: Dict[str, "CallFrame"] = {}

    def __repr__(self):
        return f"CallFrame(name={self.name!r}, bytecodes={self.bytecodes}, children={len(self.children)})"

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def enter(self, name: str) -> "CallFrame":
        """Get or create the child frame called 'name'."""
        child = self.children.get(name)
        if child is None:
            child = CallFrame(name, self)
            self.children[name] = child
        return child

    def sorted_children(self) -> List["CallFrame"]:
        return [self.children[k] for k in sorted(self.children)]

    def path(self) -> List[str]:
        """Names from the outermost non-root ancestor down to this frame."""
        names = []
        f = self
        while f is not None and f.parent is not None:
            names.append(f.name)
            f = f.parent
        names.reverse()
        return names

    def depth(self) -> int:
        return len(self.path())

    def total_weight(self) -> int:
        """Own count plus every descendant's own count."""
        return sum(f.bytecodes for f in self.iter_frames())

    def iter_frames(self) -> Iterator["CallFrame"]:
        """Pre-order walk, children in name order."""
        # explicit stack: JVM call trees easily exceed the recursion limit
        stack = [self]
        while stack:
            f = stack.pop()
            yield f
            stack.extend(reversed(f.sorted_children()))


def new_root() -> CallFrame:
    return CallFrame(ROOT_NAME, None)
