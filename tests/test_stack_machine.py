from tests.helpers_imports import mod, block, ops, run

M = mod.machine


def _chain(root, *names):
    f = root
    for n in names:
        f = f.children[n]
    return f


# A() -> B() -> C() with C throwing
THROWING = (
    block("A()", ops(2, "invokestatic")) +
    block("B()", ops(3, "invokestatic")) +
    block("C()", ops(4, "athrow"))
)


def test_resolve_frame_table():
    root = mod.frames.new_root()
    a = root.enter("A()")
    b = a.enter("B()")
    c = b.enter("C()")

    assert M.resolve_frame(c, "C()", False) == (c, M.STAY)
    assert M.resolve_frame(c, "B()", False) == (b, M.RETURN)
    assert M.resolve_frame(c, "A()", False) == (a, M.RETURN)
    assert M.resolve_frame(c, "A()", False, lookback=1)[1] == M.ENTER

    frame, transition = M.resolve_frame(c, "D()", False)
    assert transition == M.ENTER and frame.parent is c
    assert M.resolve_frame(c, "D()", False) == (frame, M.REENTER)

    assert M.resolve_frame(c, "A()", True) == (a, M.UNWIND)
    frame, transition = M.resolve_frame(c, "X()", True)
    assert transition == M.UNWIND_FALLBACK
    assert frame.parent is a and frame.name == "X()"

    # no grandparent: attach under the root
    frame, transition = M.resolve_frame(a, "Y()", True)
    assert transition == M.UNWIND_FALLBACK and frame.parent is root
    frame, transition = M.resolve_frame(root, "Z()", True)
    assert frame.parent is root


def test_nested_calls_build_tree():
    lines = (
        block("A()", ops(5, "invokestatic")) +
        block("B()", ops(3, "invokestatic")) +
        block("C()", ops(20, "ireturn"))
    )
    m = run(lines)
    a = _chain(m.root, "A()")
    b = _chain(a, "B()")
    c = _chain(b, "C()")
    assert (a.bytecodes, b.bytecodes, c.bytecodes) == (5, 3, 20)
    # return marker popped C
    assert m.cursor("[1]") is b
    assert m.metrics["bytecode_count"] == 28
    assert m.metrics["returns"] == 1


def test_recursive_calls_accumulate_into_one_child():
    lines = (
        block("bar()", ops(2, "invokestatic")) +
        block("foo()", ops(2, "return")) +
        block("bar()", ops(1, "invokestatic")) +
        block("foo()", ops(2, "return")) +
        block("bar()", ops(1, "return"))
    )
    m = run(lines)
    assert list(m.root.children) == ["bar()"]
    bar = m.root.children["bar()"]
    assert list(bar.children) == ["foo()"]
    assert bar.bytecodes == 4
    assert bar.children["foo()"].bytecodes == 4
    assert m.cursor("[1]") is m.root


def test_exception_unwind_to_ancestor():
    lines = THROWING + block("A()", ops(2, "return"))
    m = run(lines)
    a = _chain(m.root, "A()")
    b = _chain(a, "B()")
    c = _chain(b, "C()")
    # intervening frames keep their counts, A continues
    assert (a.bytecodes, b.bytecodes, c.bytecodes) == (4, 3, 4)
    assert m.metrics["throws"] == 1
    assert m.metrics["unwinds"] == 1
    assert m.metrics["unwind_fallbacks"] == 0
    assert m.cursor("[1]") is m.root


def test_exception_unwind_fallback_to_grandparent():
    lines = THROWING + block("X()", ops(2, "nop"))
    m = run(lines)
    a = _chain(m.root, "A()")
    assert sorted(a.children) == ["B()", "X()"]
    assert a.children["X()"].bytecodes == 2
    assert m.metrics["unwind_fallbacks"] == 1
    assert not m.threads["[1]"].threw


def test_pending_throw_consumed_by_next_header():
    lines = (
        block("A()", ops(1, "invokestatic")) +
        block("B()", ops(1, "athrow"))
    )
    m = run(lines)
    assert m.threads["[1]"].threw
    m.process("[1] static void B()")
    assert not m.threads["[1]"].threw
    assert m.cursor("[1]").name == "B()"
    assert m.metrics["unwinds"] == 1


def test_same_name_header_is_idempotent():
    lines = block("A()", ops(3, "invokestatic")) + block("A()", ops(4, "nop"))
    m = run(lines)
    a = m.root.children["A()"]
    assert a.children == {}
    assert a.bytecodes == 7


def test_return_without_marker_uses_lookback():
    lines = (
        block("A()", ops(1, "invokestatic")) +
        block("B()", ops(1, "invokestatic")) +
        block("C()", ops(1, "invokestatic")) +
        block("A()", ops(1, "nop"))
    )
    m = run(lines)
    assert m.cursor("[1]") is m.root.children["A()"]
    assert m.root.children["A()"].bytecodes == 2

    m = run(lines, lookback=1)
    c = _chain(m.root, "A()", "B()", "C()")
    assert "A()" in c.children


def test_junk_and_discarded_lines_are_ignored():
    lines = (
        block("A()", ["ldc \"multi", "iload_0"]) +
        ["line two of the constant", "[1] static void <clinit>()", "[1 broken header", ""] +
        block("B()", ops(1, "nop"))
    )
    m = run(lines)
    a = m.root.children["A()"]
    assert a.bytecodes == 2
    assert list(a.children) == ["B()"]
    assert m.metrics["junk_lines"] == 1


def test_junk_line_does_not_hide_return_marker():
    lines = ["[1] static void A()", "[1] 0 invokestatic", ""]
    lines += ["[1] static void B()", "[1] 0 ireturn", "trailing junk", ""]
    m = run(lines)
    assert m.cursor("[1]") is m.root.children["A()"]


def test_return_at_root_stays_at_root():
    lines = ["[1] static void A()", "[1] 0 return", ""]
    # bytecode row opening a block continues whatever frame is current
    lines += ["[1]        1     4  invokestatic 2 <demo/X.y()V>", "[1] 2 ireturn", ""]
    m = run(lines)
    assert m.cursor("[1]") is m.root
    assert m.root.bytecodes == 1
    assert m.metrics["returns"] == 2


def test_threads_have_independent_cursors():
    lines = (
        block("A()", ops(1, "invokestatic"), thread="[1]") +
        block("X()", ops(2, "nop"), thread="[2]") +
        block("B()", ops(1, "nop"), thread="[1]") +
        block("X()", ops(1, "nop"), thread="[2]")
    )
    m = run(lines)
    assert m.cursor("[1]").name == "B()"
    assert m.cursor("[1]").parent.name == "A()"
    assert m.cursor("[2]") is m.root.children["X()"]
    assert m.root.children["X()"].bytecodes == 3
    assert m.main_thread == "[1]"
    assert m.metrics["by_thread"] == {"[1]": 2, "[2]": 3}


def test_main_thread_only_skips_other_threads():
    lines = (
        block("A()", ops(1, "invokestatic"), thread="[1]") +
        block("X()", ops(2, "nop"), thread="[2]") +
        block("B()", ops(1, "nop"), thread="[1]")
    )
    m = run(lines, main_thread_only=True)
    assert list(m.root.children) == ["A()"]
    assert "[2]" not in m.threads
    assert m.root.children["A()"].children["B()"].bytecodes == 1


def test_constant_scanner_sees_bytecode_lines():
    usage = mod.constants.ConstantUsage()
    lines = block("A()", ["putstatic 2 <demo/Main.cache/Ljava/util/Map;>", "return"])
    run(lines, constants=usage)
    assert usage.unused() == ["demo/Main.cache/Ljava/util/Map;"]


def test_finish_reports_frames_and_threads():
    lines = block("A()", ops(1, "invokestatic")) + block("B()", ops(1, "nop"))
    m = run(lines)
    metrics = m.finish()
    assert metrics["frames_created"] == 2
    assert metrics["threads"] == 1
    assert metrics["max_stack_depth"] == 2
