def rule_deep_recursion(event, max_depth=512):
    return ["deep_recursion"] if (event.get("stack_depth", 0) > max_depth) else []

def rule_lost_unwind(event):
    # throw whose landing frame was not on the stack; attached under the grandparent
    return ["lost_unwind"] if event.get("event") == "unwind_fallback" else []

def rule_frequent_unwind(event, state):
    # state is a dict you hold outside to accumulate unwinds per thread
    hits = []
    if event.get("event") in ("unwind", "unwind_fallback"):
        key = event.get("thread")
        counts = state.setdefault("unwinds", {})
        counts[key] = 1 + counts.get(key, 0)
        if counts[key] > 1000:
            hits.append("unwind_burst")
    return hits

def rule_root_return(event):
    # a return that leaves the thread at the root usually means a truncated trace
    return ["root_return"] if (event.get("event") == "return" and event.get("stack_depth", 0) == 0) else []
