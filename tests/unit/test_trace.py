# tests/unit/test_trace.py
"""Unit tests for call-site capture."""

import os

import pytest

from query_counter.trace import PACKAGE_ROOT, CallSiteTrace, capture_call_site, format_frame, module_prefix


def _capture_here() -> CallSiteTrace:
    return capture_call_site()


# Stands in for a library whose public method reaches the counter through a
# generated wrapper: commit() -> <string> wrapper -> inner().
_LIBRARY_SOURCE = """
def inner():
    return capture_call_site(ignored_prefixes=("/virtual/lib/",))


def commit(wrapper):
    return wrapper()
"""


class TestCallSiteTrace:
    def test_equality_and_hash_follow_frames(self) -> None:
        a = CallSiteTrace(("a.py:1:in f", "b.py:2:in g"))
        b = CallSiteTrace(("a.py:1:in f", "b.py:2:in g"))
        c = CallSiteTrace(("a.py:1:in f",))

        assert a == b
        assert hash(a) == hash(b)
        assert a != c

    def test_caller_is_innermost_frame(self) -> None:
        trace = CallSiteTrace(("a.py:1:in f", "b.py:2:in g"))
        assert trace.caller == "a.py:1:in f"
        assert CallSiteTrace(()).caller is None

    def test_is_immutable(self) -> None:
        trace = CallSiteTrace(("a.py:1:in f",))
        with pytest.raises(AttributeError):
            trace.frames = ()  # type: ignore[misc]

    def test_str_joins_frames(self) -> None:
        assert str(CallSiteTrace(("a", "b"))) == "a\nb"


class TestCaptureCallSite:
    def test_first_frame_is_the_calling_function(self) -> None:
        trace = _capture_here()
        assert trace.caller is not None
        assert trace.caller.startswith(f"{__file__}:")
        assert trace.caller.endswith(":in _capture_here")

    def test_same_line_produces_equal_traces(self) -> None:
        traces = [_capture_here() for _ in range(3)]
        assert traces[0] == traces[1] == traces[2]

    def test_different_lines_produce_different_traces(self) -> None:
        first = _capture_here()
        second = _capture_here()
        assert first != second
        # Innermost frame is the same helper; the calling line differs
        assert first.frames[0] == second.frames[0]
        assert first.frames[1] != second.frames[1]

    def test_ignored_prefix_strips_leading_frames(self) -> None:
        trace = capture_call_site(ignored_prefixes=(__file__,))
        assert trace.caller is not None
        assert not trace.caller.startswith(__file__)

    def test_generated_wrapper_between_library_frames_is_stripped(self) -> None:
        library: dict[str, object] = {"capture_call_site": capture_call_site}
        exec(compile(_LIBRARY_SOURCE, "/virtual/lib/session.py", "exec"), library)
        wrapper_env: dict[str, object] = {"inner": library["inner"]}
        exec("def wrapper():\n    return inner()\n", wrapper_env)

        trace = library["commit"](wrapper_env["wrapper"])  # type: ignore[operator]

        assert trace.caller is not None
        assert trace.caller.startswith(f"{__file__}:")
        assert trace.caller.endswith(":in test_generated_wrapper_between_library_frames_is_stripped")

    def test_generated_application_code_is_kept(self) -> None:
        namespace: dict[str, object] = {"capture_call_site": capture_call_site}
        exec("def handler():\n    return capture_call_site()\n", namespace)

        trace = namespace["handler"]()  # type: ignore[operator]

        assert trace.caller == "<string>:2:in handler"
        assert trace.frames[1].startswith(f"{__file__}:")


def test_format_frame() -> None:
    assert format_frame("/app/x.py", 12, "run") == "/app/x.py:12:in run"


def test_module_prefix_for_package_is_directory() -> None:
    import query_counter

    assert module_prefix(query_counter) == PACKAGE_ROOT


def test_module_prefix_for_module_is_file() -> None:
    assert module_prefix(os) == os.path.abspath(os.__file__)
