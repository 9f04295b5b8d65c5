# src/query_counter/trace.py
"""Call-site identification for transaction grouping.

A CallSiteTrace is the stack at the moment a transaction finished, innermost
frame first, with the counter's own frames (and any other registered
library frames) stripped from the front. Two transactions finished from the
same line of application code produce equal traces, so a loop that commits
N small transactions collapses into one ledger group of N records.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

# Frames under this directory belong to the counter itself.
PACKAGE_ROOT = os.path.dirname(os.path.abspath(__file__)) + os.sep

# co_filename of code compiled from a string, e.g. "<string>"
_GENERATED_CODE_PREFIX = "<"


@dataclass(frozen=True, slots=True)
class CallSiteTrace:
    """Immutable, hashable stack identifier.

    Attributes:
        frames: Frame identifiers ("<file>:<line>:in <function>"), innermost first
    """

    frames: tuple[str, ...]

    @property
    def caller(self) -> str | None:
        """The first frame outside the stripped prefixes, or None if the trace is empty."""
        return self.frames[0] if self.frames else None

    def __iter__(self) -> Iterator[str]:
        return iter(self.frames)

    def __len__(self) -> int:
        return len(self.frames)

    def __str__(self) -> str:
        return "\n".join(self.frames)


def format_frame(filename: str, lineno: int, function: str) -> str:
    """Render one frame identifier."""
    return f"{filename}:{lineno}:in {function}"


def capture_call_site(ignored_prefixes: Iterable[str] = ()) -> CallSiteTrace:
    """Capture the current stack as a CallSiteTrace.

    Leading frames whose file lives under PACKAGE_ROOT or any of
    ignored_prefixes are dropped. Frames of generated code (file names such
    as "<string>", which libraries use for exec-built wrappers) are dropped
    only when a dropped library frame lies further out, so application code
    run from "<stdin>" or exec keeps its frames. Stripping stops at the first
    frame that matches neither, so library frames further out are kept as-is.

    Args:
        ignored_prefixes: Extra path prefixes to strip from the front, e.g.
            the directory of a database driver whose hooks call into the counter.

    Returns:
        The stripped trace.
    """
    prefixes = (PACKAGE_ROOT, *ignored_prefixes)
    filenames: list[str] = []
    frames: list[str] = []
    frame = sys._getframe(1)
    while frame is not None:
        code = frame.f_code
        filenames.append(code.co_filename)
        frames.append(format_frame(code.co_filename, frame.f_lineno, code.co_name))
        frame = frame.f_back

    start = 0
    for index, filename in enumerate(filenames):
        if filename.startswith(prefixes):
            start = index + 1
        elif not filename.startswith(_GENERATED_CODE_PREFIX):
            break
    return CallSiteTrace(tuple(frames[start:]))


def module_prefix(module: object) -> str:
    """Return the directory prefix of a module or package for use as an ignored prefix.

    For a package this is its directory; for a plain module it is the
    module file itself.
    """
    path = os.path.abspath(module.__file__)  # type: ignore[attr-defined]
    if os.path.basename(path) == "__init__.py":
        return os.path.dirname(path) + os.sep
    return path
