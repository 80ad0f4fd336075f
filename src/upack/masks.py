"""Include/exclude masking over a directory tree.

Masks are glob patterns matched against ``/``-separated paths relative to
the root. ``*`` and ``?`` stay within one path segment, ``**`` spans any
number of segments. An entry is captured when it or one of its ancestors
matches an include mask and neither it nor any ancestor matches an exclude
mask, so a captured directory brings its whole subtree.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Pattern

from constants import Constants


def _translate(mask: str) -> Pattern[str]:
    """Compile one glob mask into an anchored regular expression."""
    mask = mask.replace("\\", "/").strip("/")
    out = []
    i = 0
    while i < len(mask):
        c = mask[i]
        if mask.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif mask.startswith("**", i):
            out.append(".*")
            i += 2
        elif c == "*":
            out.append("[^/]*")
            i += 1
        elif c == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(c))
            i += 1
    return re.compile("".join(out) + r"\Z")


@dataclass(frozen=True)
class MatchedEntry:
    """A captured filesystem entry."""
    full_path: str
    relative_path: str
    is_dir: bool


class MaskingContext:
    """Compiled include and exclude masks."""

    def __init__(self, includes: Optional[Iterable[str]] = None, excludes: Optional[Iterable[str]] = None):
        self.includes: List[str] = [m for m in (includes or []) if m] or list(Constants.DEFAULT_INCLUDES)
        self.excludes: List[str] = [m for m in (excludes or []) if m]
        self._include_res = [_translate(m) for m in self.includes]
        self._exclude_res = [_translate(m) for m in self.excludes]

    @property
    def recurse(self) -> bool:
        """True when some include mask can match below the top level."""
        return any("**" in m or "/" in m.replace("\\", "/").strip("/") for m in self.includes)

    @staticmethod
    def _matches_any(patterns: List[Pattern[str]], relative_path: str) -> bool:
        return any(p.match(relative_path) for p in patterns)

    def is_excluded(self, relative_path: str) -> bool:
        return self._matches_any(self._exclude_res, relative_path)

    def is_included(self, relative_path: str) -> bool:
        return self._matches_any(self._include_res, relative_path)

    def __repr__(self) -> str:
        return f"MaskingContext(includes={self.includes!r}, excludes={self.excludes!r})"


def _walk(root: str, relative: str, mask: MaskingContext, captured_parent: bool) -> Iterator[MatchedEntry]:
    directory = os.path.join(root, relative) if relative else root
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        rel = f"{relative}/{entry.name}" if relative else entry.name
        if mask.is_excluded(rel):
            continue
        is_dir = entry.is_dir(follow_symlinks=False)
        captured = captured_parent or mask.is_included(rel)
        if captured:
            yield MatchedEntry(full_path=entry.path, relative_path=rel, is_dir=is_dir)
        if is_dir and (captured or mask.recurse):
            yield from _walk(root, rel, mask, captured)


def enumerate_matches(source_dir: str, mask: MaskingContext) -> List[MatchedEntry]:
    """Return every captured entry under ``source_dir`` in a stable order."""
    return list(_walk(source_dir, "", mask, False))
