"""
wildcard.py — Wildcard selection of volume files and host files.

RT-11 patterns are matched component-wise: NAME and EXT are compared
separately, so "*.SAV" never matches across the dot.  An empty or "*"
component matches anything.  Host patterns use the usual shell-style
wildcards on the file name only.  Both are case-insensitive.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path


def has_wildcard(s: str) -> bool:
    return "*" in s or "?" in s


def _match_component(value: str, pattern: str) -> bool:
    if pattern in ("", "*"):
        return True
    return fnmatch.fnmatchcase(value, pattern)


def match_rt11_pattern(name: str, pattern: str) -> bool:
    """Match an RT-11 NAME.EXT against a NAME.EXT-shaped pattern."""
    v_name, _, v_ext = name.upper().partition(".")
    p_name, _, p_ext = pattern.upper().partition(".")
    return _match_component(v_name, p_name) and _match_component(v_ext, p_ext)


def match_host_name(name: str, pattern: str) -> bool:
    """Case-insensitive shell-style match of a host file name."""
    return fnmatch.fnmatchcase(name.upper(), pattern.upper())


def expand_host_pattern(pattern: str | Path) -> list[Path]:
    """Return the regular host files selected by *pattern*.

    Without wildcards the pattern names a single file, which must exist.
    Raises FileNotFoundError when nothing matches.
    """
    pattern = str(pattern)
    if not has_wildcard(pattern):
        p = Path(pattern)
        if not p.is_file():
            raise FileNotFoundError(f"Source file does not exist: {pattern}")
        return [p]

    directory, file_pat = os.path.split(pattern)
    base = Path(directory) if directory else Path.cwd()
    matches = sorted(
        entry for entry in base.iterdir()
        if entry.is_file() and match_host_name(entry.name, file_pat)
    )
    if not matches:
        raise FileNotFoundError(f"No host files matched pattern: {pattern}")
    return matches
