"""
rt11errors.py — Exception types shared by the RT-11 volume tools.

Every failure the directory engine can report derives from RT11Error so
the CLI can catch them in one place.
"""

from __future__ import annotations


class RT11Error(Exception):
    """Base class for all RT-11 volume errors."""


class IoFault(RT11Error):
    """A block could not be read or written."""

    def __init__(self, block: int | None, msg: str):
        self.block = block
        if block is None:
            super().__init__(msg)
        else:
            super().__init__(f"Block {block}: {msg}")


class CorruptDirectory(RT11Error):
    """The directory segment chain is malformed (cycle, bad link, bad count)."""


class NoSpace(RT11Error):
    """No free region is large enough for the requested allocation."""

    def __init__(self, blocks: int):
        self.blocks = blocks
        super().__init__(f"No empty area large enough for {blocks} block(s)")


class DirectoryFull(RT11Error):
    """Every segment number is already linked into the chain."""


class EmptySegment(RT11Error):
    """A split was requested on a segment holding no entries."""


class InvalidName(RT11Error, ValueError):
    """A file name has no base component."""


class InvalidDate(RT11Error, ValueError):
    """A date string does not parse or is outside 1972-2099."""
