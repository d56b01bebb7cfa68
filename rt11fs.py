"""
rt11fs.py — RT-11 volume directory engine.

Reads and updates the directory of an RT-11 disk image through a
BlockStore.  Files are contiguous runs of blocks; the directory is a
linked list of two-block segments and never records where a file
starts: an entry's start block is the data start block plus the sum of
the lengths of every entry before it, counted across all segments in
chain order.

Disk layout (512-byte blocks, 16-bit little-endian words):
    Block 1        Home block
                     word 16..   bad block table, {block, count} pairs,
                                 terminated by a zero pair
                     word 233    pack cluster size
                     word 234    first directory block (0 => 6)
                     word 235    system version
    Block 6+       Directory segments, 2 blocks (512 words) each,
                   segment N at  first_dir_block + 2*(N-1)

Segment header (5 words):
    +0   total segments      (segment 1 only, 1-31)
    +1   next segment        (0 = end of chain)
    +2   highest in use      (segment 1 only)
    +3   extra bytes/entry
    +4   data start block    (segment 1 value applies volume-wide)

Directory entry (7 + extra_bytes/2 words):
    +0   status    0x0100 tentative, 0x0200 empty, 0x0400 permanent,
                   0x0800 end-of-segment, 0x4000 read-only,
                   0x8000 protected
    +1   name      RAD-50 chars 1-3
    +2   name      RAD-50 chars 4-6
    +3   ext       RAD-50 chars 1-3
    +4   length    in blocks
    +5   job/channel
    +6   date      packed date word
    +7.. extra words
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from datetime import date

from blockstore import BLOCK_SIZE, BlockStore
from rad50 import decode_filename, encode_filename, normalize_name
from rt11date import NO_DATE, date_from_word, decode_date, encode_today
from rt11errors import (
    CorruptDirectory, DirectoryFull, EmptySegment, NoSpace,
)

# ── Constants ──────────────────────────────────────────────────────────

HOME_BLOCK = 1
DEFAULT_DIR_BLOCK = 6

HOME_BADBLOCK_WORD = 16
HOME_BADBLOCK_PAIRS = 33
HOME_CLUSTER_WORD = 233
HOME_FIRST_DIR_WORD = 234      # byte offset 468 (octal 724)
HOME_VERSION_WORD = 235

SEGMENT_BLOCKS = 2
SEGMENT_WORDS = SEGMENT_BLOCKS * BLOCK_SIZE // 2      # 512
HEADER_WORDS = 5
BASE_ENTRY_WORDS = 7
MAX_SEGMENTS = 31

# Status bits
E_TENT = 0x0100
E_MPTY = 0x0200
E_PERM = 0x0400
E_EOS  = 0x0800
E_READ = 0x4000
E_PROT = 0x8000

KIND_NAMES = {E_TENT: "tentative", E_MPTY: "empty", E_PERM: "permanent"}


# ── Data classes ───────────────────────────────────────────────────────

@dataclass
class HomeBlock:
    """Fields of the home block this tool cares about."""
    first_dir_block: int
    pack_cluster_size: int
    system_version: int
    raw_first_dir_block: int
    bad_blocks: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class SegmentHeader:
    total_segments: int
    next_segment: int
    highest_in_use: int
    extra_bytes: int
    data_start: int

    @classmethod
    def from_words(cls, words) -> "SegmentHeader":
        return cls(*words[:HEADER_WORDS])

    @property
    def entry_words(self) -> int:
        return BASE_ENTRY_WORDS + self.extra_bytes // 2


@dataclass
class DirEntry:
    """One directory entry with its derived location."""
    status: int
    name: str
    length: int
    job_channel: int = 0
    date_word: int = NO_DATE
    segment: int = 0          # logical segment number holding the entry
    index: int = 0            # word offset of the status word in the segment
    start_block: int = 0      # derived: data start + preceding lengths
    extra: tuple[int, ...] = ()

    @property
    def tentative(self) -> bool:
        return bool(self.status & E_TENT)

    @property
    def empty(self) -> bool:
        return bool(self.status & E_MPTY)

    @property
    def permanent(self) -> bool:
        return bool(self.status & E_PERM)

    @property
    def end_of_segment(self) -> bool:
        return bool(self.status & E_EOS)

    @property
    def read_only(self) -> bool:
        return bool(self.status & E_READ)

    @property
    def protected(self) -> bool:
        return bool(self.status & E_PROT)

    @property
    def is_free(self) -> bool:
        """True for an empty area that is not also a file."""
        return self.empty and not self.tentative and not self.permanent

    @property
    def kind(self) -> str:
        for bit, kname in KIND_NAMES.items():
            if self.status & bit:
                return kname
        return f"?{self.status:#06x}"

    @property
    def end_block(self) -> int:
        """Last block of the entry's range (start - 1 when length is 0)."""
        return self.start_block + self.length - 1

    @property
    def date_str(self) -> str:
        return decode_date(self.date_word)

    @property
    def creation_date(self) -> date | None:
        return date_from_word(self.date_word)


@dataclass
class DirectoryListing:
    """Result of a full traversal of the directory chain."""
    entries: list[DirEntry]
    total_segments: int
    data_start: int
    segment_blocks: dict[int, int] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def files(self) -> list[DirEntry]:
        return [e for e in self.entries if e.permanent]

    @property
    def used_blocks(self) -> int:
        return sum(e.length for e in self.entries if e.permanent)

    @property
    def free_blocks(self) -> int:
        return sum(e.length for e in self.entries if e.empty)

    @property
    def unused_segments(self) -> int:
        return self.total_segments - len(self.segment_blocks)


# ── Segment buffer ─────────────────────────────────────────────────────

class Segment:
    """A directory segment held as 512 words, edited in place."""

    def __init__(self, number: int, block: int, words: list[int] | None = None):
        self.number = number
        self.block = block
        self.words = list(words) if words is not None else [0] * SEGMENT_WORDS
        if len(self.words) != SEGMENT_WORDS:
            raise ValueError(f"Segment needs {SEGMENT_WORDS} words, "
                             f"got {len(self.words)}")

    @classmethod
    def from_bytes(cls, number: int, block: int, data: bytes) -> "Segment":
        return cls(number, block, struct.unpack(f"<{SEGMENT_WORDS}H", data))

    def to_bytes(self) -> bytes:
        return struct.pack(f"<{SEGMENT_WORDS}H", *self.words)

    @property
    def header(self) -> SegmentHeader:
        return SegmentHeader.from_words(self.words)

    @property
    def entry_words(self) -> int:
        return self.header.entry_words

    @property
    def next_segment(self) -> int:
        return self.words[1]

    @next_segment.setter
    def next_segment(self, value: int):
        self.words[1] = value & 0xFFFF

    # ── entry scanning ─────────────────────────────────────────────

    def _scan(self) -> tuple[list[int], int]:
        """Return (offsets of real entries, offset where the scan stopped)."""
        width = self.entry_words
        offsets = []
        idx = HEADER_WORDS
        while idx + width <= SEGMENT_WORDS:
            status = self.words[idx]
            if status & E_EOS or status == 0:
                break
            offsets.append(idx)
            idx += width
        return offsets, idx

    def entry_offsets(self) -> list[int]:
        """Word offsets of every entry before the end-of-segment marker."""
        return self._scan()[0]

    def eos_offset(self) -> int:
        """Word offset of the end-of-segment marker (or where one belongs)."""
        return self._scan()[1]

    def entry_at(self, idx: int) -> DirEntry:
        w = self.words
        width = self.entry_words
        return DirEntry(
            status=w[idx],
            name=decode_filename(w[idx + 1], w[idx + 2], w[idx + 3]),
            length=w[idx + 4],
            job_channel=w[idx + 5],
            date_word=w[idx + 6],
            segment=self.number,
            index=idx,
            extra=tuple(w[idx + BASE_ENTRY_WORDS : idx + width]),
        )

    # ── entry editing ──────────────────────────────────────────────

    def write_entry(self, idx: int, status: int, name1: int = 0,
                    name2: int = 0, ext: int = 0, length: int = 0,
                    job_channel: int = 0, date_word: int = NO_DATE):
        """Overwrite the seven base words of the entry at *idx*."""
        if idx < HEADER_WORDS or idx + BASE_ENTRY_WORDS > SEGMENT_WORDS:
            raise IndexError(f"Entry offset {idx} outside segment")
        self.words[idx : idx + BASE_ENTRY_WORDS] = [
            status, name1, name2, ext, length & 0xFFFF, job_channel, date_word,
        ]

    def write_eos(self, idx: int):
        """Place a clean end-of-segment record at *idx*."""
        end = min(idx + self.entry_words, SEGMENT_WORDS)
        if idx >= end:
            return
        self.words[idx:end] = [0] * (end - idx)
        self.words[idx] = E_EOS

    def insert_empty(self, idx: int, length: int):
        """Open a slot at *idx* and fill it with an empty entry of *length*.

        Everything from *idx* up to the end-of-segment marker moves one
        record later; a fresh marker follows the last record.
        """
        width = self.entry_words
        eos = self.eos_offset()
        if eos + 2 * width > SEGMENT_WORDS:
            raise IndexError(f"Segment {self.number} has no room for another entry")
        if idx < eos:
            self.words[idx + width : eos + width] = self.words[idx:eos]
        self.words[idx : idx + width] = [0] * width
        self.write_entry(idx, E_MPTY, length=length)
        self.write_eos(eos + width)

    def has_room_for_insert(self) -> bool:
        return self.eos_offset() + 2 * self.entry_words <= SEGMENT_WORDS


# ── Low-level helpers ──────────────────────────────────────────────────

def _blocks_needed(nbytes: int) -> int:
    """Blocks needed to hold *nbytes*; an empty file still takes one."""
    return max(1, (nbytes + BLOCK_SIZE - 1) // BLOCK_SIZE)


def _choose_split(seg: Segment, offsets: list[int]) -> int:
    """Pick the position (into *offsets*) where the new segment begins.

    Prefers the file entry closest to the middle so a run of empty
    areas is not cut in two.  Falls back to the middle when that would
    move everything or almost nothing.
    """
    half = len(offsets) // 2
    files = [i for i, idx in enumerate(offsets)
             if seg.words[idx] & (E_PERM | E_TENT)]
    if files:
        pos = min(files, key=lambda i: (abs(i - half), i))
    else:
        pos = half
    if len(offsets) > 1 and (pos == 0 or pos >= len(offsets) - 1):
        pos = half
    return pos


# ── Volume ─────────────────────────────────────────────────────────────

class RT11Volume:
    """Directory operations on an RT-11 volume behind a BlockStore."""

    def __init__(self, store: BlockStore):
        self.store = store
        self.first_dir_block = self.home_block().first_dir_block

    # ── home block ─────────────────────────────────────────────────

    def home_block(self) -> HomeBlock:
        words = struct.unpack(f"<{BLOCK_SIZE // 2}H",
                              self.store.read_block(HOME_BLOCK))
        bad = []
        for i in range(HOME_BADBLOCK_PAIRS):
            blk = words[HOME_BADBLOCK_WORD + 2 * i]
            count = words[HOME_BADBLOCK_WORD + 2 * i + 1]
            if blk == 0 and count == 0:
                break
            bad.append((blk, count))
        raw_first = words[HOME_FIRST_DIR_WORD]
        return HomeBlock(
            first_dir_block=raw_first or DEFAULT_DIR_BLOCK,
            pack_cluster_size=words[HOME_CLUSTER_WORD],
            system_version=words[HOME_VERSION_WORD],
            raw_first_dir_block=raw_first,
            bad_blocks=bad,
        )

    # ── segment I/O ────────────────────────────────────────────────

    def segment_block(self, number: int) -> int:
        return self.first_dir_block + (number - 1) * SEGMENT_BLOCKS

    def segment_in_volume(self, number: int) -> bool:
        return self.segment_block(number) + 1 < self.store.total_blocks

    def read_segment(self, number: int) -> Segment:
        block = self.segment_block(number)
        data = self.store.read_blocks(block, SEGMENT_BLOCKS)
        return Segment.from_bytes(number, block, data)

    def write_segment(self, seg: Segment):
        data = seg.to_bytes()
        for i in range(SEGMENT_BLOCKS):
            self.store.write_block(seg.block + i,
                                   data[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])

    def _first_segment(self) -> Segment:
        if not self.segment_in_volume(1):
            raise CorruptDirectory(
                f"First directory block {self.first_dir_block} out of range "
                f"({self.store.total_blocks} blocks)")
        return self.read_segment(1)

    # ── traversal ──────────────────────────────────────────────────

    def traverse(self, strict: bool = False) -> DirectoryListing:
        """Walk the segment chain and return every entry in chain order.

        Start blocks are derived from one running offset across all
        segments.  Chain problems (bad count, bad link, loop, segment
        past the end of the volume) end the walk with a warning and the
        entries gathered so far; with *strict* they raise
        CorruptDirectory instead.
        """
        warnings: list[str] = []

        def problem(msg: str):
            if strict:
                raise CorruptDirectory(msg)
            warnings.append(msg)

        first = self._first_segment().header
        total = first.total_segments
        if total < 1 or total > MAX_SEGMENTS:
            problem(f"Invalid segment count {total} in directory header")
            total = 1

        listing = DirectoryListing([], total, first.data_start,
                                   warnings=warnings)
        visited: set[int] = set()
        offset = 0
        number = 1
        while number != 0:
            if number < 1 or number > total:
                problem(f"Invalid segment number {number} in directory chain")
                break
            if number in visited:
                problem(f"Directory loop detected at segment {number}")
                break
            visited.add(number)
            if not self.segment_in_volume(number):
                problem(f"Segment {number} is beyond volume bounds")
                break

            seg = self.read_segment(number)
            listing.segment_blocks[number] = seg.block
            for idx in seg.entry_offsets():
                entry = seg.entry_at(idx)
                entry.start_block = first.data_start + offset
                offset += entry.length
                listing.entries.append(entry)
            number = seg.next_segment
        return listing

    def chain(self, total_segments: int) -> list[int]:
        """Segment numbers linked from segment 1, in order.

        Stops at a zero or out-of-range link; a revisited segment raises
        CorruptDirectory.
        """
        order: list[int] = []
        number = 1
        while 1 <= number <= total_segments:
            if number in order:
                raise CorruptDirectory(
                    f"Directory link loop detected at segment {number}")
            order.append(number)
            number = self.read_segment(number).next_segment
        return order

    # ── segment splitting ──────────────────────────────────────────

    def split_segment(self, number: int) -> int:
        """Move the back half of segment *number* into an unused segment.

        The new segment is linked directly after the old one, so chain
        order (and with it every derived start block) is unchanged.
        Returns the new segment number.
        """
        seg1 = self._first_segment()
        total = seg1.header.total_segments
        if total < 1 or total > MAX_SEGMENTS:
            raise CorruptDirectory(
                f"Invalid segment count {total} in directory header")

        in_use = self.chain(total)
        if number not in in_use:
            raise CorruptDirectory(
                f"Segment {number} is not in the directory chain")
        unused = [s for s in range(1, total + 1) if s not in in_use]
        if not unused:
            raise DirectoryFull(
                f"Directory full: all {total} segments are in use")
        new_number = unused[0]
        if not self.segment_in_volume(new_number):
            raise CorruptDirectory(
                f"Segment {new_number} is beyond volume bounds")

        old = self.read_segment(number)
        offsets = old.entry_offsets()
        if not offsets:
            raise EmptySegment(
                f"Cannot split directory segment {number}: it has no entries")
        pos = _choose_split(old, offsets)
        width = old.entry_words

        new = Segment(new_number, self.segment_block(new_number))
        new.words[:HEADER_WORDS] = old.words[:HEADER_WORDS]
        new.next_segment = old.next_segment
        dest = HEADER_WORDS
        for idx in offsets[pos:]:
            new.words[dest : dest + width] = old.words[idx : idx + width]
            dest += width
        new.write_eos(dest)

        old.write_eos(offsets[pos])
        old.next_segment = new_number

        self.write_segment(old)
        self.write_segment(new)

        # Re-read: when segment 1 was the one split it already holds the new link.
        seg1 = self.read_segment(1)
        if new_number > seg1.header.highest_in_use:
            seg1.words[2] = new_number
            self.write_segment(seg1)
        return new_number

    # ── allocation ─────────────────────────────────────────────────

    def write_file(self, start: int, count: int, data: bytes | bytearray):
        """Write *data* into *count* blocks at *start*, zero-padding the tail."""
        if len(data) > count * BLOCK_SIZE:
            raise ValueError(f"{len(data)} bytes do not fit in {count} block(s)")
        for i in range(count):
            chunk = bytes(data[i * BLOCK_SIZE : (i + 1) * BLOCK_SIZE])
            self.store.write_block(start + i, chunk.ljust(BLOCK_SIZE, b"\x00"))

    def allocate(self, name: str, blocks: int, date_word: int | None = None,
                 data: bytes | bytearray | None = None) -> DirEntry:
        """Create permanent file *name* of *blocks* blocks, first fit.

        The chosen empty area becomes the file; any remainder becomes a
        new empty entry right after it.  When the owning segment has no
        room for that entry it is split and the search starts over.
        If *data* is given it is written to the file's blocks before the
        directory is updated.
        """
        if blocks < 1:
            raise ValueError(f"Cannot allocate {blocks} blocks")
        rtname = normalize_name(name)
        name1, name2, ext = encode_filename(rtname)
        if not date_word:
            date_word = encode_today()

        listing = self.traverse(strict=True)
        for _ in range(listing.unused_segments + 1):
            target = next((e for e in listing.entries
                           if e.is_free and e.length >= blocks), None)
            if target is None:
                raise NoSpace(blocks)
            if (target.start_block == 0
                    or target.start_block + blocks > self.store.total_blocks):
                raise CorruptDirectory(
                    f"Empty area at block {target.start_block} "
                    f"({target.length} blocks) lies outside the volume")

            seg = self.read_segment(target.segment)
            leftover = seg.words[target.index + 4] - blocks
            if leftover < 0:
                raise CorruptDirectory(
                    f"Empty area in segment {seg.number} changed under us")
            if leftover and not seg.has_room_for_insert():
                self.split_segment(seg.number)
                listing = self.traverse(strict=True)
                continue

            if data is not None:
                self.write_file(target.start_block, blocks, data)
            seg.write_entry(target.index, E_PERM, name1, name2, ext,
                            blocks, 0, date_word)
            if leftover:
                seg.insert_empty(target.index + seg.entry_words, leftover)
            self.write_segment(seg)

            entry = seg.entry_at(target.index)
            entry.start_block = target.start_block
            return entry
        raise DirectoryFull(
            f"Directory full: no segment can take a new entry for {rtname}")

    # ── file access ────────────────────────────────────────────────

    def find_file(self, name: str) -> DirEntry | None:
        """First permanent entry called *name* (case-insensitive)."""
        wanted = name.upper()
        for e in self.traverse().entries:
            if e.permanent and e.name == wanted:
                return e
        return None

    def read_entry(self, entry: DirEntry) -> bytes:
        """Full block content of a permanent entry."""
        if not entry.permanent:
            raise ValueError(f"Cannot copy non-permanent file: {entry.name}")
        if entry.start_block == 0 or entry.end_block >= self.store.total_blocks:
            raise CorruptDirectory(
                f"RT-11 entry has invalid range; cannot copy {entry.name}")
        return self.store.read_blocks(entry.start_block, entry.length)

    def read_file(self, name: str) -> bytes:
        entry = self.find_file(name)
        if entry is None:
            raise FileNotFoundError(f"File not found: {name!r}")
        return self.read_entry(entry)

    def import_file(self, name: str, data: bytes | bytearray,
                    date_word: int | None = None) -> DirEntry:
        """Allocate room for *data* and store it as *name*."""
        return self.allocate(name, _blocks_needed(len(data)), date_word, data)

    def info(self) -> dict:
        """Summary of the volume and its directory."""
        home = self.home_block()
        listing = self.traverse()
        return {
            "total_blocks": self.store.total_blocks,
            "first_dir_block": home.first_dir_block,
            "total_segments": listing.total_segments,
            "segments_in_use": len(listing.segment_blocks),
            "data_start": listing.data_start,
            "files": len(listing.files),
            "used_blocks": listing.used_blocks,
            "free_blocks": listing.free_blocks,
            "bad_blocks": len(home.bad_blocks),
            "warnings": len(listing.warnings),
        }
