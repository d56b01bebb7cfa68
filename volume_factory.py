"""
volume_factory.py — Build synthetic RT-11 images for the test suite.

Test-only helper.  The tools themselves never initialise a volume, so
tests lay out home block and directory segments by hand here.

    img = build_image(entries={1: [empty(100)]}, data_start=10)
    vol = open_volume(img)
"""

from __future__ import annotations

import io
import struct

from blockstore import BLOCK_SIZE, BlockStore
from rad50 import encode_filename
from rt11fs import (
    BASE_ENTRY_WORDS, DEFAULT_DIR_BLOCK, E_EOS, E_MPTY, E_PERM, E_TENT,
    HEADER_WORDS, HOME_BADBLOCK_WORD, HOME_CLUSTER_WORD, HOME_FIRST_DIR_WORD,
    HOME_VERSION_WORD, SEGMENT_BLOCKS, SEGMENT_WORDS, RT11Volume,
)


def permanent(name: str, length: int, date_word: int = 0) -> tuple:
    return (E_PERM, name, length, date_word)


def empty(length: int) -> tuple:
    return (E_MPTY, "", length, 0)


def tentative(name: str, length: int) -> tuple:
    return (E_TENT, name, length, 0)


def _put_words(img: bytearray, block: int, words: list[int]):
    off = block * BLOCK_SIZE
    struct.pack_into(f"<{len(words)}H", img, off, *words)


def segment_words(entries: list[tuple], total_segments: int, next_segment: int,
                  highest: int, extra_bytes: int, data_start: int,
                  with_eos: bool = True) -> list[int]:
    """Words of one directory segment holding *entries*."""
    width = BASE_ENTRY_WORDS + extra_bytes // 2
    words = [0] * SEGMENT_WORDS
    words[:HEADER_WORDS] = [total_segments, next_segment, highest,
                            extra_bytes, data_start]
    idx = HEADER_WORDS
    for status, name, length, date_word in entries:
        n1, n2, ext = encode_filename(name) if name else (0, 0, 0)
        words[idx : idx + BASE_ENTRY_WORDS] = [status, n1, n2, ext,
                                               length, 0, date_word]
        idx += width
    if with_eos and idx + width <= SEGMENT_WORDS:
        words[idx] = E_EOS
    return words


def build_image(entries: dict[int, list[tuple]] | None = None,
                total_blocks: int = 400,
                total_segments: int = 4,
                chain: list[int] | None = None,
                links: dict[int, int] | None = None,
                extra_bytes: int = 0,
                data_start: int | None = None,
                first_dir_block: int = 0,
                highest: int | None = None,
                bad_blocks: list[tuple[int, int]] = (),
                cluster_size: int = 1,
                system_version: int = 0o107123) -> bytearray:
    """Lay out a volume image.

    *entries* maps segment number -> entry tuples (see permanent(),
    empty(), tentative()).  Segments are linked in *chain* order
    (default: sorted keys of *entries*); *links* overrides individual
    next-segment words, e.g. to build a loop.
    """
    entries = entries if entries is not None else {1: [empty(100)]}
    chain = chain if chain is not None else sorted(entries)
    dir_block = first_dir_block or DEFAULT_DIR_BLOCK
    if data_start is None:
        data_start = dir_block + total_segments * SEGMENT_BLOCKS
    if highest is None:
        highest = max(chain)

    img = bytearray(total_blocks * BLOCK_SIZE)

    home = [0] * (BLOCK_SIZE // 2)
    for i, (blk, count) in enumerate(bad_blocks):
        home[HOME_BADBLOCK_WORD + 2 * i] = blk
        home[HOME_BADBLOCK_WORD + 2 * i + 1] = count
    home[HOME_CLUSTER_WORD] = cluster_size
    home[HOME_FIRST_DIR_WORD] = first_dir_block
    home[HOME_VERSION_WORD] = system_version
    _put_words(img, 1, home)

    next_of = {seg: (chain[i + 1] if i + 1 < len(chain) else 0)
               for i, seg in enumerate(chain)}
    next_of.update(links or {})
    for seg, seg_entries in entries.items():
        words = segment_words(seg_entries, total_segments,
                              next_of.get(seg, 0), highest, extra_bytes,
                              data_start)
        _put_words(img, dir_block + (seg - 1) * SEGMENT_BLOCKS, words)
    return img


def open_volume(img: bytearray) -> tuple[RT11Volume, io.BytesIO]:
    """Wrap an image in an in-memory BlockStore and volume."""
    buf = io.BytesIO(bytes(img))
    return RT11Volume(BlockStore(buf)), buf


def read_words(buf: io.BytesIO, block: int, count: int) -> list[int]:
    data = buf.getvalue()[block * BLOCK_SIZE : block * BLOCK_SIZE + count * 2]
    return list(struct.unpack(f"<{count}H", data))
