"""
rad50.py — RAD-50 text packing for RT-11 file names.

Three characters from a 40-symbol alphabet are packed into one 16-bit
word as  c1*1600 + c2*40 + c3.  A file name is two words of base name
(6 characters) plus one word of extension (3 characters).

Characters outside the alphabet encode as space; word values past the
end of the table decode as space.
"""

from __future__ import annotations

from rt11errors import InvalidName

RAD50_CHARS = " ABCDEFGHIJKLMNOPQRSTUVWXYZ$.%0123456789"

_RAD50_INDEX = {c: i for i, c in enumerate(RAD50_CHARS)}

MAX_BASE_LEN = 6
MAX_EXT_LEN = 3


def _char_at(i: int) -> str:
    return RAD50_CHARS[i] if i < len(RAD50_CHARS) else " "


def rad50_encode(s3: str) -> int:
    """Pack up to three characters into a RAD-50 word."""
    s3 = (s3.upper() + "   ")[:3]
    i1, i2, i3 = (_RAD50_INDEX.get(c, 0) for c in s3)
    return i1 * 1600 + i2 * 40 + i3


def rad50_decode(word: int) -> str:
    """Unpack a RAD-50 word into (up to) three characters, trailing spaces trimmed."""
    word &= 0xFFFF
    c1 = _char_at(word // 1600)
    word %= 1600
    c2 = _char_at(word // 40)
    c3 = _char_at(word % 40)
    return (c1 + c2 + c3).rstrip(" ")


def _split_name(name: str) -> tuple[str, str]:
    base, dot, ext = name.partition(".")
    return base, ext


def normalize_name(name: str) -> str:
    """Upper-case a host or user name and truncate it to RT-11 6.3 form.

    Raises InvalidName if there is no base component.
    """
    base, ext = _split_name(name)
    if not base:
        raise InvalidName(f"RT-11 filename must have a name: {name!r}")
    base = base.upper()[:MAX_BASE_LEN]
    ext = ext.upper()[:MAX_EXT_LEN]
    return f"{base}.{ext}" if ext else base


def encode_filename(name: str) -> tuple[int, int, int]:
    """Encode NAME.EXT into its three RAD-50 words (name1, name2, ext)."""
    base, ext = _split_name(name)
    base = base[:MAX_BASE_LEN].ljust(MAX_BASE_LEN)
    ext = ext[:MAX_EXT_LEN].ljust(MAX_EXT_LEN)
    return rad50_encode(base[0:3]), rad50_encode(base[3:6]), rad50_encode(ext)


def decode_filename(name1: int, name2: int, ext: int) -> str:
    """Decode three RAD-50 words into NAME or NAME.EXT."""
    # The first word is padded back to three characters so a short
    # leading triplet cannot swallow characters of the second one.
    base = (rad50_decode(name1).ljust(3) + rad50_decode(name2)).rstrip(" ")
    base = base[:MAX_BASE_LEN]
    extension = rad50_decode(ext)[:MAX_EXT_LEN]
    return f"{base}.{extension}" if extension else base
