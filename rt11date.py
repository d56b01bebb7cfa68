"""
rt11date.py — RT-11 packed date words.

Date word layout (16 bits):
    bits 15-14  age       32-year epoch number (0-3)
    bits 13-10  month     1-12
    bits  9-5   day       1-31
    bits  4-0   year-low  year - 1972 - 32*age

A zero word means "no date".  Covers 1972 through 2099.
"""

from __future__ import annotations

from datetime import date

from rt11errors import InvalidDate

DATE_BASE_YEAR = 1972
DATE_MAX_YEAR = 2099
NO_DATE = 0

MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

BLANK_DATE = " " * 9     # width of "dd-Mon-yy"


def encode_date(year: int, month: int, day: int) -> int:
    """Pack a calendar date.  Returns NO_DATE if it cannot be represented."""
    if year < DATE_BASE_YEAR or year > DATE_MAX_YEAR:
        return NO_DATE
    if month < 1 or month > 12 or day < 1 or day > 31:
        return NO_DATE
    age = min(3, (year - DATE_BASE_YEAR) // 32)
    year_low = max(0, year - (DATE_BASE_YEAR + 32 * age))
    return (((age & 0x3) << 14)
            | ((month & 0xF) << 10)
            | ((day & 0x1F) << 5)
            | (year_low & 0x1F))


def unpack_date(word: int) -> tuple[int, int, int]:
    """Split a date word into (year, month, day) without validation."""
    age = (word >> 14) & 0x3
    month = (word >> 10) & 0xF
    day = (word >> 5) & 0x1F
    year = DATE_BASE_YEAR + (word & 0x1F) + 32 * age
    return year, month, day


def decode_date(word: int) -> str:
    """Format a date word as dd-Mon-yy, or blanks for no/invalid date."""
    if word == NO_DATE:
        return BLANK_DATE
    year, month, day = unpack_date(word)
    if not 1 <= month <= 12 or not 1 <= day <= 31:
        return BLANK_DATE
    return f"{day:02d}-{MONTH_NAMES[month - 1]}-{year % 100:02d}"


def date_from_word(word: int) -> date | None:
    """Convert a date word to a datetime.date, or None."""
    if word == NO_DATE:
        return None
    year, month, day = unpack_date(word)
    try:
        return date(year, month, day)
    except ValueError:
        return None


def encode_today(today: date | None = None) -> int:
    """Date word for *today* (default: the host's local date)."""
    if today is None:
        today = date.today()
    return encode_date(today.year, today.month, today.day)


def parse_date(text: str) -> int:
    """Parse dd-MMM-yy (e.g. 15-JAN-97) into a date word.

    Two-digit years 72-99 mean 1972-1999, 00-71 mean 2000-2071.
    Raises InvalidDate on anything else.
    """
    if len(text) != 9 or text[2] != "-" or text[6] != "-":
        raise InvalidDate(f"Invalid date format: {text!r} "
                          f"(expected dd-MMM-yy, e.g. 15-JAN-97)")
    day_s, mon_s, year_s = text[0:2], text[3:6], text[7:9]
    if not (day_s.isdigit() and year_s.isdigit()):
        raise InvalidDate(f"Invalid date format: {text!r}")
    day = int(day_s)
    if not 1 <= day <= 31:
        raise InvalidDate(f"Invalid day in date: {text!r}")
    try:
        month = [m.upper() for m in MONTH_NAMES].index(mon_s.upper()) + 1
    except ValueError:
        raise InvalidDate(f"Invalid month in date: {text!r}") from None
    year2 = int(year_s)
    year = 1900 + year2 if year2 >= 72 else 2000 + year2
    word = encode_date(year, month, day)
    if word == NO_DATE:
        raise InvalidDate(f"Date out of range 1972-2099: {text!r}")
    return word
