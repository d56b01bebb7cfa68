#!/usr/bin/env python3
"""
rt11dir.py — RT-11 disk image utility.

List the directory of an RT-11 volume image, copy files out of it to
the host, and copy host files into it.

Usage:
    python rt11dir.py ls IMAGE [--brief] [--empty]
    python rt11dir.py get IMAGE [PATTERN] [--to DIR] [--noreplace]
    python rt11dir.py put IMAGE SOURCE... [--date dd-MMM-yy] [--noreplace]
    python rt11dir.py cat IMAGE NAME
    python rt11dir.py badblocks IMAGE
    python rt11dir.py info IMAGE

Without a Y2K-patched RT-11, use --date with a pre-1990 date when
copying files in.
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path

from blockstore import BlockStore
from rad50 import normalize_name
from rt11date import decode_date, parse_date
from rt11errors import RT11Error
from rt11fs import DirectoryListing, HomeBlock, RT11Volume
from wildcard import expand_host_pattern, has_wildcard, match_rt11_pattern


@dataclass
class CopyResult:
    """Outcome of copying one file in either direction."""
    source: str
    dest: str
    blocks: int = 0
    skipped: bool = False


# ── Listing ────────────────────────────────────────────────────────────

def format_listing(listing: DirectoryListing, brief: bool = False,
                   show_empty: bool = False) -> list[str]:
    """Render directory entries the way the RT-11 DIR listing reads."""
    lines = []
    for e in listing.entries:
        if e.empty and not show_empty:
            continue
        if not e.permanent and not e.empty:
            continue
        if brief:
            lines.append("<EMPTY>" if e.empty else e.name)
        elif e.empty:
            lines.append(f"{'<EMPTY>':<12} len={e.length:<6} "
                         f"start={e.start_block:<6}")
        else:
            lines.append(f"{e.name:<12} len={e.length:<6} "
                         f"start={e.start_block:<6} {e.date_str}")
    if not brief:
        lines += [
            "",
            f"Files: {len(listing.files)}",
            f"Total used blocks: {listing.used_blocks}",
            f"Total free blocks: {listing.free_blocks}",
        ]
    return lines


def format_bad_blocks(home: HomeBlock) -> list[str]:
    """Home block diagnostics: bad block table and volume pointers."""
    lines = [
        "=== BAD BLOCK TABLE ===",
        "Home block bad block table (starts at word 16 / octal byte 040):",
    ]
    if home.bad_blocks:
        for i, (blk, count) in enumerate(home.bad_blocks):
            lines.append(f"  Entry {i}: Block {blk}, Count {count}")
    else:
        lines.append("  (No bad blocks registered)")
    lines += [
        "",
        "Other home block info:",
        f"  First directory block (word 234 / octal byte 724): "
        f"{home.raw_first_dir_block}",
        f"  Pack cluster size (word 233 / octal byte 722): "
        f"{home.pack_cluster_size}",
        f"  System version (word 235 / octal byte 726): "
        f"{home.system_version:x}",
    ]
    return lines


# ── Copying ────────────────────────────────────────────────────────────

def resolve_dest_dir(to: str | None) -> Path:
    """Destination directory from a --to value ("dir", "dir/*.*" or none)."""
    if not to:
        return Path.cwd()
    if has_wildcard(to):
        to = os.path.dirname(to)
    return Path(to) if to else Path.cwd()


def export_files(vol: RT11Volume, pattern: str | None, dest_dir: Path,
                 no_replace: bool = False) -> list[CopyResult]:
    """Copy permanent files matching *pattern* into *dest_dir*."""
    pattern = (pattern or "*.*").upper()
    matches = [e for e in vol.traverse().entries
               if e.permanent and match_rt11_pattern(e.name, pattern)]
    if not matches:
        raise FileNotFoundError(f"No RT-11 files matched pattern: {pattern}")

    results = []
    for e in matches:
        out_path = Path(dest_dir) / e.name
        if no_replace and out_path.exists():
            results.append(CopyResult(e.name, str(out_path), e.length,
                                      skipped=True))
            continue
        out_path.write_bytes(vol.read_entry(e))
        results.append(CopyResult(e.name, str(out_path), e.length))
    return results


def import_files(vol: RT11Volume, sources: list[str], no_replace: bool = False,
                 date_word: int | None = None) -> list[CopyResult]:
    """Copy host files (paths or wildcard patterns) onto the volume."""
    paths: list[Path] = []
    for src in sources:
        paths.extend(expand_host_pattern(src))

    results = []
    for path in paths:
        rtname = normalize_name(path.name)
        if no_replace and vol.find_file(rtname) is not None:
            results.append(CopyResult(str(path), rtname, skipped=True))
            continue
        entry = vol.import_file(rtname, path.read_bytes(), date_word)
        results.append(CopyResult(str(path), entry.name, entry.length))
    return results


# ── CLI ────────────────────────────────────────────────────────────────

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rt11dir",
        description="RT-11 disk image utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  rt11dir ls disk.dsk --empty\n"
               "  rt11dir get disk.dsk '*.SAV' --to /tmp\n"
               "  rt11dir put disk.dsk 'src/*.MAC' --date 15-JAN-87\n"
               "\n"
               "Names are stored as upper-case RAD-50, truncated to 6.3.\n",
    )
    sub = parser.add_subparsers(dest="cmd")

    # ls: directory listing
    p_ls = sub.add_parser("ls", help="List files on the volume")
    p_ls.add_argument("image", help="Disk image path")
    p_ls.add_argument("-b", "--brief", action="store_true",
                      help="Names only, no bad block table")
    p_ls.add_argument("-e", "--empty", action="store_true",
                      help="Include <EMPTY> areas")

    # get: copy from the volume to the host
    p_get = sub.add_parser("get", help="Copy files from the volume")
    p_get.add_argument("image", help="Disk image path")
    p_get.add_argument("pattern", nargs="?", default="*.*",
                       help="RT-11 NAME.EXT pattern (default: *.*)")
    p_get.add_argument("-o", "--to", default=None,
                       help="Destination directory (default: current)")
    p_get.add_argument("--noreplace", action="store_true",
                       help="Do not overwrite existing host files")

    # put: copy host files onto the volume
    p_put = sub.add_parser("put", help="Copy host files to the volume")
    p_put.add_argument("image", help="Disk image path")
    p_put.add_argument("sources", nargs="+",
                       help="Host file(s) or wildcard pattern(s)")
    p_put.add_argument("-d", "--date", default=None,
                       help="File date as dd-MMM-yy (default: today)")
    p_put.add_argument("--noreplace", action="store_true",
                       help="Skip names already on the volume")

    # cat: dump one file
    p_cat = sub.add_parser("cat", help="Write one file's blocks to stdout")
    p_cat.add_argument("image", help="Disk image path")
    p_cat.add_argument("name", help="RT-11 file name")

    # badblocks: home block diagnostics
    p_bad = sub.add_parser("badblocks", help="Show the bad block table")
    p_bad.add_argument("image", help="Disk image path")

    # info: volume summary
    p_info = sub.add_parser("info", help="Show volume summary")
    p_info.add_argument("image", help="Disk image path")

    return parser


def _run(args) -> None:
    writable = args.cmd == "put"
    with BlockStore.open(args.image, writable=writable) as store:
        vol = RT11Volume(store)

        if args.cmd == "ls":
            listing = vol.traverse()
            for w in listing.warnings:
                print(f"Warning: {w}", file=sys.stderr)
            print(f"Directory of {args.image}\n")
            for line in format_listing(listing, args.brief, args.empty):
                print(line)
            if not args.brief:
                print()
                for line in format_bad_blocks(vol.home_block()):
                    print(line)

        elif args.cmd == "get":
            dest = resolve_dest_dir(args.to)
            for r in export_files(vol, args.pattern, dest, args.noreplace):
                if r.skipped:
                    print(f"Skipping {r.dest} (already exists, noreplace)")
                else:
                    print(f"Copied {r.source} -> {r.dest}")

        elif args.cmd == "put":
            date_word = None
            if args.date:
                date_word = parse_date(args.date)
                print(f"Using custom date: {args.date} "
                      f"({decode_date(date_word)})")
            for r in import_files(vol, args.sources, args.noreplace,
                                  date_word):
                if r.skipped:
                    print(f"Skipping {r.dest} (already exists on RT-11, "
                          f"noreplace)")
                else:
                    print(f"Copied {r.source} -> {r.dest} on {args.image}")

        elif args.cmd == "cat":
            sys.stdout.buffer.write(vol.read_file(args.name))

        elif args.cmd == "badblocks":
            for line in format_bad_blocks(vol.home_block()):
                print(line)

        elif args.cmd == "info":
            for k, v in vol.info().items():
                print(f"  {k}: {v}")


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd is None:
        parser.print_help()
        return 0

    try:
        _run(args)
    except (RT11Error, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
