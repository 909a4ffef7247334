from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path
from typing import List, Optional, Pattern, Set

from transcript_builder.build_transcript import (
    HEADER_ROWS,
    TranscriptError,
    load_workbook_bytes,
    parse_row,
)


def parse_rows_arg(p: Optional[str]) -> Optional[Set[int]]:
    """Parse a sheet row selection such as "3-10,14" into row numbers."""
    if not p:
        return None
    parts: List[int] = []
    for chunk in p.split(","):
        chunk_s = chunk.strip()
        if not chunk_s:
            continue
        if "-" in chunk_s:
            a, b = chunk_s.split("-", 1)
            try:
                a_i, b_i = int(a), int(b)
            except ValueError:
                continue
            start, end = (a_i, b_i) if a_i <= b_i else (b_i, a_i)
            parts.extend(range(start, end + 1))
        else:
            try:
                parts.append(int(chunk_s))
            except ValueError:
                continue
    return set(parts)


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(
        prog="transcript-dump", description="Dump workbook rows as the transcript builder sees them"
    )
    ap.add_argument("workbook", help="Path to .xlsx or .xls workbook")
    ap.add_argument("--rows", help="Sheet rows to include, e.g. 3-10,14", default=None)
    ap.add_argument("--grep", help="Regex to filter rows", default=None)
    args = ap.parse_args(argv if argv is not None else sys.argv[1:])

    path = Path(args.workbook)
    if not path.exists():
        print("File not found:", path)
        sys.exit(2)

    try:
        wb = load_workbook_bytes(path.read_bytes())
    except TranscriptError as e:
        print(f"Error reading workbook: {e}")
        sys.exit(2)

    print("Number of worksheets found:", len(wb.worksheets))
    for idx, ws in enumerate(wb.worksheets):
        print(f'Worksheet #{idx} => name: "{ws.title}"')

    if not wb.worksheets:
        print("No worksheet found at index [0].")
        sys.exit(2)

    first = wb.worksheets[0]
    print("First worksheet name:", first.title)

    row_set = parse_rows_arg(args.rows)
    rx: Optional[Pattern[str]] = re.compile(args.grep, re.I) if args.grep else None

    for ridx, values in enumerate(
        first.iter_rows(min_row=HEADER_ROWS + 1, values_only=True), start=HEADER_ROWS + 1
    ):
        if row_set and ridx not in row_set:
            continue
        joined = " | ".join("" if v is None else str(v) for v in values)
        if rx and not rx.search(joined):
            continue
        rec = parse_row(values)
        print(f"[row {ridx}] {joined}")
        if rec.is_boundary:
            print("   - (blank: session boundary)")
        else:
            print(f"   - session={rec.session!r} cat={rec.category_number!r} course={rec.course!r}")
            print(f"   - grade={rec.grade!r} hrs={rec.credit_hours!r}")
        print("-" * 60)


if __name__ == "__main__":
    main()
