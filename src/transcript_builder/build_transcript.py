from __future__ import annotations

import argparse
import io
import logging
import re
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

import openpyxl
import xlrd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.workbook import Workbook

from transcript_builder.transcript_document import build_document, save_document

LOGGER = logging.getLogger(__name__)

# ---------- Layout of the input sheet ----------
HEADER_ROWS = 2
SESSION_COL = 1
COURSE_COL = 2
GRADE_COL = 3
HOURS_COL = 4

NO_SESSION = "NoSession"
UNKNOWN_YEAR = "Unknown"
DEFAULT_OUTPUT_NAME = "Generated_Transcript_Updated.docx"
ACCEPTED_SUFFIXES = (".xlsx", ".xls")

# Summary lines at the bottom of a sheet; they never belong to a session.
FOOTER_MARKERS = (
    "total number of semester hours earned",
    "number of semester hours required for graduation",
    "cumulative grade point average",
)

HEADER_HINT = (
    "Error generating transcript. Please ensure the Excel document has headers in the "
    "following format: 'Sem. Cat.No. And Course Name\tGrade\tSem.Hrs\tGPA'."
)

# ---------- Magic bytes ----------
XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

# ---------- Regexes ----------
CATEGORY_COURSE_PAT = re.compile(r"^(\d+)\s+(.*)$", re.S)
SEM_I_PAT = re.compile(r"(?i)(Aug|Sep|Oct|Nov|Dec)-(\d{2,4})\s+Sem\s*I(?!I)")
SEM_II_PAT = re.compile(r"(?i)(Jan|Feb|Mar|Apr|May|Jun)-(\d{2,4})\s+Sem\s*II")
ISO_DATE_PAT = re.compile(r"^\d{4}-\d{2}-\d{2}")

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
SECOND_HALF_MONTHS = frozenset(range(1, 7))

# Layouts tried after ISO; order matters for ambiguous two-digit years.
DATE_FORMATS = (
    "%m/%d/%Y",
    "%m/%d/%y",
    "%b-%y",
    "%b-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %Y",
    "%B %Y",
)


class TranscriptError(Exception):
    """Fatal problem with an input workbook; no document is produced."""


class MissingWorksheetError(TranscriptError):
    pass


class UnreadableFileError(TranscriptError):
    pass


@dataclass
class ParsedRecord:
    raw_session: str
    session: str
    course: str
    category_number: str
    grade: str
    credit_hours: str

    @property
    def is_boundary(self) -> bool:
        return not (self.raw_session or self.course or self.grade or self.credit_hours)


@dataclass
class CourseEntry:
    course: str
    category_number: str
    grade: str
    credit_hours: str


@dataclass
class AcademicYearKey:
    year: str
    half: str | None


@dataclass
class TableRow:
    cells: list[list[str]]

    @property
    def is_separator(self) -> bool:
        return all(lines == [""] for lines in self.cells)


@dataclass
class TranscriptResult:
    buckets: dict[str, list[CourseEntry]]
    rows: list[TableRow]
    unplaced: list[str] = field(default_factory=list)

    @property
    def course_count(self) -> int:
        return sum(len(courses) for courses in self.buckets.values())


def _cell_text(v: object) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


# ---------- Field parsing ----------


def split_category_and_course(raw: object) -> tuple[str, str]:
    """Split "101 Old Testament Survey" into ("101", "Old Testament Survey")."""
    text = _cell_text(raw)
    m = CATEGORY_COURSE_PAT.match(text)
    if m:
        return m.group(1), m.group(2).strip()
    return "", text


def _parse_date(v: object) -> date | None:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if not isinstance(v, str):
        return None
    s = v.strip()
    if not s:
        return None
    if ISO_DATE_PAT.match(s):
        try:
            return datetime.fromisoformat(s).date()
        except ValueError:
            return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def format_session(raw: object) -> str:
    """Render a date-like cell as "Aug-18 Sem I"; anything else passes through as text."""
    d = _parse_date(raw)
    if d is None:
        return _cell_text(raw)
    semester = "Sem II" if d.month in SECOND_HALF_MONTHS else "Sem I"
    return f"{MONTH_ABBR[d.month - 1]}-{d.year % 100:02d} {semester}"


def parse_row(raw_row: Sequence[object]) -> ParsedRecord:
    def col(n: int) -> object:
        return raw_row[n - 1] if len(raw_row) >= n else None

    raw_session = col(SESSION_COL)
    category_number, course = split_category_and_course(col(COURSE_COL))
    return ParsedRecord(
        raw_session=_cell_text(raw_session),
        session=format_session(raw_session).strip(),
        course=course,
        category_number=category_number,
        grade=_cell_text(col(GRADE_COL)),
        credit_hours=_cell_text(col(HOURS_COL)),
    )


# ---------- Session classification ----------


def _previous_year(digits: str) -> str:
    n = int(digits) - 1
    if len(digits) == 2:
        return f"{n % 100:02d}"
    return f"{n:0{len(digits)}d}"


def classify_academic_year(label: str) -> AcademicYearKey:
    """Map a session label to the academic year that started the preceding August.

    "Aug-18 Sem I" belongs to year 18; "Jan-18 Sem II" belongs to year 17.
    """
    m = SEM_I_PAT.search(label)
    if m:
        return AcademicYearKey(m.group(2), "I")
    m = SEM_II_PAT.search(label)
    if m:
        return AcademicYearKey(_previous_year(m.group(2)), "II")
    return AcademicYearKey(UNKNOWN_YEAR, None)


# ---------- Grouping ----------


def _is_footer(course: str) -> bool:
    low = course.strip().lower()
    return any(low.startswith(marker) for marker in FOOTER_MARKERS)


class _SessionFold:
    def __init__(self) -> None:
        self.current: str | None = None
        self.buckets: dict[str, list[CourseEntry]] = {}

    def feed(self, rec: ParsedRecord) -> None:
        if rec.is_boundary:
            self.current = None
            return
        if rec.raw_session:
            self.current = rec.session
        if not self.current:
            self.current = NO_SESSION
        bucket = self.buckets.setdefault(self.current, [])
        if _is_footer(rec.course):
            return
        bucket.append(CourseEntry(rec.course, rec.category_number, rec.grade, rec.credit_hours))


def group_sessions(records: Iterable[ParsedRecord]) -> dict[str, list[CourseEntry]]:
    fold = _SessionFold()
    for rec in records:
        fold.feed(rec)
    return fold.buckets


# ---------- Pairing ----------


def _is_int(s: str) -> bool:
    try:
        int(s)
    except ValueError:
        return False
    return True


def _academic_years(
    buckets: dict[str, list[CourseEntry]],
) -> dict[str, dict[str, list[CourseEntry]]]:
    years: dict[str, dict[str, list[CourseEntry]]] = {}
    for label, courses in buckets.items():
        years.setdefault(classify_academic_year(label).year, {})[label] = courses
    return years


def _sorted_year_keys(keys: Sequence[str]) -> list[str]:
    known = [k for k in keys if k != UNKNOWN_YEAR]
    ordered = sorted((k for k in known if _is_int(k)), key=int)
    ordered.extend(k for k in known if not _is_int(k))
    if UNKNOWN_YEAR in keys:
        ordered.append(UNKNOWN_YEAR)
    return ordered


def _session_cells(label: str | None, courses: list[CourseEntry]) -> list[list[str]]:
    return [
        [label or ""],
        [c.course for c in courses],
        [c.category_number for c in courses],
        [c.grade for c in courses],
        [c.credit_hours for c in courses],
    ]


def separator_row() -> TableRow:
    return TableRow([[""] for _ in range(10)])


def pair_by_year(buckets: dict[str, list[CourseEntry]]) -> list[TableRow]:
    years = _academic_years(buckets)
    rows: list[TableRow] = []
    for year in _sorted_year_keys(list(years)):
        sessions = years[year]
        left = [s for s in sessions if SEM_I_PAT.search(s)]
        right = [s for s in sessions if SEM_II_PAT.search(s)]
        while left or right:
            left_key = left.pop(0) if left else None
            right_key = right.pop(0) if right else None
            cells = _session_cells(left_key, sessions[left_key] if left_key else [])
            cells += _session_cells(right_key, sessions[right_key] if right_key else [])
            rows.append(TableRow(cells))
            rows.append(separator_row())
    return rows


def unplaced_sessions(buckets: dict[str, list[CourseEntry]]) -> list[str]:
    return [label for label in buckets if classify_academic_year(label).half is None]


# ---------- Workbook loading ----------


def detect_format(data: bytes) -> str:
    if data.startswith(XLSX_MAGIC):
        return "xlsx"
    if data.startswith(XLS_MAGIC):
        return "xls"
    raise UnreadableFileError("File is neither an .xlsx nor an .xls workbook")


def normalize_legacy_workbook(data: bytes) -> Workbook:
    """Copy a legacy .xls book into an in-memory openpyxl workbook."""
    try:
        book = xlrd.open_workbook(file_contents=data)
    except Exception as e:
        raise UnreadableFileError(f"Could not read .xls: {e}") from e

    wb = Workbook()
    wb.remove(wb.active)
    for sheet in book.sheets():
        ws = wb.create_sheet(title=sheet.name)
        for r in range(sheet.nrows):
            for c in range(sheet.ncols):
                cell = sheet.cell(r, c)
                if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
                    continue
                value = cell.value
                if isinstance(value, str):
                    value = ILLEGAL_CHARACTERS_RE.sub("", value)
                if cell.ctype == xlrd.XL_CELL_DATE:
                    try:
                        value = xlrd.xldate.xldate_as_datetime(cell.value, book.datemode)
                    except Exception:
                        value = cell.value
                ws.cell(row=r + 1, column=c + 1, value=value)
    LOGGER.debug("Normalized legacy workbook with %d sheet(s)", len(wb.worksheets))
    return wb


def load_workbook_bytes(data: bytes) -> Workbook:
    if detect_format(data) == "xls":
        return normalize_legacy_workbook(data)
    try:
        return openpyxl.load_workbook(io.BytesIO(data), data_only=True)
    except Exception as e:
        raise UnreadableFileError(f"Could not read .xlsx: {e}") from e


def rows_from_workbook(wb: Workbook) -> list[tuple[object, ...]]:
    if not wb.worksheets:
        raise MissingWorksheetError("No worksheet found at index [0].")
    ws = wb.worksheets[0]
    return [tuple(r) for r in ws.iter_rows(min_row=HEADER_ROWS + 1, values_only=True)]


def read_rows(data: bytes) -> list[tuple[object, ...]]:
    return rows_from_workbook(load_workbook_bytes(data))


def build_transcript(raw_rows: Iterable[Sequence[object]]) -> TranscriptResult:
    records = [parse_row(r) for r in raw_rows]
    buckets = group_sessions(records)
    for label, courses in buckets.items():
        LOGGER.debug("Session %r: %d course(s)", label, len(courses))
    unplaced = unplaced_sessions(buckets)
    if unplaced:
        LOGGER.warning("Sessions without an academic year were left out: %s", ", ".join(unplaced))
    return TranscriptResult(buckets, pair_by_year(buckets), unplaced)


def run_file(path: Path) -> TranscriptResult:
    try:
        data = path.read_bytes()
    except OSError as e:
        raise UnreadableFileError(f"Could not open {path}: {e}") from e
    raw_rows = read_rows(data)
    LOGGER.debug("Read %d data row(s) from %s", len(raw_rows), path.name)
    return build_transcript(raw_rows)


def _output_path(inp: Path, out: str | None, out_dir: str | None, many: bool) -> Path:
    if out:
        return Path(out)
    folder = Path(out_dir) if out_dir else inp.parent
    name = f"{inp.stem}_{DEFAULT_OUTPUT_NAME}" if many else DEFAULT_OUTPUT_NAME
    return folder / name


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="transcript-builder")
    parser.add_argument("inputs", nargs="+", help="Excel workbook(s), .xlsx or .xls")
    parser.add_argument("--out", default=None, help="Output .docx path (single input only)")
    parser.add_argument("--out-dir", default=None, help="Directory for generated documents")
    parser.add_argument("--verbose", action="store_true", help="Log grouping details")
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.out and len(args.inputs) > 1:
        parser.error("--out can only be used with a single input")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    many = len(args.inputs) > 1
    failed = False
    for inp in args.inputs:
        p = Path(inp)
        print(f"Results for {p.name}")

        if p.suffix.lower() not in ACCEPTED_SUFFIXES:
            print("  Please make sure you are uploading a valid .xlsx or .xls file")
            failed = True
            continue

        try:
            result = run_file(p)
            document = build_document(result.rows)
        except TranscriptError as e:
            LOGGER.error("Failed to build transcript for %s: %s", p, e)
            print(f"  {HEADER_HINT} ({e})")
            failed = True
            continue

        out_path = _output_path(p, args.out, args.out_dir, many)
        try:
            save_document(document, out_path)
        except OSError as e:
            LOGGER.error("Failed to write %s: %s", out_path, e)
            print(f"  Could not write transcript to {out_path} ({e})")
            failed = True
            continue

        print(f"  Sessions: {len(result.buckets)}")
        print(f"  Courses: {result.course_count}")
        if result.unplaced:
            print(f"  Unplaced sessions: {', '.join(result.unplaced)}")
        print(f"  Transcript written to {out_path}")

    if failed:
        sys.exit(2)


if __name__ == "__main__":
    main()
