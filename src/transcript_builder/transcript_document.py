from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from docx import Document
from docx.enum.text import WD_ALIGN_PARAGRAPH

if TYPE_CHECKING:
    from docx.document import Document as DocxDocument
    from docx.table import _Cell

    from transcript_builder.build_transcript import TableRow

LOGGER = logging.getLogger(__name__)

TABLE_HEADER = ("SESSION", "COURSE", "CAT. NO.", "GRADE", "SEM. HRS.") * 2
TABLE_COLUMNS = len(TABLE_HEADER)

GRADING_LEGEND = (
    "The year consists of two semesters of approximately 16 weeks each.  "
    "Length of School Hour: Each lecture hour consists of not less than 50 minutes.  "
    "Grading System: A [100-96]; A- [95-93]; B+ [92-90]; B [89-87]; B- [86-84]; "
    "C+ [83-81]; C [80-78]; C- [77-75]; D+ [74-73]; D [72-71]; D- [70-66]; "
    "F [65- Below]; I [Incomplete}; W [Withdrew]."
)

# Left blank on purpose; the registrar fills these in by hand.
SUMMARY_LINES = (
    "Total Number of Semester Hours Earned: ",
    "Number of Semester Hours Required for Graduation: ",
    "Cumulative Grade Point Average: ",
)

SIGNATURE_LINE = "…" * 22


@dataclass(frozen=True)
class Letterhead:
    institution: str = "AFRICAN BIBLE COLLEGE"
    address: str = "P.O. BOX 1028, LILONGWE, MALAWI"
    contact: str = "PHONE (265) 761-646 Email: registrar@abcmalawi.org"
    signatory: str = "ASSISTANT REGISTRAR"

    @property
    def seal_notice(self) -> str:
        return f"This transcript is not valid unless it bears the seal of {self.institution.title()}."

    def student_block(self) -> list[str]:
        return [
            "OFFICE OF THE REGISTRAR",
            "OFFICIAL TRANSCRIPT OF THE RECORD OF:",
            " [last name], [first name] STUDENT #[student number]",
            "BIRTHDATE: [mm-dd-yy]",
            "ATTENDANCE FROM: August 20[XX] TO: June 20[XX]",
            "PRESENT STATUS: GRADUATED [start year] WITH A BACHELORS OF [end year]",
            f"CREDITS EARNED AT {self.institution}",
        ]


DEFAULT_LETTERHEAD = Letterhead()


def _fill_cell(cell: _Cell, lines: Sequence[str]) -> None:
    """One paragraph per line; a new cell already holds one empty paragraph."""
    if not lines:
        return
    cell.paragraphs[0].text = lines[0]
    for line in lines[1:]:
        cell.add_paragraph(line)


def format_issued_at(issued_at: datetime) -> str:
    stamp = issued_at.strftime("%a %b %d %Y %H:%M:%S")
    if issued_at.tzinfo is None:
        return stamp
    return f"{stamp} GMT{issued_at.strftime('%z')} ({issued_at.tzname()})"


def build_document(
    rows: Sequence[TableRow],
    issued_at: datetime | None = None,
    letterhead: Letterhead = DEFAULT_LETTERHEAD,
) -> DocxDocument:
    doc = Document()

    for text in (letterhead.institution, letterhead.address, letterhead.contact):
        doc.add_paragraph(text).alignment = WD_ALIGN_PARAGRAPH.CENTER
    doc.add_paragraph("")

    for text in letterhead.student_block():
        doc.add_paragraph(text).alignment = WD_ALIGN_PARAGRAPH.LEFT

    table = doc.add_table(rows=0, cols=TABLE_COLUMNS)
    table.style = "Table Grid"
    header = table.add_row().cells
    for cell, title in zip(header, TABLE_HEADER):
        _fill_cell(cell, [title])
    for row in rows:
        cells = table.add_row().cells
        for cell, lines in zip(cells, row.cells):
            _fill_cell(cell, lines)
    LOGGER.debug("Rendered %d table row(s)", len(rows))

    doc.add_paragraph("")
    for text in SUMMARY_LINES:
        doc.add_paragraph(text)
    doc.add_paragraph("")
    doc.add_paragraph(GRADING_LEGEND)
    for _ in range(3):
        doc.add_paragraph("")
    doc.add_paragraph(SIGNATURE_LINE)
    doc.add_paragraph(letterhead.signatory)
    doc.add_paragraph(letterhead.seal_notice)
    stamp = format_issued_at(issued_at or datetime.now().astimezone())
    doc.add_paragraph(f"This transcript was issued on:  {stamp}.")
    return doc


def save_document(document: DocxDocument, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(path))
    LOGGER.debug("Saved transcript to %s", path)
    return path
