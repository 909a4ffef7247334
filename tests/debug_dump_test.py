from datetime import datetime

import pytest
from openpyxl import Workbook  # type: ignore

from transcript_builder.debug_dump import main, parse_rows_arg


def test_parse_rows_arg():
    assert parse_rows_arg(None) is None
    assert parse_rows_arg("3-5, 9,x,7-6") == {3, 4, 5, 6, 7, 9}


def test_dump_lists_sheets_and_rows(tmp_path, capsys):
    wb = Workbook()
    ws = wb.active
    ws.title = "Transcript"
    ws.append(["RECORD"])
    ws.append(["Sem.", "Cat.No. And Course Name", "Grade", "Sem.Hrs"])
    ws.append([datetime(2018, 8, 20), "101 Old Testament Survey", "A", 3])
    ws.append([None, None, None, None])
    ws.append([None, "110 English Composition", "B", 3])
    wb.create_sheet("Notes")
    path = tmp_path / "record.xlsx"
    wb.save(path)

    main([str(path)])
    out = capsys.readouterr().out
    assert "Number of worksheets found: 2" in out
    assert 'Worksheet #1 => name: "Notes"' in out
    assert "First worksheet name: Transcript" in out
    assert "session='Aug-18 Sem I' cat='101' course='Old Testament Survey'" in out
    assert "[row 4]" in out and "session boundary" in out

    main([str(path), "--grep", "english"])
    out = capsys.readouterr().out
    assert "English Composition" in out
    assert "Old Testament" not in out


def test_dump_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "missing.xlsx")])
    assert "File not found" in capsys.readouterr().out
