import pytest

from fabritrack.coercion import coerce_rows
from fabritrack.crons.sheet_import import (
    already_imported,
    import_sheets_once,
    parse_sheet_csv,
    sha256_hex,
)

CSV = (
    ",,Requisição,Nome da peça,Material,Quantidade,Centro,Torno,Programação,Status\n"
    "Igarassu,20/07/2024,1201,Eixo,Aço 1045,10,120,30,,Encerrado\n"
    ",,,,,,,,,\n"
    "Vinhedo,not-a-date,,Bucha,Bronze,-5,abc,,,\n"
).encode("utf-8")


def test_parse_sheet_csv_uses_positional_names_for_blank_headers():
    rows = parse_sheet_csv(CSV)
    assert list(rows) == ["2", "4"]
    assert rows["2"]["columnA"] == "Igarassu"
    assert rows["2"]["columnB"] == "20/07/2024"
    assert rows["2"]["Programação"] is None
    assert rows["4"]["Quantidade"] == "-5"


def test_parsed_rows_coerce_cleanly():
    records = {r.id: r for r in coerce_rows(parse_sheet_csv(CSV))}
    assert records["2"].manufacturing_time == pytest.approx(2.5)
    assert records["2"].requesting_factory == "Igarassu"
    assert records["4"].quantity == 0


def test_parse_sheet_csv_requires_header():
    with pytest.raises(ValueError):
        parse_sheet_csv(b"")


def test_wide_sheets_get_two_letter_columns():
    header = "," * 27 + "Material\n"
    row = "x," * 27 + "Aço\n"
    rows = parse_sheet_csv((header + row).encode("utf-8"))
    assert rows["2"]["columnAA"] == "x"
    assert rows["2"]["Material"] == "Aço"


def test_import_skips_unchanged_content(store, session_factory):
    calls = []

    def download(spreadsheet_id, sheet_name):
        calls.append(sheet_name)
        return CSV

    with session_factory() as session:
        first = import_sheets_once(store, session, "sheet", ["Página1"], download=download)
        second = import_sheets_once(store, session, "sheet", ["Página1"], download=download)
        assert already_imported(session, "sheet", "Página1", sha256_hex(CSV))

    assert first["sheets_imported"] == 1
    assert first["rows_loaded"] == 2
    assert second["sheets_skipped"] == 1
    assert calls == ["Página1", "Página1"]
    assert set(store.read("sheet/Página1")) == {"2", "4"}


def test_import_records_failures(store, session_factory):
    def download(spreadsheet_id, sheet_name):
        if sheet_name == "Quebrada":
            raise RuntimeError("Sheet export returned HTML")
        return CSV

    with session_factory() as session:
        summary = import_sheets_once(store, session, "sheet", ["Quebrada", "Página1"], download=download)
        assert not already_imported(session, "sheet", "Quebrada", sha256_hex(CSV))

    assert summary["sheets_imported"] == 1
    assert summary["failures"][0]["sheet_name"] == "Quebrada"


def test_reimport_clears_blank_cells_and_removes_deleted_rows(store, session_factory):
    header = ",,Nome da peça,Centro,Torno\n"
    before = (header + "Vinhedo,20/07/2024,Bucha,120,30\nSuape,21/07/2024,Flange,60,0\n").encode("utf-8")
    after = (header + "Vinhedo,20/07/2024,Bucha,,30\n").encode("utf-8")
    downloads = iter([before, after])

    with session_factory() as session:
        import_sheets_once(store, session, "sheet", ["Página1"], download=lambda *_: next(downloads))
        summary = import_sheets_once(store, session, "sheet", ["Página1"], download=lambda *_: next(downloads))

    assert summary["sheets_imported"] == 1
    assert summary["rows_removed"] == 1
    assert set(store.read("sheet/Página1")) == {"2"}
    record = coerce_rows(store.read("sheet/Página1"))[0]
    assert record.centro_time == 0
    assert record.torno_time == pytest.approx(0.5)
