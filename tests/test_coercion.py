import math
from datetime import datetime

import pytest

from fabritrack.coercion import (
    MalformedFieldError,
    RawRow,
    coerce_entries,
    coerce_loss,
    coerce_losses,
    coerce_row,
    coerce_rows,
    parse_int,
    parse_number,
    parse_sheet_date,
    standardize_factory,
    standardize_status,
    strict_number,
)

NOW = datetime(2024, 8, 1, 12, 0, 0)

ROW_GOOD = {
    "Centro": "120",
    "Torno (minutos)": "30",
    "Site": "Igarassu",
    "Quantidade": "10",
    "Data": "20/07/2024",
}
ROW_BAD = {
    "Centro": "abc",
    "Torno (minutos)": "",
    "Site": "Vinhedo",
    "Quantidade": "-5",
    "Data": "not-a-date",
}


def _assert_sane(record):
    for value in (
        record.centro_time,
        record.torno_time,
        record.programacao_time,
        record.manufacturing_time,
    ):
        assert math.isfinite(value)
        assert value >= 0
    assert record.quantity >= 0
    assert record.manufacturing_time == pytest.approx(
        record.centro_time + record.torno_time + record.programacao_time
    )


def test_example_rows():
    records = {r.id: r for r in coerce_rows({"good": ROW_GOOD, "bad": ROW_BAD}, now=NOW)}

    good = records["good"]
    assert good.centro_time == pytest.approx(2.0)
    assert good.torno_time == pytest.approx(0.5)
    assert good.manufacturing_time == pytest.approx(2.5)
    assert good.quantity == 10
    assert good.date == datetime(2024, 7, 20)
    assert good.requesting_factory == "Igarassu"
    assert good.date_is_fallback is False

    bad = records["bad"]
    assert bad.centro_time == 0
    assert bad.torno_time == 0
    assert bad.manufacturing_time == 0
    assert bad.quantity == 0
    assert bad.date == NOW
    assert bad.date_is_fallback is True


def test_batch_sorted_most_recent_first():
    records = coerce_rows({"good": ROW_GOOD, "bad": ROW_BAD}, now=NOW)
    assert [r.id for r in records] == ["bad", "good"]


def test_empty_row_yields_defaults():
    record = coerce_row({}, key="empty", now=NOW)
    assert record.id == "empty"
    assert record.part_name == "N/A"
    assert record.material == "N/A"
    assert record.requesting_factory == "N/A"
    assert record.status == "Outro"
    assert record.request_id is None
    assert record.date == NOW
    _assert_sane(record)


def test_coercion_never_raises_on_garbage():
    batch = {
        "a": {"Centro": None, "Torno": True, "Programação": [1, 2]},
        "b": {"Centro": "-30", "Quantidade": "1e400", "Data": "31/02/2024"},
        "c": {"Programação": "1,5", "Data": "a/b/c", "Requisição": "abc"},
        "d": {"Quantidade": "nan", "Centro": "inf", "Nome da peça": {"nested": 1}},
        "e": None,
        "f": "not a row",
    }
    records = coerce_rows(batch, now=NOW)
    assert len(records) == 4
    for record in records:
        _assert_sane(record)

    by_id = {r.id: r for r in records}
    assert by_id["c"].programacao_time == pytest.approx(1.5 / 60)
    assert by_id["c"].request_id is None
    assert by_id["d"].part_name == "N/A"


def test_absent_store_value_is_empty_batch():
    assert coerce_rows(None) == []
    assert coerce_rows(42) == []


def test_sparse_list_rows_get_index_keys():
    records = coerce_rows([None, {"Quantidade": "3"}], now=NOW)
    assert [r.id for r in records] == ["1"]


def test_request_id_parsed():
    assert coerce_row({"Requisição": "1201"}, now=NOW).request_id == 1201
    assert coerce_row({"Requisição": 77}, now=NOW).request_id == 77


def test_positional_columns_are_normalized():
    record = coerce_row({"columnA": "igarassu ", "columnB": "05/03/2023"}, now=NOW)
    assert record.requesting_factory == "Igarassu"
    assert record.date == datetime(2023, 3, 5)


def test_strict_number():
    assert strict_number("12abc") == 12.0
    assert strict_number(" 3,25 ") == 3.25
    assert strict_number(7) == 7.0
    with pytest.raises(MalformedFieldError):
        strict_number("abc")
    with pytest.raises(MalformedFieldError):
        strict_number(True)
    with pytest.raises(MalformedFieldError):
        strict_number(float("nan"))


def test_parse_sheet_date_iso_fallback():
    assert parse_sheet_date("2024-10-03", NOW) == (datetime(2024, 10, 3), False)
    assert parse_sheet_date("", NOW) == (NOW, True)
    assert parse_sheet_date(None, NOW) == (NOW, True)


def test_standardize_status():
    assert standardize_status("Finalizado Enviado") == "Enviado"
    assert standardize_status("concluído") == "Encerrado"
    assert standardize_status("EM PRODUÇÃO") == "Em produção"
    assert standardize_status("pendente") == "Fila de produção"
    assert standardize_status("declinado") == "Rejeitado"
    assert standardize_status("  ") == "Outro"
    assert standardize_status("Aguardando cliente ") == "Aguardando cliente"


def test_standardize_factory():
    assert standardize_factory("IGARASSÚ") == "Igarassu"
    assert standardize_factory(" Suape ") == "Suape"
    assert standardize_factory(None) == "N/A"


def test_raw_row_accessors():
    raw = RawRow({"Centro": "90", "Material": "  ", "Nome da peça": "Eixo"}, key=5)
    assert raw.key == "5"
    assert raw.number("Centro (minutos)") == 90.0
    assert raw.integer("missing", default=3) == 3
    assert raw.text("Material", "Nome da peça") == "Eixo"
    assert raw.optional_integer("missing") is None


def test_coerce_loss_accepts_camel_case():
    loss = coerce_loss(
        "l1",
        {
            "operatorId": "OP-01",
            "machineId": "M-1",
            "factory": "Suape",
            "quantityLost": "4",
            "reason": "Setup de máquina",
            "timeLostMinutes": 10,
            "timestamp": "2024-07-20T08:00:00",
        },
        now=NOW,
    )
    assert loss.operator_id == "OP-01"
    assert loss.machine_id == "M-1"
    assert loss.quantity_lost == 4
    assert loss.time_lost_minutes == 10
    assert loss.timestamp == datetime(2024, 7, 20, 8, 0)


def test_coerce_entries_sorted_by_timestamp():
    entries = coerce_entries(
        {
            "old": {"operator_id": "OP-01", "quantity_produced": 5, "timestamp": "2024-07-01T08:00:00"},
            "new": {"operator_id": "OP-02", "quantity_produced": 6, "timestamp": "2024-07-02T08:00:00"},
        },
        now=NOW,
    )
    assert [e.id for e in entries] == ["new", "old"]
    assert entries[0].status == "Outro"
    assert entries[0].forms_number is None


def test_parse_number_and_int_fall_back_to_default():
    assert parse_number("2,5 h") == 2.5
    assert parse_number("inf") == 0.0
    assert parse_number(None, default=-1.0) == -1.0
    assert parse_int("7.9") == 7
    assert parse_int("sete", default=3) == 3


def test_coerce_losses_skips_holes_and_fills_defaults():
    losses = coerce_losses([None, {"quantity_lost": "-2", "timestamp": "garbage"}], now=NOW)
    assert len(losses) == 1
    assert losses[0].id == "1"
    assert losses[0].quantity_lost == 0
    assert losses[0].reason == "Desconhecido"
    assert losses[0].timestamp == NOW


def test_sheet_date_with_time_keeps_the_day():
    record = coerce_row({"Data": "20/07/2024 10:30:00", "Centro": "60"}, now=datetime(2030, 1, 1))
    assert record.date == datetime(2024, 7, 20)
    assert record.date_is_fallback is False
    assert parse_sheet_date("xx/07/2024", now=NOW) == (NOW, True)
