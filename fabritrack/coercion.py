"""Total conversion of loosely-typed store rows into canonical records.

Nothing in this module raises on bad input. A field that fails to parse is
replaced by its documented default (0, "N/A" or the current instant) and the
batch carries on; the substitution is logged at DEBUG level.
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Iterable, Mapping

from fabritrack.contracts import (
    OTHER_STATUS,
    OperatorProductionInput,
    ProductionLossInput,
    ProductionRecord,
)
from fabritrack.headers import canonicalize_row

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)")
# "20/07/2024 10:30:00" keeps only the date digits of each part
_LEADING_DIGITS = re.compile(r"^\s*(\d+)")

# Checked in order: "Finalizado Enviado" must land in Enviado, not Encerrado.
_STATUS_PATTERNS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("em produçao", "em produção", "em producao"), "Em produção"),
    (("fila de produçao", "fila de produção", "fila de producao", "pendente", "andamento"), "Fila de produção"),
    (("enviado",), "Enviado"),
    (("concluido", "concluído", "encerrada", "encerrado", "finalizado"), "Encerrado"),
    (("rejeitado", "declinado"), "Rejeitado"),
)


class MalformedFieldError(ValueError):
    def __init__(self, field: str, value: Any):
        super().__init__(f"Malformed value for field {field!r}: {value!r}")
        self.field = field
        self.value = value


def strict_number(value: Any, field: str = "value") -> float:
    """Parse the leading base-10 number of ``value``; raise MalformedFieldError otherwise."""
    if isinstance(value, bool):
        raise MalformedFieldError(field, value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value.replace(",", ".", 1))
        if match is None:
            raise MalformedFieldError(field, value)
        number = float(match.group(1))
    else:
        raise MalformedFieldError(field, value)
    if not math.isfinite(number):
        raise MalformedFieldError(field, value)
    return number


def parse_number(value: Any, default: float = 0.0, field: str = "value") -> float:
    try:
        return strict_number(value, field)
    except MalformedFieldError as exc:
        if value not in (None, ""):
            logger.debug("using default %r: %s", default, exc)
        return default


def parse_int(value: Any, default: int = 0, field: str = "value") -> int:
    try:
        return int(strict_number(value, field))
    except MalformedFieldError as exc:
        if value not in (None, ""):
            logger.debug("using default %r: %s", default, exc)
        return default


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _leading_int(part: str) -> int:
    match = _LEADING_DIGITS.match(part)
    if match is None:
        raise ValueError(f"no leading digits in {part!r}")
    return int(match.group(1))


def parse_sheet_date(value: Any, now: datetime | None = None) -> tuple[datetime, bool]:
    """Parse a spreadsheet date, day-first ``DD/MM/YYYY`` preferred.

    Returns the parsed local datetime and whether ``now`` was substituted.
    """
    now = now or datetime.now()
    if isinstance(value, datetime):
        return _to_local_naive(value), False
    if isinstance(value, str) and value.strip():
        text = value.strip()
        parts = text.split("/")
        try:
            if len(parts) == 3:
                day, month, year = (_leading_int(p) for p in parts)
                return datetime(year, month, day), False
            return _to_local_naive(datetime.fromisoformat(text)), False
        except ValueError:
            logger.debug("unparseable date %r, substituting now", value)
    return now, True


def parse_timestamp(value: Any, now: datetime | None = None) -> tuple[datetime, bool]:
    """Parse a shop-floor event timestamp (ISO-8601 string or epoch seconds)."""
    now = now or datetime.now()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value), False
        except (OverflowError, OSError, ValueError):
            logger.debug("epoch timestamp out of range %r, substituting now", value)
            return now, True
    return parse_sheet_date(value, now)


def standardize_status(status: Any) -> str:
    if not isinstance(status, str) or not status.strip():
        return OTHER_STATUS
    lowered = status.strip().lower()
    for needles, canonical in _STATUS_PATTERNS:
        if any(n in lowered for n in needles):
            return canonical
    return status.strip()


def standardize_factory(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        return NOT_AVAILABLE
    name = name.strip()
    if "igarass" in name.lower():
        return "Igarassu"
    return name


class RawRow:
    """One external row behind fallible, defaulting accessors.

    Headers are normalized once on construction; anything that is not a
    mapping is treated as an empty row.
    """

    def __init__(self, fields: Any, key: Any = None):
        self.key = None if key is None else str(key)
        self._fields = canonicalize_row(fields) if isinstance(fields, Mapping) else {}

    def get(self, name: str, default: Any = None) -> Any:
        return self._fields.get(name, default)

    def text(self, *names: str, default: str = NOT_AVAILABLE) -> str:
        for name in names:
            value = self._fields.get(name)
            if value is None or isinstance(value, (dict, list)):
                continue
            value = str(value).strip()
            if value:
                return value
        return default

    def number(self, name: str, default: float = 0.0) -> float:
        return parse_number(self._fields.get(name), default, field=name)

    def integer(self, name: str, default: int = 0) -> int:
        return parse_int(self._fields.get(name), default, field=name)

    def optional_integer(self, *names: str) -> int | None:
        for name in names:
            value = self._fields.get(name)
            try:
                return int(strict_number(value, field=name))
            except MalformedFieldError:
                continue
        return None

    def as_dict(self) -> dict:
        return dict(self._fields)


def _minutes_to_hours(raw: RawRow, name: str) -> float:
    return max(0.0, raw.number(name)) / 60


def coerce_row(row: Any, key: Any = None, now: datetime | None = None) -> ProductionRecord:
    raw = row if isinstance(row, RawRow) else RawRow(row, key)
    date, date_is_fallback = parse_sheet_date(raw.get("Data"), now)

    centro = _minutes_to_hours(raw, "Centro (minutos)")
    torno = _minutes_to_hours(raw, "Torno (minutos)")
    programacao = _minutes_to_hours(raw, "Programação (minutos)")

    return ProductionRecord(
        id=raw.key or raw.text("id", default=""),
        requesting_factory=standardize_factory(raw.get("Site")),
        part_name=raw.text("Nome da peça"),
        material=raw.text("Material"),
        manufacturing_time=centro + torno + programacao,
        date=date,
        quantity=max(0, raw.integer("Quantidade")),
        centro_time=centro,
        torno_time=torno,
        programacao_time=programacao,
        status=standardize_status(raw.get("Status")),
        request_id=raw.optional_integer("Requisição"),
        date_is_fallback=date_is_fallback,
    )


def iter_raw_rows(source: Any) -> list[RawRow]:
    """Flatten a store value (absent, keyed mapping, or sparse list) into rows."""
    if source is None:
        return []
    if isinstance(source, Mapping):
        items: Iterable = source.items()
    elif isinstance(source, (list, tuple)):
        items = enumerate(source)
    else:
        logger.debug("ignoring non-collection store value of type %s", type(source).__name__)
        return []
    return [RawRow(fields, key) for key, fields in items if isinstance(fields, Mapping)]


def coerce_rows(source: Any, now: datetime | None = None) -> list[ProductionRecord]:
    now = now or datetime.now()
    records = [coerce_row(raw, now=now) for raw in iter_raw_rows(source)]
    return sorted(records, key=lambda r: r.date, reverse=True)


def coerce_loss(key: Any, payload: Any, now: datetime | None = None) -> ProductionLossInput:
    raw = RawRow(payload, key)
    timestamp, _ = parse_timestamp(raw.get("timestamp"), now)
    return ProductionLossInput(
        id=raw.key or "",
        operator_id=raw.text("operator_id", "operatorId"),
        factory=standardize_factory(raw.get("factory")),
        machine_id=raw.text("machine_id", "machineId"),
        quantity_lost=max(0, parse_int(raw.get("quantity_lost", raw.get("quantityLost")))),
        reason=raw.text("reason", default="Desconhecido"),
        time_lost_minutes=max(0, parse_int(raw.get("time_lost_minutes", raw.get("timeLostMinutes")))),
        timestamp=timestamp,
    )


def coerce_entry(key: Any, payload: Any, now: datetime | None = None) -> OperatorProductionInput:
    raw = RawRow(payload, key)
    timestamp, _ = parse_timestamp(raw.get("timestamp"), now)
    forms_number = raw.text("forms_number", "formsNumber", default="")
    return OperatorProductionInput(
        id=raw.key or "",
        operator_id=raw.text("operator_id", "operatorId"),
        machine_id=raw.text("machine_id", "machineId"),
        quantity_produced=max(0, parse_int(raw.get("quantity_produced", raw.get("quantityProduced")))),
        production_time_seconds=max(
            0, parse_int(raw.get("production_time_seconds", raw.get("productionTimeSeconds")))
        ),
        timestamp=timestamp,
        forms_number=forms_number or None,
        factory=standardize_factory(raw.get("factory")),
        operation_count=raw.optional_integer("operation_count", "operationCount"),
        status=standardize_status(raw.get("status")),
    )


def _coerce_documents(source: Any, coerce, now: datetime | None) -> list:
    now = now or datetime.now()
    items = [coerce(raw.key, raw.as_dict(), now) for raw in iter_raw_rows(source)]
    return sorted(items, key=lambda item: item.timestamp, reverse=True)


def coerce_losses(source: Any, now: datetime | None = None) -> list[ProductionLossInput]:
    return _coerce_documents(source, coerce_loss, now)


def coerce_entries(source: Any, now: datetime | None = None) -> list[OperatorProductionInput]:
    return _coerce_documents(source, coerce_entry, now)
