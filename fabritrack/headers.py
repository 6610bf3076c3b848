from typing import Iterable, Mapping

MINUTES_SUFFIX = " (minutos)"

# Historical spreadsheet column names -> canonical field names.
HEADER_ALIASES: dict[str, str] = {
    "Centro": "Centro (minutos)",
    "Torno": "Torno (minutos)",
    "Programação": "Programação (minutos)",
    "columnA": "Site",
    "columnB": "Data",
}

_POSITIONAL_FIELDS: dict[str, str] = {
    canonical: raw for raw, canonical in HEADER_ALIASES.items() if raw.startswith("column")
}

PREFERRED_COLUMN_ORDER = [
    "Requisição",
    "Site",
    "Data",
    "Material",
    "Nome da peça",
    "Status",
    "Quantidade",
    "Centro (minutos)",
    "Torno (minutos)",
    "Programação (minutos)",
    "Observação",
]

LOSS_COLUMN_ORDER = [
    "operator_id",
    "factory",
    "machine_id",
    "reason",
    "quantity_lost",
    "time_lost_minutes",
    "timestamp",
]

ROW_ID_FIELD = "id"


def to_canonical_header(raw: str) -> str:
    return HEADER_ALIASES.get(raw, raw)


def to_raw_field(canonical: str) -> str:
    if canonical in _POSITIONAL_FIELDS:
        return _POSITIONAL_FIELDS[canonical]
    if canonical.endswith(MINUTES_SUFFIX):
        return canonical[: -len(MINUTES_SUFFIX)]
    return canonical


def canonicalize_row(raw: Mapping) -> dict:
    """Rename every key of a raw row to its canonical header.

    A key that is already canonical wins over an alias that maps onto it, so
    a row carrying both "Centro" and "Centro (minutos)" keeps the latter.
    """
    out: dict = {}
    for key, value in raw.items():
        canonical = to_canonical_header(key)
        if canonical != key and canonical in raw:
            continue
        out[canonical] = value
    return out


def to_raw_fields(fields: Mapping) -> dict:
    return {to_raw_field(name): value for name, value in fields.items()}


def discover_headers(rows: Iterable[Mapping]) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def order_headers(
    discovered: Iterable[str],
    preferred: Iterable[str] = PREFERRED_COLUMN_ORDER,
    exclude: Iterable[str] = (ROW_ID_FIELD,),
) -> list[str]:
    excluded = set(exclude)
    discovered = [h for h in discovered if h not in excluded]
    preferred = list(preferred)
    present = set(discovered)
    ordered = [h for h in preferred if h in present]
    ordered.extend(h for h in dict.fromkeys(discovered) if h not in preferred)
    return ordered
