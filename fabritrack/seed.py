from datetime import date, datetime, time, timedelta
from typing import Dict

from fabritrack.config import DEFAULT_NODE, DEFAULT_SPREADSHEET_ID
from fabritrack.repository import ENTRIES_PATH, LOSSES_PATH
from fabritrack.store import DocumentStore, join_path

# spreadsheet tabs are not uniform: older rows use the positional columns
SHEET_ROWS = {
    "seed-001": {
        "Requisição": 1201,
        "columnA": "Igarassu",
        "columnB": "02/09/2024",
        "Nome da peça": "Eixo de transmissão",
        "Material": "Aço 1045",
        "Quantidade": 12,
        "Centro": 90,
        "Torno": 150,
        "Programação": 30,
        "Status": "Encerrado",
    },
    "seed-002": {
        "Requisição": 1202,
        "Site": "Vinhedo",
        "Data": "10/09/2024",
        "Nome da peça": "Bucha guia",
        "Material": "Bronze TM23",
        "Quantidade": 40,
        "Centro (minutos)": 0,
        "Torno (minutos)": 240,
        "Programação (minutos)": 45,
        "Status": "em produção",
    },
    "seed-003": {
        "Requisição": 1203,
        "columnA": "Suape",
        "columnB": "2024-10-03",
        "Nome da peça": "Flange cega",
        "Material": "Aço inox 304",
        "Quantidade": 4,
        "Centro": 180,
        "Torno": 60,
        "Programação": 40,
        "Status": "Enviado para fábrica",
    },
    "seed-004": {
        "Requisição": 1204,
        "columnA": "Garanhuns",
        "columnB": "15/10/2024",
        "Nome da peça": "Suporte de rolamento",
        "Material": "Alumínio 6061",
        "Quantidade": 8,
        "Centro": 120,
        "Torno": 0,
        "Programação": 60,
        "Status": "Pendente",
    },
    "seed-005": {
        "Requisição": 1205,
        "columnA": "Igarassu",
        "columnB": "21/10/2024",
        "Nome da peça": "Pino de articulação",
        "Material": "Aço 4140",
        "Quantidade": 25,
        "Centro": 0,
        "Torno": 75,
        "Programação": 15,
        "Status": "Rejeitado",
    },
}

# (operator, machine, factory, quantity, minutes, hours after shift start)
ENTRIES = [
    ("OP-01", "Torno CNC - Centur 30", "Igarassu", 120, 55, 0),
    ("OP-02", "Centro de Usinagem D600", "Igarassu", 60, 40, 1),
    ("OP-01", "Torno CNC - Centur 30", "Igarassu", 90, 45, 2),
    ("OP-03", "Centro de Usinagem D600", "Vinhedo", 30, 35, 3),
]

# (operator, machine, factory, quantity lost, reason, minutes lost, hours after shift start)
LOSSES = [
    ("OP-01", "Torno CNC - Centur 30", "Igarassu", 3, "Setup de máquina", 20, 1),
    ("OP-02", "Centro de Usinagem D600", "Igarassu", 2, "Troca de ferramenta", 15, 2),
    ("OP-03", "Centro de Usinagem D600", "Vinhedo", 1, "Problema de qualidade", 10, 4),
]


def _missing(store: DocumentStore, path: str, rows: dict) -> dict:
    existing = store.read(path)
    existing = existing if isinstance(existing, dict) else {}
    return {key: fields for key, fields in rows.items() if key not in existing}


def run_seed(
    store: DocumentStore,
    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID,
    node: str = DEFAULT_NODE,
    today: date | None = None,
) -> Dict[str, int]:
    """Write demo rows that are not already present. Returns counts of inserted rows."""
    shift_start = datetime.combine(today or date.today(), time(6, 0))
    counts: Dict[str, int] = {"sheet_rows": 0, "production_entries": 0, "production_losses": 0}

    rows = _missing(store, join_path(spreadsheet_id, node), SHEET_ROWS)
    store.write_many(join_path(spreadsheet_id, node), rows)
    counts["sheet_rows"] = len(rows)

    entries = {
        f"seed-entry-{i:03d}": {
            "operator_id": operator,
            "machine_id": machine,
            "factory": factory,
            "quantity_produced": quantity,
            "production_time_seconds": minutes * 60,
            "status": "Encerrado",
            "timestamp": (shift_start + timedelta(hours=offset)).isoformat(),
        }
        for i, (operator, machine, factory, quantity, minutes, offset) in enumerate(ENTRIES, 1)
    }
    entries = _missing(store, ENTRIES_PATH, entries)
    store.write_many(ENTRIES_PATH, entries)
    counts["production_entries"] = len(entries)

    losses = {
        f"seed-loss-{i:03d}": {
            "operator_id": operator,
            "machine_id": machine,
            "factory": factory,
            "quantity_lost": quantity,
            "reason": reason,
            "time_lost_minutes": minutes,
            "timestamp": (shift_start + timedelta(hours=offset)).isoformat(),
        }
        for i, (operator, machine, factory, quantity, reason, minutes, offset) in enumerate(LOSSES, 1)
    }
    losses = _missing(store, LOSSES_PATH, losses)
    store.write_many(LOSSES_PATH, losses)
    counts["production_losses"] = len(losses)

    return counts


if __name__ == "__main__":
    from fabritrack.db import build_engine, build_session_factory, load_db_config
    from fabritrack.models import Base
    from fabritrack.store import SqlDocumentStore

    engine = build_engine(load_db_config())
    Base.metadata.create_all(bind=engine)
    counts = run_seed(SqlDocumentStore(build_session_factory(engine)))
    print(counts)
