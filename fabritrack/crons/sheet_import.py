import csv
import hashlib
import logging
import os
from io import StringIO
from string import ascii_uppercase
from typing import Optional

import requests
from sqlalchemy import select
from sqlalchemy.orm import Session

from fabritrack.config import configure_logging, load_config
from fabritrack.db import build_engine, build_session_factory, load_db_config
from fabritrack.models import Base, SheetImportState
from fabritrack.store import DocumentStore, SqlDocumentStore, join_path

logger = logging.getLogger(__name__)

SHEET_CSV_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/gviz/tq"


# ----------------------------
# Download
# ----------------------------

def download_sheet_csv(spreadsheet_id: str, sheet_name: str, timeout_sec: int = 60) -> bytes:
    resp = requests.get(
        SHEET_CSV_URL.format(spreadsheet_id=spreadsheet_id),
        params={"tqx": "out:csv", "sheet": sheet_name},
        timeout=timeout_sec,
    )
    resp.raise_for_status()
    if "text/html" in (resp.headers.get("content-type") or "").lower():
        raise RuntimeError("Sheet export returned HTML (likely not public or blocked).")
    return resp.content


def sha256_hex(data: bytes) -> str:
    h = hashlib.sha256()
    h.update(data)
    return h.hexdigest()


# ----------------------------
# CSV parsing
# ----------------------------

def _column_name(index: int) -> str:
    name = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        name = ascii_uppercase[rem] + name
    return f"column{name}"


def parse_sheet_csv(csv_bytes: bytes) -> dict[str, dict]:
    """Raw rows keyed by spreadsheet line number.

    Unnamed header cells fall back to positional names (columnA, columnB, ...).
    Blank cells come through as None so a merge clears them; blank lines are
    skipped.
    """
    reader = csv.reader(StringIO(csv_bytes.decode("utf-8-sig")))
    header = next(reader, None)
    if not header:
        raise ValueError("CSV has no header row")
    names = [cell.strip() or _column_name(i) for i, cell in enumerate(header)]

    rows: dict[str, dict] = {}
    for line, cells in enumerate(reader, start=2):
        values = [cell.strip() for cell in cells]
        if not any(values):
            continue
        values += [""] * (len(names) - len(values))
        rows[str(line)] = {name: value or None for name, value in zip(names, values)}
    return rows


def replace_rows(store: DocumentStore, tab_path: str, rows: dict[str, dict]) -> int:
    """Merge fresh rows into a tab and drop rows no longer in the sheet. Returns rows removed."""
    existing = store.read(tab_path)
    stale = [key for key in existing if key not in rows] if isinstance(existing, dict) else []
    for key in stale:
        store.delete(join_path(tab_path, key))
    store.write_many(tab_path, rows)
    return len(stale)


# ----------------------------
# Import state
# ----------------------------

def already_imported(session: Session, spreadsheet_id: str, sheet_name: str, content_hash: str) -> bool:
    stmt = (
        select(SheetImportState)
        .where(
            SheetImportState.spreadsheet_id == spreadsheet_id,
            SheetImportState.sheet_name == sheet_name,
        )
        .order_by(SheetImportState.import_key.desc())
        .limit(1)
    )
    last = session.execute(stmt).scalars().first()
    return last is not None and last.status == "SUCCESS" and last.content_hash == content_hash


def record_import_state(
    session: Session,
    spreadsheet_id: str,
    sheet_name: str,
    status: str,
    rows_loaded: int = 0,
    content_hash: Optional[str] = None,
    error_message: Optional[str] = None,
) -> None:
    session.add(
        SheetImportState(
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            content_hash=content_hash,
            status=status,
            rows_loaded=rows_loaded,
            error_message=error_message,
        )
    )


# ----------------------------
# Orchestration
# ----------------------------

def import_sheets_once(
    store: DocumentStore,
    session: Session,
    spreadsheet_id: str,
    sheet_names: list[str],
    download=download_sheet_csv,
) -> dict:
    summary = {
        "spreadsheet_id": spreadsheet_id,
        "sheets_found": len(sheet_names),
        "sheets_imported": 0,
        "sheets_skipped": 0,
        "rows_loaded": 0,
        "rows_removed": 0,
        "failures": [],
    }

    for sheet_name in sheet_names:
        try:
            data = download(spreadsheet_id, sheet_name)
            content_hash = sha256_hex(data)

            if already_imported(session, spreadsheet_id, sheet_name, content_hash):
                summary["sheets_skipped"] += 1
                continue

            rows = parse_sheet_csv(data)
            summary["rows_removed"] += replace_rows(store, join_path(spreadsheet_id, sheet_name), rows)

            record_import_state(session, spreadsheet_id, sheet_name, "SUCCESS", len(rows), content_hash)
            session.commit()

            summary["sheets_imported"] += 1
            summary["rows_loaded"] += len(rows)

        except Exception as exc:
            session.rollback()
            logger.error("sheet %r import failed: %s", sheet_name, exc)
            record_import_state(
                session, spreadsheet_id, sheet_name, "FAILED", error_message=str(exc)[:2000]
            )
            session.commit()
            summary["failures"].append({"sheet_name": sheet_name, "error": str(exc)})

    return summary


def main() -> None:
    config = load_config()
    configure_logging(config.log_level)
    sheet_names = [
        name.strip()
        for name in os.getenv("FABRITRACK_IMPORT_SHEETS", config.default_node).split(",")
        if name.strip()
    ]

    engine = build_engine(load_db_config())
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)
    store = SqlDocumentStore(session_factory)

    with session_factory() as session:
        summary = import_sheets_once(store, session, config.spreadsheet_id, sheet_names)

    print("IMPORT SUMMARY:", summary)


if __name__ == "__main__":
    main()
