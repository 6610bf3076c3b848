from __future__ import annotations

from datetime import datetime
from typing import Callable

from fabritrack.coercion import coerce_entries, coerce_entry, coerce_loss, coerce_losses, coerce_row, coerce_rows
from fabritrack.contracts import (
    LossEntryForm,
    OperatorEntryForm,
    OperatorProductionInput,
    ProductionLossInput,
    ProductionRecord,
    ProductionRecordForm,
)
from fabritrack.headers import (
    ROW_ID_FIELD,
    canonicalize_row,
    discover_headers,
    order_headers,
    to_raw_field,
    to_raw_fields,
)
from fabritrack.store import DocumentStore, Subscription, join_path

ENTRIES_PATH = "production-entries"
LOSSES_PATH = "production-losses"


class RowNotFoundError(Exception):
    def __init__(self, path: str):
        super().__init__(f"No row found at path {path!r}")
        self.path = path


def list_nodes(store: DocumentStore, root: str, default_node: str = "Página1") -> list[str]:
    tree = store.read(root)
    if not isinstance(tree, dict):
        return []
    nodes = list(tree.keys())
    if default_node in nodes:
        nodes.remove(default_node)
        nodes.insert(0, default_node)
    return nodes


class ProductionRecordRepository:
    """Production records backed by one spreadsheet node of the store."""

    def __init__(self, store: DocumentStore, node_path: str):
        self._store = store
        self._node_path = node_path

    def _tree(self) -> dict:
        tree = self._store.read(self._node_path)
        return tree if isinstance(tree, dict) else {}

    def raw_rows(self) -> list[dict]:
        return [
            {ROW_ID_FIELD: key, **canonicalize_row(fields)}
            for key, fields in self._tree().items()
            if isinstance(fields, dict)
        ]

    def headers(self) -> list[str]:
        return order_headers(discover_headers(self.raw_rows()))

    def list(self, now: datetime | None = None) -> list[ProductionRecord]:
        return coerce_rows(self._tree(), now=now)

    def add(self, form: ProductionRecordForm, now: datetime | None = None) -> ProductionRecord:
        when = form.date or now or datetime.now()
        canonical = {
            "Requisição": form.request_id,
            "Site": form.requesting_factory,
            "Data": when.strftime("%d/%m/%Y"),
            "Material": form.material,
            "Nome da peça": form.part_name,
            "Status": form.status,
            "Quantidade": form.quantity,
            "Centro (minutos)": form.centro_minutes,
            "Torno (minutos)": form.torno_minutes,
            "Programação (minutos)": form.programacao_minutes,
        }
        fields = to_raw_fields({k: v for k, v in canonical.items() if v is not None})
        key = self._store.push(self._node_path, fields)
        return coerce_row(fields, key=key, now=now)

    def update_cell(self, row_id: str, header: str, value) -> None:
        """Partial write of one cell, addressed by its canonical header."""
        path = join_path(self._node_path, row_id)
        row = self._store.read(path)
        if not isinstance(row, dict):
            raise RowNotFoundError(path)
        field = to_raw_field(header)
        # rows already written under the canonical name keep using it
        if header in row and field not in row:
            field = header
        self._store.write(path, {field: value})

    def subscribe(self, callback: Callable[[list[ProductionRecord]], None]) -> Subscription:
        return self._store.subscribe(self._node_path, lambda tree: callback(coerce_rows(tree)))


class ShopFloorRepository:
    """Operator production entries and loss events."""

    def __init__(
        self,
        store: DocumentStore,
        entries_path: str = ENTRIES_PATH,
        losses_path: str = LOSSES_PATH,
    ):
        self._store = store
        self._entries_path = entries_path
        self._losses_path = losses_path

    def _require(self, path: str) -> None:
        if not isinstance(self._store.read(path), dict):
            raise RowNotFoundError(path)

    def list_entries(self, now: datetime | None = None) -> list[OperatorProductionInput]:
        return coerce_entries(self._store.read(self._entries_path), now=now)

    def add_entry(self, form: OperatorEntryForm, now: datetime | None = None) -> OperatorProductionInput:
        now = now or datetime.now()
        payload = {
            "operator_id": form.operator_id,
            "machine_id": form.machine_id,
            "factory": form.factory,
            "quantity_produced": form.quantity_produced,
            "production_time_seconds": form.production_time_minutes * 60,
            "forms_number": form.forms_number,
            "operation_count": form.operation_count,
            "status": form.status,
            "timestamp": now.isoformat(),
        }
        payload = {k: v for k, v in payload.items() if v is not None}
        key = self._store.push(self._entries_path, payload)
        return coerce_entry(key, payload, now)

    def update_entry_status(self, entry_id: str, status: str) -> None:
        path = join_path(self._entries_path, entry_id)
        self._require(path)
        self._store.write(path, {"status": status})

    def delete_entry(self, entry_id: str) -> None:
        path = join_path(self._entries_path, entry_id)
        self._require(path)
        self._store.delete(path)

    def list_losses(self, now: datetime | None = None) -> list[ProductionLossInput]:
        return coerce_losses(self._store.read(self._losses_path), now=now)

    def add_loss(self, form: LossEntryForm, now: datetime | None = None) -> ProductionLossInput:
        now = now or datetime.now()
        payload = {
            "operator_id": form.operator_id,
            "factory": form.factory,
            "machine_id": form.machine_id,
            "quantity_lost": form.quantity_lost,
            "reason": form.reason,
            "time_lost_minutes": form.time_lost_minutes,
            "timestamp": now.isoformat(),
        }
        key = self._store.push(self._losses_path, payload)
        return coerce_loss(key, payload, now)

    def delete_loss(self, loss_id: str) -> None:
        path = join_path(self._losses_path, loss_id)
        self._require(path)
        self._store.delete(path)
