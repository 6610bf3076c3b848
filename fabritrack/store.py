import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import SQLAlchemyError

from fabritrack.models import StoreDocument

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class StoreUnavailableError(Exception):
    def __init__(self, operation: str, path: str):
        super().__init__(f"Store {operation} failed for path {path!r}")
        self.operation = operation
        self.path = path


def normalize_path(path: str) -> str:
    return "/".join(segment for segment in (path or "").split("/") if segment)


def split_path(path: str) -> tuple[str, str]:
    parent, _, key = normalize_path(path).rpartition("/")
    return parent, key


def join_path(*segments: str) -> str:
    return normalize_path("/".join(segments))


def _overlaps(watched: str, changed: str) -> bool:
    if not watched or watched == changed:
        return True
    return changed.startswith(watched + "/") or watched.startswith(changed + "/")


class Subscription:
    def __init__(self, store: "DocumentStore", path: str, callback: Listener):
        self._store = store
        self.path = path
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._store._remove_listener(self)


class DocumentStore(ABC):
    """Path-addressed document tree (read / subscribe / write)."""

    def __init__(self):
        self._listeners: list[Subscription] = []
        self._lock = threading.Lock()

    @abstractmethod
    def read(self, path: str) -> Any:
        """Return None when nothing exists at ``path``, a row's fields, or a subtree."""

    @abstractmethod
    def _write(self, path: str, fields: Mapping) -> None:
        ...

    @abstractmethod
    def _write_many(self, path: str, rows: Mapping[str, Mapping]) -> None:
        ...

    @abstractmethod
    def _delete(self, path: str) -> None:
        ...

    def write(self, path: str, fields: Mapping) -> None:
        """Merge ``fields`` into the row at ``path``; a None value removes that field."""
        path = normalize_path(path)
        self._write(path, fields)
        self._notify(path)

    def write_many(self, path: str, rows: Mapping[str, Mapping]) -> None:
        path = normalize_path(path)
        if not rows:
            return
        self._write_many(path, rows)
        self._notify(path)

    def push(self, path: str, fields: Mapping) -> str:
        key = uuid.uuid4().hex[:20]
        self.write(join_path(path, key), fields)
        return key

    def delete(self, path: str) -> None:
        path = normalize_path(path)
        self._delete(path)
        self._notify(path)

    def subscribe(self, path: str, callback: Listener) -> Subscription:
        subscription = Subscription(self, normalize_path(path), callback)
        # registered first so no write lands between the snapshot and the listener
        with self._lock:
            self._listeners.append(subscription)
        try:
            callback(self.read(subscription.path))
        except Exception:
            subscription.cancel()
            raise
        return subscription

    def _remove_listener(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._listeners:
                self._listeners.remove(subscription)

    def _notify(self, changed_path: str) -> None:
        with self._lock:
            listeners = [s for s in self._listeners if _overlaps(s.path, changed_path)]
        for subscription in listeners:
            try:
                subscription.callback(self.read(subscription.path))
            except Exception:
                logger.exception("store listener for %r failed", subscription.path)


def _merge(payload_json: str | None, fields: Mapping) -> str:
    payload = json.loads(payload_json or "{}")
    for name, value in fields.items():
        if value is None:
            payload.pop(name, None)
        else:
            payload[name] = value
    return json.dumps(payload, ensure_ascii=False, default=str)


class SqlDocumentStore(DocumentStore):
    def __init__(self, session_factory):
        super().__init__()
        self._session_factory = session_factory

    def _subtree_clause(self, path: str):
        if not path:
            return StoreDocument.parent_path.is_not(None)
        return or_(
            StoreDocument.parent_path == path,
            StoreDocument.parent_path.startswith(path + "/", autoescape=True),
        )

    def _find(self, session, path: str) -> StoreDocument | None:
        parent, key = split_path(path)
        stmt = select(StoreDocument).where(
            StoreDocument.parent_path == parent, StoreDocument.row_key == key
        )
        return session.execute(stmt).scalars().first()

    def read(self, path: str) -> Any:
        path = normalize_path(path)
        try:
            with self._session_factory() as session:
                stmt = (
                    select(StoreDocument)
                    .where(self._subtree_clause(path))
                    .order_by(StoreDocument.doc_key)
                )
                docs = session.execute(stmt).scalars().all()
                if docs:
                    return self._build_tree(path, docs)
                doc = self._find(session, path) if path else None
                return json.loads(doc.payload_json) if doc is not None else None
        except SQLAlchemyError as exc:
            logger.error("store read failed for %r: %s", path, exc)
            raise StoreUnavailableError("read", path) from exc

    @staticmethod
    def _build_tree(path: str, docs) -> dict:
        tree: dict = {}
        for doc in docs:
            relative = doc.parent_path[len(path):].strip("/")
            node = tree
            for segment in relative.split("/") if relative else []:
                node = node.setdefault(segment, {})
            node[doc.row_key] = json.loads(doc.payload_json)
        return tree

    def _upsert(self, session, path: str, fields: Mapping) -> None:
        doc = self._find(session, path)
        if doc is None:
            parent, key = split_path(path)
            doc = StoreDocument(parent_path=parent, row_key=key, payload_json="{}")
            session.add(doc)
        doc.payload_json = _merge(doc.payload_json, fields)

    def _write(self, path: str, fields: Mapping) -> None:
        if not path:
            raise ValueError("cannot write fields at the store root")
        try:
            with self._session_factory() as session:
                self._upsert(session, path, fields)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("store write failed for %r: %s", path, exc)
            raise StoreUnavailableError("write", path) from exc

    def _write_many(self, path: str, rows: Mapping[str, Mapping]) -> None:
        try:
            with self._session_factory() as session:
                for key, fields in rows.items():
                    self._upsert(session, join_path(path, str(key)), fields)
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("store bulk write failed for %r: %s", path, exc)
            raise StoreUnavailableError("write", path) from exc

    def _delete(self, path: str) -> None:
        parent, key = split_path(path)
        try:
            with self._session_factory() as session:
                stmt = delete(StoreDocument).where(
                    or_(
                        self._subtree_clause(path),
                        (StoreDocument.parent_path == parent) & (StoreDocument.row_key == key),
                    )
                )
                session.execute(stmt.execution_options(synchronize_session=False))
                session.commit()
        except SQLAlchemyError as exc:
            logger.error("store delete failed for %r: %s", path, exc)
            raise StoreUnavailableError("delete", path) from exc
