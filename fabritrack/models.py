from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StoreDocument(Base):
    """One row of the path-addressed document tree.

    A document's full path is ``parent_path + "/" + row_key``; its fields are
    kept verbatim as JSON so heterogeneous spreadsheet columns survive.
    """

    __tablename__ = "store_document"

    doc_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parent_path: Mapped[str] = mapped_column(String(250), nullable=False)
    row_key: Mapped[str] = mapped_column(String(100), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("parent_path", "row_key", name="uq_store_document_path"),
        Index("ix_store_document_parent", "parent_path"),
    )


class SheetImportState(Base):
    __tablename__ = "sheet_import_state"

    import_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    spreadsheet_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sheet_name: Mapped[str] = mapped_column(String(120), nullable=False)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    rows_loaded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    __table_args__ = (
        Index("ix_sheet_import_lookup", "spreadsheet_id", "sheet_name"),
    )
