from datetime import datetime
from typing import Iterable, Literal, TypeVar

from pydantic import BaseModel, Field, field_validator

from fabritrack.aggregation import FACTORY_ROSTER

T = TypeVar("T", bound=BaseModel)

MONTH_NAMES = [
    "janeiro",
    "fevereiro",
    "março",
    "abril",
    "maio",
    "junho",
    "julho",
    "agosto",
    "setembro",
    "outubro",
    "novembro",
    "dezembro",
]


class FilterSpec(BaseModel):
    factories: set[str] = Field(default_factory=set)
    year: Literal["all"] | int = "all"
    month: Literal["all"] | int = "all"
    query: str = ""
    operator_id: str = ""
    machine_id: str = ""
    reason: str = ""

    @field_validator("month")
    @classmethod
    def _month_in_range(cls, value):
        if value != "all" and not 0 <= value <= 11:
            raise ValueError("month must be 'all' or 0-11")
        return value

    def is_identity(self) -> bool:
        return (
            not self.factories
            and self.year == "all"
            and self.month == "all"
            and not self.query
            and not self.operator_id
            and not self.machine_id
            and not self.reason
        )


def _factory_of(item: BaseModel) -> str:
    factory = getattr(item, "requesting_factory", None)
    if factory is None:
        factory = getattr(item, "factory", "")
    return factory or ""


def _when(item: BaseModel) -> datetime | None:
    when = getattr(item, "date", None)
    if not isinstance(when, datetime):
        when = getattr(item, "timestamp", None)
    return when if isinstance(when, datetime) else None


def _contains(haystack: object, needle: str) -> bool:
    return needle.lower() in str(haystack if haystack is not None else "").lower()


def _matches_text(item: BaseModel, query: str) -> bool:
    return any(_contains(value, query) for value in item.model_dump().values())


def matches(item: BaseModel, spec: FilterSpec) -> bool:
    if spec.factories and _factory_of(item) not in spec.factories:
        return False

    if spec.year != "all" or spec.month != "all":
        when = _when(item)
        if when is None:
            return False
        if spec.year != "all" and when.year != spec.year:
            return False
        # month is 0-indexed to line up with MONTH_NAMES
        if spec.month != "all" and when.month - 1 != spec.month:
            return False

    if spec.operator_id and not _contains(getattr(item, "operator_id", None), spec.operator_id):
        return False
    if spec.machine_id and not _contains(getattr(item, "machine_id", None), spec.machine_id):
        return False
    if spec.reason and not _contains(getattr(item, "reason", None), spec.reason):
        return False
    if spec.query and not _matches_text(item, spec.query):
        return False
    return True


def filter_records(items: Iterable[T], spec: FilterSpec | None = None) -> list[T]:
    spec = spec or FilterSpec()
    if spec.is_identity():
        return list(items)
    return [item for item in items if matches(item, spec)]


def available_factories(records: Iterable[BaseModel]) -> list[str]:
    factories = set(FACTORY_ROSTER)
    factories.update(f for f in (_factory_of(r) for r in records) if f)
    return sorted(factories)


def available_years(records: Iterable[BaseModel]) -> list:
    years = {when.year for when in (_when(r) for r in records) if when is not None}
    return ["all", *sorted(years, reverse=True)]


def filter_rows(rows: Iterable[dict], query: str = "") -> list[dict]:
    """Free-text search over raw sheet rows, any cell may match."""
    if not query:
        return list(rows)
    return [row for row in rows if any(_contains(value, query) for value in row.values())]
