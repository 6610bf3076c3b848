from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, Field, field_validator, model_validator

ProductionStatus = Literal[
    "Fila de produção",
    "Em produção",
    "Encerrado",
    "Rejeitado",
    "Enviado",
]
PRODUCTION_STATUSES = get_args(ProductionStatus)
OTHER_STATUS = "Outro"

STOP_REASONS = {
    "1": "Falta de material",
    "2": "Setup de máquina",
    "3": "Manutenção corretiva",
    "4": "Troca de ferramenta",
    "5": "Problema de qualidade",
    "6": "Pausa para refeição",
    "7": "Limpeza da área",
    "8": "Ajuste de óleo na maquina",
    "9": "Outro",
}


class ProductionRecord(BaseModel):
    id: str
    requesting_factory: str
    part_name: str
    material: str
    manufacturing_time: float = Field(ge=0)
    date: datetime
    quantity: int = Field(ge=0)
    centro_time: float = Field(ge=0)
    torno_time: float = Field(ge=0)
    programacao_time: float = Field(ge=0)
    status: str = OTHER_STATUS
    request_id: int | None = None
    date_is_fallback: bool = False


class ProductionLossInput(BaseModel):
    id: str
    operator_id: str
    factory: str
    machine_id: str
    quantity_lost: int = Field(ge=0)
    reason: str
    time_lost_minutes: int = Field(ge=0)
    timestamp: datetime


class OperatorProductionInput(BaseModel):
    id: str
    operator_id: str
    machine_id: str
    quantity_produced: int
    production_time_seconds: int = Field(ge=0)
    timestamp: datetime
    forms_number: str | None = None
    factory: str
    operation_count: int | None = None
    status: str = "Fila de produção"


class MachineOEE(BaseModel):
    machine_id: str
    oee: float
    availability: float
    performance: float
    quality: float


class OEESample(BaseModel):
    machine_id: str
    availability: float | None = None
    performance: float | None = None
    quality: float | None = None
    oee: float | None = None


# --- Aggregated views ---


class FactoryHours(BaseModel):
    factory: str
    centro_hours: float = 0.0
    torno_hours: float = 0.0
    programacao_hours: float = 0.0
    total_hours: float = 0.0


class FactoryPieces(BaseModel):
    factory: str
    quantity: int = 0


class StatusHours(BaseModel):
    status: str
    hours: float = 0.0


class TechnologyHours(BaseModel):
    technology: str
    hours: float = 0.0


class NamedTotal(BaseModel):
    name: str
    value: float


class WeekdayMachineHours(BaseModel):
    day: str
    hours: dict[str, float]


class HoursUtilization(BaseModel):
    budget: float
    used: float
    remaining: float
    percentage_used: float


class OperatorHours(BaseModel):
    operator_id: str
    total_hours: float
    percentage: float


class MachineHours(BaseModel):
    machine_id: str
    total_hours: float
    percentage: float


class RecordSummary(BaseModel):
    total_records: int
    total_pieces: int
    unique_requests: int
    unique_parts: int
    unique_materials: int
    total_hours: float
    mean_manufacturing_time: float


class ProductionInsights(BaseModel):
    most_productive_machine: str
    main_loss_reason: str
    most_productive_operator: str
    most_affected_factory: str


class DashboardSummary(BaseModel):
    summary: RecordSummary
    hours_by_factory: list[FactoryHours]
    hours_by_status: list[StatusHours]
    hours_by_technology: list[TechnologyHours]
    pieces_by_factory: list[FactoryPieces]


class SheetView(BaseModel):
    node: str
    headers: list[str]
    rows: list[dict]


# --- Forms (write side) ---


class ProductionRecordForm(BaseModel):
    part_name: str = Field(min_length=1)
    material: str = Field(min_length=1)
    requesting_factory: str = Field(min_length=1)
    quantity: int = Field(default=0, ge=0)
    centro_minutes: float = Field(default=0.0, ge=0)
    torno_minutes: float = Field(default=0.0, ge=0)
    programacao_minutes: float = Field(default=0.0, ge=0)
    status: str = "Fila de produção"
    request_id: int | None = None
    date: datetime | None = None

    @field_validator("part_name", "material", "requesting_factory")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @model_validator(mode="after")
    def _has_machining_time(self):
        if self.centro_minutes + self.torno_minutes + self.programacao_minutes <= 0:
            raise ValueError("manufacturing time must be greater than zero")
        return self


class OperatorEntryForm(BaseModel):
    operator_id: str = Field(min_length=1)
    machine_id: str = Field(min_length=1)
    factory: str = Field(min_length=1)
    quantity_produced: int = Field(gt=0)
    production_time_minutes: int = Field(default=0, ge=0)
    forms_number: str | None = None
    operation_count: int | None = Field(default=None, gt=0)
    status: ProductionStatus = "Fila de produção"


class LossEntryForm(BaseModel):
    operator_id: str = Field(min_length=1)
    factory: str = Field(min_length=1)
    machine_id: str = Field(min_length=1)
    quantity_lost: int = Field(gt=0)
    reason_id: str = Field(min_length=1)
    time_lost_minutes: int = Field(default=0, ge=0)

    @field_validator("reason_id")
    @classmethod
    def _known_reason(cls, value: str) -> str:
        if value not in STOP_REASONS:
            raise ValueError(f"unknown stop reason id {value!r}")
        return value

    @property
    def reason(self) -> str:
        return STOP_REASONS[self.reason_id]


class CellUpdate(BaseModel):
    header: str = Field(min_length=1)
    value: str | int | float | None = None


class StatusUpdate(BaseModel):
    status: ProductionStatus
