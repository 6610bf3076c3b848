import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from openai import OpenAIError
from pydantic import ValidationError

from fabritrack.aggregation import (
    derive_machine_oee,
    hours_by_factory,
    hours_by_status,
    hours_by_technology,
    lost_minutes_by_reason,
    machine_hours,
    monthly_hours_utilization,
    operator_hours,
    pieces_by_factory,
    production_insights,
    summarize_records,
    used_hours,
    weekly_machine_hours,
)
from fabritrack.config import AppConfig, configure_logging, load_config
from fabritrack.contracts import (
    STOP_REASONS,
    CellUpdate,
    DashboardSummary,
    HoursUtilization,
    LossEntryForm,
    MachineHours,
    MachineOEE,
    OperatorEntryForm,
    OperatorHours,
    OperatorProductionInput,
    ProductionInsights,
    ProductionLossInput,
    ProductionRecord,
    ProductionRecordForm,
    SheetView,
    StatusUpdate,
    WeekdayMachineHours,
)
from fabritrack.db import build_engine, build_session_factory, load_db_config
from fabritrack.filters import (
    MONTH_NAMES,
    FilterSpec,
    available_factories,
    available_years,
    filter_records,
    filter_rows,
)
from fabritrack.flows.cnc_parameters import CncParametersFlow
from fabritrack.flows.machining_time import MachiningTimeFlow
from fabritrack.flows.machining_time_from_image import MachiningTimeFromImageFlow
from fabritrack.flows.production_parameters import ProductionParametersFlow
from fabritrack.flows.time_estimator import TimeEstimatorFlow
from fabritrack.models import Base
from fabritrack.orchestration import AIServiceError, PromptOrchestrator
from fabritrack.prompt_client import OpenAIPromptClient
from fabritrack.registry import FlowNotFoundError, FlowRegistry
from fabritrack.repository import (
    ProductionRecordRepository,
    RowNotFoundError,
    ShopFloorRepository,
    list_nodes,
)
from fabritrack.seed import run_seed
from fabritrack.store import DocumentStore, SqlDocumentStore, StoreUnavailableError, join_path

logger = logging.getLogger(__name__)

# --- Config ---
_config = load_config()
configure_logging(_config.log_level)

# --- DB setup ---
_engine = build_engine(load_db_config())
_session_factory = build_session_factory(_engine)
Base.metadata.create_all(bind=_engine)
_store = SqlDocumentStore(_session_factory)

# --- Flow registry ---
_registry = FlowRegistry()
_registry.register(MachiningTimeFromImageFlow)
_registry.register(MachiningTimeFlow)
_registry.register(CncParametersFlow)
_registry.register(ProductionParametersFlow)
_registry.register(TimeEstimatorFlow)

# --- Orchestrator (built on first use, the OpenAI client needs a key) ---
_orchestrator: Optional[PromptOrchestrator] = None

# --- FastAPI app ---
app = FastAPI(title="FabriTrack Production API")


def get_config() -> AppConfig:
    return _config


def get_store() -> DocumentStore:
    return _store


def get_orchestrator() -> PromptOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        try:
            client = OpenAIPromptClient(model=_config.ai_model, api_key=_config.openai_api_key)
        except OpenAIError as exc:
            logger.error("AI client unavailable: %s", exc)
            raise HTTPException(status_code=502, detail="Serviço de IA indisponível.") from exc
        _orchestrator = PromptOrchestrator(_registry, client)
    return _orchestrator


@app.exception_handler(StoreUnavailableError)
def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError):
    errors = exc.errors(include_url=False, include_context=False)
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def _record_repo(store: DocumentStore, config: AppConfig, node: Optional[str] = None):
    return ProductionRecordRepository(store, join_path(config.spreadsheet_id, node or config.default_node))


def _filter_spec(**params) -> FilterSpec:
    factories = params.pop("factory", None) or []
    return FilterSpec.model_validate({"factories": set(factories), **params})


def _month_spec(year: Optional[int], month: Optional[int], today: Optional[date] = None) -> FilterSpec:
    today = today or date.today()
    return FilterSpec(
        year=today.year if year is None else year,
        month=today.month - 1 if month is None else month,
    )


@app.get("/health")
def health():
    return {"status": "ok", "flows": _registry.keys()}


# --- Production records ---


@app.get("/records", response_model=List[ProductionRecord])
def list_records(
    node: Optional[str] = Query(None),
    factory: List[str] = Query([]),
    year: str = Query("all"),
    month: str = Query("all"),
    q: str = Query(""),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    spec = _filter_spec(factory=factory, year=year, month=month, query=q)
    return filter_records(_record_repo(store, config, node).list(), spec)


@app.post("/records", response_model=ProductionRecord, status_code=201)
def create_record(
    form: ProductionRecordForm,
    node: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    return _record_repo(store, config, node).add(form)


@app.patch("/records/{row_id}")
def update_record_cell(
    row_id: str,
    update: CellUpdate,
    node: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    try:
        _record_repo(store, config, node).update_cell(row_id, update.header, update.value)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "ok", "id": row_id}


@app.get("/sheets/{node}", response_model=SheetView)
def get_sheet(
    node: str,
    q: str = Query(""),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    repo = _record_repo(store, config, node)
    return SheetView(node=node, headers=repo.headers(), rows=filter_rows(repo.raw_rows(), q))


@app.get("/nodes")
def get_nodes(store: DocumentStore = Depends(get_store), config: AppConfig = Depends(get_config)):
    return list_nodes(store, config.spreadsheet_id, config.default_node)


@app.get("/dashboard/filters")
def dashboard_filters(
    node: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    records = _record_repo(store, config, node).list()
    return {
        "factories": available_factories(records),
        "years": available_years(records),
        "months": ["all", *MONTH_NAMES],
    }


@app.get("/dashboard/summary", response_model=DashboardSummary)
def dashboard_summary(
    node: Optional[str] = Query(None),
    factory: List[str] = Query([]),
    year: str = Query("all"),
    month: str = Query("all"),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    spec = _filter_spec(factory=factory, year=year, month=month)
    records = filter_records(_record_repo(store, config, node).list(), spec)
    return DashboardSummary(
        summary=summarize_records(records),
        hours_by_factory=hours_by_factory(records),
        hours_by_status=hours_by_status(records),
        hours_by_technology=hours_by_technology(records),
        pieces_by_factory=pieces_by_factory(records),
    )


# --- Shop floor ---


@app.get("/shop-floor/entries", response_model=List[OperatorProductionInput])
def list_entries(
    factory: List[str] = Query([]),
    operator_id: str = Query(""),
    machine_id: str = Query(""),
    year: str = Query("all"),
    month: str = Query("all"),
    store: DocumentStore = Depends(get_store),
):
    spec = _filter_spec(
        factory=factory, operator_id=operator_id, machine_id=machine_id, year=year, month=month
    )
    return filter_records(ShopFloorRepository(store).list_entries(), spec)


@app.post("/shop-floor/entries", response_model=OperatorProductionInput, status_code=201)
def create_entry(form: OperatorEntryForm, store: DocumentStore = Depends(get_store)):
    return ShopFloorRepository(store).add_entry(form)


@app.patch("/shop-floor/entries/{entry_id}/status")
def update_entry_status(entry_id: str, update: StatusUpdate, store: DocumentStore = Depends(get_store)):
    try:
        ShopFloorRepository(store).update_entry_status(entry_id, update.status)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "ok", "id": entry_id}


@app.delete("/shop-floor/entries/{entry_id}")
def delete_entry(entry_id: str, store: DocumentStore = Depends(get_store)):
    try:
        ShopFloorRepository(store).delete_entry(entry_id)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted", "id": entry_id}


@app.get("/shop-floor/losses", response_model=List[ProductionLossInput])
def list_losses(
    factory: List[str] = Query([]),
    machine_id: str = Query(""),
    reason: str = Query(""),
    year: str = Query("all"),
    month: str = Query("all"),
    store: DocumentStore = Depends(get_store),
):
    spec = _filter_spec(factory=factory, machine_id=machine_id, reason=reason, year=year, month=month)
    return filter_records(ShopFloorRepository(store).list_losses(), spec)


@app.post("/shop-floor/losses", response_model=ProductionLossInput, status_code=201)
def create_loss(form: LossEntryForm, store: DocumentStore = Depends(get_store)):
    return ShopFloorRepository(store).add_loss(form)


@app.delete("/shop-floor/losses/{loss_id}")
def delete_loss(loss_id: str, store: DocumentStore = Depends(get_store)):
    try:
        ShopFloorRepository(store).delete_loss(loss_id)
    except RowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted", "id": loss_id}


@app.get("/shop-floor/stop-reasons")
def stop_reasons(store: DocumentStore = Depends(get_store)):
    losses = ShopFloorRepository(store).list_losses()
    return {
        "catalogue": [{"id": k, "reason": v} for k, v in STOP_REASONS.items()],
        "lost_minutes": [t.model_dump() for t in lost_minutes_by_reason(losses)],
    }


@app.get("/shop-floor/oee", response_model=List[MachineOEE])
def shop_floor_oee(day: Optional[date] = Query(None), store: DocumentStore = Depends(get_store)):
    day = day or date.today()
    repo = ShopFloorRepository(store)
    entries = [e for e in repo.list_entries() if e.timestamp.date() == day]
    losses = [l for l in repo.list_losses() if l.timestamp.date() == day]
    return derive_machine_oee(entries, losses)


@app.get("/shop-floor/insights", response_model=ProductionInsights)
def shop_floor_insights(store: DocumentStore = Depends(get_store)):
    repo = ShopFloorRepository(store)
    return production_insights(repo.list_entries(), repo.list_losses())


@app.get("/shop-floor/utilization", response_model=HoursUtilization)
def shop_floor_utilization(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    entries = filter_records(ShopFloorRepository(store).list_entries(), _month_spec(year, month))
    return monthly_hours_utilization(config.monthly_hours, used_hours(entries))


@app.get("/shop-floor/operators", response_model=List[OperatorHours])
def shop_floor_operators(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    store: DocumentStore = Depends(get_store),
):
    entries = filter_records(ShopFloorRepository(store).list_entries(), _month_spec(year, month))
    return operator_hours(entries)


@app.get("/shop-floor/machines", response_model=List[MachineHours])
def shop_floor_machines(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    store: DocumentStore = Depends(get_store),
):
    entries = filter_records(ShopFloorRepository(store).list_entries(), _month_spec(year, month))
    return machine_hours(entries)


@app.get("/shop-floor/machines/weekly", response_model=List[WeekdayMachineHours])
def shop_floor_machines_weekly(
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None),
    store: DocumentStore = Depends(get_store),
):
    entries = filter_records(ShopFloorRepository(store).list_entries(), _month_spec(year, month))
    return weekly_machine_hours(entries)


# --- AI prompt flows ---


@app.get("/ai/flows")
def ai_flows():
    return _registry.keys()


@app.get("/ai/flows/{flow_name}")
def ai_flow_schema(flow_name: str):
    try:
        return _registry.describe(flow_name)
    except FlowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.post("/ai/optimize-from-history")
def ai_optimize_from_history(
    node: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
    orchestrator: PromptOrchestrator = Depends(get_orchestrator),
):
    records = _record_repo(store, config, node).list()
    try:
        return orchestrator.optimize_from_history(records)
    except AIServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.post("/ai/{flow_name}")
def ai_run_flow(
    flow_name: str,
    payload: dict,
    orchestrator: PromptOrchestrator = Depends(get_orchestrator),
):
    try:
        return orchestrator.run(flow_name, payload)
    except FlowNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except AIServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


# --- Admin ---


@app.post("/admin/seed")
def admin_seed(
    x_admin_token: Optional[str] = Header(None),
    store: DocumentStore = Depends(get_store),
    config: AppConfig = Depends(get_config),
):
    if not config.admin_token or x_admin_token != config.admin_token:
        raise HTTPException(status_code=401, detail="invalid admin token")
    inserted = run_seed(store, config.spreadsheet_id, config.default_node)
    return {"status": "ok", "inserted": inserted, "seeded_at": datetime.now().isoformat()}
