"""Derived dashboard metrics over canonical records.

Every function here is pure: inputs are never mutated, outputs are fresh
pydantic values or plain dicts, and every division is guarded so no NaN or
infinity reaches a caller.
"""

from typing import Callable, Hashable, Iterable, Mapping

from fabritrack.contracts import (
    OTHER_STATUS,
    PRODUCTION_STATUSES,
    FactoryHours,
    FactoryPieces,
    HoursUtilization,
    MachineHours,
    MachineOEE,
    NamedTotal,
    OEESample,
    OperatorHours,
    OperatorProductionInput,
    ProductionInsights,
    ProductionLossInput,
    ProductionRecord,
    RecordSummary,
    StatusHours,
    TechnologyHours,
    WeekdayMachineHours,
)

FACTORY_ROSTER = (
    "Igarassu",
    "Vinhedo",
    "Suape",
    "Aguaí",
    "Garanhuns",
    "Indaiatuba",
    "Valinhos",
    "Pouso Alegre",
)

STATUS_BUCKETS = (*PRODUCTION_STATUSES, OTHER_STATUS)

TECHNOLOGIES = (
    ("Centro", "centro_time"),
    ("Torno", "torno_time"),
    ("Programação", "programacao_time"),
)

MONTHLY_HOURS_PER_MACHINE = 270
MONTHLY_HOURS_PER_OPERATOR = 135

SHIFT_SECONDS = 8 * 60 * 60
IDEAL_CYCLE_TIME_SECONDS = 25

WEEKDAY_NAMES = ("Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom")

NOT_AVAILABLE = "N/A"


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))


def sum_by(items: Iterable, key: Callable[[object], Hashable], value: Callable[[object], float]) -> dict:
    """Group ``items`` by ``key`` and sum ``value``, keeping first-seen key order."""
    totals: dict = {}
    for item in items:
        k = key(item)
        totals[k] = totals.get(k, 0) + value(item)
    return totals


def record_hours(record: ProductionRecord) -> float:
    return record.centro_time + record.torno_time + record.programacao_time


# --- Production records ---


def hours_by_factory(
    records: Iterable[ProductionRecord], roster: Iterable[str] = FACTORY_ROSTER
) -> list[FactoryHours]:
    groups = {factory: FactoryHours(factory=factory) for factory in roster}
    for record in records:
        group = groups.setdefault(
            record.requesting_factory, FactoryHours(factory=record.requesting_factory)
        )
        group.centro_hours += record.centro_time
        group.torno_hours += record.torno_time
        group.programacao_hours += record.programacao_time
        group.total_hours += record_hours(record)
    return list(groups.values())


def pieces_by_factory(
    records: Iterable[ProductionRecord], roster: Iterable[str] = FACTORY_ROSTER
) -> list[FactoryPieces]:
    totals = dict.fromkeys(roster, 0)
    for record in records:
        totals[record.requesting_factory] = totals.get(record.requesting_factory, 0) + record.quantity
    pieces = [FactoryPieces(factory=f, quantity=q) for f, q in totals.items()]
    return sorted(pieces, key=lambda p: p.quantity, reverse=True)


def status_bucket(status: str | None) -> str:
    return status if status in PRODUCTION_STATUSES else OTHER_STATUS


def hours_by_status(records: Iterable[ProductionRecord]) -> list[StatusHours]:
    totals = dict.fromkeys(STATUS_BUCKETS, 0.0)
    for record in records:
        totals[status_bucket(record.status)] += record_hours(record)
    return [StatusHours(status=s, hours=h) for s, h in totals.items()]


def hours_by_technology(records: Iterable[ProductionRecord]) -> list[TechnologyHours]:
    records = list(records)
    return [
        TechnologyHours(technology=name, hours=sum(getattr(r, attr) for r in records))
        for name, attr in TECHNOLOGIES
    ]


def summarize_records(records: Iterable[ProductionRecord]) -> RecordSummary:
    records = list(records)
    total_hours = sum(r.manufacturing_time for r in records)
    return RecordSummary(
        total_records=len(records),
        total_pieces=sum(r.quantity for r in records),
        unique_requests=len({r.request_id for r in records if r.request_id}),
        unique_parts=len({r.part_name for r in records}),
        unique_materials=len({r.material for r in records}),
        total_hours=total_hours,
        mean_manufacturing_time=_ratio(total_hours, len(records)),
    )


# --- OEE ---


def compute_oee(availability: float, performance: float, quality: float) -> float:
    """OEE percentage from availability, performance and quality percentages."""
    a, p, q = (_clamp_percent(v) for v in (availability, performance, quality))
    return a * p * q / 10000


def _mean(values: list[float]) -> float:
    return _ratio(sum(values), len(values))


def aggregate_oee(samples: Iterable[OEESample]) -> list[MachineOEE]:
    """Fold per-machine samples into one MachineOEE each.

    When every sample of a machine carries all three components, OEE is
    derived from their means. Otherwise the pre-computed ``oee`` values
    supplied for that machine are averaged.
    """
    by_machine: dict[str, list[OEESample]] = {}
    for sample in samples:
        by_machine.setdefault(sample.machine_id, []).append(sample)

    results = []
    for machine_id, group in by_machine.items():
        components = {
            name: [getattr(s, name) for s in group if getattr(s, name) is not None]
            for name in ("availability", "performance", "quality")
        }
        availability, performance, quality = (
            _clamp_percent(_mean(components[name]))
            for name in ("availability", "performance", "quality")
        )
        if all(len(values) == len(group) for values in components.values()):
            oee = compute_oee(availability, performance, quality)
        else:
            oee = _clamp_percent(_mean([s.oee for s in group if s.oee is not None]))
        results.append(
            MachineOEE(
                machine_id=machine_id,
                oee=oee,
                availability=availability,
                performance=performance,
                quality=quality,
            )
        )
    return results


def derive_machine_oee(
    entries: Iterable[OperatorProductionInput],
    losses: Iterable[ProductionLossInput],
    shift_seconds: int = SHIFT_SECONDS,
    ideal_cycle_seconds: int = IDEAL_CYCLE_TIME_SECONDS,
) -> list[MachineOEE]:
    """Derive OEE per machine from one shift's production entries and losses."""
    entries = list(entries)
    losses = list(losses)
    machines: dict[str, dict[str, float]] = {}
    for machine_id in [e.machine_id for e in entries] + [l.machine_id for l in losses]:
        if machine_id:
            machines.setdefault(
                machine_id, {"produced": 0, "lost": 0, "run_time": 0, "down_time": 0}
            )

    for entry in entries:
        if entry.machine_id in machines:
            machines[entry.machine_id]["produced"] += entry.quantity_produced
            machines[entry.machine_id]["run_time"] += entry.production_time_seconds
    for loss in losses:
        if loss.machine_id in machines:
            machines[loss.machine_id]["lost"] += loss.quantity_lost
            machines[loss.machine_id]["down_time"] += loss.time_lost_minutes * 60

    results = []
    for machine_id, data in machines.items():
        operating_time = max(0.0, shift_seconds - data["down_time"])
        availability = _ratio(operating_time, shift_seconds) * 100
        performance = min(
            100.0, _ratio(data["produced"] * ideal_cycle_seconds, data["run_time"]) * 100
        )
        quality = _ratio(data["produced"], data["produced"] + data["lost"]) * 100
        results.append(
            MachineOEE(
                machine_id=machine_id,
                oee=compute_oee(availability, performance, quality),
                availability=availability,
                performance=performance,
                quality=quality,
            )
        )
    return results


# --- Losses and insights ---


def loss_totals_by_reason(losses: Iterable[ProductionLossInput]) -> dict[str, int]:
    return sum_by(losses, lambda l: l.reason, lambda l: l.quantity_lost)


def loss_totals_by_factory(losses: Iterable[ProductionLossInput]) -> dict[str, int]:
    return sum_by(losses, lambda l: l.factory, lambda l: l.quantity_lost)


def lost_minutes_by_reason(losses: Iterable[ProductionLossInput]) -> list[NamedTotal]:
    totals = sum_by(losses, lambda l: l.reason or "Desconhecido", lambda l: l.time_lost_minutes)
    return [NamedTotal(name=name, value=value) for name, value in totals.items()]


def top_entry(totals: Mapping[str, float], default: str = NOT_AVAILABLE) -> str:
    """Key with the highest total; on a tie the first one encountered wins."""
    best, best_value = default, None
    for key, value in totals.items():
        if best_value is None or value > best_value:
            best, best_value = key, value
    return best


def production_insights(
    entries: Iterable[OperatorProductionInput], losses: Iterable[ProductionLossInput]
) -> ProductionInsights:
    entries = list(entries)
    losses = list(losses)
    return ProductionInsights(
        most_productive_machine=top_entry(
            sum_by(entries, lambda e: e.machine_id, lambda e: e.quantity_produced)
        ),
        main_loss_reason=top_entry(loss_totals_by_reason(losses)),
        most_productive_operator=top_entry(
            sum_by(entries, lambda e: e.operator_id, lambda e: e.quantity_produced)
        ),
        most_affected_factory=top_entry(loss_totals_by_factory(losses)),
    )


# --- Hours budgets ---


def monthly_hours_utilization(budget: float, used: float) -> HoursUtilization:
    return HoursUtilization(
        budget=budget,
        used=used,
        remaining=max(0.0, budget - used),
        percentage_used=_ratio(used, budget) * 100,
    )


def used_hours(entries: Iterable[OperatorProductionInput]) -> float:
    return sum(e.production_time_seconds for e in entries) / 3600


def operator_hours(
    entries: Iterable[OperatorProductionInput], budget: float = MONTHLY_HOURS_PER_OPERATOR
) -> list[OperatorHours]:
    totals = sum_by(entries, lambda e: e.operator_id, lambda e: e.production_time_seconds / 3600)
    rows = [
        OperatorHours(operator_id=k, total_hours=v, percentage=_ratio(v, budget) * 100)
        for k, v in totals.items()
    ]
    return sorted(rows, key=lambda r: r.total_hours, reverse=True)


def machine_hours(
    entries: Iterable[OperatorProductionInput], budget: float = MONTHLY_HOURS_PER_MACHINE
) -> list[MachineHours]:
    totals = sum_by(entries, lambda e: e.machine_id, lambda e: e.production_time_seconds / 3600)
    rows = [
        MachineHours(machine_id=k, total_hours=v, percentage=_ratio(v, budget) * 100)
        for k, v in totals.items()
    ]
    return sorted(rows, key=lambda r: r.total_hours, reverse=True)


def weekly_machine_hours(entries: Iterable[OperatorProductionInput]) -> list[WeekdayMachineHours]:
    """Hours per weekday per machine, one row per weekday Monday first."""
    entries = list(entries)
    machines = list(dict.fromkeys(e.machine_id for e in entries))
    week = {day: dict.fromkeys(machines, 0.0) for day in WEEKDAY_NAMES}
    for entry in entries:
        day = WEEKDAY_NAMES[entry.timestamp.weekday()]
        week[day][entry.machine_id] += entry.production_time_seconds / 3600
    return [WeekdayMachineHours(day=day, hours=hours) for day, hours in week.items()]
