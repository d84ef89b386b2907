"""Cash desk and financial reports built from the income ledger."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import Doctor, IncomeEntry, Service
from .pricing import round_half_up


@dataclass(frozen=True)
class IncomeTotals:
    cash: int = 0
    card: int = 0
    debt: int = 0
    total: int = 0


@dataclass(frozen=True)
class DailyIncome:
    day: date
    cash: int = 0
    card: int = 0
    debt: int = 0

    @property
    def total(self) -> int:
        return self.cash + self.card + self.debt


@dataclass(frozen=True)
class DoctorSalaryRow:
    doctor: Doctor
    patients_count: int
    visits_count: int
    income: int
    salary_percent: int
    salary: int


@dataclass
class ServiceReportRow:
    service_id: str
    doctor_names: List[str] = field(default_factory=list)
    count: int = 0
    revenue: int = 0


def filter_period(
    entries: Iterable[IncomeEntry],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[IncomeEntry]:
    """Entries dated within ``[start, end]``; open ends are unbounded."""
    return [
        entry
        for entry in entries
        if (start is None or entry.date >= start) and (end is None or entry.date <= end)
    ]


def income_totals(
    entries: Iterable[IncomeEntry],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> IncomeTotals:
    selected = filter_period(entries, start, end)
    by_method = {"cash": 0, "card": 0, "debt": 0}
    for entry in selected:
        if entry.payment_method in by_method:
            by_method[entry.payment_method] += entry.amount
    return IncomeTotals(total=sum(entry.amount for entry in selected), **by_method)


def daily_income(entries: Iterable[IncomeEntry], start: date, end: date) -> List[DailyIncome]:
    """One row per day of the period, including days without income."""
    if end < start:
        return []
    buckets: Dict[date, Dict[str, int]] = {}
    current = start
    while current <= end:
        buckets[current] = {"cash": 0, "card": 0, "debt": 0}
        current += timedelta(days=1)
    for entry in filter_period(entries, start, end):
        method = entry.payment_method if entry.payment_method in ("card", "debt") else "cash"
        buckets[entry.date][method] += entry.amount
    return [DailyIncome(day=day, **amounts) for day, amounts in buckets.items()]


def debt_entries(
    entries: Iterable[IncomeEntry],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[IncomeEntry]:
    return [entry for entry in filter_period(entries, start, end) if entry.payment_method == "debt"]


def doctor_salary(
    entries: Iterable[IncomeEntry],
    doctors: Sequence[Doctor],
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    default_percent: int = 30,
    overrides: Optional[Mapping[str, int]] = None,
    search: str = "",
    order_by: str = "salary",
    descending: bool = True,
) -> List[DoctorSalaryRow]:
    """Income and salary per active doctor over the period.

    The percent comes from ``overrides``, then the doctor's own salary
    percent, then ``default_percent``. ``order_by`` is one of ``patients``,
    ``visits``, ``income``, ``salary`` or ``name``.
    """
    overrides = overrides or {}
    selected = filter_period(entries, start, end)
    needle = search.strip().lower()

    rows: List[DoctorSalaryRow] = []
    for doctor in doctors:
        if not doctor.active:
            continue
        if needle and needle not in doctor.full_name.lower():
            continue
        booked = [entry for entry in selected if entry.doctor_id == doctor.id]
        income = sum(entry.amount for entry in booked)
        if doctor.id in overrides:
            percent = overrides[doctor.id]
        elif doctor.salary_percent is not None:
            percent = doctor.salary_percent
        else:
            percent = default_percent
        rows.append(
            DoctorSalaryRow(
                doctor=doctor,
                patients_count=len({entry.patient_id for entry in booked if entry.patient_id}),
                visits_count=len(booked),
                income=income,
                salary_percent=percent,
                salary=round_half_up(Decimal(income) * Decimal(str(percent)) / 100),
            )
        )

    sort_keys = {
        "patients": lambda row: row.patients_count,
        "visits": lambda row: row.visits_count,
        "income": lambda row: row.income,
        "salary": lambda row: row.salary,
        "name": lambda row: row.doctor.full_name.lower(),
    }
    if order_by not in sort_keys:
        raise ValueError(f"Unknown salary ordering: {order_by}")
    rows.sort(key=sort_keys[order_by], reverse=descending)
    return rows


def services_report(
    entries: Iterable[IncomeEntry],
    services: Sequence[Service],
    doctors: Sequence[Doctor],
    start: Optional[date] = None,
    end: Optional[date] = None,
    *,
    doctor_id: str = "",
    category_id: str = "",
) -> Dict[str, ServiceReportRow]:
    """Count and revenue per service.

    The ledger does not link entries to services, so an entry is credited to
    the first service whose name appears in its description.
    """
    names = {doctor.id: doctor.full_name for doctor in doctors}
    report = {service.id: ServiceReportRow(service_id=service.id) for service in services}

    for entry in filter_period(entries, start, end):
        if doctor_id and entry.doctor_id != doctor_id:
            continue
        description = (entry.description or "").lower()
        doctor_name = names.get(entry.doctor_id, entry.doctor_id) if entry.doctor_id else None
        for service in services:
            if category_id and service.category_id != category_id:
                continue
            if service.name.lower() in description:
                row = report[service.id]
                row.count += 1
                row.revenue += entry.amount
                if doctor_name and doctor_name not in row.doctor_names:
                    row.doctor_names.append(doctor_name)
                break
    return report
