import unittest
from datetime import date

from clinicdesk.models import Doctor, IncomeEntry, Service
from clinicdesk.reports import (
    daily_income,
    debt_entries,
    doctor_salary,
    filter_period,
    income_totals,
    services_report,
)

DOCTORS = [
    Doctor(id="doc_a", full_name="Karimov Aziz", specialty_id="spec_therapy", salary_percent=30),
    Doctor(id="doc_b", full_name="Yusupova Dilnoza", specialty_id="spec_cardiology", salary_percent=35),
    Doctor(id="doc_c", full_name="Nazarova Malika", specialty_id="spec_ultrasound"),
    Doctor(id="doc_d", full_name="Tursunov Bekzod", specialty_id="spec_laboratory", active=False),
]

SERVICES = [
    Service(id="svc_ecg", category_id="cat_diagnostics", specialty_id="spec_cardiology", name="ECG", price=60000),
    Service(id="svc_consult", category_id="cat_consultation", specialty_id="spec_therapy", name="Therapist consultation", price=100000),
    Service(id="svc_us", category_id="cat_diagnostics", specialty_id="spec_ultrasound", name="Abdominal ultrasound", price=180000),
]

ENTRIES = [
    IncomeEntry(date=date(2026, 10, 1), amount=100000, description="Therapist consultation", payment_method="cash", patient_id="p1", doctor_id="doc_a"),
    IncomeEntry(date=date(2026, 10, 1), amount=60000, description="ECG", payment_method="card", patient_id="p1", doctor_id="doc_b"),
    IncomeEntry(date=date(2026, 10, 2), amount=100000, description="Therapist consultation", payment_method="debt", patient_id="p2", doctor_id="doc_a"),
    IncomeEntry(date=date(2026, 10, 3), amount=180000, description="Abdominal ultrasound", payment_method="cash", patient_id="p1", doctor_id="doc_c"),
    IncomeEntry(date=date(2026, 10, 3), amount=15000, description="Other", payment_method="transfer", patient_id="p3", doctor_id="doc_a"),
    IncomeEntry(date=date(2026, 9, 30), amount=999, description="ECG", payment_method="cash", patient_id="p9", doctor_id="doc_b"),
]

START = date(2026, 10, 1)
END = date(2026, 10, 3)


class PeriodTests(unittest.TestCase):
    def test_filter_is_inclusive(self):
        self.assertEqual(len(filter_period(ENTRIES, START, END)), 5)
        self.assertEqual(len(filter_period(ENTRIES)), 6)
        self.assertEqual(len(filter_period(ENTRIES, end=date(2026, 9, 30))), 1)

    def test_totals_by_method(self):
        totals = income_totals(ENTRIES, START, END)
        self.assertEqual((totals.cash, totals.card, totals.debt), (280000, 60000, 100000))
        self.assertEqual(totals.total, 455000)

    def test_daily_income_includes_empty_days(self):
        rows = daily_income(ENTRIES, START, date(2026, 10, 4))
        self.assertEqual([row.day.day for row in rows], [1, 2, 3, 4])
        self.assertEqual((rows[0].cash, rows[0].card), (100000, 60000))
        self.assertEqual(rows[1].debt, 100000)
        self.assertEqual(rows[2].cash, 195000)
        self.assertEqual(rows[3].total, 0)

    def test_daily_income_empty_for_reversed_period(self):
        self.assertEqual(daily_income(ENTRIES, END, START), [])

    def test_debt_entries(self):
        self.assertEqual([e.amount for e in debt_entries(ENTRIES, START, END)], [100000])


class DoctorSalaryTests(unittest.TestCase):
    def test_rows_per_active_doctor(self):
        rows = {row.doctor.id: row for row in doctor_salary(ENTRIES, DOCTORS, START, END)}
        self.assertEqual(set(rows), {"doc_a", "doc_b", "doc_c"})
        row = rows["doc_a"]
        self.assertEqual((row.patients_count, row.visits_count, row.income), (3, 3, 215000))
        self.assertEqual((row.salary_percent, row.salary), (30, 64500))
        self.assertEqual(rows["doc_b"].salary, 21000)

    def test_percent_precedence(self):
        rows = {
            row.doctor.id: row
            for row in doctor_salary(ENTRIES, DOCTORS, START, END, default_percent=20, overrides={"doc_b": 50})
        }
        self.assertEqual(rows["doc_a"].salary_percent, 30)
        self.assertEqual(rows["doc_b"].salary_percent, 50)
        self.assertEqual(rows["doc_c"].salary_percent, 20)
        self.assertEqual(rows["doc_c"].salary, 36000)

    def test_salary_rounds_half_up(self):
        entries = [IncomeEntry(date=START, amount=15, description="x", doctor_id="doc_b")]
        (row,) = doctor_salary(entries, DOCTORS[1:2], START, END, overrides={"doc_b": 10})
        self.assertEqual(row.salary, 2)

    def test_ordering_and_search(self):
        rows = doctor_salary(ENTRIES, DOCTORS, START, END, order_by="income")
        self.assertEqual([row.doctor.id for row in rows], ["doc_a", "doc_c", "doc_b"])
        rows = doctor_salary(ENTRIES, DOCTORS, START, END, order_by="name", descending=False)
        self.assertEqual([row.doctor.id for row in rows], ["doc_a", "doc_c", "doc_b"])
        rows = doctor_salary(ENTRIES, DOCTORS, START, END, search="yusup")
        self.assertEqual([row.doctor.id for row in rows], ["doc_b"])

    def test_unknown_ordering(self):
        with self.assertRaises(ValueError):
            doctor_salary(ENTRIES, DOCTORS, order_by="age")


class ServicesReportTests(unittest.TestCase):
    def test_counts_and_revenue(self):
        report = services_report(ENTRIES, SERVICES, DOCTORS, START, END)
        self.assertEqual((report["svc_consult"].count, report["svc_consult"].revenue), (2, 200000))
        self.assertEqual(report["svc_consult"].doctor_names, ["Karimov Aziz"])
        self.assertEqual((report["svc_ecg"].count, report["svc_ecg"].revenue), (1, 60000))
        self.assertEqual(report["svc_us"].revenue, 180000)

    def test_filters(self):
        report = services_report(ENTRIES, SERVICES, DOCTORS, START, END, doctor_id="doc_b")
        self.assertEqual(report["svc_consult"].count, 0)
        self.assertEqual(report["svc_ecg"].count, 1)
        report = services_report(ENTRIES, SERVICES, DOCTORS, START, END, category_id="cat_diagnostics")
        self.assertEqual(report["svc_consult"].count, 0)
        self.assertEqual(report["svc_us"].count, 1)
