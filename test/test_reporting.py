from datetime import date
from pathlib import Path

from openpyxl import load_workbook

from conftest import make_repo
from flowi.domain.models import PaymentDetails
from flowi.domain.sales import compute_sale
from flowi.services.receivables_service import ReceivablesService
from flowi.services.reporting_service import ReportingService

TODAY = date(2024, 12, 1)


def _item(pid, name, qty, price):
    return {"product_id": pid, "product_name": name, "quantity": qty, "price_usd": price}


def _seed(tmp_path: Path):
    repo = make_repo(tmp_path, "reports.db")
    seller = {"user_id": "u1", "user_name": "Caja 1"}
    repo.add_sale(compute_sale([_item("p1", "Harina", 2, 10.0)], "usd", 36.5, created_at="2024-12-01 09:15:00", **seller))
    repo.add_sale(
        compute_sale(
            [_item("p2", "Queso", 1, 20.0)],
            "mixed",
            36.5,
            PaymentDetails(paid_usd=5.0, paid_ves=547.5),
            created_at="2024-12-01 18:40:00",
            **seller,
        )
    )
    repo.add_sale(compute_sale([_item("p1", "Harina", 1, 10.0)], "ves", 36.0, created_at="2024-11-29 12:00:00", **seller))

    receivables = ReceivablesService(repo, clock=lambda: TODAY)
    receivables.create_receivable("customer", "Bodega Luz", 30.0, "USD", due_date=date(2024, 11, 20))
    receivables.create_receivable("supplier", "Polar", 1460.0, "VES", due_date=date(2024, 12, 10))
    return repo, ReportingService(repo, receivables)


def test_daily_summary_for_cash_closure(tmp_path: Path):
    _, reporting = _seed(tmp_path)

    s = reporting.daily_summary(TODAY)
    assert s.sales_count == 2
    assert s.total_usd == 40.0
    assert s.total_ves == 1460.0
    assert s.by_method == {"usd": (1, 20.0), "ves": (0, 0.0), "mixed": (1, 20.0)}

    assert reporting.daily_summary(date(2024, 11, 30)).sales_count == 0


def test_trend_is_zero_filled(tmp_path: Path):
    _, reporting = _seed(tmp_path)

    trend = reporting.sales_trend(days=3, today=TODAY)
    assert trend == [
        ("2024-11-29", 1, 10.0, 1),
        ("2024-11-30", 0, 0.0, 0),
        ("2024-12-01", 3, 40.0, 2),
    ]


def test_aggregates(tmp_path: Path):
    _, reporting = _seed(tmp_path)

    assert reporting.average_order_value("2024-11-01", "2024-12-02") == 16.67
    assert reporting.average_order_value("2025-01-01", "2025-02-01") == 0.0
    assert reporting.monthly_sales_totals(6) == [("2024-11", 10.0, 360.0), ("2024-12", 40.0, 1460.0)]

    top = reporting.top_products(1)
    assert top == [("p1", "Harina", 3, 30.0)]

    assert reporting.outstanding_by_currency() == {"USD": 30.0, "VES": 1460.0}
    assert reporting.outstanding_by_currency("supplier") == {"USD": 0.0, "VES": 1460.0}


def test_export_report_excel(tmp_path: Path):
    _, reporting = _seed(tmp_path)
    out = tmp_path / "report.xlsx"

    reporting.export_report_excel(str(out), "2024-12-01", "2024-12-02", as_of=TODAY)

    wb = load_workbook(out)
    assert wb.sheetnames == ["Summary", "Sales Detail", "Receivables", "Aging"]

    summary = wb["Summary"]
    assert summary["A5"].value == "Sales count"
    assert summary["B5"].value == 2
    assert summary["B6"].value == 40.0
    assert summary["B8"].value == 30.0

    detail = wb["Sales Detail"]
    assert detail.max_row == 3
    assert {detail.cell(row=r, column=5).value for r in (2, 3)} == {"Harina", "Queso"}

    rec = wb["Receivables"]
    statuses = {rec.cell(row=r, column=3).value: rec.cell(row=r, column=7).value for r in (2, 3)}
    assert statuses == {"Bodega Luz": "overdue", "Polar": "pending"}

    aging = wb["Aging"]
    rows = {aging.cell(row=r, column=1).value: aging.cell(row=r, column=8).value for r in (4, 5)}
    assert rows == {"Bodega Luz": 30.0, "Polar": 1460.0}
