from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from flowi.domain.models import PAYMENT_METHODS
from flowi.domain.money import round_currency
from flowi.domain.receivables import aging_report, refresh_statuses


@dataclass(frozen=True)
class DailySummary:
    day: str
    sales_count: int
    total_usd: float
    total_ves: float
    by_method: dict[str, tuple[int, float]] = field(default_factory=dict)


def _window(start: date, end_exclusive: date) -> tuple[str, str]:
    return start.isoformat(), end_exclusive.isoformat()


class ReportingService:
    def __init__(self, repo, receivables):
        self.repo = repo
        self.receivables = receivables

    def daily_summary(self, day: date) -> DailySummary:
        """Cash-closure figures for one calendar day."""
        sales = self.repo.list_sales_between(*_window(day, day + timedelta(days=1)))
        by_method = {}
        for method in PAYMENT_METHODS:
            rows = [s for s in sales if s.payment_method == method]
            by_method[method] = (len(rows), round_currency(sum(s.total_usd for s in rows)))
        return DailySummary(
            day=day.isoformat(),
            sales_count=len(sales),
            total_usd=round_currency(sum(s.total_usd for s in sales)),
            total_ves=round_currency(sum(s.total_ves for s in sales)),
            by_method=by_method,
        )

    def monthly_sales_totals(self, months: int = 6) -> list[tuple[str, float, float]]:
        return self.repo.monthly_sales_totals(months)

    def top_products(self, limit: int = 5) -> list[tuple[str, str, int, float]]:
        return self.repo.top_products(limit)

    def sales_trend(self, days: int = 30, today: Optional[date] = None) -> list[tuple[str, int, float, int]]:
        """(day, units, revenue USD, orders) for each of the last ``days`` days, zero-filled."""
        today = today or date.today()
        start = today - timedelta(days=days - 1)
        trend = {(start + timedelta(days=i)).isoformat(): [0, 0.0, 0] for i in range(days)}
        for s in self.repo.list_sales_between(*_window(start, today + timedelta(days=1))):
            bucket = trend.get(s.created_at[:10])
            if bucket is None:
                continue
            bucket[0] += sum(it.quantity for it in s.items)
            bucket[1] += s.total_usd
            bucket[2] += 1
        return [(d, v[0], round_currency(v[1]), v[2]) for d, v in trend.items()]

    def average_order_value(self, start_iso: str, end_iso: str) -> float:
        sales = self.repo.list_sales_between(start_iso, end_iso)
        if not sales:
            return 0.0
        return round_currency(sum(s.total_usd for s in sales) / len(sales))

    def outstanding_by_currency(self, entity_type: Optional[str] = None) -> dict[str, float]:
        return self.receivables.outstanding(entity_type=entity_type)

    def export_report_excel(self, path: str, start_iso: str, end_iso: str, as_of: date) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        sales = self.repo.list_sales_between(start_iso, end_iso)
        receivables = refresh_statuses(self.repo.list_receivables(), as_of)
        outstanding = self.receivables.outstanding()

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Sales count", len(sales), "int"),
            ("Revenue USD", round_currency(sum(s.total_usd for s in sales)), "money"),
            ("Revenue VES", round_currency(sum(s.total_ves for s in sales)), "money"),
            ("Outstanding USD", outstanding.get("USD", 0.0), "money"),
            ("Outstanding VES", outstanding.get("VES", 0.0), "money"),
        ]

        start_row = 5
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])

        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Sale ID", "Datetime", "Method", "Seller",
            "Product", "Qty", "Unit USD", "Unit VES",
            "Line USD", "Line VES", "Rate",
        ])
        bold_row(ws2, 1)

        out_row = 2
        for s in sales:
            for it in s.items:
                ws2.append([
                    s.id, s.created_at, s.payment_method, s.user_name,
                    it.product_name, int(it.quantity), it.price_usd, it.price_ves,
                    round_currency(it.price_usd * it.quantity), round_currency(it.price_ves * it.quantity), s.exchange_rate,
                ])
                for col in "GHIJ":
                    money(ws2[f"{col}{out_row}"])
                out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 38, "B": 20, "C": 8, "D": 16,
            "E": 30, "F": 6, "G": 12, "H": 14,
            "I": 12, "J": 16, "K": 10,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "SalesDetailTable", 1, 1, ws2.max_row, 11)

        # -------- 3) Receivables --------
        ws3 = wb.create_sheet("Receivables")
        ws3.append(["Invoice", "Type", "Entity", "Amount", "Currency", "Due", "Status", "Description"])
        bold_row(ws3, 1)
        for i, r in enumerate(sorted(receivables, key=lambda r: (r.due_date, r.invoice_number)), start=2):
            ws3.append([
                r.invoice_number, r.entity_type, r.entity_name, r.amount, r.currency,
                r.due_date.isoformat(), r.status, r.description,
            ])
            money(ws3[f"D{i}"])
        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 24, "B": 10, "C": 28, "D": 14, "E": 9, "F": 12, "G": 10, "H": 34})
        if ws3.max_row >= 2:
            add_table(ws3, "ReceivablesTable", 1, 1, ws3.max_row, 8)

        # -------- 4) Aging --------
        ws4 = wb.create_sheet("Aging")
        ws4["A1"] = f"Aging as of {as_of.isoformat()}"
        ws4["A1"].font = Font(bold=True, size=14)
        ws4.append([])
        ws4.append(["Entity", "Currency", "Current", "1-30", "31-60", "61-90", "90+", "Total"])
        bold_row(ws4, 3)
        out_row = 4
        for b in aging_report(receivables, as_of):
            ws4.append([b.entity_name, b.currency, b.current, b.days_30, b.days_60, b.days_90, b.over_90, b.total])
            for col in "CDEFGH":
                money(ws4[f"{col}{out_row}"])
            out_row += 1
        set_widths(ws4, {"A": 28, "B": 9, "C": 12, "D": 12, "E": 12, "F": 12, "G": 12, "H": 14})
        if ws4.max_row >= 4:
            add_table(ws4, "AgingTable", 3, 1, ws4.max_row, 8)

        wb.save(path)
