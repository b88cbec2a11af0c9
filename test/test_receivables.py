from dataclasses import replace
from datetime import date

import pytest

from flowi.domain.errors import (
    AlreadyPaidError,
    DuplicateInvoiceNumberError,
    InvalidAmountError,
    InvalidCurrencyError,
    ValidationError,
)
from flowi.domain.receivables import (
    aggregate_outstanding,
    aging_report,
    create_receivable,
    days_overdue,
    ensure_unique_invoice_number,
    generate_invoice_number,
    mark_paid,
    outstanding_total,
    refresh_statuses,
)

TODAY = date(2024, 12, 1)


def _rec(name="Bodega Luz", amount=100.0, currency="USD", due=date(2024, 12, 15), **kw):
    return create_receivable("customer", name, amount, currency, due, 30, today=TODAY, **kw)


def test_new_receivable_is_pending_with_generated_invoice():
    r = _rec()
    assert r.status == "pending"
    assert r.invoice_number.startswith("INV-20241201-")
    assert r.is_outstanding


def test_due_date_defaults_to_payment_terms():
    r = create_receivable("supplier", "Polar", 50.0, "usd", None, 15, today=TODAY)
    assert r.due_date == date(2024, 12, 16)
    assert r.currency == "USD"


def test_invalid_inputs_are_rejected():
    with pytest.raises(InvalidAmountError):
        _rec(amount=0)
    with pytest.raises(InvalidCurrencyError):
        _rec(currency="EUR")
    with pytest.raises(ValidationError):
        create_receivable("partner", "X", 1.0, "USD", None, 30)
    with pytest.raises(ValidationError, match="Payment terms"):
        create_receivable("customer", "Ana", 10.0, "USD", None, "thirty")
    with pytest.raises(ValidationError, match="Payment terms"):
        create_receivable("customer", "Ana", 10.0, "USD", None, None)
    with pytest.raises(ValidationError):
        create_receivable("customer", "Ana", 10.0, "USD", None, -1)


def test_pending_past_due_becomes_overdue():
    r = _rec(due=date(2024, 11, 25))
    [refreshed] = refresh_statuses([r], TODAY)
    assert refreshed.status == "overdue"
    assert refreshed.updated_at.startswith("2024-12-01")


def test_due_today_stays_pending():
    [refreshed] = refresh_statuses([_rec(due=TODAY)], TODAY)
    assert refreshed.status == "pending"


def test_refresh_is_idempotent_and_leaves_paid_alone():
    rows = [_rec(due=date(2024, 11, 25)), mark_paid(_rec(due=date(2024, 10, 1)))]
    once = refresh_statuses(rows, TODAY)
    twice = refresh_statuses(once, TODAY)
    assert once == twice
    assert [r.status for r in twice] == ["overdue", "paid"]


def test_mark_paid_twice_fails():
    paid = mark_paid(_rec())
    assert paid.status == "paid"
    assert not paid.is_outstanding
    with pytest.raises(AlreadyPaidError):
        mark_paid(paid)


def test_outstanding_never_mixes_currencies():
    rows = [
        _rec(amount=100.0),
        _rec(amount=50.25, due=date(2024, 11, 1)),
        _rec(amount=3650.0, currency="VES"),
        mark_paid(_rec(amount=999.0)),
        _rec(name="Otro", amount=10.0),
    ]
    assert aggregate_outstanding(rows) == {"USD": 160.25, "VES": 3650.0}
    assert aggregate_outstanding(rows, entity_name="Bodega Luz") == {"USD": 150.25, "VES": 3650.0}
    assert aggregate_outstanding(rows, currency="ves") == {"VES": 3650.0}
    assert outstanding_total(rows, "USD", entity_name="Otro") == 10.0


def test_nothing_owed_reports_zero_per_currency():
    assert aggregate_outstanding([]) == {"USD": 0.0, "VES": 0.0}


def test_duplicate_invoice_number_detected():
    existing = [_rec(invoice_number="INV-1")]
    ensure_unique_invoice_number(existing, "INV-2")
    with pytest.raises(DuplicateInvoiceNumberError):
        ensure_unique_invoice_number(existing, "INV-1")


def test_generated_invoice_numbers_differ():
    assert generate_invoice_number(today=TODAY) != generate_invoice_number(today=TODAY)


def test_aging_buckets():
    rows = [
        _rec(amount=10.0, due=date(2024, 12, 10)),
        _rec(amount=20.0, due=date(2024, 11, 20)),
        _rec(amount=30.0, due=date(2024, 10, 15)),
        _rec(amount=40.0, due=date(2024, 9, 10)),
        _rec(amount=50.0, due=date(2024, 6, 1)),
        _rec(amount=730.0, currency="VES", due=date(2024, 11, 20)),
    ]
    usd, = [b for b in aging_report(rows, TODAY) if b.currency == "USD"]
    assert (usd.current, usd.days_30, usd.days_60, usd.days_90, usd.over_90) == (10.0, 20.0, 30.0, 40.0, 50.0)
    assert usd.total == 150.0
    ves, = [b for b in aging_report(rows, TODAY) if b.currency == "VES"]
    assert ves.days_30 == 730.0


def test_days_overdue_is_never_negative():
    r = _rec(due=date(2024, 11, 25))
    assert days_overdue(r, TODAY) == 6
    assert days_overdue(replace(r, due_date=date(2025, 1, 1)), TODAY) == 0


def test_aging_rows_are_grouped_by_currency_then_largest_first():
    rows = [
        _rec(name="Small USD", amount=5.0),
        _rec(name="Big VES", amount=9000.0, currency="VES"),
        _rec(name="Big USD", amount=500.0),
        _rec(name="Small VES", amount=100.0, currency="VES"),
    ]
    order = [(b.currency, b.entity_name) for b in aging_report(rows, TODAY)]
    assert order == [
        ("USD", "Big USD"),
        ("USD", "Small USD"),
        ("VES", "Big VES"),
        ("VES", "Small VES"),
    ]
