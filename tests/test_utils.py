from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from utils import dashboard_stats, due_state, format_money, totals_by_category, totals_by_month


def acc(status, amount, category="OTHER", due=date(2024, 1, 10)):
    return SimpleNamespace(status=status, amount=Decimal(amount), category=category, due_date=due)


def test_format_money_brazilian_notation():
    assert format_money(Decimal("1234567.8")) == "1.234.567,80"
    assert format_money(0) == "0,00"


def test_dashboard_stats():
    stats = dashboard_stats([
        acc("PAID", "100.00"),
        acc("PENDING", "40.50"),
        acc("PENDING", "9.50"),
        acc("CANCELED", "999.00"),
    ])
    assert stats["total_paid"] == Decimal("100.00")
    assert stats["total_pending"] == Decimal("50.00")
    assert stats["total"] == Decimal("150.00")
    assert (stats["count_paid"], stats["count_pending"], stats["count_canceled"]) == (1, 2, 1)


def test_totals_skip_canceled():
    accounts = [
        acc("PAID", "10.00", "RENT", date(2024, 2, 5)),
        acc("PENDING", "30.00", "ENERGY", date(2024, 1, 20)),
        acc("PENDING", "5.00", "RENT", date(2024, 1, 2)),
        acc("CANCELED", "500.00", "TAXES", date(2024, 3, 1)),
    ]
    assert totals_by_category(accounts) == [("ENERGY", Decimal("30.00")), ("RENT", Decimal("15.00"))]
    assert totals_by_month(accounts) == [
        (date(2024, 1, 1), Decimal("35.00")),
        (date(2024, 2, 1), Decimal("10.00")),
    ]


def test_due_state():
    today = date(2024, 1, 10)
    assert due_state(acc("PENDING", "1", due=date(2024, 1, 9)), today) == "overdue"
    assert due_state(acc("PENDING", "1", due=today), today) == "due_today"
    assert due_state(acc("PENDING", "1", due=date(2024, 1, 11)), today) is None
    assert due_state(acc("PAID", "1", due=date(2024, 1, 9)), today) is None
