from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from query import STATUS_CANCELED, STATUS_PAID

STATUS_PENDING = "PENDING"
ZERO = Decimal("0.00")

# Anything not paid or canceled is still owed, custom statuses included
SETTLED_STATUSES = {STATUS_PAID, STATUS_CANCELED}


def format_money(value, decimals: int = 2) -> str:
    """Brazilian notation: 1.234,56"""
    text = f"{Decimal(value or 0):,.{decimals}f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def dashboard_stats(accounts: Iterable) -> Dict[str, object]:
    stats = {
        "total_paid": ZERO,
        "total_pending": ZERO,
        "count_paid": 0,
        "count_pending": 0,
        "count_canceled": 0,
    }
    for acc in accounts:
        if acc.status == STATUS_PAID:
            stats["total_paid"] += Decimal(acc.amount or 0)
            stats["count_paid"] += 1
        elif acc.status == STATUS_PENDING:
            stats["total_pending"] += Decimal(acc.amount or 0)
            stats["count_pending"] += 1
        elif acc.status == STATUS_CANCELED:
            stats["count_canceled"] += 1
    stats["total"] = stats["total_paid"] + stats["total_pending"]
    return stats


def totals_by_category(accounts: Iterable) -> List[Tuple[str, Decimal]]:
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for acc in accounts:
        if acc.status == STATUS_CANCELED:
            continue
        totals[acc.category] += Decimal(acc.amount or 0)
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def totals_by_month(accounts: Iterable) -> List[Tuple[date, Decimal]]:
    """Totals per due month (first day of month), oldest first."""
    totals: Dict[date, Decimal] = defaultdict(lambda: ZERO)
    for acc in accounts:
        if acc.status == STATUS_CANCELED:
            continue
        totals[acc.due_date.replace(day=1)] += Decimal(acc.amount or 0)
    return sorted(totals.items())


def due_state(account, today: Optional[date] = None) -> Optional[str]:
    if account.status in SETTLED_STATUSES:
        return None
    today = today or date.today()
    if account.due_date < today:
        return "overdue"
    if account.due_date == today:
        return "due_today"
    return None
