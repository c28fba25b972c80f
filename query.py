"""Filter, sort and paginate the in-memory list of payable accounts.

Everything here works on already-loaded records (ORM rows or
``schemas.AccountOut``) and never mutates them. The same inputs always give
the same ordered output.

Sorting is a plain comparison of the field values: amounts compare as
numbers, dates as dates and text as (case-sensitive) text. There are no
per-field comparators.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence

PAGE_SIZE = 15
PAGE_WINDOW = 5

STATUS_ALL = "ALL"
STATUS_PAID = "PAID"
STATUS_CANCELED = "CANCELED"

DATE_FIELDS = ("due_date", "movement_date")
SEARCH_FIELDS = ("supplier", "title", "company")
SORT_FIELDS = (
    "id",
    "movement_date",
    "due_date",
    "location",
    "supplier",
    "title",
    "company",
    "amount",
    "accounting_type",
    "category",
    "status",
    "note",
    "created_at",
)


def _as_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class AccountQuery:
    search: str = ""
    date_field: str = "due_date"
    start: Optional[date] = None
    end: Optional[date] = None
    status: str = STATUS_ALL
    hide_paid: bool = False
    sort_field: str = "due_date"
    sort_order: str = "asc"
    page: int = 1
    page_size: int = PAGE_SIZE

    @classmethod
    def from_params(
        cls,
        search: Optional[str] = None,
        date_field: Optional[str] = None,
        start=None,
        end=None,
        status: Optional[str] = None,
        hide_paid: bool = False,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None,
        page: Optional[int] = 1,
    ) -> "AccountQuery":
        """Build a query from raw request parameters, dropping anything unusable."""

        return cls(
            search=(search or "").strip(),
            date_field=date_field if date_field in DATE_FIELDS else "due_date",
            start=_as_date(start),
            end=_as_date(end),
            status=(status or STATUS_ALL).strip().upper() or STATUS_ALL,
            hide_paid=bool(hide_paid),
            sort_field=sort_field if sort_field in SORT_FIELDS else "due_date",
            sort_order="desc" if sort_order == "desc" else "asc",
            page=max(page or 1, 1),
        )

    def toggled_sort(self, field: str) -> tuple[str, str]:
        """Sort field and order after clicking a column header."""
        if field == self.sort_field:
            return field, "desc" if self.sort_order == "asc" else "asc"
        return field, "asc"


@dataclass(frozen=True)
class Page:
    items: List[Any]
    number: int
    size: int
    total: int
    total_pages: int

    @property
    def empty(self) -> bool:
        return self.total == 0

    @property
    def has_previous(self) -> bool:
        return self.number > 1

    @property
    def has_next(self) -> bool:
        return self.number < self.total_pages

    @property
    def window(self) -> List[int]:
        return page_window(self.number, self.total_pages)


@dataclass(frozen=True)
class QueryResult:
    filtered: List[Any]
    page: Page


def matches(record, query: AccountQuery) -> bool:
    needle = query.search.lower()
    if needle and not any(needle in (getattr(record, name, "") or "").lower() for name in SEARCH_FIELDS):
        return False

    status = getattr(record, "status", None)
    if query.status != STATUS_ALL and status != query.status:
        return False
    # hide_paid wins over an explicit PAID status filter
    if query.hide_paid and status == STATUS_PAID:
        return False

    target = _as_date(getattr(record, query.date_field, None))
    if query.start and (target is None or target < query.start):
        return False
    if query.end and (target is None or target > query.end):
        return False
    return True


def sort_accounts(records: Iterable[Any], field: str = "due_date", order: str = "asc") -> List[Any]:
    def key(record):
        value = getattr(record, field, None)
        return (value is None, value if value is not None else 0)

    return sorted(records, key=key, reverse=(order == "desc"))


def page_window(current: int, total_pages: int, width: int = PAGE_WINDOW) -> List[int]:
    if total_pages <= 0:
        return []
    current = clamp_page(current, total_pages)
    first = max(1, min(current - width // 2, total_pages - width + 1))
    last = min(total_pages, first + width - 1)
    return list(range(first, last + 1))


def paginate(records: Sequence[Any], page: int, page_size: int = PAGE_SIZE) -> Page:
    """Slice one page out of ``records``. ``page`` is not clamped here."""

    records = list(records)
    total_pages = math.ceil(len(records) / page_size)
    start = (page - 1) * page_size
    items = records[start:start + page_size] if page >= 1 else []
    return Page(items=items, number=page, size=page_size, total=len(records), total_pages=total_pages)


def clamp_page(page: int, total_pages: int) -> int:
    return min(max(page, 1), max(total_pages, 1))


def run_query(records: Iterable[Any], query: AccountQuery) -> QueryResult:
    filtered = sort_accounts(
        (record for record in records if matches(record, query)),
        query.sort_field,
        query.sort_order,
    )
    return QueryResult(filtered=filtered, page=paginate(filtered, query.page, query.page_size))


def has_active_filters(query: AccountQuery) -> bool:
    return bool(query.search or query.start or query.end or query.status != STATUS_ALL)


def prune_selection(selected_ids: Iterable[Any], records: Iterable[Any]) -> List[Any]:
    """Keep only selected IDs that still belong to a record, in selection order."""

    present = {record.id for record in records}
    return [record_id for record_id in selected_ids if record_id in present]
