from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from query import (
    AccountQuery,
    clamp_page,
    has_active_filters,
    page_window,
    paginate,
    prune_selection,
    run_query,
    sort_accounts,
)


def record(id, **fields):
    values = {
        "supplier": "Acme",
        "title": "Rent",
        "company": "Main Co",
        "status": "PENDING",
        "amount": Decimal("10.00"),
        "due_date": date(2024, 1, 10),
        "movement_date": date(2024, 1, 1),
    }
    values.update(fields)
    return SimpleNamespace(id=id, **values)


def test_search_is_case_insensitive_over_text_fields():
    records = [
        record(1, supplier="Energy Co"),
        record(2, title="Monthly ENERGY bill"),
        record(3, company="energy holdings"),
        record(4),
    ]
    result = run_query(records, AccountQuery(search="energy"))
    assert [r.id for r in result.filtered] == [1, 2, 3]


def test_hide_paid_wins_over_status_filter():
    records = [record(1, status="PAID"), record(2, status="PENDING")]
    assert run_query(records, AccountQuery(status="PAID", hide_paid=True)).filtered == []
    assert [r.id for r in run_query(records, AccountQuery(hide_paid=True)).filtered] == [2]


def test_date_range_is_inclusive_on_chosen_field():
    records = [
        record(1, due_date=date(2024, 1, 1)),
        record(2, due_date=date(2024, 1, 15)),
        record(3, due_date=date(2024, 1, 31)),
        record(4, due_date=date(2024, 2, 1)),
    ]
    query = AccountQuery(start=date(2024, 1, 1), end=date(2024, 1, 31))
    assert [r.id for r in run_query(records, query).filtered] == [1, 2, 3]

    by_movement = AccountQuery(date_field="movement_date", start=date(2024, 1, 2))
    assert run_query(records, by_movement).filtered == []


def test_sort_is_stable_and_numeric_for_amounts():
    records = [
        record(1, amount=Decimal("9.00")),
        record(2, amount=Decimal("100.00")),
        record(3, amount=Decimal("9.00")),
    ]
    assert [r.id for r in sort_accounts(records, "amount", "asc")] == [1, 3, 2]
    assert [r.id for r in sort_accounts(records, "amount", "desc")][0] == 2


def test_query_is_deterministic_and_does_not_mutate():
    records = [record(i, due_date=date(2024, 1, 20 - i)) for i in range(1, 6)]
    before = [r.id for r in records]
    first = run_query(records, AccountQuery())
    second = run_query(records, AccountQuery())
    assert [r.id for r in first.filtered] == [r.id for r in second.filtered] == [5, 4, 3, 2, 1]
    assert [r.id for r in records] == before


def test_pagination_pages_and_bounds():
    records = [record(i) for i in range(1, 32)]
    page = paginate(records, 3)
    assert page.total_pages == 3
    assert [r.id for r in page.items] == [31]
    assert page.has_previous and not page.has_next

    assert paginate(records, 4).items == []
    assert paginate([], 1).total_pages == 0
    assert paginate([], 1).empty


def test_clamp_page():
    assert clamp_page(5, 3) == 3
    assert clamp_page(0, 3) == 1
    assert clamp_page(2, 0) == 1


def test_page_window_slides():
    assert page_window(1, 3) == [1, 2, 3]
    assert page_window(1, 10) == [1, 2, 3, 4, 5]
    assert page_window(6, 10) == [4, 5, 6, 7, 8]
    assert page_window(10, 10) == [6, 7, 8, 9, 10]
    assert page_window(1, 0) == []


def test_from_params_normalizes_input():
    query = AccountQuery.from_params(
        search="  acme ",
        date_field="bogus",
        start="2024-01-01",
        end="not a date",
        status="paid",
        sort_field="drop table",
        sort_order="sideways",
        page=-3,
    )
    assert query.search == "acme"
    assert query.date_field == "due_date"
    assert query.start == date(2024, 1, 1)
    assert query.end is None
    assert query.status == "PAID"
    assert query.sort_field == "due_date"
    assert query.sort_order == "asc"
    assert query.page == 1


def test_toggled_sort():
    query = AccountQuery(sort_field="amount", sort_order="asc")
    assert query.toggled_sort("amount") == ("amount", "desc")
    assert query.toggled_sort("supplier") == ("supplier", "asc")


def test_has_active_filters_ignores_hide_paid():
    assert not has_active_filters(AccountQuery(hide_paid=True))
    assert has_active_filters(AccountQuery(search="x"))
    assert has_active_filters(AccountQuery(status="PENDING"))
    assert has_active_filters(AccountQuery(end=date(2024, 1, 1)))


def test_prune_selection_keeps_order_of_present_ids():
    records = [record(1), record(2), record(3)]
    assert prune_selection([3, 9, 1], records) == [3, 1]


def test_sixteen_records_make_two_pages():
    records = [record(i) for i in range(1, 17)]
    result = run_query(records, AccountQuery(page=1))
    assert result.page.total_pages == 2
    assert [r.id for r in result.page.items] == list(range(1, 16))

    second = run_query(records, AccountQuery(page=2)).page
    assert [r.id for r in second.items] == [16]
    assert second.total_pages == 2
    assert not second.has_next
