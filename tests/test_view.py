import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime, timedelta, timezone

import pytest

from core.domain import CommerceRecord, RecordKind
from core.errors import InvalidFilterError
from core.filters import FilterSpec
from core.money import AmountSource
from core.service import RecordView
from core.view import paginate, sort_records

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def rec(id, amount=0, day=0, status="pending"):
    return CommerceRecord(
        id=id,
        kind=RecordKind.PRODUCT_ORDER,
        title=id,
        category="Tax",
        display_type="ebook",
        amount_minor=amount,
        amount_source=AmountSource.MINOR,
        quantity=1,
        revenue=amount,
        created_at=BASE + timedelta(days=day),
        status=status,
    )


def test_sort_by_price_both_directions():
    rows = (rec("a", 300), rec("b", 100), rec("c", 200))
    assert [r.id for r in sort_records(rows, "price", "asc")] == ["b", "c", "a"]
    assert [r.id for r in sort_records(rows, "amount", "desc")] == ["a", "c", "b"]


def test_equal_keys_keep_input_order_ascending():
    rows = (rec("a", 100), rec("b", 100), rec("c", 50), rec("d", 100))
    assert [r.id for r in sort_records(rows, "price", "asc")] == ["c", "a", "b", "d"]


def test_desc_is_reverse_of_asc():
    rows = tuple(rec(str(i), amount=i % 3, day=i % 4, status=("pending", "completed")[i % 2])
                 for i in range(12))
    for key in ("date", "price", "status"):
        asc = sort_records(rows, key, "asc")
        desc = sort_records(rows, key, "desc")
        assert asc == desc[::-1]


def test_default_sort_is_newest_first():
    rows = (rec("old", day=1), rec("new", day=5), rec("mid", day=3))
    assert [r.id for r in sort_records(rows)] == ["new", "mid", "old"]


def test_sort_rejects_unknown_key_and_direction():
    with pytest.raises(InvalidFilterError):
        sort_records((), "title")
    with pytest.raises(InvalidFilterError):
        sort_records((), "date", "up")


def test_paginate_last_page_and_clamp():
    rows = tuple(rec(str(i)) for i in range(25))

    last = paginate(rows, page=3, page_size=10)
    assert last.total_pages == 3
    assert len(last.items) == 5
    assert last.has_previous and not last.has_next

    clamped = paginate(rows, page=99, page_size=10)
    assert clamped.page == 3
    assert paginate(rows, page=0, page_size=10).page == 1


def test_empty_collection_has_one_empty_page():
    page = paginate((), page=1, page_size=10)
    assert page.total_pages == 1
    assert page.items == ()
    assert page.total_items == 0


def test_record_view_filters_then_sorts_then_pages():
    rows = (
        rec("a", 100, status="completed"),
        rec("b", 500, status="pending"),
        rec("c", 300, status="completed"),
        rec("d", 200, status="completed"),
    )
    view = RecordView(rows)
    page = view.page(FilterSpec(status="completed"), "price", "desc", page=1, page_size=2)

    assert [r.id for r in page.items] == ["c", "d"]
    assert page.total_items == 3
    assert page.total_pages == 2
