import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from datetime import datetime, timezone

import pytest

from core.domain import CommerceRecord, OwnerRef, RecordKind
from core.errors import InvalidFilterError
from core.filters import (
    FilterSpec,
    PriceRange,
    by_date_preset,
    filter_records,
    price_range_preset,
)
from core.money import AmountSource

NOW = datetime(2024, 1, 20, 12, 0, tzinfo=timezone.utc)


def rec(id, status="completed", category="Tax", display_type="service", amount=1000,
        created_at=NOW, email="a@x.io", kind=RecordKind.SERVICE_ORDER, **extra):
    return CommerceRecord(
        id=id,
        kind=kind,
        title=f"Item {id}",
        category=category,
        display_type=display_type,
        amount_minor=amount,
        amount_source=AmountSource.MINOR,
        quantity=1,
        revenue=amount,
        created_at=created_at,
        status=status,
        owner=OwnerRef(id=None, name="", email=email),
        searchable_text=f"item {id}\n{email}".lower(),
        **extra,
    )


@pytest.fixture
def records():
    return (
        rec("r1", status="completed", amount=1999),
        rec("r2", status="pending", amount=500),
        rec("r3", status="completed", category="Legal", display_type="ebook", email="Bob@Corp.com"),
        rec("r4", status="cancelled", amount=10001),
    )


def test_status_filter(records):
    result = filter_records(records, FilterSpec(status="completed"), now=NOW)
    assert [r.id for r in result] == ["r1", "r3"]


def test_empty_spec_keeps_everything_in_order(records):
    assert filter_records(records, FilterSpec(), now=NOW) == records
    assert filter_records((), FilterSpec(status="completed"), now=NOW) == ()


def test_search_is_case_insensitive(records):
    result = filter_records(records, FilterSpec(search="BOB@corp"), now=NOW)
    assert [r.id for r in result] == ["r3"]


def test_search_query_is_matched_as_typed(records):
    """Пробелы в запросе значимы: ищется ровно введённая подстрока"""
    assert filter_records(records, FilterSpec(search=" bob"), now=NOW) == ()
    assert [r.id for r in filter_records(records, FilterSpec(search="ITEM R"), now=NOW)] == [
        "r1", "r2", "r3", "r4",
    ]
    assert filter_records(records, FilterSpec(search=""), now=NOW) == records


def test_category_ignores_case(records):
    result = filter_records(records, FilterSpec(category="legal"), now=NOW)
    assert [r.id for r in result] == ["r3"]


def test_item_type_uses_display_type(records):
    result = filter_records(records, FilterSpec(item_type="ebook"), now=NOW)
    assert [r.id for r in result] == ["r3"]


def test_price_range_bounds_are_inclusive(records):
    spec = FilterSpec(price_range=PriceRange(min=5.0, max=19.99))
    result = filter_records(records, spec, now=NOW)
    assert [r.id for r in result] == ["r1", "r2", "r3"]


def test_filters_compose_as_and(records):
    """Фильтр по A, затем по B == фильтр по A и B сразу"""
    a = FilterSpec(status="completed")
    b = FilterSpec(category="Tax")
    both = FilterSpec(status="completed", category="Tax")

    staged = filter_records(filter_records(records, a, now=NOW), b, now=NOW)
    assert staged == filter_records(records, both, now=NOW)
    assert [r.id for r in staged] == ["r1"]


def test_filter_does_not_mutate_input(records):
    snapshot = tuple(records)
    filter_records(records, FilterSpec(status="pending"), now=NOW)
    assert records == snapshot


def test_date_presets_use_injected_now():
    rows = (
        rec("today", created_at=datetime(2024, 1, 20, 8, tzinfo=timezone.utc)),
        rec("yesterday", created_at=datetime(2024, 1, 19, 23, tzinfo=timezone.utc)),
        rec("six_days", created_at=datetime(2024, 1, 14, 12, tzinfo=timezone.utc)),
        rec("ten_days", created_at=datetime(2024, 1, 10, tzinfo=timezone.utc)),
        rec("old", created_at=datetime(2023, 12, 1, tzinfo=timezone.utc)),
        rec("undated", created_at=None),
    )

    def ids(preset):
        return [r.id for r in filter_records(rows, FilterSpec(date_preset=preset), now=NOW)]

    assert ids("today") == ["today"]
    assert ids("week") == ["today", "yesterday", "six_days"]
    assert ids("month") == ["today", "yesterday", "six_days", "ten_days"]
    assert ids("all") == [r.id for r in rows]


def test_week_window_is_rolling():
    """Ровно 7x24 часа назад ещё входит, секундой раньше уже нет"""
    predicate = by_date_preset("week", NOW)
    edge = rec("edge", created_at=datetime(2024, 1, 13, 12, tzinfo=timezone.utc))
    before = rec("before", created_at=datetime(2024, 1, 13, 11, 59, 59, tzinfo=timezone.utc))
    assert predicate(edge)
    assert not predicate(before)


def test_unknown_date_preset_rejected():
    with pytest.raises(InvalidFilterError):
        FilterSpec(date_preset="year")


def test_from_mapping_reads_nested_keys():
    spec = FilterSpec.from_mapping(
        {
            "search": "tax",
            "status": "pending",
            "itemType": "ebook",
            "dateRange": {"preset": "week"},
            "priceRange": {"min": "10", "max": 20},
        }
    )
    assert spec.search == "tax"
    assert spec.item_type == "ebook"
    assert spec.date_preset == "week"
    assert spec.price_range == PriceRange(min=10.0, max=20.0)
    assert spec.category == "all"
    assert FilterSpec.from_mapping(None) == FilterSpec()


def test_from_mapping_rejects_bad_values():
    with pytest.raises(InvalidFilterError):
        FilterSpec.from_mapping({"priceRange": {"min": "cheap"}})
    with pytest.raises(InvalidFilterError):
        FilterSpec.from_mapping({"dateRange": "week"})


def test_amount_presets():
    assert price_range_preset("under50") == PriceRange(max=49.99)
    assert price_range_preset("over100") == PriceRange(min=100.01)
    with pytest.raises(InvalidFilterError):
        price_range_preset("huge")


def test_users_filter_by_state_and_role():
    users = (
        rec("u1", status=None, kind=RecordKind.USER, active=True, role="admin"),
        rec("u2", status=None, kind=RecordKind.USER, active=False, role="user"),
        rec("u3", status=None, kind=RecordKind.USER, active=True, role="user"),
    )
    active = filter_records(users, FilterSpec(status="active"), now=NOW)
    admins = filter_records(users, FilterSpec(role="admin"), now=NOW)

    assert [u.id for u in active] == ["u1", "u3"]
    assert [u.id for u in admins] == ["u1"]
