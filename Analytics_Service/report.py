from dataclasses import dataclass, field
from functools import reduce
from typing import Callable, Dict, Iterable, Sequence, Tuple, TypeVar

from core.domain import CommerceRecord
from core.money import to_major_units

T = TypeVar("T")


# ============ Результаты агрегации ============


@dataclass(frozen=True)
class GroupRow:
    key: str
    count: int
    revenue: int  # центы


@dataclass(frozen=True)
class TrendRow:
    month: str  # YYYY-MM
    count: int
    revenue: int  # центы


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Все суммы в центах; доллары появляются только в as_dict()"""

    total_count: int
    total_revenue: int
    counts_by_status: Dict[str, int] = field(default_factory=dict)

    @property
    def average_value(self) -> float:
        """Средний чек в центах; 0 для пустой коллекции"""
        if self.total_count == 0:
            return 0.0
        return self.total_revenue / self.total_count

    def as_dict(self) -> dict:
        return {
            "totalCount": self.total_count,
            "totalRevenue": to_major_units(self.total_revenue),
            "averageValue": to_major_units(round(self.average_value)),
            "countsByStatus": dict(self.counts_by_status),
        }


# ============ Скаляры ============


def total_revenue(records: Iterable[CommerceRecord]) -> int:
    """Сумма выручки в центах через reduce; округлённые доллары не складываем"""
    return reduce(lambda acc, r: acc + r.revenue, records, 0)


def counts_by_status(records: Iterable[CommerceRecord]) -> Dict[str, int]:
    """Только реально встречающиеся статусы, без заполнения нулями"""

    def accumulate(acc: dict, r: CommerceRecord) -> dict:
        label = r.status_label or "unknown"
        return {**acc, label: acc.get(label, 0) + 1}

    return reduce(accumulate, records, {})


def statistics_snapshot(records: Sequence[CommerceRecord]) -> StatisticsSnapshot:
    return StatisticsSnapshot(
        total_count=len(records),
        total_revenue=total_revenue(records),
        counts_by_status=counts_by_status(records),
    )


def percentage_of_total(value: int, total: int) -> float:
    """value / total * 100; 0 при нулевом total"""
    if total == 0:
        return 0.0
    return value / total * 100


# ============ Группировки ============


def _category_key(r: CommerceRecord) -> Tuple[str, str]:
    # категории сливаются без учёта регистра, показываем первое написание
    return r.category.casefold(), r.category


GROUP_KEYS: Dict[str, Callable[[CommerceRecord], Tuple[str, str]]] = {
    "category": _category_key,
    "display_type": lambda r: (r.display_type, r.display_type),
    "status": lambda r: (r.status_label, r.status_label),
    "status_category": lambda r: (r.status_category, r.status_category),
    "kind": lambda r: (r.kind.value, r.kind.value),
    "role": lambda r: (r.role or "", r.role or ""),
}


def group_by(records: Iterable[CommerceRecord], key: str) -> Tuple[GroupRow, ...]:
    """
    Одна строка {key, count, revenue} на каждое встреченное значение,
    в порядке первого появления.
    """
    if key not in GROUP_KEYS:
        raise ValueError(f"unknown group key {key!r}")
    key_fn = GROUP_KEYS[key]

    def accumulate(acc: dict, r: CommerceRecord) -> dict:
        norm, label = key_fn(r)
        shown, count, revenue = acc.get(norm, (label, 0, 0))
        return {**acc, norm: (shown, count + 1, revenue + r.revenue)}

    groups = reduce(accumulate, records, {})
    return tuple(GroupRow(key=shown, count=c, revenue=rev) for shown, c, rev in groups.values())


def top_n(items: Iterable[T], n: int) -> Tuple[T, ...]:
    """
    Топ-N по выручке (записи или GroupRow). При равенстве выше тот,
    кто встретился раньше: sorted стабилен.
    """
    if n <= 0:
        return ()
    return tuple(sorted(items, key=lambda x: -x.revenue)[:n])


def revenue_shares(groups: Iterable[GroupRow], total: int) -> Tuple[Tuple[str, float], ...]:
    """Доля каждой группы в общей выручке, в процентах"""
    return tuple((g.key, percentage_of_total(g.revenue, total)) for g in groups)


# ============ Временные ряды ============


def monthly_trend(records: Iterable[CommerceRecord]) -> Tuple[TrendRow, ...]:
    """
    Корзины по календарному месяцу created_at (YYYY-MM), по возрастанию.
    Записи без даты в тренд не попадают.
    """

    def accumulate(acc: dict, r: CommerceRecord) -> dict:
        if r.created_at is None:
            return acc
        month = r.created_at.strftime("%Y-%m")
        count, revenue = acc.get(month, (0, 0))
        return {**acc, month: (count + 1, revenue + r.revenue)}

    buckets = reduce(accumulate, records, {})
    return tuple(
        TrendRow(month=m, count=c, revenue=rev) for m, (c, rev) in sorted(buckets.items())
    )


# ============ Композитный отчёт ============


def _group_dicts(rows: Iterable[GroupRow], total: int) -> list:
    return [
        {
            "key": g.key,
            "count": g.count,
            "revenue": to_major_units(g.revenue),
            "share": round(percentage_of_total(g.revenue, total), 2),
        }
        for g in rows
    ]


def dashboard_report(records: Sequence[CommerceRecord], k: int = 5) -> dict:
    """
    Полный отчёт для дашборда (композиция всех метрик).
    Граница вывода: центы переводятся в доллары один раз на каждую цифру.
    """
    snapshot = statistics_snapshot(records)
    total = snapshot.total_revenue
    by_category = group_by(records, "category")

    return {
        "summary": snapshot.as_dict(),
        "byCategory": _group_dicts(by_category, total),
        "byType": _group_dicts(group_by(records, "display_type"), total),
        "byStatusCategory": _group_dicts(group_by(records, "status_category"), total),
        "topCategories": _group_dicts(top_n(by_category, k), total),
        "topRecords": [
            {"id": r.id, "title": r.title, "revenue": to_major_units(r.revenue)}
            for r in top_n(records, k)
        ],
        "monthlyTrend": [
            {"month": t.month, "count": t.count, "revenue": to_major_units(t.revenue)}
            for t in monthly_trend(records)
        ],
    }
