# core/filters.py
# Предикаты-замыкания над CommerceRecord и их И-композиция.

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Mapping, Optional, Tuple

from .compose import all_of
from .domain import CommerceRecord
from .errors import InvalidFilterError

ALL = "all"
DATE_PRESETS = ("all", "today", "week", "month")

# Окна скользящие, от текущего момента, без выравнивания по календарю
ROLLING_WINDOWS = {
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}

# Пресеты суммы с экрана платежей (в долларах)
AMOUNT_PRESETS = {
    "all": (None, None),
    "under50": (None, 49.99),
    "50to100": (50.0, 100.0),
    "over100": (100.01, None),
}

Predicate = Callable[[CommerceRecord], bool]


@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class FilterSpec:
    """Набор критериев; значение 'all'/None означает 'без ограничения'"""

    search: str = ""
    status: str = ALL
    category: str = ALL
    item_type: str = ALL
    date_preset: str = ALL
    price_range: PriceRange = PriceRange()
    role: str = ALL

    def __post_init__(self):
        if self.date_preset not in DATE_PRESETS:
            raise InvalidFilterError(f"unknown date preset {self.date_preset!r}")

    @staticmethod
    def from_mapping(raw: Optional[Mapping]) -> "FilterSpec":
        """
        Разбирает плоскую структуру от UI/CLI:
        {search, status, category, itemType, dateRange: {preset}, priceRange: {min, max}, role}
        Любой ключ можно опустить.
        """
        raw = raw or {}
        date_range = raw.get("dateRange") or {}
        price_range = raw.get("priceRange") or {}
        if not isinstance(date_range, Mapping) or not isinstance(price_range, Mapping):
            raise InvalidFilterError("dateRange and priceRange must be objects")

        return FilterSpec(
            search=str(raw.get("search") or ""),
            status=str(raw.get("status") or ALL),
            category=str(raw.get("category") or ALL),
            item_type=str(raw.get("itemType") or ALL),
            date_preset=str(date_range.get("preset") or ALL),
            price_range=PriceRange(
                min=_bound(price_range.get("min"), "min"),
                max=_bound(price_range.get("max"), "max"),
            ),
            role=str(raw.get("role") or ALL),
        )


def _bound(value, name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidFilterError(f"priceRange.{name} must be a number, got {value!r}") from None


def price_range_preset(name: str) -> PriceRange:
    """'under50' | '50to100' | 'over100' | 'all' -> PriceRange"""
    if name not in AMOUNT_PRESETS:
        raise InvalidFilterError(f"unknown amount preset {name!r}")
    low, high = AMOUNT_PRESETS[name]
    return PriceRange(min=low, max=high)


# ============ Замыкания-фильтры (HOF) ============


def by_search(query: str) -> Predicate:
    """Подстрока в заранее собранном searchable_text"""
    needle = query.lower()
    return lambda r: needle in r.searchable_text


def by_status(status: str) -> Predicate:
    return lambda r: r.status_label == status


def by_category(category: str) -> Predicate:
    """Категория сравнивается без учёта регистра"""
    wanted = category.casefold()
    return lambda r: r.category.casefold() == wanted


def by_item_type(item_type: str) -> Predicate:
    return lambda r: r.display_type == item_type


def by_role(role: str) -> Predicate:
    return lambda r: r.role == role


def by_price_range(low: Optional[float], high: Optional[float]) -> Predicate:
    """Границы включительные, в долларах; сравниваем amount_minor / 100"""

    def predicate(r: CommerceRecord) -> bool:
        price = r.amount_minor / 100
        if low is not None and price < low:
            return False
        if high is not None and price > high:
            return False
        return True

    return predicate


def by_date_preset(preset: str, now: datetime) -> Predicate:
    """
    today - тот же календарный день, что и now (в локальной таймзоне now);
    week/month - последние 7x24 / 30x24 часа.
    Запись без даты проходит только пресет 'all'.
    """
    if now.tzinfo is None:
        now = now.astimezone()
    if preset == "today":
        today = now.date()
        zone = now.tzinfo
        return lambda r: (
            r.created_at is not None and r.created_at.astimezone(zone).date() == today
        )

    since = now - ROLLING_WINDOWS[preset]
    return lambda r: r.created_at is not None and r.created_at >= since


def build_predicates(spec: FilterSpec, now: datetime) -> Tuple[Predicate, ...]:
    """Только активные критерии; 'all' и пустые значения не порождают предикат"""
    predicates = []
    if spec.search:
        predicates.append(by_search(spec.search))
    if spec.status != ALL:
        predicates.append(by_status(spec.status))
    if spec.category != ALL:
        predicates.append(by_category(spec.category))
    if spec.item_type != ALL:
        predicates.append(by_item_type(spec.item_type))
    if spec.role != ALL:
        predicates.append(by_role(spec.role))
    if spec.date_preset != ALL:
        predicates.append(by_date_preset(spec.date_preset, now))
    if spec.price_range.min is not None or spec.price_range.max is not None:
        predicates.append(by_price_range(spec.price_range.min, spec.price_range.max))
    return tuple(predicates)


def filter_records(
    records: Iterable[CommerceRecord],
    spec: Optional[FilterSpec] = None,
    now: Optional[datetime] = None,
) -> Tuple[CommerceRecord, ...]:
    """
    Подпоследовательность записей, удовлетворяющих всем критериям (И).
    Порядок сохраняется, вход не меняется. now по умолчанию - текущий момент.
    """
    spec = spec or FilterSpec()
    now = now or datetime.now(timezone.utc).astimezone()
    return tuple(filter(all_of(*build_predicates(spec, now)), records))
