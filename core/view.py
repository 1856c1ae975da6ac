# core/view.py
# Сортировка и постраничный вывод отфильтрованной коллекции.

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Sequence, Tuple

from .domain import CommerceRecord
from .errors import InvalidFilterError
from .lazy import count_pages, iter_page

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Ключи сравнения: дата как момент времени, цена в центах, статус как строка
SORT_KEYS: Dict[str, Callable[[CommerceRecord], object]] = {
    "date": lambda r: r.created_at or _EPOCH,
    "price": lambda r: r.amount_minor,
    "status": lambda r: r.status_label,
}
SORT_ALIASES = {"createdAt": "date", "amount": "price"}
DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class Page:
    items: Tuple[CommerceRecord, ...]
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def sort_records(
    records: Iterable[CommerceRecord], key: str = "date", direction: str = "desc"
) -> Tuple[CommerceRecord, ...]:
    """
    Новая последовательность, упорядоченная по ключу.
    asc - стабильная сортировка (равные сохраняют входной порядок);
    desc - ровно разворот asc, чтобы sort(asc) == reverse(sort(desc)).
    """
    key = SORT_ALIASES.get(key, key)
    if key not in SORT_KEYS:
        raise InvalidFilterError(f"unknown sort key {key!r}")
    if direction not in DIRECTIONS:
        raise InvalidFilterError(f"unknown sort direction {direction!r}")

    ascending = tuple(sorted(records, key=SORT_KEYS[key]))
    return ascending if direction == "asc" else ascending[::-1]


def paginate(records: Sequence[CommerceRecord], page: int = 1, page_size: int = 10) -> Page:
    """Страницы с 1; номер за пределами диапазона прижимается к ближайшей странице"""
    if page_size < 1:
        raise InvalidFilterError("page_size must be positive")
    total = len(records)
    pages = count_pages(total, page_size)
    current = min(max(1, page), pages)
    return Page(
        items=tuple(iter_page(records, current, page_size)),
        page=current,
        page_size=page_size,
        total_items=total,
        total_pages=pages,
    )
