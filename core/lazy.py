from itertools import islice
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")


## ленивое окно страницы: не материализует коллекцию целиком
def iter_page(items: Iterable[T], page: int, page_size: int) -> Iterator[T]:
    start = (page - 1) * page_size
    yield from islice(items, start, start + page_size)


## количество страниц; у пустой коллекции одна пустая страница
def count_pages(total: int, page_size: int) -> int:
    return max(1, -(-total // page_size))
