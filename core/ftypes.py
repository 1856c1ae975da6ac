# core/ftypes.py
# Maybe и Either: отсутствующие значения и восстановимые ошибки без исключений.

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
L = TypeVar("L")
R = TypeVar("R")


@dataclass(frozen=True)
class Maybe(Generic[T]):
    """
    Option-обёртка над значением, которого может не быть.
    Используется для поиска записи по id в текущей коллекции.
    """

    value: Optional[T]

    @staticmethod
    def first(items: Iterable[T], predicate: Callable[[T], bool]) -> "Maybe[T]":
        return Maybe(next((x for x in items if predicate(x)), None))

    def is_some(self) -> bool:
        return self.value is not None

    def get_or_else(self, default: U) -> T | U:
        return self.value if self.is_some() else default

    def __repr__(self) -> str:
        return f"Some({self.value})" if self.is_some() else "Nothing"


@dataclass(frozen=True)
class Either(Generic[L, R]):
    """
    Either<L, R>: Left - ошибка (например FetchFailure), Right - результат.
    Загрузка коллекций возвращает Either вместо проброса исключения наверх.
    """

    is_left: bool
    value: Union[L, R]

    @staticmethod
    def left(value: L) -> "Either[L, R]":
        return Either(True, value)

    @staticmethod
    def right(value: R) -> "Either[L, R]":
        return Either(False, value)

    @property
    def is_right(self) -> bool:
        return not self.is_left

    def fold(self, on_left: Callable[[L], U], on_right: Callable[[R], U]) -> U:
        return on_left(self.value) if self.is_left else on_right(self.value)  # type: ignore[arg-type]

    def __repr__(self) -> str:
        return f"Left({self.value})" if self.is_left else f"Right({self.value})"


def partition(results: Iterable[Either[L, R]]) -> Tuple[Tuple[L, ...], Tuple[R, ...]]:
    """Раскладывает результаты на (ошибки, значения) с сохранением порядка"""
    materialized = tuple(results)
    lefts = tuple(r.value for r in materialized if r.is_left)
    rights = tuple(r.value for r in materialized if r.is_right)
    return lefts, rights  # type: ignore[return-value]
