import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Tuple

from .domain import (
    MUTABLE_KINDS,
    STATUS_VOCABULARY,
    TERMINAL_STATUSES,
    CommerceRecord,
    RecordKind,
)
from .errors import EmptySelectionError, InvalidTransitionError
from .ftypes import Maybe

logger = logging.getLogger(__name__)

# (запись, статус) -> True, если бэкенд ответил success
Mutation = Callable[[CommerceRecord, str], Awaitable[bool]]
Refetch = Callable[[], Awaitable[object]]


class BulkOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass(frozen=True)
class BulkReport:
    target_status: str
    requested: int
    succeeded: int
    failed_ids: Tuple[str, ...] = ()
    rejected_ids: Tuple[str, ...] = ()

    @property
    def failed(self) -> int:
        return self.requested - self.succeeded

    @property
    def outcome(self) -> BulkOutcome:
        if self.requested > 0 and self.succeeded == self.requested:
            return BulkOutcome.SUCCESS
        if self.succeeded > 0:
            return BulkOutcome.PARTIAL
        return BulkOutcome.FAILURE

    @property
    def message(self) -> str:
        """Частичный успех никогда не выглядит как полный"""
        if self.outcome is BulkOutcome.SUCCESS:
            text = f"Successfully updated {self.succeeded} records to {self.target_status}"
        elif self.outcome is BulkOutcome.PARTIAL:
            text = f"Updated {self.succeeded} out of {self.requested} records to {self.target_status}"
        else:
            text = f"Failed to update records to {self.target_status}"
        if self.rejected_ids:
            text += f" ({len(self.rejected_ids)} not eligible)"
        return text


# ============ Проверки до отправки ============


def validate_target(kind: RecordKind, status: str) -> None:
    """Целевой статус должен входить в словарь вида; большего клиент не проверяет"""
    if kind not in MUTABLE_KINDS:
        raise InvalidTransitionError(f"{kind.value} records cannot be updated in bulk")
    if status not in STATUS_VOCABULARY[kind]:
        raise InvalidTransitionError(f"{status!r} is not a valid {kind.value} status")


def is_terminal(record: CommerceRecord) -> bool:
    return record.status in TERMINAL_STATUSES.get(record.kind, frozenset())


def select_eligible(
    records: Sequence[CommerceRecord], ids: Iterable[str], target_status: str
) -> Tuple[Tuple[CommerceRecord, ...], Tuple[str, ...]]:
    """
    Делит выбранные id на (подходящие записи, отклонённые id).
    Отклоняются неизвестные id и записи в терминальном статусе.
    """
    eligible, rejected = [], []
    for record_id in dict.fromkeys(ids):
        found = Maybe.first(records, lambda r: r.id == record_id)
        record = found.get_or_else(None)
        if record is None or is_terminal(record):
            rejected.append(record_id)
            continue
        validate_target(record.kind, target_status)
        eligible.append(record)
    return tuple(eligible), tuple(rejected)


# ============ Массовая смена статуса ============


async def _attempt(mutate: Mutation, record: CommerceRecord, status: str) -> bool:
    """Любой сбой транспорта (в т.ч. таймаут) считается неуспехом этой записи"""
    try:
        return bool(await mutate(record, status))
    except Exception as exc:
        logger.warning("status update for %s failed: %s", record.id, exc)
        return False


async def bulk_transition(
    records: Sequence[CommerceRecord],
    ids: Iterable[str],
    target_status: str,
    mutate: Mutation,
    refetch: Optional[Refetch] = None,
) -> BulkReport:
    """
    Отправляет по одному запросу на каждую подходящую запись параллельно,
    ждёт завершения всех (без отмены остальных при сбое) и сводит итог.
    После этого всегда вызывает refetch: отображаемое состояние берётся с бэкенда.
    """
    ids = tuple(ids)
    if not ids:
        raise EmptySelectionError("no records selected")

    eligible, rejected = select_eligible(records, ids, target_status)
    if rejected:
        logger.info("bulk %s: %d ids not eligible", target_status, len(rejected))

    results = await asyncio.gather(*(_attempt(mutate, r, target_status) for r in eligible))

    report = BulkReport(
        target_status=target_status,
        requested=len(eligible),
        succeeded=sum(1 for ok in results if ok),
        failed_ids=tuple(r.id for r, ok in zip(eligible, results) if not ok),
        rejected_ids=rejected,
    )
    logger.info(
        "bulk %s settled: %d/%d succeeded", target_status, report.succeeded, report.requested
    )

    if refetch is not None:
        await refetch()
    return report
