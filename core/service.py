import logging
from datetime import date, datetime
from typing import Iterable, Optional, Tuple

from Analytics_Service.report import StatisticsSnapshot, dashboard_report, statistics_snapshot
from .async_ops import BulkReport, bulk_transition
from .client import AdminApiClient
from .compose import pipe
from .domain import CommerceRecord, RecordKind
from .errors import ExportFailure, FetchFailure
from .export import export_filename, export_records
from .filters import FilterSpec, filter_records
from .frp import EventBus, create_console_bus, create_event, initial_state
from .ftypes import Either
from .normalize import NormalizedBatch, normalize_batch
from .scheduler import RefreshScheduler
from .view import Page, paginate, sort_records

logger = logging.getLogger(__name__)


class RecordView:
    """Фасад над неизменяемым снимком коллекции: фильтр, сортировка, страницы, статистика"""

    def __init__(self, records: Iterable[CommerceRecord]):
        self.records = tuple(records)

    def filtered(self, spec: Optional[FilterSpec] = None, now: Optional[datetime] = None):
        return filter_records(self.records, spec, now)

    def ordered(
        self,
        spec: Optional[FilterSpec] = None,
        sort_key: str = "date",
        direction: str = "desc",
        now: Optional[datetime] = None,
    ) -> Tuple[CommerceRecord, ...]:
        """Фильтр -> сортировка, через композицию"""
        pipeline = pipe(
            lambda records: filter_records(records, spec, now),
            lambda records: sort_records(records, sort_key, direction),
        )
        return pipeline(self.records)

    def page(
        self,
        spec: Optional[FilterSpec] = None,
        sort_key: str = "date",
        direction: str = "desc",
        page: int = 1,
        page_size: int = 10,
        now: Optional[datetime] = None,
    ) -> Page:
        return paginate(self.ordered(spec, sort_key, direction, now), page, page_size)

    def statistics(
        self, spec: Optional[FilterSpec] = None, now: Optional[datetime] = None
    ) -> StatisticsSnapshot:
        return statistics_snapshot(self.filtered(spec, now))

    def report(self, spec: Optional[FilterSpec] = None, now: Optional[datetime] = None) -> dict:
        return dashboard_report(self.filtered(spec, now))

    def export(
        self,
        fmt: str,
        kind: RecordKind,
        spec: Optional[FilterSpec] = None,
        sort_key: str = "date",
        direction: str = "desc",
    ) -> bytes:
        """Выгрузка ровно того, что видно в таблице (все страницы)"""
        return export_records(self.ordered(spec, sort_key, direction), fmt, kind)


class ConsoleService:
    """
    Экран одного вида записей: держит последнюю загруженную коллекцию
    (единственное изменяемое состояние) и прогоняет события через шину.
    """

    def __init__(
        self,
        client: AdminApiClient,
        kind: RecordKind,
        bus: Optional[EventBus] = None,
    ):
        self.client = client
        self.kind = RecordKind(kind)
        self.bus = bus or create_console_bus()
        self.state = initial_state(self.kind)

    def _publish(self, name: str, payload: dict) -> None:
        self.state = self.bus.publish(create_event(name, payload), self.state)

    @property
    def records(self) -> Tuple[CommerceRecord, ...]:
        return self.state["records"]

    def view(self) -> RecordView:
        return RecordView(self.records)

    async def refresh(self) -> Either[FetchFailure, NormalizedBatch]:
        """fetch -> normalize; при сбое коллекция становится пустой, ошибка в notices"""
        try:
            raw = await self.client.fetch(self.kind)
        except FetchFailure as exc:
            logger.error("fetch %s failed: %s", self.kind.value, exc.message)
            self._publish("FETCH_FAILED", {"message": str(exc)})
            return Either.left(exc)

        batch = normalize_batch(raw, self.kind)
        self._publish("FETCH_SUCCEEDED", {"batch": batch})
        return Either.right(batch)

    async def bulk_update(self, ids: Iterable[str], status: str) -> BulkReport:
        """Массовая смена статуса; после неё всегда полная перезагрузка"""
        report = await bulk_transition(
            self.records, ids, status, self.client.update_status, refetch=self.refresh
        )
        self._publish("BULK_SETTLED", {"report": report})
        return report

    def export(
        self,
        fmt: str,
        spec: Optional[FilterSpec] = None,
        sort_key: str = "date",
        direction: str = "desc",
        today: Optional[date] = None,
    ) -> Either[ExportFailure, Tuple[str, bytes]]:
        """(имя файла, байты) текущего отфильтрованного и отсортированного вида"""
        filename = export_filename(self.kind, fmt, today or date.today())
        try:
            content = self.view().export(fmt, self.kind, spec, sort_key, direction)
        except ExportFailure as exc:
            self._publish("EXPORT_FAILED", {"message": str(exc)})
            return Either.left(exc)
        self._publish("EXPORT_DONE", {"filename": filename})
        return Either.right((filename, content))

    def start_auto_refresh(self, scheduler: RefreshScheduler) -> None:
        scheduler.start(self.refresh)
