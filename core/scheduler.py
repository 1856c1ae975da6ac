# core/scheduler.py
# Автообновление принадлежит вызывающему: движок сам ничего не планирует.

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Set

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class RefreshScheduler(Protocol):
    def start(self, job: Job) -> None: ...

    def stop(self) -> None: ...


class IntervalRefreshScheduler:
    """
    Каждые interval секунд запускает job отдельной задачей, не дожидаясь
    предыдущего запуска. Защиты от перекрытия нет: медленный ответ может
    прийти после более свежего, состояние берёт последний пришедший.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def start(self, job: Job) -> None:
        """Вызывать внутри работающего event loop; interval <= 0 отключает обновление"""
        if self.interval <= 0 or self.running:
            return
        self._ticker = asyncio.get_running_loop().create_task(self._tick(job))

    def stop(self) -> None:
        """Останавливает тикер; уже запущенные обновления дорабатывают до конца"""
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    async def _tick(self, job: Job) -> None:
        while True:
            await asyncio.sleep(self.interval)
            task = asyncio.create_task(self._run(job))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _run(self, job: Job) -> None:
        try:
            await job()
        except Exception:
            logger.exception("scheduled refresh failed")
