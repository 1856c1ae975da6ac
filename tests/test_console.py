import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import asyncio
import json
from datetime import date

import httpx
import pytest

from core.client import AdminApiClient
from core.config import Settings
from core.domain import RecordKind
from core.errors import ExportFailure, FetchFailure
from core.filters import FilterSpec
from core.frp import apply_events, create_console_bus, create_event, initial_state
from core.normalize import NormalizedBatch, normalize_batch
from core.scheduler import IntervalRefreshScheduler
from core.service import ConsoleService

SETTINGS = Settings(api_url="http://test/api", refresh_interval=0)


class OrdersApi:
    """Поддельный бэкенд заказов услуг поверх httpx.MockTransport"""

    def __init__(self, orders, failing=(), down=False):
        self.orders = {o["_id"]: dict(o) for o in orders}
        self.failing = set(failing)
        self.down = down
        self.gets = 0

    def __call__(self, request):
        if request.method == "GET":
            self.gets += 1
            if self.down:
                return httpx.Response(503)
            data = {"orders": list(self.orders.values())}
            return httpx.Response(200, json={"success": True, "data": data})

        order_id = request.url.path.split("/")[-2]
        if order_id in self.failing:
            return httpx.Response(500, json={"success": False, "error": "boom"})
        self.orders[order_id]["status"] = json.loads(request.content)["status"]
        return httpx.Response(200, json={"success": True, "data": self.orders[order_id]})


def order(id, status="pending", price=1000, created="2024-01-05T10:00:00Z"):
    return {"_id": id, "status": status, "price": price, "createdAt": created,
            "serviceDetails": {"title": f"Service {id}", "category": "Tax"}}


def service_for(api):
    client = AdminApiClient(SETTINGS, transport=httpx.MockTransport(api))
    return client, ConsoleService(client, RecordKind.SERVICE_ORDER)


@pytest.mark.asyncio
async def test_refresh_loads_records_and_reports_skips():
    api = OrdersApi([order("a"), order("b")])
    api.orders["broken"] = {"status": "pending"}
    client, service = service_for(api)

    async with client:
        result = await service.refresh()

    assert result.is_right
    assert [r.id for r in service.records] == ["a", "b"]
    assert len(service.state["warnings"]) == 1
    levels = [n.level for n in service.state["notices"]]
    assert levels == ["success", "warning"]
    assert service.state["fetched_at"] is not None


@pytest.mark.asyncio
async def test_failed_refresh_clears_records():
    api = OrdersApi([order("a")])
    client, service = service_for(api)

    async with client:
        await service.refresh()
        api.down = True
        result = await service.refresh()

    assert result.is_left
    assert isinstance(result.value, FetchFailure)
    assert result.fold(lambda exc: exc.message, lambda batch: "") == "HTTP 503"
    assert service.records == ()
    assert service.state["notices"][-1].level == "error"


@pytest.mark.asyncio
async def test_bulk_update_refetches_backend_state():
    api = OrdersApi([order("a"), order("b"), order("c")], failing={"b"})
    client, service = service_for(api)

    async with client:
        await service.refresh()
        report = await service.bulk_update(["a", "b", "c"], "completed")

    assert (report.requested, report.succeeded, report.failed) == (3, 2, 1)
    assert api.gets == 2
    assert {r.id: r.status for r in service.records} == {
        "a": "completed",
        "b": "pending",
        "c": "completed",
    }
    notice = service.state["notices"][-1]
    assert notice.level == "warning"
    assert notice.message == "Updated 2 out of 3 records to completed"
    assert service.state["last_bulk"] is report


@pytest.mark.asyncio
async def test_export_current_view():
    api = OrdersApi([order("a", status="completed", price=1999), order("b")])
    client, service = service_for(api)

    async with client:
        await service.refresh()

    result = service.export("csv", FilterSpec(status="completed"), today=date(2024, 1, 5))
    filename, content = result.value
    assert filename == "orders-2024-01-05.csv"
    assert content.decode().splitlines()[1].startswith("service,,,Service a,Tax,19.99,1,19.99")
    assert service.state["last_event"] == "EXPORT_DONE"

    failed = service.export("pdf")
    assert failed.is_left
    assert isinstance(failed.value, ExportFailure)
    assert service.state["notices"][-1].level == "error"


@pytest.mark.asyncio
async def test_export_reports_into_restored_screen_state():
    """Экран восстанавливает сохранённое состояние, выгружает и получает уведомление"""
    api = OrdersApi([order("a", status="completed")])
    client, first = service_for(api)
    async with client:
        await first.refresh()
    saved = first.state

    client, service = service_for(api)
    async with client:
        service.state = saved
        result = service.export("json", today=date(2024, 3, 1))

    assert result.fold(lambda exc: None, lambda ready: ready[0]) == "orders-2024-03-01.json"
    notice = service.state["notices"][-1]
    assert (notice.level, notice.message) == ("success", "Exported orders-2024-03-01.json")
    assert saved["notices"][-1].level == "success"
    assert len(service.state["notices"]) == len(saved["notices"]) + 1


def test_last_fetch_wins():
    bus = create_console_bus()
    first = normalize_batch([order("old")], RecordKind.SERVICE_ORDER)
    second = NormalizedBatch(records=normalize_batch([order("new")], RecordKind.SERVICE_ORDER).records)
    events = (
        create_event("FETCH_SUCCEEDED", {"batch": first}),
        create_event("FETCH_SUCCEEDED", {"batch": second}),
    )

    state = apply_events(bus, events, initial_state(RecordKind.SERVICE_ORDER))
    assert [r.id for r in state["records"]] == ["new"]
    assert len(state["notices"]) == 2


def test_unknown_event_leaves_state_untouched():
    state = initial_state(RecordKind.PAYMENT)
    assert create_console_bus().publish(create_event("NOPE", {}), state) is state


@pytest.mark.asyncio
async def test_scheduler_repeats_until_stopped():
    runs = []

    async def job():
        runs.append(1)

    scheduler = IntervalRefreshScheduler(0.01)
    scheduler.start(job)
    assert scheduler.running
    await asyncio.sleep(0.06)
    scheduler.stop()
    await asyncio.sleep(0.02)
    count = len(runs)
    await asyncio.sleep(0.03)

    assert count >= 2
    assert len(runs) == count
    assert not scheduler.running


@pytest.mark.asyncio
async def test_scheduler_does_not_wait_for_slow_refresh():
    active = []
    peak = []

    async def slow_job():
        active.append(1)
        peak.append(len(active))
        await asyncio.sleep(0.05)
        active.pop()

    scheduler = IntervalRefreshScheduler(0.01)
    scheduler.start(slow_job)
    await asyncio.sleep(0.04)
    scheduler.stop()
    await asyncio.sleep(0.06)

    assert max(peak) > 1


@pytest.mark.asyncio
async def test_zero_interval_disables_refresh():
    runs = []

    async def job():
        runs.append(1)

    scheduler = IntervalRefreshScheduler(0)
    scheduler.start(job)
    await asyncio.sleep(0.02)
    assert runs == []
    assert not scheduler.running


@pytest.mark.asyncio
async def test_failing_scheduled_job_keeps_ticking():
    runs = []

    async def job():
        runs.append(1)
        raise RuntimeError("backend down")

    scheduler = IntervalRefreshScheduler(0.01)
    scheduler.start(job)
    await asyncio.sleep(0.05)
    scheduler.stop()
    assert len(runs) >= 2
