from dataclasses import dataclass
from functools import reduce
from typing import Callable, Tuple
import uuid
from datetime import datetime

from .async_ops import BulkOutcome, BulkReport
from .domain import Event, RecordKind
from .normalize import NormalizedBatch


@dataclass(frozen=True)
class Notice:
    """Сообщение для оператора: success | warning | error"""

    level: str
    message: str
    ts: str


@dataclass(frozen=True)
class EventBus:
    """
    Иммутабельная шина событий консоли.
    Подписчики - чистые функции: (Event, State) -> State
    """

    subscribers: Tuple[Tuple[str, Callable], ...] = ()

    def subscribe(
        self, event_name: str, handler: Callable[[Event, dict], dict]
    ) -> "EventBus":
        """Возвращает новую шину с добавленным подписчиком"""
        return EventBus(subscribers=self.subscribers + ((event_name, handler),))

    def publish(self, event: Event, state: dict) -> dict:
        """Применяет подходящих подписчиков по очереди (fold), возвращает новое состояние"""
        matching_handlers = tuple(
            handler for name, handler in self.subscribers if name == event.name
        )
        return reduce(lambda current, handler: handler(event, current), matching_handlers, state)


# ============ Конструкторы событий ============


def create_event(name: str, payload: dict) -> Event:
    """Событие с автоматической меткой времени"""
    return Event(
        id=str(uuid.uuid4()),
        ts=datetime.now().isoformat(),
        name=name,
        payload=payload,
    )


def _notify(state: dict, event: Event, level: str, message: str) -> dict:
    notice = Notice(level=level, message=message, ts=event.ts)
    return {
        **state,
        "notices": state.get("notices", ()) + (notice,),
        "last_event": event.name,
    }


# ============ Чистые обработчики ============


def handle_fetch_succeeded(event: Event, state: dict) -> dict:
    """
    Новая коллекция целиком заменяет прежнюю: побеждает последний ответ,
    старые записи не патчатся.
    """
    batch: NormalizedBatch = event.payload["batch"]
    new_state = {
        **state,
        "records": batch.records,
        "warnings": batch.warnings,
        "fetched_at": event.ts,
    }
    new_state = _notify(new_state, event, "success", f"Loaded {len(batch.records)} records")
    if batch.warnings:
        new_state = _notify(
            new_state,
            event,
            "warning",
            f"Skipped {len(batch.warnings)} malformed records",
        )
    return new_state


def handle_fetch_failed(event: Event, state: dict) -> dict:
    """Пустой результат + ошибка; частичные данные в состояние не попадают"""
    new_state = {**state, "records": (), "warnings": ()}
    return _notify(new_state, event, "error", event.payload.get("message", "Fetch failed"))


def handle_bulk_settled(event: Event, state: dict) -> dict:
    report: BulkReport = event.payload["report"]
    level = {
        BulkOutcome.SUCCESS: "success",
        BulkOutcome.PARTIAL: "warning",
        BulkOutcome.FAILURE: "error",
    }[report.outcome]
    return _notify({**state, "last_bulk": report}, event, level, report.message)


def handle_export_done(event: Event, state: dict) -> dict:
    return _notify(state, event, "success", f"Exported {event.payload.get('filename', 'data')}")


def handle_export_failed(event: Event, state: dict) -> dict:
    return _notify(state, event, "error", event.payload.get("message", "Export failed"))


def create_console_bus() -> EventBus:
    """Предконфигурированная шина админ-консоли"""
    bus = EventBus()
    bus = bus.subscribe("FETCH_SUCCEEDED", handle_fetch_succeeded)
    bus = bus.subscribe("FETCH_FAILED", handle_fetch_failed)
    bus = bus.subscribe("BULK_SETTLED", handle_bulk_settled)
    bus = bus.subscribe("EXPORT_DONE", handle_export_done)
    bus = bus.subscribe("EXPORT_FAILED", handle_export_failed)
    return bus


def initial_state(kind: RecordKind) -> dict:
    """Начальное состояние экрана одного вида записей"""
    return {
        "kind": RecordKind(kind),
        "records": (),
        "warnings": (),
        "notices": (),
        "fetched_at": None,
        "last_bulk": None,
        "last_event": None,
    }


def apply_events(bus: EventBus, events: Tuple[Event, ...], state: dict) -> dict:
    """(events, initial_state) -> final_state"""
    return reduce(lambda s, e: bus.publish(e, s), events, state)
