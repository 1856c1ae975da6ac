# core/client.py
# Асинхронный клиент REST API админки поверх httpx.

import logging
from typing import Optional

import httpx

from .config import Settings
from .domain import ORDER_KINDS, CommerceRecord, RecordKind
from .errors import FetchFailure, MutationFailure
from .normalize import extract_items

logger = logging.getLogger(__name__)

FETCH_PATHS = {
    RecordKind.SERVICE_ORDER: "/admin/purchases/orders/services",
    RecordKind.PRODUCT_ORDER: "/admin/purchases/orders/products",
    RecordKind.PAYMENT: "/admin/payments",
    RecordKind.USER: "/admin/users",
    RecordKind.WEBINAR: "/webinars/admin/all",
    RecordKind.CATALOG_PRODUCT: "/products/admin/all",
}


def status_update_request(record: CommerceRecord, status: str):
    """(путь, тело) запроса смены статуса; пакетного эндпоинта у бэкенда нет"""
    if record.kind in ORDER_KINDS:
        return f"/admin/purchases/{record.id}/status", {"status": status}
    if record.kind is RecordKind.PAYMENT:
        return f"/admin/payments/{record.id}/status", {"status": status}
    if record.kind is RecordKind.USER:
        return f"/admin/users/{record.id}/status", {"isActive": status == "active"}
    raise ValueError(f"{record.kind.value} records have no status endpoint")


class AdminApiClient:
    """
    Обёртка над httpx.AsyncClient: bearer-токен, таймаут, конверт {success, data, error}.
    Используется как async context manager.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        headers = {"Content-Type": "application/json"}
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"
        self._http = httpx.AsyncClient(
            base_url=settings.api_url,
            headers=headers,
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "AdminApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch(self, kind: RecordKind) -> list:
        """Сырые записи вида kind; любой сбой превращается в FetchFailure"""
        kind = RecordKind(kind)
        params = {"limit": self.settings.fetch_limit} if kind in ORDER_KINDS else None
        logger.debug("GET %s", FETCH_PATHS[kind])
        try:
            response = await self._http.get(FETCH_PATHS[kind], params=params)
            response.raise_for_status()
            envelope = response.json()
        except httpx.HTTPStatusError as exc:
            raise FetchFailure(kind.value, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchFailure(kind.value, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise FetchFailure(kind.value, "response is not JSON") from exc
        return extract_items(envelope, kind)

    async def update_status(self, record: CommerceRecord, status: str) -> bool:
        """
        Меняет статус одной записи. True при success-конверте,
        MutationFailure если бэкенд отказал; сетевые ошибки httpx пробрасываются.
        """
        path, body = status_update_request(record, status)
        logger.debug("PUT %s %s", path, body)
        response = await self._http.put(path, json=body)
        try:
            envelope = response.json()
        except ValueError:
            envelope = {}
        if response.is_success and isinstance(envelope, dict) and envelope.get("success"):
            return True
        error = envelope.get("error") if isinstance(envelope, dict) else None
        raise MutationFailure(record.id, error or f"HTTP {response.status_code}")
