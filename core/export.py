# core/export.py
# Выгрузка коллекции в CSV или JSON. Своей фильтрации нет: что дали, то и выгружаем.

import csv
import io
import json
import logging
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .domain import CommerceRecord, RecordKind
from .errors import ExportFailure
from .money import format_amount, to_major_units

logger = logging.getLogger(__name__)

FORMATS = ("csv", "json")

# Один CSV-шаблон на группу видов; заказы услуг и продуктов выгружаются одинаково
EXPORT_GROUPS = {
    RecordKind.SERVICE_ORDER: "orders",
    RecordKind.PRODUCT_ORDER: "orders",
    RecordKind.PAYMENT: "payments",
    RecordKind.USER: "users",
    RecordKind.WEBINAR: "webinars",
    RecordKind.CATALOG_PRODUCT: "products",
}


def _short_date(value: Optional[datetime]) -> str:
    """Как toLocaleDateString в en-US: 1/5/2024"""
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def _order_row(r: CommerceRecord) -> List:
    owner = r.owner
    return [
        r.display_type,
        owner.name if owner else "",
        owner.email if owner else "",
        r.title,
        r.category,
        format_amount(r.amount_minor),
        r.quantity,
        format_amount(r.amount_minor * r.quantity),
        r.status,
        _short_date(r.created_at),
    ]


def _payment_row(r: CommerceRecord) -> List:
    return [
        r.title,
        r.detail("serviceId") or "N/A",
        r.owner.email if r.owner else "",
        format_amount(r.amount_minor),
        r.currency.upper(),
        r.status,
        r.detail("paymentMethod", "Stripe"),
        r.external_ref or "",
        _short_date(r.created_at),
    ]


def _user_row(r: CommerceRecord) -> List:
    return [
        r.title,
        r.owner.email if r.owner else "",
        r.detail("phone", ""),
        r.role,
        "Active" if r.active else "Inactive",
        _short_date(r.created_at),
    ]


def _webinar_row(r: CommerceRecord) -> List:
    return [
        r.title,
        r.detail("speaker", ""),
        _short_date(r.created_at),
        r.status,
        format_amount(r.amount_minor),
        r.detail("registrations", 0),
        format_amount(r.revenue),
    ]


def _product_row(r: CommerceRecord) -> List:
    return [
        r.title,
        r.display_type,
        r.category,
        r.status_label,
        format_amount(r.amount_minor),
        r.detail("salesCount", 0),
        format_amount(r.revenue),
    ]


CSV_SCHEMAS: Dict[str, Tuple[Tuple[str, ...], Callable[[CommerceRecord], List]]] = {
    "orders": (
        ("Type", "Customer Name", "Email", "Item", "Category", "Unit Price",
         "Quantity", "Total", "Status", "Order Date"),
        _order_row,
    ),
    "payments": (
        ("Service Title", "Service ID", "Customer Email", "Amount", "Currency",
         "Status", "Payment Method", "Payment ID", "Date"),
        _payment_row,
    ),
    "users": (
        ("Name", "Email", "Phone", "Role", "Status", "Joined Date"),
        _user_row,
    ),
    "webinars": (
        ("Title", "Speaker", "Date", "Status", "Price", "Registrations", "Revenue"),
        _webinar_row,
    ),
    "products": (
        ("Title", "Type", "Category", "Status", "Price", "Sales", "Revenue"),
        _product_row,
    ),
}


def record_to_json(r: CommerceRecord) -> dict:
    """Внешние поля записи; служебные (searchable_text, amount_source) не выгружаются"""
    payload = {
        "id": r.id,
        "kind": r.kind.value,
        "title": r.title,
        "category": r.category,
        "displayType": r.display_type,
        "status": r.status_label,
        "amount": to_major_units(r.amount_minor),
        "quantity": r.quantity,
        "revenue": to_major_units(r.revenue),
        "currency": r.currency,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
        "owner": (
            {"id": r.owner.id, "name": r.owner.name, "email": r.owner.email}
            if r.owner
            else None
        ),
    }
    if r.role is not None:
        payload["role"] = r.role
    if r.external_ref is not None:
        payload["externalRef"] = r.external_ref
    payload.update((k, v) for k, v in r.details if v is not None)
    return payload


def _csv(records: Sequence[CommerceRecord], kind: Optional[RecordKind]) -> str:
    if kind is None:
        if not records:
            raise ExportFailure("record kind is required to export an empty collection")
        kind = records[0].kind
    group = EXPORT_GROUPS[RecordKind(kind)]
    header, to_row = CSV_SCHEMAS[group]

    stray = next((r for r in records if EXPORT_GROUPS[r.kind] != group), None)
    if stray is not None:
        raise ExportFailure(f"{stray.kind.value} record {stray.id} does not fit the {group} export")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(to_row(r) for r in records)
    return buffer.getvalue()


def _json(records: Iterable[CommerceRecord]) -> str:
    return json.dumps([record_to_json(r) for r in records], indent=2, ensure_ascii=False)


def export_records(
    records: Sequence[CommerceRecord], fmt: str, kind: Optional[RecordKind] = None
) -> bytes:
    """
    Коллекция -> байты CSV/JSON. Суммы считаются из amount_minor в момент выгрузки.
    Любая ошибка сериализации становится ExportFailure (фатально только для этой выгрузки).
    """
    if fmt not in FORMATS:
        raise ExportFailure(f"unsupported export format {fmt!r}")
    try:
        text = _csv(records, kind) if fmt == "csv" else _json(records)
    except ExportFailure:
        raise
    except (TypeError, ValueError, KeyError) as exc:
        logger.error("%s export failed: %s", fmt, exc)
        raise ExportFailure(f"{fmt} export failed: {exc}") from exc
    return text.encode("utf-8")


def export_filename(kind: RecordKind, fmt: str, today: date) -> str:
    """orders-2024-01-05.csv"""
    return f"{EXPORT_GROUPS[RecordKind(kind)]}-{today.isoformat()}.{fmt}"
