# core/normalize.py
# Приведение разнородных ответов бэкенда к единой CommerceRecord.

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from .domain import (
    DEFAULT_TYPES,
    KIND_LABELS,
    ORDER_KINDS,
    UNCATEGORIZED,
    CommerceRecord,
    OwnerRef,
    RecordKind,
)
from .errors import FetchFailure, NormalizationWarning
from .ftypes import Either, partition
from .money import AmountSource, to_minor_units

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedBatch:
    records: Tuple[CommerceRecord, ...]
    warnings: Tuple[NormalizationWarning, ...] = ()


# ============ Мелкие чистые помощники ============


def _first(*values) -> Optional[Any]:
    """Первое непустое значение (None и '' пропускаются)"""
    return next((v for v in values if v not in (None, "")), None)


def _text(*values, default: str = "") -> str:
    """Как _first, но всегда строка: текстовые поля записи однородны"""
    value = _first(*values)
    return default if value is None else str(value)


def _optional_text(*values) -> Optional[str]:
    value = _first(*values)
    return None if value is None else str(value)


def _nested(item: dict, key: str) -> dict:
    value = item.get(key)
    return value if isinstance(value, dict) else {}


def parse_timestamp(value) -> Optional[datetime]:
    """ISO-строка или epoch в миллисекундах -> datetime с таймзоной (UTC по умолчанию)"""
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _quantity(value) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError, OverflowError):
        return 1


def _count(value) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _amount(value, source: AmountSource, kind: RecordKind, index: int) -> int:
    try:
        return to_minor_units(value, source)
    except (TypeError, ValueError) as exc:
        logger.warning("%s[%d]: amount %r replaced with 0 (%s)", kind.value, index, value, exc)
        return 0


def _full_name(user: dict) -> str:
    return f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()


def _search_text(*parts) -> str:
    """Считается один раз при нормализации; поиск потом работает только по ней"""
    return "\n".join(str(p).lower() for p in parts if p not in (None, ""))


def _unknown(kind: RecordKind) -> str:
    return f"Unknown {KIND_LABELS[kind]}"


# ============ Нормализаторы по видам ============


def _order(item: dict, kind: RecordKind, record_id: str, index: int) -> CommerceRecord:
    user = _nested(item, "userId")
    item_details = _nested(item, "itemDetails")
    service = _nested(item, "serviceDetails")
    product = _nested(item, "productDetails")

    owner = OwnerRef(
        id=_optional_text(user.get("_id"), user.get("id")),
        name=_full_name(user),
        email=_text(user.get("email")),
    )
    title = _text(
        item_details.get("title"),
        service.get("title"),
        product.get("title"),
        default=_unknown(kind),
    )
    category = _text(
        item_details.get("category"),
        service.get("category"),
        product.get("category"),
        default=UNCATEGORIZED,
    )
    # тип вложенного продукта важнее общего itemType заказа
    display_type = _text(
        product.get("type"),
        item_details.get("type"),
        item.get("itemType"),
        default=DEFAULT_TYPES[kind],
    )
    amount = _amount(item.get("price"), AmountSource.MINOR, kind, index)
    quantity = _quantity(item.get("quantity", 1))
    external_ref = _optional_text(
        item.get("stripePaymentIntentId"),
        item.get("paymentIntentId"),
        item.get("transactionId"),
    )

    return CommerceRecord(
        id=record_id,
        kind=kind,
        title=title,
        category=category,
        display_type=display_type,
        amount_minor=amount,
        amount_source=_source_of(item.get("price"), AmountSource.MINOR),
        quantity=quantity,
        revenue=amount * quantity,
        created_at=parse_timestamp(item.get("createdAt")),
        status=_text(item.get("status"), default="pending"),
        owner=owner,
        external_ref=external_ref,
        details=(("itemType", item.get("itemType")), ("itemId", item.get("itemId"))),
        searchable_text=_search_text(title, owner.name, owner.email, external_ref),
    )


def _payment(item: dict, kind: RecordKind, record_id: str, index: int) -> CommerceRecord:
    owner = OwnerRef(
        id=item.get("userId") if isinstance(item.get("userId"), str) else None,
        name=_text(item.get("userName")),
        email=_text(item.get("userEmail")),
    )
    title = _text(item.get("serviceTitle"), default=_unknown(kind))
    amount = _amount(item.get("amount"), AmountSource.MINOR, kind, index)
    external_ref = _optional_text(item.get("stripePaymentIntentId"))

    return CommerceRecord(
        id=record_id,
        kind=kind,
        title=title,
        category=_text(item.get("serviceCategory"), default=UNCATEGORIZED),
        display_type=_text(item.get("itemType"), item.get("type"), default=DEFAULT_TYPES[kind]),
        amount_minor=amount,
        amount_source=_source_of(item.get("amount"), AmountSource.MINOR),
        quantity=1,
        revenue=amount,
        created_at=parse_timestamp(item.get("createdAt")),
        status=_text(item.get("status"), default="pending"),
        owner=owner,
        currency=_text(item.get("currency"), default="usd").lower(),
        external_ref=external_ref,
        details=(
            ("serviceId", _optional_text(item.get("serviceId"))),
            ("paymentMethod", _text(item.get("paymentMethod"), default="Stripe")),
        ),
        searchable_text=_search_text(title, owner.name, owner.email, external_ref),
    )


def _user(item: dict, kind: RecordKind, record_id: str, index: int) -> CommerceRecord:
    name = _full_name(item)
    email = _text(item.get("email"))
    role = _text(item.get("role"), default="user")
    phone = _text(item.get("phone"))
    # только настоящий bool; строка "false" не должна превращаться в True
    is_active = item.get("isActive")

    return CommerceRecord(
        id=record_id,
        kind=kind,
        title=name or email or _unknown(kind),
        category=role,
        display_type=DEFAULT_TYPES[kind],
        amount_minor=0,
        amount_source=AmountSource.MINOR,
        quantity=1,
        revenue=0,
        created_at=parse_timestamp(item.get("createdAt")),
        active=is_active if isinstance(is_active, bool) else True,
        owner=OwnerRef(id=record_id, name=name, email=email),
        role=role,
        details=(("phone", phone),),
        searchable_text=_search_text(name, email, phone),
    )


def _webinar(item: dict, kind: RecordKind, record_id: str, index: int) -> CommerceRecord:
    title = _text(item.get("title"), default=_unknown(kind))
    speaker = _text(item.get("speaker_name"))
    is_free = item.get("is_free") is True
    amount = 0 if is_free else _amount(item.get("price"), AmountSource.MAJOR, kind, index)
    registrations = _count(item.get("registration_count"))

    return CommerceRecord(
        id=record_id,
        kind=kind,
        title=title,
        category=_text(item.get("category"), default=UNCATEGORIZED),
        display_type=_text(item.get("type"), default=DEFAULT_TYPES[kind]),
        amount_minor=amount,
        amount_source=_source_of(item.get("price"), AmountSource.MAJOR),
        quantity=1,
        revenue=amount * registrations,
        created_at=parse_timestamp(_first(item.get("createdAt"), item.get("date"))),
        status=_text(item.get("status"), default="upcoming"),
        details=(
            ("speaker", speaker),
            ("date", item.get("date")),
            ("registrations", registrations),
            ("isFree", is_free),
        ),
        searchable_text=_search_text(title, speaker),
    )


def _catalog_product(
    item: dict, kind: RecordKind, record_id: str, index: int
) -> CommerceRecord:
    title = _text(item.get("title"), default=_unknown(kind))
    category = _text(item.get("category"), default=UNCATEGORIZED)
    amount = _amount(item.get("price"), AmountSource.MAJOR, kind, index)
    sales = _count(item.get("salesCount"))

    return CommerceRecord(
        id=record_id,
        kind=kind,
        title=title,
        category=category,
        display_type=_text(item.get("type"), default=DEFAULT_TYPES[kind]),
        amount_minor=amount,
        amount_source=_source_of(item.get("price"), AmountSource.MAJOR),
        quantity=1,
        revenue=amount * sales,
        created_at=parse_timestamp(item.get("createdAt")),
        active=_text(item.get("status"), default="active") == "active",
        details=(("salesCount", sales),),
        searchable_text=_search_text(title, category),
    )


def _source_of(value, declared: AmountSource) -> AmountSource:
    """Представление, в котором сумма реально пришла"""
    return AmountSource.DISPLAY if isinstance(value, str) else declared


NORMALIZERS: Dict[RecordKind, Callable[[dict, RecordKind, str, int], CommerceRecord]] = {
    RecordKind.SERVICE_ORDER: _order,
    RecordKind.PRODUCT_ORDER: _order,
    RecordKind.PAYMENT: _payment,
    RecordKind.USER: _user,
    RecordKind.WEBINAR: _webinar,
    RecordKind.CATALOG_PRODUCT: _catalog_product,
}


# ============ Публичный API ============


def normalize_record(
    item, kind: RecordKind, index: int = 0
) -> Either[NormalizationWarning, CommerceRecord]:
    """
    Одна запись -> Right(CommerceRecord) или Left(NormalizationWarning).
    Вид записи задаёт вызывающий, по содержимому он не угадывается.
    """
    kind = RecordKind(kind)
    if not isinstance(item, dict):
        return Either.left(NormalizationWarning(kind.value, index, "not an object"))

    record_id = _first(item.get("_id"), item.get("id"))
    if record_id is None:
        return Either.left(NormalizationWarning(kind.value, index, "missing id"))

    return Either.right(NORMALIZERS[kind](item, kind, str(record_id), index))


def normalize_batch(payload, kind: RecordKind) -> NormalizedBatch:
    """
    Пачка -> NormalizedBatch. Порядок записей сохраняется,
    записи без id выбрасываются с предупреждением, остальные обрабатываются.
    """
    kind = RecordKind(kind)
    items = payload if isinstance(payload, (list, tuple)) else ()
    warnings, records = partition(
        normalize_record(item, kind, index) for index, item in enumerate(items)
    )
    for warning in warnings:
        logger.warning("%s[%d] skipped: %s", warning.kind, warning.index, warning.reason)
    return NormalizedBatch(records=records, warnings=warnings)


def extract_items(envelope, kind: RecordKind) -> list:
    """
    Достаёт список записей из конверта {success, data, error}.
    Заказы лежат в data.orders, остальные виды - прямо в data.
    """
    kind = RecordKind(kind)
    if not isinstance(envelope, dict):
        raise FetchFailure(kind.value, "malformed envelope")
    if envelope.get("success") is False:
        raise FetchFailure(kind.value, envelope.get("error") or "request was not successful")
    if "data" not in envelope:
        raise FetchFailure(kind.value, "envelope has no data")

    data = envelope.get("data")
    if kind in ORDER_KINDS and isinstance(data, dict):
        data = data.get("orders")
    if data is None:
        return []
    if not isinstance(data, list):
        raise FetchFailure(kind.value, "data is not a list")
    return data
