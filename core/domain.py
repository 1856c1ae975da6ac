from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .money import AmountSource, to_major_units


class RecordKind(str, Enum):
    SERVICE_ORDER = "service_order"
    PRODUCT_ORDER = "product_order"
    PAYMENT = "payment"
    USER = "user"
    WEBINAR = "webinar"
    CATALOG_PRODUCT = "catalog_product"


ORDER_KINDS = frozenset({RecordKind.SERVICE_ORDER, RecordKind.PRODUCT_ORDER})

# Подпись для заглушки "Unknown <Kind>"
KIND_LABELS = {
    RecordKind.SERVICE_ORDER: "Service",
    RecordKind.PRODUCT_ORDER: "Product",
    RecordKind.PAYMENT: "Payment",
    RecordKind.USER: "User",
    RecordKind.WEBINAR: "Webinar",
    RecordKind.CATALOG_PRODUCT: "Product",
}

# Последний шаг разрешения displayType
DEFAULT_TYPES = {
    RecordKind.SERVICE_ORDER: "service",
    RecordKind.PRODUCT_ORDER: "product",
    RecordKind.PAYMENT: "payment",
    RecordKind.USER: "user",
    RecordKind.WEBINAR: "webinar",
    RecordKind.CATALOG_PRODUCT: "product",
}

UNCATEGORIZED = "Uncategorized"

# ============ Словари статусов (как на проводе, регистр важен) ============

ORDER_STATUSES = ("pending", "confirmed", "completed", "cancelled", "refunded")
PAYMENT_STATUSES = ("pending", "processing", "succeeded", "failed", "cancelled")
WEBINAR_STATUSES = ("upcoming", "completed", "cancelled")
USER_STATES = ("active", "inactive")
USER_ROLES = ("user", "admin")

STATUS_VOCABULARY = {
    RecordKind.SERVICE_ORDER: ORDER_STATUSES,
    RecordKind.PRODUCT_ORDER: ORDER_STATUSES,
    RecordKind.PAYMENT: PAYMENT_STATUSES,
    RecordKind.WEBINAR: WEBINAR_STATUSES,
    RecordKind.USER: USER_STATES,
    RecordKind.CATALOG_PRODUCT: USER_STATES,
}

# Виды, которые бэкенд позволяет менять поштучно
MUTABLE_KINDS = frozenset(
    {
        RecordKind.SERVICE_ORDER,
        RecordKind.PRODUCT_ORDER,
        RecordKind.PAYMENT,
        RecordKind.USER,
    }
)

TERMINAL_STATUSES = {
    RecordKind.SERVICE_ORDER: frozenset({"refunded"}),
    RecordKind.PRODUCT_ORDER: frozenset({"refunded"}),
    RecordKind.PAYMENT: frozenset({"cancelled"}),
}

STATUS_CATEGORIES = {
    "pending": "open",
    "confirmed": "open",
    "processing": "open",
    "upcoming": "open",
    "completed": "settled",
    "succeeded": "settled",
    "cancelled": "void",
    "refunded": "void",
    "failed": "void",
}


@dataclass(frozen=True)
class OwnerRef:
    """Слабая ссылка на пользователя: только id и денормализованные имя/почта"""

    id: Optional[str]
    name: str
    email: str


@dataclass(frozen=True)
class CommerceRecord:
    id: str
    kind: RecordKind
    title: str
    category: str
    display_type: str
    amount_minor: int  # центы
    amount_source: AmountSource
    quantity: int
    revenue: int  # центы
    created_at: Optional[datetime]
    status: Optional[str] = None
    active: Optional[bool] = None
    owner: Optional[OwnerRef] = None
    role: Optional[str] = None
    currency: str = "usd"
    external_ref: Optional[str] = None
    details: Tuple[Tuple[str, object], ...] = ()
    searchable_text: str = ""

    @property
    def status_label(self) -> str:
        """Статус, а для записей с флагом active - 'active'/'inactive'"""
        if self.status:
            return self.status
        if self.active is None:
            return ""
        return "active" if self.active else "inactive"

    @property
    def status_category(self) -> str:
        if self.status:
            return STATUS_CATEGORIES.get(self.status.lower(), "open")
        return self.status_label

    @property
    def price(self) -> float:
        """Цена в долларах, только для показа"""
        return to_major_units(self.amount_minor)

    def detail(self, name: str, default=None):
        return next((v for k, v in self.details if k == name), default)


@dataclass(frozen=True)
class Event:
    id: str
    ts: str
    name: str
    payload: dict
