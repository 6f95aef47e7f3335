from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from .exceptions import ValidationError
from .utils.dates import to_iso
from .utils.money import to_decimal

# Money is held to the cent; JSON payloads carry it as a number and dates as ISO-8601 strings
Money = Annotated[Decimal, AfterValidator(to_decimal), PlainSerializer(float, return_type=float, when_used="json")]
Timestamp = Annotated[Optional[datetime], PlainSerializer(to_iso, return_type=Optional[str], when_used="json")]


class OrderStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    READY = "Ready"
    PICKED_UP = "Picked Up"


def parse_status(value: Any) -> OrderStatus:
    """Map a raw status value onto OrderStatus"""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid status {value!r}. Expected one of: {allowed}")


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = ""
    created_at: Timestamp = None
    updated_at: Timestamp = None
    # Optimistic concurrency token, bumped by every committed write
    version: int = Field(default=0, exclude=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Customer(Record):
    name: str
    phone: str
    address: str = ""
    pickup_date: Timestamp = None
    fitting_date: Timestamp = None
    notes: str = ""
    balance: Money = Decimal("0")


class Order(Record):
    customer_id: str
    item: str
    measurements: Dict[str, Any] = Field(default_factory=dict)
    price: Money = Decimal("0")
    deposit: Money = Decimal("0")
    balance: Money = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING
    pickup_date: Timestamp = None
    fitting_date: Timestamp = None
    notes: str = ""


class Notification(Record):
    """A message sent to a customer, kept under the customer"""

    customer_id: str
    type: str = "reminder"
    # pickup | fitting for reminders
    sub_type: str = ""
    message: str
    sent_at: Timestamp = None
    status: str = "sent"


R = TypeVar("R", bound=Record)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def newest_first(records: Iterable[R]) -> List[R]:
    """Sort by created_at descending; ties keep their retrieval order"""
    return sorted(records, key=lambda r: r.created_at or _EPOCH, reverse=True)
