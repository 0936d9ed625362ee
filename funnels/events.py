"""
Domain events emitted once an order is durably paid.

These are the only payloads handed to the analytics, automation and pixel
subsystems. Each event serialises to a JSON-safe dict so it can travel through
Celery and is re-hydrated on the worker side.
"""
import uuid
from dataclasses import dataclass, field, fields, asdict
from decimal import Decimal
from typing import Optional


EVENT_PURCHASE_COMPLETED = 'purchase_completed'
EVENT_UPSELL_PURCHASED = 'upsell_purchased'


@dataclass(frozen=True)
class _DomainEvent:

    def to_payload(self):
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Decimal):
                payload[key] = str(value)
        return payload

    @classmethod
    def from_payload(cls, payload):
        values = {}
        for f in fields(cls):
            if f.name not in payload:
                continue
            value = payload[f.name]
            if f.type in (Decimal, 'Decimal') and value is not None:
                value = Decimal(value)
            values[f.name] = value
        return cls(**values)


@dataclass(frozen=True)
class ConversionRecorded(_DomainEvent):
    funnel_id: int
    step_id: Optional[int]
    order_id: int
    revenue: Decimal


@dataclass(frozen=True)
class AutomationTriggered(_DomainEvent):
    event_type: str
    funnel_id: Optional[int]
    order_id: int
    order_number: str
    session_id: Optional[int]
    email: Optional[str]
    total: Decimal


@dataclass(frozen=True)
class PixelPurchase(_DomainEvent):
    funnel_id: int
    order_id: int
    order_number: str
    session_uuid: str
    email: Optional[str]
    value: Decimal
    currency: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
