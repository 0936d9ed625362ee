"""
Explicit result types returned by the public checkout operations.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class IntentDescriptor:
    """What the gateway tells us about a payment intent."""
    id: str
    status: str
    client_secret: Optional[str] = None
    payment_method: Optional[str] = None
    customer: Optional[str] = None


@dataclass
class CheckoutResult:
    order: Any
    funnel_order: Any
    total: Decimal
    payment_intent: IntentDescriptor
    success: bool = True

    def as_dict(self):
        return {
            'success': self.success,
            'order_id': self.order.id,
            'order_number': self.order.order_number,
            'total': str(self.total),
            'payment_intent_id': self.payment_intent.id,
            'client_secret': self.payment_intent.client_secret,
        }


@dataclass
class ConfirmationResult:
    success: bool
    status: str
    order: Any = None
    message: str = ''
    error: Optional[str] = None
    already_processed: bool = False

    def as_dict(self):
        return {
            'success': self.success,
            'status': self.status,
            'order_id': self.order.id if self.order else None,
            'order_number': self.order.order_number if self.order else None,
            'message': self.message,
            'error': self.error,
        }


@dataclass
class UpsellResult:
    success: bool
    order: Any = None
    funnel_order: Any = None
    message: str = ''
    error: Optional[str] = None
    requires_payment: bool = False

    def as_dict(self):
        return {
            'success': self.success,
            'order_id': self.order.id if self.order else None,
            'order_number': self.order.order_number if self.order else None,
            'message': self.message,
            'error': self.error,
            'requires_payment': self.requires_payment,
        }
