from decimal import Decimal
from django.db import models
from django.db.models import F
from django.conf import settings
from django.utils import timezone
from django.utils.crypto import get_random_string

from funnels.models import Funnel, FunnelStep, FunnelSession, FunnelStepProduct, FunnelStepOrderBump


def generate_order_number():
    return f"FO-{timezone.now():%Y%m%d}-{get_random_string(6, '0123456789ABCDEFGHJKLMNPQRSTUVWXYZ')}"


class Order(models.Model):
    """
    Durable record of a purchase attempt. Totals are fixed at creation;
    afterwards only the status/payment transitions are written.
    """
    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_FAILED = 'failed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_FAILED, 'Failed'),
    ]

    PAYMENT_PENDING = 'pending'
    PAYMENT_PAID = 'paid'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PAID, 'Paid'),
    ]

    order_number = models.CharField(max_length=32, unique=True, default=generate_order_number, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='funnel_orders')
    funnel = models.ForeignKey(Funnel, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    email = models.EmailField(null=True, blank=True)
    customer_name = models.CharField(max_length=255, blank=True)
    customer_phone = models.CharField(max_length=50, blank=True)
    billing_address = models.JSONField(default=dict, blank=True)
    shipping_address = models.JSONField(default=dict, blank=True)

    subtotal = models.DecimalField(max_digits=10, decimal_places=2)
    bump_total = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=3, default='gbp')

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    paid_at = models.DateTimeField(null=True, blank=True)

    stripe_payment_intent_id = models.CharField(max_length=255, null=True, blank=True, unique=True, help_text="Stripe PaymentIntent ID for idempotent confirmation.")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Order {self.order_number} ({self.total} {self.currency.upper()})"

    @property
    def is_paid(self):
        return self.payment_status == self.PAYMENT_PAID

    @property
    def total_minor_units(self):
        """Total in integer minor currency units (pence/cents), as the gateway expects."""
        return int((self.total * 100).quantize(Decimal('1')))

    def attach_payment_intent(self, payment_intent_id):
        self.stripe_payment_intent_id = payment_intent_id
        self.metadata = {**(self.metadata or {}), 'stripe_payment_intent_id': payment_intent_id}
        self.save(update_fields=['stripe_payment_intent_id', 'metadata', 'updated_at'])

    def mark_paid(self):
        self.status = self.STATUS_CONFIRMED
        self.payment_status = self.PAYMENT_PAID
        self.paid_at = timezone.now()
        self.save(update_fields=['status', 'payment_status', 'paid_at', 'updated_at'])

    def mark_failed(self, reason=''):
        self.status = self.STATUS_FAILED
        if reason:
            self.metadata = {**(self.metadata or {}), 'failure_reason': reason}
        self.save(update_fields=['status', 'metadata', 'updated_at'])


class OrderItem(models.Model):
    """A priced line of an order. Immutable once written."""

    order = models.ForeignKey(Order, related_name='items', on_delete=models.CASCADE)
    funnel_product = models.ForeignKey(FunnelStepProduct, on_delete=models.SET_NULL, null=True, blank=True)
    order_bump = models.ForeignKey(FunnelStepOrderBump, on_delete=models.SET_NULL, null=True, blank=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2) # Denormalized price
    total_price = models.DecimalField(max_digits=10, decimal_places=2)
    metadata = models.JSONField(default=dict, blank=True)

    def __str__(self):
        return f"{self.quantity} x {self.name}"

    @property
    def is_order_bump(self):
        return self.order_bump_id is not None

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Order items cannot be modified once created.")
        super().save(*args, **kwargs)


class FunnelOrder(models.Model):
    """Attribution record linking an Order to the funnel, step and session that produced it."""

    TYPE_MAIN = 'main'
    TYPE_UPSELL = 'upsell'
    TYPE_DOWNSELL = 'downsell'
    TYPE_BUMP = 'bump'
    TYPE_CHOICES = [
        (TYPE_MAIN, 'Main'),
        (TYPE_UPSELL, 'Upsell'),
        (TYPE_DOWNSELL, 'Downsell'),
        (TYPE_BUMP, 'Bump'),
    ]

    funnel = models.ForeignKey(Funnel, related_name='funnel_orders', on_delete=models.CASCADE)
    session = models.ForeignKey(FunnelSession, related_name='funnel_orders', on_delete=models.CASCADE)
    order = models.ForeignKey(Order, related_name='funnel_orders', on_delete=models.CASCADE)
    step = models.ForeignKey(FunnelStep, related_name='funnel_orders', on_delete=models.SET_NULL, null=True, blank=True)
    order_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_MAIN)
    # May differ from order.total (e.g. an upsell is attributed only its own price).
    funnel_revenue = models.DecimalField(max_digits=10, decimal_places=2)
    bumps_offered = models.PositiveIntegerField(default=0)
    bumps_accepted = models.PositiveIntegerField(default=0)
    upsell_offered = models.PositiveIntegerField(default=0)
    upsell_accepted = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.get_order_type_display()} order {self.order.order_number} ({self.funnel.name})"

    def record_upsell_offered(self):
        FunnelOrder.objects.filter(pk=self.pk).update(upsell_offered=F('upsell_offered') + 1)
        self.refresh_from_db(fields=['upsell_offered'])

    def record_upsell_accepted(self):
        FunnelOrder.objects.filter(pk=self.pk).update(upsell_accepted=F('upsell_accepted') + 1)
        self.refresh_from_db(fields=['upsell_accepted'])


class StripeCustomer(models.Model):
    """A buyer's Stripe customer and the card saved for one-click purchases."""

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='stripe_customer')
    stripe_customer_id = models.CharField(max_length=255, unique=True)
    default_payment_method_id = models.CharField(max_length=255, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user} ({self.stripe_customer_id})"

    @property
    def can_charge_off_session(self):
        return bool(self.default_payment_method_id)
