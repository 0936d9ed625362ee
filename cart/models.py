from decimal import Decimal
from django.db import models
from django.utils import timezone

from funnels.models import Funnel, FunnelStep, FunnelSession


class FunnelCart(models.Model):
    """
    Staging snapshot of a buyer's unpaid selection, one per (session, funnel).
    Overwritten on every checkout attempt. recovery_status only moves forward.
    """
    STATUS_PENDING = 'pending'
    STATUS_SENT = 'sent'
    STATUS_RECOVERED = 'recovered'
    STATUS_EXPIRED = 'expired'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Reminder Sent'),
        (STATUS_RECOVERED, 'Recovered'),
        (STATUS_EXPIRED, 'Expired'),
    )
    # Allowed forward moves; recovered and expired are terminal.
    TRANSITIONS = {
        STATUS_PENDING: {STATUS_SENT, STATUS_RECOVERED, STATUS_EXPIRED},
        STATUS_SENT: {STATUS_RECOVERED, STATUS_EXPIRED},
        STATUS_RECOVERED: set(),
        STATUS_EXPIRED: set(),
    }

    session = models.ForeignKey(FunnelSession, related_name='carts', on_delete=models.CASCADE)
    funnel = models.ForeignKey(Funnel, related_name='carts', on_delete=models.CASCADE)
    step = models.ForeignKey(FunnelStep, on_delete=models.SET_NULL, null=True, blank=True)
    email = models.EmailField(null=True, blank=True)
    phone = models.CharField(max_length=50, null=True, blank=True)
    cart_data = models.JSONField(default=dict, blank=True)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    recovery_status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING)
    recovered_order = models.ForeignKey('payments.Order', on_delete=models.SET_NULL, null=True, blank=True, related_name='recovered_carts')
    recovered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['session', 'funnel'], name='unique_cart_per_session_funnel'),
        ]

    def __str__(self):
        return f"Cart {self.id} for session {self.session_id} ({self.recovery_status})"

    def can_advance_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.recovery_status, set())

    def advance_recovery_status(self, new_status):
        """
        Moves the cart forward. A request to move to the current or an earlier
        status is ignored; returns True only when the status changed.
        """
        if not self.can_advance_to(new_status):
            return False
        self.recovery_status = new_status
        self.save(update_fields=['recovery_status', 'updated_at'])
        return True

    def mark_as_recovered(self, order):
        if not self.can_advance_to(self.STATUS_RECOVERED):
            return False
        self.recovery_status = self.STATUS_RECOVERED
        self.recovered_order = order
        self.recovered_at = timezone.now()
        self.save(update_fields=['recovery_status', 'recovered_order', 'recovered_at', 'updated_at'])
        return True
