from decimal import Decimal
from django.db import models
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from django.utils.crypto import get_random_string

from funnels.models import Funnel, FunnelStepProduct


class FunnelAffiliate(models.Model):
    """A partner who refers buyers into funnels in exchange for commission."""

    STATUS_ACTIVE = 'active'
    STATUS_SUSPENDED = 'suspended'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SUSPENDED, 'Suspended'),
    ]

    name = models.CharField(max_length=150)
    email = models.EmailField(unique=True)
    ref_code = models.CharField(max_length=20, unique=True, blank=True, help_text="Code carried in referral links (?ref=CODE).")
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.ref_code})"

    def save(self, *args, **kwargs):
        if not self.ref_code:
            self.ref_code = get_random_string(8).upper()
        super().save(*args, **kwargs)


class CommissionRule(models.Model):
    """Payout rule for one product of one funnel."""

    TYPE_FIXED = 'fixed'
    TYPE_PERCENTAGE = 'percentage'
    TYPE_CHOICES = [
        (TYPE_FIXED, 'Fixed Amount'),
        (TYPE_PERCENTAGE, 'Percentage of Price'),
    ]

    funnel = models.ForeignKey(Funnel, related_name='commission_rules', on_delete=models.CASCADE)
    funnel_product = models.ForeignKey(FunnelStepProduct, related_name='commission_rules', on_delete=models.CASCADE)
    commission_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_PERCENTAGE)
    commission_value = models.DecimalField(max_digits=10, decimal_places=2, help_text="e.g., 10.00 for a fixed amount, or 15 for 15%")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['funnel', 'funnel_product'], name='unique_commission_rule_per_product'),
        ]

    def __str__(self):
        if self.commission_type == self.TYPE_PERCENTAGE:
            return f"{self.funnel_product.name}: {self.commission_value}%"
        return f"{self.funnel_product.name}: {self.commission_value} flat"

    def commission_for(self, price):
        """Commission earned on one line item sold at `price`."""
        if self.commission_type == self.TYPE_PERCENTAGE:
            return Decimal(price) * (self.commission_value / Decimal('100'))
        return self.commission_value


class Commission(models.Model):
    """
    Affiliate payout derived from a paid order. At most one row per order.
    """
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_PAID = 'paid'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_PAID, 'Paid'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    affiliate = models.ForeignKey(FunnelAffiliate, related_name='commissions', on_delete=models.CASCADE)
    funnel = models.ForeignKey(Funnel, related_name='commissions', on_delete=models.CASCADE)
    order = models.OneToOneField('payments.Order', related_name='commission', on_delete=models.CASCADE)
    funnel_order = models.ForeignKey('payments.FunnelOrder', related_name='commissions', on_delete=models.SET_NULL, null=True, blank=True)

    commission_type = models.CharField(max_length=20, choices=CommissionRule.TYPE_CHOICES)
    commission_rate = models.DecimalField(max_digits=10, decimal_places=2)
    order_amount = models.DecimalField(max_digits=10, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=10, decimal_places=2)
    breakdown = models.JSONField(default=list, blank=True, help_text="Every product rule that contributed to this commission.")

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviewed_commissions')
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Commission {self.commission_amount} for {self.affiliate.name} on order {self.order_id}"

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    def approve(self, user=None):
        if not self.is_pending:
            raise ValidationError("Commission is not pending.")
        self.status = self.STATUS_APPROVED
        self.approved_at = timezone.now()
        self.approved_by = user
        self.save(update_fields=['status', 'approved_at', 'approved_by', 'updated_at'])

    def reject(self, user=None, notes=''):
        if not self.is_pending:
            raise ValidationError("Commission is not pending.")
        self.status = self.STATUS_REJECTED
        self.approved_by = user
        self.notes = notes or ''
        self.save(update_fields=['status', 'approved_by', 'notes', 'updated_at'])

    def mark_paid(self):
        if self.status != self.STATUS_APPROVED:
            raise ValidationError("Only approved commissions can be paid.")
        self.status = self.STATUS_PAID
        self.paid_at = timezone.now()
        self.save(update_fields=['status', 'paid_at', 'updated_at'])
