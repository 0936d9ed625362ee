import uuid
from decimal import Decimal
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.text import slugify


class Funnel(models.Model):
    """A configured multi-step sales flow (landing -> checkout -> upsell -> thank-you)."""

    STATUS_DRAFT = 'draft'
    STATUS_PUBLISHED = 'published'
    STATUS_ARCHIVED = 'archived'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PUBLISHED, 'Published'),
        (STATUS_ARCHIVED, 'Archived'),
    ]

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    affiliate_enabled = models.BooleanField(default=False, help_text="Track affiliate referrals and create commissions for this funnel.")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)

    @property
    def is_published(self):
        return self.status == self.STATUS_PUBLISHED


class FunnelStep(models.Model):
    TYPE_LANDING = 'landing'
    TYPE_CHECKOUT = 'checkout'
    TYPE_UPSELL = 'upsell'
    TYPE_DOWNSELL = 'downsell'
    TYPE_THANKYOU = 'thankyou'
    TYPE_CHOICES = [
        (TYPE_LANDING, 'Landing'),
        (TYPE_CHECKOUT, 'Checkout'),
        (TYPE_UPSELL, 'Upsell'),
        (TYPE_DOWNSELL, 'Downsell'),
        (TYPE_THANKYOU, 'Thank You'),
    ]

    funnel = models.ForeignKey(Funnel, related_name='steps', on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, blank=True)
    step_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_CHECKOUT)
    sort_order = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['funnel', 'sort_order']

    def __str__(self):
        return f"{self.funnel.name} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.name)
        super().save(*args, **kwargs)


class FunnelStepProduct(models.Model):
    """A catalog product offered on a step at its funnel price."""

    INTERVAL_CHOICES = [
        ('month', 'Monthly'),
        ('year', 'Yearly'),
    ]

    step = models.ForeignKey(FunnelStep, related_name='products', on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    funnel_price = models.DecimalField(max_digits=10, decimal_places=2)
    compare_at_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    is_recurring = models.BooleanField(default=False)
    billing_interval = models.CharField(max_length=10, choices=INTERVAL_CHOICES, null=True, blank=True)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['step', 'sort_order', 'id']

    def __str__(self):
        return f"{self.name} ({self.funnel_price})"


class FunnelStepOrderBump(models.Model):
    """An add-on offered alongside the main products of a checkout step."""

    step = models.ForeignKey(FunnelStep, related_name='order_bumps', on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_active = models.BooleanField(default=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['step', 'sort_order', 'id']

    def __str__(self):
        return f"Bump: {self.name} ({self.price})"


class FunnelSession(models.Model):
    """One visitor's traversal of a funnel. Sessions are never deleted."""

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    funnel = models.ForeignKey(Funnel, related_name='sessions', on_delete=models.CASCADE)
    email = models.EmailField(null=True, blank=True)
    phone = models.CharField(max_length=50, null=True, blank=True)
    affiliate = models.ForeignKey(
        'affiliates.FunnelAffiliate', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='sessions', help_text="The affiliate who referred this visitor."
    )
    is_converted = models.BooleanField(default=False)
    converted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Session {self.uuid} ({self.funnel.name})"

    def mark_as_converted(self):
        if self.is_converted:
            return
        self.is_converted = True
        self.converted_at = timezone.now()
        self.save(update_fields=['is_converted', 'converted_at', 'updated_at'])

    def track_event(self, event_type, data=None, step=None):
        return FunnelSessionEvent.objects.create(
            session=self,
            step=step,
            event_type=event_type,
            event_data=data or {},
        )


class FunnelSessionEvent(models.Model):
    session = models.ForeignKey(FunnelSession, related_name='events', on_delete=models.CASCADE)
    step = models.ForeignKey(FunnelStep, on_delete=models.SET_NULL, null=True, blank=True)
    event_type = models.CharField(max_length=50)
    event_data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.event_type} @ {self.created_at:%Y-%m-%d %H:%M}"


class FunnelAnalytics(models.Model):
    """
    Daily conversion counters. A row with no step holds the funnel-level
    summary; a row with a step holds that step's figures.
    """
    funnel = models.ForeignKey(Funnel, related_name='analytics', on_delete=models.CASCADE)
    step = models.ForeignKey(FunnelStep, related_name='analytics', on_delete=models.CASCADE, null=True, blank=True)
    date = models.DateField()
    conversions = models.PositiveIntegerField(default=0)
    revenue = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    class Meta:
        verbose_name_plural = "Funnel analytics"
        constraints = [
            models.UniqueConstraint(
                fields=['funnel', 'step', 'date'], condition=Q(step__isnull=False),
                name='unique_step_analytics_per_day',
            ),
            models.UniqueConstraint(
                fields=['funnel', 'date'], condition=Q(step__isnull=True),
                name='unique_funnel_analytics_per_day',
            ),
        ]

    def __str__(self):
        scope = self.step.name if self.step else 'funnel'
        return f"{self.funnel.name} [{scope}] {self.date}: {self.conversions} conversions"

    @classmethod
    def increment_conversions(cls, funnel_id, step_id=None, revenue=Decimal('0.00'), date=None):
        """Adds one conversion and its revenue to today's row, creating the row if needed."""
        date = date or timezone.localdate()
        row, _ = cls.objects.get_or_create(funnel_id=funnel_id, step_id=step_id, date=date)
        cls.objects.filter(pk=row.pk).update(
            conversions=F('conversions') + 1,
            revenue=F('revenue') + Decimal(revenue),
        )
        return row
