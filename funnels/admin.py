from django.contrib import admin
from unfold.admin import ModelAdmin, TabularInline
from .models import (
    Funnel, FunnelStep, FunnelStepProduct, FunnelStepOrderBump,
    FunnelSession, FunnelSessionEvent, FunnelAnalytics,
)

admin.site.site_header = "Funnel Operations"
admin.site.site_title = "Funnel Admin"
admin.site.index_title = "Checkout Dashboard"


class FunnelStepInline(TabularInline):
    model = FunnelStep
    fields = ('name', 'step_type', 'sort_order', 'is_active')
    extra = 0


@admin.register(Funnel)
class FunnelAdmin(ModelAdmin):
    list_display = ('name', 'status', 'affiliate_enabled', 'created_at')
    list_filter = ('status', 'affiliate_enabled')
    search_fields = ('name', 'slug')
    readonly_fields = ('uuid', 'created_at', 'updated_at')
    inlines = [FunnelStepInline]


class FunnelStepProductInline(TabularInline):
    model = FunnelStepProduct
    fields = ('name', 'funnel_price', 'compare_at_price', 'is_recurring', 'billing_interval', 'is_active', 'sort_order')
    extra = 0


class FunnelStepOrderBumpInline(TabularInline):
    model = FunnelStepOrderBump
    fields = ('name', 'price', 'is_active', 'sort_order')
    extra = 0


@admin.register(FunnelStep)
class FunnelStepAdmin(ModelAdmin):
    list_display = ('name', 'funnel', 'step_type', 'sort_order', 'is_active')
    list_filter = ('step_type', 'is_active', 'funnel')
    inlines = [FunnelStepProductInline, FunnelStepOrderBumpInline]


class FunnelSessionEventInline(TabularInline):
    model = FunnelSessionEvent
    fields = ('event_type', 'step', 'event_data', 'created_at')
    readonly_fields = fields
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FunnelSession)
class FunnelSessionAdmin(ModelAdmin):
    list_display = ('uuid', 'funnel', 'email', 'affiliate', 'is_converted', 'created_at')
    list_filter = ('is_converted', 'funnel')
    search_fields = ('uuid', 'email', 'affiliate__ref_code')
    readonly_fields = ('uuid', 'converted_at', 'created_at', 'updated_at')
    inlines = [FunnelSessionEventInline]


@admin.register(FunnelAnalytics)
class FunnelAnalyticsAdmin(ModelAdmin):
    list_display = ('funnel', 'scope', 'date', 'conversions', 'revenue')
    list_filter = ('funnel', 'date')
    date_hierarchy = 'date'
    readonly_fields = ('funnel', 'step', 'date', 'conversions', 'revenue')

    @admin.display(description='Scope')
    def scope(self, obj):
        return obj.step.name if obj.step else "Whole funnel"

    def has_add_permission(self, request):
        return False
