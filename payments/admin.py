from django.contrib import admin
from unfold.admin import ModelAdmin, TabularInline
from .models import Order, OrderItem, FunnelOrder, StripeCustomer


class OrderItemInline(TabularInline):
    model = OrderItem
    fields = ('name', 'funnel_product', 'order_bump', 'quantity', 'unit_price', 'total_price')
    readonly_fields = fields
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class FunnelOrderInline(TabularInline):
    model = FunnelOrder
    fields = ('step', 'order_type', 'funnel_revenue', 'bumps_offered', 'bumps_accepted', 'upsell_offered', 'upsell_accepted')
    readonly_fields = fields
    extra = 0

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(ModelAdmin):
    inlines = [OrderItemInline, FunnelOrderInline]
    list_display = ('order_number', 'email', 'funnel', 'total', 'status', 'payment_status', 'created_at', 'list_products_names')
    list_filter = ('status', 'payment_status', 'funnel', 'created_at')
    search_fields = ('order_number', 'email', 'stripe_payment_intent_id')
    date_hierarchy = 'created_at'
    readonly_fields = (
        'order_number', 'user', 'funnel', 'subtotal', 'bump_total', 'total', 'currency',
        'status', 'payment_status', 'paid_at', 'stripe_payment_intent_id', 'metadata', 'created_at', 'updated_at',
    )

    @admin.display(description='Products')
    def list_products_names(self, obj):
        return ", ".join(item.name for item in obj.items.all())


@admin.register(FunnelOrder)
class FunnelOrderAdmin(ModelAdmin):
    list_display = ('order', 'funnel', 'step', 'order_type', 'funnel_revenue', 'bumps_accepted', 'upsell_offered', 'upsell_accepted', 'created_at')
    list_filter = ('order_type', 'funnel')
    search_fields = ('order__order_number', 'session__uuid')
    readonly_fields = [f.name for f in FunnelOrder._meta.fields]

    def has_add_permission(self, request):
        return False


@admin.register(StripeCustomer)
class StripeCustomerAdmin(ModelAdmin):
    list_display = ('user', 'stripe_customer_id', 'can_charge_off_session', 'updated_at')
    search_fields = ('user__email', 'stripe_customer_id')
    readonly_fields = ('created_at', 'updated_at')
