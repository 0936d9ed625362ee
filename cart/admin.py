from django.contrib import admin
from unfold.admin import ModelAdmin
from .models import FunnelCart


@admin.register(FunnelCart)
class FunnelCartAdmin(ModelAdmin):
    list_display = ('id', 'funnel', 'email', 'item_count', 'total_value', 'recovery_status', 'updated_at')
    list_filter = ('recovery_status', 'funnel', 'updated_at')
    search_fields = ('email', 'phone', 'session__uuid')
    readonly_fields = ('session', 'funnel', 'step', 'cart_data', 'total_amount', 'recovered_order', 'recovered_at', 'created_at', 'updated_at')
    actions = ['mark_reminder_sent', 'mark_expired']

    @admin.display(description='Items')
    def item_count(self, obj):
        return len((obj.cart_data or {}).get('items', []))

    @admin.display(description='Value')
    def total_value(self, obj):
        return f"£{obj.total_amount:.2f}"

    @admin.action(description="Mark selected as Reminder Sent")
    def mark_reminder_sent(self, request, queryset):
        self._advance(request, queryset, FunnelCart.STATUS_SENT)

    @admin.action(description="Expire selected carts")
    def mark_expired(self, request, queryset):
        self._advance(request, queryset, FunnelCart.STATUS_EXPIRED)

    def _advance(self, request, queryset, status):
        # Row by row so a recovered cart is never moved backwards.
        moved = sum(1 for cart in queryset if cart.advance_recovery_status(status))
        self.message_user(request, f"{moved} cart(s) updated, {queryset.count() - moved} skipped.")
