import csv
from django.contrib import admin, messages
from django.http import HttpResponse
from unfold.admin import ModelAdmin
from .models import FunnelAffiliate, CommissionRule, Commission


@admin.register(FunnelAffiliate)
class FunnelAffiliateAdmin(ModelAdmin):
    list_display = ('name', 'email', 'ref_code', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('name', 'email', 'ref_code')


@admin.register(CommissionRule)
class CommissionRuleAdmin(ModelAdmin):
    list_display = ('funnel', 'funnel_product', 'commission_type', 'commission_value')
    list_filter = ('commission_type', 'funnel')


@admin.register(Commission)
class CommissionAdmin(ModelAdmin):
    list_display = ('order', 'affiliate_name', 'funnel', 'order_amount', 'commission_amount', 'commission_type', 'status', 'created_at')
    list_filter = ('status', 'commission_type', 'funnel', 'created_at')
    search_fields = ('order__order_number', 'affiliate__name', 'affiliate__email')
    date_hierarchy = 'created_at'
    readonly_fields = (
        'affiliate', 'funnel', 'order', 'funnel_order', 'commission_type', 'commission_rate',
        'order_amount', 'commission_amount', 'breakdown', 'approved_at', 'approved_by', 'paid_at',
    )
    actions = ['approve_commissions', 'reject_commissions', 'mark_as_paid', 'export_payouts_csv']

    @admin.display(description='Affiliate', ordering='affiliate__name')
    def affiliate_name(self, obj):
        return obj.affiliate.name

    @admin.action(description='Approve selected pending commissions')
    def approve_commissions(self, request, queryset):
        done = 0
        for commission in queryset.filter(status=Commission.STATUS_PENDING):
            commission.approve(request.user)
            done += 1
        self.message_user(request, f"{done} commission(s) approved.", messages.SUCCESS)

    @admin.action(description='Reject selected pending commissions')
    def reject_commissions(self, request, queryset):
        done = 0
        for commission in queryset.filter(status=Commission.STATUS_PENDING):
            commission.reject(request.user, notes="Rejected from admin.")
            done += 1
        self.message_user(request, f"{done} commission(s) rejected.", messages.WARNING)

    @admin.action(description='Mark selected approved commissions as PAID')
    def mark_as_paid(self, request, queryset):
        done = 0
        for commission in queryset.filter(status=Commission.STATUS_APPROVED):
            commission.mark_paid()
            done += 1
        self.message_user(request, f"{done} commission(s) marked as paid.", messages.SUCCESS)

    @admin.action(description='Export approved payouts to CSV')
    def export_payouts_csv(self, request, queryset):
        """Generates a CSV file of approved commissions for banking/accounting."""
        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="affiliate_payouts.csv"'

        writer = csv.writer(response)
        writer.writerow(['Commission ID', 'Date', 'Affiliate', 'Email', 'Order', 'Amount'])
        for commission in queryset.filter(status=Commission.STATUS_APPROVED).select_related('affiliate', 'order'):
            writer.writerow([
                commission.id,
                commission.created_at.date(),
                commission.affiliate.name,
                commission.affiliate.email,
                commission.order.order_number,
                commission.commission_amount,
            ])
        return response
