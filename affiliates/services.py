import logging
from decimal import Decimal, ROUND_HALF_UP

from .models import Commission, CommissionRule

logger = logging.getLogger(__name__)


def calculate_commission(funnel_order, session):
    """
    Derives the affiliate payout for a paid funnel order.
    Logic:
    1. No-op unless the session was referred and the funnel tracks affiliates.
    2. Every line item sold on the attributed step is matched against the
       (funnel, product) rule and its commission accumulated.
    3. One pending Commission row is written for the order. Its type and rate
       are those of the last matched rule; `breakdown` keeps every match.

    Returns the Commission, or None when nothing is owed. The caller must only
    invoke this once per order.
    """
    funnel = funnel_order.funnel
    affiliate = session.affiliate if session else None
    if affiliate is None or not funnel.affiliate_enabled:
        return None

    order = funnel_order.order
    items = list(
        order.items.filter(funnel_product__step_id=funnel_order.step_id).select_related('funnel_product').order_by('id')
    )
    rules = {
        rule.funnel_product_id: rule
        for rule in CommissionRule.objects.filter(
            funnel=funnel, funnel_product_id__in=[item.funnel_product_id for item in items]
        )
    }

    total_commission = Decimal('0.00')
    last_rule = None
    breakdown = []
    for item in items:
        rule = rules.get(item.funnel_product_id)
        if rule is None:
            continue
        amount = rule.commission_for(item.total_price).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        total_commission += amount
        last_rule = rule
        breakdown.append({
            'funnel_product_id': item.funnel_product_id,
            'product_name': item.name,
            'price': str(item.total_price),
            'commission_type': rule.commission_type,
            'commission_rate': str(rule.commission_value),
            'commission_amount': str(amount),
        })

    if total_commission <= 0:
        return None

    commission = Commission.objects.create(
        affiliate=affiliate,
        funnel=funnel,
        order=order,
        funnel_order=funnel_order,
        commission_type=last_rule.commission_type,
        commission_rate=last_rule.commission_value,
        order_amount=funnel_order.funnel_revenue,
        commission_amount=total_commission,
        breakdown=breakdown,
    )
    logger.info(
        f"Commission {commission.commission_amount} created for affiliate {affiliate.id} "
        f"on order {order.order_number}"
    )
    return commission
