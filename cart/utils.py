from decimal import Decimal

from funnels.catalog import active_products_for_step, active_bumps_for_step
from payments.exceptions import InvalidSelection, InvalidTotal
from .models import FunnelCart


def build_cart_snapshot(step, product_ids, bump_ids=None):
    """
    Prices the buyer's selection on a step.
    - Every product/bump id must be active on this step.
    - Subtotal: sum of the selected products' funnel prices.
    - Bump Total: sum of the selected order bumps.
    - Total: Subtotal + Bump Total, must be positive.
    """
    product_ids = _unique_ids(product_ids or [])
    bump_ids = _unique_ids(bump_ids or [])
    if not product_ids:
        raise InvalidSelection("Select at least one product.")

    products = list(active_products_for_step(step, ids=product_ids))
    bumps = list(active_bumps_for_step(step, ids=bump_ids))

    unknown_products = set(product_ids) - {product.id for product in products}
    unknown_bumps = set(bump_ids) - {bump.id for bump in bumps}
    if unknown_products or unknown_bumps:
        raise InvalidSelection(
            f"Items not available on step {step.id}: "
            f"products={sorted(unknown_products)} bumps={sorted(unknown_bumps)}"
        )

    subtotal = sum((product.funnel_price for product in products), Decimal('0.00'))
    bump_total = sum((bump.price for bump in bumps), Decimal('0.00'))
    total = subtotal + bump_total
    if total <= 0:
        raise InvalidTotal()

    return {
        'products': products,
        'bumps': bumps,
        'subtotal': subtotal,
        'bump_total': bump_total,
        'total': total,
        'bumps_offered': active_bumps_for_step(step).count(),
        'bumps_accepted': len(bumps),
    }


def save_cart_snapshot(session, step, snapshot, customer):
    """
    Upserts the cart for (session, funnel), replacing any earlier unpaid selection.
    The recovery status is left alone so it never moves backwards.
    """
    cart_data = {
        'products': [product.id for product in snapshot['products']],
        'bumps': [bump.id for bump in snapshot['bumps']],
        'items': [
            {'id': product.id, 'name': product.name, 'price': str(product.funnel_price), 'is_bump': False}
            for product in snapshot['products']
        ] + [
            {'id': bump.id, 'name': bump.name, 'price': str(bump.price), 'is_bump': True}
            for bump in snapshot['bumps']
        ],
    }
    cart, _ = FunnelCart.objects.update_or_create(
        session=session,
        funnel_id=session.funnel_id,
        defaults={
            'step': step,
            'email': customer.get('email'),
            'phone': customer.get('phone'),
            'cart_data': cart_data,
            'total_amount': snapshot['total'],
        },
    )
    return cart


def _unique_ids(ids):
    seen = []
    for raw in ids:
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise InvalidSelection(f"Invalid item id: {raw!r}")
        if value not in seen:
            seen.append(value)
    return seen
