"""
Read-only lookups of what a funnel step currently sells.
"""
from .models import FunnelStepProduct, FunnelStepOrderBump


def active_products_for_step(step, ids=None):
    """Active catalog products on a step, optionally restricted to the given ids."""
    products = FunnelStepProduct.objects.filter(step=step, is_active=True)
    if ids is not None:
        products = products.filter(id__in=ids)
    return products


def active_bumps_for_step(step, ids=None):
    """Active order bumps on a step, optionally restricted to the given ids."""
    bumps = FunnelStepOrderBump.objects.filter(step=step, is_active=True)
    if ids is not None:
        bumps = bumps.filter(id__in=ids)
    return bumps


def get_upsell_product(step, product_id):
    """
    Returns the active product offered on an upsell/downsell step, or None.
    """
    return active_products_for_step(step, ids=[product_id]).first()
