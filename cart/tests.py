from decimal import Decimal

from django.test import TestCase

from funnels.models import FunnelStepProduct
from payments.exceptions import InvalidSelection, InvalidTotal
from payments.models import Order
from payments.testing import build_funnel, CUSTOMER
from .models import FunnelCart
from .utils import build_cart_snapshot, save_cart_snapshot


class CartSnapshotTests(TestCase):
    def setUp(self):
        self.fx = build_funnel()

    def test_snapshot_totals(self):
        snapshot = build_cart_snapshot(
            self.fx.checkout, [self.fx.product_a.id, self.fx.product_b.id], [self.fx.bump_c.id]
        )

        self.assertEqual(snapshot['subtotal'], Decimal('150.00'))
        self.assertEqual(snapshot['bump_total'], Decimal('20.00'))
        self.assertEqual(snapshot['total'], Decimal('170.00'))
        self.assertEqual(snapshot['bumps_offered'], 1)
        self.assertEqual(snapshot['bumps_accepted'], 1)

    def test_duplicate_ids_are_counted_once(self):
        snapshot = build_cart_snapshot(self.fx.checkout, [self.fx.product_a.id, str(self.fx.product_a.id)], [])
        self.assertEqual(snapshot['total'], Decimal('100.00'))

    def test_empty_selection_is_invalid(self):
        with self.assertRaises(InvalidSelection):
            build_cart_snapshot(self.fx.checkout, [], [self.fx.bump_c.id])

    def test_inactive_product_is_invalid(self):
        FunnelStepProduct.objects.filter(pk=self.fx.product_b.pk).update(is_active=False)
        with self.assertRaises(InvalidSelection):
            build_cart_snapshot(self.fx.checkout, [self.fx.product_a.id, self.fx.product_b.id], [])

    def test_bump_from_another_step_is_invalid(self):
        with self.assertRaises(InvalidSelection):
            build_cart_snapshot(self.fx.upsell, [self.fx.upsell_product.id], [self.fx.bump_c.id])

    def test_missing_product_list_is_invalid(self):
        with self.assertRaises(InvalidSelection):
            build_cart_snapshot(self.fx.checkout, None, [self.fx.bump_c.id])

    def test_non_numeric_id_is_invalid(self):
        with self.assertRaises(InvalidSelection):
            build_cart_snapshot(self.fx.checkout, ['abc'], [])

    def test_free_selection_is_an_invalid_total(self):
        free = FunnelStepProduct.objects.create(step=self.fx.checkout, name='Free Guide', funnel_price=Decimal('0.00'))
        with self.assertRaises(InvalidTotal):
            build_cart_snapshot(self.fx.checkout, [free.id], [])

    def test_save_snapshot_upserts_one_cart_per_session(self):
        first = build_cart_snapshot(self.fx.checkout, [self.fx.product_a.id], [self.fx.bump_c.id])
        second = build_cart_snapshot(self.fx.checkout, [self.fx.product_b.id], [])

        save_cart_snapshot(self.fx.session, self.fx.checkout, first, CUSTOMER)
        cart = save_cart_snapshot(self.fx.session, self.fx.checkout, second, CUSTOMER)

        self.assertEqual(FunnelCart.objects.count(), 1)
        self.assertEqual(cart.total_amount, Decimal('50.00'))
        self.assertEqual(cart.cart_data['bumps'], [])
        self.assertEqual(cart.cart_data['items'][0]['name'], 'Course B')
        self.assertEqual(cart.email, CUSTOMER['email'])


class RecoveryStatusTests(TestCase):
    def setUp(self):
        self.fx = build_funnel()
        snapshot = build_cart_snapshot(self.fx.checkout, [self.fx.product_a.id], [])
        self.snapshot = snapshot
        self.cart = save_cart_snapshot(self.fx.session, self.fx.checkout, snapshot, CUSTOMER)

    def test_status_moves_forward(self):
        self.assertTrue(self.cart.advance_recovery_status(FunnelCart.STATUS_SENT))
        self.assertTrue(self.cart.advance_recovery_status(FunnelCart.STATUS_EXPIRED))
        self.assertEqual(self.cart.recovery_status, FunnelCart.STATUS_EXPIRED)

    def test_status_never_regresses(self):
        order = Order.objects.create(subtotal=Decimal('100.00'), total=Decimal('100.00'))
        self.assertTrue(self.cart.mark_as_recovered(order))

        self.assertFalse(self.cart.advance_recovery_status(FunnelCart.STATUS_PENDING))
        self.assertFalse(self.cart.advance_recovery_status(FunnelCart.STATUS_SENT))
        self.assertFalse(self.cart.advance_recovery_status(FunnelCart.STATUS_EXPIRED))
        self.assertFalse(self.cart.mark_as_recovered(order))

        self.cart.refresh_from_db()
        self.assertEqual(self.cart.recovery_status, FunnelCart.STATUS_RECOVERED)
        self.assertEqual(self.cart.recovered_order, order)

    def test_new_checkout_does_not_reset_status(self):
        self.cart.advance_recovery_status(FunnelCart.STATUS_SENT)

        cart = save_cart_snapshot(self.fx.session, self.fx.checkout, self.snapshot, CUSTOMER)

        self.assertEqual(cart.recovery_status, FunnelCart.STATUS_SENT)
