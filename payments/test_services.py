from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase

from affiliates.models import Commission, CommissionRule, FunnelAffiliate
from cart.models import FunnelCart
from funnels.models import FunnelAnalytics, FunnelStepProduct
from .exceptions import GatewayUnavailable, InvalidSelection, RequiresPaymentMethod
from .models import Order, FunnelOrder, StripeCustomer
from .services import CheckoutService
from .testing import FakeGateway, build_funnel, CUSTOMER, BILLING_ADDRESS

User = get_user_model()


class CheckoutServiceTestCase(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        self.service = CheckoutService(gateway=self.gateway)
        self.fx = build_funnel()

    def checkout(self, products=None, bumps=None, buyer=None, session=None):
        return self.service.create_checkout(
            session=session or self.fx.session,
            step=self.fx.checkout,
            product_ids=products if products is not None else [self.fx.product_a.id, self.fx.product_b.id],
            bump_ids=bumps if bumps is not None else [self.fx.bump_c.id],
            customer=CUSTOMER,
            billing_address=BILLING_ADDRESS,
            buyer=buyer,
        )

    def paid_checkout(self, buyer=None):
        result = self.checkout(buyer=buyer)
        self.gateway.succeed(result.payment_intent.id)
        confirmation = self.service.confirm_payment(result.payment_intent.id)
        self.assertTrue(confirmation.success)
        result.order.refresh_from_db()
        return result.order


class CreateCheckoutTests(CheckoutServiceTestCase):

    def test_checkout_prices_products_and_bumps(self):
        """Products A (100) + B (50) with bump C (20) give a 170 order and attribution."""
        result = self.checkout()
        order = result.order

        self.assertEqual(result.total, Decimal('170.00'))
        self.assertEqual(order.subtotal, Decimal('150.00'))
        self.assertEqual(order.bump_total, Decimal('20.00'))
        self.assertEqual(order.total, Decimal('170.00'))
        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertEqual(order.payment_status, Order.PAYMENT_PENDING)

        funnel_order = result.funnel_order
        self.assertEqual(funnel_order.order_type, FunnelOrder.TYPE_MAIN)
        self.assertEqual(funnel_order.funnel_revenue, Decimal('170.00'))
        self.assertEqual(funnel_order.bumps_offered, 1)
        self.assertEqual(funnel_order.bumps_accepted, 1)

    def test_order_total_equals_sum_of_line_items(self):
        order = self.checkout().order
        self.assertEqual(order.items.count(), 3)
        self.assertEqual(sum(item.total_price for item in order.items.all()), order.total)
        self.assertEqual(order.total, order.subtotal + order.bump_total)

    def test_intent_is_created_in_minor_units_and_linked_to_order(self):
        result = self.checkout()
        intent = self.gateway.intents[result.payment_intent.id]

        self.assertEqual(intent['amount'], 17000)
        self.assertEqual(intent['metadata']['order_id'], result.order.id)
        self.assertFalse(intent['save_payment_method'])
        self.assertEqual(result.order.stripe_payment_intent_id, result.payment_intent.id)
        self.assertEqual(result.order.metadata['stripe_payment_intent_id'], result.payment_intent.id)
        self.assertEqual(result.as_dict()['client_secret'], f"{result.payment_intent.id}_secret")

    def test_checkout_writes_cart_and_session_contact(self):
        self.checkout()
        cart = FunnelCart.objects.get(session=self.fx.session)
        self.assertEqual(cart.total_amount, Decimal('170.00'))
        self.assertEqual(cart.recovery_status, FunnelCart.STATUS_PENDING)

        self.fx.session.refresh_from_db()
        self.assertEqual(self.fx.session.email, CUSTOMER['email'])
        self.assertTrue(self.fx.session.events.filter(event_type='checkout_initiated').exists())

    def test_repeat_checkout_overwrites_the_cart(self):
        self.checkout()
        self.checkout(products=[self.fx.product_b.id], bumps=[])

        self.assertEqual(FunnelCart.objects.filter(session=self.fx.session).count(), 1)
        cart = FunnelCart.objects.get(session=self.fx.session)
        self.assertEqual(cart.total_amount, Decimal('50.00'))
        self.assertEqual(cart.cart_data['products'], [self.fx.product_b.id])

    def test_product_from_another_step_is_rejected_without_side_effects(self):
        with self.assertRaises(InvalidSelection):
            self.checkout(products=[self.fx.product_a.id, self.fx.upsell_product.id])

        self.assertFalse(Order.objects.exists())
        self.assertFalse(FunnelCart.objects.exists())
        self.assertEqual(self.gateway.intents, {})

    def test_gateway_failure_leaves_pending_order(self):
        """The order is committed before the intent; a timeout surfaces as GatewayUnavailable."""
        self.gateway.fail_create = True

        with self.assertRaises(GatewayUnavailable):
            self.checkout()

        order = Order.objects.get()
        self.assertEqual(order.status, Order.STATUS_PENDING)
        self.assertIsNone(order.stripe_payment_intent_id)

    def test_authenticated_buyer_gets_a_stripe_customer(self):
        buyer = User.objects.create_user(username='jamie', email='jamie@example.com', password='pw')

        result = self.checkout(buyer=buyer)

        stripe_customer = StripeCustomer.objects.get(user=buyer)
        intent = self.gateway.intents[result.payment_intent.id]
        self.assertEqual(intent['customer'], stripe_customer.stripe_customer_id)
        self.assertTrue(intent['save_payment_method'])
        self.assertEqual(result.order.user, buyer)

        # A second checkout reuses the same customer.
        self.checkout(buyer=buyer)
        self.assertEqual(len(self.gateway.customers), 1)


class ConfirmPaymentTests(CheckoutServiceTestCase):

    def test_unfinished_intent_is_not_applied(self):
        result = self.checkout()

        confirmation = self.service.confirm_payment(result.payment_intent.id)

        self.assertFalse(confirmation.success)
        self.assertEqual(confirmation.status, 'requires_payment_method')
        result.order.refresh_from_db()
        self.assertFalse(result.order.is_paid)

    def test_confirmation_marks_order_paid_and_records_conversion(self):
        order = self.paid_checkout()

        self.assertEqual(order.status, Order.STATUS_CONFIRMED)
        self.assertEqual(order.payment_status, Order.PAYMENT_PAID)
        self.assertIsNotNone(order.paid_at)

        self.fx.session.refresh_from_db()
        self.assertTrue(self.fx.session.is_converted)
        self.assertTrue(self.fx.session.events.filter(event_type='payment_completed').exists())

        cart = FunnelCart.objects.get(session=self.fx.session)
        self.assertEqual(cart.recovery_status, FunnelCart.STATUS_RECOVERED)
        self.assertEqual(cart.recovered_order, order)

        step_row = FunnelAnalytics.objects.get(funnel=self.fx.funnel, step=self.fx.checkout)
        funnel_row = FunnelAnalytics.objects.get(funnel=self.fx.funnel, step__isnull=True)
        self.assertEqual((step_row.conversions, step_row.revenue), (1, Decimal('170.00')))
        self.assertEqual((funnel_row.conversions, funnel_row.revenue), (1, Decimal('170.00')))

    def test_second_confirmation_is_idempotent(self):
        """Confirming twice applies analytics and dispatch exactly once."""
        result = self.checkout()
        self.gateway.succeed(result.payment_intent.id)

        with mock.patch('payments.services.notify_conversion_analytics') as notify:
            first = self.service.confirm_payment(result.payment_intent.id)
            second = self.service.confirm_payment(result.payment_intent.id)

        self.assertTrue(first.success)
        self.assertFalse(first.already_processed)
        self.assertTrue(second.success)
        self.assertTrue(second.already_processed)
        self.assertEqual(notify.call_count, 1)
        self.assertEqual(FunnelAnalytics.objects.get(step=self.fx.checkout).conversions, 1)
        self.assertEqual(self.fx.session.events.filter(event_type='payment_completed').count(), 1)

    def test_orphan_confirmation_fails_quietly(self):
        """A succeeded intent with no local order returns success=False and writes nothing."""
        intent_id = self.gateway.add_intent('succeeded', amount=5000, metadata={'order_id': 999})

        with self.assertLogs('payments.services', level='WARNING') as logs:
            confirmation = self.service.confirm_payment(intent_id)

        self.assertFalse(confirmation.success)
        self.assertEqual(confirmation.error, 'orphan_confirmation')
        self.assertIn(intent_id, logs.output[0])
        self.assertFalse(Commission.objects.exists())
        self.assertFalse(FunnelAnalytics.objects.exists())

    def test_gateway_outage_is_a_confirmation_failure(self):
        result = self.checkout()
        self.gateway.succeed(result.payment_intent.id)
        self.gateway.fail_retrieve = True

        confirmation = self.service.confirm_payment(result.payment_intent.id)

        self.assertFalse(confirmation.success)
        self.assertEqual(confirmation.error, 'gateway_unavailable')
        result.order.refresh_from_db()
        self.assertFalse(result.order.is_paid)
        self.assertFalse(FunnelAnalytics.objects.exists())

    def test_failing_side_effect_does_not_fail_confirmation(self):
        result = self.checkout()
        self.gateway.succeed(result.payment_intent.id)

        with mock.patch('payments.services.notify_pixel_purchase', side_effect=RuntimeError("pixel down")), \
                self.assertLogs('payments.services', level='ERROR'):
            confirmation = self.service.confirm_payment(result.payment_intent.id)

        self.assertTrue(confirmation.success)
        result.order.refresh_from_db()
        self.assertTrue(result.order.is_paid)

    def test_confirmation_saves_card_for_one_click_purchases(self):
        buyer = User.objects.create_user(username='jamie', email='jamie@example.com', password='pw')

        self.paid_checkout(buyer=buyer)

        stripe_customer = StripeCustomer.objects.get(user=buyer)
        self.assertEqual(stripe_customer.default_payment_method_id, 'pm_card_visa')
        self.assertTrue(stripe_customer.can_charge_off_session)

    def test_confirming_twice_creates_one_commission(self):
        affiliate = FunnelAffiliate.objects.create(name='Partner', email='partner@example.com')
        self.fx.funnel.affiliate_enabled = True
        self.fx.funnel.save()
        self.fx.session.affiliate = affiliate
        self.fx.session.save()
        CommissionRule.objects.create(
            funnel=self.fx.funnel, funnel_product=self.fx.product_a,
            commission_type=CommissionRule.TYPE_PERCENTAGE, commission_value=Decimal('10'),
        )
        result = self.checkout()
        self.gateway.succeed(result.payment_intent.id)

        self.service.confirm_payment(result.payment_intent.id)
        self.service.confirm_payment(result.payment_intent.id)

        self.assertEqual(Commission.objects.count(), 1)
        self.assertEqual(Commission.objects.get().commission_amount, Decimal('10.00'))


class OneClickUpsellTests(CheckoutServiceTestCase):
    def setUp(self):
        super().setUp()
        self.buyer = User.objects.create_user(username='jamie', email='jamie@example.com', password='pw')
        self.original_order = self.paid_checkout(buyer=self.buyer)
        self.main_funnel_order = self.original_order.funnel_orders.get(order_type=FunnelOrder.TYPE_MAIN)

    def accept(self, step, product, buyer=None):
        return self.service.process_one_click_upsell(
            session=self.fx.session,
            upsell_step=step,
            upsell_product=product,
            original_order=self.original_order,
            buyer=buyer or self.buyer,
        )

    def test_accepted_upsell_is_charged_and_paid(self):
        result = self.accept(self.fx.upsell, self.fx.upsell_product)

        self.assertTrue(result.success)
        order = result.order
        self.assertEqual(order.total, Decimal('47.00'))
        self.assertEqual(order.items.count(), 1)
        self.assertTrue(order.is_paid)
        self.assertEqual(result.funnel_order.order_type, FunnelOrder.TYPE_UPSELL)
        self.assertEqual(result.funnel_order.funnel_revenue, Decimal('47.00'))

        charge = self.gateway.charges[0]
        self.assertEqual(charge['amount'], 4700)
        self.assertEqual(charge['payment_method'], 'pm_card_visa')
        self.assertEqual(charge['metadata']['order_id'], order.id)

        self.main_funnel_order.refresh_from_db()
        self.assertEqual(self.main_funnel_order.upsell_accepted, 1)
        self.assertEqual(self.main_funnel_order.upsell_offered, 0)

        upsell_row = FunnelAnalytics.objects.get(step=self.fx.upsell)
        self.assertEqual(upsell_row.revenue, Decimal('47.00'))
        funnel_row = FunnelAnalytics.objects.get(funnel=self.fx.funnel, step__isnull=True)
        self.assertEqual((funnel_row.conversions, funnel_row.revenue), (2, Decimal('217.00')))

    def test_declined_card_fails_the_upsell_order(self):
        """A CardDeclined charge marks the new order failed and asks for a payment form."""
        self.gateway.decline_charges = True

        result = self.accept(self.fx.upsell, self.fx.upsell_product)

        self.assertFalse(result.success)
        self.assertTrue(result.requires_payment)
        self.assertEqual(result.error, 'card_declined')
        result.order.refresh_from_db()
        self.assertEqual(result.order.status, Order.STATUS_FAILED)
        self.assertFalse(result.order.is_paid)

        self.main_funnel_order.refresh_from_db()
        self.assertEqual(self.main_funnel_order.upsell_offered, 1)
        self.assertEqual(self.main_funnel_order.upsell_accepted, 0)
        self.assertFalse(FunnelAnalytics.objects.filter(step=self.fx.upsell).exists())

    def test_charge_needing_authentication_is_treated_as_declined(self):
        self.gateway.charge_status = 'requires_action'

        result = self.accept(self.fx.upsell, self.fx.upsell_product)

        self.assertFalse(result.success)
        self.assertTrue(result.requires_payment)
        result.order.refresh_from_db()
        self.assertEqual(result.order.status, Order.STATUS_FAILED)

    def test_two_accepted_upsells(self):
        self.accept(self.fx.upsell, self.fx.upsell_product)
        self.accept(self.fx.second_upsell, self.fx.second_upsell_product)

        self.main_funnel_order.refresh_from_db()
        self.assertEqual(self.main_funnel_order.upsell_accepted, 2)
        self.assertEqual(FunnelOrder.objects.filter(session=self.fx.session, order_type=FunnelOrder.TYPE_UPSELL).count(), 2)

    def test_two_declined_upsells(self):
        orders_before = Order.objects.count()

        self.service.decline_upsell(self.fx.session, self.fx.upsell, self.fx.upsell_product, self.original_order)
        self.service.decline_upsell(self.fx.session, self.fx.second_upsell, self.fx.second_upsell_product, self.original_order)

        self.main_funnel_order.refresh_from_db()
        self.assertEqual(self.main_funnel_order.upsell_offered, 2)
        self.assertEqual(self.main_funnel_order.upsell_accepted, 0)
        self.assertEqual(Order.objects.count(), orders_before)
        self.assertEqual(self.gateway.charges, [])
        self.assertEqual(self.fx.session.events.filter(event_type='upsell_declined').count(), 2)

    def test_downsell_step_is_attributed_as_downsell(self):
        result = self.accept(self.fx.downsell, self.fx.downsell_product)
        self.assertEqual(result.funnel_order.order_type, FunnelOrder.TYPE_DOWNSELL)

    def test_buyer_without_saved_card_must_pay_manually(self):
        other = User.objects.create_user(username='guest', email='guest@example.com', password='pw')
        orders_before = Order.objects.count()

        with self.assertRaises(RequiresPaymentMethod):
            self.accept(self.fx.upsell, self.fx.upsell_product, buyer=other)

        self.assertEqual(Order.objects.count(), orders_before)
        self.assertEqual(self.gateway.charges, [])

    def test_anonymous_buyer_must_pay_manually(self):
        with self.assertRaises(RequiresPaymentMethod):
            self.service.process_one_click_upsell(
                self.fx.session, self.fx.upsell, self.fx.upsell_product, self.original_order, buyer=None
            )

    def test_product_must_belong_to_the_upsell_step(self):
        with self.assertRaises(InvalidSelection):
            self.accept(self.fx.upsell, self.fx.second_upsell_product)

    def test_inactive_upsell_product_is_rejected(self):
        FunnelStepProduct.objects.filter(pk=self.fx.upsell_product.pk).update(is_active=False)
        self.fx.upsell_product.refresh_from_db()
        with self.assertRaises(InvalidSelection):
            self.accept(self.fx.upsell, self.fx.upsell_product)

    def test_webhook_replay_of_upsell_charge_is_idempotent(self):
        result = self.accept(self.fx.upsell, self.fx.upsell_product)

        confirmation = self.service.confirm_payment(result.order.stripe_payment_intent_id)

        self.assertTrue(confirmation.success)
        self.assertTrue(confirmation.already_processed)
        self.assertEqual(FunnelAnalytics.objects.get(step=self.fx.upsell).conversions, 1)

    def test_upsell_does_not_earn_affiliate_commission(self):
        """Commission is only derived from the main checkout order."""
        affiliate = FunnelAffiliate.objects.create(name='Partner', email='partner@example.com')
        self.fx.funnel.affiliate_enabled = True
        self.fx.funnel.save()
        self.fx.session.affiliate = affiliate
        self.fx.session.save()
        CommissionRule.objects.create(
            funnel=self.fx.funnel, funnel_product=self.fx.upsell_product,
            commission_type=CommissionRule.TYPE_PERCENTAGE, commission_value=Decimal('10'),
        )

        result = self.accept(self.fx.upsell, self.fx.upsell_product)
        self.service.confirm_payment(result.order.stripe_payment_intent_id)

        self.assertTrue(result.success)
        self.assertFalse(Commission.objects.filter(order=result.order).exists())

    def test_authenticated_charge_completed_later_counts_as_accepted(self):
        self.gateway.charge_status = 'requires_action'
        result = self.accept(self.fx.upsell, self.fx.upsell_product)
        self.gateway.succeed(result.order.stripe_payment_intent_id)

        confirmation = self.service.confirm_payment(result.order.stripe_payment_intent_id)

        self.assertTrue(confirmation.success)
        self.assertFalse(confirmation.already_processed)
        result.order.refresh_from_db()
        self.assertEqual(result.order.status, Order.STATUS_CONFIRMED)
        self.assertTrue(result.order.is_paid)

        self.main_funnel_order.refresh_from_db()
        self.assertEqual(self.main_funnel_order.upsell_offered, 1)
        self.assertEqual(self.main_funnel_order.upsell_accepted, 1)
        self.assertEqual(FunnelAnalytics.objects.get(step=self.fx.upsell).conversions, 1)
        self.assertEqual(self.fx.session.events.filter(event_type='upsell_accepted').count(), 1)
