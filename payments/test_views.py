import json
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from funnels.models import Funnel, FunnelStepProduct
from .models import Order, FunnelOrder, StripeCustomer
from .testing import FakeGateway, build_funnel, CUSTOMER, BILLING_ADDRESS

User = get_user_model()


class CheckoutViewTestCase(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        patcher = mock.patch('payments.services.StripeGateway', return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.fx = build_funnel()

    def post_json(self, url, data, **extra):
        return self.client.post(url, data=json.dumps(data), content_type='application/json', **extra)

    def checkout_url(self, step=None):
        return reverse('payments:create_checkout', args=[self.fx.funnel.uuid, (step or self.fx.checkout).id])

    def checkout_payload(self, **overrides):
        payload = {
            'session_uuid': str(self.fx.session.uuid),
            'products': [self.fx.product_a.id, self.fx.product_b.id],
            'bumps': [self.fx.bump_c.id],
            'customer': CUSTOMER,
            'billing_address': BILLING_ADDRESS,
        }
        payload.update(overrides)
        return payload


class CheckoutViewTests(CheckoutViewTestCase):

    def test_create_checkout_returns_client_secret(self):
        response = self.post_json(self.checkout_url(), self.checkout_payload())

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['success'])
        self.assertEqual(data['total'], '170.00')
        self.assertEqual(data['publishable_key'], 'pk_test_funnel')
        self.assertTrue(data['client_secret'].endswith('_secret'))
        self.assertTrue(Order.objects.filter(order_number=data['order_number']).exists())

    def test_invalid_payload_is_rejected(self):
        payload = self.checkout_payload(products=[], customer={'email': 'not-an-email'})

        response = self.post_json(self.checkout_url(), payload)

        self.assertEqual(response.status_code, 400)
        errors = response.json()['errors']
        self.assertIn('products', errors)
        self.assertIn('customer', errors)
        self.assertFalse(Order.objects.exists())

    def test_foreign_product_is_unprocessable(self):
        payload = self.checkout_payload(products=[self.fx.upsell_product.id])

        response = self.post_json(self.checkout_url(), payload)

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()['error'], 'invalid_selection')

    def test_gateway_outage_returns_503(self):
        self.gateway.fail_create = True

        response = self.post_json(self.checkout_url(), self.checkout_payload())

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()['error'], 'gateway_unavailable')

    def test_unpublished_funnel_is_not_found(self):
        Funnel.objects.filter(pk=self.fx.funnel.pk).update(status=Funnel.STATUS_DRAFT)

        response = self.post_json(self.checkout_url(), self.checkout_payload())

        self.assertEqual(response.status_code, 404)

    def test_confirm_endpoint(self):
        checkout = self.post_json(self.checkout_url(), self.checkout_payload()).json()
        self.gateway.succeed(checkout['payment_intent_id'])

        response = self.post_json(reverse('payments:confirm_payment'), {'payment_intent_id': checkout['payment_intent_id']})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['order_number'], checkout['order_number'])
        self.assertTrue(Order.objects.get(order_number=checkout['order_number']).is_paid)

    def test_confirm_unfinished_payment_is_bad_request(self):
        checkout = self.post_json(self.checkout_url(), self.checkout_payload()).json()

        response = self.post_json(reverse('payments:confirm_payment'), {'payment_intent_id': checkout['payment_intent_id']})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['status'], 'requires_payment_method')

    def test_webhook_confirms_payment(self):
        checkout = self.post_json(self.checkout_url(), self.checkout_payload()).json()
        self.gateway.succeed(checkout['payment_intent_id'])
        event = {'type': 'payment_intent.succeeded', 'data': {'object': {'id': checkout['payment_intent_id']}}}

        response = self.post_json(reverse('payments:webhook'), event, HTTP_STRIPE_SIGNATURE='valid-signature')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(Order.objects.get(order_number=checkout['order_number']).is_paid)

    def test_webhook_with_bad_signature_is_rejected(self):
        event = {'type': 'payment_intent.succeeded', 'data': {'object': {'id': 'pi_x'}}}

        response = self.post_json(reverse('payments:webhook'), event, HTTP_STRIPE_SIGNATURE='forged')

        self.assertEqual(response.status_code, 400)

    def test_config_endpoint(self):
        response = self.client.get(reverse('payments:config'))

        self.assertEqual(response.json(), {'publishable_key': 'pk_test_funnel', 'is_configured': True, 'currency': 'gbp'})


class UpsellViewTests(CheckoutViewTestCase):
    def setUp(self):
        super().setUp()
        self.buyer = User.objects.create_user(username='jamie', email='jamie@example.com', password='pw')
        self.client.force_login(self.buyer)
        checkout = self.post_json(self.checkout_url(), self.checkout_payload()).json()
        self.gateway.succeed(checkout['payment_intent_id'])
        self.post_json(reverse('payments:confirm_payment'), {'payment_intent_id': checkout['payment_intent_id']})
        self.original_order = Order.objects.get(order_number=checkout['order_number'])

    def upsell_payload(self, product=None):
        return {
            'session_uuid': str(self.fx.session.uuid),
            'product_id': (product or self.fx.upsell_product).id,
            'original_order_id': self.original_order.id,
        }

    def upsell_url(self, name='payments:process_upsell'):
        return reverse(name, args=[self.fx.funnel.uuid, self.fx.upsell.id])

    def test_one_click_upsell(self):
        response = self.post_json(self.upsell_url(), self.upsell_payload())

        self.assertEqual(response.status_code, 200)
        order = Order.objects.get(order_number=response.json()['order_number'])
        self.assertEqual(order.total, Decimal('47.00'))
        self.assertTrue(order.is_paid)

    def test_declined_card_returns_payment_required(self):
        self.gateway.decline_charges = True

        response = self.post_json(self.upsell_url(), self.upsell_payload())

        self.assertEqual(response.status_code, 402)
        self.assertTrue(response.json()['requires_payment'])

    def test_missing_saved_card_returns_payment_required(self):
        StripeCustomer.objects.filter(user=self.buyer).update(default_payment_method_id=None)

        response = self.post_json(self.upsell_url(), self.upsell_payload())

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.json()['error'], 'requires_payment_method')

    def test_decline_endpoint(self):
        response = self.post_json(self.upsell_url('payments:decline_upsell'), self.upsell_payload())

        self.assertEqual(response.status_code, 200)
        main = FunnelOrder.objects.get(order=self.original_order)
        self.assertEqual(main.upsell_offered, 1)

    def test_order_from_another_session_is_not_found(self):
        other_session = self.fx.funnel.sessions.create()
        payload = self.upsell_payload()
        payload['session_uuid'] = str(other_session.uuid)

        response = self.post_json(self.upsell_url(), payload)

        self.assertEqual(response.status_code, 404)

    def test_inactive_offer_is_not_found(self):
        FunnelStepProduct.objects.filter(pk=self.fx.upsell_product.pk).update(is_active=False)

        response = self.post_json(self.upsell_url(), self.upsell_payload())

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.gateway.charges, [])

    def test_inactive_offer_can_still_be_declined(self):
        FunnelStepProduct.objects.filter(pk=self.fx.upsell_product.pk).update(is_active=False)

        response = self.post_json(self.upsell_url('payments:decline_upsell'), self.upsell_payload())

        self.assertEqual(response.status_code, 200)
