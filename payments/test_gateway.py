from unittest import mock

import stripe
from django.test import SimpleTestCase

from .exceptions import CardDeclined, GatewayUnavailable
from .gateway import StripeGateway


def stripe_intent(**fields):
    data = {'id': 'pi_123', 'status': 'requires_payment_method', 'client_secret': 'pi_123_secret',
            'payment_method': None, 'customer': None}
    data.update(fields)
    return stripe.PaymentIntent.construct_from(data, 'sk_test_funnel')


class StripeGatewayTests(SimpleTestCase):
    def setUp(self):
        self.gateway = StripeGateway(currency='GBP')

    @mock.patch('payments.gateway.stripe.PaymentIntent.create')
    def test_create_intent_sends_minor_units_and_order_metadata(self, create):
        create.return_value = stripe_intent()

        intent = self.gateway.create_intent(17000, 'GBP', metadata={'order_id': 7, 'session_id': None})

        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs['amount'], 17000)
        self.assertEqual(kwargs['currency'], 'gbp')
        self.assertEqual(kwargs['metadata'], {'order_id': '7'})
        self.assertNotIn('setup_future_usage', kwargs)
        self.assertEqual(intent.id, 'pi_123')
        self.assertEqual(intent.client_secret, 'pi_123_secret')

    @mock.patch('payments.gateway.stripe.PaymentIntent.create')
    def test_create_intent_for_customer_can_save_card(self, create):
        create.return_value = stripe_intent(customer='cus_1')

        self.gateway.create_intent(500, 'gbp', metadata={'order_id': 1}, customer_ref='cus_1', save_payment_method=True)

        self.assertEqual(create.call_args.kwargs['customer'], 'cus_1')
        self.assertEqual(create.call_args.kwargs['setup_future_usage'], 'off_session')

    def test_amount_must_be_integer_minor_units(self):
        with self.assertRaises(TypeError):
            self.gateway.create_intent(170.0, 'gbp', metadata={'order_id': 1})

    def test_metadata_must_carry_order_id(self):
        with self.assertRaises(ValueError):
            self.gateway.create_intent(100, 'gbp', metadata={'session_id': 1})

    @mock.patch('payments.gateway.stripe.PaymentIntent.create')
    def test_provider_error_becomes_gateway_unavailable(self, create):
        create.side_effect = stripe.APIConnectionError("Network down")

        with self.assertRaises(GatewayUnavailable):
            self.gateway.create_intent(100, 'gbp', metadata={'order_id': 1})

    @mock.patch('payments.gateway.stripe.PaymentIntent.retrieve')
    def test_retrieve_reports_status_and_payment_method(self, retrieve):
        retrieve.return_value = stripe_intent(status='succeeded', payment_method='pm_1')

        intent = self.gateway.retrieve('pi_123')

        self.assertEqual(intent.status, 'succeeded')
        self.assertEqual(intent.payment_method, 'pm_1')

    @mock.patch('payments.gateway.stripe.PaymentIntent.retrieve')
    def test_retrieve_failure_becomes_gateway_unavailable(self, retrieve):
        retrieve.side_effect = stripe.APIError("Server error")

        with self.assertRaises(GatewayUnavailable):
            self.gateway.retrieve('pi_123')

    @mock.patch('payments.gateway.stripe.PaymentIntent.create')
    def test_off_session_charge_confirms_immediately(self, create):
        create.return_value = stripe_intent(id='pi_up', status='succeeded')

        intent = self.gateway.charge_off_session(4700, 'gbp', 'cus_1', 'pm_1', metadata={'order_id': 9})

        kwargs = create.call_args.kwargs
        self.assertTrue(kwargs['off_session'])
        self.assertTrue(kwargs['confirm'])
        self.assertEqual(kwargs['payment_method'], 'pm_1')
        self.assertEqual(intent.status, 'succeeded')

    @mock.patch('payments.gateway.stripe.PaymentIntent.create')
    def test_card_error_becomes_card_declined(self, create):
        create.side_effect = stripe.CardError("Your card was declined.", param=None, code='card_declined')

        with self.assertRaises(CardDeclined) as ctx:
            self.gateway.charge_off_session(4700, 'gbp', 'cus_1', 'pm_1', metadata={'order_id': 9})

        self.assertIn("declined", ctx.exception.message)

    @mock.patch('payments.gateway.stripe.Customer.create')
    def test_create_customer_returns_id(self, create):
        create.return_value = mock.Mock(id='cus_42')

        self.assertEqual(self.gateway.create_customer('a@example.com', metadata={'user_id': 3}), 'cus_42')
        self.assertEqual(create.call_args.kwargs['metadata'], {'user_id': '3'})

    @mock.patch('payments.gateway.stripe.Webhook.construct_event')
    def test_bad_webhook_signature_is_rejected(self, construct_event):
        construct_event.side_effect = stripe.SignatureVerificationError("bad", "sig")

        with self.assertRaises(ValueError):
            self.gateway.parse_webhook(b'{}', 'sig')
