"""
In-memory stand-ins used by the test suites of every funnel app.
"""
import json
from decimal import Decimal
from types import SimpleNamespace

from funnels.models import Funnel, FunnelStep, FunnelStepProduct, FunnelStepOrderBump, FunnelSession
from .exceptions import CardDeclined, GatewayUnavailable
from .gateway import INTENT_SUCCEEDED
from .results import IntentDescriptor


class FakeGateway:
    """
    Records every call and keeps intents in a dict. Flip the flags to
    simulate provider failures.
    """
    currency = 'gbp'

    def __init__(self):
        self.intents = {}
        self.customers = []
        self.charges = []
        self.fail_create = False
        self.fail_retrieve = False
        self.decline_charges = False
        self.charge_status = INTENT_SUCCEEDED

    def create_intent(self, amount, currency, metadata, customer_ref=None, receipt_email=None,
                      description=None, save_payment_method=False):
        if self.fail_create:
            raise GatewayUnavailable("Payment initialization failed: connection timed out")
        assert isinstance(amount, int), "amounts must be minor units"
        assert 'order_id' in metadata
        intent_id = self.add_intent('requires_payment_method', amount=amount, metadata=metadata,
                                    customer=customer_ref, save_payment_method=save_payment_method)
        return self._describe(intent_id)

    def retrieve(self, intent_id):
        if self.fail_retrieve:
            raise GatewayUnavailable("Failed to confirm payment: connection timed out")
        return self._describe(intent_id)

    def charge_off_session(self, amount, currency, customer_ref, payment_method_ref, metadata):
        self.charges.append({'amount': amount, 'customer': customer_ref, 'payment_method': payment_method_ref, 'metadata': metadata})
        if self.decline_charges:
            raise CardDeclined("Your card was declined.")
        intent_id = self.add_intent(self.charge_status, amount=amount, metadata=metadata,
                                    customer=customer_ref, payment_method=payment_method_ref)
        return self._describe(intent_id)

    def create_customer(self, email, name=None, metadata=None):
        customer_id = f"cus_test_{len(self.customers) + 1}"
        self.customers.append({'id': customer_id, 'email': email, 'name': name})
        return customer_id

    def parse_webhook(self, payload, sig_header):
        if sig_header != 'valid-signature':
            raise ValueError("Invalid signature")
        return json.loads(payload)

    def add_intent(self, status, **fields):
        intent_id = f"pi_test_{len(self.intents) + 1}"
        self.intents[intent_id] = {'status': status, 'payment_method': None, **fields}
        return intent_id

    def succeed(self, intent_id, payment_method='pm_card_visa'):
        self.intents[intent_id].update(status=INTENT_SUCCEEDED, payment_method=payment_method)

    def _describe(self, intent_id):
        intent = self.intents.get(intent_id, {'status': 'requires_payment_method'})
        return IntentDescriptor(
            id=intent_id,
            status=intent['status'],
            client_secret=f"{intent_id}_secret",
            payment_method=intent.get('payment_method'),
            customer=intent.get('customer'),
        )


def build_funnel(name='Launch Funnel', affiliate_enabled=False, affiliate=None):
    """
    A published funnel with a checkout step (A=100, B=50, bump C=20),
    an upsell step (47), a second upsell step (97) and a downsell step (27).
    """
    funnel = Funnel.objects.create(name=name, status=Funnel.STATUS_PUBLISHED, affiliate_enabled=affiliate_enabled)
    checkout = FunnelStep.objects.create(funnel=funnel, name='Checkout', step_type=FunnelStep.TYPE_CHECKOUT, sort_order=1)
    upsell = FunnelStep.objects.create(funnel=funnel, name='Upsell', step_type=FunnelStep.TYPE_UPSELL, sort_order=2)
    second_upsell = FunnelStep.objects.create(funnel=funnel, name='VIP Upsell', step_type=FunnelStep.TYPE_UPSELL, sort_order=3)
    downsell = FunnelStep.objects.create(funnel=funnel, name='Downsell', step_type=FunnelStep.TYPE_DOWNSELL, sort_order=4)

    return SimpleNamespace(
        funnel=funnel,
        checkout=checkout,
        upsell=upsell,
        second_upsell=second_upsell,
        downsell=downsell,
        product_a=FunnelStepProduct.objects.create(step=checkout, name='Course A', funnel_price=Decimal('100.00')),
        product_b=FunnelStepProduct.objects.create(step=checkout, name='Course B', funnel_price=Decimal('50.00')),
        bump_c=FunnelStepOrderBump.objects.create(step=checkout, name='Workbook', price=Decimal('20.00')),
        upsell_product=FunnelStepProduct.objects.create(step=upsell, name='Coaching Call', funnel_price=Decimal('47.00')),
        second_upsell_product=FunnelStepProduct.objects.create(step=second_upsell, name='VIP Group', funnel_price=Decimal('97.00')),
        downsell_product=FunnelStepProduct.objects.create(step=downsell, name='Audio Edition', funnel_price=Decimal('27.00')),
        session=FunnelSession.objects.create(funnel=funnel, affiliate=affiliate),
    )


CUSTOMER = {'email': 'buyer@example.com', 'name': 'Jamie Buyer', 'phone': '07700900123'}

BILLING_ADDRESS = {
    'first_name': 'Jamie',
    'last_name': 'Buyer',
    'address_line_1': '1 High Street',
    'city': 'Leeds',
    'state': 'West Yorkshire',
    'postal_code': 'LS1 1AA',
    'country': 'GB',
}
