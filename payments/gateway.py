"""
Boundary to the payment provider (Stripe).

Amounts are always integer minor currency units and every intent carries the
local order id in its metadata for reconciliation. Stripe SDK exceptions are
translated here into payments.exceptions and never leak past this module.
"""
import logging
import stripe
from django.conf import settings

from .exceptions import CardDeclined, GatewayUnavailable
from .results import IntentDescriptor

logger = logging.getLogger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY
stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)

INTENT_SUCCEEDED = 'succeeded'


class StripeGateway:

    def __init__(self, currency=None):
        self.currency = (currency or settings.STRIPE_CURRENCY).lower()

    def create_intent(self, amount, currency, metadata, customer_ref=None, receipt_email=None,
                      description=None, save_payment_method=False):
        """
        Creates a PaymentIntent the buyer completes client-side.

        Args:
            amount (int): minor currency units.
            metadata (dict): must contain 'order_id'.
            save_payment_method (bool): keep the card on the customer for later off-session charges.
        """
        params = {
            'amount': self._minor_units(amount),
            'currency': currency.lower(),
            'metadata': self._metadata(metadata),
            'automatic_payment_methods': {'enabled': True},
        }
        if customer_ref:
            params['customer'] = customer_ref
            if save_payment_method:
                params['setup_future_usage'] = 'off_session'
        if receipt_email:
            params['receipt_email'] = receipt_email
        if description:
            params['description'] = description

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent for order {metadata.get('order_id')}: {e}", exc_info=True)
            raise GatewayUnavailable(f"Payment initialization failed: {self._user_message(e)}") from e
        return self._describe(intent)

    def retrieve(self, intent_id):
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving payment intent {intent_id}: {e}", exc_info=True)
            raise GatewayUnavailable(f"Failed to confirm payment: {self._user_message(e)}") from e
        return self._describe(intent)

    def charge_off_session(self, amount, currency, customer_ref, payment_method_ref, metadata):
        """
        Charges a saved payment method without the buyer present and confirms immediately.
        Raises CardDeclined when the issuer refuses (or demands authentication).
        """
        try:
            intent = stripe.PaymentIntent.create(
                amount=self._minor_units(amount),
                currency=currency.lower(),
                customer=customer_ref,
                payment_method=payment_method_ref,
                off_session=True,
                confirm=True,
                metadata=self._metadata(metadata),
            )
        except stripe.CardError as e:
            logger.warning(f"Off-session charge declined for order {metadata.get('order_id')}: {e}")
            raise CardDeclined(self._user_message(e)) from e
        except stripe.StripeError as e:
            logger.error(f"Stripe error charging off-session for order {metadata.get('order_id')}: {e}", exc_info=True)
            raise GatewayUnavailable(f"Payment failed: {self._user_message(e)}") from e
        return self._describe(intent)

    def create_customer(self, email, name=None, metadata=None):
        try:
            customer = stripe.Customer.create(
                email=email,
                name=name or None,
                metadata=self._metadata(metadata or {}, require_order=False),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating customer for {email}: {e}", exc_info=True)
            raise GatewayUnavailable(self._user_message(e)) from e
        return customer.id

    def parse_webhook(self, payload, sig_header):
        """Verifies and decodes a webhook delivery. Raises ValueError when it cannot be trusted."""
        try:
            return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.SignatureVerificationError as e:
            raise ValueError("Invalid signature") from e

    @staticmethod
    def _minor_units(amount):
        if not isinstance(amount, int) or isinstance(amount, bool):
            raise TypeError("Gateway amounts must be integer minor currency units.")
        return amount

    @staticmethod
    def _metadata(metadata, require_order=True):
        if require_order and 'order_id' not in metadata:
            raise ValueError("Payment metadata must carry the order_id for reconciliation.")
        return {key: str(value) for key, value in metadata.items() if value is not None}

    @staticmethod
    def _user_message(error):
        return getattr(error, 'user_message', None) or str(error)

    @staticmethod
    def _describe(intent):
        payment_method = getattr(intent, 'payment_method', None)
        customer = getattr(intent, 'customer', None)
        return IntentDescriptor(
            id=intent.id,
            status=intent.status,
            client_secret=getattr(intent, 'client_secret', None),
            payment_method=getattr(payment_method, 'id', payment_method),
            customer=getattr(customer, 'id', customer),
        )
