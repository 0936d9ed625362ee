"""
Checkout error taxonomy.

Gateway SDK exceptions never cross payments.gateway; they are re-raised as
one of the kinds below.
"""


class CheckoutError(Exception):
    """Base class for every checkout failure. `kind` is the stable machine name."""
    kind = 'checkout_error'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    default_message = "Checkout failed."


class InvalidSelection(CheckoutError):
    kind = 'invalid_selection'
    default_message = "One or more selected items are not available on this step."


class InvalidTotal(CheckoutError):
    kind = 'invalid_total'
    default_message = "Invalid order total."


class GatewayUnavailable(CheckoutError):
    kind = 'gateway_unavailable'
    default_message = "The payment provider could not be reached. Please try again."


class CardDeclined(CheckoutError):
    kind = 'card_declined'
    default_message = "Your card was declined."


class RequiresPaymentMethod(CheckoutError):
    """Not a fault: the caller should fall back to the manual payment form."""
    kind = 'requires_payment_method'
    default_message = "No saved payment method is available for one-click purchase."


class OrphanConfirmation(CheckoutError):
    """A succeeded payment intent with no matching local order. Logged, never raised to callers."""
    kind = 'orphan_confirmation'
    default_message = "No order matches this payment."
