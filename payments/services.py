import logging
from decimal import Decimal

from django.db import transaction

from affiliates.services import calculate_commission
from cart.models import FunnelCart
from cart.utils import build_cart_snapshot, save_cart_snapshot
from funnels.dispatch import notify_conversion_analytics, notify_automation_trigger, notify_pixel_purchase
from funnels.events import EVENT_PURCHASE_COMPLETED, EVENT_UPSELL_PURCHASED
from funnels.models import FunnelAnalytics, FunnelStep

from .exceptions import (
    CardDeclined, GatewayUnavailable, InvalidSelection, OrphanConfirmation, RequiresPaymentMethod,
)
from .gateway import StripeGateway, INTENT_SUCCEEDED
from .models import Order, OrderItem, FunnelOrder, StripeCustomer
from .results import CheckoutResult, ConfirmationResult, UpsellResult

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Turns a buyer's selection into a paid order.

    The buyer (a user or None) is always passed in by the caller; nothing here
    reads the current request.
    """

    def __init__(self, gateway=None):
        self.gateway = gateway or StripeGateway()

    def create_checkout(self, session, step, product_ids, bump_ids, customer, billing_address=None,
                        shipping_address=None, buyer=None):
        """
        Creates the pending order for a checkout step and its payment intent.

        Args:
            customer (dict): 'email', 'name' and 'phone' of the buyer.
            buyer (User): the authenticated buyer, if any. Their card is kept for one-click upsells.

        Raises InvalidSelection/InvalidTotal before anything is written, and
        GatewayUnavailable after the order is committed (it stays pending).
        """
        customer = customer or {}

        # 1. Price the selection
        snapshot = build_cart_snapshot(step, product_ids, bump_ids)

        # 2. Cart, order, line items and attribution in one transaction
        with transaction.atomic():
            save_cart_snapshot(session, step, snapshot, customer)

            order = Order.objects.create(
                user=buyer if _is_authenticated(buyer) else None,
                funnel_id=session.funnel_id,
                email=customer.get('email'),
                customer_name=customer.get('name') or '',
                customer_phone=customer.get('phone') or '',
                billing_address=billing_address or {},
                shipping_address=shipping_address or billing_address or {},
                subtotal=snapshot['subtotal'],
                bump_total=snapshot['bump_total'],
                total=snapshot['total'],
                currency=self.gateway.currency,
                metadata={'session_id': session.id, 'step_id': step.id},
            )
            for product in snapshot['products']:
                OrderItem.objects.create(
                    order=order,
                    funnel_product=product,
                    name=product.name,
                    description=product.description,
                    unit_price=product.funnel_price,
                    total_price=product.funnel_price,
                    metadata={
                        'is_recurring': product.is_recurring,
                        'billing_interval': product.billing_interval,
                    },
                )
            for bump in snapshot['bumps']:
                OrderItem.objects.create(
                    order=order,
                    order_bump=bump,
                    name=bump.name,
                    description=bump.description,
                    unit_price=bump.price,
                    total_price=bump.price,
                )

            funnel_order = FunnelOrder.objects.create(
                funnel_id=session.funnel_id,
                session=session,
                order=order,
                step=step,
                order_type=FunnelOrder.TYPE_MAIN,
                funnel_revenue=snapshot['total'],
                bumps_offered=snapshot['bumps_offered'],
                bumps_accepted=snapshot['bumps_accepted'],
            )

            self._update_session_contact(session, customer)
            session.track_event('checkout_initiated', {
                'order_id': order.id,
                'total': str(order.total),
            }, step=step)

        logger.info(f"Order {order.order_number} created for session {session.uuid}: total {order.total}")

        # 3. Payment intent, outside the transaction
        customer_ref = self._get_or_create_stripe_customer(buyer, customer)
        intent = self.gateway.create_intent(
            order.total_minor_units,
            order.currency,
            metadata={
                'order_id': order.id,
                'order_number': order.order_number,
                'funnel_id': session.funnel_id,
                'session_id': session.id,
                'step_id': step.id,
            },
            customer_ref=customer_ref,
            receipt_email=order.email,
            description=f"Order {order.order_number}",
            save_payment_method=bool(customer_ref),
        )
        order.attach_payment_intent(intent.id)

        return CheckoutResult(order=order, funnel_order=funnel_order, total=order.total, payment_intent=intent)

    def confirm_payment(self, payment_intent_id):
        """
        Reconciles a gateway confirmation into order state, exactly once.
        Used by both the buyer's confirm call and the Stripe webhook.
        """
        try:
            intent = self.gateway.retrieve(payment_intent_id)
        except GatewayUnavailable as e:
            return ConfirmationResult(success=False, status='unknown', message=e.message, error=e.kind)

        if intent.status != INTENT_SUCCEEDED:
            return ConfirmationResult(
                success=False, status=intent.status, message=f"Payment not completed. Status: {intent.status}"
            )

        order = Order.objects.filter(stripe_payment_intent_id=intent.id).first()
        if order is None:
            logger.warning(f"Orphan confirmation: payment intent {intent.id} succeeded but matches no order.")
            return ConfirmationResult(
                success=False, status=intent.status,
                message=OrphanConfirmation.default_message, error=OrphanConfirmation.kind,
            )

        was_failed = order.status == Order.STATUS_FAILED
        if not self.mark_order_paid(order):
            logger.info(f"Payment intent {intent.id} already applied to order {order.order_number}.")
            return ConfirmationResult(
                success=True, status=intent.status, order=order,
                message="Payment already confirmed.", already_processed=True,
            )

        self._save_payment_method(order, intent)
        if was_failed:
            self._record_late_upsell_acceptance(order)
        self._run_post_payment_effects(order)
        return ConfirmationResult(success=True, status=intent.status, order=order, message="Payment confirmed.")

    def mark_order_paid(self, order):
        """
        Atomic compare-and-set from unpaid to paid, with its in-transaction
        bookkeeping: session converted, cart recovered and analytics counted.

        Returns False (and changes nothing) when the order was already paid.
        """
        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            if locked.is_paid:
                return False
            locked.mark_paid()

            funnel_order = locked.funnel_orders.select_related('session').first()
            revenue = funnel_order.funnel_revenue if funnel_order else locked.total

            if funnel_order:
                session = funnel_order.session
                session.mark_as_converted()
                cart = FunnelCart.objects.filter(session=session, funnel_id=funnel_order.funnel_id).first()
                if cart:
                    cart.mark_as_recovered(locked)
                session.track_event('payment_completed', {
                    'order_id': locked.id,
                    'order_type': funnel_order.order_type,
                    'revenue': str(revenue),
                }, step=funnel_order.step)
                FunnelAnalytics.increment_conversions(funnel_order.funnel_id, funnel_order.step_id, revenue)

            if locked.funnel_id:
                FunnelAnalytics.increment_conversions(locked.funnel_id, None, revenue)

        order.refresh_from_db()
        logger.info(f"Order {order.order_number} marked paid.")
        return True

    def process_one_click_upsell(self, session, upsell_step, upsell_product, original_order, buyer=None):
        """
        Charges the buyer's saved card for an upsell/downsell offer.

        Raises RequiresPaymentMethod when there is no saved card, so the caller
        can show the manual payment form. A declined or failed charge is
        reported with requires_payment=True.
        """
        if upsell_product.step_id != upsell_step.id or not upsell_product.is_active:
            raise InvalidSelection(f"Product {upsell_product.id} is not offered on step {upsell_step.id}.")

        stripe_customer = self._saved_payment_method(buyer)
        original_funnel_order = self._main_funnel_order(original_order)
        price = upsell_product.funnel_price

        # 1. Order and attribution for the offer
        with transaction.atomic():
            order = Order.objects.create(
                user=buyer,
                funnel_id=session.funnel_id,
                email=original_order.email or session.email,
                customer_name=original_order.customer_name,
                customer_phone=original_order.customer_phone,
                billing_address=original_order.billing_address,
                shipping_address=original_order.shipping_address,
                subtotal=price,
                bump_total=Decimal('0.00'),
                total=price,
                currency=original_order.currency,
                metadata={
                    'session_id': session.id,
                    'step_id': upsell_step.id,
                    'parent_order_id': original_order.id,
                },
            )
            OrderItem.objects.create(
                order=order,
                funnel_product=upsell_product,
                name=upsell_product.name,
                description=upsell_product.description,
                unit_price=price,
                total_price=price,
                metadata={'is_upsell': True},
            )
            funnel_order = FunnelOrder.objects.create(
                funnel_id=session.funnel_id,
                session=session,
                order=order,
                step=upsell_step,
                order_type=(
                    FunnelOrder.TYPE_DOWNSELL if upsell_step.step_type == FunnelStep.TYPE_DOWNSELL
                    else FunnelOrder.TYPE_UPSELL
                ),
                funnel_revenue=price,
            )

        # 2. Off-session charge
        try:
            intent = self.gateway.charge_off_session(
                order.total_minor_units,
                order.currency,
                customer_ref=stripe_customer.stripe_customer_id,
                payment_method_ref=stripe_customer.default_payment_method_id,
                metadata={
                    'order_id': order.id,
                    'order_number': order.order_number,
                    'funnel_id': session.funnel_id,
                    'session_id': session.id,
                    'step_id': upsell_step.id,
                    'parent_order_id': original_order.id,
                },
            )
            order.attach_payment_intent(intent.id)
            if intent.status != INTENT_SUCCEEDED:
                raise CardDeclined(f"Payment could not be completed. Status: {intent.status}")
        except (CardDeclined, GatewayUnavailable) as e:
            order.mark_failed(e.message)
            if original_funnel_order:
                original_funnel_order.record_upsell_offered()
            session.track_event('upsell_failed', {
                'order_id': order.id,
                'product_id': upsell_product.id,
                'error': e.kind,
            }, step=upsell_step)
            logger.warning(f"One-click upsell failed for order {order.order_number}: {e.message}")
            return UpsellResult(
                success=False, order=order, funnel_order=funnel_order,
                message=e.message, error=e.kind, requires_payment=True,
            )

        # 3. Same settlement as a confirmed checkout
        if self.mark_order_paid(order):
            self._run_post_payment_effects(order)
        if original_funnel_order:
            original_funnel_order.record_upsell_accepted()
        session.track_event('upsell_accepted', {
            'order_id': order.id,
            'product_id': upsell_product.id,
            'amount': str(price),
        }, step=upsell_step)
        logger.info(f"Upsell order {order.order_number} paid for session {session.uuid}")

        return UpsellResult(success=True, order=order, funnel_order=funnel_order, message="Upsell purchased.")

    def decline_upsell(self, session, upsell_step, upsell_product, original_order):
        """Bookkeeping only: no order, no gateway call."""
        original_funnel_order = self._main_funnel_order(original_order)
        if original_funnel_order:
            original_funnel_order.record_upsell_offered()
        session.track_event('upsell_declined', {
            'product_id': upsell_product.id if upsell_product else None,
            'original_order_id': original_order.id,
        }, step=upsell_step)
        logger.info(f"Upsell on step {upsell_step.id} declined for order {original_order.order_number}")

    def _run_post_payment_effects(self, order):
        """
        Commission, analytics, automation and pixel hooks for a freshly paid order.
        Each is attempted independently; a failure is logged and never raised.
        Only the main checkout order earns an affiliate commission.
        """
        funnel_order = order.funnel_orders.select_related('funnel', 'session__affiliate').first()
        if funnel_order is None:
            logger.warning(f"Order {order.order_number} has no funnel attribution; skipping side effects.")
            return
        session = funnel_order.session
        event_type = EVENT_PURCHASE_COMPLETED if funnel_order.order_type == FunnelOrder.TYPE_MAIN else EVENT_UPSELL_PURCHASED

        # 1. Affiliate commission
        if funnel_order.order_type == FunnelOrder.TYPE_MAIN:
            try:
                calculate_commission(funnel_order, session)
            except Exception as e:
                logger.error(f"Commission calculation failed for order {order.order_number}: {e}", exc_info=True)

        # 2. Conversion analytics
        try:
            notify_conversion_analytics(funnel_order.funnel_id, funnel_order.step_id, funnel_order.funnel_revenue, order.id)
        except Exception as e:
            logger.error(f"Analytics notification failed for order {order.order_number}: {e}", exc_info=True)

        # 3. Automations
        try:
            notify_automation_trigger(event_type, {'order': order, 'session': session}, funnel_id=funnel_order.funnel_id)
        except Exception as e:
            logger.error(f"Automation trigger failed for order {order.order_number}: {e}", exc_info=True)

        # 4. Server-side pixel
        try:
            notify_pixel_purchase(order, session)
        except Exception as e:
            logger.error(f"Pixel purchase failed for order {order.order_number}: {e}", exc_info=True)

    def _record_late_upsell_acceptance(self, order):
        """
        An off-session charge that needed authentication was recorded as a failed
        upsell; the buyer completed it afterwards, so count it as accepted.
        """
        funnel_order = order.funnel_orders.select_related('session', 'step').first()
        parent_order_id = (order.metadata or {}).get('parent_order_id')
        if funnel_order is None or funnel_order.order_type == FunnelOrder.TYPE_MAIN or not parent_order_id:
            return
        parent = Order.objects.filter(pk=parent_order_id).first()
        original_funnel_order = self._main_funnel_order(parent) if parent else None
        if original_funnel_order:
            original_funnel_order.record_upsell_accepted()
        funnel_order.session.track_event('upsell_accepted', {
            'order_id': order.id,
            'amount': str(order.total),
            'late': True,
        }, step=funnel_order.step)
        logger.info(f"Upsell order {order.order_number} completed after authentication; recorded as accepted.")

    def _get_or_create_stripe_customer(self, buyer, customer):
        if not _is_authenticated(buyer):
            return None
        stripe_customer = StripeCustomer.objects.filter(user=buyer).first()
        if stripe_customer:
            return stripe_customer.stripe_customer_id

        customer_id = self.gateway.create_customer(
            email=buyer.email or customer.get('email'),
            name=customer.get('name') or buyer.get_full_name(),
            metadata={'user_id': buyer.pk},
        )
        StripeCustomer.objects.create(user=buyer, stripe_customer_id=customer_id)
        return customer_id

    def _save_payment_method(self, order, intent):
        """Keeps the card used on a buyer's checkout for later one-click purchases."""
        if not order.user_id or not intent.payment_method:
            return
        updated = StripeCustomer.objects.filter(user_id=order.user_id).update(
            default_payment_method_id=intent.payment_method
        )
        if updated:
            logger.info(f"Saved payment method for user {order.user_id} from order {order.order_number}")

    def _saved_payment_method(self, buyer):
        if not _is_authenticated(buyer):
            raise RequiresPaymentMethod("Please sign in or enter your card details to continue.")
        stripe_customer = StripeCustomer.objects.filter(user=buyer).first()
        if stripe_customer is None or not stripe_customer.can_charge_off_session:
            raise RequiresPaymentMethod()
        return stripe_customer

    @staticmethod
    def _main_funnel_order(order):
        return (
            order.funnel_orders.filter(order_type=FunnelOrder.TYPE_MAIN).first()
            or order.funnel_orders.first()
        )

    @staticmethod
    def _update_session_contact(session, customer):
        changed = []
        if customer.get('email') and session.email != customer['email']:
            session.email = customer['email']
            changed.append('email')
        if customer.get('phone') and session.phone != customer['phone']:
            session.phone = customer['phone']
            changed.append('phone')
        if changed:
            session.save(update_fields=changed + ['updated_at'])


def _is_authenticated(user):
    return user is not None and getattr(user, 'is_authenticated', False)
