from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase

from funnels.models import FunnelStepProduct
from payments.models import Order, OrderItem, FunnelOrder
from payments.testing import build_funnel
from .models import FunnelAffiliate, CommissionRule, Commission
from .services import calculate_commission

User = get_user_model()


class CommissionCalculatorTests(TestCase):
    def setUp(self):
        self.affiliate = FunnelAffiliate.objects.create(name='Partner', email='partner@example.com')
        self.fx = build_funnel(affiliate_enabled=True, affiliate=self.affiliate)

    def paid_order(self, *products):
        total = sum((product.funnel_price for product in products), Decimal('0.00'))
        order = Order.objects.create(funnel=self.fx.funnel, subtotal=total, total=total)
        for product in products:
            OrderItem.objects.create(
                order=order, funnel_product=product, name=product.name,
                unit_price=product.funnel_price, total_price=product.funnel_price,
            )
        order.mark_paid()
        return FunnelOrder.objects.create(
            funnel=self.fx.funnel, session=self.fx.session, order=order, step=self.fx.checkout, funnel_revenue=total,
        )

    def rule(self, product, commission_type, value):
        return CommissionRule.objects.create(
            funnel=self.fx.funnel, funnel_product=product, commission_type=commission_type, commission_value=Decimal(value),
        )

    def test_percentage_commission(self):
        """10% of a 100 item is a pending commission of 10.00."""
        self.rule(self.fx.product_a, CommissionRule.TYPE_PERCENTAGE, '10')
        funnel_order = self.paid_order(self.fx.product_a)

        commission = calculate_commission(funnel_order, self.fx.session)

        self.assertEqual(commission.commission_amount, Decimal('10.00'))
        self.assertEqual(commission.status, Commission.STATUS_PENDING)
        self.assertEqual(commission.order_amount, Decimal('100.00'))
        self.assertEqual(commission.affiliate, self.affiliate)

    def test_fixed_commission(self):
        self.rule(self.fx.product_a, CommissionRule.TYPE_FIXED, '25')
        funnel_order = self.paid_order(self.fx.product_a)

        commission = calculate_commission(funnel_order, self.fx.session)

        self.assertEqual(commission.commission_amount, Decimal('25.00'))
        self.assertEqual(commission.commission_type, CommissionRule.TYPE_FIXED)

    def test_no_affiliate_means_no_commission(self):
        self.rule(self.fx.product_a, CommissionRule.TYPE_PERCENTAGE, '10')
        self.fx.session.affiliate = None
        self.fx.session.save()
        funnel_order = self.paid_order(self.fx.product_a)

        self.assertIsNone(calculate_commission(funnel_order, self.fx.session))
        self.assertFalse(Commission.objects.exists())

    def test_funnel_without_affiliate_tracking_pays_nothing(self):
        self.rule(self.fx.product_a, CommissionRule.TYPE_PERCENTAGE, '10')
        self.fx.funnel.affiliate_enabled = False
        self.fx.funnel.save()
        funnel_order = self.paid_order(self.fx.product_a)

        self.assertIsNone(calculate_commission(funnel_order, self.fx.session))

    def test_no_matching_rule_pays_nothing(self):
        funnel_order = self.paid_order(self.fx.product_a)
        self.assertIsNone(calculate_commission(funnel_order, self.fx.session))

    def test_mixed_rules_collapse_into_one_row(self):
        """
        Two matched products give one commission. The amount is the sum; the
        type/rate are those of the last rule processed; breakdown keeps both.
        """
        self.rule(self.fx.product_a, CommissionRule.TYPE_PERCENTAGE, '10')
        self.rule(self.fx.product_b, CommissionRule.TYPE_FIXED, '5')
        funnel_order = self.paid_order(self.fx.product_a, self.fx.product_b)

        commission = calculate_commission(funnel_order, self.fx.session)

        self.assertEqual(Commission.objects.count(), 1)
        self.assertEqual(commission.commission_amount, Decimal('15.00'))
        self.assertEqual(commission.commission_type, CommissionRule.TYPE_FIXED)
        self.assertEqual(commission.commission_rate, Decimal('5'))
        self.assertEqual(
            [(line['funnel_product_id'], line['commission_amount']) for line in commission.breakdown],
            [(self.fx.product_a.id, '10.00'), (self.fx.product_b.id, '5.00')],
        )

    def test_items_from_other_steps_are_ignored(self):
        stray = FunnelStepProduct.objects.create(step=self.fx.upsell, name='Stray', funnel_price=Decimal('80.00'))
        self.rule(stray, CommissionRule.TYPE_PERCENTAGE, '50')
        funnel_order = self.paid_order(stray)

        self.assertIsNone(calculate_commission(funnel_order, self.fx.session))


class CommissionReviewTests(TestCase):
    def setUp(self):
        self.reviewer = User.objects.create_user(username='admin', email='admin@example.com', password='pw')
        affiliate = FunnelAffiliate.objects.create(name='Partner', email='partner@example.com')
        fx = build_funnel(affiliate_enabled=True, affiliate=affiliate)
        order = Order.objects.create(funnel=fx.funnel, subtotal=Decimal('100.00'), total=Decimal('100.00'))
        self.commission = Commission.objects.create(
            affiliate=affiliate, funnel=fx.funnel, order=order,
            commission_type=CommissionRule.TYPE_PERCENTAGE, commission_rate=Decimal('10'),
            order_amount=Decimal('100.00'), commission_amount=Decimal('10.00'),
        )

    def test_ref_code_is_generated(self):
        self.assertEqual(len(self.commission.affiliate.ref_code), 8)

    def test_approve_then_pay(self):
        self.commission.approve(self.reviewer)
        self.assertEqual(self.commission.status, Commission.STATUS_APPROVED)
        self.assertEqual(self.commission.approved_by, self.reviewer)
        self.assertIsNotNone(self.commission.approved_at)

        self.commission.mark_paid()
        self.commission.refresh_from_db()
        self.assertEqual(self.commission.status, Commission.STATUS_PAID)
        self.assertIsNotNone(self.commission.paid_at)

    def test_reject_keeps_notes(self):
        self.commission.reject(self.reviewer, notes='Self referral')
        self.commission.refresh_from_db()
        self.assertEqual(self.commission.status, Commission.STATUS_REJECTED)
        self.assertEqual(self.commission.notes, 'Self referral')

    def test_only_pending_commissions_can_be_reviewed(self):
        self.commission.reject(self.reviewer)
        with self.assertRaises(ValidationError):
            self.commission.approve(self.reviewer)
        with self.assertRaises(ValidationError):
            self.commission.reject(self.reviewer)

    def test_unapproved_commission_cannot_be_paid(self):
        with self.assertRaises(ValidationError):
            self.commission.mark_paid()
