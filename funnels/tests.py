from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from payments.models import Order
from .catalog import active_products_for_step, active_bumps_for_step, get_upsell_product
from .dispatch import notify_conversion_analytics, notify_automation_trigger, notify_pixel_purchase
from .events import ConversionRecorded, PixelPurchase, EVENT_PURCHASE_COMPLETED
from .models import Funnel, FunnelStep, FunnelStepProduct, FunnelStepOrderBump, FunnelSession, FunnelAnalytics
from .signals import conversion_recorded, automation_triggered, pixel_purchase
from .tasks import conversion_analytics_task


class FunnelModelTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.funnel = Funnel.objects.create(name='Spring Launch', status=Funnel.STATUS_PUBLISHED)
        cls.step = FunnelStep.objects.create(funnel=cls.funnel, name='Order Form')

    def test_slugs_are_generated(self):
        self.assertEqual(self.funnel.slug, 'spring-launch')
        self.assertEqual(self.step.slug, 'order-form')
        self.assertTrue(self.funnel.is_published)

    def test_mark_as_converted_only_stamps_once(self):
        session = FunnelSession.objects.create(funnel=self.funnel)

        session.mark_as_converted()
        first_converted_at = session.converted_at
        session.mark_as_converted()

        session.refresh_from_db()
        self.assertTrue(session.is_converted)
        self.assertEqual(session.converted_at, first_converted_at)

    def test_track_event(self):
        session = FunnelSession.objects.create(funnel=self.funnel)

        event = session.track_event('checkout_initiated', {'total': '10.00'}, step=self.step)

        self.assertEqual(event.step, self.step)
        self.assertEqual(list(session.events.values_list('event_type', flat=True)), ['checkout_initiated'])

    def test_analytics_keep_step_and_funnel_rows_apart(self):
        FunnelAnalytics.increment_conversions(self.funnel.id, self.step.id, Decimal('100.00'))
        FunnelAnalytics.increment_conversions(self.funnel.id, self.step.id, Decimal('50.00'))
        FunnelAnalytics.increment_conversions(self.funnel.id, None, Decimal('150.00'))

        step_row = FunnelAnalytics.objects.get(step=self.step, date=timezone.localdate())
        funnel_row = FunnelAnalytics.objects.get(funnel=self.funnel, step__isnull=True)
        self.assertEqual((step_row.conversions, step_row.revenue), (2, Decimal('150.00')))
        self.assertEqual((funnel_row.conversions, funnel_row.revenue), (1, Decimal('150.00')))


class CatalogTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        funnel = Funnel.objects.create(name='Catalog Funnel')
        cls.step = FunnelStep.objects.create(funnel=funnel, name='Checkout')
        cls.other_step = FunnelStep.objects.create(funnel=funnel, name='Upsell', step_type=FunnelStep.TYPE_UPSELL)
        cls.active = FunnelStepProduct.objects.create(step=cls.step, name='Active', funnel_price=Decimal('10.00'))
        cls.retired = FunnelStepProduct.objects.create(step=cls.step, name='Retired', funnel_price=Decimal('10.00'), is_active=False)
        cls.elsewhere = FunnelStepProduct.objects.create(step=cls.other_step, name='Elsewhere', funnel_price=Decimal('5.00'))
        cls.bump = FunnelStepOrderBump.objects.create(step=cls.step, name='Bump', price=Decimal('3.00'))
        FunnelStepOrderBump.objects.create(step=cls.step, name='Old Bump', price=Decimal('3.00'), is_active=False)

    def test_only_active_items_of_the_step_are_listed(self):
        self.assertEqual(list(active_products_for_step(self.step)), [self.active])
        self.assertEqual(list(active_bumps_for_step(self.step)), [self.bump])

    def test_ids_filter_never_reaches_other_steps(self):
        products = active_products_for_step(self.step, ids=[self.active.id, self.retired.id, self.elsewhere.id])
        self.assertEqual(list(products), [self.active])

    def test_get_upsell_product(self):
        self.assertEqual(get_upsell_product(self.other_step, self.elsewhere.id), self.elsewhere)
        self.assertIsNone(get_upsell_product(self.other_step, self.active.id))


class DispatchTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.funnel = Funnel.objects.create(name='Dispatch Funnel')
        cls.session = FunnelSession.objects.create(funnel=cls.funnel, email='buyer@example.com')
        cls.order = Order.objects.create(
            funnel=cls.funnel, email='buyer@example.com',
            subtotal=Decimal('170.00'), total=Decimal('170.00'),
        )

    def connect(self, signal):
        received = []

        def receiver(sender, event, **kwargs):
            received.append(event)

        signal.connect(receiver, weak=False)
        self.addCleanup(signal.disconnect, receiver)
        return received

    def test_conversion_event_reaches_subscribers(self):
        received = self.connect(conversion_recorded)

        self.assertTrue(notify_conversion_analytics(self.funnel.id, None, Decimal('170.00'), self.order.id))

        self.assertEqual(received, [ConversionRecorded(self.funnel.id, None, self.order.id, Decimal('170.00'))])

    def test_automation_event_carries_order_context(self):
        received = self.connect(automation_triggered)

        notify_automation_trigger(EVENT_PURCHASE_COMPLETED, {'order': self.order, 'session': self.session}, funnel_id=self.funnel.id)

        event = received[0]
        self.assertEqual(event.event_type, EVENT_PURCHASE_COMPLETED)
        self.assertEqual(event.order_number, self.order.order_number)
        self.assertEqual(event.session_id, self.session.id)
        self.assertEqual(event.total, Decimal('170.00'))

    def test_pixel_event_survives_serialisation(self):
        received = self.connect(pixel_purchase)

        notify_pixel_purchase(self.order, self.session)

        event = received[0]
        self.assertIsInstance(event, PixelPurchase)
        self.assertEqual(event.value, Decimal('170.00'))
        self.assertEqual(event.currency, 'gbp')
        self.assertEqual(event.session_uuid, str(self.session.uuid))
        self.assertTrue(event.event_id)

    def test_broken_subscriber_is_logged_not_raised(self):
        def broken(sender, event, **kwargs):
            raise RuntimeError("analytics store offline")

        conversion_recorded.connect(broken, weak=False)
        self.addCleanup(conversion_recorded.disconnect, broken)

        with self.assertLogs('funnels.tasks', level='ERROR'):
            self.assertTrue(notify_conversion_analytics(self.funnel.id, None, Decimal('1.00'), self.order.id))

    def test_queue_failure_is_swallowed(self):
        with mock.patch.object(conversion_analytics_task, 'delay', side_effect=ConnectionError("broker down")), \
                self.assertLogs('funnels.dispatch', level='ERROR'):
            queued = notify_conversion_analytics(self.funnel.id, None, Decimal('1.00'), self.order.id)

        self.assertFalse(queued)
