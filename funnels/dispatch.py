"""
Fire-and-forget hooks into analytics, automation and pixel tracking.

Every notify_* call only queues work. A failure to queue is logged and
swallowed: these side effects are best-effort and must never turn a paid
order into a checkout failure.
"""
import logging
from decimal import Decimal

from .events import ConversionRecorded, AutomationTriggered, PixelPurchase
from .tasks import conversion_analytics_task, automation_trigger_task, pixel_purchase_task

logger = logging.getLogger(__name__)


def notify_conversion_analytics(funnel_id, step_id, revenue, order_id):
    event = ConversionRecorded(
        funnel_id=funnel_id,
        step_id=step_id,
        order_id=order_id,
        revenue=Decimal(revenue),
    )
    return _queue(conversion_analytics_task, event)


def notify_automation_trigger(event_type, context, funnel_id=None):
    """
    Args:
        event_type (str): e.g. funnels.events.EVENT_PURCHASE_COMPLETED.
        context (dict): must carry 'order' and may carry 'session'.
        funnel_id (int): scopes the automations that may run.
    """
    order = context['order']
    session = context.get('session')
    event = AutomationTriggered(
        event_type=event_type,
        funnel_id=funnel_id,
        order_id=order.id,
        order_number=order.order_number,
        session_id=session.id if session else None,
        email=order.email,
        total=order.total,
    )
    return _queue(automation_trigger_task, event)


def notify_pixel_purchase(order, session):
    event = PixelPurchase(
        funnel_id=session.funnel_id,
        order_id=order.id,
        order_number=order.order_number,
        session_uuid=str(session.uuid),
        email=order.email,
        value=order.total,
        currency=order.currency,
    )
    return _queue(pixel_purchase_task, event)


def _queue(task, event):
    try:
        task.delay(event.to_payload())
        logger.info(f"Queued {type(event).__name__} for order {getattr(event, 'order_id', None)}")
        return True
    except Exception as e:
        logger.error(f"Failed to queue {type(event).__name__}: {e}", exc_info=True)
        return False
