from celery import shared_task
import logging

from .events import ConversionRecorded, AutomationTriggered, PixelPurchase
from .signals import conversion_recorded, automation_triggered, pixel_purchase

logger = logging.getLogger(__name__)


@shared_task
def conversion_analytics_task(payload):
    """
    Celery task: hands a recorded conversion to the analytics subscribers.
    """
    event = ConversionRecorded.from_payload(payload)
    responses = conversion_recorded.send_robust(sender=ConversionRecorded, event=event)
    _log_receiver_failures('conversion_recorded', responses)
    return len(responses)


@shared_task
def automation_trigger_task(payload):
    """
    Celery task: hands a purchase event to the automation engine subscribers.
    """
    event = AutomationTriggered.from_payload(payload)
    responses = automation_triggered.send_robust(sender=AutomationTriggered, event=event)
    _log_receiver_failures('automation_triggered', responses)
    return len(responses)


@shared_task
def pixel_purchase_task(payload):
    """
    Celery task: hands a server-side Purchase event to the pixel subscribers.
    """
    event = PixelPurchase.from_payload(payload)
    responses = pixel_purchase.send_robust(sender=PixelPurchase, event=event)
    _log_receiver_failures('pixel_purchase', responses)
    return len(responses)


def _log_receiver_failures(signal_name, responses):
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                f"Receiver {getattr(receiver, '__name__', receiver)} failed for {signal_name}: {response}",
                exc_info=response,
            )
