from django.dispatch import Signal

# Broadcast by funnels.tasks once an order is paid. Receivers get ``event``,
# a funnels.events dataclass instance.
conversion_recorded = Signal()
automation_triggered = Signal()
pixel_purchase = Signal()
