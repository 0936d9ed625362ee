"""
Celery app for the best-effort funnel side effects (analytics, automation, pixel).

Run a worker for them with:
    celery -A Funnel_Shop worker -Q low_priority
"""
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'Funnel_Shop.settings')

app = Celery('Funnel_Shop')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
