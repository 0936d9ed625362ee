"""
WSGI config for Funnel_Shop project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'Funnel_Shop.settings')

application = get_wsgi_application()
