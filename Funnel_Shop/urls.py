"""
URL configuration for Funnel_Shop project.
"""
from django.contrib import admin
from django.urls import path, include


urlpatterns = [
    path('admin/', admin.site.urls),
    path('checkout/', include('payments.urls', namespace='payments')),
]
