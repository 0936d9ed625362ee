from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    path('config/', views.checkout_config, name='config'),
    path('confirm/', views.confirm_payment, name='confirm_payment'),
    path('webhook/', views.stripe_webhook, name='webhook'),

    path('<uuid:funnel_uuid>/steps/<int:step_id>/', views.create_checkout, name='create_checkout'),
    path('<uuid:funnel_uuid>/steps/<int:step_id>/upsell/', views.process_upsell, name='process_upsell'),
    path('<uuid:funnel_uuid>/steps/<int:step_id>/upsell/decline/', views.decline_upsell, name='decline_upsell'),
]
