import json
import logging

from django.conf import settings
from django.http import Http404, JsonResponse, HttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from funnels.catalog import get_upsell_product
from funnels.models import Funnel, FunnelStep, FunnelSession, FunnelStepProduct
from .exceptions import GatewayUnavailable, InvalidSelection, InvalidTotal, RequiresPaymentMethod
from .forms import CheckoutForm, CustomerForm, BillingAddressForm, ConfirmPaymentForm, UpsellForm
from .models import Order
from .services import CheckoutService

logger = logging.getLogger(__name__)


def _json_body(request):
    try:
        data = json.loads(request.body or b'{}')
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _invalid_request(errors):
    return JsonResponse({'success': False, 'error': 'invalid_request', 'errors': errors}, status=400)


def _error_response(error, status):
    return JsonResponse({'success': False, 'error': error.kind, 'message': error.message}, status=status)


def _published_step(funnel_uuid, step_id):
    funnel = get_object_or_404(Funnel, uuid=funnel_uuid, status=Funnel.STATUS_PUBLISHED)
    step = get_object_or_404(FunnelStep, id=step_id, funnel=funnel, is_active=True)
    return funnel, step


@require_POST
def create_checkout(request, funnel_uuid, step_id):
    """
    Starts checkout for a step: creates the pending order and returns the
    client secret the browser needs to complete payment.
    """
    data = _json_body(request)
    if data is None:
        return _invalid_request({'body': ["Expected a JSON object."]})

    funnel, step = _published_step(funnel_uuid, step_id)

    form = CheckoutForm(data)
    customer_form = CustomerForm(data.get('customer') or {})
    address_form = BillingAddressForm(data.get('billing_address') or {})
    if not (form.is_valid() & customer_form.is_valid() & address_form.is_valid()):
        errors = form.errors.get_json_data()
        if customer_form.errors:
            errors['customer'] = customer_form.errors.get_json_data()
        if address_form.errors:
            errors['billing_address'] = address_form.errors.get_json_data()
        return _invalid_request(errors)

    session = get_object_or_404(FunnelSession, uuid=form.cleaned_data['session_uuid'], funnel=funnel)

    try:
        result = CheckoutService().create_checkout(
            session=session,
            step=step,
            product_ids=form.cleaned_data['products'],
            bump_ids=form.cleaned_data['bumps'],
            customer=customer_form.cleaned_data,
            billing_address=address_form.cleaned_data,
            buyer=request.user,
        )
    except (InvalidSelection, InvalidTotal) as e:
        return _error_response(e, 422)
    except GatewayUnavailable as e:
        return _error_response(e, 503)

    response = result.as_dict()
    response['publishable_key'] = settings.STRIPE_PUBLISHABLE_KEY
    return JsonResponse(response)


@require_POST
def confirm_payment(request):
    data = _json_body(request)
    form = ConfirmPaymentForm(data or {})
    if not form.is_valid():
        return _invalid_request(form.errors.get_json_data())

    result = CheckoutService().confirm_payment(form.cleaned_data['payment_intent_id'])
    if result.success:
        return JsonResponse(result.as_dict())
    status = 503 if result.error == GatewayUnavailable.kind else 400
    return JsonResponse(result.as_dict(), status=status)


def _upsell_context(request, funnel_uuid, step_id, active_only=True):
    """Resolves (session, step, product, original order) for the upsell endpoints, or an error response."""
    form = UpsellForm(_json_body(request) or {})
    if not form.is_valid():
        return None, _invalid_request(form.errors.get_json_data())

    funnel, step = _published_step(funnel_uuid, step_id)
    session = get_object_or_404(FunnelSession, uuid=form.cleaned_data['session_uuid'], funnel=funnel)
    if active_only:
        product = get_upsell_product(step, form.cleaned_data['product_id'])
        if product is None:
            raise Http404("Offer not available on this step.")
    else:
        product = get_object_or_404(FunnelStepProduct, step=step, id=form.cleaned_data['product_id'])
    original_order = get_object_or_404(
        Order, id=form.cleaned_data['original_order_id'], funnel_orders__session=session
    )
    return (session, step, product, original_order), None


@require_POST
def process_upsell(request, funnel_uuid, step_id):
    context, error = _upsell_context(request, funnel_uuid, step_id)
    if error:
        return error
    session, step, product, original_order = context

    try:
        result = CheckoutService().process_one_click_upsell(
            session=session,
            upsell_step=step,
            upsell_product=product,
            original_order=original_order,
            buyer=request.user,
        )
    except RequiresPaymentMethod as e:
        return JsonResponse(
            {'success': False, 'error': e.kind, 'message': e.message, 'requires_payment': True}, status=402
        )
    except InvalidSelection as e:
        return _error_response(e, 422)

    if result.success:
        return JsonResponse(result.as_dict())
    return JsonResponse(result.as_dict(), status=402 if result.requires_payment else 400)


@require_POST
def decline_upsell(request, funnel_uuid, step_id):
    context, error = _upsell_context(request, funnel_uuid, step_id, active_only=False)
    if error:
        return error
    session, step, product, original_order = context

    CheckoutService().decline_upsell(
        session=session,
        upsell_step=step,
        upsell_product=product,
        original_order=original_order,
    )
    return JsonResponse({'success': True, 'message': 'Upsell declined'})


@require_GET
def checkout_config(request):
    return JsonResponse({
        'publishable_key': settings.STRIPE_PUBLISHABLE_KEY,
        'is_configured': bool(settings.STRIPE_SECRET_KEY and settings.STRIPE_PUBLISHABLE_KEY),
        'currency': settings.STRIPE_CURRENCY,
    })


@csrf_exempt
@require_POST
def stripe_webhook(request):
    service = CheckoutService()
    try:
        event = service.gateway.parse_webhook(request.body, request.META.get('HTTP_STRIPE_SIGNATURE'))
    except ValueError:
        return HttpResponse("Invalid payload", status=400)

    if event['type'] == 'payment_intent.succeeded':
        intent = event['data']['object']
        result = service.confirm_payment(intent['id'])
        if not result.success:
            logger.warning(f"Webhook confirmation for {intent['id']} did not apply: {result.error or result.status}")
            # Let Stripe retry while the gateway is unreachable.
            if result.error == GatewayUnavailable.kind:
                return HttpResponse("Webhook processing error", status=500)

    return HttpResponse(status=200)
