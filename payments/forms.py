from django import forms


class IdListField(forms.Field):
    """A JSON list of integer ids (duplicates allowed, ordering kept)."""

    default_error_messages = {
        'invalid_list': "Enter a list of ids.",
        'invalid_id': "'%(value)s' is not a valid id.",
    }

    def to_python(self, value):
        if value in self.empty_values:
            return []
        if not isinstance(value, (list, tuple)):
            raise forms.ValidationError(self.error_messages['invalid_list'], code='invalid_list')
        ids = []
        for item in value:
            try:
                ids.append(int(item))
            except (TypeError, ValueError):
                raise forms.ValidationError(
                    self.error_messages['invalid_id'], code='invalid_id', params={'value': item}
                )
        return ids

    def validate(self, value):
        if self.required and not value:
            raise forms.ValidationError(self.error_messages['required'], code='required')


class CheckoutForm(forms.Form):
    session_uuid = forms.UUIDField()
    products = IdListField()
    bumps = IdListField(required=False)


class CustomerForm(forms.Form):
    email = forms.EmailField()
    name = forms.CharField(min_length=2, max_length=255)
    phone = forms.CharField(max_length=50, required=False)


class BillingAddressForm(forms.Form):
    first_name = forms.CharField(min_length=2, max_length=100)
    last_name = forms.CharField(min_length=2, max_length=100)
    address_line_1 = forms.CharField(min_length=5, max_length=255)
    address_line_2 = forms.CharField(max_length=255, required=False)
    city = forms.CharField(min_length=2, max_length=100)
    state = forms.CharField(min_length=2, max_length=100)
    postal_code = forms.CharField(min_length=3, max_length=20)
    country = forms.CharField(max_length=2, required=False)


class ConfirmPaymentForm(forms.Form):
    payment_intent_id = forms.CharField(max_length=255)


class UpsellForm(forms.Form):
    session_uuid = forms.UUIDField()
    product_id = forms.IntegerField()
    original_order_id = forms.IntegerField()
