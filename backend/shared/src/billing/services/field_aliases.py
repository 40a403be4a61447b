"""Alias table for loosely-named partner payload fields.

The partner's automation has sent the same value under many keys over time
(``address`` vs ``shipping_address`` vs ``addressLine1``...). Every consumer
resolves fields through this one table so the priority order is defined in a
single place.
"""

from collections.abc import Mapping
from typing import Any

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "address1": (
        "address",
        "address_line1",
        "address_line_1",
        "addressLine1",
        "street_address",
        "streetAddress",
        "shipping_address",
        "shippingAddress",
    ),
    "address2": (
        "address_line2",
        "address_line_2",
        "addressLine2",
        "apartment",
        "apt",
        "suite",
        "unit",
    ),
    "city": ("city", "shipping_city", "shippingCity"),
    "state": ("state", "shipping_state", "shippingState", "province"),
    "zip": (
        "zip",
        "zip_code",
        "zipCode",
        "postal_code",
        "postalCode",
        "shipping_zip",
        "shippingZip",
    ),
    "country": ("country", "shipping_country", "shippingCountry"),
    "phone": ("phone", "phone_number", "phoneNumber", "mobile"),
    "amount": ("amount", "amount_paid", "amountPaid"),
    "price": ("price", "total_price", "totalPrice"),
    "product": ("product", "product_name", "productName"),
    "medication": ("medication_type", "medicationType", "medication"),
    "plan": ("plan", "plan_type", "planType", "billing_plan"),
    "payer_name": ("customer_name", "cardholder_name", "customerName", "name"),
    "submission_id": ("submission_id", "submissionId"),
    "order_status": ("order_status", "orderStatus"),
    "subscription_status": ("subscription_status", "subscriptionStatus"),
    "payment_date": ("payment_date", "paymentDate", "paid_at"),
    "stripe_price_id": ("stripe_price_id", "stripePriceId", "price_id"),
    # Intake-document answers that name the treatment
    "intake_medication": (
        "medicationPreference",
        "medication_preference",
        "preferred-meds",
        "preferredMedication",
        "preferred_medication",
        "medication_type",
        "medicationType",
        "treatment",
        "product",
        "glp1Type",
        "glp1_type",
    ),
}

FIELD_DESCRIPTIONS: dict[str, str] = {
    "address1": "Street address, or a combined 'street, city, state zip' string",
    "address2": "Apartment, suite or unit",
    "city": "City",
    "state": "State name or 2-letter code",
    "zip": "5-digit or ZIP+4 postal code",
    "country": "Country",
    "phone": "Phone number; the last 10 digits are kept",
    "amount": "Amount in cents (values under the dollar threshold are read as dollars)",
    "price": "Price in dollars, e.g. '$1,134.00'",
    "product": "Product name, e.g. 'tirzepatide'",
    "medication": "Medication form, e.g. 'injections'",
    "plan": "Plan duration, e.g. '3 months'",
    "payer_name": "Name of the paying customer",
    "submission_id": "Partner intake submission ID",
    "order_status": "Partner order status",
    "subscription_status": "Partner subscription status",
    "payment_date": "ISO-8601 payment timestamp",
    "stripe_price_id": "Partner price identifier",
}


def _is_present(value: Any) -> bool:
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def resolve_field(data: Mapping[str, Any], field: str) -> Any:
    """Return the first non-empty value among the aliases of ``field``.

    Strings are stripped. Returns None when no alias carries a value.
    """
    for key in FIELD_ALIASES[field]:
        value = data.get(key)
        if _is_present(value):
            return value.strip() if isinstance(value, str) else value
    return None


def resolve_text(data: Mapping[str, Any], field: str) -> str:
    """Like resolve_field, but always returns a string ("" when absent)."""
    value = resolve_field(data, field)
    return "" if value is None else str(value).strip()


def known_keys() -> frozenset[str]:
    """All payload keys that some canonical field consumes."""
    keys = {"customer_email", "method_payment_id"}
    for field, aliases in FIELD_ALIASES.items():
        if field != "intake_medication":
            keys.update(aliases)
    return frozenset(keys)
