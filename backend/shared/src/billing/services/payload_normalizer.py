"""Parsing and normalization of inbound invoice events.

Turns the raw request body into a ``NormalizedInvoiceEvent``:
- validates the two required fields via ``InvoiceWebhookPayload``
- resolves every optional field through the alias table
- converts amounts to integer cents
- splits combined address strings into components
"""

import json
import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from billing.config import WebhookSettings
from billing.models import (
    AmountSource,
    ErrorCode,
    InvoiceWebhookPayload,
    NormalizedInvoiceEvent,
    ParsedAddress,
    PayloadValidationError,
)
from billing.services.field_aliases import known_keys, resolve_field, resolve_text
from billing.utils.address import needs_combined_parse, normalize_state, parse_address_string
from billing.utils.dates import parse_payment_date

logger = logging.getLogger(__name__)

_VALIDATION_ERROR_CODES = {
    "missing": ErrorCode.MISSING_REQUIRED_FIELD,
    "missing_value": ErrorCode.MISSING_REQUIRED_FIELD,
    "placeholder_email": ErrorCode.PLACEHOLDER_EMAIL,
    "invalid_payment_method": ErrorCode.INVALID_PAYMENT_METHOD,
}

_CURRENCY_NOISE = re.compile(r"[$,\s]|USD", re.IGNORECASE)
_CENTS = Decimal("100")
# Upper bound for a parsed amount in either unit; larger values are not payments
_MAX_AMOUNT = Decimal("1e12")


def parse_payload(raw_body: bytes | str) -> InvoiceWebhookPayload:
    """Decode and validate the request body.

    Raises:
        PayloadValidationError: For malformed JSON or failed field validation.
    """
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PayloadValidationError(ErrorCode.INVALID_JSON, {"reason": str(e)}) from e

    if not isinstance(data, dict):
        raise PayloadValidationError(
            ErrorCode.INVALID_JSON, {"reason": "Body must be a JSON object"}
        )

    try:
        return InvoiceWebhookPayload.model_validate(data)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0]
        code = _VALIDATION_ERROR_CODES.get(first["type"], ErrorCode.INVALID_FIELD)
        raise PayloadValidationError(
            code,
            {
                "field": ".".join(str(p) for p in first["loc"]),
                "errors": [
                    {"field": ".".join(str(p) for p in err["loc"]), "reason": err["msg"]}
                    for err in errors
                ],
            },
        ) from e


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, (int, Decimal)):
        number = Decimal(value)
    else:
        cleaned = _CURRENCY_NOISE.sub("", str(value))
        if not cleaned:
            return None
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None
    if not number.is_finite() or abs(number) > _MAX_AMOUNT:
        return None
    return number


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def normalize_amount(
    data: dict[str, Any], settings: WebhookSettings
) -> tuple[int, AmountSource]:
    """Compute the amount in cents and where it came from.

    An explicit ``amount`` is cents, except values below the dollar threshold
    which are taken as dollars. ``price`` is always dollars. Zero, negative,
    unparseable, non-finite and implausibly large values count as absent.
    """
    raw_amount = resolve_field(data, "amount")
    amount = _to_decimal(raw_amount)
    if raw_amount is not None and amount is None:
        logger.warning("Ignoring unparseable amount", extra={"amount": str(raw_amount)})
    if amount is not None and amount > 0:
        if amount < settings.dollar_amount_threshold:
            logger.warning(
                "Amount %s is below the dollar threshold, treating as dollars", amount
            )
            return _round_cents(amount * _CENTS), AmountSource.AMOUNT
        return _round_cents(amount), AmountSource.AMOUNT

    raw_price = resolve_field(data, "price")
    price = _to_decimal(raw_price)
    if raw_price is not None and price is None:
        logger.warning("Ignoring unparseable price", extra={"price": str(raw_price)})
    if price is not None and price > 0:
        return _round_cents(price * _CENTS), AmountSource.PRICE

    return settings.default_amount_cents, AmountSource.DEFAULT


def normalize_phone(value: Any) -> str:
    """Keep digits only, then the last 10 (drops a leading country code)."""
    if value is None:
        return ""
    digits = re.sub(r"\D", "", str(value))
    return digits[-10:]


def normalize_address(data: dict[str, Any]) -> tuple[ParsedAddress, bool]:
    """Resolve address components, parsing a combined string when needed.

    Returns:
        The address and whether the combined-string parser was used.
    """
    address1 = resolve_text(data, "address1")
    address2 = resolve_text(data, "address2")
    city = resolve_text(data, "city")
    state = resolve_text(data, "state")
    zip_code = resolve_text(data, "zip")

    if needs_combined_parse(address1, address2, city, state, zip_code):
        parsed = parse_address_string(address1)
        # Explicit components that look right still win over parsed ones
        if address2 and "," not in address2 and not parsed.address2:
            parsed.address2 = address2
        return parsed, True

    return (
        ParsedAddress(
            address1=address1,
            address2=address2,
            city=city,
            state=normalize_state(state),
            zip=zip_code,
        ),
        False,
    )


def split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def normalize_event(
    payload: InvoiceWebhookPayload,
    raw_body: bytes | str,
    settings: WebhookSettings,
) -> NormalizedInvoiceEvent:
    """Build the canonical event from a validated payload."""
    data: dict[str, Any] = payload.model_dump()
    amount_cents, amount_source = normalize_amount(data, settings)
    address, was_parsed = normalize_address(data)
    payer_name = resolve_text(data, "payer_name")
    first_name, last_name = split_name(payer_name)

    if isinstance(raw_body, bytes):
        raw_text = raw_body.decode("utf-8", errors="replace")
    else:
        raw_text = raw_body

    consumed = known_keys()
    unmapped = sorted(k for k in payload.extra_fields() if k not in consumed)

    return NormalizedInvoiceEvent(
        email=payload.customer_email,
        payment_method_id=payload.method_payment_id,
        amount_cents=amount_cents,
        amount_source=amount_source,
        product=resolve_text(data, "product"),
        medication_type=resolve_text(data, "medication"),
        plan=resolve_text(data, "plan"),
        payer_name=payer_name,
        payer_first_name=first_name,
        payer_last_name=last_name,
        submission_id=resolve_text(data, "submission_id"),
        order_status=resolve_text(data, "order_status"),
        subscription_status=resolve_text(data, "subscription_status"),
        stripe_price_id=resolve_text(data, "stripe_price_id"),
        payment_date=parse_payment_date(resolve_text(data, "payment_date")),
        address=address,
        address_was_parsed=was_parsed,
        country=resolve_text(data, "country"),
        phone=normalize_phone(resolve_field(data, "phone")),
        unmapped_fields=unmapped,
        raw_body=raw_text,
    )
