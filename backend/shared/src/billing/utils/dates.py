"""Permissive timestamp parsing for partner payloads."""

import datetime as dt
import logging
import re

logger = logging.getLogger(__name__)

# Automations sometimes prepend the column name: "created_at2026-01-26T10:00:00Z"
_EMBEDDED_ISO = re.compile(r"(\d{4}-\d{2}-\d{2}T[\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)")
_PLAIN_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_payment_date(value: str | None) -> dt.datetime:
    """Parse a payment timestamp, falling back to now (UTC).

    Returns:
        A timezone-aware datetime. Naive inputs are taken as UTC.
    """
    if not value or not str(value).strip():
        return dt.datetime.now(dt.UTC)

    text = str(value).strip()
    match = _EMBEDDED_ISO.search(text)
    candidate = match.group(1) if match else text

    try:
        if _PLAIN_DATE.match(candidate):
            parsed = dt.datetime.combine(dt.date.fromisoformat(candidate), dt.time())
        else:
            parsed = dt.datetime.fromisoformat(candidate)
    except ValueError:
        logger.warning(
            "Could not parse payment date, using current time",
            extra={"original": text, "cleaned": candidate},
        )
        return dt.datetime.now(dt.UTC)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed
