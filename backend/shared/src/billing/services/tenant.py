"""Tenant (clinic) scoping for repository access.

Repositories read the active clinic from a context variable so that one
event's work can never touch another clinic's records, even when several
events are processed concurrently in the same process.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from billing.models import Clinic, ConfigurationError, ErrorCode
from billing.services.dynamodb import DynamoDBService, get_dynamodb_service

logger = logging.getLogger(__name__)

_current_clinic_id: ContextVar[str | None] = ContextVar("clinic_id", default=None)


class TenantScopeError(RuntimeError):
    """Raised when tenant-scoped data is accessed outside a clinic context."""


@contextmanager
def clinic_context(clinic_id: str) -> Iterator[str]:
    """Run the enclosed block scoped to one clinic.

    Usage:
        with clinic_context(clinic.clinic_id):
            repository.find_by_email(email)
    """
    token = _current_clinic_id.set(clinic_id)
    try:
        yield clinic_id
    finally:
        _current_clinic_id.reset(token)


def current_clinic_id() -> str | None:
    return _current_clinic_id.get()


def require_clinic_id() -> str:
    """Return the active clinic ID.

    Raises:
        TenantScopeError: If no clinic context is active.
    """
    clinic_id = _current_clinic_id.get()
    if not clinic_id:
        raise TenantScopeError("No clinic context is active")
    return clinic_id


class ClinicDirectory:
    """Looks up clinics by their routing subdomain."""

    TABLE = "clinics"

    def __init__(self, db: DynamoDBService | None = None) -> None:
        self._db = db or get_dynamodb_service()

    def find_by_subdomain(self, subdomain: str) -> Clinic | None:
        items = self._db.query_by_gsi(
            self.TABLE,
            "subdomain-index",
            "subdomain",
            subdomain.strip().lower(),
            limit=1,
        )
        if not items:
            return None
        item = items[0]
        return Clinic(
            clinic_id=item["clinic_id"],
            subdomain=item["subdomain"],
            name=item.get("name", ""),
        )

    def require_by_subdomain(self, subdomain: str) -> Clinic:
        """Resolve the clinic that owns partner events.

        Raises:
            ConfigurationError: If no clinic has this subdomain.
        """
        clinic = self.find_by_subdomain(subdomain)
        if clinic is None:
            logger.error("Clinic not found for subdomain %s", subdomain)
            raise ConfigurationError(
                ErrorCode.CLINIC_NOT_FOUND, {"subdomain": subdomain}
            )
        return clinic
