"""Clinic (tenant) model."""

from pydantic import BaseModel, Field


class Clinic(BaseModel):
    """A tenant of the platform. Every patient and invoice belongs to one."""

    clinic_id: str = Field(..., description="Unique clinic ID")
    subdomain: str = Field(..., description="Routing subdomain", examples=["wellmedr"])
    name: str = ""
