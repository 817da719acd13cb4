"""Create/edit form input and its validation.

Forms hold raw user input. ``to_*`` methods validate it and return the
CRM payload, raising FormValidationError before any network call.
"""

from __future__ import annotations

import math

from pydantic import BaseModel

from src.sidebar.crm.schemas import CompanyUpdate, DealCreate, PersonCreate, PersonUpdate
from src.sidebar.plugin.contacts import suggest_name_from_email


class FormValidationError(ValueError):
    """Required form input is missing or invalid."""


class PersonForm(BaseModel):
    """Contact form (create and edit)."""

    name: str = ""
    email: str = ""
    phone: str = ""
    job_title: str = ""
    company_id: str = ""

    @classmethod
    def for_email(cls, email: str) -> PersonForm:
        """Prefilled create form for an unknown address."""
        return cls(name=suggest_name_from_email(email), email=email)

    def _require_identity(self) -> None:
        if not self.name.strip() or not self.email.strip():
            raise FormValidationError("Name and email are required")

    def to_create(self) -> PersonCreate:
        self._require_identity()
        return PersonCreate(
            name=self.name.strip(),
            email=self.email.strip(),
            phone=self.phone.strip() or None,
            job_title=self.job_title.strip() or None,
            company_id=self.company_id or None,
        )

    def to_update(self) -> PersonUpdate:
        """Full update: every field is sent, blank optional fields clear the attribute."""
        self._require_identity()
        return PersonUpdate(
            name=self.name.strip(),
            email=self.email.strip(),
            phone=self.phone.strip(),
            job_title=self.job_title.strip(),
            company_id=self.company_id,
        )


class CompanyForm(BaseModel):
    """Company edit form (only the domain is editable)."""

    domain: str = ""

    def to_update(self) -> CompanyUpdate:
        return CompanyUpdate(domain=self.domain.strip())


class DealForm(BaseModel):
    """New deal form."""

    name: str = ""
    value: str = ""
    stage_id: str = ""
    description: str = ""

    def to_create(self, person_id: str | None = None, company_id: str | None = None) -> DealCreate:
        if not self.name.strip():
            raise FormValidationError("Deal name is required")
        try:
            amount = float(self.value)
        except ValueError:
            raise FormValidationError("Valid deal value is required") from None
        if not math.isfinite(amount):
            raise FormValidationError("Valid deal value is required")
        if not self.stage_id:
            raise FormValidationError("Deal stage is required")

        return DealCreate(
            name=self.name.strip(),
            value=amount,
            stage_id=self.stage_id,
            description=self.description.strip() or None,
            person_id=person_id,
            company_id=company_id,
        )
