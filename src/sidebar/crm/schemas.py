"""Pydantic schemas for CRM records, attribute metadata, and derived values.

Defines:
- RecordId, CrmRecord: the backend's generic record envelope (composite id
  plus a mapping of attribute name to attribute-value entries)
- Person, Company, Deal: semantic views over CrmRecord
- StatusId, StatusOption, AttributeId, AttributeDefinition: attribute metadata
- Money, BillingStatus: values derived by the attribute resolver
- RecordKind: which record type a mutation touched
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class RecordKind(str, Enum):
    """Record types the sidebar creates or updates."""

    PERSON = "person"
    COMPANY = "company"
    DEAL = "deal"


class BillingStatus(str, Enum):
    """Billing progress of a deal."""

    NONE = "none"
    PARTIAL = "partial"
    BILLED = "billed"


# ── Records ─────────────────────────────────────────────────────────────────


class RecordId(BaseModel):
    """Composite record identifier (workspace, object type, record)."""

    workspace_id: str | None = None
    object_id: str | None = None
    record_id: str | None = None


class CrmRecord(BaseModel):
    """A single record as returned by the CRM.

    ``values`` maps attribute names to lists of attribute-value entries.
    Entries are kept as raw dicts because the value shape differs per
    attribute type.
    """

    model_config = ConfigDict(extra="allow")

    id: RecordId | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = None
    web_url: str | None = None
    record_text: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        # Anything other than an object is treated as a missing identity
        return value if isinstance(value, (dict, RecordId)) else None

    @field_validator("values", mode="before")
    @classmethod
    def _coerce_values(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}

    @property
    def record_id(self) -> str | None:
        """The record identifier, or None when the record is malformed."""
        if self.id is None or not self.id.record_id:
            return None
        return self.id.record_id

    def has_identity(self) -> bool:
        """True when the record carries a non-empty record identifier."""
        return self.record_id is not None


class Person(CrmRecord):
    """Person record (``email_addresses``, ``name``, ``job_title``, ...)."""


class Company(CrmRecord):
    """Company record (``name``, ``domains``, ``description``, ...)."""


class Deal(CrmRecord):
    """Deal record (``name``, ``value``, ``stage``, ``close_date``, relationship attributes)."""


# ── Attribute Metadata ──────────────────────────────────────────────────────


class StatusId(BaseModel):
    """Composite identifier of a status option."""

    workspace_id: str = ""
    object_id: str = ""
    attribute_id: str = ""
    status_id: str = ""


class StatusOption(BaseModel):
    """One selectable option of a status attribute (a deal stage)."""

    model_config = ConfigDict(extra="allow")

    id: StatusId = Field(default_factory=StatusId)
    title: str = ""
    is_archived: bool = False


class AttributeId(BaseModel):
    """Composite identifier of an attribute definition."""

    workspace_id: str = ""
    object_id: str = ""
    attribute_id: str = ""


class AttributeDefinition(BaseModel):
    """Attribute metadata for an object type."""

    model_config = ConfigDict(extra="allow")

    id: AttributeId = Field(default_factory=AttributeId)
    title: str = ""
    api_slug: str = ""
    type: str = ""
    is_system_attribute: bool = False
    is_required: bool = False
    is_unique: bool = False
    is_multiselect: bool = False


# ── Derived Values ──────────────────────────────────────────────────────────


class Money(BaseModel):
    """A monetary amount with its currency code."""

    amount: float
    currency: str


# ── Mutation Payloads ───────────────────────────────────────────────────────


class PersonCreate(BaseModel):
    """Payload for creating a person."""

    name: str
    email: str
    phone: str | None = None
    job_title: str | None = None
    company_id: str | None = None


class PersonUpdate(BaseModel):
    """Payload for updating a person.

    Unset fields are left alone; an empty string clears the attribute.
    """

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    job_title: str | None = None
    company_id: str | None = None


class CompanyUpdate(BaseModel):
    """Payload for updating a company (an empty domain clears it)."""

    domain: str | None = None


class DealCreate(BaseModel):
    """Payload for creating a deal linked to a person and/or company."""

    name: str
    value: float
    stage_id: str  # Composite workspace|object|attribute|status id
    description: str | None = None
    person_id: str | None = None
    company_id: str | None = None
