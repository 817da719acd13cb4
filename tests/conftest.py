"""Shared fixtures for sidebar tests.

Provides:
- FakeClock: manually advanced monotonic clock for cache TTL tests
- Record builders for people, companies, deals and stage options in the
  CRM's attribute-value envelope
- settings: a Settings instance isolated from the process environment
"""

from __future__ import annotations

from typing import Any

import pytest

from src.sidebar.config import Settings
from src.sidebar.crm.schemas import Company, Deal, Person, StatusOption


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_person(record_id: str | None = "person-1", **values: Any) -> Person:
    """Person record; ``values`` are raw attribute-value lists."""
    defaults: dict[str, Any] = {
        "name": [{"full_name": "Alice Example", "first_name": "Alice", "last_name": "Example"}],
        "email_addresses": [{"email_address": "alice@ext.com"}],
    }
    defaults.update(values)
    record_id_payload = {"workspace_id": "ws-1", "object_id": "people", "record_id": record_id}
    return Person.model_validate({"id": record_id_payload if record_id else {}, "values": defaults})


def make_company(record_id: str = "company-1", name: str = "Acme", **values: Any) -> Company:
    defaults: dict[str, Any] = {"name": [{"value": name}]}
    defaults.update(values)
    return Company.model_validate(
        {"id": {"workspace_id": "ws-1", "object_id": "companies", "record_id": record_id}, "values": defaults}
    )


def make_deal(
    record_id: str | None = "deal-1",
    name: str = "Deal",
    close_date: str | None = None,
    person_id: str | None = None,
    company_id: str | None = None,
    **values: Any,
) -> Deal:
    """Deal record related to a person and/or company through the standard attributes."""
    defaults: dict[str, Any] = {"name": [{"value": name}]}
    if close_date is not None:
        defaults["close_date"] = [{"value": close_date}]
    if person_id is not None:
        defaults["associated_people"] = [
            {"target_object": "people", "target_record_id": person_id}
        ]
    if company_id is not None:
        defaults["associated_company"] = [
            {"target_object": "companies", "target_record_id": company_id}
        ]
    defaults.update(values)
    record_id_payload = {"workspace_id": "ws-1", "object_id": "deals", "record_id": record_id}
    return Deal.model_validate({"id": record_id_payload if record_id else None, "values": defaults})


def make_stage(status_id: str, title: str, is_archived: bool = False) -> StatusOption:
    return StatusOption.model_validate(
        {
            "id": {
                "workspace_id": "ws-1",
                "object_id": "deals",
                "attribute_id": "attr-stage",
                "status_id": status_id,
            },
            "title": title,
            "is_archived": is_archived,
        }
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings built from explicit values only (no .env, no environment)."""
    return Settings(
        _env_file=None,
        CRM_API_KEY="test-key",
        CRM_BASE_URL="https://crm.test/v2",
        INTERNAL_EMAIL_DOMAINS="ourco.com",
        BILLED_OPTION_IDS="opt-billed",
        PARTIAL_BILLING_OPTION_IDS="opt-partial",
    )
