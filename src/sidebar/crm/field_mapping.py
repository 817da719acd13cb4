"""Conversion of mutation payloads into CRM attribute-value dicts.

Defines:
- person_create_values() / person_update_values(): name split into
  first/last name, email, phone, job title, company reference
- company_update_values(): domain
- deal_create_values(): name, amount, stage, description, person and
  company references

Update builders only emit attributes that were set; an empty value
becomes an empty list, which clears the attribute on the backend.
"""

from __future__ import annotations

from typing import Any

from src.sidebar.crm.attributes import status_id_from_option_id
from src.sidebar.crm.schemas import CompanyUpdate, DealCreate, PersonCreate, PersonUpdate

PEOPLE_TARGET = "people"
COMPANIES_TARGET = "companies"


def _reference(target_object: str, record_id: str) -> dict[str, str]:
    return {"target_object": target_object, "target_record_id": record_id}


def split_name(name: str) -> tuple[str, str]:
    """Split a display name into (first_name, last_name) on the first space."""
    parts = name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _name_entry(name: str) -> dict[str, str]:
    first_name, last_name = split_name(name)
    return {"first_name": first_name, "last_name": last_name, "full_name": name.strip()}


def person_create_values(person: PersonCreate) -> dict[str, Any]:
    """Attribute values for a new person record."""
    values: dict[str, Any] = {
        "name": [_name_entry(person.name)],
        "email_addresses": [{"email_address": person.email.strip()}],
    }
    if person.phone:
        values["phone_numbers"] = [{"original_phone_number": person.phone}]
    if person.job_title:
        values["job_title"] = [{"value": person.job_title}]
    if person.company_id:
        values["company"] = [_reference(COMPANIES_TARGET, person.company_id)]
    return values


def person_update_values(update: PersonUpdate) -> dict[str, Any]:
    """Attribute values for a person update (only fields that were set)."""
    values: dict[str, Any] = {}
    fields = update.model_fields_set

    if "name" in fields and update.name is not None:
        values["name"] = [_name_entry(update.name)]
    if "email" in fields and update.email is not None:
        values["email_addresses"] = [{"email_address": update.email.strip()}]
    if "phone" in fields:
        values["phone_numbers"] = [{"original_phone_number": update.phone}] if update.phone else []
    if "job_title" in fields:
        values["job_title"] = [{"value": update.job_title}] if update.job_title else []
    if "company_id" in fields:
        values["company"] = (
            [_reference(COMPANIES_TARGET, update.company_id)] if update.company_id else []
        )
    return values


def company_update_values(update: CompanyUpdate) -> dict[str, Any]:
    """Attribute values for a company update."""
    values: dict[str, Any] = {}
    if "domain" in update.model_fields_set:
        values["domains"] = [{"domain": update.domain.strip()}] if update.domain else []
    return values


def deal_create_values(deal: DealCreate) -> dict[str, Any]:
    """Attribute values for a new deal record."""
    values: dict[str, Any] = {
        "name": [{"value": deal.name}],
        "value": [{"currency_value": deal.value}],
    }
    if deal.stage_id:
        values["stage"] = [{"status": status_id_from_option_id(deal.stage_id)}]
    if deal.description:
        values["description"] = [{"value": deal.description}]
    if deal.person_id:
        values["associated_people"] = [_reference(PEOPLE_TARGET, deal.person_id)]
    if deal.company_id:
        values["associated_company"] = [_reference(COMPANIES_TARGET, deal.company_id)]
    return values
