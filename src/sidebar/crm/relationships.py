"""Client-side classification of deal relationships.

The CRM's query endpoint cannot filter deals by a reference-typed
attribute, so deals are fetched in bulk and matched here. A deal may
point at a person or company under several attribute names, and a
reference entry may name the referenced record under several keys.
Both lists are fixed, ordered constants so classification does not
depend on dict iteration order.
"""

from __future__ import annotations

from typing import Any, Sequence

from src.sidebar.crm.attributes import active_entries
from src.sidebar.crm.schemas import CrmRecord

# Keys a reference entry may use for the id of the record it points at
REFERENCE_ID_KEYS: tuple[str, ...] = (
    "target_record_id",
    "referenced_record_id",
    "record_id",
)

PERSON_RELATION_ATTRIBUTES: tuple[str, ...] = (
    "associated_people",
    "people",
    "person",
    "contacts",
    "contact",
    "primary_contact",
)

COMPANY_RELATION_ATTRIBUTES: tuple[str, ...] = (
    "associated_company",
    "companies",
    "company",
    "organization",
    "organizations",
    "primary_company",
)

# Attributes on a person record that reference the person's company
PERSON_COMPANY_ATTRIBUTES: tuple[str, ...] = (
    "company",
    "primary_company",
    "companies",
)


def reference_id(entry: Any) -> str | None:
    """Return the referenced record id of a reference entry, or None."""
    if not isinstance(entry, dict):
        return None
    for key in REFERENCE_ID_KEYS:
        value = entry.get(key)
        if value:
            return str(value)
    return None


def is_related(
    record: CrmRecord | None,
    target_id: str | None,
    candidate_attributes: Sequence[str],
) -> bool:
    """True if any candidate attribute of ``record`` references ``target_id``.

    Missing attributes, empty value lists and entries without a reference
    id classify as unrelated.
    """
    if record is None or not target_id:
        return False
    for attribute in candidate_attributes:
        for entry in active_entries(record, attribute):
            if reference_id(entry) == target_id:
                return True
    return False


def is_related_to_person(deal: CrmRecord | None, person_id: str | None) -> bool:
    return is_related(deal, person_id, PERSON_RELATION_ATTRIBUTES)


def is_related_to_company(deal: CrmRecord | None, company_id: str | None) -> bool:
    return is_related(deal, company_id, COMPANY_RELATION_ATTRIBUTES)


def person_company_id(person: CrmRecord | None) -> str | None:
    """Id of the company a person record references, if any.

    Only the first active entry of each attribute is considered.
    """
    for attribute in PERSON_COMPANY_ATTRIBUTES:
        entries = active_entries(person, attribute)
        if entries:
            ref = reference_id(entries[0])
            if ref:
                return ref
    return None
