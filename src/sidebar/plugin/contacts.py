"""Contact resolution: find the CRM person behind an email address.

A lookup has three outcomes the sidebar treats differently:
- FOUND: a well-formed person record
- MALFORMED: a record came back without its identifier (a data-integrity
  problem, shown as an error banner)
- NOT_FOUND: no record matched (the sidebar offers to create one)

Transport and HTTP errors propagate to the caller.
"""

from __future__ import annotations

import re
from enum import Enum

import structlog
from pydantic import BaseModel

from src.sidebar.crm.repository import CrmRepository
from src.sidebar.crm.schemas import Person

logger = structlog.get_logger(__name__)

_SEPARATORS_RE = re.compile(r"[._-]+")


class ResolutionStatus(str, Enum):
    """Outcome of a person lookup."""

    FOUND = "found"
    MALFORMED = "malformed"
    NOT_FOUND = "not_found"


class MalformedRecordError(Exception):
    """A record was returned without a usable identifier."""


class PersonResolution(BaseModel):
    """Result of resolving an email address to a person."""

    email: str
    status: ResolutionStatus
    person: Person | None = None

    @property
    def found(self) -> bool:
        return self.status == ResolutionStatus.FOUND

    def require_person(self) -> Person:
        """Return the resolved person or raise for the other outcomes."""
        if self.status == ResolutionStatus.MALFORMED:
            raise MalformedRecordError(f"Person record for {self.email} has no identifier")
        if self.person is None:
            raise LookupError(f"No person found for {self.email}")
        return self.person


class ContactResolver:
    """Resolves email addresses against the CRM's people object."""

    def __init__(self, repository: CrmRepository) -> None:
        self._repository = repository

    async def resolve_person(self, email: str) -> PersonResolution:
        """Look up the person whose email addresses contain ``email``.

        Args:
            email: Address to search for.

        Returns:
            PersonResolution with status FOUND, MALFORMED or NOT_FOUND.
        """
        email = email.strip()
        person = await self._repository.search_person_by_email(email)

        if person is None:
            logger.info("contacts.person_not_found", email=email)
            return PersonResolution(email=email, status=ResolutionStatus.NOT_FOUND)

        if not person.has_identity():
            logger.error("contacts.person_malformed", email=email)
            return PersonResolution(email=email, status=ResolutionStatus.MALFORMED, person=person)

        logger.info("contacts.person_found", email=email, record_id=person.record_id)
        return PersonResolution(email=email, status=ResolutionStatus.FOUND, person=person)


def suggest_name_from_email(email: str) -> str:
    """Guess a display name from an address (``jane.doe@x.com`` -> ``Jane Doe``)."""
    local_part = email.split("@", 1)[0]
    words = _SEPARATORS_RE.split(local_part)
    return " ".join(word.capitalize() for word in words if word)
