"""CRM record operations used by the sidebar.

Wraps CrmClient with the object types configured for the workspace and
returns typed records. Bulk collections (companies, deals) are read with
offset pagination up to ``CRM_MAX_RECORDS``; relationship filtering never
happens server-side because the backend cannot filter on reference
attributes.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.sidebar.config import Settings, get_settings
from src.sidebar.crm.client import CrmClient
from src.sidebar.crm.field_mapping import (
    company_update_values,
    deal_create_values,
    person_create_values,
    person_update_values,
)
from src.sidebar.crm.schemas import (
    AttributeDefinition,
    Company,
    CompanyUpdate,
    Deal,
    DealCreate,
    Person,
    PersonCreate,
    PersonUpdate,
    StatusOption,
)

logger = structlog.get_logger(__name__)

STAGE_ATTRIBUTE_SLUG = "stage"


class CrmRepository:
    """Typed access to people, companies, deals and deal stages.

    Args:
        client: HTTP client for the CRM API.
        people_object: Object slug or id for people.
        companies_object: Object slug or id for companies.
        deals_object: Object slug or id for deals.
        page_size: Records requested per query.
        max_records: Upper bound on records read for a bulk collection.
    """

    def __init__(
        self,
        client: CrmClient,
        people_object: str = "people",
        companies_object: str = "companies",
        deals_object: str = "deals",
        page_size: int = 500,
        max_records: int = 2000,
    ) -> None:
        self._client = client
        self.people_object = people_object
        self.companies_object = companies_object
        self.deals_object = deals_object
        self._page_size = page_size
        self._max_records = max_records

    @classmethod
    def from_settings(
        cls, client: CrmClient | None = None, settings: Settings | None = None
    ) -> CrmRepository:
        settings = settings or get_settings()
        return cls(
            client=client or CrmClient.from_settings(settings),
            people_object=settings.CRM_PEOPLE_OBJECT,
            companies_object=settings.CRM_COMPANIES_OBJECT,
            deals_object=settings.CRM_DEALS_OBJECT,
            page_size=settings.CRM_PAGE_SIZE,
            max_records=settings.CRM_MAX_RECORDS,
        )

    async def _query_all(
        self, object_type: str, sorts: list[dict[str, Any]] | None = None
    ) -> list[dict[str, Any]]:
        """Read every record of an object type, page by page."""
        records: list[dict[str, Any]] = []
        while len(records) < self._max_records:
            limit = min(self._page_size, self._max_records - len(records))
            batch = await self._client.query_records(
                object_type,
                sorts=sorts,
                limit=limit,
                offset=len(records),
            )
            records.extend(batch)
            if len(batch) < limit:
                break
        else:
            logger.warning(
                "crm.collection_truncated",
                object_type=object_type,
                max_records=self._max_records,
            )
        return records

    # ── People ─────────────────────────────────────────────────────────────

    async def search_person_by_email(self, email: str) -> Person | None:
        """Return the first person whose email addresses contain ``email``."""
        data = await self._client.query_records(
            self.people_object,
            query_filter={"email_addresses": {"$contains": email}},
            limit=1,
        )
        return Person.model_validate(data[0]) if data else None

    async def create_person(self, person: PersonCreate) -> Person:
        record = await self._client.create_record(self.people_object, person_create_values(person))
        return Person.model_validate(record)

    async def update_person(self, record_id: str, update: PersonUpdate) -> Person:
        record = await self._client.update_record(
            self.people_object, record_id, person_update_values(update)
        )
        return Person.model_validate(record)

    # ── Companies ──────────────────────────────────────────────────────────

    async def get_company(self, record_id: str) -> Company:
        return Company.model_validate(
            await self._client.get_record(self.companies_object, record_id)
        )

    async def list_companies(self) -> list[Company]:
        """All companies, sorted by name ascending."""
        data = await self._query_all(
            self.companies_object,
            sorts=[{"attribute": "name", "direction": "asc"}],
        )
        return [Company.model_validate(item) for item in data]

    async def update_company(self, record_id: str, update: CompanyUpdate) -> Company:
        record = await self._client.update_record(
            self.companies_object, record_id, company_update_values(update)
        )
        return Company.model_validate(record)

    # ── Deals ──────────────────────────────────────────────────────────────

    async def list_deals(self) -> list[Deal]:
        """The full deal set (relationship filtering happens client-side)."""
        data = await self._query_all(self.deals_object)
        logger.info("crm.deals_listed", count=len(data))
        return [Deal.model_validate(item) for item in data]

    async def create_deal(self, deal: DealCreate) -> Deal:
        record = await self._client.create_record(self.deals_object, deal_create_values(deal))
        return Deal.model_validate(record)

    async def list_deal_stages(self) -> list[StatusOption]:
        """Non-archived options of the deal object's ``stage`` attribute.

        Returns an empty list when the deal object has no stage attribute.
        """
        attributes = [
            AttributeDefinition.model_validate(item)
            for item in await self._client.list_attributes(self.deals_object)
        ]
        stage_attribute = next(
            (attr for attr in attributes if attr.api_slug == STAGE_ATTRIBUTE_SLUG), None
        )
        if stage_attribute is None:
            logger.error("crm.stage_attribute_missing", object_type=self.deals_object)
            return []

        statuses = await self._client.list_statuses(
            self.deals_object, stage_attribute.id.attribute_id or STAGE_ATTRIBUTE_SLUG
        )
        options = [StatusOption.model_validate(item) for item in statuses]
        return [option for option in options if not option.is_archived]
