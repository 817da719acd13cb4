"""Sidebar orchestration: host context in, PluginState out.

SidebarManager reacts to host context updates, resolves the active
conversation's contact, loads the cached collections and publishes a
PluginState. Key behaviors:

- Company list, deal stages and the deal set are fetched concurrently and
  awaited together before deals are classified. The company record
  depends on the resolved person and is fetched after resolution.
- Every load takes a ticket (generation counter, conversation id, target
  email). Results whose ticket is no longer current are discarded, so a
  superseded load never writes into a newer one's state.
- Company and stage listing failures degrade to empty lists; other
  failures end the load with a single error message.
- Mutations validate input first, then force-refresh the affected cache
  slots and reload.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Callable

import structlog

from src.sidebar.config import Settings, get_settings
from src.sidebar.conversations.models import HostContext
from src.sidebar.conversations.participants import (
    ParticipantExtractor,
    normalize_email,
    primary_participant,
)
from src.sidebar.crm.cache import REFRESH_ON_MUTATION, CrmCache
from src.sidebar.crm.relationships import person_company_id
from src.sidebar.crm.repository import CrmRepository
from src.sidebar.crm.schemas import Company, Deal, Person, RecordKind, StatusOption
from src.sidebar.plugin.contacts import ContactResolver, ResolutionStatus
from src.sidebar.plugin.deals import aggregate_deals
from src.sidebar.plugin.forms import CompanyForm, DealForm, PersonForm
from src.sidebar.plugin.state import PluginState

logger = structlog.get_logger(__name__)

NO_EMAIL_ERROR = "Could not extract email from conversation"
INCOMPLETE_PERSON_ERROR = "Person data is incomplete"


@dataclass(frozen=True)
class _LoadTicket:
    generation: int
    conversation_id: str | None
    email: str | None = None


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class SidebarManager:
    """Owns the PluginState for the host's active conversation.

    Args:
        repository: CRM record operations.
        cache: Collection caches shared across loads.
        extractor: Participant extractor configured with internal domains.
        resolver: Contact resolver; built from ``repository`` if omitted.
        today: Reference-day provider for deal ordering.
        on_state_change: Called with every published PluginState.
    """

    def __init__(
        self,
        repository: CrmRepository,
        cache: CrmCache,
        extractor: ParticipantExtractor,
        *,
        resolver: ContactResolver | None = None,
        today: Callable[[], date] = _utc_today,
        on_state_change: Callable[[PluginState], None] | None = None,
    ) -> None:
        self._repository = repository
        self._cache = cache
        self._extractor = extractor
        self._resolver = resolver or ContactResolver(repository)
        self._today = today
        self._on_state_change = on_state_change

        self._state = PluginState()
        self._context: HostContext | None = None
        self._generation = 0
        self._selected_email: str | None = None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        on_state_change: Callable[[PluginState], None] | None = None,
    ) -> SidebarManager:
        settings = settings or get_settings()
        repository = CrmRepository.from_settings(settings=settings)
        return cls(
            repository=repository,
            cache=CrmCache.from_repository(repository, settings),
            extractor=ParticipantExtractor(settings.get_internal_domains()),
            on_state_change=on_state_change,
        )

    @property
    def state(self) -> PluginState:
        return self._state

    # ── State Publication ──────────────────────────────────────────────────

    def _publish(self, state: PluginState) -> None:
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def _is_current(self, ticket: _LoadTicket) -> bool:
        if ticket.generation != self._generation:
            return False
        if self._context is None or self._context.conversation_id != ticket.conversation_id:
            return False
        return ticket.email is None or self._state.target_email == ticket.email

    def _patch(self, ticket: _LoadTicket, **changes: Any) -> bool:
        """Apply ``changes`` if the ticket is still current; report whether it was."""
        if not self._is_current(ticket):
            logger.debug(
                "plugin.stale_result_discarded",
                conversation_id=ticket.conversation_id,
                email=ticket.email,
                generation=ticket.generation,
            )
            return False
        self._publish(self._state.model_copy(update=changes))
        return True

    # ── Host Context ───────────────────────────────────────────────────────

    async def handle_context(self, context: HostContext) -> None:
        """React to a host context update.

        Only single-conversation contexts trigger a load. A new conversation
        gets a fresh PluginState; anything else resets the state and
        invalidates in-flight loads.
        """
        previous = self._context
        self._context = context

        if not context.is_single:
            self._generation += 1
            self._selected_email = None
            self._publish(PluginState())
            logger.info("plugin.context_inactive", context_type=context.type.value)
            return

        if previous is None or previous.conversation_id != context.conversation_id:
            self._generation += 1
            self._selected_email = None
            self._publish(PluginState(conversation_id=context.conversation_id))
            logger.info("plugin.conversation_changed", conversation_id=context.conversation_id)

        await self.load_data()

    async def follow(self, updates: AsyncIterator[HostContext]) -> None:
        """Consume a host context subscription until it ends.

        Each update is handled in its own task, so a slow load never holds
        up newer contexts; stale loads discard their own results.
        """
        async for context in updates:
            task = asyncio.create_task(self.handle_context(context))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def select_participant(self, email: str) -> None:
        """Retarget the lookup to another participant of the conversation."""
        email = normalize_email(email)
        if email not in {p.email for p in self._state.participants}:
            raise ValueError(f"{email} is not a participant of this conversation")
        self._selected_email = email
        await self.load_data()

    # ── Loading ────────────────────────────────────────────────────────────

    async def load_data(self) -> None:
        """Load everything the sidebar shows for the active conversation."""
        context = self._context
        if context is None or not context.is_single:
            return

        self._generation += 1
        ticket = _LoadTicket(self._generation, context.conversation_id)
        self._patch(ticket, loading=True, error=None)

        try:
            messages = await context.list_messages()
        except Exception as exc:
            logger.warning(
                "plugin.list_messages_failed",
                conversation_id=context.conversation_id,
                error=str(exc),
            )
            messages = []
        if not self._is_current(ticket):
            logger.debug("plugin.stale_messages_discarded", conversation_id=ticket.conversation_id)
            return

        participants = self._extractor.extract(messages)
        emails = {p.email for p in participants}
        email = (
            self._selected_email
            if self._selected_email in emails
            else primary_participant(participants)
        )
        if email is None:
            self._patch(
                ticket,
                loading=False,
                error=NO_EMAIL_ERROR,
                participants=participants,
                target_email=None,
                person=None,
                company=None,
                deals=[],
            )
            return

        retarget: dict[str, Any] = {"participants": participants, "target_email": email}
        if email != self._state.target_email:
            # The previous target's records must not show under the new target
            retarget.update(person=None, company=None, deals=[])
        self._patch(ticket, **retarget)
        ticket = _LoadTicket(ticket.generation, ticket.conversation_id, email)

        # Bulk listings start before person resolution; they do not depend on it
        companies_task = asyncio.ensure_future(self._list_companies())
        stages_task = asyncio.ensure_future(self._list_deal_stages())
        deals_task = asyncio.ensure_future(self._cache.deals.get_or_refresh())
        try:
            changes = await self._load_contact(email, companies_task, stages_task, deals_task)
        except Exception as exc:
            logger.exception("plugin.load_failed", email=email)
            self._patch(ticket, loading=False, error=str(exc) or "Failed to load data")
            return
        finally:
            self._settle(companies_task, stages_task, deals_task)

        if self._patch(ticket, **changes):
            logger.info(
                "plugin.load_complete",
                email=email,
                person_found=changes.get("person") is not None,
                deals=len(changes.get("deals", [])),
            )

    async def _load_contact(
        self,
        email: str,
        companies_task: asyncio.Future[list[Company]],
        stages_task: asyncio.Future[list[StatusOption]],
        deals_task: asyncio.Future[list[Deal]],
    ) -> dict[str, Any]:
        """Resolve the contact and build the state changes for it.

        The deal set is only awaited for a found person; a deal listing
        failure then fails the load, unlike company and stage listings.
        """
        resolution = await self._resolver.resolve_person(email)

        if resolution.status == ResolutionStatus.NOT_FOUND:
            companies, stages = await asyncio.gather(companies_task, stages_task)
            return {
                "loading": False,
                "person": None,
                "company": None,
                "deals": [],
                "companies": companies,
                "deal_stages": stages,
            }

        if resolution.status == ResolutionStatus.MALFORMED:
            return {
                "loading": False,
                "error": INCOMPLETE_PERSON_ERROR,
                "person": None,
                "company": None,
                "deals": [],
                "companies": [],
                "deal_stages": [],
            }

        person = resolution.require_person()
        company_id = person_company_id(person)
        companies, stages, all_deals, company = await asyncio.gather(
            companies_task,
            stages_task,
            deals_task,
            self._get_company(company_id),
        )
        deals = aggregate_deals(all_deals, person.record_id, company_id, today=self._today())
        return {
            "loading": False,
            "person": person,
            "company": company,
            "deals": deals,
            "companies": companies,
            "deal_stages": stages,
        }

    @staticmethod
    def _settle(*tasks: asyncio.Future) -> None:
        """Cancel listing tasks the load no longer needs.

        Cancelling a waiter leaves the shared cache fetch running. Failures
        of tasks nobody awaited are logged here.
        """
        for task in tasks:
            if not task.done():
                task.cancel()
            elif not task.cancelled() and task.exception() is not None:
                logger.debug("plugin.unused_fetch_failed", error=str(task.exception()))

    async def _list_companies(self) -> list[Company]:
        try:
            return await self._cache.companies.get_or_refresh()
        except Exception as exc:
            logger.warning("plugin.companies_unavailable", error=str(exc))
            return []

    async def _list_deal_stages(self) -> list[StatusOption]:
        try:
            return await self._cache.deal_stages.get_or_refresh()
        except Exception as exc:
            logger.warning("plugin.deal_stages_unavailable", error=str(exc))
            return []

    async def _get_company(self, company_id: str | None) -> Company | None:
        if not company_id:
            return None
        return await self._repository.get_company(company_id)

    # ── Mutations ──────────────────────────────────────────────────────────

    async def on_update(self, kind: RecordKind | None = None) -> None:
        """Force-refresh the slots a mutation of ``kind`` affects, then reload."""
        if kind is not None:
            await self._cache.force_refresh(REFRESH_ON_MUTATION[kind])
        await self.load_data()

    async def on_created(self, kind: RecordKind | None = None) -> None:
        await self.on_update(kind)

    async def create_person(self, form: PersonForm) -> Person:
        payload = form.to_create()
        person = await self._repository.create_person(payload)
        logger.info("plugin.person_created", record_id=person.record_id)
        await self.on_created(RecordKind.PERSON)
        return person

    async def update_person(self, record_id: str, form: PersonForm) -> Person:
        payload = form.to_update()
        person = await self._repository.update_person(record_id, payload)
        await self.on_update(RecordKind.PERSON)
        return person

    async def update_company(self, record_id: str, form: CompanyForm) -> Company:
        payload = form.to_update()
        company = await self._repository.update_company(record_id, payload)
        await self.on_update(RecordKind.COMPANY)
        return company

    async def create_deal(self, form: DealForm) -> Deal:
        """Create a deal linked to the current person and company."""
        person_id = self._state.person.record_id if self._state.person else None
        company_id = self._state.company.record_id if self._state.company else None
        payload = form.to_create(person_id=person_id, company_id=company_id)
        deal = await self._repository.create_deal(payload)
        logger.info("plugin.deal_created", record_id=deal.record_id, person_id=person_id)
        await self.on_created(RecordKind.DEAL)
        return deal
