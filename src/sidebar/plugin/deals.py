"""Deal aggregation for the resolved contact.

Combines the deals related to a person with those related to the
person's company, drops malformed records, removes duplicates (first
occurrence wins, so person matches beat company matches) and applies the
display order:

1. Open deals (no close date, or close date after the start of today)
   before closed deals (close date today or earlier).
2. Within each group, close date descending; a missing close date counts
   as the furthest future, so it sorts first among open deals.

A deal is treated as won once its close date has passed. There is no
explicit won/lost stage flag behind this.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Iterable, Sequence

from pydantic import BaseModel

from src.sidebar.crm.attributes import (
    deal_close_date,
    deal_description,
    deal_name,
    resolve_billing_status,
    resolve_money,
    resolve_stage_label,
)
from src.sidebar.crm.relationships import is_related_to_company, is_related_to_person
from src.sidebar.crm.schemas import BillingStatus, Deal, Money, StatusOption


def _today() -> date:
    return datetime.now(timezone.utc).date()


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def is_deal_closed(deal: Deal, today: date | None = None) -> bool:
    """True if the deal's close date is on or before the start of ``today``."""
    close = deal_close_date(deal)
    if close is None:
        return False
    return close <= start_of_day(today or _today())


def _sort_key(deal: Deal, today: date) -> tuple[bool, float]:
    close = deal_close_date(deal)
    timestamp = close.timestamp() if close is not None else math.inf
    return is_deal_closed(deal, today), -timestamp


def sort_deals(deals: Iterable[Deal], today: date | None = None) -> list[Deal]:
    """Open deals first, then closed; close date descending within each."""
    today = today or _today()
    return sorted(deals, key=lambda deal: _sort_key(deal, today))


def merge_unique(*groups: Iterable[Deal]) -> list[Deal]:
    """Concatenate deal groups, keeping the first copy of each record id.

    Records without an identity are dropped.
    """
    merged: dict[str, Deal] = {}
    for group in groups:
        for deal in group:
            record_id = deal.record_id if deal is not None else None
            if record_id is None or record_id in merged:
                continue
            merged[record_id] = deal
    return list(merged.values())


def aggregate_deals(
    all_deals: Sequence[Deal],
    person_id: str | None,
    company_id: str | None = None,
    today: date | None = None,
) -> list[Deal]:
    """Select, deduplicate and order the deals shown for a contact.

    Args:
        all_deals: The full cached deal collection.
        person_id: Resolved person's record id.
        company_id: Record id of the person's company, if any.
        today: Reference day for the open/closed split.

    Returns:
        Unique deals related to the person or the company, in display order.
    """
    person_deals = [deal for deal in all_deals if is_related_to_person(deal, person_id)]
    company_deals = (
        [deal for deal in all_deals if is_related_to_company(deal, company_id)]
        if company_id
        else []
    )
    return sort_deals(merge_unique(person_deals, company_deals), today)


# ── Display Summary ────────────────────────────────────────────────────────


class DealSummary(BaseModel):
    """Resolved display values for one deal."""

    record_id: str
    name: str
    description: str | None = None
    value: Money | None = None
    stage: str
    billing_status: BillingStatus = BillingStatus.NONE
    is_closed: bool = False
    close_date: datetime | None = None
    web_url: str | None = None


def summarize_deal(
    deal: Deal,
    stages: Sequence[StatusOption] = (),
    *,
    default_currency: str = "USD",
    billed_option_ids: Sequence[str] = (),
    partial_option_ids: Sequence[str] = (),
    today: date | None = None,
) -> DealSummary:
    closed = is_deal_closed(deal, today)
    return DealSummary(
        record_id=deal.record_id or "",
        name=deal_name(deal) or "Unnamed Deal",
        description=deal_description(deal),
        value=resolve_money(deal, "value", default_currency),
        stage="Won" if closed else resolve_stage_label(deal, stages),
        billing_status=resolve_billing_status(deal, billed_option_ids, partial_option_ids),
        is_closed=closed,
        close_date=deal_close_date(deal),
        web_url=deal.web_url,
    )
