"""Unit tests for deal aggregation, ordering and display summaries."""

from __future__ import annotations

from datetime import date

from conftest import make_deal, make_stage

from src.sidebar.crm.schemas import BillingStatus
from src.sidebar.plugin.deals import (
    aggregate_deals,
    is_deal_closed,
    merge_unique,
    sort_deals,
    summarize_deal,
)

TODAY = date(2026, 3, 15)


def _ids(deals) -> list[str]:
    return [deal.record_id for deal in deals]


class TestClosedInference:
    """Tests for the open/closed split."""

    def test_close_date_today_is_closed(self):
        assert is_deal_closed(make_deal(close_date="2026-03-15"), TODAY)

    def test_close_date_later_today_is_open(self):
        """A timestamp after midnight of today is still open."""
        assert not is_deal_closed(make_deal(close_date="2026-03-15T09:00:00Z"), TODAY)

    def test_past_is_closed(self):
        assert is_deal_closed(make_deal(close_date="2025-12-31"), TODAY)

    def test_no_close_date_is_open(self):
        assert not is_deal_closed(make_deal(), TODAY)


class TestOrdering:
    """Tests for display order."""

    def test_open_before_closed_and_date_descending(self):
        deals = [
            make_deal("closed-old", close_date="2025-01-10"),
            make_deal("open-soon", close_date="2026-04-01"),
            make_deal("closed-recent", close_date="2026-03-01"),
            make_deal("open-undated"),
            make_deal("open-later", close_date="2026-06-01"),
        ]

        ordered = sort_deals(deals, TODAY)

        assert _ids(ordered) == [
            "open-undated",
            "open-later",
            "open-soon",
            "closed-recent",
            "closed-old",
        ]

    def test_unparseable_date_treated_as_missing(self):
        deals = [make_deal("dated", close_date="2026-05-01"), make_deal("junk", close_date="soon")]
        assert _ids(sort_deals(deals, TODAY)) == ["junk", "dated"]


class TestMergeUnique:
    def test_first_copy_wins(self):
        first = make_deal("d1", name="From person")
        second = make_deal("d1", name="From company")
        merged = merge_unique([first], [second])
        assert len(merged) == 1
        assert merged[0] is first

    def test_records_without_identity_dropped(self):
        merged = merge_unique([make_deal(None), make_deal("d2")])
        assert _ids(merged) == ["d2"]


class TestAggregateDeals:
    """Tests for person + company aggregation."""

    def test_person_and_company_deals_merged(self):
        """Deals of the person and of the company, deduplicated and ordered."""
        a = make_deal("A", person_id="p1", close_date="2026-05-01")
        b = make_deal("B", company_id="c1", close_date="2026-01-01")
        c = make_deal("C", person_id="p1", company_id="c1", close_date="2026-04-01")
        other = make_deal("X", person_id="p2", company_id="c2")

        deals = aggregate_deals([b, other, c, a], "p1", "c1", today=TODAY)

        assert _ids(deals) == ["A", "C", "B"]

    def test_duplicate_keeps_person_copy(self):
        person_copy = make_deal("D", person_id="p1")
        company_copy = make_deal("D", company_id="c1", name="Company view")
        deals = aggregate_deals([company_copy, person_copy], "p1", "c1", today=TODAY)
        assert deals == [person_copy]

    def test_without_company(self):
        deals = aggregate_deals(
            [make_deal("A", person_id="p1"), make_deal("B", company_id="c1")],
            "p1",
            None,
            today=TODAY,
        )
        assert _ids(deals) == ["A"]

    def test_malformed_deal_skipped(self):
        deals = aggregate_deals([make_deal(None, person_id="p1")], "p1", today=TODAY)
        assert deals == []


class TestSummarizeDeal:
    """Tests for display value resolution."""

    def test_open_deal_summary(self):
        deal = make_deal(
            "D1",
            name="Renewal",
            close_date="2026-06-01",
            value=[{"currency_value": 4200, "currency_code": "EUR"}],
            stage=[{"status_id": "st-2"}],
            billing_status=[{"option_id": "opt-partial"}],
            description=[{"value": "Phase two rollout"}],
        )
        summary = summarize_deal(
            deal,
            [make_stage("st-2", "Proposal")],
            partial_option_ids=["opt-partial"],
            today=TODAY,
        )

        assert summary.name == "Renewal"
        assert summary.description == "Phase two rollout"
        assert summary.stage == "Proposal"
        assert summary.value.amount == 4200
        assert summary.value.currency == "EUR"
        assert summary.billing_status == BillingStatus.PARTIAL
        assert not summary.is_closed

    def test_closed_deal_shows_won(self):
        deal = make_deal("D2", close_date="2026-01-01", stage=[{"status": {"title": "Proposal"}}])
        summary = summarize_deal(deal, today=TODAY)
        assert summary.is_closed
        assert summary.stage == "Won"

    def test_unnamed_deal(self):
        deal = make_deal("D3", name="")
        assert summarize_deal(deal, today=TODAY).name == "Unnamed Deal"
