#!/usr/bin/env python3
"""Look up a contact and its deals against a live CRM workspace.

Usage:
    python scripts/lookup_contact.py --email jane.doe@example.com
    python scripts/lookup_contact.py --email jane.doe@example.com --json

Reads CRM_API_KEY and the other settings from the environment or .env.
Exit code 0 if the person was found, 1 if not found or malformed,
2 on a CRM/transport error.
"""

import argparse
import asyncio
import json
import sys

import httpx

from src.sidebar.config import get_settings
from src.sidebar.crm.attributes import (
    company_description,
    company_domain,
    company_name,
    person_job_title,
    person_name,
)
from src.sidebar.crm.client import CrmApiError
from src.sidebar.crm.relationships import person_company_id
from src.sidebar.crm.repository import CrmRepository
from src.sidebar.observability import configure_structlog
from src.sidebar.plugin.contacts import ContactResolver, ResolutionStatus
from src.sidebar.plugin.deals import aggregate_deals, summarize_deal


async def lookup(email: str) -> dict:
    """Resolve ``email`` and collect the deals shown for it."""
    settings = get_settings()
    repository = CrmRepository.from_settings(settings=settings)
    resolution = await ContactResolver(repository).resolve_person(email)

    result = {"email": resolution.email, "status": resolution.status.value}
    if resolution.status != ResolutionStatus.FOUND:
        return result

    person = resolution.require_person()
    company_id = person_company_id(person)
    all_deals, stages = await asyncio.gather(
        repository.list_deals(),
        repository.list_deal_stages(),
    )
    company = await repository.get_company(company_id) if company_id else None

    deals = aggregate_deals(all_deals, person.record_id, company_id)
    result.update(
        {
            "person": {
                "record_id": person.record_id,
                "name": person_name(person),
                "job_title": person_job_title(person),
            },
            "company": (
                {
                    "record_id": company.record_id,
                    "name": company_name(company),
                    "domain": company_domain(company),
                    "description": company_description(company),
                }
                if company is not None
                else None
            ),
            "deals": [
                summarize_deal(
                    deal,
                    stages,
                    default_currency=settings.DEFAULT_CURRENCY,
                    billed_option_ids=settings.get_billed_option_ids(),
                    partial_option_ids=settings.get_partial_billing_option_ids(),
                ).model_dump(mode="json")
                for deal in deals
            ],
        }
    )
    return result


def print_result(result: dict) -> None:
    """Print a formatted summary of a lookup."""
    separator = "-" * 70
    print()
    print(separator)
    print(f"{'EMAIL':<12} {result['email']}")
    print(f"{'STATUS':<12} {result['status']}")
    person = result.get("person")
    if person:
        print(f"{'PERSON':<12} {person['name'] or '(no name)'} [{person['record_id']}]")
        if person["job_title"]:
            print(f"{'TITLE':<12} {person['job_title']}")
    company = result.get("company")
    if company:
        print(f"{'COMPANY':<12} {company['name'] or '(no name)'} [{company['record_id']}]")
        if company["domain"]:
            print(f"{'DOMAIN':<12} {company['domain']}")
        if company["description"]:
            print(f"{'ABOUT':<12} {company['description'][:56]}")
    print(separator)

    deals = result.get("deals") or []
    if deals:
        print(f"{'DEAL':<30} {'STAGE':<18} {'VALUE':<14} {'BILLING'}")
        print(separator)
        for deal in deals:
            value = deal["value"]
            amount = f"{value['amount']:,.0f} {value['currency']}" if value else "-"
            print(f"{deal['name'][:29]:<30} {deal['stage'][:17]:<18} {amount:<14} {deal['billing_status']}")
        print(separator)
    elif person:
        print("No deals.")
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Look up a CRM contact and its deals by email")
    parser.add_argument("--email", required=True, help="Email address to look up")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    args = parser.parse_args()

    configure_structlog()

    try:
        result = asyncio.run(lookup(args.email))
    except CrmApiError as exc:
        print(f"CRM error: {exc}", file=sys.stderr)
        sys.exit(2)
    except httpx.HTTPError as exc:
        print(f"HTTP error: {exc}", file=sys.stderr)
        sys.exit(2)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        print_result(result)

    sys.exit(0 if result["status"] == ResolutionStatus.FOUND.value else 1)


if __name__ == "__main__":
    main()
