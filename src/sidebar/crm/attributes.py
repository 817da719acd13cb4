"""Typed value extraction from CRM attribute-value lists.

Every record attribute is a list of entries whose shape depends on the
attribute type, and the same logical field is not always stored under the
same key. The resolvers here read the first active entry of an attribute
and walk an ordered fallback path until a usable value turns up.

None of these functions raise: ``None`` is the terminal "no value" result.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Any, Sequence, Union

from src.sidebar.crm.schemas import BillingStatus, CrmRecord, Money, StatusOption

# A fallback step is a dotted path into the entry, or a tuple of dotted
# paths whose non-empty results are joined with a space.
FallbackStep = Union[str, tuple[str, ...]]

NAME_FALLBACKS: tuple[FallbackStep, ...] = ("full_name", ("first_name", "last_name"))
EMAIL_FALLBACKS: tuple[FallbackStep, ...] = ("email_address",)
PHONE_FALLBACKS: tuple[FallbackStep, ...] = ("original_phone_number", "phone_number")
TEXT_FALLBACKS: tuple[FallbackStep, ...] = ("value",)
DOMAIN_FALLBACKS: tuple[FallbackStep, ...] = ("domain",)

# Keys that may carry the amount / currency of a currency attribute
AMOUNT_KEYS = ("currency_value", "amount", "value")
CURRENCY_KEYS = ("currency_code", "currencyCode", "currency")

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


# ── Entry Access ───────────────────────────────────────────────────────────


def active_entries(record: CrmRecord | None, attribute: str) -> list[Any]:
    """Return the entries of an attribute that are still active.

    Entries carrying a non-null ``active_until`` are historical and skipped.
    A missing attribute or a non-list value yields an empty list.
    """
    if record is None:
        return []
    entries = record.values.get(attribute)
    if not isinstance(entries, list):
        return []
    return [
        entry
        for entry in entries
        if not (isinstance(entry, dict) and entry.get("active_until") is not None)
    ]


def first_entry(record: CrmRecord | None, attribute: str) -> Any | None:
    """Return the first active entry of an attribute, or None."""
    entries = active_entries(record, attribute)
    return entries[0] if entries else None


def _lookup(entry: Any, path: str) -> Any:
    current = entry
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _apply_step(entry: Any, step: FallbackStep) -> Any:
    if isinstance(step, tuple):
        parts = [str(_lookup(entry, path)).strip() for path in step if _present(_lookup(entry, path))]
        return " ".join(parts) if parts else None
    return _lookup(entry, step)


def resolve_scalar(
    record: CrmRecord | None,
    attribute: str,
    fallback_path: Sequence[FallbackStep] = TEXT_FALLBACKS,
    record_fallbacks: Sequence[str] = (),
) -> Any | None:
    """Resolve a scalar value from a record attribute.

    Tries each step of ``fallback_path`` against the attribute's first
    active entry, then each record-level field in ``record_fallbacks``
    (for example ``record_text``, the backend's display text).

    Args:
        record: The record to read, may be None.
        attribute: Attribute name, e.g. ``"name"``.
        fallback_path: Ordered steps into the entry.
        record_fallbacks: Ordered record-level field names.

    Returns:
        The first non-empty value found, or None.
    """
    entry = first_entry(record, attribute)

    if entry is not None and not isinstance(entry, dict):
        # Plain scalar stored directly in the value list
        if _present(entry):
            return entry
    elif entry is not None:
        for step in fallback_path:
            value = _apply_step(entry, step)
            if _present(value):
                return value

    if record is not None:
        for field_name in record_fallbacks:
            value = getattr(record, field_name, None)
            if _present(value):
                return value

    return None


# ── Person / Company / Deal Fields ─────────────────────────────────────────


def person_name(person: CrmRecord | None) -> str | None:
    """Full name, then first + last name, then the record's display text."""
    return resolve_scalar(person, "name", NAME_FALLBACKS, ("record_text",))


def person_email(person: CrmRecord | None) -> str | None:
    return resolve_scalar(person, "email_addresses", EMAIL_FALLBACKS)


def person_phone(person: CrmRecord | None) -> str | None:
    return resolve_scalar(person, "phone_numbers", PHONE_FALLBACKS)


def person_job_title(person: CrmRecord | None) -> str | None:
    return resolve_scalar(person, "job_title")


def company_name(company: CrmRecord | None) -> str | None:
    return resolve_scalar(company, "name", TEXT_FALLBACKS, ("record_text",))


def company_domain(company: CrmRecord | None) -> str | None:
    return resolve_scalar(company, "domains", DOMAIN_FALLBACKS)


def company_description(company: CrmRecord | None) -> str | None:
    return resolve_scalar(company, "description")


def deal_name(deal: CrmRecord | None) -> str | None:
    return resolve_scalar(deal, "name", TEXT_FALLBACKS, ("record_text",))


def deal_description(deal: CrmRecord | None) -> str | None:
    return resolve_scalar(deal, "description")


# ── Money ──────────────────────────────────────────────────────────────────


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def resolve_money(
    record: CrmRecord | None,
    attribute: str = "value",
    default_currency: str = "USD",
) -> Money | None:
    """Resolve a currency attribute into a Money value.

    Accepts a plain number, a ``{currency_value|amount|value, currency_code}``
    entry, or an entry whose ``value`` is itself an amount/currency pair.
    The currency falls back to ``default_currency``.
    """
    entry = first_entry(record, attribute)
    if entry is None:
        return None

    if not isinstance(entry, dict):
        amount = _as_float(entry)
        return Money(amount=amount, currency=default_currency) if amount is not None else None

    source = entry["value"] if isinstance(entry.get("value"), dict) else entry

    amount = None
    for key in AMOUNT_KEYS:
        amount = _as_float(source.get(key))
        if amount is not None:
            break
    if amount is None:
        return None

    currency = next(
        (source[key] for key in CURRENCY_KEYS if _present(source.get(key))),
        default_currency,
    )
    return Money(amount=amount, currency=str(currency).upper())


# ── Dates ──────────────────────────────────────────────────────────────────


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO date or timestamp into an aware UTC datetime.

    Date-only values map to midnight UTC. Naive timestamps are taken as UTC.
    Sub-microsecond precision is truncated. Unparseable input yields None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            if "T" not in text and " " not in text:
                return datetime.combine(date.fromisoformat(text[:10]), time.min, tzinfo=timezone.utc)
            text = _FRACTION_RE.sub(r".\1", text.replace("Z", "+00:00"))
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def deal_close_date(deal: CrmRecord | None) -> datetime | None:
    """The deal's close date, or None when unset or unparseable."""
    return parse_timestamp(resolve_scalar(deal, "close_date"))


# ── Stages ─────────────────────────────────────────────────────────────────


def stage_option_id(option: StatusOption) -> str:
    """Composite ``workspace|object|attribute|status`` id of a stage option."""
    sid = option.id
    return f"{sid.workspace_id}|{sid.object_id}|{sid.attribute_id}|{sid.status_id}"


def status_id_from_option_id(option_id: str) -> str:
    """Extract the status id (last segment) from a composite stage option id."""
    return option_id.split("|")[-1]


def resolve_stage_label(deal: CrmRecord | None, stages: Sequence[StatusOption] = ()) -> str:
    """Human-readable stage of a deal.

    Order: embedded status title, embedded option title, lookup of the
    entry's status id in ``stages``, raw value, shortened option id.
    """
    entry = first_entry(deal, "stage")
    if entry is None:
        return "No Stage"
    if not isinstance(entry, dict):
        return str(entry) if _present(entry) else "Unknown Stage"

    for path in ("status.title", "option.title"):
        title = _lookup(entry, path)
        if _present(title):
            return title

    status_id = entry.get("status_id") or _lookup(entry, "status.id.status_id")
    if status_id:
        for stage in stages:
            if stage.id.status_id == status_id and stage.title:
                return stage.title

    if _present(entry.get("value")):
        return str(entry["value"])
    if _present(entry.get("option_id")):
        return f"Stage {str(entry['option_id'])[:8]}"
    return "Unknown Stage"


# ── Billing ────────────────────────────────────────────────────────────────


def resolve_billing_status(
    deal: CrmRecord | None,
    billed_option_ids: Sequence[str] = (),
    partial_option_ids: Sequence[str] = (),
    attribute: str = "billing_status",
) -> BillingStatus:
    """Classify a deal's billing progress.

    Configured option ids are checked first, then the option title text.
    """
    entry = first_entry(deal, attribute)
    if not isinstance(entry, dict):
        return BillingStatus.NONE

    option_id = (
        _lookup(entry, "option.id.option_id")
        or entry.get("option_id")
        or entry.get("status_id")
    )
    if option_id and option_id in billed_option_ids:
        return BillingStatus.BILLED
    if option_id and option_id in partial_option_ids:
        return BillingStatus.PARTIAL

    title = _lookup(entry, "option.title") or _lookup(entry, "status.title") or entry.get("value") or ""
    title = str(title).lower()
    if "partial" in title:
        return BillingStatus.PARTIAL
    if "billed" in title:
        return BillingStatus.BILLED
    return BillingStatus.NONE
