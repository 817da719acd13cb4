"""Sidebar orchestration -- contact resolution, deal aggregation, forms, and state.

Provides:
- SidebarManager: reacts to host context updates and publishes PluginState
- ContactResolver: email -> person lookup with found/malformed/not-found outcomes
- aggregate_deals / summarize_deal: deal selection, ordering, and display values
- PersonForm / CompanyForm / DealForm: validated mutation input
"""

from src.sidebar.plugin.contacts import (
    ContactResolver,
    MalformedRecordError,
    PersonResolution,
    ResolutionStatus,
    suggest_name_from_email,
)
from src.sidebar.plugin.deals import DealSummary, aggregate_deals, summarize_deal
from src.sidebar.plugin.forms import CompanyForm, DealForm, FormValidationError, PersonForm
from src.sidebar.plugin.manager import SidebarManager
from src.sidebar.plugin.state import PluginState

__all__ = [
    "CompanyForm",
    "ContactResolver",
    "DealForm",
    "DealSummary",
    "FormValidationError",
    "MalformedRecordError",
    "PersonForm",
    "PersonResolution",
    "PluginState",
    "ResolutionStatus",
    "SidebarManager",
    "aggregate_deals",
    "suggest_name_from_email",
    "summarize_deal",
]
