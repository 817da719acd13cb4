"""The sidebar's view model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.sidebar.conversations.models import ConversationParticipant
from src.sidebar.crm.schemas import Company, Deal, Person, StatusOption


class PluginState(BaseModel):
    """Everything the presentation layer renders for one conversation.

    Replaced wholesale when the conversation changes, patched as data
    arrives. ``error`` holds the most recent failure only.
    """

    loading: bool = False
    error: str | None = None
    conversation_id: str | None = None
    participants: list[ConversationParticipant] = Field(default_factory=list)
    target_email: str | None = None
    person: Person | None = None
    company: Company | None = None
    deals: list[Deal] = Field(default_factory=list)
    companies: list[Company] = Field(default_factory=list)
    deal_stages: list[StatusOption] = Field(default_factory=list)

    @property
    def person_not_found(self) -> bool:
        """True once a finished lookup found nobody (the create-contact case)."""
        return (
            not self.loading
            and self.error is None
            and self.person is None
            and self.target_email is not None
        )
