"""Host conversation context and participant extraction."""

from src.sidebar.conversations.models import (
    ContextType,
    ConversationParticipant,
    HostContext,
    HostMessage,
    Recipient,
)
from src.sidebar.conversations.participants import ParticipantExtractor, primary_participant

__all__ = [
    "ContextType",
    "ConversationParticipant",
    "HostContext",
    "HostMessage",
    "ParticipantExtractor",
    "Recipient",
    "primary_participant",
]
