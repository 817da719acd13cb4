"""Candidate-contact extraction from conversation messages."""

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

import structlog

from src.sidebar.conversations.models import ConversationParticipant, HostMessage, Recipient

logger = structlog.get_logger(__name__)


def normalize_email(address: str | None) -> str:
    return (address or "").strip().lower()


class ParticipantExtractor:
    """Builds the ordered, deduplicated participant list of a conversation.

    - Addresses are collected from ``from``, ``to``, ``cc`` and ``bcc`` of
      every message, in message order; the first occurrence of an address
      sets its display name.
    - The sender of the first message is the original sender.
    - Addresses on an internal domain (or its subdomains) are dropped.
    - Output: original sender first, everyone else by display name.

    Args:
        internal_domains: Domains of the operator's own organization.
    """

    def __init__(self, internal_domains: Iterable[str] = ()) -> None:
        self._internal_domains = tuple(
            normalize_email(domain).lstrip("@") for domain in internal_domains if domain
        )

    def is_internal(self, email: str) -> bool:
        domain = normalize_email(email).rpartition("@")[2]
        if not domain:
            return False
        return any(
            domain == internal or domain.endswith(f".{internal}")
            for internal in self._internal_domains
        )

    @staticmethod
    def _recipients(message: HostMessage) -> Iterator[Recipient]:
        if message.from_ is not None:
            yield message.from_
        yield from message.to
        yield from message.cc
        yield from message.bcc

    def extract(self, messages: Sequence[HostMessage]) -> list[ConversationParticipant]:
        """Return the participants of a conversation.

        Args:
            messages: The conversation's messages, oldest first.

        Returns:
            Participants with the original sender (if external) first and the
            rest sorted by display name, case-insensitively.
        """
        if not messages:
            return []

        first_sender = messages[0].from_
        original_email = normalize_email(first_sender.handle) if first_sender else ""

        seen: dict[str, ConversationParticipant] = {}
        for message in messages:
            for recipient in self._recipients(message):
                email = normalize_email(recipient.handle)
                if not email or email in seen:
                    continue
                seen[email] = ConversationParticipant(
                    email=email,
                    display_name=(recipient.name or "").strip() or email,
                    is_original_sender=email == original_email,
                )

        internal = [email for email in seen if self.is_internal(email)]
        for email in internal:
            del seen[email]
        if internal:
            logger.debug("participants.internal_excluded", count=len(internal))

        original = seen.pop(original_email, None)
        others = sorted(seen.values(), key=lambda p: (p.display_name.casefold(), p.email))
        return [original, *others] if original is not None else others


def primary_participant(participants: Sequence[ConversationParticipant]) -> str | None:
    """The address to look up by default: the original sender, else the first participant."""
    for participant in participants:
        if participant.is_original_sender:
            return participant.email
    return participants[0].email if participants else None
