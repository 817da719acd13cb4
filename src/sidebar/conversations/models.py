"""Pydantic schemas for the host application's conversation context.

The host pushes view contexts through a subscription: a single
conversation (with an async message-listing call), no conversation, or
several conversations at once. Only single-conversation contexts carry
messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field


class ContextType(str, Enum):
    """Kinds of view context the host can report."""

    SINGLE_CONVERSATION = "singleConversation"
    NO_CONVERSATION = "noConversation"
    MULTI_CONVERSATIONS = "multiConversations"


class Recipient(BaseModel):
    """An address/display-name pair on a message."""

    handle: str
    name: str | None = None


class HostMessage(BaseModel):
    """A message in a conversation, with its sender and recipients."""

    model_config = ConfigDict(populate_by_name=True)

    from_: Recipient | None = Field(default=None, alias="from")
    to: list[Recipient] = Field(default_factory=list)
    cc: list[Recipient] = Field(default_factory=list)
    bcc: list[Recipient] = Field(default_factory=list)


ListMessages = Callable[[], Awaitable[list[HostMessage]]]


class HostContext(BaseModel):
    """The host's current view context."""

    type: ContextType
    conversation_id: str | None = None
    list_messages: ListMessages | None = Field(default=None, exclude=True, repr=False)

    @classmethod
    def single(cls, conversation_id: str, list_messages: ListMessages) -> HostContext:
        return cls(
            type=ContextType.SINGLE_CONVERSATION,
            conversation_id=conversation_id,
            list_messages=list_messages,
        )

    @classmethod
    def no_conversation(cls) -> HostContext:
        return cls(type=ContextType.NO_CONVERSATION)

    @classmethod
    def multiple(cls) -> HostContext:
        return cls(type=ContextType.MULTI_CONVERSATIONS)

    @property
    def is_single(self) -> bool:
        return (
            self.type == ContextType.SINGLE_CONVERSATION
            and self.conversation_id is not None
            and self.list_messages is not None
        )


class ConversationParticipant(BaseModel):
    """A candidate contact extracted from a conversation."""

    email: str
    display_name: str
    is_original_sender: bool = False
