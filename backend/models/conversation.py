"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List


class Role(str, Enum):
    """Author of a single conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ParticipantRole(str, Enum):
    """Role of the person owning the conversation."""
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class ConversationTurn:
    """Represents a single turn in a conversation."""
    role: Role
    content: str

    def to_message(self) -> dict:
        """Return the turn as a {role, content} message for a model call."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class ConversationState:
    """Represents a multi-turn conversation held by the registry."""
    conversation_id: str
    turns: List[ConversationTurn] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    participant_role: ParticipantRole = ParticipantRole.USER
