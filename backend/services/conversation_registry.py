"""In-memory registry of conversations for multi-turn chat."""
import asyncio
import logging
import threading
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Sequence

from config import MAX_CONVERSATIONS
from models.conversation import ConversationState, ConversationTurn, ParticipantRole
from services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    """Request lock for one conversation id; survives `clear` while in use."""
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    active: int = 0


class ConversationRegistry:
    """
    Keyed, capacity-bounded collection of conversations.

    One instance is created at process start and shared by every request.
    The maps are guarded by a thread lock held only for short,
    non-awaiting sections. Each conversation id additionally owns an
    asyncio lock that serializes requests against that id; the lock is
    keyed by id rather than by state so a conversation cleared and
    recreated mid-request still shares it.
    """

    def __init__(self, max_conversations: int = MAX_CONVERSATIONS):
        """
        Initialize the registry.

        Args:
            max_conversations: Capacity above which the oldest idle
                conversation is evicted
        """
        if max_conversations <= 0:
            raise ValueError("max_conversations must be positive")

        self.max_conversations = max_conversations
        self._conversations: "OrderedDict[str, ConversationState]" = OrderedDict()
        self._slots: Dict[str, _Slot] = {}
        self._guard = threading.Lock()
        logger.info(f"ConversationRegistry initialized (capacity {max_conversations})")

    def get_or_create(
        self,
        conversation_id: Optional[str] = None,
        role: ParticipantRole = ParticipantRole.USER,
    ) -> ConversationState:
        """
        Get existing conversation or create new one.

        An unknown conversation_id is not an error: a new conversation is
        created under that same id so a stale client-held id heals itself.
        The returned conversation is never the one evicted to make room.

        Args:
            conversation_id: Optional existing conversation ID
            role: Participant role recorded on newly created conversations

        Returns:
            ConversationState for the id
        """
        with self._guard:
            state = self._get_or_create_state(conversation_id, role)
        self.evict_if_over_capacity(keep=state.conversation_id)
        return state

    def _get_or_create_state(self, conversation_id: Optional[str], role: ParticipantRole) -> ConversationState:
        if conversation_id:
            state = self._conversations.get(conversation_id)
            if state is not None:
                logger.debug(
                    f"Found existing conversation {conversation_id} with {len(state.turns)} turns"
                )
                return state
            missing = ConversationNotFoundError(conversation_id)
            logger.warning(f"{missing.message}, creating a new conversation under the same id")

        new_id = conversation_id or self._generate_conversation_id()
        state = ConversationState(conversation_id=new_id, participant_role=role)
        self._conversations[new_id] = state
        logger.info(f"Created new conversation: {new_id}")
        return state

    @asynccontextmanager
    async def checkout(
        self,
        conversation_id: Optional[str] = None,
        role: ParticipantRole = ParticipantRole.USER,
    ) -> AsyncIterator[ConversationState]:
        """
        Hold a conversation exclusively for the duration of one request.

        The id is marked active (so eviction skips it) and its lock is held
        until the block exits, whether normally, by error or by
        cancellation. The conversation is looked up only once the lock is
        held, so a request queued behind a `clear` sees the current state.
        """
        conversation_id = conversation_id or self._generate_conversation_id()
        with self._guard:
            slot = self._slots.get(conversation_id)
            if slot is None:
                slot = self._slots[conversation_id] = _Slot()
            slot.active += 1
        try:
            async with slot.lock:
                with self._guard:
                    state = self._get_or_create_state(conversation_id, role)
                yield state
        finally:
            with self._guard:
                slot.active -= 1
                if slot.active == 0:
                    del self._slots[conversation_id]
            self.evict_if_over_capacity()

    def commit(self, state: ConversationState, turns: Sequence[ConversationTurn]) -> None:
        """Replace a conversation's turns with a fully built new history."""
        with self._guard:
            state.turns = list(turns)
            state.updated_at = datetime.now()
        logger.debug(f"Committed {len(turns)} turns to conversation {state.conversation_id}")

    def get(self, conversation_id: str) -> Optional[ConversationState]:
        """Get conversation by ID, or None if unknown."""
        with self._guard:
            return self._conversations.get(conversation_id)

    def clear(self, conversation_id: str) -> bool:
        """
        Remove a conversation.

        A request currently holding the conversation finishes against the
        removed state; later requests on the id start a fresh one.

        Returns:
            True if the conversation existed
        """
        with self._guard:
            removed = self._conversations.pop(conversation_id, None) is not None
        if removed:
            logger.info(f"Cleared conversation {conversation_id}")
        return removed

    def evict_if_over_capacity(self, keep: Optional[str] = None) -> List[str]:
        """
        Remove the oldest-inserted idle conversations until within capacity.

        Conversations that are in the middle of a request are skipped, as
        is `keep`.

        Returns:
            IDs of evicted conversations
        """
        evicted: List[str] = []
        with self._guard:
            if len(self._conversations) <= self.max_conversations:
                return evicted
            for conversation_id in list(self._conversations):
                if len(self._conversations) <= self.max_conversations:
                    break
                if conversation_id == keep or conversation_id in self._slots:
                    continue
                del self._conversations[conversation_id]
                evicted.append(conversation_id)

        for conversation_id in evicted:
            logger.info(f"Cleaned up old conversation: {conversation_id}")
        return evicted

    def stats(self) -> Dict[str, int]:
        """Get conversation statistics."""
        with self._guard:
            return {
                "total_conversations": len(self._conversations),
                "total_messages": sum(len(s.turns) for s in self._conversations.values()),
            }

    def __len__(self) -> int:
        with self._guard:
            return len(self._conversations)

    def __contains__(self, conversation_id: object) -> bool:
        with self._guard:
            return conversation_id in self._conversations

    def _generate_conversation_id(self) -> str:
        """
        Generate a unique conversation ID.

        Returns:
            Unique conversation ID string
        """
        return f"conv_{uuid.uuid4().hex}"
