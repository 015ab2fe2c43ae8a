"""Turn-history operations for a single conversation.

All functions here are pure: they take a sequence of turns and return a new
list, never mutating the input. The registry commits the returned list.

Role alternation policy: user and assistant turns must alternate. Wherever
two consecutive turns would share one of those roles, the newest turn wins.
Appends replace the trailing turn, and reconciliation/formatting keep the
last entry of each same-role run.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Union

from models.api import ConversationMessage
from models.conversation import ConversationTurn, Role

logger = logging.getLogger(__name__)

_ALTERNATING_ROLES = (Role.USER, Role.ASSISTANT)


def is_consecutive_role(last_role: Optional[Role], role: Role) -> bool:
    """Check whether role would repeat last_role among user/assistant."""
    return last_role is not None and role == last_role and role in _ALTERNATING_ROLES


def _append_replacing(turns: Sequence[ConversationTurn], turn: ConversationTurn) -> List[ConversationTurn]:
    updated = list(turns)
    if updated and is_consecutive_role(updated[-1].role, turn.role):
        logger.debug(f"Last turn was also from {turn.role.value}, replacing instead of appending")
        updated[-1] = turn
    else:
        updated.append(turn)
    return updated


def append_user(turns: Sequence[ConversationTurn], text: str) -> List[ConversationTurn]:
    """Add a user turn, replacing the last turn if it is also from the user."""
    return _append_replacing(turns, ConversationTurn(role=Role.USER, content=text))


def append_assistant(turns: Sequence[ConversationTurn], text: str) -> List[ConversationTurn]:
    """Add an assistant turn, replacing the last turn if it is also from the assistant."""
    return _append_replacing(turns, ConversationTurn(role=Role.ASSISTANT, content=text))


def _collapse_runs(turns: Iterable[ConversationTurn]) -> List[ConversationTurn]:
    collapsed: List[ConversationTurn] = []
    for turn in turns:
        if turn.role not in _ALTERNATING_ROLES:
            continue
        collapsed = _append_replacing(collapsed, turn)
    return collapsed


def reconcile(
    external_turns: Iterable[Union[ConversationMessage, ConversationTurn, Dict[str, str]]]
) -> List[ConversationTurn]:
    """
    Rebuild internal turns from a history supplied by a stateless client.

    System entries are discarded (the system prompt is always supplied by the
    generator) and runs of same-role entries collapse to their newest entry.

    Args:
        external_turns: Client messages, turns or {role, content} dicts

    Returns:
        Alternating list of ConversationTurn objects
    """
    rebuilt = []
    for entry in external_turns:
        if isinstance(entry, ConversationTurn):
            rebuilt.append(entry)
            continue
        if isinstance(entry, ConversationMessage):
            role, content = entry.role, entry.content
        else:
            role, content = entry["role"], entry["content"]
        rebuilt.append(ConversationTurn(role=Role(role), content=content))

    reconciled = _collapse_runs(rebuilt)
    if len(reconciled) < len(rebuilt):
        logger.info(f"Reconciled client history: kept {len(reconciled)} of {len(rebuilt)} messages")
    return reconciled


def format_for_model(
    turns: Sequence[ConversationTurn],
    system_prompt: Optional[str] = None,
    max_turns: int = 6,
    pending_question: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Produce the ordered message list for a language-model call.

    Args:
        turns: Conversation history
        system_prompt: Optional system message placed first
        max_turns: Number of most recent turns to consider
        pending_question: Question appended as a user message when the
            history does not already end with a user turn

    Returns:
        List of {role, content} dictionaries with alternating user/assistant roles
    """
    messages: List[Dict[str, str]] = []
    if system_prompt:
        messages.append({"role": Role.SYSTEM.value, "content": system_prompt})

    recent = list(turns)[-max_turns:] if max_turns > 0 else []
    history = _collapse_runs(recent)
    messages.extend(turn.to_message() for turn in history)

    last_role = history[-1].role if history else None
    if pending_question and last_role != Role.USER:
        messages.append({"role": Role.USER.value, "content": pending_question})

    return messages


def to_messages(turns: Sequence[ConversationTurn]) -> List[ConversationMessage]:
    """Convert turns to API messages."""
    return [ConversationMessage(role=turn.role.value, content=turn.content) for turn in turns]
