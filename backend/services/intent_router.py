"""
Intent Router for the Knowledge Base Chat Assistant.

Decides, without a model call, whether a message asks about the company
itself (answered from the static company description) or is a question for
the knowledge base (answered with retrieval-augmented generation).
"""

from dataclasses import dataclass, field
from enum import Enum
import logging
import re
from typing import Iterable, List, Optional

from config import COMPANY_NAME

logger = logging.getLogger(__name__)


class IntentKind(str, Enum):
    """Which response generator should answer a message."""
    COMPANY_INFO = "company_info"
    KNOWLEDGE_BASE = "knowledge_base"


@dataclass
class ClassifiedIntent:
    """
    Result of intent classification.

    Attributes:
        kind: COMPANY_INFO or KNOWLEDGE_BASE
        triggering_keywords: Company keywords found in the message
        reasoning: Explanation of the decision, for logs
    """
    kind: IntentKind
    triggering_keywords: List[str] = field(default_factory=list)
    reasoning: str = ""


class IntentRouter:
    """
    Keyword classifier routing messages to the company-info or RAG path.

    Any company keyword (or the configured company name) in the message
    selects COMPANY_INFO; everything else, including near-misses, falls
    back to KNOWLEDGE_BASE.
    """

    COMPANY_KEYWORDS = (
        "consulting", "company", "services", "about you",
        "who are you", "what do you do", "your company", "your services",
        "contact", "schedule", "appointment", "phone", "email",
    )

    def __init__(self, company_name: Optional[str] = COMPANY_NAME, extra_keywords: Iterable[str] = ()):
        """
        Initialize the router.

        Args:
            company_name: Company name that also triggers COMPANY_INFO
            extra_keywords: Additional deployment-specific company keywords
        """
        keywords = {k.lower().strip() for k in self.COMPANY_KEYWORDS}
        keywords.update(k.lower().strip() for k in extra_keywords if k and k.strip())
        if company_name and company_name.strip():
            keywords.add(company_name.lower().strip())
        self.keywords = keywords

        # Sort by length descending so "your company" matches before "company"
        sorted_keywords = sorted(self.keywords, key=len, reverse=True)
        patterns_regex = '|'.join(re.escape(k) for k in sorted_keywords)
        # Word boundaries so "company" does not match "accompany"
        self._pattern = re.compile(rf'(?<!\w)({patterns_regex})(?!\w)')

    def classify(self, message: str) -> ClassifiedIntent:
        """
        Classify a message.

        Args:
            message: User message

        Returns:
            ClassifiedIntent with the selected kind and matched keywords
        """
        if not message or not message.strip():
            return ClassifiedIntent(
                kind=IntentKind.KNOWLEDGE_BASE,
                reasoning="Empty message defaults to knowledge base",
            )

        matches = self._matched_keywords(message.lower())
        if matches:
            logger.info(f"Intent: {IntentKind.COMPANY_INFO.value} (keywords: {', '.join(matches)}) - {message[:50]}")
            return ClassifiedIntent(
                kind=IntentKind.COMPANY_INFO,
                triggering_keywords=matches,
                reasoning=f"Message contains company keywords: {', '.join(matches)}",
            )

        logger.info(f"Intent: {IntentKind.KNOWLEDGE_BASE.value} (default) - {message[:50]}")
        return ClassifiedIntent(
            kind=IntentKind.KNOWLEDGE_BASE,
            reasoning="No company keywords, defaults to knowledge base",
        )

    def _matched_keywords(self, message_lower: str) -> List[str]:
        """Sorted, de-duplicated keywords found in the lower-cased message."""
        return sorted(set(self._pattern.findall(message_lower)))
