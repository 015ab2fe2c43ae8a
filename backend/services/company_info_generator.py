"""Answers questions about the company from a static description."""
import logging
from pathlib import Path
from typing import Optional, Sequence

from config import (
    COMPANY_EMAIL,
    COMPANY_INDUSTRY,
    COMPANY_INFO_PATH,
    COMPANY_NAME,
    COMPANY_PHONE,
)
from models.conversation import ConversationTurn
from services.llm_client import LLMClient
from services.response_generator import PreparedPrompt, ResponseGenerator

logger = logging.getLogger(__name__)


class CompanyInfoGenerator(ResponseGenerator):
    """Company/meta questions answered by paraphrasing the company description."""

    name = "CompanyInfo"

    def __init__(
        self,
        llm_client: LLMClient,
        company_info_path: Optional[str] = COMPANY_INFO_PATH,
        company_name: str = COMPANY_NAME,
        industry: str = COMPANY_INDUSTRY,
        email: str = COMPANY_EMAIL,
        phone: str = COMPANY_PHONE,
        **kwargs,
    ):
        """
        Initialize the generator and load the company description once.

        Args:
            llm_client: Language model client
            company_info_path: Markdown/text file describing the company
            company_name: Company name used in prompts and the fallback answer
            industry: Industry used in the fallback answer
            email: Contact email used in the fallback answer
            phone: Contact phone used in the fallback answer
        """
        super().__init__(llm_client, **kwargs)
        self.company_name = company_name
        self.industry = industry
        self.email = email
        self.phone = phone
        self.company_info = self._load_company_info(company_info_path)

    async def prepare(self, question: str, turns: Sequence[ConversationTurn]) -> PreparedPrompt:
        return PreparedPrompt(messages=self.format_messages(self._system_prompt(), question, turns))

    def fallback_answer(self) -> str:
        return (
            f"{self.company_name} is a leading company in the {self.industry} industry. "
            f"We provide comprehensive services to our clients. Contact us at {self.email} "
            f"or {self.phone} to schedule a free consultation."
        )

    def _system_prompt(self) -> str:
        return f"""You are a knowledgeable assistant representing {self.company_name}. Use the following company information to answer questions in a helpful, professional, and conversational manner.

Company Information:
{self.company_info}

Instructions:
1. Answer questions directly and helpfully
2. Use specific information from the company data provided
3. Be conversational and professional
4. If the question is about services, highlight relevant offerings
5. If asked about achievements/metrics, use the specific numbers provided
6. Include contact information when appropriate
7. Keep the response concise but comprehensive
8. Format your response using proper markdown:
   - Use clear headings (## for main sections, ### for subsections)
   - Use bullet points for lists
   - When creating tables, ensure proper spacing: | Column 1 | Column 2 |
   - Add blank lines before and after tables
   - Use **bold** for emphasis and important terms"""

    def _load_company_info(self, path: Optional[str]) -> str:
        if path:
            try:
                text = Path(path).read_text(encoding="utf-8")
                logger.info(f"Loaded company info from {path}")
                return text
            except OSError as e:
                logger.error(f"Failed to load company info file {path}, using configured fields: {e}")

        return (
            f"{self.company_name} is a {self.industry} company. "
            f"Contact us at {self.email} or {self.phone}."
        )
