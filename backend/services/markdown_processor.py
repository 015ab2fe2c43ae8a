"""Markdown post-processing for model output and formatting guidance for prompts."""
import logging
import re
from typing import List

logger = logging.getLogger(__name__)

_FENCE = re.compile(r'^\s*(```|~~~)')
_HEADER = re.compile(r'^(#{1,6})(?!#)[ \t]*(\S.*?)[ \t]*$')
_BULLET = re.compile(r'^([ \t]*)[-*+][ \t]+(?=\S)')
_ORDERED = re.compile(r'^([ \t]*)(\d{1,3})\.(?:[ \t]+|(?=[^\d\s]))(?=\S)')
_RULE = re.compile(r'^[ \t]*([-*_])([ \t]*\1){2,}[ \t]*$')
_PIPE = re.compile(r'(?<!\\)\|')
_SEPARATOR_CELL = re.compile(r'(:?)-+(:?)')

MAX_BLANK_LINES = 2


class MarkdownProcessor:
    """
    Normalizes markdown produced by the language model.

    The transform is deterministic and idempotent: processing already
    processed text returns it unchanged. Fenced code blocks are copied
    verbatim.
    """

    TABLE_KEYWORDS = (
        "compare", "comparison", "vs", "difference", "benefits",
        "advantages", "pros and cons", "summary table",
    )
    LIST_KEYWORDS = (
        "steps", "process", "how to", "checklist", "requirements",
        "factors", "types of",
    )

    def process(self, text: str) -> str:
        """
        Post-process markdown to ensure proper formatting.

        - one space after header hashes
        - "- " bullets and "1. " numbered items
        - "| a | b |" table rows, blank lines around tables
        - at most two consecutive blank lines
        - leading and trailing blank lines removed

        Args:
            text: Raw model output

        Returns:
            Normalized markdown
        """
        if not text:
            return ""

        lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
        out: List[str] = []
        in_code = False
        blank_run = 0

        for line in lines:
            if in_code:
                out.append(line)
                if _FENCE.match(line):
                    in_code = False
                continue

            if _FENCE.match(line):
                if out and out[-1] and self._is_table_row(out[-1]):
                    out.append('')
                out.append(line)
                in_code = True
                blank_run = 0
                continue

            if not line.strip():
                blank_run += 1
                if blank_run <= MAX_BLANK_LINES:
                    out.append('')
                continue
            blank_run = 0

            is_table = self._is_table_row(line)
            line = self._format_table_row(line) if is_table else self._format_line(line)

            if out and out[-1] and self._is_table_row(out[-1]) != is_table:
                out.append('')
            out.append(line)

        while out and not out[0]:
            out.pop(0)
        while out and not out[-1].strip():
            out.pop()

        return '\n'.join(out)

    def formatting_instructions(self, question: str) -> str:
        """
        Generate context-aware formatting instructions based on the question.

        Comparison-style questions get table guidance, process-style
        questions get list guidance.
        """
        question_lower = question.lower()
        needs_table = self._mentions_any(question_lower, self.TABLE_KEYWORDS)
        needs_list = self._mentions_any(question_lower, self.LIST_KEYWORDS)

        instructions = """
Format Guidelines:
- Use clear, professional markdown formatting
- Include relevant headings (## for main sections)"""

        if needs_table:
            instructions += """
- When comparing or summarizing, use well-formatted tables:
  * Ensure proper spacing: | Column Header | Description |
  * Add blank lines before and after tables
  * Use descriptive column headers
  * Keep table cells concise but informative"""

        if needs_list:
            instructions += """
- Use numbered lists for processes or steps
- Use bullet points for features, benefits, or key points
- Ensure proper indentation and spacing"""

        instructions += """
- Use **bold** for key terms and important concepts
- Use *italics* for emphasis
- Keep paragraphs concise and well-structured
- End with a clear summary or key takeaways when appropriate"""

        logger.debug(f"Formatting hints: table={needs_table}, list={needs_list}")
        return instructions

    @staticmethod
    def _mentions_any(text: str, keywords) -> bool:
        # Boundaries so "vs" does not fire on "canvas" or "csv"
        return any(re.search(rf'(?<!\w){re.escape(k)}(?!\w)', text) for k in keywords)

    @staticmethod
    def _is_table_row(line: str) -> bool:
        stripped = line.strip()
        return stripped.startswith('|') and len(_PIPE.findall(stripped)) >= 2

    @staticmethod
    def _format_table_row(line: str) -> str:
        stripped = line.strip()
        cells = _PIPE.split(stripped)[1:]
        if _PIPE.split(stripped)[-1] == '' and len(cells) > 1:
            cells = cells[:-1]
        cells = [c.strip() for c in cells]

        if cells and all(_SEPARATOR_CELL.fullmatch(c) for c in cells):
            cells = [
                m.group(1) + '-' * max(3, len(c) - len(m.group(1)) - len(m.group(2))) + m.group(2)
                for c, m in ((c, _SEPARATOR_CELL.fullmatch(c)) for c in cells)
            ]

        return '| ' + ' | '.join(cells) + ' |'

    @staticmethod
    def _format_line(line: str) -> str:
        if _RULE.match(line):
            return line
        header = _HEADER.match(line)
        if header:
            return f"{header.group(1)} {header.group(2)}"
        line = _BULLET.sub(r'\1- ', line, count=1)
        return _ORDERED.sub(r'\1\2. ', line, count=1)
