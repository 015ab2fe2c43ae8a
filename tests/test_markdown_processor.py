"""Unit tests for MarkdownProcessor."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import random

import pytest
from services.markdown_processor import MarkdownProcessor


@pytest.fixture
def processor():
    return MarkdownProcessor()


class TestProcess:
    """Tests for markdown normalization."""

    def test_empty(self, processor):
        assert processor.process("") == ""

    def test_header_spacing(self, processor):
        assert processor.process("##Overview") == "## Overview"
        assert processor.process("###   Details  ") == "### Details"

    def test_bullet_spacing(self, processor):
        assert processor.process("*   first\n+ second") == "- first\n- second"

    def test_nested_bullet_keeps_indent(self, processor):
        assert processor.process("- top\n  *  nested") == "- top\n  - nested"

    def test_ordered_list_spacing(self, processor):
        assert processor.process("1.First\n2.   Second") == "1. First\n2. Second"

    def test_decimal_number_is_not_a_list(self, processor):
        assert processor.process("3.14 is pi") == "3.14 is pi"

    def test_bold_text_is_not_a_bullet(self, processor):
        assert processor.process("**Bold** start") == "**Bold** start"

    def test_horizontal_rule_kept(self, processor):
        assert processor.process("above\n\n---\n\nbelow") == "above\n\n---\n\nbelow"

    def test_table_spacing_and_blank_lines(self, processor):
        text = "Intro\n|A|B|\n|-|:-:|\n|1|2|\nAfter"
        expected = "Intro\n\n| A | B |\n| --- | :---: |\n| 1 | 2 |\n\nAfter"
        assert processor.process(text) == expected

    def test_collapses_blank_lines(self, processor):
        assert processor.process("a\n\n\n\n\nb") == "a\n\n\nb"

    def test_trims_leading_and_trailing_blank_lines(self, processor):
        assert processor.process("\n\n  \nHello\n\n\n") == "Hello"

    def test_code_block_untouched(self, processor):
        text = "Example:\n```python\n#comment\n*  not a bullet\n\n\n\n|a|b|\n```\n##Done"
        result = processor.process(text)
        assert "#comment\n*  not a bullet\n\n\n\n|a|b|" in result
        assert result.endswith("## Done")

    def test_windows_line_endings(self, processor):
        assert processor.process("#Title\r\n-   item\r\n") == "# Title\n- item"

    def test_idempotent_on_samples(self, processor):
        samples = [
            "##Title\n*item\n1.step\n|a|b|\n|--|--|\n|1|2|\ntext",
            "\n\n\n# Heading\n\n\n\n\n- list\n```\ncode\n```\n",
            "| x |\n| y |\nplain\n\n\n\n---",
            "    indented code\n-   bullet\n10.ten",
        ]
        for text in samples:
            once = processor.process(text)
            assert processor.process(once) == once

    def test_idempotent_on_random_text(self, processor):
        rng = random.Random(7)
        pieces = [
            "#", "##", "###", "-", "*", "+", "1.", "12.", "|", "||", "|-|", ":--",
            "```", "word", "  ", "\n", "\n\n", "\n\n\n", "**b**", "---", "\t", "a b",
        ]
        for _ in range(500):
            text = "".join(rng.choice(pieces) for _ in range(rng.randint(0, 30)))
            once = processor.process(text)
            assert processor.process(once) == once, repr(text)


class TestFormattingInstructions:
    """Tests for prompt formatting guidance."""

    def test_comparison_question_gets_table_hints(self, processor):
        instructions = processor.formatting_instructions("Compare Pinecone vs pgvector")
        assert "tables" in instructions
        assert "numbered lists" not in instructions

    def test_process_question_gets_list_hints(self, processor):
        instructions = processor.formatting_instructions("What are the steps to ingest a document?")
        assert "numbered lists" in instructions
        assert "tables" not in instructions

    def test_plain_question_gets_base_guidance(self, processor):
        instructions = processor.formatting_instructions("What is RAG?")
        assert "Format Guidelines" in instructions
        assert "tables" not in instructions
        assert "numbered lists" not in instructions

    def test_keywords_match_whole_words(self, processor):
        instructions = processor.formatting_instructions("Export the canvas as csv")
        assert "tables" not in instructions
