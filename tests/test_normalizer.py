"""
Tests for OCR text cleaning.
"""

import re

from survival_rag.rag import clean_text


class TestCleanText:
    """clean_text removes OCR noise while keeping line structure."""

    def test_empty_input_returns_empty_string(self):
        assert clean_text('') == ''
        assert clean_text(None) == ''

    def test_removes_army_manual_headers(self):
        text = "FM 21-76 US ARMY SURVIVAL MANUAL\nFind water before food."
        assert clean_text(text) == "Find water before food."

    def test_removes_page_footers(self):
        text = "Keep the casualty warm. Page 12 of 300"
        assert clean_text(text) == "Keep the casualty warm."

    def test_extra_patterns_are_removed(self):
        text = "CONFIDENTIAL DRAFT\nPurify all water."
        assert clean_text(text, extra_patterns=[re.compile(r'CONFIDENTIAL DRAFT')]) == "Purify all water."

    def test_rejoins_hyphenation_across_line_break(self):
        assert clean_text("an emer-\ngency shelter") == "an emergency shelter"

    def test_rejoins_hyphenation_across_space(self):
        assert clean_text("a water- proof bag") == "a waterproof bag"

    def test_rejoins_hyphenation_across_tabs(self):
        assert clean_text("imme-\t diate care") == "immediate care"

    def test_strips_unsafe_symbols(self):
        assert clean_text("Boil water ★ for one minute") == "Boil water for one minute"

    def test_keeps_paragraph_breaks_but_collapses_blank_runs(self):
        assert clean_text("WATER\n\n\n\nBoil it.") == "WATER\n\nBoil it."

    def test_collapses_horizontal_whitespace(self):
        assert clean_text("dig   a\t\tsolar  still") == "dig a solar still"

    def test_removes_space_before_punctuation(self):
        assert clean_text("Rest , then move on .") == "Rest, then move on."

    def test_separates_glued_sentences(self):
        assert clean_text("cover the wound.Apply pressure") == "cover the wound. Apply pressure"
