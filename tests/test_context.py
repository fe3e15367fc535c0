"""
Tests for context assembly.
"""

from survival_rag.rag import assemble_context
from survival_rag.rag.context import source_tag
from survival_rag.rag.models import RankedChunk

from conftest import make_chunk


def _ranked(lengths, title='M', section='S'):
    return [
        RankedChunk(
            chunk=make_chunk('kb', i, chr(ord('a') + i) * length, title=title, section=section),
            rank=i + 1,
            score=1.0 - i * 0.1,
            lexical_score=0.0,
            semantic_score=0.0
        )
        for i, length in enumerate(lengths)
    ]


class TestAssembleContext:
    """Greedy packing by rank, chunks never truncated."""

    def test_budget_scenario_skips_chunk_that_does_not_fit(self):
        ranked = _ranked([800, 400, 900])

        assembled = assemble_context(ranked, max_chars=1300)

        assert [item.rank for item in assembled.included] == [1, 2]
        assert [item.rank for item in assembled.skipped] == [3]
        assert 'a' * 800 in assembled.text
        assert 'b' * 400 in assembled.text
        assert 'c' not in assembled.text

    def test_budget_scenario_with_real_source_tags(self):
        ranked = _ranked(
            [800, 400, 900],
            title='First Aid Manual (FM 4-25.11)',
            section='SPRAINS STRAINS AND DISLOCATIONS'
        )

        assembled = assemble_context(ranked, max_chars=1300)

        assert [item.rank for item in assembled.included] == [1, 2]
        assert [item.rank for item in assembled.skipped] == [3]
        assert sum(len(item.chunk.content) for item in assembled.included) == 1200
        assert assembled.text.startswith("[1] First Aid Manual (FM 4-25.11) - SPRAINS STRAINS AND DISLOCATIONS\n")

    def test_later_smaller_chunk_still_fits(self):
        ranked = _ranked([800, 900, 300])

        assembled = assemble_context(ranked, max_chars=1300)

        assert [item.rank for item in assembled.included] == [1, 3]

    def test_tags_and_attributions(self):
        ranked = _ranked([10, 10], title='First Aid', section='SPRAINS')

        assembled = assemble_context(ranked, max_chars=1000)

        assert assembled.text == (
            "[1] First Aid - SPRAINS\n" + 'a' * 10 + "\n\n[2] First Aid - SPRAINS\n" + 'b' * 10
        )
        assert assembled.attributions == [('First Aid', 'SPRAINS'), ('First Aid', 'SPRAINS')]
        assert source_tag(1, ranked[0]) == "[1] First Aid - SPRAINS"

    def test_empty_input(self):
        assembled = assemble_context([], max_chars=100)

        assert assembled.text == ''
        assert assembled.attributions == []

    def test_chunk_filling_budget_exactly_is_included(self):
        ranked = _ranked([100, 200])

        assembled = assemble_context(ranked, max_chars=100)

        assert [item.rank for item in assembled.included] == [1]
        assert [item.rank for item in assembled.skipped] == [2]
        assert assembled.text == "[1] M - S\n" + "a" * 100

    def test_nothing_fits(self):
        assembled = assemble_context(_ranked([500]), max_chars=100)

        assert assembled.text == ''
        assert len(assembled.skipped) == 1
