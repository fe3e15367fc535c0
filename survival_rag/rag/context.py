"""
Context assembly for the language model prompt.

Packs ranked chunks, each with a short source tag, into a bounded-size text
block. Chunks are never truncated: one that does not fit the remaining budget
is skipped whole and the next one is tried (greedy by rank). The budget
applies to chunk content; source tags and separators come on top of it.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from ..config import settings
from .models import RankedChunk

logger = logging.getLogger(__name__)


@dataclass
class AssembledContext:
    text: str = ''
    # (document title, section title) in inclusion order
    attributions: List[Tuple[str, str]] = field(default_factory=list)
    included: List[RankedChunk] = field(default_factory=list)
    skipped: List[RankedChunk] = field(default_factory=list)


def source_tag(index: int, item: RankedChunk) -> str:
    return f"[{index}] {item.document_title} - {item.section_title}"


def assemble_context(
    ranked: Sequence[RankedChunk],
    max_chars: int = settings.RAG_CONTEXT_MAX_CHARS,
    separator: str = '\n\n'
) -> AssembledContext:
    """
    Compose a bounded-size context string from ranked chunks.

    Args:
        ranked: Chunks in rank order
        max_chars: Budget for the summed content length of included chunks
        separator: Text between blocks

    Returns:
        AssembledContext with text and attributions
    """
    assembled = AssembledContext()
    parts: List[str] = []
    total = 0

    for item in ranked:
        length = len(item.chunk.content)

        if total + length > max_chars:
            assembled.skipped.append(item)
            continue

        parts.append(f"{source_tag(len(parts) + 1, item)}\n{item.chunk.content}")
        assembled.included.append(item)
        total += length

    assembled.text = separator.join(parts)
    assembled.attributions = [item.attribution for item in assembled.included]

    logger.debug(
        f"[context] Included {len(assembled.included)} chunks ({total} content chars), "
        f"skipped {len(assembled.skipped)}"
    )

    return assembled
