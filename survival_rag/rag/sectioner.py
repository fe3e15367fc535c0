"""
Section extraction for better chunking context.

Heading detection is isolated in `is_heading` so the heuristic can be
swapped without touching the chunker.
"""

import logging
import re
from typing import Callable, List

from .models import Section

logger = logging.getLogger(__name__)

MAX_HEADING_LENGTH = 60

_CAPS_HEADING = re.compile(r'^[A-Z0-9\s\-]+$')
_NUMBERED_HEADING = re.compile(r'^(CHAPTER|SECTION) \d+', re.IGNORECASE)
_HAS_LETTER = re.compile(r'[A-Z]')


def is_heading(line: str) -> bool:
    """
    Detect section headers: short all-caps lines, or "CHAPTER n" / "SECTION n".

    A caps line must carry at least one letter, so bare page numbers are
    not headings.
    """
    trimmed = line.strip()
    if not trimmed:
        return False

    if _NUMBERED_HEADING.match(trimmed):
        return True

    return (
        len(trimmed) < MAX_HEADING_LENGTH
        and trimmed == trimmed.upper()
        and bool(_CAPS_HEADING.match(trimmed))
        and bool(_HAS_LETTER.search(trimmed))
    )


def extract_sections(
    text: str,
    default_title: str,
    heading_predicate: Callable[[str], bool] = is_heading
) -> List[Section]:
    """
    Split cleaned text into titled sections.

    Args:
        text: Cleaned document text
        default_title: Title for content before the first heading
        heading_predicate: Decides whether a line is a heading

    Returns:
        Ordered list of sections, never empty
    """
    sections: List[Section] = []
    current_title = default_title
    current_lines: List[str] = []

    for line in text.split('\n'):
        trimmed = line.strip()

        if heading_predicate(trimmed):
            # Save previous section if it has content
            if current_lines:
                sections.append(Section(title=current_title, body='\n'.join(current_lines)))
            current_title = trimmed or default_title
            current_lines = []
        elif trimmed:
            current_lines.append(trimmed)

    if current_lines:
        sections.append(Section(title=current_title, body='\n'.join(current_lines)))

    if not sections:
        sections.append(Section(title=default_title, body=''))

    logger.debug(f"[sectioner] Extracted {len(sections)} sections for '{default_title}'")

    return sections
