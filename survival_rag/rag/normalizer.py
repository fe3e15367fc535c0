"""
Text normalization for OCR-extracted manuals.

Removes repeating page headers/footers, stray OCR symbols and broken
hyphenation while keeping line structure for section detection.
"""

import re
from typing import Iterable, List, Optional, Pattern

# Page headers/footers carrying the document title
HEADER_FOOTER_PATTERNS: List[Pattern] = [
    re.compile(r'FM \d+-\d+(\.\d+)? US ARMY.*?$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'SH \d+-\d+ UNITED STATES ARMY.*?$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'Page \d+ of \d+', re.IGNORECASE),
]

_UNSAFE_CHARS = re.compile(r'[^\w\s.,;:!?\-()\[\]{}/\'"]')
_HYPHEN_BREAK_INLINE = re.compile(r'([a-z])-[ \t]+([a-z])')
_HYPHEN_BREAK_EOL = re.compile(r'([a-z])-[ \t]*\n[ \t]*([a-z])')
_HORIZONTAL_WS = re.compile(r'[^\S\n]+')
_TRAILING_WS = re.compile(r' *\n *')
_EXCESS_NEWLINES = re.compile(r'\n{3,}')
_SPACE_BEFORE_PUNCT = re.compile(r' +([.,;:!?])')
_GLUED_SENTENCE = re.compile(r'(?<=[a-z]{2})([.!?])(?=[A-Z][a-z])')


def clean_text(text: str, extra_patterns: Optional[Iterable[Pattern]] = None) -> str:
    """
    Clean OCR artifacts and normalize text.

    Args:
        text: Raw extracted document text
        extra_patterns: Additional header/footer regexes to remove

    Returns:
        Cleaned text (possibly empty)
    """
    if not text:
        return ''

    # Page headers/footers
    for pattern in list(HEADER_FOOTER_PATTERNS) + list(extra_patterns or []):
        text = pattern.sub('', text)

    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = _UNSAFE_CHARS.sub('', text)

    # Hyphenation broken across a space or a line
    text = _HYPHEN_BREAK_EOL.sub(r'\1\2', text)
    text = _HYPHEN_BREAK_INLINE.sub(r'\1\2', text)

    # Whitespace
    text = _HORIZONTAL_WS.sub(' ', text)
    text = _TRAILING_WS.sub('\n', text)
    text = _EXCESS_NEWLINES.sub('\n\n', text)

    # Sentence punctuation spacing
    text = _SPACE_BEFORE_PUNCT.sub(r'\1', text)
    text = _GLUED_SENTENCE.sub(r'\1 ', text)

    return text.strip()
