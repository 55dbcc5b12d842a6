"""
Canonical forms for scanned codes, folios and article names.

Scanners configured for a different keyboard layout substitute characters
(an apostrophe or backtick where the label says "-", "/" in transfer labels),
so the engine never compares raw scanner text. Everything that reaches the
matcher or the registry goes through normalize_code() first.
"""

import re
import unicodedata
from typing import Any

FOLIO_LENGTH = 9

_FOLIO_PATTERN = re.compile(r'^([A-Za-z]+)(\d+)$')
_PADDED_FOLIO_PATTERN = re.compile(r'^([A-Z]+)0*([0-9]+)$')


def normalize_code(code: Any) -> str:
    """
    Normalize an article code or scanned barcode for matching.

    Removes every non-alphanumeric character and upper-cases the rest, so
    the separator a scanner emitted no longer matters.

    Examples:
        "A-100" -> "A100"
        "a`100" -> "A100"
        "A'100" -> "A100"
        " 7501 0312 " -> "75010312"
        12345 -> "12345"

    Args:
        code: Raw code, typically a string; numbers from spreadsheets are accepted

    Returns:
        The canonical code ("" for None or blank input)
    """
    if code is None:
        return ''
    return ''.join(filter(str.isalnum, str(code))).upper()


def normalize_folio(folio: str) -> str:
    """
    Pad a folio to the backend's fixed width: letters, then zero-padded digits.

    Examples:
        "A1234" -> "A00001234"
        "OC77" -> "OC0000077"
        "A-1234" -> "A-1234" (unrecognised shapes are returned untouched)
    """
    if not folio:
        return folio
    folio = folio.strip()
    match = _FOLIO_PATTERN.match(folio)
    if not match:
        return folio
    letters, numbers = match.groups()
    numbers_needed = FOLIO_LENGTH - len(letters)
    if numbers_needed <= 0:
        return folio
    return letters + numbers.zfill(numbers_needed)


def strip_folio_padding(folio: str) -> str:
    """Inverse of normalize_folio for display: "A00001234" -> "A1234"."""
    match = _PADDED_FOLIO_PATTERN.match(folio or '')
    if match:
        return f"{match.group(1)}{match.group(2)}"
    return folio


def normalize_text(text: str) -> str:
    """
    Clean an article description: strip accents, punctuation and repeated spaces.

    Example:
        "Tornillo  cabeza-plana (3/4\")" -> "Tornillo cabeza plana 3 4"
    """
    if not text:
        return text
    decomposed = unicodedata.normalize('NFD', str(text))
    without_accents = ''.join(c for c in decomposed if unicodedata.category(c) != 'Mn')
    without_punctuation = re.sub(r'[^\w\s]', ' ', without_accents)
    return re.sub(r'\s+', ' ', without_punctuation).strip()
