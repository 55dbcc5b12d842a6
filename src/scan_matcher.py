"""
Scan Matcher - resolves raw scanner text to a document line.

Resolution order:
1. Exact match on a line's article code
2. Exact match on a line's alternate barcode
3. Inner-pack code from the container-content index, which stands for N
   units of one article (the line is then credited N units per scan)

Anything else is "not found"; the caller decides whether to offer the
manual-add fallback.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from code_normalizer import normalize_code
from line_registry import LineRegistry
from logger import get_logger

logger = get_logger(__name__)

MATCHED_BY_CODE = "code"
MATCHED_BY_ALTERNATE = "alternate_code"
MATCHED_BY_INNER_PACK = "inner_pack"


@dataclass(frozen=True)
class InnerPack:
    """Units of one article represented by a single inner-pack barcode."""
    multiplier: int
    article_code: str = ''
    article_id: Optional[int] = None


@dataclass(frozen=True)
class MatchResult:
    line_index: int
    multiplier: int
    matched_by: str
    code: str


class ContainerContentIndex:
    """
    Inner-pack code -> InnerPack lookup.

    The backend identifies the article either by code or by its numeric id;
    both are kept and the matcher tries the code first.
    """

    def __init__(self, entries: Optional[Dict[str, InnerPack]] = None):
        self._entries: Dict[str, InnerPack] = {}
        for code, pack in (entries or {}).items():
            self.add(code, pack)

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> "ContainerContentIndex":
        """
        Build the index from backend rows.

        Accepted keys per row: CODIGO_INNER / inner_code, CONTENIDO_EMPAQUE /
        multiplier (defaults to 1), CLAVE_ARTICULO / article_code, ARTICULO_ID /
        article_id. Rows without an inner code are skipped.
        """
        index = cls()
        for row in rows or []:
            inner_code = row.get('CODIGO_INNER', row.get('inner_code'))
            if not inner_code:
                continue
            multiplier = row.get('CONTENIDO_EMPAQUE', row.get('multiplier')) or 1
            article_id = row.get('ARTICULO_ID', row.get('article_id'))
            index.add(inner_code, InnerPack(
                multiplier=int(multiplier),
                article_code=normalize_code(row.get('CLAVE_ARTICULO', row.get('article_code', ''))),
                article_id=int(article_id) if article_id not in (None, '') else None,
            ))
        logger.debug(f"Container-content index built with {len(index)} inner codes")
        return index

    def add(self, inner_code: str, pack: InnerPack):
        if pack.multiplier < 1:
            logger.warning(f"Ignoring inner code {inner_code} with multiplier {pack.multiplier}")
            return
        self._entries[normalize_code(inner_code)] = pack

    def get(self, inner_code: str) -> Optional[InnerPack]:
        return self._entries.get(normalize_code(inner_code))

    def __len__(self) -> int:
        return len(self._entries)


class ScanMatcher:
    """
    Matches scanned codes against a registry.

    Attributes:
        registry (LineRegistry): Lines of the open document
        content_index (ContainerContentIndex): Inner-pack codes
    """

    def __init__(self, registry: LineRegistry, content_index: Optional[ContainerContentIndex] = None):
        self.registry = registry
        self.content_index = content_index or ContainerContentIndex()

    def match(self, raw_code: str) -> Optional[MatchResult]:
        """
        Resolve a raw scan.

        Args:
            raw_code: Text as emitted by the scanner

        Returns:
            MatchResult, or None when nothing on the document matches
        """
        code = normalize_code(raw_code)
        if not code:
            return None

        index = self.registry.index_of(code)
        if index is not None:
            return MatchResult(index, 1, MATCHED_BY_CODE, code)

        index = self.registry.index_of_alternate(code)
        if index is not None:
            return MatchResult(index, 1, MATCHED_BY_ALTERNATE, code)

        pack = self.content_index.get(code)
        if pack is not None:
            index = None
            if pack.article_code:
                index = self.registry.index_of(pack.article_code)
            if index is None and pack.article_id is not None:
                index = self.registry.index_of_article_id(pack.article_id)
            if index is not None:
                return MatchResult(index, pack.multiplier, MATCHED_BY_INNER_PACK, code)
            logger.debug(f"Inner code {code} is known but its article is not on this document")

        return None
