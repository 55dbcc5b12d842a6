"""
Line Registry - the ordered set of expected lines for one document.

The registry is what the backend (or a spreadsheet) says should be there. It
owns the Line objects the ledger mutates, and keeps lookup indexes by
canonical code, alternate barcode and backend article id so matching never
scans the whole list.

Backend rows come from several ERP views with different column names for the
same thing, so loading resolves a list of aliases per field (case-insensitive),
then merges rows that repeat the same article.
"""

from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

import pandas as pd

from code_normalizer import normalize_code, normalize_text
from exceptions import ValidationError
from logger import get_logger
from models import DocumentHeader, Line

logger = get_logger(__name__)

# Candidate column names per field, tried in order
FIELD_ALIASES = {
    'code': ['CLAVE_ARTICULO', 'R_CLAVE_ARTICULO', 'CLAVE', 'CODIGO', 'R_CODIGO', 'CODE', 'SKU', 'ARTICLE_CODE'],
    'name': ['NOMBRE', 'DESCRIPCION', 'R_DESCRIPCION', 'ARTICULO', 'R_NOMBRE', 'NAME', 'DESCRIPTION', 'PRODUCT_NAME'],
    'unit': ['UMED', 'UNIDAD', 'UNIDAD_VENTA', 'R_UMED', 'UM', 'UNIT'],
    'required': ['UNIDADES', 'CANTIDAD', 'R_UNIDADES', 'CANT_RECIBIR', 'UNIDADES_SOL', 'SOLICITADO', 'QUANTITY', 'REQUIRED'],
    'alternate_code': ['R_CODIGO_BARRAS', 'CODIGO_BARRAS', 'CODIGOB', 'R_CODBAR', 'CODBAR', 'BARCODE', 'ALTERNATE_CODE'],
    'article_id': ['ARTICULO_ID', 'R_ARTICULO_ID', 'ARTICULOID', 'ID_ARTICULO', 'IDARTICULO', 'ART_ID', 'ARTICLE_ID'],
}


def _resolve_columns(columns: Iterable[str]) -> Dict[str, str]:
    """Map each field to the first alias present in columns (case-insensitive)."""
    by_upper = {str(c).upper(): c for c in columns}
    resolved = {}
    for field_name, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in by_upper:
                resolved[field_name] = by_upper[alias]
                break
    return resolved


class LineRegistry:
    """
    Ordered collection of Lines plus the document header.

    Attributes:
        header (DocumentHeader): Folio and routing metadata
        lines (List[Line]): Lines in document order
    """

    def __init__(self, header: DocumentHeader, lines: Optional[List[Line]] = None):
        self.header = header
        self.lines: List[Line] = []
        self._by_code: Dict[str, int] = {}
        self._by_alternate: Dict[str, int] = {}
        self._by_article_id: Dict[int, int] = {}
        for line in lines or []:
            self.add_line(line)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_rows(cls, header: DocumentHeader, rows: List[Dict[str, Any]]) -> "LineRegistry":
        """
        Build a registry from backend detail rows.

        Rows repeating the same canonical code are merged into one line and
        their quantities summed; the first row's name, unit, barcode and id win.

        Args:
            header: Document header
            rows: Detail rows as returned by the backend

        Returns:
            LineRegistry with one line per distinct article
        """
        if not rows:
            logger.warning(f"Document {header.folio} has no detail rows")
            return cls(header)
        return cls.from_dataframe(header, pd.DataFrame(rows))

    @classmethod
    def from_dataframe(cls, header: DocumentHeader, df: pd.DataFrame) -> "LineRegistry":
        columns = _resolve_columns(df.columns)
        if 'code' not in columns:
            raise ValidationError(
                f"Document rows have no article code column (expected one of: {', '.join(FIELD_ALIASES['code'])})"
            )

        frame = pd.DataFrame({
            'code': df[columns['code']].map(lambda v: normalize_code(v) if pd.notna(v) else ''),
        })
        if 'required' in columns:
            quantities = pd.to_numeric(df[columns['required']], errors='coerce')
            invalid = int(quantities.isna().sum())
            if invalid:
                logger.warning(f"{invalid} row(s) with an unreadable quantity were loaded as 0")
            frame['required'] = quantities.fillna(0).clip(lower=0).astype(int)
        else:
            frame['required'] = 0
        for field_name in ('name', 'unit', 'alternate_code', 'article_id'):
            if field_name in columns:
                frame[field_name] = df[columns[field_name]]
            else:
                frame[field_name] = None

        frame = frame[frame['code'] != '']
        grouped = frame.groupby('code', sort=False).agg({
            'required': 'sum',
            'name': 'first',
            'unit': 'first',
            'alternate_code': 'first',
            'article_id': 'first',
        })

        lines = []
        for code, row in grouped.iterrows():
            lines.append(Line(
                code=code,
                required=int(row['required']),
                alternate_code=normalize_code(row['alternate_code']) if pd.notna(row['alternate_code']) else '',
                name=normalize_text(str(row['name'])) if pd.notna(row['name']) else '',
                unit=str(row['unit']) if pd.notna(row['unit']) else None,
                article_id=_to_article_id(row['article_id']),
            ))

        logger.info(f"Loaded {len(lines)} lines from {len(frame)} rows for document {header.folio}")
        return cls(header, lines)

    @classmethod
    def from_excel(cls, file_path: str, header: Optional[DocumentHeader] = None,
                   column_mapping: Optional[Dict[str, str]] = None) -> "LineRegistry":
        """
        Load a document from a spreadsheet.

        Args:
            file_path: Path to the .xlsx file
            header: Document header; defaults to one named after the file
            column_mapping: Optional mapping from field name (code, required, ...)
                            to the actual column name in the file

        Raises:
            ValidationError: If the file cannot be read or is empty
        """
        logger.info(f"Loading document from: {file_path}")

        try:
            df = pd.read_excel(file_path, dtype=str).fillna('')
        except Exception as e:
            logger.error(f"Failed to read Excel file: {e}")
            raise ValidationError(f"Could not read the Excel file: {e}") from e

        if df.empty:
            raise ValidationError("The file is empty or contains no data.")

        if column_mapping:
            inverted = {actual: field_name.upper() for field_name, actual in column_mapping.items()}
            df = df.rename(columns=inverted)

        if header is None:
            header = DocumentHeader(folio=Path(file_path).stem)

        return cls.from_dataframe(header, df)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[Line]:
        return iter(self.lines)

    def __getitem__(self, index: int) -> Line:
        return self.lines[index]

    def index_of(self, code: str) -> Optional[int]:
        return self._by_code.get(normalize_code(code))

    def index_of_alternate(self, code: str) -> Optional[int]:
        return self._by_alternate.get(normalize_code(code))

    def index_of_article_id(self, article_id: int) -> Optional[int]:
        return self._by_article_id.get(article_id)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_line(self, line: Line) -> int:
        """
        Append a line and return its index.

        Raises:
            ValidationError: If the code is empty or already on the document
        """
        line.code = normalize_code(line.code)
        line.alternate_code = normalize_code(line.alternate_code)
        if not line.code:
            raise ValidationError("Article code is required")
        if line.code in self._by_code:
            raise ValidationError(f"Article {line.code} is already on this document")

        self.lines.append(line)
        self._index_line(len(self.lines) - 1, line)
        return len(self.lines) - 1

    def remove_line(self, index: int) -> Line:
        """Remove a line; later lines shift down by one index."""
        line = self.lines.pop(index)
        self._reindex()
        logger.info(f"Line removed: {line.code}")
        return line

    def replace_lines(self, lines: List[Line]):
        """Swap in a new set of lines (draft restore); indexes are rebuilt."""
        self.lines = []
        self._reindex()
        for line in lines:
            self.add_line(line)

    def _index_line(self, index: int, line: Line):
        self._by_code[line.code] = index
        if line.alternate_code:
            self._by_alternate.setdefault(line.alternate_code, index)
        if line.article_id is not None:
            self._by_article_id.setdefault(line.article_id, index)

    def _reindex(self):
        self._by_code.clear()
        self._by_alternate.clear()
        self._by_article_id.clear()
        for index, line in enumerate(self.lines):
            self._index_line(index, line)


def _to_article_id(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, float) and pd.isna(value)) or value == '':
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
