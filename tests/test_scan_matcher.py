"""Tests for ScanMatcher resolution order and the container-content index."""

from conftest import make_registry
from models import Line
from scan_matcher import (
    MATCHED_BY_ALTERNATE,
    MATCHED_BY_CODE,
    MATCHED_BY_INNER_PACK,
    ContainerContentIndex,
    InnerPack,
    ScanMatcher,
)


def _registry():
    return make_registry(
        ("A100", 10, "7501000"),
        Line(code="B200", required=24, article_id=555),
    )


class TestScanMatcher:

    def test_match_by_code(self):
        result = ScanMatcher(_registry()).match("a-100")
        assert result.line_index == 0
        assert result.multiplier == 1
        assert result.matched_by == MATCHED_BY_CODE

    def test_match_by_alternate_code(self):
        result = ScanMatcher(_registry()).match("7501000")
        assert result.line_index == 0
        assert result.matched_by == MATCHED_BY_ALTERNATE

    def test_code_wins_over_alternate(self):
        registry = make_registry(("X1", 1, "Y1"), ("Y1", 1))
        result = ScanMatcher(registry).match("Y1")
        assert result.line_index == 1
        assert result.matched_by == MATCHED_BY_CODE

    def test_inner_pack_by_article_code(self):
        index = ContainerContentIndex({"INNER-6": InnerPack(multiplier=6, article_code="A100")})
        result = ScanMatcher(_registry(), index).match("INNER6")
        assert result.line_index == 0
        assert result.multiplier == 6
        assert result.matched_by == MATCHED_BY_INNER_PACK

    def test_inner_pack_by_article_id(self):
        index = ContainerContentIndex.from_rows([
            {'CODIGO_INNER': 'PK12', 'CONTENIDO_EMPAQUE': 12, 'ARTICULO_ID': 555},
        ])
        result = ScanMatcher(_registry(), index).match("PK12")
        assert result.line_index == 1
        assert result.multiplier == 12

    def test_inner_pack_for_article_not_on_document(self):
        index = ContainerContentIndex({"PK1": InnerPack(multiplier=3, article_code="ZZZ")})
        assert ScanMatcher(_registry(), index).match("PK1") is None

    def test_not_found(self):
        assert ScanMatcher(_registry()).match("NOPE") is None

    def test_empty_scan(self):
        assert ScanMatcher(_registry()).match("  ") is None


class TestContainerContentIndex:

    def test_rows_with_english_keys(self):
        index = ContainerContentIndex.from_rows([
            {'inner_code': 'in-1', 'multiplier': 4, 'article_code': 'a-100'},
            {'inner_code': '', 'multiplier': 2},
        ])
        assert len(index) == 1
        assert index.get("IN1") == InnerPack(multiplier=4, article_code="A100")

    def test_multiplier_defaults_to_one(self):
        index = ContainerContentIndex.from_rows([{'inner_code': 'X', 'article_code': 'A'}])
        assert index.get("X").multiplier == 1

    def test_invalid_multiplier_ignored(self):
        index = ContainerContentIndex({"X": InnerPack(multiplier=0, article_code="A")})
        assert index.get("X") is None
