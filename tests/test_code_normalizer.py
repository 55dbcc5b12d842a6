"""Tests for code, folio and text normalization."""

import pytest

from code_normalizer import normalize_code, normalize_folio, normalize_text, strip_folio_padding


class TestNormalizeCode:

    @pytest.mark.parametrize("raw", ["A-100", "A100", "A`100", "A'100", "a-100", " A 100 ", "A/100"])
    def test_scanner_substitutions_collapse(self, raw):
        assert normalize_code(raw) == "A100"

    def test_numbers_from_spreadsheets(self):
        assert normalize_code(7501031) == "7501031"

    def test_none_and_blank(self):
        assert normalize_code(None) == ""
        assert normalize_code("  --  ") == ""

    def test_idempotent(self):
        once = normalize_code("ab-12/c")
        assert normalize_code(once) == once == "AB12C"


class TestFolio:

    def test_pads_digits_to_fixed_width(self):
        assert normalize_folio("A1234") == "A00001234"
        assert normalize_folio("OC77") == "OC0000077"

    def test_already_padded(self):
        assert normalize_folio("A00001234") == "A00001234"

    def test_unrecognised_shape_untouched(self):
        assert normalize_folio("A-1234") == "A-1234"
        assert normalize_folio("") == ""

    def test_strip_padding(self):
        assert strip_folio_padding("A00001234") == "A1234"
        assert strip_folio_padding("something") == "something"


class TestNormalizeText:

    def test_accents_and_punctuation(self):
        assert normalize_text("Tornillo  cabeza-plana (3/4\")") == "Tornillo cabeza plana 3 4"

    def test_accents_removed(self):
        assert normalize_text("Recepción Ñandú") == "Recepcion Nandu"

    def test_empty(self):
        assert normalize_text("") == ""
