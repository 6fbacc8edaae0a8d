"""Unit tests for query normalization, expansion, entity extraction and gating."""

import pytest

from conftest import make_entry
from core.gating import FAMILIES, detect_family
from core.hybrid_search import passes_filters
from core.query_processor import (
    build_context,
    detect_entities,
    detect_intent,
    expand,
    normalize,
    parse_percent,
    proof_to_percent,
    strip_packaging,
)
from util.enums import QueryIntent


class TestNormalize:
    def test_lowercases_and_strips_punctuation(self):
        assert normalize("Sulfuric  Acid, 98% (Tech Grade)!") == "sulfuric acid 98% tech grade"

    def test_keeps_decimals_and_hyphens(self):
        assert normalize("n-Hexane 12.5%") == "n-hexane 12.5%"

    def test_drops_trailing_dots_and_dashes(self):
        assert normalize("Acetone. - 5 gal.") == "acetone 5 gal"


class TestStripPackaging:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("sulfuric acid 98% 55 gallon drum", "sulfuric acid 98%"),
            ("acetone 5 gal pail", "acetone"),
            ("isopropyl alcohol 99% 4 x 1 gallon case", "isopropyl alcohol 99%"),
            ("kerosene 275 gallon tote", "kerosene"),
        ],
    )
    def test_strips_sizes_and_containers(self, raw, expected):
        assert strip_packaging(raw) == expected

    def test_never_returns_empty(self):
        assert strip_packaging("55 gallon drum") == "55 gallon drum"


class TestEntities:
    def test_percentages(self):
        ents = detect_entities("Hydrogen Peroxide 35% / 12.5 percent")
        assert ents.percentages == [35.0, 12.5]

    def test_un_literals_are_padded(self):
        assert detect_entities("ship as UN 1230 or UN987").un_numbers == ["UN1230", "UN0987"]

    def test_proof(self):
        ents = detect_entities("Ethanol 190 Proof")
        assert ents.proofs == [190]
        assert ents.proof_percentages == [95.0]

    def test_regulatory_mentions(self):
        ents = detect_entities("Class 8 corrosive, PG II, CAS 7664-93-9, 2.5 L")
        assert ents.hazard_classes == ["8"]
        assert ents.packing_groups == ["II"]
        assert ents.cas_numbers == ["7664-93-9"]
        assert ents.quantities == [(2.5, "l")]

    def test_parse_percent_none(self):
        assert parse_percent("acetone") is None

    def test_proof_conversion_rounds(self):
        assert proof_to_percent(151) == 75.5


class TestExpand:
    def test_synonym_cluster_appended(self):
        expanded, terms = expand("muriatic acid 31%")
        assert "hydrochloric acid" in expanded
        assert terms == ["hydrochloric acid muriatic acid hcl"]

    def test_proof_becomes_percent(self):
        expanded, terms = expand("everclear 190 proof")
        assert terms[0] == "95.0%"
        assert expanded.endswith("95.0%")

    def test_synonyms_match_whole_words_only(self):
        # "ipa" inside another word must not pull the isopropanol cluster
        _, terms = expand("tulipa bulb food")
        assert terms == []

    def test_no_terms_returns_input(self):
        assert expand("toluene") == ("toluene", [])


class TestGating:
    def test_first_match_wins(self):
        fam = detect_family("acetic acid ethyl ester")
        assert fam.name == "ethyl_acetate"

    def test_filters_shape(self):
        fam = detect_family("kerosene k-1")
        assert fam.filters() == {"base_name": {"regex": "kerosene"}, "class": {"regex": "^3"}}

    def test_acid_family_has_no_class_filter(self):
        assert "class" not in detect_family("oleum 20%").filters()

    def test_sulfuric_gate_keeps_petroleum_out(self):
        filters = detect_family("oleum 20%").filters()
        oleum = make_entry("o", "hmt", "UN1831 Sulfuric acid, fuming", base_name="Oleum")
        ether = make_entry("p", "hmt", "UN1271 Petroleum ether", base_name="Petroleum ether")
        distillates = make_entry("d", "hmt", "UN1268 Petroleum distillates", base_name="Petroleum distillates, n.o.s.")
        assert passes_filters(oleum, filters)
        assert not passes_filters(ether, filters)
        assert not passes_filters(distillates, filters)

    def test_no_family(self):
        assert detect_family("widget polish") is None

    def test_family_names_unique(self):
        names = [f.name for f in FAMILIES]
        assert len(names) == len(set(names))


class TestContext:
    def test_build_context(self):
        ctx = build_context("Sulfuric Acid 98% - 55 Gallon Drum")
        assert ctx.normalized == "sulfuric acid 98% 55 gallon drum"
        assert ctx.chemical_only == "sulfuric acid 98%"
        assert ctx.family == "sulfuric"
        assert ctx.filters == {"base_name": {"regex": r"sulfuric acid|\boleum\b"}}
        assert ctx.percent_signals == [98.0]
        assert "oil of vitriol" in ctx.expanded

    def test_proof_feeds_percent_signals(self):
        ctx = build_context("Ethanol 190 proof")
        assert ctx.percent_signals == [95.0]

    def test_intent(self):
        assert detect_intent("what placard and label for this manifest") == QueryIntent.DOCUMENTATION
        assert detect_intent("acetone") == QueryIntent.GENERAL
