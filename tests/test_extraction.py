"""Tests for varietal and producer extraction."""

import pytest

from wine_selector.core.varietals import (
    BLEND,
    UNKNOWN_PRODUCER,
    canonical_varietals,
    parse_producer,
    parse_varietal,
    producer_label,
    varietal_label,
)
from wine_selector.ingestion.producer import (
    FirstWordsStrategy,
    LexiconScanStrategy,
    SuppliedVarietalStrategy,
    clean_producer_candidate,
    extract_producer,
    infer_producer,
    is_generic_producer,
    text_before,
)
from wine_selector.ingestion.varietal import extract_varietal, find_varietal


class TestVarietalExtraction:
    """Tests for the varietal extractor."""

    def test_single_word_grape(self) -> None:
        """Test a plain single-word grape."""
        assert extract_varietal("Gato Negro Chardonnay") == "Chardonnay"

    def test_longest_entry_wins(self) -> None:
        """Test that multi-word grapes beat their single-word parts."""
        assert extract_varietal("Cloudy Bay Sauvignon Blanc") == "Sauvignon Blanc"
        assert extract_varietal("Tawse Cabernet Franc VQA") == "Cabernet Franc"
        assert extract_varietal("Robert Mondavi Cabernet Sauvignon") == "Cabernet Sauvignon"

    def test_accents_are_folded(self) -> None:
        """Test that accented and unaccented spellings both match."""
        assert extract_varietal("Domaine Weinbach Gewurztraminer") == "Gewürztraminer"
        assert extract_varietal("Laurenz V Grüner Veltliner") == "Grüner Veltliner"

    def test_alias_maps_to_canonical(self) -> None:
        """Test that aliases map to their display label."""
        assert extract_varietal("King Estate Pinot Gris") == "Pinot Grigio"
        assert extract_varietal("Bodegas Borsao Garnacha") == "Grenache"

    def test_case_insensitive(self) -> None:
        """Test matching ignores case."""
        assert extract_varietal("BAREFOOT MERLOT") == "Merlot"

    def test_whole_words_only(self) -> None:
        """Test that a grape inside a longer word does not match."""
        assert find_varietal("Cavalier Red") is None

    def test_description_fallback(self) -> None:
        """Test that the description is used when the name has no grape."""
        assert extract_varietal("Maison Test Rouge", "A juicy Gamay from Beaujolais") == "Gamay"

    def test_name_preferred_over_description(self) -> None:
        """Test that the name wins over the description."""
        assert extract_varietal("Catena Malbec", "Notes of Cabernet Franc") == "Malbec"

    def test_no_grape_is_blend(self) -> None:
        """Test the blend sentinel."""
        assert extract_varietal("Maison Test Réserve Rouge") == BLEND

    @pytest.mark.parametrize("value", [None, ""])
    def test_empty_name_is_blend(self, value) -> None:
        """Test empty input returns the blend sentinel."""
        assert extract_varietal(value) == BLEND

    def test_canonical_varietals_are_distinct(self) -> None:
        """Test the canonical list has no alias duplicates."""
        names = canonical_varietals()
        assert len(names) == len(set(names))
        assert "Pinot Gris" not in names
        assert "Pinot Grigio" in names


class TestSentinels:
    """Tests for sentinel parsing at the storage boundary."""

    def test_varietal_round_trip(self) -> None:
        """Test the blend sentinel maps to None and back."""
        assert parse_varietal(BLEND) is None
        assert parse_varietal("") is None
        assert parse_varietal("Merlot") == "Merlot"
        assert varietal_label(None) == BLEND

    def test_producer_round_trip(self) -> None:
        """Test the unknown-producer sentinel maps to None and back."""
        assert parse_producer(UNKNOWN_PRODUCER) is None
        assert parse_producer("  Tawse ") == "Tawse"
        assert producer_label(None) == UNKNOWN_PRODUCER


class TestProducerCleaning:
    """Tests for producer candidate cleanup."""

    def test_strips_vintage_and_label_terms(self) -> None:
        """Test vintages and trailing label words are removed."""
        assert clean_producer_candidate("Kim Crawford 2020 Reserve ") == "Kim Crawford"

    def test_strips_appellation_suffix(self) -> None:
        """Test appellation codes are removed."""
        assert clean_producer_candidate("Inniskillin VQA ") == "Inniskillin"

    def test_strips_stacked_label_terms(self) -> None:
        """Test boilerplate is stripped until none is left at the end."""
        assert clean_producer_candidate("Mission Hill Reserve VQA ") == "Mission Hill"
        assert clean_producer_candidate("Creekside Estate Winery ") == "Creekside"
        assert clean_producer_candidate("Estate Winery ") is None

    def test_strips_trailing_punctuation(self) -> None:
        """Test trailing hyphens and commas are removed."""
        assert clean_producer_candidate("Torres - ") == "Torres"

    def test_too_short(self) -> None:
        """Test that one remaining character is not a producer."""
        assert clean_producer_candidate("A ") is None

    def test_text_before_keeps_original_spelling(self) -> None:
        """Test accent-insensitive search keeps the original text."""
        assert text_before("Château des Charmes Riesling", "riesling") == "Château des Charmes"
        assert text_before("Domaine Weinbach Gewurztraminer", "Gewürztraminer") == "Domaine Weinbach"

    def test_text_before_varietal_at_start(self) -> None:
        """Test there is no producer when the name starts with the grape."""
        assert text_before("Merlot Reserve", "Merlot") is None


class TestProducerStrategies:
    """Tests for the individual producer strategies."""

    def test_supplied_varietal(self) -> None:
        """Test splitting on the supplied varietal."""
        strategy = SuppliedVarietalStrategy()
        assert strategy.extract("Cloudy Bay Sauvignon Blanc", "Sauvignon Blanc") == "Cloudy Bay"
        assert strategy.extract("Cloudy Bay Sauvignon Blanc", None) is None

    def test_lexicon_scan(self) -> None:
        """Test scanning the lexicon when no varietal is supplied."""
        strategy = LexiconScanStrategy()
        assert strategy.extract("Tawse Cabernet Franc", None) == "Tawse"

    def test_lexicon_scan_custom_lexicon(self) -> None:
        """Test a custom lexicon."""
        strategy = LexiconScanStrategy(["kalimna"])
        assert strategy.extract("Penfolds Bin 28 Kalimna Shiraz", None) == "Penfolds Bin 28"

    def test_first_words_requires_varietal(self) -> None:
        """Test first-words is not used without a varietal."""
        assert FirstWordsStrategy().extract("Some Long Wine Name Here", None) is None

    def test_first_words_long_name(self) -> None:
        """Test two leading words for names of four or more words."""
        strategy = FirstWordsStrategy()
        assert strategy.extract("Stag's Leap Artemis Napa", "Cabernet Sauvignon") == "Stag's Leap"

    def test_first_words_three_words(self) -> None:
        """Test one leading word for three-word names."""
        strategy = FirstWordsStrategy()
        assert strategy.extract("Ruffino Tan Label", "Sangiovese") == "Ruffino"

    def test_first_words_short_name(self) -> None:
        """Test names of two words are bare wine names."""
        assert FirstWordsStrategy().extract("Yellow Tail", "Shiraz") is None


class TestProducerExtraction:
    """Tests for the full producer chain."""

    def test_simple_name(self) -> None:
        """Test the producer in front of the grape."""
        assert extract_producer("Gato Negro Chardonnay", "Chardonnay") == "Gato Negro"

    def test_vintage_after_grape(self) -> None:
        """Test a vintage after the grape does not affect the producer."""
        assert extract_producer("Henry of Pelham Baco Noir 2021", "Baco Noir") == "Henry of Pelham"

    def test_vintage_and_reserve_before_grape(self) -> None:
        """Test vintages and label terms in front of the grape are removed."""
        assert (
            extract_producer("Kim Crawford 2020 Reserve Pinot Noir", "Pinot Noir")
            == "Kim Crawford"
        )

    def test_blend_falls_through_to_lexicon_scan(self) -> None:
        """Test that a blend label behaves like a missing varietal."""
        assert extract_producer("Tawse Cabernet Franc VQA", BLEND) == "Tawse"

    def test_alias_name_found_by_lexicon(self) -> None:
        """Test a name spelling the alias while the varietal is canonical."""
        assert extract_producer("King Estate Pinot Gris", "Pinot Grigio") == "King"

    def test_unknown_producer(self) -> None:
        """Test the unknown sentinel when no strategy applies."""
        assert extract_producer("Maison Test Réserve Rouge", None) == UNKNOWN_PRODUCER

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_name(self, value) -> None:
        """Test empty names give the unknown sentinel."""
        assert extract_producer(value) == UNKNOWN_PRODUCER

    @pytest.mark.parametrize(
        "name,varietal,expected",
        [
            ("Cloudy Bay Sauvignon Blanc", "Sauvignon Blanc", "Cloudy Bay"),
            ("Mission Hill Reserve VQA Chardonnay", "Chardonnay", "Mission Hill"),
            ("Creekside Estate Winery Chardonnay", "Chardonnay", "Creekside"),
            ("Kim Crawford 2020 Reserve Pinot Noir", "Pinot Noir", "Kim Crawford"),
            ("Stag's Leap Estate Artemis Napa", "Cabernet Sauvignon", "Stag's Leap"),
        ],
    )
    def test_reextracting_producer_is_stable(self, name: str, varietal: str, expected: str) -> None:
        """Test the producer re-extracted from "producer varietal" is unchanged."""
        first = extract_producer(name, varietal)
        assert first == expected
        assert extract_producer(f"{first} {varietal}", varietal) == first

    def test_infer_returns_none(self) -> None:
        """Test the internal form uses None instead of the sentinel."""
        assert infer_producer("Maison Test Réserve Rouge") is None


class TestGenericProducer:
    """Tests for generic producer detection."""

    @pytest.mark.parametrize(
        "producer",
        [None, "", UNKNOWN_PRODUCER, "Domaine", "Château", "Estate Wines", "Bodegas"],
    )
    def test_generic(self, producer) -> None:
        """Test vague producer labels."""
        assert is_generic_producer(producer) is True

    @pytest.mark.parametrize("producer", ["Tawse", "Château des Charmes", "Henry of Pelham"])
    def test_specific(self, producer) -> None:
        """Test real producer names."""
        assert is_generic_producer(producer) is False
