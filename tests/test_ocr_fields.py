"""Tests for OCR field extraction."""

from dataclasses import asdict

import pytest

from tcgscan.models.scan import Game, ImageAnalysis
from tcgscan.parsers.ocr_fields import (
    calculate_confidence,
    clean_pokemon_name,
    extract_fields,
    extract_mtg_name,
    extract_pokemon_name,
)


class TestPokemonExtraction:
    def test_full_card(self, charizard_text: str) -> None:
        """Name, number, set and HP are all recovered from a clean scan."""
        fields = extract_fields(charizard_text, Game.POKEMON)

        assert fields.card_name == "Charizard"
        assert fields.card_number == "25"
        assert fields.set_total == "185"
        assert fields.set_code == "swsh4"
        assert fields.hp == "170"
        assert fields.confidence >= 0.9

    def test_game_accepts_plain_string(self, charizard_text: str) -> None:
        fields = extract_fields(charizard_text, "pokemon")

        assert fields.set_code == "swsh4"

    def test_all_zero_number_keeps_single_zero(self) -> None:
        fields = extract_fields("Pikachu\n000/025", Game.POKEMON)

        assert fields.card_number == "0"
        assert fields.set_total == "025"

    def test_unique_set_total_sets_code(self) -> None:
        fields = extract_fields("Pikachu\n025/185", Game.POKEMON)

        assert fields.set_code == "swsh4"
        assert fields.set_candidates == []

    def test_ambiguous_set_total_is_not_guessed(self) -> None:
        """A total shared by several sets leaves the code empty and lists the candidates."""
        fields = extract_fields("Pikachu\n010/198", Game.POKEMON)

        assert fields.set_code == ""
        assert fields.set_candidates == ["sv1", "swsh6"]

    def test_set_name_lookup(self) -> None:
        fields = extract_fields("Pikachu\nVivid Voltage", Game.POKEMON)

        assert fields.set_code == "swsh4"
        assert fields.set_name == "VIVID VOLTAGE"

    def test_trainer_gallery_number(self) -> None:
        fields = extract_fields("Pikachu\nTG05/TG30", Game.POKEMON)

        assert fields.card_number == "TG05"

    def test_galarian_gallery_number(self) -> None:
        fields = extract_fields("Pikachu\nGG30/GG70", Game.POKEMON)

        assert fields.card_number == "GG30"

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("Pikachu\nHP 60", "60"),
            ("Pikachu\n60 HP", "60"),
            ("Pikachu\n4P 60", "60"),
            ("Pikachu\nHP 10", "10"),
            ("Pikachu\nHP 400", "400"),
            ("Pikachu\nHP 500", ""),
            ("Pikachu\nHP 5", ""),
        ],
    )
    def test_hp_patterns_and_bounds(self, text: str, expected: str) -> None:
        assert extract_fields(text, Game.POKEMON).hp == expected

    def test_longest_rarity_wins(self) -> None:
        fields = extract_fields("Charizard ex\nSpecial Art Rare\n199/165", Game.POKEMON)

        assert fields.rarity == "Special Art Rare"
        assert fields.card_name == "Charizard ex"

    def test_foil_triggers(self) -> None:
        fields = extract_fields("Pikachu\nReverse Holo", Game.POKEMON)

        assert fields.is_foil is True
        assert "Reverse holo text detected" in fields.foil_indicators

    def test_special_suffix_is_foil(self) -> None:
        fields = extract_fields("Pikachu VMAX\nHP 310", Game.POKEMON)

        assert fields.is_foil is True
        assert fields.card_name == "Pikachu VMAX"

    def test_condition_hints(self) -> None:
        fields = extract_fields("Charizard\nPSA 10\nGEM MINT", Game.POKEMON)

        assert "PSA graded card" in fields.condition_hints
        assert "PSA grade: 10" in fields.condition_hints
        assert "Gem Mint condition" in fields.condition_hints


class TestPokemonNames:
    def test_known_name_preferred(self) -> None:
        lines = ["Basic Pokemon", "Florges", "Mewtwo GX"]

        assert extract_pokemon_name(lines) == "Mewtwo GX"

    def test_skips_boilerplate_lines(self) -> None:
        lines = ["Stage 1", "Evolves from Pichu", "Raichu", "HP 120"]

        assert extract_pokemon_name(lines) == "Raichu"

    def test_skips_short_rarity_lines(self) -> None:
        lines = ["Ultra Rare", "Florges"]

        assert extract_pokemon_name(lines) == "Florges"

    def test_no_lines(self) -> None:
        assert extract_pokemon_name([]) == ""

    def test_clean_removes_hp_noise(self) -> None:
        assert clean_pokemon_name("Florges HP 130") == "Florges"

    def test_clean_keeps_lowercase_ex(self) -> None:
        assert clean_pokemon_name("@@ charizard EX 330HP", "charizard") == "Charizard ex"


class TestMtgExtraction:
    def test_full_card(self) -> None:
        text = (
            "Lightning Bolt\nInstant\nLightning Bolt deals 3 damage to any target.\n141/274\nM11"
        )

        fields = extract_fields(text, Game.MTG)

        assert fields.card_name == "Lightning Bolt"
        assert fields.card_number == "141"
        assert fields.set_total == "274"
        assert fields.set_code == "M11"
        assert fields.hp == ""
        assert fields.confidence == pytest.approx(0.9)

    def test_power_toughness_is_not_collector_number(self) -> None:
        fields = extract_fields("Grizzly Bears\nCreature - Bear\n2/2", Game.MTG)

        assert fields.card_number == ""
        assert fields.card_name == "Grizzly Bears"

    def test_set_code_false_positives_ignored(self) -> None:
        fields = extract_fields("Sol Ring\nArtifact\nFOIL", Game.MTG)

        assert fields.set_code == ""
        assert fields.is_foil is True
        assert "FOIL card variant" in fields.foil_indicators

    def test_name_skips_type_line(self) -> None:
        assert extract_mtg_name(["Legendary Creature", "Llanowar Elves"]) == "Llanowar Elves"

    def test_name_falls_back_to_first_line(self) -> None:
        assert extract_mtg_name(["Creature"]) == "Creature"


class TestImageAnalysis:
    def test_confident_image_overrides_text_foil(self) -> None:
        analysis = ImageAnalysis(is_foil_detected=False, foil_confidence=0.9)

        fields = extract_fields("Pikachu\nHolo", Game.POKEMON, analysis)

        assert fields.is_foil is False
        assert fields.foil_confidence == 0.9

    def test_weak_positive_adds_foil(self) -> None:
        analysis = ImageAnalysis(is_foil_detected=True, foil_confidence=0.3)

        fields = extract_fields("Pikachu", Game.POKEMON, analysis)

        assert fields.is_foil is True
        assert "Image analysis suggests foil (low confidence)" in fields.foil_indicators

    def test_condition_data_copied(self) -> None:
        analysis = ImageAnalysis(
            suggested_condition="LP",
            edge_whitening_score=0.2,
            corner_scores={"top_left": 0.9},
        )

        fields = extract_fields("Pikachu", Game.POKEMON, analysis)

        assert fields.suggested_condition == "LP"
        assert fields.edge_whitening_score == 0.2
        assert fields.corner_scores == {"top_left": 0.9}


class TestRobustness:
    @pytest.mark.parametrize("text", [None, "", "   \n\n  ", "%%%$$$###", "\x00\x01\x02"])
    def test_garbage_input_never_raises(self, text: str | None) -> None:
        for game in Game:
            fields = extract_fields(text, game)
            assert 0.0 <= fields.confidence <= 1.0

    def test_empty_input_has_zero_confidence(self) -> None:
        fields = extract_fields("", Game.POKEMON)

        assert fields.card_name == ""
        assert fields.confidence == 0.0

    def test_oversized_input_is_truncated(self) -> None:
        fields = extract_fields("A" * 50_000 + "\n025/185", Game.POKEMON)

        assert len(fields.raw_text) == 10_000
        assert fields.card_number == ""

    def test_confidence_never_decreases_as_fields_are_added(self) -> None:
        texts = [
            "",
            "Charizard",
            "Charizard\n025/185",
            "Charizard\n025/185\nSWSH4",
            "Charizard\nHP 170\n025/185\nSWSH4",
        ]

        scores = [extract_fields(text, Game.POKEMON).confidence for text in texts]

        assert scores == sorted(scores)
        assert scores[-1] == 1.0

    def test_extraction_is_deterministic(self, charizard_text: str) -> None:
        first = extract_fields(charizard_text, Game.POKEMON)
        second = extract_fields(charizard_text, Game.POKEMON)

        assert asdict(first) == asdict(second)

    def test_confidence_formula(self) -> None:
        fields = extract_fields("Charizard\nHP 170", Game.POKEMON)

        assert calculate_confidence(fields) == pytest.approx(0.5)
