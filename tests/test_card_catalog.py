"""Tests for the card catalog."""

import json
from pathlib import Path

import httpx
import pytest
import respx

from tcgscan.models.identification import CardRecord
from tcgscan.models.scan import Game
from tcgscan.services.card_catalog import (
    POKEMON_TCG_API,
    SCRYFALL_BULK_API,
    JsonCardCatalog,
    card_from_dict,
    card_to_dict,
    download_card_catalog,
    load_card_catalog,
    pokemon_to_record,
    scryfall_to_record,
)

CARDS = [
    CardRecord(id="swsh4-25", name="Charizard", game="pokemon", set_code="swsh4", card_number="25"),
    CardRecord(id="cel25-4", name="Charizard", game="pokemon", set_code="cel25", card_number="4"),
    CardRecord(id="swsh3-20", name="Charizard V", game="pokemon", set_code="swsh3"),
    CardRecord(id="base1-4", name="Charizard", game="pokemon", set_code="base1", card_number="4"),
    CardRecord(id="m11-149", name="Lightning Bolt", game="mtg", set_code="M11", card_number="149"),
    CardRecord(id="xy12-66", name="Flabébé", game="pokemon", set_code="xy12"),
]


@pytest.fixture
def catalog() -> JsonCardCatalog:
    return JsonCardCatalog(CARDS)


class TestLookups:
    def test_get_card(self, catalog: JsonCardCatalog) -> None:
        card = catalog.get_card("m11-149")

        assert card is not None
        assert card.name == "Lightning Bolt"
        assert catalog.get_card("missing") is None
        assert len(catalog) == 6

    def test_find_by_name_is_case_insensitive(self, catalog: JsonCardCatalog) -> None:
        printings = catalog.find_by_name("  CHARIZARD ")

        assert {card.id for card in printings} == {"swsh4-25", "cel25-4", "base1-4"}

    def test_find_by_name_ranks_set_and_number(self, catalog: JsonCardCatalog) -> None:
        printings = catalog.find_by_name("Charizard", set_code="SWSH4", card_number="025")

        assert printings[0].id == "swsh4-25"

    def test_number_only_match_ranks_above_none(self, catalog: JsonCardCatalog) -> None:
        printings = catalog.find_by_name("Charizard", card_number="004")

        assert printings[-1].id == "swsh4-25"

    def test_find_by_name_filters_game(self, catalog: JsonCardCatalog) -> None:
        assert catalog.find_by_name("Lightning Bolt", game="pokemon") == []

    def test_accents_folded(self, catalog: JsonCardCatalog) -> None:
        assert [card.id for card in catalog.find_by_name("Flabebe")] == ["xy12-66"]


class TestSearch:
    def test_exact_before_prefix(self, catalog: JsonCardCatalog) -> None:
        results = catalog.search("charizard")

        assert [card.name for card in results][-1] == "Charizard V"
        assert len(results) == 4

    def test_substring(self, catalog: JsonCardCatalog) -> None:
        assert [card.id for card in catalog.search("bolt")] == ["m11-149"]

    def test_limit_and_game(self, catalog: JsonCardCatalog) -> None:
        assert len(catalog.search("char", limit=2)) == 2
        assert catalog.search("char", game="mtg") == []

    def test_blank_query(self, catalog: JsonCardCatalog) -> None:
        assert catalog.search("   ") == []


class TestLoading:
    def test_dict_round_trip(self) -> None:
        assert card_from_dict(card_to_dict(CARDS[0])) == CARDS[0]

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "cards.json"
        path.write_text(json.dumps([card_to_dict(card) for card in CARDS]), encoding="utf-8")

        catalog = load_card_catalog(path)

        assert len(catalog) == len(CARDS)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="download_catalog"):
            load_card_catalog(tmp_path / "absent.json")


class TestConversion:
    def test_scryfall_double_faced_card(self) -> None:
        record = scryfall_to_record(
            {
                "id": "abc",
                "name": "Delver of Secrets // Insectile Aberration",
                "set": "isd",
                "collector_number": "51",
                "card_faces": [{"image_uris": {"normal": "https://img/front.jpg"}}],
            }
        )

        assert record.game == Game.MTG.value
        assert record.set_code == "ISD"
        assert record.image_url == "https://img/front.jpg"

    def test_pokemon_card(self) -> None:
        record = pokemon_to_record(
            {
                "id": "swsh4-25",
                "name": "Charizard",
                "number": "25",
                "rarity": "Rare Holo",
                "set": {"id": "swsh4", "name": "Vivid Voltage"},
                "images": {"small": "https://img/swsh4-25.png"},
            }
        )

        assert record.set_name == "Vivid Voltage"
        assert record.image_url == "https://img/swsh4-25.png"


class TestDownload:
    @respx.mock
    async def test_download_writes_catalog(self, tmp_path: Path) -> None:
        respx.get(POKEMON_TCG_API).mock(
            side_effect=[
                httpx.Response(
                    200,
                    json={"data": [{"id": "swsh4-25", "name": "Charizard"}], "totalCount": 2},
                ),
                httpx.Response(
                    200,
                    json={"data": [{"id": "cel25-4", "name": "Charizard"}], "totalCount": 2},
                ),
            ]
        )
        respx.get(SCRYFALL_BULK_API).mock(
            return_value=httpx.Response(
                200,
                json={
                    "data": [
                        {"type": "default_cards", "download_uri": "https://data.example/all.json"}
                    ]
                },
            )
        )
        respx.get("https://data.example/all.json").mock(
            return_value=httpx.Response(
                200,
                json=[
                    {"id": "bolt", "name": "Lightning Bolt", "set": "m11", "lang": "en"},
                    {"id": "bolt-ja", "name": "Lightning Bolt", "set": "m11", "lang": "ja"},
                ],
            )
        )
        output = tmp_path / "cards.json"

        async with httpx.AsyncClient() as client:
            path = await download_card_catalog(output, client=client)

        catalog = load_card_catalog(path)
        assert len(catalog) == 3
        assert catalog.get_card("bolt-ja") is None
        assert not output.with_suffix(".tmp").exists()

    @respx.mock
    async def test_download_failure_keeps_old_catalog(self, tmp_path: Path) -> None:
        respx.get(POKEMON_TCG_API).mock(return_value=httpx.Response(500))
        output = tmp_path / "cards.json"
        output.write_text("[]", encoding="utf-8")

        async with httpx.AsyncClient() as client:
            with pytest.raises(httpx.HTTPStatusError):
                await download_card_catalog(output, games=[Game.POKEMON], client=client)

        assert output.read_text(encoding="utf-8") == "[]"
