"""
Card catalog service.

Loads the canonical card list (every printing of every supported game)
from a JSON dump and answers lookups by id, by name, and free-text search.
The dump is built by `tcgscan.jobs.download_catalog` from Scryfall (MTG)
and the Pokemon TCG API.
"""

import json
import logging
from collections.abc import Iterable, Iterator
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

import httpx

from tcgscan.config import settings
from tcgscan.models.identification import CardRecord
from tcgscan.models.scan import Game

logger = logging.getLogger(__name__)

SCRYFALL_BULK_API = "https://api.scryfall.com/bulk-data"
POKEMON_TCG_API = "https://api.pokemontcg.io/v2/cards"
POKEMON_PAGE_SIZE = 250

DEFAULT_SEARCH_LIMIT = 20


class CardCatalog(Protocol):
    """Read access to canonical card printings."""

    def get_card(self, card_id: str) -> CardRecord | None: ...

    def find_by_name(
        self, name: str, game: str | None = None, set_code: str = "", card_number: str = ""
    ) -> list[CardRecord]: ...

    def search(
        self, query: str, game: str | None = None, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[CardRecord]: ...


def _normalize_name(name: str) -> str:
    return " ".join(name.casefold().replace("é", "e").split())


def _normalize_number(number: str) -> str:
    return number.lstrip("0") or "0" if number else ""


class JsonCardCatalog:
    """In-memory catalog indexed by id and normalized name."""

    def __init__(self, cards: Iterable[CardRecord]):
        self._by_id: dict[str, CardRecord] = {}
        self._by_name: dict[str, list[CardRecord]] = {}
        for card in cards:
            self._by_id[card.id] = card
            self._by_name.setdefault(_normalize_name(card.name), []).append(card)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[CardRecord]:
        return iter(self._by_id.values())

    def get_card(self, card_id: str) -> CardRecord | None:
        return self._by_id.get(card_id)

    def find_by_name(
        self, name: str, game: str | None = None, set_code: str = "", card_number: str = ""
    ) -> list[CardRecord]:
        """
        All printings with this exact name.

        Printings matching the given set code and collector number sort first,
        then those matching only one of them.
        """
        printings = self._by_name.get(_normalize_name(name), [])
        if game:
            printings = [card for card in printings if card.game == game]

        wanted_set = set_code.casefold()
        wanted_number = _normalize_number(card_number)

        def rank(card: CardRecord) -> int:
            score = 0
            if wanted_set and card.set_code.casefold() == wanted_set:
                score += 2
            if wanted_number and _normalize_number(card.card_number) == wanted_number:
                score += 1
            return -score

        return sorted(printings, key=rank)

    def search(
        self, query: str, game: str | None = None, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[CardRecord]:
        """
        Substring search over card names, for manual identification.

        Exact names rank first, then prefix matches, then other substrings.
        """
        needle = _normalize_name(query)
        if not needle:
            return []

        ranked: list[tuple[int, str, CardRecord]] = []
        for normalized, printings in self._by_name.items():
            if needle not in normalized:
                continue
            if normalized == needle:
                rank = 0
            elif normalized.startswith(needle):
                rank = 1
            else:
                rank = 2
            for card in printings:
                if game and card.game != game:
                    continue
                ranked.append((rank, normalized, card))

        ranked.sort(key=lambda entry: (entry[0], entry[1], entry[2].set_code, entry[2].id))
        return [card for _, _, card in ranked[:limit]]


# =============================================================================
# LOADING
# =============================================================================


def card_from_dict(data: dict[str, Any]) -> CardRecord:
    return CardRecord(
        id=str(data["id"]),
        name=data["name"],
        game=data.get("game", ""),
        set_code=data.get("set_code", ""),
        set_name=data.get("set_name", ""),
        card_number=str(data.get("card_number", "")),
        rarity=data.get("rarity", ""),
        image_url=data.get("image_url", ""),
    )


def card_to_dict(card: CardRecord) -> dict[str, str]:
    return {
        "id": card.id,
        "name": card.name,
        "game": card.game,
        "set_code": card.set_code,
        "set_name": card.set_name,
        "card_number": card.card_number,
        "rarity": card.rarity,
        "image_url": card.image_url,
    }


def load_card_catalog(path: Path | None = None) -> JsonCardCatalog:
    """
    Load the catalog from a JSON file.

    Raises:
        FileNotFoundError: If the catalog file doesn't exist
    """
    if path is None:
        path = Path(settings.card_catalog_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Card catalog not found at {path}. "
            "Run `python -m tcgscan.jobs.download_catalog` first."
        )

    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    catalog = JsonCardCatalog(card_from_dict(entry) for entry in raw)
    logger.info("Loaded %d cards from %s", len(catalog), path)
    return catalog


@lru_cache(maxsize=1)
def get_card_catalog() -> JsonCardCatalog:
    """
    Get the cached catalog. Cached after first load.

    Raises:
        FileNotFoundError: If the catalog file doesn't exist
    """
    return load_card_catalog()


# =============================================================================
# DOWNLOAD
# =============================================================================


def scryfall_to_record(card: dict[str, Any]) -> CardRecord:
    image_uris = card.get("image_uris") or {}
    if not image_uris and card.get("card_faces"):
        image_uris = card["card_faces"][0].get("image_uris") or {}
    return CardRecord(
        id=card["id"],
        name=card["name"],
        game=Game.MTG.value,
        set_code=card.get("set", "").upper(),
        set_name=card.get("set_name", ""),
        card_number=card.get("collector_number", ""),
        rarity=card.get("rarity", ""),
        image_url=image_uris.get("normal", ""),
    )


def pokemon_to_record(card: dict[str, Any]) -> CardRecord:
    card_set = card.get("set") or {}
    images = card.get("images") or {}
    return CardRecord(
        id=card["id"],
        name=card["name"],
        game=Game.POKEMON.value,
        set_code=card_set.get("id", ""),
        set_name=card_set.get("name", ""),
        card_number=card.get("number", ""),
        rarity=card.get("rarity", ""),
        image_url=images.get("small", ""),
    )


async def fetch_mtg_cards(client: httpx.AsyncClient, work_dir: Path) -> list[CardRecord]:
    """Download Scryfall default-cards bulk data and convert it."""
    response = await client.get(SCRYFALL_BULK_API)
    response.raise_for_status()

    download_url = None
    for item in response.json()["data"]:
        if item["type"] == "default_cards":
            download_url = item["download_uri"]
            break
    if not download_url:
        raise ValueError("Could not find default_cards bulk data URL")

    # Stream to disk first (file is ~70MB)
    raw_path = work_dir / "scryfall-default-cards.json"
    async with client.stream("GET", download_url, timeout=300.0) as stream:
        stream.raise_for_status()
        with open(raw_path, "wb") as f:
            async for chunk in stream.aiter_bytes(8192):
                f.write(chunk)

    try:
        with open(raw_path, encoding="utf-8") as f:
            cards = json.load(f)
    finally:
        raw_path.unlink(missing_ok=True)

    return [scryfall_to_record(card) for card in cards if card.get("lang", "en") == "en"]


async def fetch_pokemon_cards(client: httpx.AsyncClient) -> list[CardRecord]:
    """Page through the Pokemon TCG API."""
    records: list[CardRecord] = []
    page = 1
    while True:
        response = await client.get(
            POKEMON_TCG_API, params={"page": page, "pageSize": POKEMON_PAGE_SIZE}
        )
        response.raise_for_status()
        payload = response.json()
        cards = payload.get("data", [])
        records.extend(pokemon_to_record(card) for card in cards)

        total = payload.get("totalCount", 0)
        if not cards or len(records) >= total:
            break
        page += 1
    return records


async def download_card_catalog(
    output_path: Path | None = None,
    games: Iterable[Game] = (Game.POKEMON, Game.MTG),
    client: httpx.AsyncClient | None = None,
) -> Path:
    """
    Download every supported game's cards and write the catalog file.

    Returns:
        Path to the written catalog.

    Raises:
        httpx.HTTPError: If a download fails
    """
    if output_path is None:
        output_path = Path(settings.card_catalog_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(
            headers={"User-Agent": "TCGScan/1.0"}, follow_redirects=True, timeout=60.0
        )

    records: list[CardRecord] = []
    try:
        for game in games:
            if game == Game.MTG:
                records.extend(await fetch_mtg_cards(client, output_path.parent))
            else:
                records.extend(await fetch_pokemon_cards(client))
            logger.info("Fetched %s cards, %d total so far", game.value, len(records))
    finally:
        if owns_client:
            await client.aclose()

    tmp_path = output_path.with_suffix(".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump([card_to_dict(card) for card in records], f)
    tmp_path.replace(output_path)

    get_card_catalog.cache_clear()
    return output_path
