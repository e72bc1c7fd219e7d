"""
Card catalog refresh job.

Fetches Pokemon printings from the Pokemon TCG API and English MTG printings
from the Scryfall bulk export, then writes one catalog file the scan and
import paths resolve names against. The running API picks the new file up
after a restart or a catalog-refresh task.
"""

import argparse
import asyncio
import logging
from collections import Counter
from pathlib import Path

from tcgscan.models.scan import Game
from tcgscan.services.card_catalog import download_card_catalog, load_card_catalog

logger = logging.getLogger(__name__)


async def run_download(output: Path | None, games: list[Game]) -> Counter[str]:
    """Write a fresh catalog and return the number of cards per game."""
    logger.info("CATALOG_DOWNLOAD_STARTED", extra={"games": [g.value for g in games]})
    try:
        path = await download_card_catalog(output, games)
    except Exception:
        logger.exception("CATALOG_DOWNLOAD_FAILED")
        raise

    counts = Counter(card.game for card in load_card_catalog(path))
    logger.info("CATALOG_DOWNLOADED", extra={"path": str(path), "counts": dict(counts)})
    return counts


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Download the trading card catalog")
    parser.add_argument(
        "--game",
        dest="games",
        action="append",
        type=Game,
        choices=list(Game),
        help="Only fetch this game (repeatable, default: all)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Catalog file to write (default: CARD_CATALOG_PATH)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    counts = asyncio.run(run_download(args.output, args.games or list(Game)))
    for game, count in sorted(counts.items()):
        print(f"{game}: {count} cards")


if __name__ == "__main__":
    main()
