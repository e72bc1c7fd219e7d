"""
Scan identification service.

Turns one scan (photo, optional OCR text) into a catalog card:

1. A user-confirmed identity cached for the same OCR text wins outright
2. OCR text goes through field extraction and the identification resolver
3. The photo goes to the primary identifier when text gave no confident name
4. The name is looked up in the card catalog
5. Several printings and low confidence trigger the visual tie-break

Used by the batch import worker for each item and by the scan endpoint.
"""

import logging
from collections.abc import Callable
from dataclasses import replace

from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.config import MIN_PRIMARY_CONFIDENCE
from tcgscan.models.failure import KnownError, ServiceNotConfiguredError
from tcgscan.models.identification import (
    CardRecord,
    IdentificationCandidate,
    IdentificationFailedError,
    ResolutionResult,
    ResolutionSource,
    ScanIdentification,
)
from tcgscan.models.scan import Game
from tcgscan.parsers.ocr_fields import extract_fields
from tcgscan.services.card_catalog import CardCatalog, get_card_catalog
from tcgscan.services.card_identifier import (
    DEFAULT_MIME_TYPE,
    CardIdentifier,
    IdentifierError,
    ImageFetchError,
    PrimaryIdentification,
)
from tcgscan.services.identification_resolver import IdentificationResolver
from tcgscan.services.literal_translator import LiteralTranslator
from tcgscan.services.translation_cache import TranslationCacheService, truncate_text

logger = logging.getLogger(__name__)

# Visual comparison is skipped above this confidence
VISUAL_TIE_BREAK_BELOW = 0.8

MAX_STORED_CANDIDATES = 10

CONFIRMED_REASONING = "previously confirmed for this text"


class IdentificationService:
    """Identification pipeline for a single scan, over one database session."""

    def __init__(
        self,
        session: AsyncSession,
        catalog: CardCatalog,
        identifier: CardIdentifier | None = None,
        translator: LiteralTranslator | None = None,
    ):
        self.catalog = catalog
        self.identifier = identifier
        self.cache = TranslationCacheService(session)
        self.resolver = IdentificationResolver(
            cache=self.cache, identifier=identifier, translator=translator
        )

    async def identify_scan(
        self,
        image: bytes | None,
        mime_type: str = DEFAULT_MIME_TYPE,
        ocr_text: str | None = None,
        declared_language: str = "",
        game: Game | None = None,
    ) -> ScanIdentification:
        """
        Identify one scanned card.

        Raises:
            IdentificationFailedError: If no name was found or the catalog has no match
            ServiceNotConfiguredError: If only the photo is available and no identifier is set
            IdentifierError: If the photo identification call fails with no text to fall back on
        """
        if ocr_text:
            confirmed = await self._confirmed_identity(ocr_text)
            if confirmed is not None:
                return confirmed

        guess = IdentificationCandidate(card_name="", confidence=0.0)
        resolution: ResolutionResult | None = None
        is_foil = False
        observed_language = declared_language
        detected_game = game

        if ocr_text:
            resolution, guess, is_foil = await self._identify_text(
                ocr_text, declared_language, game or Game.POKEMON
            )

        primary: PrimaryIdentification | None = None
        if image and (not guess.card_name or guess.confidence < MIN_PRIMARY_CONFIDENCE):
            try:
                primary = await self.resolver.resolve_image(image, mime_type)
            except (IdentifierError, KnownError) as e:
                if not guess.card_name:
                    raise
                logger.warning("IMAGE_IDENTIFICATION_SKIPPED", extra={"error": str(e)})

        if primary is not None and primary.best is not None:
            if primary.best.confidence >= guess.confidence or not guess.card_name:
                guess = primary.best
            is_foil = is_foil or primary.is_foil
            observed_language = primary.observed_language or observed_language
            if detected_game is None and primary.game in {g.value for g in Game}:
                detected_game = Game(primary.game)

        if not guess.card_name:
            raise IdentificationFailedError(
                resolution or _failed_result(ocr_text or ""), reason="no card name found"
            )

        game_value = detected_game.value if detected_game else None
        records = self.catalog.find_by_name(
            guess.full_name(), game_value, guess.set_code, guess.card_number
        )
        if not records and guess.full_name() != guess.card_name:
            records = self.catalog.find_by_name(
                guess.card_name, game_value, guess.set_code, guess.card_number
            )
        if not records:
            logger.info("CATALOG_NO_MATCH", extra={"card_name": guess.card_name})
            partial = (
                replace(resolution, best_guess=guess)
                if resolution
                else _failed_result(ocr_text or "", guess)
            )
            raise IdentificationFailedError(
                partial,
                reason=f"no catalog match for {guess.card_name}",
            )

        card = records[0]
        confidence = guess.confidence
        reasoning = guess.reasoning
        if (
            image
            and len(records) > 1
            and confidence < VISUAL_TIE_BREAK_BELOW
            and not _exact_printing(card, guess)
        ):
            card, confidence, reasoning = await self._visual_tie_break(
                image, mime_type, records, card, confidence, reasoning
            )

        is_first_edition = primary.is_first_edition if primary is not None else False
        logger.info(
            "SCAN_IDENTIFIED",
            extra={"card_id": card.id, "confidence": confidence, "printings": len(records)},
        )
        return ScanIdentification(
            card_id=card.id,
            card_name=card.name,
            game=card.game,
            set_code=card.set_code,
            set_name=card.set_name,
            card_number=card.card_number,
            confidence=confidence,
            reasoning=reasoning,
            observed_language=observed_language,
            is_foil=is_foil,
            is_first_edition=is_first_edition,
            candidates=records[:MAX_STORED_CANDIDATES],
        )

    async def _confirmed_identity(self, ocr_text: str) -> ScanIdentification | None:
        card_id, hit = await self.cache.get_identity(ocr_text)
        if not hit:
            return None
        card = self.catalog.get_card(card_id)
        if card is None:
            logger.warning("CONFIRMED_CARD_MISSING", extra={"card_id": card_id})
            return None
        logger.info("SCAN_IDENTITY_CACHE_HIT", extra={"card_id": card_id})
        return ScanIdentification(
            card_id=card.id,
            card_name=card.name,
            game=card.game,
            set_code=card.set_code,
            set_name=card.set_name,
            card_number=card.card_number,
            confidence=1.0,
            reasoning=CONFIRMED_REASONING,
            candidates=[card],
        )

    async def _identify_text(
        self, ocr_text: str, declared_language: str, game: Game
    ) -> tuple[ResolutionResult, IdentificationCandidate, bool]:
        """Run extraction and the resolver; returns the result, best guess, and foil flag."""
        fields = extract_fields(ocr_text, game)
        try:
            resolution = await self.resolver.resolve(
                ocr_text, declared_language, int(fields.confidence * 1000)
            )
        except IdentificationFailedError as e:
            logger.info("TEXT_RESOLUTION_FAILED", extra={"text": truncate_text(ocr_text)})
            resolution = e.result

        if resolution.best_guess is not None:
            return resolution, resolution.best_guess, fields.is_foil

        if resolution.source == ResolutionSource.FAILED:
            return resolution, IdentificationCandidate(card_name="", confidence=0.0), False

        # skipped, static, cache and fallback all yield English text to extract from
        translated = fields
        if resolution.translated_text != ocr_text:
            translated = extract_fields(resolution.translated_text, game)
        guess = IdentificationCandidate(
            card_name=translated.card_name,
            confidence=translated.confidence,
            set_code=translated.set_code or fields.set_code,
            card_number=translated.card_number or fields.card_number,
            reasoning=f"{resolution.source.value} text extraction",
            raw_text=ocr_text,
        )
        return resolution, guess, fields.is_foil or translated.is_foil

    async def _visual_tie_break(
        self,
        image: bytes,
        mime_type: str,
        records: list[CardRecord],
        card: CardRecord,
        confidence: float,
        reasoning: str,
    ) -> tuple[CardRecord, float, str]:
        if self.identifier is None or not self.identifier.is_enabled:
            return card, confidence, reasoning
        try:
            selection = await self.identifier.select_best_match(image, records, mime_type)
        except (ImageFetchError, IdentifierError, KnownError) as e:
            logger.warning("VISUAL_TIE_BREAK_SKIPPED", extra={"error": str(e)})
            return card, confidence, reasoning

        selected = self.catalog.get_card(selection.selected_id) if selection.selected_id else None
        if selected is None:
            return card, confidence, reasoning
        return selected, max(confidence, selection.confidence), selection.reasoning or reasoning


def _exact_printing(card: CardRecord, guess: IdentificationCandidate) -> bool:
    """True when the top record matches both the set code and collector number read."""
    if not guess.set_code or not guess.card_number:
        return False
    return (
        card.set_code.casefold() == guess.set_code.casefold()
        and card.card_number.lstrip("0") == guess.card_number.lstrip("0")
    )


def _failed_result(
    text: str, best_guess: IdentificationCandidate | None = None
) -> ResolutionResult:
    return ResolutionResult(
        original_text=text,
        translated_text=text,
        source=ResolutionSource.FAILED,
        candidates=[best_guess] if best_guess else [],
        best_guess=best_guess,
    )


def build_identification_factory(
    identifier: CardIdentifier | None = None,
    translator: LiteralTranslator | None = None,
) -> Callable[[AsyncSession], IdentificationService]:
    """
    Factory creating one IdentificationService per session.

    The identifier and translator are shared so their clients and tokens are reused.
    """
    shared_identifier = identifier or CardIdentifier()
    shared_translator = translator or LiteralTranslator.from_settings()

    def factory(session: AsyncSession) -> IdentificationService:
        try:
            catalog = get_card_catalog()
        except FileNotFoundError as e:
            raise ServiceNotConfiguredError("Card catalog", "CARD_CATALOG_PATH") from e
        return IdentificationService(session, catalog, shared_identifier, shared_translator)

    return factory
