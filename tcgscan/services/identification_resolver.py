"""
Identification resolver: the translation fallback chain.

Turns foreign-language OCR text into an English identification, trying
the cheapest source first:

    skipped   prior OCR confidence is already good enough, or not Japanese
    static    the static dictionary recognized a name
    cache     normalized text was resolved before
    primary   the AI identifier is confident (>= MIN_PRIMARY_CONFIDENCE)
    fallback  literal machine translation
    failed    nothing worked; IdentificationFailedError carries the partial result

INVARIANTS:
- Every step short-circuits the ones after it
- primary results are cached with a TTL, fallback results without one
- An unavailable collaborator (no credentials, budget exhausted, upstream
  error) moves the chain on to the next step instead of failing it
"""

import logging

from tcgscan.config import (
    LITERAL_CANDIDATE_CONFIDENCE,
    MIN_PRIMARY_CONFIDENCE,
    settings,
)
from tcgscan.models.failure import KnownError, ServiceNotConfiguredError
from tcgscan.models.identification import (
    IdentificationCandidate,
    IdentificationFailedError,
    ResolutionResult,
    ResolutionSource,
)
from tcgscan.services.card_identifier import (
    DEFAULT_MIME_TYPE,
    CardIdentifier,
    IdentifierError,
    PrimaryIdentification,
)
from tcgscan.services.literal_translator import LiteralTranslator, TranslationError
from tcgscan.services.static_dictionary import translate_with_static_map
from tcgscan.services.translation_cache import TranslationCacheService, truncate_text

logger = logging.getLogger(__name__)

LITERAL_REASONING = "literal translation"


class IdentificationResolver:
    """
    Fallback chain over the static map, cache, AI identifier and literal translator.

    Any collaborator may be None; its step is then skipped.
    """

    def __init__(
        self,
        cache: TranslationCacheService | None = None,
        identifier: CardIdentifier | None = None,
        translator: LiteralTranslator | None = None,
        threshold: int | None = None,
        target_language: str | None = None,
        fallback_enabled: bool = True,
    ):
        self.cache = cache
        self.identifier = identifier
        self.translator = translator
        if threshold is None:
            threshold = settings.translation_confidence_threshold
        self.threshold = threshold
        self.target_language = target_language or settings.translation_target_language
        self.fallback_enabled = fallback_enabled

    def should_skip(self, declared_language: str, prior_confidence: int) -> bool:
        return prior_confidence >= self.threshold or declared_language != self.target_language

    async def resolve(
        self, text: str, declared_language: str, prior_confidence: int
    ) -> ResolutionResult:
        """
        Resolve OCR text to an English identification.

        Args:
            text: OCR text of the card
            declared_language: Language the caller believes the card is in
            prior_confidence: Upstream OCR confidence on a 0-1000 scale

        Raises:
            IdentificationFailedError: If every step failed
        """
        if self.should_skip(declared_language, prior_confidence):
            return ResolutionResult(
                original_text=text, translated_text=text, source=ResolutionSource.SKIPPED
            )

        static = translate_with_static_map(text)
        if static != text:
            logger.info("RESOLVED_STATIC", extra={"text": truncate_text(text)})
            if self.cache is not None:
                await self.cache.set(text, static, ResolutionSource.STATIC)
            return ResolutionResult(
                original_text=text, translated_text=static, source=ResolutionSource.STATIC
            )

        if self.cache is not None:
            cached, hit = await self.cache.get(text)
            if hit:
                logger.info("RESOLVED_CACHE", extra={"text": truncate_text(text)})
                return ResolutionResult(
                    original_text=text, translated_text=cached, source=ResolutionSource.CACHE
                )

        candidates = await self._primary_candidates(text, declared_language)
        best = candidates[0] if candidates else None
        if best is not None and best.confidence >= MIN_PRIMARY_CONFIDENCE:
            translated = best.full_name()
            if self.cache is not None:
                await self.cache.set(text, translated, ResolutionSource.PRIMARY)
            logger.info(
                "RESOLVED_PRIMARY",
                extra={"card_name": translated, "confidence": best.confidence},
            )
            return ResolutionResult(
                original_text=text,
                translated_text=translated,
                source=ResolutionSource.PRIMARY,
                candidates=candidates,
                best_guess=best,
            )

        literal = await self._literal_translation(text)
        if literal:
            if self.cache is not None:
                await self.cache.set(text, literal, ResolutionSource.FALLBACK)
            if candidates:
                candidates.append(
                    IdentificationCandidate(
                        card_name=literal,
                        confidence=LITERAL_CANDIDATE_CONFIDENCE,
                        reasoning=LITERAL_REASONING,
                        raw_text=text,
                    )
                )
            logger.info("RESOLVED_FALLBACK", extra={"text": truncate_text(text)})
            return ResolutionResult(
                original_text=text,
                translated_text=literal,
                source=ResolutionSource.FALLBACK,
                candidates=candidates,
                best_guess=best,
            )

        logger.warning("RESOLUTION_FAILED", extra={"text": truncate_text(text)})
        raise IdentificationFailedError(
            ResolutionResult(
                original_text=text,
                translated_text=text,
                source=ResolutionSource.FAILED,
                candidates=candidates,
                best_guess=best,
            )
        )

    async def resolve_image(
        self, image: bytes, mime_type: str = DEFAULT_MIME_TYPE
    ) -> PrimaryIdentification:
        """
        Identify a card from its photo through the primary identifier.

        Image results are not cached: two photos of one card never share a key.

        Raises:
            ServiceNotConfiguredError: If no primary identifier is configured
            IdentifierError: If the identifier call fails
        """
        if self.identifier is None or not self.identifier.is_enabled:
            raise ServiceNotConfiguredError("Card identification", "ANTHROPIC_API_KEY")
        return await self.identifier.identify_image(image, mime_type)

    async def _primary_candidates(
        self, text: str, declared_language: str
    ) -> list[IdentificationCandidate]:
        if self.identifier is None or not self.identifier.is_enabled:
            return []
        try:
            identification = await self.identifier.identify_text(text, declared_language)
        except (IdentifierError, KnownError) as e:
            logger.warning("PRIMARY_IDENTIFIER_UNAVAILABLE", extra={"error": str(e)})
            return []
        return list(identification.candidates)

    async def _literal_translation(self, text: str) -> str:
        if not self.fallback_enabled or self.translator is None or not self.translator.is_enabled:
            return ""
        try:
            return await self.translator.translate(text)
        except TranslationError as e:
            logger.warning("LITERAL_TRANSLATION_FAILED", extra={"error": str(e)})
            return ""
