"""
Primary AI card identifier.

Uses Claude to identify a card from OCR text or a photo, and to pick the
right printing among catalog candidates by comparing images.

Structured output is forced through a tool whose input schema is the
pydantic model below; responses that do not validate are rejected, never
guessed at.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Any

import anthropic
import httpx
from anthropic.types import MessageParam, ToolParam, ToolUseBlock
from pydantic import BaseModel, Field, ValidationError

from tcgscan.config import MAX_CANDIDATE_IMAGE_BYTES, MAX_VISUAL_CANDIDATES, settings
from tcgscan.models.failure import ServiceNotConfiguredError
from tcgscan.models.identification import CardRecord, IdentificationCandidate, MatchSelection
from tcgscan.services.cost_controls import enforce_llm_budget, get_usage_tracker

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"
IMAGE_FETCH_TIMEOUT_SECONDS = 10.0
MAX_RESPONSE_TOKENS = 1024

IDENTIFY_TOOL_NAME = "record_card_identification"
MATCH_TOOL_NAME = "record_match_selection"


class IdentifierError(Exception):
    """The identifier could not produce a result."""


class IdentifierResponseError(IdentifierError):
    """The identifier answered, but not in the required schema."""


class ImageFetchError(Exception):
    """No candidate reference image could be fetched."""


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================


class CardGuess(BaseModel):
    """One card identity proposed by the model."""

    card_name: str = Field(..., min_length=1, description="English card name")
    confidence: float = Field(..., ge=0.0, le=1.0)
    card_type: str = Field(default="", description="pokemon, trainer, energy, or MTG type")
    subtype: str = Field(default="", description="Trainer subtype: supporter, item, stadium, tool")
    form: str = Field(default="", description="Regional/special form, e.g. Alolan, Galarian")
    suffix: str = Field(default="", description="Printed suffix: ex, V, VMAX, VSTAR, GX")
    set_name: str = ""
    set_code: str = Field(default="", description="Set code as printed on the card")
    card_number: str = Field(default="", description="Collector number as printed")
    reasoning: str = ""
    raw_text: str = Field(default="", description="Original foreign-language name, if any")


class IdentificationPayload(CardGuess):
    """Tool input for a card identification."""

    game: str = Field(default="", description="pokemon or mtg")
    observed_language: str = Field(default="", description="Language printed on the card")
    is_foil: bool = False
    is_first_edition: bool = False
    alternatives: list[CardGuess] = Field(default_factory=list, max_length=4)


class MatchPayload(BaseModel):
    """Tool input for a visual match selection."""

    selected_id: str = Field(..., description="Id of the matching candidate, or empty")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


def _tool(name: str, description: str, schema: type[BaseModel]) -> ToolParam:
    return {
        "name": name,
        "description": description,
        "input_schema": schema.model_json_schema(),
    }


IDENTIFY_TOOL = _tool(
    IDENTIFY_TOOL_NAME,
    "Record the identified trading card.",
    IdentificationPayload,
)
MATCH_TOOL = _tool(
    MATCH_TOOL_NAME,
    "Record which candidate image shows the same card as the scan.",
    MatchPayload,
)

IDENTIFY_SYSTEM_PROMPT = """You identify trading cards (Pokemon TCG and Magic: The Gathering).

Given OCR text or a photo of one card, report its English name, type, set code
and collector number exactly as printed. Cards are often Japanese: translate the
name to the official English card name, keep the original in raw_text.

Confidence is 0-1. Use below 0.6 when you are guessing. List up to four
plausible alternatives when unsure. Always answer with the tool."""

MATCH_SYSTEM_PROMPT = """You compare a scanned trading card against reference images.

The first image is the scan. Each following image is a candidate printing,
labelled with its id. Pick the candidate that is the same printing (same art,
set symbol and collector number). Use an empty selected_id if none match.
Always answer with the tool."""


@dataclass
class PrimaryIdentification:
    """Candidates from one identifier call, best first, plus card-level observations."""

    candidates: list[IdentificationCandidate] = field(default_factory=list)
    game: str = ""
    observed_language: str = ""
    is_foil: bool = False
    is_first_edition: bool = False

    @property
    def best(self) -> IdentificationCandidate | None:
        return self.candidates[0] if self.candidates else None


def _to_candidate(guess: CardGuess) -> IdentificationCandidate:
    return IdentificationCandidate(
        card_name=guess.card_name,
        confidence=guess.confidence,
        card_type=guess.card_type,
        subtype=guess.subtype,
        form=guess.form,
        suffix=guess.suffix,
        set_name=guess.set_name,
        set_code=guess.set_code,
        card_number=guess.card_number,
        reasoning=guess.reasoning,
        raw_text=guess.raw_text,
    )


def _image_block(data: bytes, mime_type: str) -> dict[str, Any]:
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": mime_type or DEFAULT_MIME_TYPE,
            "data": base64.b64encode(data).decode("ascii"),
        },
    }


class CardIdentifier:
    """Claude-backed identifier and visual comparator."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
        http_client: httpx.AsyncClient | None = None,
        llm_enabled: bool | None = None,
    ):
        self.api_key = settings.anthropic_api_key if api_key is None else api_key
        self.model = model or settings.anthropic_model
        self.llm_enabled = settings.llm_enabled if llm_enabled is None else llm_enabled
        self._client = client
        self._http_client = http_client

    @property
    def is_enabled(self) -> bool:
        return self._client is not None or bool(self.api_key)

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ServiceNotConfiguredError("Card identification", "ANTHROPIC_API_KEY")
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def _call_tool(
        self,
        system: str,
        content: list[dict[str, Any]],
        tool: ToolParam,
    ) -> dict[str, Any]:
        """Run one forced-tool request and return the tool input."""
        enforce_llm_budget(self.llm_enabled)
        client = self._get_client()
        message: MessageParam = {"role": "user", "content": content}  # type: ignore[typeddict-item]
        messages = [message]

        try:
            response = await client.messages.create(
                model=self.model,
                max_tokens=MAX_RESPONSE_TOKENS,
                system=system,
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
                messages=messages,
            )
        except anthropic.APITimeoutError as e:
            raise IdentifierError(f"Identifier request timeout: {e}") from e
        except anthropic.RateLimitError as e:
            raise IdentifierError(f"Identifier rate limit reached: {e}") from e
        except anthropic.APIStatusError as e:
            raise IdentifierError(f"API returned status {e.status_code}: {e.message}") from e
        except anthropic.APIError as e:
            raise IdentifierError(f"Identifier request failed: {e}") from e

        if response.usage:
            get_usage_tracker().record_llm_call(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            )

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == tool["name"]:
                if not isinstance(block.input, dict):
                    raise IdentifierResponseError("Tool input is not an object")
                return block.input

        raise IdentifierResponseError(f"Response did not call {tool['name']}")

    async def _identify(self, content: list[dict[str, Any]]) -> PrimaryIdentification:
        raw = await self._call_tool(IDENTIFY_SYSTEM_PROMPT, content, IDENTIFY_TOOL)
        try:
            payload = IdentificationPayload.model_validate(raw)
        except ValidationError as e:
            logger.warning("IDENTIFIER_SCHEMA_REJECTED", extra={"errors": e.error_count()})
            raise IdentifierResponseError(f"Identification failed schema validation: {e}") from e

        candidates = [_to_candidate(payload)]
        candidates.extend(_to_candidate(alt) for alt in payload.alternatives)
        candidates.sort(key=lambda c: c.confidence, reverse=True)

        logger.info(
            "IDENTIFIER_RESULT",
            extra={
                "card_name": candidates[0].card_name,
                "confidence": candidates[0].confidence,
                "candidates": len(candidates),
            },
        )
        return PrimaryIdentification(
            candidates=candidates,
            game=payload.game,
            observed_language=payload.observed_language,
            is_foil=payload.is_foil,
            is_first_edition=payload.is_first_edition,
        )

    async def identify_text(self, text: str, language: str = "") -> PrimaryIdentification:
        """Identify a card from its OCR text."""
        prompt = f"OCR text of one card (declared language: {language or 'unknown'}):\n\n{text}"
        return await self._identify([{"type": "text", "text": prompt}])

    async def identify_image(
        self, image: bytes, mime_type: str = DEFAULT_MIME_TYPE
    ) -> PrimaryIdentification:
        """Identify a card from a photo."""
        return await self._identify(
            [
                _image_block(image, mime_type),
                {"type": "text", "text": "Identify this card."},
            ]
        )

    # =========================================================================
    # VISUAL COMPARISON
    # =========================================================================

    async def _fetch_image(self, client: httpx.AsyncClient, url: str) -> tuple[bytes, str]:
        """Download a reference image, refusing anything over the size cap."""
        async with client.stream("GET", url, timeout=IMAGE_FETCH_TIMEOUT_SECONDS) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length")
            if declared is not None:
                try:
                    declared_size = int(declared)
                except ValueError:
                    raise ImageFetchError(f"Invalid content-length {declared!r}: {url}") from None
                if declared_size > MAX_CANDIDATE_IMAGE_BYTES:
                    raise ImageFetchError(f"Image too large: {url}")

            chunks: list[bytes] = []
            size = 0
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if size > MAX_CANDIDATE_IMAGE_BYTES:
                    raise ImageFetchError(f"Image too large: {url}")
                chunks.append(chunk)

            mime_type = response.headers.get("content-type", "").split(";")[0].strip()
            return b"".join(chunks), mime_type or DEFAULT_MIME_TYPE

    async def _fetch_candidate_images(
        self, candidates: list[CardRecord]
    ) -> list[tuple[CardRecord, bytes, str]]:
        client = self._http_client or httpx.AsyncClient()
        fetched: list[tuple[CardRecord, bytes, str]] = []
        try:
            for candidate in candidates:
                if not candidate.image_url:
                    continue
                try:
                    data, mime_type = await self._fetch_image(client, candidate.image_url)
                except (httpx.HTTPError, ImageFetchError) as e:
                    logger.warning(
                        "CANDIDATE_IMAGE_SKIPPED",
                        extra={"card_id": candidate.id, "error": str(e)},
                    )
                    continue
                fetched.append((candidate, data, mime_type))
        finally:
            if self._http_client is None:
                await client.aclose()
        return fetched

    async def select_best_match(
        self,
        scanned_image: bytes,
        candidates: list[CardRecord],
        mime_type: str = DEFAULT_MIME_TYPE,
    ) -> MatchSelection:
        """
        Pick the candidate printing that matches the scan.

        Only the first MAX_VISUAL_CANDIDATES candidates are compared.

        Raises:
            ImageFetchError: If no candidate image could be fetched
            IdentifierResponseError: If the model selects an unknown id
        """
        fetched = await self._fetch_candidate_images(candidates[:MAX_VISUAL_CANDIDATES])
        if not fetched:
            raise ImageFetchError("No candidate images could be fetched")

        content: list[dict[str, Any]] = [
            {"type": "text", "text": "Scanned card:"},
            _image_block(scanned_image, mime_type),
        ]
        for candidate, data, candidate_mime in fetched:
            label = (
                f"Candidate {candidate.id}: {candidate.name} "
                f"({candidate.set_code} {candidate.card_number})"
            )
            content.append({"type": "text", "text": label})
            content.append(_image_block(data, candidate_mime))

        raw = await self._call_tool(MATCH_SYSTEM_PROMPT, content, MATCH_TOOL)
        try:
            payload = MatchPayload.model_validate(raw)
        except ValidationError as e:
            raise IdentifierResponseError(f"Match selection failed schema validation: {e}") from e

        known_ids = {candidate.id for candidate, _, _ in fetched}
        if payload.selected_id and payload.selected_id not in known_ids:
            raise IdentifierResponseError(f"Selected unknown candidate: {payload.selected_id}")

        logger.info(
            "VISUAL_MATCH_SELECTED",
            extra={"selected_id": payload.selected_id, "confidence": payload.confidence},
        )
        return MatchSelection(
            selected_id=payload.selected_id,
            confidence=payload.confidence,
            reasoning=payload.reasoning,
        )
