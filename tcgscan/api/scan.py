"""
Single-scan API endpoints.

Field extraction is free and unmetered. Resolution and identification can
reach the paid AI identifier, so they count against the caller's daily
request limit.
"""

from dataclasses import asdict
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tcgscan.api.dependencies import (
    client_ip,
    get_card_identifier,
    get_catalog,
    get_literal_translator,
)
from tcgscan.api.imports import CardResponse, card_to_response
from tcgscan.config import MAX_OCR_TEXT_LENGTH
from tcgscan.db.database import get_session
from tcgscan.models.failure import ExternalServiceError
from tcgscan.models.identification import IdentificationCandidate, ResolutionResult
from tcgscan.models.scan import Game, ImageAnalysis
from tcgscan.parsers.ocr_fields import extract_fields
from tcgscan.services.card_catalog import CardCatalog
from tcgscan.services.card_identifier import CardIdentifier, IdentifierError
from tcgscan.services.cost_controls import enforce_request_limits
from tcgscan.services.identification_resolver import IdentificationResolver
from tcgscan.services.identification_service import IdentificationService
from tcgscan.services.image_storage import validate_image
from tcgscan.services.literal_translator import LiteralTranslator
from tcgscan.services.translation_cache import TranslationCacheService

router = APIRouter(prefix="/scan", tags=["scan"])


class ImageAnalysisRequest(BaseModel):
    """Image analysis computed on the capturing device."""

    is_foil_detected: bool = False
    foil_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    suggested_condition: str = ""
    edge_whitening_score: float = Field(default=0.0, ge=0.0, le=1.0)
    corner_scores: dict[str, float] = Field(default_factory=dict)


class ExtractRequest(BaseModel):
    text: str = Field(..., max_length=MAX_OCR_TEXT_LENGTH * 2)
    game: Game = Game.POKEMON
    image_analysis: ImageAnalysisRequest | None = None


class ResolveRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_OCR_TEXT_LENGTH)
    language: str = Field(..., examples=["Japanese"])
    prior_confidence: int = Field(
        default=0, ge=0, le=1000, description="Upstream match confidence, 0-1000"
    )


class CandidateResponse(BaseModel):
    card_name: str
    confidence: float
    card_type: str = ""
    subtype: str = ""
    set_name: str = ""
    set_code: str = ""
    card_number: str = ""
    reasoning: str = ""


class ResolveResponse(BaseModel):
    original_text: str
    translated_text: str
    source: str
    candidates: list[CandidateResponse] = Field(default_factory=list)
    best_guess: CandidateResponse | None = None


class IdentifyResponse(BaseModel):
    card_id: str
    card_name: str
    game: str
    set_code: str = ""
    set_name: str = ""
    card_number: str = ""
    confidence: float
    reasoning: str = ""
    observed_language: str = ""
    is_foil: bool = False
    is_first_edition: bool = False
    candidates: list[CardResponse] = Field(default_factory=list)


def _candidate_response(candidate: IdentificationCandidate) -> CandidateResponse:
    return CandidateResponse(
        card_name=candidate.full_name(),
        confidence=candidate.confidence,
        card_type=candidate.card_type,
        subtype=candidate.subtype,
        set_name=candidate.set_name,
        set_code=candidate.set_code,
        card_number=candidate.card_number,
        reasoning=candidate.reasoning,
    )


def resolution_to_response(result: ResolutionResult) -> ResolveResponse:
    return ResolveResponse(
        original_text=result.original_text,
        translated_text=result.translated_text,
        source=result.source.value,
        candidates=[_candidate_response(c) for c in result.candidates],
        best_guess=_candidate_response(result.best_guess) if result.best_guess else None,
    )


@router.post("/extract")
async def extract(request: ExtractRequest) -> dict[str, Any]:
    """Extract structured fields from OCR text. Deterministic, no external calls."""
    analysis = None
    if request.image_analysis is not None:
        analysis = ImageAnalysis(**request.image_analysis.model_dump())
    fields = extract_fields(request.text, request.game, analysis)
    return asdict(fields)


@router.post("/resolve", response_model=ResolveResponse)
async def resolve(
    request: ResolveRequest,
    http_request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    identifier: Annotated[CardIdentifier, Depends(get_card_identifier)],
    translator: Annotated[LiteralTranslator, Depends(get_literal_translator)],
) -> ResolveResponse:
    """
    Resolve foreign-language OCR text to an English name.

    Fails with 502 and the best partial result when every step failed.
    """
    enforce_request_limits(client_ip(http_request))
    resolver = IdentificationResolver(
        cache=TranslationCacheService(session), identifier=identifier, translator=translator
    )
    result = await resolver.resolve(request.text, request.language, request.prior_confidence)
    return resolution_to_response(result)


@router.post("/identify", response_model=IdentifyResponse)
async def identify(
    http_request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    catalog: Annotated[CardCatalog, Depends(get_catalog)],
    identifier: Annotated[CardIdentifier, Depends(get_card_identifier)],
    translator: Annotated[LiteralTranslator, Depends(get_literal_translator)],
    image: Annotated[UploadFile | None, File(description="Card photo")] = None,
    text: Annotated[str | None, Form(max_length=MAX_OCR_TEXT_LENGTH)] = None,
    language: Annotated[str, Form()] = "",
    game: Annotated[Game | None, Form()] = None,
) -> IdentifyResponse:
    """Identify one card from a photo, its OCR text, or both."""
    if image is None and not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide an image, OCR text, or both",
        )

    enforce_request_limits(client_ip(http_request))

    data: bytes | None = None
    mime_type = "image/jpeg"
    if image is not None:
        data = await image.read()
        mime_type = validate_image(data, image.filename or "image")

    service = IdentificationService(session, catalog, identifier, translator)
    try:
        result = await service.identify_scan(data, mime_type, text, language, game)
    except IdentifierError as e:
        raise ExternalServiceError("Card identification", str(e)) from e
    return IdentifyResponse(
        card_id=result.card_id,
        card_name=result.card_name,
        game=result.game,
        set_code=result.set_code,
        set_name=result.set_name,
        card_number=result.card_number,
        confidence=result.confidence,
        reasoning=result.reasoning,
        observed_language=result.observed_language,
        is_foil=result.is_foil,
        is_first_edition=result.is_first_edition,
        candidates=[card_to_response(card) for card in result.candidates],
    )
