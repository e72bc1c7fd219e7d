"""
Scan Models.

A RawScan is what the capture layer hands us; ExtractedFields is what the
field extractor recovers from its text.

INVARIANTS:
- ExtractedFields.confidence is only ever set by the confidence formula
- Extraction results are plain data, safe to serialize with dataclasses.asdict
"""

from dataclasses import dataclass, field
from enum import Enum


class Game(str, Enum):
    """Supported trading card games."""

    POKEMON = "pokemon"
    MTG = "mtg"


@dataclass(frozen=True, slots=True)
class RawScan:
    """
    Input from the capture layer.

    Attributes:
        image: Encoded image bytes (optional)
        text: OCR text of the card (optional)
        game: Which game the card belongs to
        language: Declared or observed language ("Japanese", "English", ...)
    """

    game: Game
    image: bytes | None = None
    text: str | None = None
    language: str = "English"


@dataclass(frozen=True, slots=True)
class ImageAnalysis:
    """Client-side image analysis results attached to a scan."""

    is_foil_detected: bool = False
    foil_confidence: float = 0.0
    suggested_condition: str = ""
    edge_whitening_score: float = 0.0
    corner_scores: dict[str, float] = field(default_factory=dict)


@dataclass
class ExtractedFields:
    """
    Structured fields recovered from OCR text.

    Attributes:
        card_name: Best-guess card name
        card_number: Collector number without leading zeros, or a gallery
            number such as "TG17"
        set_total: Set size as printed after the slash ("185", "091")
        set_code: Lower-case code for pokemon ("swsh4"), printed code for mtg
        set_name: Set name the code was inferred from, if any
        hp: Hit points as printed, only when 10 <= HP <= 400
        rarity: Most specific rarity phrase found
        is_foil: Whether any foil signal was detected
        foil_indicators: Human-readable reasons for is_foil
        condition_hints: Grading or damage hints found in the text
        set_candidates: Sets an ambiguous set total could belong to
        confidence: Coverage score in [0, 1]
    """

    raw_text: str = ""
    all_lines: list[str] = field(default_factory=list)
    card_name: str = ""
    card_number: str = ""
    set_total: str = ""
    set_code: str = ""
    set_name: str = ""
    hp: str = ""
    rarity: str = ""
    is_foil: bool = False
    foil_indicators: list[str] = field(default_factory=list)
    condition_hints: list[str] = field(default_factory=list)
    set_candidates: list[str] = field(default_factory=list)
    suggested_condition: str = ""
    edge_whitening_score: float = 0.0
    corner_scores: dict[str, float] = field(default_factory=dict)
    foil_confidence: float = 0.0
    confidence: float = 0.0
