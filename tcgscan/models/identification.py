"""
Identification Models.

Candidates proposed by the identifiers, the outcome of the resolver's
fallback chain, and catalog card records.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from tcgscan.models.failure import ApiResponse, FailureKind, KnownError


class ResolutionSource(str, Enum):
    """Which step of the fallback chain produced a translation."""

    SKIPPED = "skipped"
    STATIC = "static"
    CACHE = "cache"
    PRIMARY = "primary"
    FALLBACK = "fallback"
    FAILED = "failed"
    USER_CONFIRMED = "user_confirmed"
    UNKNOWN = "unknown"


@dataclass
class IdentificationCandidate:
    """
    A proposed card identity.

    Attributes:
        card_name: English card name
        card_type: "pokemon", "trainer", "energy" or an MTG type
        subtype: Trainer subtype (supporter, item, stadium, tool)
        form: Regional or special form prefix ("Alolan", "Galarian")
        suffix: Printed suffix ("ex", "V", "VMAX", "GX")
        set_name: Set name, when the identifier could read it
        set_code: Set code as printed on the card
        card_number: Collector number as printed on the card
        confidence: 0.0-1.0
        reasoning: Short explanation from the identifier
        raw_text: Foreign-language text the candidate was read from
    """

    card_name: str
    confidence: float
    card_type: str = ""
    subtype: str = ""
    form: str = ""
    suffix: str = ""
    set_name: str = ""
    set_code: str = ""
    card_number: str = ""
    reasoning: str = ""
    raw_text: str = ""

    def full_name(self) -> str:
        """Name including form prefix and suffix ("Alolan Raichu ex")."""
        name = self.card_name
        if self.form and not name.startswith(self.form):
            name = f"{self.form} {name}"
        if self.suffix and not name.endswith(self.suffix):
            name = f"{name} {self.suffix}"
        return name


@dataclass
class ResolutionResult:
    """Outcome of the identification resolver's fallback chain."""

    original_text: str
    translated_text: str
    source: ResolutionSource
    candidates: list[IdentificationCandidate] = field(default_factory=list)
    best_guess: IdentificationCandidate | None = None


@dataclass(frozen=True, slots=True)
class MatchSelection:
    """Outcome of a visual comparison against candidate reference images."""

    selected_id: str
    confidence: float
    reasoning: str


@dataclass(frozen=True, slots=True)
class CardRecord:
    """
    A canonical card printing from the catalog.

    Attributes:
        id: Catalog identifier (e.g. "swsh4-25")
        name: English card name
        game: "pokemon" or "mtg"
        set_code: Canonical set code
        set_name: Set display name
        card_number: Collector number
        rarity: Catalog rarity
        image_url: Reference image used for visual comparison
    """

    id: str
    name: str
    game: str
    set_code: str = ""
    set_name: str = ""
    card_number: str = ""
    rarity: str = ""
    image_url: str = ""


@dataclass
class ScanIdentification:
    """Complete identification of a scanned card, ready for an import item."""

    card_id: str
    card_name: str
    game: str
    set_code: str = ""
    set_name: str = ""
    card_number: str = ""
    confidence: float = 0.0
    reasoning: str = ""
    observed_language: str = ""
    is_foil: bool = False
    is_first_edition: bool = False
    candidates: list[CardRecord] = field(default_factory=list)


class IdentificationFailedError(KnownError):
    """
    Raised when every step of the fallback chain failed.

    Carries the partial result so callers can show the best guess.
    """

    def __init__(self, result: ResolutionResult, reason: str = "all identification steps failed"):
        self.result = result
        super().__init__(
            kind=FailureKind.NO_MATCH,
            message="Could not identify the card.",
            detail=reason,
            suggestion="Retake the photo or search for the card manually.",
            status_code=502,
        )

    def to_response(self) -> ApiResponse[Any]:
        """Known failure whose data is the partial resolution."""
        response = super().to_response()
        response.data = asdict(self.result)
        return response
