"""
Field extractor for OCR text of a scanned card.

Turns noisy OCR output into structured fields (name, collector number,
set, HP, rarity, foil and condition hints) plus a coverage confidence.

Pokemon collector numbers look like:
    025/185        -> number "25", set total "185"
    TG17/TG30      -> number "TG17" (Trainer Gallery)
    GG01/GG70      -> number "GG01" (Galarian Gallery)

MTG collector numbers sit on their own line ("123/456") so that
power/toughness ("4/5") is not mistaken for one.

INVARIANTS:
- extract_fields is pure and never raises for any string input
- Input longer than MAX_OCR_TEXT_LENGTH is truncated first
- confidence = 0.4*name + 0.3*number + 0.2*(set total or set code) + 0.1*HP
- HP is only populated when 10 <= HP <= 400
"""

import re

from tcgscan.config import MAX_OCR_TEXT_LENGTH
from tcgscan.models.scan import ExtractedFields, Game, ImageAnalysis
from tcgscan.parsers.set_tables import POKEMON_SET_CODE_PATTERN, POKEMON_SET_NAMES, sets_for_total
from tcgscan.parsers.vocabulary import (
    DAMAGE_HINTS,
    GRADE_PATTERN,
    GRADING_HINTS,
    KNOWN_POKEMON_NAMES,
    MTG_FOIL_TRIGGERS,
    MTG_NON_NAME_FRAGMENTS,
    MTG_SET_CODE_FALSE_POSITIVES,
    POKEMON_BOILERPLATE,
    POKEMON_FOIL_TRIGGERS,
    POKEMON_RARITIES,
    POKEMON_RARITY_WORDS,
    POKEMON_SPECIAL_TYPE_HINT,
    POKEMON_SPECIAL_TYPE_PATTERN,
    RARITY_SYMBOLS,
)

# Confidence weights
NAME_WEIGHT = 0.4
NUMBER_WEIGHT = 0.3
SET_WEIGHT = 0.2
HP_WEIGHT = 0.1

MIN_HP = 10
MAX_HP = 400

# Image analysis at or above this foil confidence overrides the text signal
IMAGE_FOIL_OVERRIDE_CONFIDENCE = 0.7

# =============================================================================
# PATTERNS
# =============================================================================

POKEMON_NUMBER_PATTERN = re.compile(r"(?:^|\s)(\d{1,3})\s*/\s*(\d{1,3})(?:\s|$|[^0-9])", re.ASCII)
TRAINER_GALLERY_PATTERN = re.compile(r"TG(\d+)\s*/\s*TG(\d+)", re.ASCII)
GALARIAN_GALLERY_PATTERN = re.compile(r"GG(\d+)\s*/\s*GG(\d+)", re.ASCII)

# Tried in order; each accepted only if the value is a plausible HP
HP_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"HP\s*(\d{2,3})", re.IGNORECASE | re.ASCII),  # "HP 170"
    re.compile(r"(\d{2,3})\s*HP", re.IGNORECASE | re.ASCII),  # "170 HP"
    re.compile(r"[HhWw]\s*(\d{2,3})", re.ASCII),  # "w 130", H misread
    re.compile(r"4P\s*(\d{2,3})", re.IGNORECASE | re.ASCII),  # "4P 60", HP misread
    re.compile(r"[A-Z](\d{2,3})\s*[&@©]", re.ASCII),  # "D170 @"
)

POKEMON_SET_CODE_RE = re.compile(POKEMON_SET_CODE_PATTERN, re.ASCII)
POKEMON_SPECIAL_TYPE_RE = re.compile(POKEMON_SPECIAL_TYPE_PATTERN, re.ASCII)
GRADE_RE = re.compile(GRADE_PATTERN, re.ASCII)

MTG_COLLECTOR_LINE_PATTERN = re.compile(
    r"(?:^|\n)\s*(\d{1,4})\s*/\s*(\d{2,4})\s*(?:\n|$)", re.ASCII
)
MTG_COLLECTOR_ANY_PATTERN = re.compile(r"(\d{1,4})\s*/\s*(\d{2,4})", re.ASCII)
MTG_SET_CODE_PATTERN = re.compile(r"\b([A-Z0-9][A-Z0-9]{2,3})\b", re.ASCII)
MTG_MANA_OR_NUMBER_LINE = re.compile(r"\{[WUBRG]\}|^[\d\s]+$")

NUMBERS_ONLY_LINE = re.compile(r"^[\d\s/]+$")
NAME_SPECIAL_CHAR = re.compile(r"[^a-zA-Z0-9\s'-]")
THREE_LETTERS = re.compile(r"[a-zA-Z]{3,}")
HP_PREFIX_NOISE = re.compile(r"\s*HP\s*\d+")
HP_SUFFIX_NOISE = re.compile(r"\s*\d{2,3}\s*HP")
LEADING_NON_LETTERS = re.compile(r"^[^a-zA-Z]*")
WHITESPACE_RUN = re.compile(r"\s+")

MAX_NAME_SPECIAL_CHARS = 3
RARITY_LINE_MAX_LENGTH = 20


# =============================================================================
# ENTRY POINT
# =============================================================================


def extract_fields(
    text: str | None,
    game: Game | str,
    image_analysis: ImageAnalysis | None = None,
) -> ExtractedFields:
    """
    Extract structured card fields from OCR text.

    Args:
        text: OCR output, possibly empty or very noisy
        game: Which game's rules to apply; anything but pokemon uses MTG rules
        image_analysis: Optional client-side image analysis to merge in

    Returns:
        ExtractedFields with every field found and a coverage confidence.
        Empty or unparseable input yields empty fields and confidence 0.
    """
    raw = (text or "")[:MAX_OCR_TEXT_LENGTH]
    fields = ExtractedFields(raw_text=raw)
    fields.all_lines = [line.strip() for line in raw.split("\n") if line.strip()]

    if game == Game.POKEMON or game == Game.POKEMON.value:
        _parse_pokemon(fields)
    else:
        _parse_mtg(fields)

    if image_analysis is not None:
        apply_image_analysis(fields, image_analysis)

    fields.confidence = calculate_confidence(fields)
    return fields


def calculate_confidence(fields: ExtractedFields) -> float:
    """Coverage score: which of name, number, set and HP were found."""
    score = 0.0
    if fields.card_name:
        score += NAME_WEIGHT
    if fields.card_number:
        score += NUMBER_WEIGHT
    if fields.set_total or fields.set_code:
        score += SET_WEIGHT
    if fields.hp:
        score += HP_WEIGHT
    return min(1.0, round(score, 2))


def apply_image_analysis(fields: ExtractedFields, analysis: ImageAnalysis) -> None:
    """
    Merge client-side image analysis into extracted fields.

    A confident image verdict replaces the text foil signal; a weak positive
    verdict can only add a foil signal, never remove one.
    """
    fields.suggested_condition = analysis.suggested_condition
    fields.edge_whitening_score = analysis.edge_whitening_score
    fields.corner_scores = dict(analysis.corner_scores)
    fields.foil_confidence = analysis.foil_confidence

    if analysis.foil_confidence >= IMAGE_FOIL_OVERRIDE_CONFIDENCE:
        fields.is_foil = analysis.is_foil_detected
        if analysis.is_foil_detected:
            fields.foil_indicators.append("Image analysis detected foil")
    elif analysis.is_foil_detected and not fields.is_foil:
        fields.is_foil = True
        fields.foil_indicators.append("Image analysis suggests foil (low confidence)")


def normalize_ocr_digits(text: str) -> str:
    """Replace letters OCR commonly confuses with digits (O/o -> 0, l -> 1)."""
    return text.replace("O", "0").replace("o", "0").replace("l", "1")


def strip_leading_zeros(number: str) -> str:
    return number.lstrip("0") or "0"


# =============================================================================
# POKEMON
# =============================================================================


def _parse_pokemon(fields: ExtractedFields) -> None:
    text = fields.raw_text
    upper = text.upper()

    match = POKEMON_NUMBER_PATTERN.search(normalize_ocr_digits(text))
    if match:
        fields.card_number = strip_leading_zeros(match.group(1))
        fields.set_total = match.group(2)

    # Gallery numbering overrides the plain number
    for prefix, pattern in (("TG", TRAINER_GALLERY_PATTERN), ("GG", GALARIAN_GALLERY_PATTERN)):
        gallery = pattern.search(text)
        if gallery:
            fields.card_number = prefix + gallery.group(1)

    fields.hp = _extract_hp(text)

    _detect_pokemon_set(fields, upper)
    _detect_pokemon_foil(fields, upper)
    fields.rarity = _detect_pokemon_rarity(upper)
    fields.condition_hints = detect_condition_hints(upper)
    fields.card_name = extract_pokemon_name(fields.all_lines, fields.rarity)


def _extract_hp(text: str) -> str:
    for pattern in HP_PATTERNS:
        match = pattern.search(text)
        if match and MIN_HP <= int(match.group(1)) <= MAX_HP:
            return match.group(1)
    return ""


def _detect_pokemon_set(fields: ExtractedFields, upper: str) -> None:
    """Printed code, then set name, then an unambiguous set total."""
    code = POKEMON_SET_CODE_RE.search(upper)
    if code:
        fields.set_code = code.group(0).lower()
        return

    name_rule = POKEMON_SET_NAMES.winner(upper)
    if name_rule is not None:
        fields.set_code = name_rule.result
        fields.set_name = name_rule.pattern
        return

    if not fields.set_total:
        return
    possible = sets_for_total(fields.set_total)
    if len(possible) == 1:
        fields.set_code = possible[0]
    elif len(possible) > 1:
        fields.set_candidates = list(possible)


def _detect_pokemon_foil(fields: ExtractedFields, upper: str) -> None:
    hints = POKEMON_FOIL_TRIGGERS.match_all(upper)
    if POKEMON_SPECIAL_TYPE_RE.search(upper):
        hints.append(POKEMON_SPECIAL_TYPE_HINT)
    if hints:
        fields.is_foil = True
        fields.foil_indicators.extend(hints)


def _detect_pokemon_rarity(upper: str) -> str:
    return POKEMON_RARITIES.match(upper) or RARITY_SYMBOLS.match(upper) or ""


def extract_pokemon_name(lines: list[str], rarity: str = "") -> str:
    """
    Pick the card name from OCR lines.

    Order of preference: a line containing a well-known Pokemon name, the
    first line that is not rules text or a rarity label, the first line with
    three consecutive letters.
    """
    full_text = " ".join(lines).lower()
    for known in KNOWN_POKEMON_NAMES:
        if known not in full_text:
            continue
        for line in lines:
            if known in line.lower():
                name = clean_pokemon_name(line, known)
                if name:
                    return name

    for line in lines:
        lower = line.lower()
        if len(line) < 3 or NUMBERS_ONLY_LINE.match(line):
            continue
        if any(fragment in lower for fragment in POKEMON_BOILERPLATE):
            continue
        if len(line) < RARITY_LINE_MAX_LENGTH and any(
            word in lower for word in POKEMON_RARITY_WORDS
        ):
            continue
        if len(NAME_SPECIAL_CHAR.findall(line)) > MAX_NAME_SPECIAL_CHARS:
            continue

        name = clean_pokemon_name(line)
        if len(name) >= 3:
            return name

    for line in lines:
        if THREE_LETTERS.search(line):
            return clean_pokemon_name(line)

    return ""


def clean_pokemon_name(line: str, known_name: str = "") -> str:
    """
    Remove OCR noise around a Pokemon name.

    With a known name, keep only that name and its printed suffix; "ex"
    stays lower-case (modern ex cards), other suffixes are upper-cased.
    """
    name = HP_PREFIX_NOISE.sub("", line)
    name = HP_SUFFIX_NOISE.sub("", name)
    name = LEADING_NON_LETTERS.sub("", name)

    if known_name:
        pattern = re.compile(
            "(" + re.escape(known_name) + r")\s*(VMAX|VSTAR|MEGA|PRIME|GX|EX|ex|V)?",
            re.IGNORECASE,
        )
        match = pattern.search(name)
        if match:
            result = match.group(1)
            suffix = match.group(2)
            if suffix:
                result += " ex" if suffix.lower() == "ex" else " " + suffix.upper()
            return result[:1].upper() + result[1:]

    name = NAME_SPECIAL_CHAR.sub("", name)
    name = WHITESPACE_RUN.sub(" ", name)
    return name.strip()


# =============================================================================
# MAGIC: THE GATHERING
# =============================================================================


def _parse_mtg(fields: ExtractedFields) -> None:
    text = fields.raw_text
    upper = text.upper()

    match = MTG_COLLECTOR_LINE_PATTERN.search(text)
    if match:
        fields.card_number = match.group(1)
        fields.set_total = match.group(2)
    else:
        # Power/toughness rarely has a two-digit toughness
        for candidate in MTG_COLLECTOR_ANY_PATTERN.finditer(text):
            if len(candidate.group(2)) >= 2:
                fields.card_number = candidate.group(1)
                fields.set_total = candidate.group(2)
                break

    fields.set_code = _detect_mtg_set_code(upper)

    hints = MTG_FOIL_TRIGGERS.match_all(upper)
    if hints:
        fields.is_foil = True
        fields.foil_indicators.extend(hints)

    fields.condition_hints = detect_condition_hints(upper)
    fields.card_name = extract_mtg_name(fields.all_lines)


def _detect_mtg_set_code(upper: str) -> str:
    """Set codes sit near the bottom of the card, so the last plausible token wins."""
    candidates = [
        token
        for token in MTG_SET_CODE_PATTERN.findall(upper)
        if not token.isdigit() and token not in MTG_SET_CODE_FALSE_POSITIVES
    ]
    return candidates[-1] if candidates else ""


def extract_mtg_name(lines: list[str]) -> str:
    """First line that is not a type line, rules text or mana cost."""
    for line in lines:
        if len(line) < 2:
            continue
        lower = line.lower()
        if any(fragment in lower for fragment in MTG_NON_NAME_FRAGMENTS):
            continue
        if MTG_MANA_OR_NUMBER_LINE.search(line):
            continue
        return line.strip()

    return lines[0].strip() if lines else ""


# =============================================================================
# CONDITION
# =============================================================================


def detect_condition_hints(upper: str) -> list[str]:
    """Grading labels, grade numbers and damage words found in the text."""
    hints = GRADING_HINTS.match_all(upper)
    grade = GRADE_RE.search(upper)
    if grade:
        hints.append(f"{grade.group(1)} grade: {grade.group(2)}")
    hints.extend(DAMAGE_HINTS.match_all(upper))
    return hints
