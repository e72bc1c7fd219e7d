"""
Card text vocabularies used by the field extractor.

All literal patterns are upper-case and matched against upper-cased text
unless noted otherwise.
"""

from tcgscan.parsers.rules import RuleTable, literal_table

# =============================================================================
# POKEMON
# =============================================================================

POKEMON_FOIL_TRIGGERS: RuleTable[str] = literal_table(
    "pokemon_foil_triggers",
    1,
    [
        ("HOLO", "Holographic text detected"),
        ("HOLOFOIL", "Holofoil text detected"),
        ("REVERSE HOLO", "Reverse holo text detected"),
        ("REVERSE", "Reverse holo indicator"),
        ("SHINY", "Shiny variant text"),
        ("GOLD", "Gold card indicator"),
        ("RAINBOW", "Rainbow rare indicator"),
        ("FULL ART", "Full art card"),
        ("ALT ART", "Alternate art card"),
        ("ALTERNATE ART", "Alternate art card"),
        ("SECRET", "Secret rare indicator"),
        ("ILLUSTRATION", "Special illustration rare"),
        ("SPECIAL ART", "Special art rare"),
        ("CROWN ZENITH", "Crown Zenith (often special)"),
    ],
)

# Suffix tokens of card types that are almost always holographic
POKEMON_SPECIAL_TYPE_PATTERN = r"\b(VMAX|VSTAR|V|GX|EX|MEGA|PRIME|LV\.?\s*X)\b"
POKEMON_SPECIAL_TYPE_HINT = "Special card type (typically holographic)"

# Most specific first: "SPECIAL ART RARE" must win over "RARE"
POKEMON_RARITIES: RuleTable[str] = literal_table(
    "pokemon_rarities",
    1,
    [
        ("ILLUSTRATION RARE", "Illustration Rare"),
        ("SPECIAL ART RARE", "Special Art Rare"),
        ("SECRET RARE", "Secret Rare"),
        ("DOUBLE RARE", "Double Rare"),
        ("HYPER RARE", "Hyper Rare"),
        ("ULTRA RARE", "Ultra Rare"),
        ("RARE HOLO", "Rare Holo"),
        ("UNCOMMON", "Uncommon"),
        ("COMMON", "Common"),
        ("PROMO", "Promo"),
        ("RARE", "Rare"),
    ],
)

RARITY_SYMBOLS: RuleTable[str] = literal_table(
    "rarity_symbols",
    1,
    [
        ("★", "Rare"),
        ("☆", "Rare"),
        ("◆", "Uncommon"),
        ("◇", "Uncommon"),
        ("●", "Common"),
    ],
)

# Names that survive heavy OCR noise; matched lower-case, in this order
KNOWN_POKEMON_NAMES: tuple[str, ...] = (
    "pikachu",
    "charizard",
    "mewtwo",
    "mew",
    "blastoise",
    "venusaur",
    "umbreon",
    "espeon",
    "eevee",
    "gengar",
    "dragonite",
    "gyarados",
    "rayquaza",
    "arceus",
    "giratina",
    "dialga",
    "palkia",
    "lugia",
    "ho-oh",
    "celebi",
    "jirachi",
    "deoxys",
    "darkrai",
    "shaymin",
    "snorlax",
    "machamp",
    "alakazam",
    "golem",
    "arcanine",
    "lapras",
)

# Lower-case fragments of lines that are never the card name
POKEMON_BOILERPLATE: tuple[str, ...] = (
    "basic",
    "stage",
    "pokemon",
    "trainer",
    "energy",
    "once during",
    "when you",
    "attack",
    "weakness",
    "resistance",
    "retreat",
    "illus",
    "©",
    "nintendo",
    "evolves from",
    "rule",
    "prize",
    "knocked out",
    "discard",
    "damage",
    "opponent",
    "your turn",
)

# Lower-case fragments that mark a short line as a rarity label
POKEMON_RARITY_WORDS: tuple[str, ...] = (
    "holo",
    "rare",
    "uncommon",
    "common",
    "promo",
    "gold",
    "rainbow",
    "secret",
    "full art",
    "reverse",
    "illustration",
    "special art",
    "ultra",
    "hyper",
    "double",
)

# =============================================================================
# MAGIC: THE GATHERING
# =============================================================================

MTG_FOIL_TRIGGERS: RuleTable[str] = literal_table(
    "mtg_foil_triggers",
    1,
    [
        ("FOIL", "FOIL card variant"),
        ("ETCHED", "ETCHED card variant"),
        ("SURGE", "SURGE card variant"),
        ("SHOWCASE", "SHOWCASE card variant"),
        ("BORDERLESS", "BORDERLESS card variant"),
        ("EXTENDED ART", "EXTENDED ART card variant"),
    ],
)

# Upper-case tokens that look like set codes but are words or artist names.
# ONE is deliberately absent: it is a real set (Phyrexia: All Will Be One).
MTG_SET_CODE_FALSE_POSITIVES: frozenset[str] = frozenset(
    {
        # Common English words
        "THE", "AND", "FOR", "YOU", "ARE", "WAS", "HAS", "HAD", "NOT", "ALL",
        "CAN", "HER", "HIS", "BUT", "ITS", "OUT", "GET", "HIM", "PUT", "END",
        "ADD", "TAP", "MAY", "TWO", "USE", "ANY", "OWN", "WAY", "NEW",
        # Card words
        "FOIL", "BOLT", "RING", "VEIL", "SIX", "SOL", "ART", "DEAL", "CARD",
        "DRAW", "EACH", "FROM", "INTO", "ONTO", "THAT", "THIS", "WITH", "YOUR",
        # Foil markers
        "ETCHED", "SURGE",
        # Rules text
        "THEN", "WHEN", "LIFE", "LOSE", "GAIN", "DIES", "TURN", "COPY", "COST",
        "MANA", "STEP", "NEXT", "MILL", "CAST", "PLAY",
        # Artist name fragments
        "RAHN", "JOHN", "MARK", "ADAM", "CARL", "ERIC", "GREG", "IVAN", "JACK",
        "KARL", "LARS", "MIKE", "NICK", "NOAH", "PAUL", "RYAN", "SEAN", "TODD",
        "TONY", "ZACK",
        # Illustrator credit
        "ILLUS", "ILLU",
    }
)  # fmt: skip

# Lower-case fragments of type lines and rules text
MTG_NON_NAME_FRAGMENTS: tuple[str, ...] = (
    "creature",
    "instant",
    "sorcery",
    "enchantment",
    "artifact",
    "legendary",
    "flying",
    "trample",
    "when",
    "©",
    "wizards",
)

# =============================================================================
# CONDITION (both games)
# =============================================================================

GRADING_HINTS: RuleTable[str] = literal_table(
    "grading_hints",
    1,
    [
        ("PSA", "PSA graded card"),
        ("BGS", "Beckett graded card"),
        ("CGC", "CGC graded card"),
        ("SGC", "SGC graded card"),
        ("MINT", "Mint condition indicator"),
        ("NEAR MINT", "Near Mint condition"),
        ("NM", "Near Mint abbreviation"),
        ("GEM MINT", "Gem Mint condition"),
        ("PRISTINE", "Pristine condition"),
    ],
)

GRADE_PATTERN = r"(PSA|BGS|CGC|SGC)\s*(\d+\.?\d?)"

DAMAGE_HINTS: RuleTable[str] = literal_table(
    "damage_hints",
    1,
    [
        ("DAMAGED", "Damaged condition"),
        ("PLAYED", "Played condition"),
        ("CREASED", "Card has crease"),
        ("SCRATCHED", "Card has scratches"),
        ("WORN", "Card shows wear"),
    ],
)
