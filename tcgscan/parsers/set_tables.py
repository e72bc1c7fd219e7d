"""
Pokemon TCG set tables.

Set names and set totals as printed on cards, mapped to canonical
lower-case set codes.
"""

from tcgscan.parsers.rules import MatchPolicy, RuleTable, literal_table

# Printed set code, e.g. "SWSH4" or "SV3", matched on upper-cased text
POKEMON_SET_CODE_PATTERN = (
    r"\b(SWSH\d{1,2}|SV\d{1,2}|XY\d{1,2}|SM\d{1,2}|BW\d{1,2}|DP\d?|EX\d{1,2}"
    r"|RS|LC|BS\d?|PGO|CEL25|PR-SW|PR-SV)\b"
)

# Longest matching name wins, so "SHINING FATES" beats "SHINING" style overlaps
POKEMON_SET_NAMES: RuleTable[str] = literal_table(
    "pokemon_set_names",
    1,
    [
        # Scarlet & Violet
        ("SCARLET & VIOLET", "sv1"),
        ("SCARLET AND VIOLET", "sv1"),
        ("PALDEA EVOLVED", "sv2"),
        ("OBSIDIAN FLAMES", "sv3"),
        ("151", "sv3pt5"),
        ("MEW", "sv3pt5"),
        ("PARADOX RIFT", "sv4"),
        ("PALDEAN FATES", "sv4pt5"),
        ("TEMPORAL FORCES", "sv5"),
        ("TWILIGHT MASQUERADE", "sv6"),
        ("SHROUDED FABLE", "sv6pt5"),
        ("STELLAR CROWN", "sv7"),
        ("SURGING SPARKS", "sv8"),
        ("PRISMATIC EVOLUTIONS", "sv8pt5"),
        ("JOURNEY TOGETHER", "sv9"),
        # Sword & Shield
        ("SWORD & SHIELD", "swsh1"),
        ("SWORD AND SHIELD", "swsh1"),
        ("REBEL CLASH", "swsh2"),
        ("DARKNESS ABLAZE", "swsh3"),
        ("CHAMPION'S PATH", "swsh3pt5"),
        ("CHAMPIONS PATH", "swsh3pt5"),
        ("VIVID VOLTAGE", "swsh4"),
        ("SHINING FATES", "swsh4pt5"),
        ("BATTLE STYLES", "swsh5"),
        ("CHILLING REIGN", "swsh6"),
        ("EVOLVING SKIES", "swsh7"),
        ("CELEBRATIONS", "cel25"),
        ("FUSION STRIKE", "swsh8"),
        ("BRILLIANT STARS", "swsh9"),
        ("ASTRAL RADIANCE", "swsh10"),
        ("POKEMON GO", "pgo"),
        ("LOST ORIGIN", "swsh11"),
        ("SILVER TEMPEST", "swsh12"),
        ("CROWN ZENITH", "swsh12pt5"),
        # Sun & Moon
        ("SUN & MOON", "sm1"),
        ("SUN AND MOON", "sm1"),
        ("GUARDIANS RISING", "sm2"),
        ("BURNING SHADOWS", "sm3"),
        ("SHINING LEGENDS", "sm3pt5"),
        ("CRIMSON INVASION", "sm4"),
        ("ULTRA PRISM", "sm5"),
        ("FORBIDDEN LIGHT", "sm6"),
        ("CELESTIAL STORM", "sm7"),
        ("DRAGON MAJESTY", "sm7pt5"),
        ("LOST THUNDER", "sm8"),
        ("TEAM UP", "sm9"),
        ("DETECTIVE PIKACHU", "det1"),
        ("UNBROKEN BONDS", "sm10"),
        ("UNIFIED MINDS", "sm11"),
        ("HIDDEN FATES", "sm11pt5"),
        ("COSMIC ECLIPSE", "sm12"),
        # XY
        ("XY", "xy1"),
        ("FLASHFIRE", "xy2"),
        ("FURIOUS FISTS", "xy3"),
        ("PHANTOM FORCES", "xy4"),
        ("PRIMAL CLASH", "xy5"),
        ("ROARING SKIES", "xy6"),
        ("ANCIENT ORIGINS", "xy7"),
        ("BREAKTHROUGH", "xy8"),
        ("BREAKPOINT", "xy9"),
        ("FATES COLLIDE", "xy10"),
        ("STEAM SIEGE", "xy11"),
        ("EVOLUTIONS", "xy12"),
        # Black & White
        ("BLACK & WHITE", "bw1"),
        ("BLACK AND WHITE", "bw1"),
        ("EMERGING POWERS", "bw2"),
        ("NOBLE VICTORIES", "bw3"),
        ("NEXT DESTINIES", "bw4"),
        ("DARK EXPLORERS", "bw5"),
        ("DRAGONS EXALTED", "bw6"),
        ("BOUNDARIES CROSSED", "bw7"),
        ("PLASMA STORM", "bw8"),
        ("PLASMA FREEZE", "bw9"),
        ("PLASMA BLAST", "bw10"),
        ("LEGENDARY TREASURES", "bw11"),
    ],
    policy=MatchPolicy.LONGEST,
)

# Printed set total -> possible set codes. Shared totals list every candidate.
POKEMON_SET_TOTALS: dict[str, tuple[str, ...]] = {
    # Scarlet & Violet
    "193": ("sv2",),
    "197": ("sv3",),
    "165": ("sv3pt5",),
    "182": ("sv4",),
    "091": ("sv4pt5",),
    "218": ("sv5",),
    "167": ("sv6",),
    "064": ("sv6pt5",),
    "175": ("sv7",),
    "191": ("sv8",),
    # Sword & Shield
    "202": ("swsh1",),
    "192": ("swsh2",),
    "073": ("swsh3pt5",),
    "185": ("swsh4",),
    "072": ("swsh4pt5",),
    "163": ("swsh5",),
    "203": ("swsh7",),
    "025": ("cel25",),
    "264": ("swsh8",),
    "172": ("swsh9",),
    "078": ("pgo",),
    "196": ("swsh11",),
    "195": ("swsh12",),
    "159": ("swsh12pt5",),
    # Shared totals
    "198": ("sv1", "swsh6"),
    "189": ("swsh10", "swsh3"),
}


def sets_for_total(set_total: str) -> tuple[str, ...]:
    """
    Sets a printed total could belong to.

    Tries the total as printed, then without leading zeros.
    """
    if set_total in POKEMON_SET_TOTALS:
        return POKEMON_SET_TOTALS[set_total]
    stripped = set_total.lstrip("0") or "0"
    return POKEMON_SET_TOTALS.get(stripped, ())
