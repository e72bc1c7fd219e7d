from tcgscan.parsers.ocr_fields import (
    calculate_confidence,
    clean_pokemon_name,
    extract_fields,
    extract_mtg_name,
    extract_pokemon_name,
)
from tcgscan.parsers.rules import MatchPolicy, Rule, RuleTable, literal_table
from tcgscan.parsers.set_tables import sets_for_total

__all__ = [
    "MatchPolicy",
    "Rule",
    "RuleTable",
    "calculate_confidence",
    "clean_pokemon_name",
    "extract_fields",
    "extract_mtg_name",
    "extract_pokemon_name",
    "literal_table",
    "sets_for_total",
]
