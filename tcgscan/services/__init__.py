"""
TCGScan services.

Business logic for card identification and batch imports.
"""

from tcgscan.services.card_catalog import (
    CardCatalog,
    JsonCardCatalog,
    download_card_catalog,
    get_card_catalog,
    load_card_catalog,
)
from tcgscan.services.card_identifier import (
    CardIdentifier,
    IdentifierError,
    ImageFetchError,
    PrimaryIdentification,
)
from tcgscan.services.cost_controls import (
    DailyBudgetExceededError,
    DailyUsageTracker,
    LLMDisabledError,
    RateLimitExceededError,
    enforce_llm_budget,
    enforce_request_limits,
    get_usage_tracker,
)
from tcgscan.services.identification_resolver import IdentificationResolver
from tcgscan.services.identification_service import (
    IdentificationService,
    build_identification_factory,
)
from tcgscan.services.image_storage import ImageStorage, detect_image_type, validate_image
from tcgscan.services.literal_translator import LiteralTranslator, TranslationError
from tcgscan.services.static_dictionary import translate_with_static_map
from tcgscan.services.task_queue import TaskQueue, TaskRecord, TaskStatus, get_task_queue
from tcgscan.services.translation_cache import (
    CacheStats,
    TranslationCacheService,
    hash_text,
    normalize_text,
)

__all__ = [
    "CacheStats",
    "CardCatalog",
    "CardIdentifier",
    "DailyBudgetExceededError",
    "DailyUsageTracker",
    "IdentificationResolver",
    "IdentificationService",
    "IdentifierError",
    "ImageFetchError",
    "ImageStorage",
    "JsonCardCatalog",
    "LLMDisabledError",
    "LiteralTranslator",
    "PrimaryIdentification",
    "RateLimitExceededError",
    "TaskQueue",
    "TaskRecord",
    "TaskStatus",
    "TranslationCacheService",
    "TranslationError",
    "build_identification_factory",
    "detect_image_type",
    "download_card_catalog",
    "enforce_llm_budget",
    "enforce_request_limits",
    "get_card_catalog",
    "get_task_queue",
    "hash_text",
    "load_card_catalog",
    "normalize_text",
    "translate_with_static_map",
    "validate_image",
]
