from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "TCGScan"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/tcgscan"

    # Primary AI identifier
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    llm_enabled: bool = True

    # Literal translation fallback (Google Cloud Translation v3)
    google_application_credentials: str = ""
    translation_target_language: str = "Japanese"
    translation_confidence_threshold: int = 800

    # Batch import worker
    worker_enabled: bool = True
    import_concurrency: int = 10
    import_item_timeout_seconds: float = 120.0
    import_poll_interval_seconds: float = 5.0
    import_cleanup_interval_seconds: float = 3600.0
    import_retention_hours: int = 24
    import_job_timeout_hours: int = 2
    import_images_dir: str = "./data/bulk_import_images"

    card_catalog_path: str = "./data/cards.json"


settings = Settings()


# =============================================================================
# EXTRACTION LIMITS
# =============================================================================

# OCR text beyond this length is truncated before any pattern is applied
MAX_OCR_TEXT_LENGTH = 10_000

# =============================================================================
# IDENTIFICATION LIMITS
# =============================================================================

# Primary AI entries are re-validated after this many days
PRIMARY_CACHE_TTL_DAYS = 30

# Minimum confidence for accepting the primary identifier's top candidate
MIN_PRIMARY_CONFIDENCE = 0.6

# Confidence assigned to a literal translation appended as a candidate
LITERAL_CANDIDATE_CONFIDENCE = 0.5

# Visual comparison never looks at more than this many candidate images
MAX_VISUAL_CANDIDATES = 5

# Candidate reference images larger than this are rejected
MAX_CANDIDATE_IMAGE_BYTES = 5 * 1024 * 1024

# =============================================================================
# UPLOAD LIMITS
# =============================================================================

MAX_FILES_PER_JOB = 200
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
