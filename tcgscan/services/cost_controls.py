"""
Cost Controls: LLM Budget and Request Limits.

Every call to the primary AI identifier costs money. This module caps:
- Requests per client IP per day on the interactive scan endpoints
- Global LLM calls and tokens per day (shared by API and batch worker)
- Everything, via the LLM_ENABLED kill switch

INVARIANTS:
- Limits are checked BEFORE the LLM is called
- Exceedance is terminal for that call; the resolver falls through to the
  literal translation step instead of retrying
- IPs are hashed before they are logged
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from threading import Lock

from tcgscan.models.failure import FailureKind, KnownError

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION DEFAULTS
# =============================================================================

DEFAULT_REQUESTS_PER_IP_PER_DAY = 200

# A full 200-image import plus interactive scans fits comfortably
DEFAULT_MAX_LLM_CALLS_PER_DAY = 2_000
DEFAULT_MAX_TOKENS_PER_DAY = 4_000_000


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class RateLimitExceededError(KnownError):
    """Raised when one client exceeds its daily scan requests."""

    def __init__(self, ip_hash: str, limit: int):
        self.ip_hash = ip_hash
        self.limit = limit
        super().__init__(
            kind=FailureKind.BUDGET_EXCEEDED,
            message=f"Daily scan limit reached ({limit} requests).",
            detail=f"IP rate limit: {limit}/day",
            suggestion="This limit resets at midnight UTC.",
            status_code=429,
        )


class DailyBudgetExceededError(KnownError):
    """Raised when the global daily LLM budget is used up."""

    def __init__(self, limit_type: str, used: int, limit: int):
        self.limit_type = limit_type
        self.used = used
        self.limit = limit
        super().__init__(
            kind=FailureKind.BUDGET_EXCEEDED,
            message="Card identification quota is exhausted for today.",
            detail=f"Daily {limit_type}: {used}/{limit}",
            suggestion="This limit resets at midnight UTC.",
            status_code=503,
        )


class LLMDisabledError(KnownError):
    """Raised when the primary identifier is switched off."""

    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message="AI card identification is disabled.",
            detail="LLM_ENABLED=false",
            suggestion="Literal translation and manual search remain available.",
            status_code=503,
        )


# =============================================================================
# THREAD-SAFE USAGE TRACKER
# =============================================================================


@dataclass
class DailyUsageTracker:
    """
    Thread-safe tracker for daily usage limits.

    Resets automatically at midnight UTC.
    """

    requests_per_ip_per_day: int = DEFAULT_REQUESTS_PER_IP_PER_DAY
    max_llm_calls_per_day: int = DEFAULT_MAX_LLM_CALLS_PER_DAY
    max_tokens_per_day: int = DEFAULT_MAX_TOKENS_PER_DAY

    _current_date: date = field(default_factory=lambda: datetime.now(UTC).date())
    _ip_request_counts: dict[str, int] = field(default_factory=dict)
    _llm_calls_today: int = 0
    _tokens_today: int = 0
    _lock: Lock = field(default_factory=Lock)

    def _maybe_reset(self) -> None:
        """Reset counters if we've crossed into a new day (UTC)."""
        today = datetime.now(UTC).date()
        if today != self._current_date:
            self._current_date = today
            self._ip_request_counts.clear()
            self._llm_calls_today = 0
            self._tokens_today = 0
            logger.info("DAILY_COUNTERS_RESET", extra={"new_date": today.isoformat()})

    def hash_ip(self, ip_address: str) -> str:
        """Hash an IP address for privacy-safe logging (12 hex chars)."""
        return hashlib.sha256(ip_address.encode()).hexdigest()[:12]

    def check_ip_rate_limit(self, ip_address: str) -> None:
        """
        Check and increment the per-IP request count.

        Raises:
            RateLimitExceededError: If the daily limit for this IP is reached
        """
        with self._lock:
            self._maybe_reset()

            ip_hash = self.hash_ip(ip_address)
            current_count = self._ip_request_counts.get(ip_hash, 0)

            if current_count >= self.requests_per_ip_per_day:
                logger.warning(
                    "RATE_LIMIT_EXCEEDED",
                    extra={
                        "ip_hash": ip_hash,
                        "requests_today": current_count,
                        "limit": self.requests_per_ip_per_day,
                    },
                )
                raise RateLimitExceededError(ip_hash, self.requests_per_ip_per_day)

            self._ip_request_counts[ip_hash] = current_count + 1

    def check_daily_budget(self) -> None:
        """
        Check that the global daily LLM budget has room for one more call.

        Raises:
            DailyBudgetExceededError: If calls or tokens are used up
        """
        with self._lock:
            self._maybe_reset()

            if self._llm_calls_today >= self.max_llm_calls_per_day:
                logger.warning(
                    "DAILY_LLM_BUDGET_EXCEEDED",
                    extra={
                        "llm_calls_today": self._llm_calls_today,
                        "limit": self.max_llm_calls_per_day,
                    },
                )
                raise DailyBudgetExceededError(
                    limit_type="LLM calls",
                    used=self._llm_calls_today,
                    limit=self.max_llm_calls_per_day,
                )

            if self._tokens_today >= self.max_tokens_per_day:
                logger.warning(
                    "DAILY_TOKEN_BUDGET_EXCEEDED",
                    extra={"tokens_today": self._tokens_today, "limit": self.max_tokens_per_day},
                )
                raise DailyBudgetExceededError(
                    limit_type="tokens",
                    used=self._tokens_today,
                    limit=self.max_tokens_per_day,
                )

    def record_llm_call(self, input_tokens: int, output_tokens: int) -> None:
        """Record one LLM call and its token usage. Call after every invocation."""
        with self._lock:
            self._maybe_reset()
            self._llm_calls_today += 1
            self._tokens_today += input_tokens + output_tokens

            logger.debug(
                "LLM_CALL_RECORDED",
                extra={
                    "llm_calls_today": self._llm_calls_today,
                    "tokens_today": self._tokens_today,
                },
            )

    def get_diagnostics(self) -> dict[str, int | str]:
        """Current usage and remaining budget."""
        with self._lock:
            self._maybe_reset()
            return {
                "date": self._current_date.isoformat(),
                "unique_ips_today": len(self._ip_request_counts),
                "llm_calls_today": self._llm_calls_today,
                "llm_calls_remaining": max(0, self.max_llm_calls_per_day - self._llm_calls_today),
                "tokens_today": self._tokens_today,
                "tokens_remaining": max(0, self.max_tokens_per_day - self._tokens_today),
                "requests_per_ip_limit": self.requests_per_ip_per_day,
                "llm_calls_limit": self.max_llm_calls_per_day,
                "tokens_limit": self.max_tokens_per_day,
            }


# =============================================================================
# GLOBAL TRACKER INSTANCE
# =============================================================================

_usage_tracker: DailyUsageTracker | None = None


def get_usage_tracker() -> DailyUsageTracker:
    """Get the global usage tracker instance."""
    global _usage_tracker
    if _usage_tracker is None:
        _usage_tracker = DailyUsageTracker()
    return _usage_tracker


def reset_usage_tracker() -> None:
    """Reset the global usage tracker (for testing)."""
    global _usage_tracker
    _usage_tracker = None


# =============================================================================
# GUARDS
# =============================================================================


def check_llm_enabled(llm_enabled: bool) -> None:
    """
    Raises:
        LLMDisabledError: If the kill switch is off
    """
    if not llm_enabled:
        logger.warning("LLM_DISABLED", extra={"llm_enabled": False})
        raise LLMDisabledError()


def enforce_llm_budget(llm_enabled: bool) -> None:
    """
    Guard a single LLM call: kill switch, then the global daily budget.

    Raises:
        LLMDisabledError: If the LLM is disabled
        DailyBudgetExceededError: If the daily budget is used up
    """
    check_llm_enabled(llm_enabled)
    get_usage_tracker().check_daily_budget()


def enforce_request_limits(ip_address: str) -> None:
    """
    Guard an interactive scan request by client IP.

    Raises:
        RateLimitExceededError: If this IP's daily limit is reached
    """
    get_usage_tracker().check_ip_rate_limit(ip_address)
