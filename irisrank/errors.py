"""
IRISRank errors.

Every failure the ranking core can surface is a RankingError carrying a
machine-readable code, a human-readable message, optional details, and the
HTTP status the transport layer should answer with.
"""

from typing import Any, Dict, Optional


class RankingError(Exception):
    """Base class for all ranking failures."""

    code: str = "RANKING_ERROR"
    http_status: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(RankingError):
    """Input violates a request constraint (empty or oversized lists, bad limit)."""

    code = "VALIDATION_ERROR"
    http_status = 400


class ComputationError(RankingError):
    """A scorer produced a value outside its contract (NaN, out of [0, 1])."""

    code = "COMPUTATION_ERROR"
    http_status = 500


class ConfigError(RankingError):
    """Invalid configuration update."""

    code = "CONFIG_ERROR"
    http_status = 400


class RateLimitError(RankingError):
    """The calling user exhausted their call budget for the current window."""

    code = "RATE_LIMIT_EXCEEDED"
    http_status = 429
