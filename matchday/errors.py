"""
Error taxonomy for live match processing.

Every failure surfaced by the core is one of these. None of them leaves
match or player state partially mutated.
"""
from typing import Any, Optional


class MatchdayError(Exception):
    """Base class for all core errors."""


class ValidationError(MatchdayError):
    """Malformed input. Nothing was mutated."""

    def __init__(self, field: str, raw_value: Any, message: Optional[str] = None):
        self.field = field
        self.raw_value = raw_value
        self.message = message or f"invalid value for {field}"
        super().__init__(f"{self.message}: {raw_value!r}")

    def to_dict(self) -> dict:
        return {
            "error": "validation_error",
            "field": self.field,
            "raw_value": self.raw_value,
            "message": self.message,
        }


class RuleViolation(MatchdayError):
    """Well-formed input that breaks a match rule (e.g. re-substitution)."""

    def __init__(self, message: str, player: Optional[str] = None):
        self.message = message
        self.player = player
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": "rule_violation", "message": self.message, "player": self.player}


class ContentionError(MatchdayError):
    """The per-match lock or fingerprint is held elsewhere. Retry the invocation."""

    def __init__(self, match_id: str, message: Optional[str] = None):
        self.match_id = match_id
        self.message = message or f"match {match_id} is busy"
        super().__init__(self.message)


class StoreUnavailable(MatchdayError):
    """A backing store (idempotency, repository or cache) could not be reached."""

    def __init__(self, backend: str, message: Optional[str] = None):
        self.backend = backend
        self.message = message or f"{backend} store unavailable"
        super().__init__(self.message)
