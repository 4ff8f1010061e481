"""Error taxonomy for the rpg-tutor rules engine.

Every failure raised by the rules core is a ``RulesError``. They are all
recoverable by the caller: fix the input and retry, or show the message.
Unknown achievement criteria are not errors; they evaluate as locked.
"""

from __future__ import annotations

from typing import Any


class RulesError(Exception):
    """Base class for rules-engine failures."""

    error_code = "rules_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.error_code, "details": self.details}


class InvalidArgument(RulesError, ValueError):
    """Malformed input, e.g. a negative level or accuracy outside [0, 1]."""

    error_code = "invalid_argument"


class InvalidState(RulesError):
    """Caller-supplied state is internally inconsistent."""

    error_code = "invalid_state"


class NotFound(RulesError, LookupError):
    """A referenced objective, achievement, mode or session does not exist."""

    error_code = "not_found"


class Expired(RulesError):
    """A time-bound entity no longer accepts mutation."""

    error_code = "expired"


class InvalidSessionState(RulesError):
    """A scoring call or transition was attempted from a state that disallows it."""

    error_code = "invalid_session_state"


class SessionFull(RulesError):
    """Join attempted beyond a session's capacity."""

    error_code = "session_full"


class PermissionDenied(RulesError):
    """Only the host (or an administrator) may perform this action."""

    error_code = "permission_denied"


class ConcurrentModification(RulesError):
    """A compare-and-swap write lost against another writer."""

    error_code = "concurrent_modification"
