# astrocore/core/errors.py
from __future__ import annotations

from typing import Any

__all__ = [
    "AstroError",
    "InvalidInputError",
    "EphemerisRangeError",
    "UndefinedHouseSystemError",
    "UnknownHouseSystemError",
    "UnknownAspectTypeError",
]


class AstroError(RuntimeError):
    """Categorized error for core callers (stage + message + structured context)."""
    def __init__(self, stage: str, message: str, **context: Any):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "stage": self.stage,
            "message": self.message,
            "context": {k: v for k, v in self.context.items()},
        }


class InvalidInputError(AstroError, ValueError):
    """Precondition violated by the caller (NaN angle, bad cusp set, out-of-range latitude)."""


class EphemerisRangeError(AstroError):
    """Requested instant lies outside the provider's supported span. Never retried."""


class UndefinedHouseSystemError(AstroError):
    """Quadrant house system is undefined at this latitude/time; caller may fall back."""


class UnknownHouseSystemError(AstroError, ValueError):
    """Unrecognized house-system selector."""


class UnknownAspectTypeError(AstroError, ValueError):
    """Unrecognized aspect type name."""
