"""Error taxonomy shared by the services in ``personal_finance``.

Each class also derives from the closest builtin so callers that only know
``ValueError``/``LookupError``/``RuntimeError`` keep working.
"""

from __future__ import annotations


class PersonalFinanceError(Exception):
    """Base class for all domain errors raised by this package."""


class NotFoundError(PersonalFinanceError, LookupError):
    """The requested record does not exist for the requesting user.

    Raised identically for "missing" and "owned by someone else" so callers
    cannot learn about other users' data.
    """

    def __init__(self, kind: str, ident: object) -> None:
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class ValidationError(PersonalFinanceError, ValueError):
    """Malformed input rejected before any mutation."""


class DataError(PersonalFinanceError, ValueError):
    """Stored data is unusable (unknown frequency, corrupt date)."""


class UpstreamUnavailableError(PersonalFinanceError, RuntimeError):
    """A store or price source could not be reached."""


class ConversionConflictError(PersonalFinanceError):
    """A planned transaction's current status forbids the requested transition."""


__all__ = [
    "PersonalFinanceError",
    "NotFoundError",
    "ValidationError",
    "DataError",
    "UpstreamUnavailableError",
    "ConversionConflictError",
]
