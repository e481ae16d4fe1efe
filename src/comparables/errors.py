from __future__ import annotations


class ComparablesError(Exception):
    """Base class for comparable-listing errors."""


class InvalidInputError(ComparablesError, TypeError):
    """Raised when the normalizer receives something that is not a list of records."""
