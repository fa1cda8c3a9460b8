"""
Error types raised by the divination engine.

Every error derives from DivinationError so callers (the CLI, an API layer)
can catch the whole family at once. Each one also subclasses the builtin
exception it refines, so code written against plain ValueError/LookupError
keeps working.
"""


class DivinationError(Exception):
    """Base class for all engine errors."""


class UnsupportedRangeError(DivinationError, ValueError):
    """Date falls outside the 1900-2099 span covered by the lunar table."""


class LunarDateNotFoundError(DivinationError, LookupError):
    """A lunar date has no Gregorian counterpart (e.g. day 30 of a short month)."""


class InvalidInputError(DivinationError, ValueError):
    """Malformed input: unknown stem/branch token, bad line values, wrong length."""
