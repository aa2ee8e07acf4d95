"""Shared error types for linemark.

Expected failures (bad document, bad line, failed save) are reported as
return values. These exceptions mark the places where a layer below cannot
carry on and the layer above decides what to do.
"""


class LinemarkError(Exception):
    """Base error for linemark."""


class AnchorError(LinemarkError):
    """The host could not create or resolve an anchor (document gone, row out of range)."""


class PersistenceError(LinemarkError):
    """Reading, decoding, encoding or writing the storage file failed."""
