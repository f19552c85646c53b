"""
Decoded CBOR value kinds.

cbor2 hands back plain Python objects. Every extraction step in this package
classifies a value first and then branches on the kind, with an explicit
fallback for anything it does not expect.
"""

from collections.abc import Mapping
from enum import Enum


class ValueKind(Enum):
    INTEGER = "integer"
    BYTES = "bytes"
    TEXT = "text"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OTHER = "other"


def classify(value) -> ValueKind:
    """Map a cbor2-decoded object to its ValueKind."""
    # bool subclasses int; CBOR true/false are simple values, not integers
    if isinstance(value, bool):
        return ValueKind.OTHER
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, (bytes, bytearray)):
        return ValueKind.BYTES
    if isinstance(value, str):
        return ValueKind.TEXT
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    return ValueKind.OTHER


def describe(value) -> str:
    """Short type description for logs and skip reports."""
    kind = classify(value)
    if kind is ValueKind.OTHER:
        return type(value).__name__
    return kind.value
