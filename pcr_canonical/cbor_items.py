"""
PCR Canonical CBOR Item Boundaries

cbor2 decodes whole documents into Python objects. Two things get lost on the
way, and both matter for evidence:

- Bytes after the first item are ignored by cbor2.loads. A document must be
  exactly one item.
- Map keys are merged by Python equality, so 0, 0.0 and False land in the
  same dict slot. PCR entries must keep their own key type.

This module walks encoded items (RFC 8949 heads) without decoding them, so
callers can slice out each map entry and hand it to cbor2 on its own.
"""

from typing import List, Optional, Tuple

import cbor2

MAJOR_BYTES = 2
MAJOR_TEXT = 3
MAJOR_ARRAY = 4
MAJOR_MAP = 5
MAJOR_TAG = 6
MAJOR_SIMPLE = 7

INDEFINITE = 31
BREAK = 0xFF

# Additional info 24..27 -> argument width in bytes
_ARGUMENT_WIDTHS = {24: 1, 25: 2, 26: 4, 27: 8}


def _read_head(data: bytes, offset: int) -> Tuple[int, int, Optional[int], int]:
    """
    Parse one item head.

    Returns:
        (major, info, argument, offset after head); argument is None for an
        indefinite length
    """
    if offset >= len(data):
        raise ValueError(f"CBOR data ends at offset {offset}, expected an item")

    initial = data[offset]
    major, info = initial >> 5, initial & 0x1F
    offset += 1

    if info < 24:
        return major, info, info, offset
    if info in _ARGUMENT_WIDTHS:
        width = _ARGUMENT_WIDTHS[info]
        if offset + width > len(data):
            raise ValueError(f"CBOR head at offset {offset - 1} truncated")
        return major, info, int.from_bytes(data[offset:offset + width], "big"), offset + width
    if info == INDEFINITE:
        return major, info, None, offset
    raise ValueError(f"reserved additional information {info} at offset {offset - 1}")


def _skip_chunks(data: bytes, offset: int, major: int) -> int:
    # Indefinite strings are definite chunks of the same major type up to a break
    while True:
        chunk_major, info, length, offset = _read_head(data, offset)
        if chunk_major == MAJOR_SIMPLE and info == INDEFINITE:
            return offset
        if chunk_major != major or length is None:
            raise ValueError(f"invalid chunk in indefinite string at offset {offset}")
        offset += length
        if offset > len(data):
            raise ValueError("CBOR string truncated")


def item_end(data: bytes, offset: int = 0) -> int:
    """Return the offset just past the item that starts at offset."""
    # Items still owed at each nesting level; None means "until break"
    pending: List[Optional[int]] = [1]

    while pending:
        if pending[-1] == 0:
            pending.pop()
            continue

        major, info, argument, offset = _read_head(data, offset)

        if major == MAJOR_SIMPLE and info == INDEFINITE:
            if pending[-1] is not None:
                raise ValueError(f"unexpected break at offset {offset - 1}")
            pending.pop()
            continue

        if pending[-1] is not None:
            pending[-1] -= 1

        if major in (MAJOR_BYTES, MAJOR_TEXT):
            if argument is None:
                offset = _skip_chunks(data, offset, major)
            else:
                offset += argument
                if offset > len(data):
                    raise ValueError("CBOR string truncated")
        elif major == MAJOR_ARRAY:
            pending.append(argument)
        elif major == MAJOR_MAP:
            pending.append(None if argument is None else argument * 2)
        elif major == MAJOR_TAG:
            pending.append(1)
        elif argument is None:
            raise ValueError(f"indefinite length on major type {major}")

    return offset


def loads_single(data: bytes):
    """
    cbor2.loads, but reject anything after the first item.

    Raises:
        ValueError / cbor2.CBORDecodeError: not exactly one well-formed item
    """
    value = cbor2.loads(data)
    end = item_end(data)
    if end != len(data):
        raise ValueError(f"{len(data) - end} trailing bytes after CBOR item")
    return value


def map_entries(data: bytes, offset: int = 0) -> List[Tuple[bytes, bytes]]:
    """
    Split the encoded map at offset into (key bytes, value bytes) pairs, in
    wire order, duplicates included.
    """
    major, _, count, offset = _read_head(data, offset)
    if major != MAJOR_MAP:
        raise ValueError(f"expected map, found major type {major}")

    entries = []
    while count is None or len(entries) < count:
        if count is None and data[offset:offset + 1] == bytes([BREAK]):
            break
        key_end = item_end(data, offset)
        value_end = item_end(data, key_end)
        entries.append((data[offset:key_end], data[key_end:value_end]))
        offset = value_end
    return entries


def map_value_bytes(data: bytes, key) -> Optional[bytes]:
    """
    Encoded value of key in the top-level map, or None when absent.

    Keys are compared with their type, so "pcrs" only matches a text key.
    The last occurrence wins, as in cbor2.
    """
    found = None
    for key_bytes, value_bytes in map_entries(data):
        candidate = cbor2.loads(key_bytes)
        if type(candidate) is type(key) and candidate == key:
            found = value_bytes
    return found
