"""
PCR Canonical Evidence Decoder

Decodes the COSE payload (the attestation document itself) and extracts the
PCR table.

Attestation Document (inside payload):
    {
        "module_id": enclave ID,
        "timestamp": milliseconds since epoch,
        "digest": "SHA384",
        "pcrs": {0: bytes, 1: bytes, 2: bytes, ...},
        "certificate": DER-encoded X.509 cert,
        "cabundle": [DER-encoded CA certs],
        "public_key": optional, "user_data": optional, "nonce": optional
    }

Only "pcrs" is read here. A missing or non-map "pcrs" fails the whole
document. A single bad entry inside "pcrs" is skipped and reported; it never
aborts the decode.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import cbor2

from pcr_canonical.cbor_items import loads_single, map_entries, map_value_bytes
from pcr_canonical.constants import PCRS_KEY, PCR_DIGEST_LENGTH, MAX_PCR_INDEX
from pcr_canonical.errors import MalformedEvidence
from pcr_canonical.values import ValueKind, classify, describe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedEntry:
    """A PCR table entry that was dropped during decoding."""
    key: str
    reason: str


@dataclass(frozen=True)
class PcrExtraction:
    pcrs: Dict[int, bytes]
    skipped: Tuple[SkippedEntry, ...]


def coerce_pcr_index(key) -> Optional[int]:
    """
    Coerce a PCR map key to an index.

    Accepts integers in the unsigned 64-bit range. Returns None for anything
    else (negative, bignum, float, bool, text, ...).
    """
    if classify(key) is not ValueKind.INTEGER:
        return None
    if key < 0 or key > MAX_PCR_INDEX:
        return None
    return int(key)


def coerce_pcr_value(value) -> Optional[bytes]:
    """
    Coerce a PCR map value to digest bytes.

    Accepts a byte string, or an array of 8-bit unsigned integers (an
    alternative encoding of the same bytes). Returns None otherwise.
    """
    kind = classify(value)
    if kind is ValueKind.BYTES:
        return bytes(value)
    if kind is ValueKind.SEQUENCE:
        for element in value:
            if classify(element) is not ValueKind.INTEGER or not 0 <= element <= 0xFF:
                return None
        return bytes(value)
    return None


def decode_evidence(payload: bytes) -> PcrExtraction:
    """
    Decode an attestation payload and extract its PCR table.

    Raises:
        MalformedEvidence: payload is not exactly one CBOR map, or "pcrs" is
                           missing or not a map
    """
    try:
        document = loads_single(payload)
    except Exception as e:
        raise MalformedEvidence(f"payload CBOR decode failed: {e}") from e

    if classify(document) is not ValueKind.MAPPING:
        raise MalformedEvidence(f"payload is {describe(document)}, expected map")

    if classify(document.get(PCRS_KEY)) is not ValueKind.MAPPING:
        raise MalformedEvidence("pcrs missing or wrong type")

    # Entries are decoded one by one; a dict would merge 0, 0.0 and False
    try:
        entries = map_entries(map_value_bytes(payload, PCRS_KEY))
    except Exception as e:
        raise MalformedEvidence(f"pcrs map could not be split into entries: {e}") from e

    pcrs: Dict[int, bytes] = {}
    skipped = []

    for key_bytes, value_bytes in entries:
        try:
            key = cbor2.loads(key_bytes)
            value = cbor2.loads(value_bytes)
        except Exception as e:
            logger.warning(f"[PCR] Undecodable PCR entry: {e}")
            skipped.append(SkippedEntry(key=key_bytes.hex(), reason=f"undecodable entry: {e}"))
            continue

        index = coerce_pcr_index(key)
        if index is None:
            logger.warning(f"[PCR] Unexpected PCR key format - type {describe(key)}, value {key!r}")
            skipped.append(SkippedEntry(key=repr(key), reason=f"key type {describe(key)}"))
            continue

        digest = coerce_pcr_value(value)
        if digest is None:
            logger.warning(f"[PCR] Unexpected PCR value format for key {index} - type {describe(value)}")
            skipped.append(SkippedEntry(key=repr(key), reason=f"value type {describe(value)}"))
            continue

        if len(digest) != PCR_DIGEST_LENGTH:
            logger.warning(f"[PCR] PCR{index} is {len(digest)} bytes, expected {PCR_DIGEST_LENGTH}")

        pcrs[index] = digest

    if skipped:
        logger.warning(f"[PCR] Skipped {len(skipped)} malformed PCR entries")

    return PcrExtraction(pcrs=pcrs, skipped=tuple(skipped))
