"""
PCR Canonical COSE Envelope Decoder

AWS Nitro attestation documents are COSE_Sign1 structures (CBOR-encoded):

    [
        protected_headers (bytes),
        unprotected_headers (map),
        payload (bytes - the actual attestation document),
        signature (bytes - AWS Nitro hardware signature)
    ]

This module only locates the payload. Headers and signature are carried
through untouched for the optional verifier in nitro.py; the core pipeline
does NOT verify the signature.
"""

import logging
from dataclasses import dataclass
from typing import Any, Tuple

import cbor2

from pcr_canonical.cbor_items import loads_single
from pcr_canonical.constants import COSE_SIGN1_TAG, COSE_MIN_ELEMENTS, COSE_PAYLOAD_INDEX
from pcr_canonical.errors import MalformedEnvelope
from pcr_canonical.values import ValueKind, classify, describe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoseEnvelope:
    protected: Any
    unprotected: Any
    payload: bytes
    signature: Any
    extra: Tuple[Any, ...] = ()


def _unwrap_tag(decoded):
    # Tag 18 marks COSE_Sign1; NSM normally emits the bare array
    if isinstance(decoded, cbor2.CBORTag) and decoded.tag == COSE_SIGN1_TAG:
        return decoded.value
    return decoded


def decode_envelope(document: bytes) -> CoseEnvelope:
    """
    Decode the outer COSE_Sign1 array.

    Raises:
        MalformedEnvelope: not exactly one CBOR item, not an array, fewer than 4 elements,
                           or payload (index 2) is not a byte string
    """
    try:
        decoded = loads_single(document)
    except Exception as e:
        raise MalformedEnvelope(f"outer CBOR decode failed: {e}") from e

    decoded = _unwrap_tag(decoded)

    if classify(decoded) is not ValueKind.SEQUENCE:
        raise MalformedEnvelope(f"expected array, got {describe(decoded)}")

    if len(decoded) < COSE_MIN_ELEMENTS:
        raise MalformedEnvelope(
            f"expected at least {COSE_MIN_ELEMENTS} elements, got {len(decoded)}"
        )

    payload = decoded[COSE_PAYLOAD_INDEX]
    if classify(payload) is not ValueKind.BYTES:
        raise MalformedEnvelope("payload not bytes")

    logger.debug(f"[COSE] Envelope with {len(decoded)} elements, payload {len(payload)} bytes")

    return CoseEnvelope(
        protected=decoded[0],
        unprotected=decoded[1],
        payload=bytes(payload),
        signature=decoded[3],
        extra=tuple(decoded[4:]),
    )


def extract_payload(document: bytes) -> bytes:
    """Return the raw attestation payload bytes (index 2)."""
    return decode_envelope(document).payload
