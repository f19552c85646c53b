"""
PCR Canonical Module

Canonical implementation of the attestation evidence pipeline shared by the
host relay, the enclave sender and the audit CLI.

Module Structure:
    constants.py   - Framing, vsock and measurement constants
    errors.py      - EvidenceError hierarchy (stage-tagged)
    framing.py     - encode_frame, decode_frame, send_message, receive_message
    values.py      - ValueKind / classify for decoded CBOR values
    cbor_items.py  - CBOR item boundaries (single-item check, per-entry map split)
    cose.py        - decode_envelope, extract_payload (COSE_Sign1)
    evidence.py    - decode_evidence, coerce_pcr_index, coerce_pcr_value
    digest.py      - calculate_sha384, extend_digest
    validator.py   - validate_document, validate_frame, receive_and_validate
    nitro.py       - verify_cose_signature (opt-in Nitro chain + COSE check)

Usage:
    from pcr_canonical import validate_frame, calculate_sha384

    report = validate_frame(wire_bytes)
    print(report.nonzero())
    report.matches_identity(4, "i-0123456789abcdef0")

Security Model:
    The default pipeline does NOT verify the COSE signature. Pass
    verify_signature=True to authenticate PCRs against the pinned AWS Nitro
    root certificate.
"""

__version__ = "1.0.0"

from pcr_canonical.constants import (
    DEFAULT_MAX_MESSAGE_SIZE,
    PCR_DIGEST_LENGTH,
    ZERO_PCR_HEX,
)
from pcr_canonical.errors import (
    EvidenceError,
    TruncatedMessage,
    MessageTooLarge,
    ReceiveTimeout,
    FramingError,
    MalformedEnvelope,
    MalformedEvidence,
    SignatureVerificationError,
)
from pcr_canonical.framing import encode_frame, decode_frame, send_message, receive_message
from pcr_canonical.evidence import SkippedEntry, decode_evidence
from pcr_canonical.digest import calculate_sha384, extend_digest
from pcr_canonical.validator import (
    EvidenceReport,
    validate_document,
    validate_frame,
    receive_and_validate,
    render_pcr_table,
    filter_zero_pcrs,
)

__all__ = [
    "__version__",
    "DEFAULT_MAX_MESSAGE_SIZE",
    "PCR_DIGEST_LENGTH",
    "ZERO_PCR_HEX",
    "EvidenceError",
    "TruncatedMessage",
    "MessageTooLarge",
    "ReceiveTimeout",
    "FramingError",
    "MalformedEnvelope",
    "MalformedEvidence",
    "SignatureVerificationError",
    "encode_frame",
    "decode_frame",
    "send_message",
    "receive_message",
    "SkippedEntry",
    "decode_evidence",
    "calculate_sha384",
    "extend_digest",
    "EvidenceReport",
    "validate_document",
    "validate_frame",
    "receive_and_validate",
    "render_pcr_table",
    "filter_zero_pcrs",
]
