"""
PCR Canonical Errors

Structural failures abort the decode of a single document and always carry the
stage that failed so callers can tell a dropped connection from a bad document.
Per-entry anomalies in the PCR table are NOT exceptions; see
pcr_canonical.evidence.SkippedEntry.
"""

from pcr_canonical.constants import (
    STAGE_TRANSPORT,
    STAGE_ENVELOPE,
    STAGE_EVIDENCE,
    STAGE_SIGNATURE,
)


class EvidenceError(Exception):
    """Base class for every fatal attestation evidence failure."""

    stage = "unknown"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class TruncatedMessage(EvidenceError):
    """Stream ended before the declared frame length was satisfied."""

    stage = STAGE_TRANSPORT

    def __init__(self, message: str, expected: int = 0, received: int = 0):
        super().__init__(message)
        self.expected = expected
        self.received = received


class MessageTooLarge(EvidenceError):
    """Declared frame length exceeds the configured maximum."""

    stage = STAGE_TRANSPORT

    def __init__(self, declared: int, limit: int):
        super().__init__(f"declared length {declared} exceeds limit {limit}")
        self.declared = declared
        self.limit = limit


class ReceiveTimeout(EvidenceError):
    """
    The peer went silent mid-exchange.

    resumable is False once the length header has been consumed: the stream can
    no longer be re-read from a frame boundary and must be closed.
    """

    stage = STAGE_TRANSPORT

    def __init__(self, message: str, resumable: bool):
        super().__init__(message)
        self.resumable = resumable


class FramingError(EvidenceError):
    """In-memory frame does not match its own length prefix."""

    stage = STAGE_TRANSPORT


class MalformedEnvelope(EvidenceError):
    """Outer COSE_Sign1 structure is not a >=4 element array with a bytes payload."""

    stage = STAGE_ENVELOPE


class MalformedEvidence(EvidenceError):
    """Attestation payload has no usable "pcrs" map."""

    stage = STAGE_EVIDENCE


class SignatureVerificationError(EvidenceError):
    """COSE signature or certificate chain did not verify."""

    stage = STAGE_SIGNATURE
