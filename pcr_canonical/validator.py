"""
PCR Canonical Evidence Validator

Runs the full pipeline for one attestation exchange:

    frame -> COSE envelope -> attestation payload -> PCR table -> rendered table

Each stage raises its own EvidenceError subclass (err.stage tells which one
failed). Nothing is cached between calls; every document is decoded fresh.

⚠️ SIGNATURE NOT VERIFIED BY DEFAULT: unless verify_signature=True, the PCR
table is NOT authenticated against the AWS Nitro certificate chain. Anyone
can fabricate a document that passes this validator.
"""

import hmac
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pcr_canonical.constants import DEFAULT_MAX_MESSAGE_SIZE, PCR_DIGEST_LENGTH, ZERO_PCR_HEX
from pcr_canonical.cose import extract_payload
from pcr_canonical.digest import calculate_sha384
from pcr_canonical.evidence import SkippedEntry, decode_evidence
from pcr_canonical.framing import decode_frame, receive_message

logger = logging.getLogger(__name__)


def render_pcr_table(pcrs: Dict[int, bytes]) -> Dict[str, str]:
    """Render {index: bytes} as {"index": lowercase hex}, ordered by index."""
    return {str(index): pcrs[index].hex() for index in sorted(pcrs)}


def filter_zero_pcrs(rendered: Dict[str, str]) -> Dict[str, str]:
    """
    Drop all-zero (unset) PCRs. For display only: never filter before
    comparing digests.
    """
    return {index: value for index, value in rendered.items() if value != ZERO_PCR_HEX}


@dataclass(frozen=True)
class EvidenceReport:
    pcrs: Dict[int, bytes]
    rendered: Dict[str, str]
    skipped: Tuple[SkippedEntry, ...] = ()
    signature_verified: bool = False

    @property
    def skipped_count(self) -> int:
        return len(self.skipped)

    def nonzero(self) -> Dict[str, str]:
        return filter_zero_pcrs(self.rendered)

    def irregular_lengths(self) -> List[int]:
        """Indices whose digest is not SHA-384 sized (suspicious)."""
        return [index for index, value in sorted(self.pcrs.items()) if len(value) != PCR_DIGEST_LENGTH]

    def matches_identity(self, index: int, identity: str) -> bool:
        """Compare the extend-from-zero digest of identity against PCR[index]."""
        expected = self.rendered.get(str(index))
        if expected is None:
            return False
        return hmac.compare_digest(expected, calculate_sha384(identity))


def validate_document(document: bytes, verify_signature: bool = False) -> EvidenceReport:
    """
    Decode a raw (unframed) COSE_Sign1 attestation document.

    Raises:
        MalformedEnvelope: outer structure invalid
        MalformedEvidence: "pcrs" missing or wrong type
        SignatureVerificationError: only when verify_signature=True
    """
    payload = extract_payload(document)
    extraction = decode_evidence(payload)

    signature_verified = False
    if verify_signature:
        from pcr_canonical.nitro import verify_cose_signature

        verify_cose_signature(document)
        signature_verified = True
    else:
        logger.warning("[PCR] COSE signature NOT verified - PCR values are unauthenticated")

    return EvidenceReport(
        pcrs=extraction.pcrs,
        rendered=render_pcr_table(extraction.pcrs),
        skipped=extraction.skipped,
        signature_verified=signature_verified,
    )


def validate_frame(
    data: bytes,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    verify_signature: bool = False,
) -> EvidenceReport:
    """Unframe captured wire bytes, then validate the document."""
    return validate_document(decode_frame(data, max_size=max_size), verify_signature=verify_signature)


def receive_and_validate(
    stream,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    timeout: Optional[float] = None,
    verify_signature: bool = False,
) -> EvidenceReport:
    """Read one framed document from stream and validate it."""
    document = receive_message(stream, max_size=max_size, timeout=timeout)
    logger.info(f"[PCR] Received attestation document ({len(document)} bytes)")
    return validate_document(document, verify_signature=verify_signature)
