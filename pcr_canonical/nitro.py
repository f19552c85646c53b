"""
PCR Canonical AWS Nitro Signature Verification (OPT-IN)

The core pipeline (validator.py) does NOT authenticate the PCR table. This
module adds that check for callers that ask for it.

VERIFICATION ORDER:
1. Parse COSE_Sign1 structure (cose.py)
2. Parse attestation payload, pull "certificate" and "cabundle"
3. Check leaf certificate validity window
4. Verify certificate chain to the PINNED Amazon Nitro root
5. Verify COSE signature over Sig_structure with the leaf public key

FAIL-CLOSED: any failure raises SignatureVerificationError.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import cbor2
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding

from pcr_canonical.cbor_items import loads_single
from pcr_canonical.cose import decode_envelope
from pcr_canonical.errors import SignatureVerificationError
from pcr_canonical.values import ValueKind, classify, describe

logger = logging.getLogger(__name__)


# Amazon Nitro root certificate (DER format)
# Source: https://aws-nitro-enclaves.amazonaws.com/AWS_NitroEnclaves_Root-G1.zip
# PINNED, not fetched at runtime
# Certificate valid: 2019-10-28 to 2049-10-28
NITRO_ROOT_CERT_DER: bytes = bytes.fromhex(
    "3082021130820196a003020102021100f93175681b90afe11d46ccb4e4e7f856"
    "300a06082a8648ce3d0403033049310b3009060355040613025553310f300d06"
    "0355040a0c06416d617a6f6e310c300a060355040b0c03415753311b30190603"
    "5504030c126177732e6e6974726f2d656e636c61766573301e170d3139313032"
    "383133323830355a170d3439313032383134323830355a3049310b3009060355"
    "040613025553310f300d060355040a0c06416d617a6f6e310c300a060355040b"
    "0c03415753311b301906035504030c126177732e6e6974726f2d656e636c6176"
    "65733076301006072a8648ce3d020106052b8104002203620004fc0254eba608"
    "c1f36870e29ada90be46383292736e894bfff672d989444b5051e534a4b1f6db"
    "e3c0bc581a32b7b176070ede12d69a3fea211b66e752cf7dd1dd095f6f1370f4"
    "170843d9dc100121e4cf63012809664487c9796284304dc53ff4a3423040300f"
    "0603551d130101ff040530030101ff301d0603551d0e041604149025b50dd905"
    "47e796c396fa729dcf99a9df4b96300e0603551d0f0101ff040403020186300a"
    "06082a8648ce3d0403030369003066023100a37f2f91a1c9bd5ee7b8627c1698"
    "d255038e1f0343f95b63a9628c3d39809545a11ebcbf2e3b55d8aeee71b4c3d6"
    "adf3023100a2f39b1605b27028a5dd4ba069b5016e65b4fbde8fe0061d6a5319"
    "7f9cdaf5d943bc61fc2beb03cb6fee8d2302f3dff6"
)

# COSE algorithm identifiers (protected header label 1) -> hash
COSE_ALG_HASHES = {
    -7: hashes.SHA256,   # ES256
    -35: hashes.SHA384,  # ES384 (AWS Nitro)
    -36: hashes.SHA512,  # ES512
}
COSE_HEADER_ALG = 1
DEFAULT_COSE_ALG = -35


def _cert_not_valid_before(cert) -> datetime:
    """not_valid_before as an aware UTC datetime, across cryptography versions."""
    if hasattr(cert, "not_valid_before_utc"):
        return cert.not_valid_before_utc
    return cert.not_valid_before.replace(tzinfo=timezone.utc)


def _cert_not_valid_after(cert) -> datetime:
    if hasattr(cert, "not_valid_after_utc"):
        return cert.not_valid_after_utc
    return cert.not_valid_after.replace(tzinfo=timezone.utc)


def _verify_cert_signature(cert, issuer_cert, position: int, description: str) -> None:
    """
    Verify that cert is signed by issuer_cert.

    Nitro certificates carry dynamic CNs (instance IDs), so only the
    signature is checked, not issuer/subject name matching.
    """
    issuer_public_key = issuer_cert.public_key()
    if not isinstance(issuer_public_key, ec.EllipticCurvePublicKey):
        raise SignatureVerificationError(
            f"Unexpected key type at position {position}: {type(issuer_public_key).__name__}"
        )
    try:
        issuer_public_key.verify(
            cert.signature,
            cert.tbs_certificate_bytes,
            ec.ECDSA(cert.signature_hash_algorithm),
        )
    except InvalidSignature:
        raise SignatureVerificationError(
            f"Certificate signature verification failed at position {position} ({description}). "
            f"Cert subject: {cert.subject}"
        )


def verify_certificate_chain(leaf_cert, cabundle: List[bytes], root_cert_der: bytes) -> None:
    """
    Verify the chain from leaf to the pinned root.

    The cabundle is ordered from ROOT to the CA closest to the leaf:
    cabundle[0] must equal the pinned root, each CA must be signed by the
    previous one, and the leaf by the last one.
    """
    if not cabundle:
        raise SignatureVerificationError("Empty CA bundle - cannot verify chain")

    for position, der in enumerate(cabundle):
        if classify(der) is not ValueKind.BYTES:
            raise SignatureVerificationError(f"CA bundle entry {position} is {describe(der)}, expected bytes")

    try:
        ca_certs = [x509.load_der_x509_certificate(bytes(der)) for der in cabundle]

        bundle_root = ca_certs[0]
        if bundle_root.public_bytes(Encoding.DER) != root_cert_der:
            raise SignatureVerificationError(
                f"Bundle root does not match pinned root certificate (subject: {bundle_root.subject})"
            )

        _verify_cert_signature(bundle_root, bundle_root, 0, "root self-signature")

        for i in range(1, len(ca_certs)):
            _verify_cert_signature(ca_certs[i], ca_certs[i - 1], i, f"CA[{i}] signed by CA[{i - 1}]")

        _verify_cert_signature(
            leaf_cert, ca_certs[-1], len(ca_certs), f"leaf signed by CA[{len(ca_certs) - 1}]"
        )
    except SignatureVerificationError:
        raise
    except Exception as e:
        raise SignatureVerificationError(f"Certificate chain verification error: {e}") from e


def _signature_hash(protected) -> hashes.HashAlgorithm:
    alg = DEFAULT_COSE_ALG
    if classify(protected) is ValueKind.BYTES and protected:
        try:
            header = cbor2.loads(protected)
        except Exception as e:
            raise SignatureVerificationError(f"Protected header is not CBOR: {e}") from e
        if classify(header) is ValueKind.MAPPING:
            alg = header.get(COSE_HEADER_ALG, DEFAULT_COSE_ALG)
    # Only integer labels are registered; anything else may not even be hashable
    if classify(alg) is not ValueKind.INTEGER or alg not in COSE_ALG_HASHES:
        raise SignatureVerificationError(f"Unsupported COSE algorithm: {alg!r}")
    return COSE_ALG_HASHES[alg]()


def verify_cose_signature(
    document: bytes,
    root_cert_der: bytes = NITRO_ROOT_CERT_DER,
    now: Optional[datetime] = None,
):
    """
    Authenticate a COSE_Sign1 attestation document.

    Args:
        document: raw (unframed) COSE_Sign1 bytes
        root_cert_der: pinned trust anchor (DER)
        now: evaluation time for certificate validity (default: current UTC)

    Returns:
        The verified leaf certificate

    Raises:
        MalformedEnvelope: outer structure invalid
        SignatureVerificationError: anything else
    """
    envelope = decode_envelope(document)

    try:
        att_doc = loads_single(envelope.payload)
    except Exception as e:
        raise SignatureVerificationError(f"Failed to parse attestation payload: {e}") from e
    if classify(att_doc) is not ValueKind.MAPPING:
        raise SignatureVerificationError("Attestation payload is not a map")

    cert_der = att_doc.get("certificate")
    cabundle = att_doc.get("cabundle", [])
    if classify(cert_der) is not ValueKind.BYTES:
        raise SignatureVerificationError("No certificate found in attestation")
    if classify(cabundle) is not ValueKind.SEQUENCE:
        raise SignatureVerificationError("cabundle is not an array")

    try:
        leaf_cert = x509.load_der_x509_certificate(bytes(cert_der))

        now = now or datetime.now(timezone.utc)
        not_before = _cert_not_valid_before(leaf_cert)
        not_after = _cert_not_valid_after(leaf_cert)
        if now < not_before:
            raise SignatureVerificationError(f"Certificate not yet valid (starts {not_before})")
        if now > not_after:
            raise SignatureVerificationError(f"Certificate expired ({not_after})")

        verify_certificate_chain(leaf_cert, list(cabundle), root_cert_der)
    except SignatureVerificationError:
        raise
    except Exception as e:
        raise SignatureVerificationError(f"Certificate verification failed: {e}") from e

    signature = envelope.signature
    if classify(signature) is not ValueKind.BYTES or not signature or len(signature) % 2:
        raise SignatureVerificationError("COSE signature is not an even-length byte string")

    try:
        public_key = leaf_cert.public_key()
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise SignatureVerificationError(f"Leaf key is {type(public_key).__name__}, expected EC")

        # Sig_structure = ["Signature1", protected, external_aad, payload]
        sig_structure = cbor2.dumps(["Signature1", envelope.protected, b"", envelope.payload])

        # COSE carries raw r || s; cryptography wants DER
        half = len(signature) // 2
        r = int.from_bytes(signature[:half], "big")
        s = int.from_bytes(signature[half:], "big")

        public_key.verify(encode_dss_signature(r, s), sig_structure, ec.ECDSA(_signature_hash(envelope.protected)))
    except InvalidSignature:
        raise SignatureVerificationError("COSE signature verification failed - attestation may be forged")
    except SignatureVerificationError:
        raise
    except Exception as e:
        raise SignatureVerificationError(f"Signature verification error: {e}") from e

    logger.info(f"[NITRO] COSE signature verified (leaf: {leaf_cert.subject.rfc4514_string()})")
    return leaf_cert
