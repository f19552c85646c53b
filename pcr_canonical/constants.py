"""
PCR Canonical Constants

This module is the SINGLE SOURCE OF TRUTH for the wire and measurement constants
used by the host relay, the enclave sender and the audit CLI.

Do NOT redefine these values elsewhere. The enclave and the host must agree on
the framing header and the ports, otherwise the exchange silently breaks.
"""

# =============================================================================
# FRAMING
# =============================================================================

# Length prefix: 4-byte unsigned big-endian integer
FRAME_HEADER_FORMAT = ">I"
FRAME_HEADER_SIZE = 4

# Largest body a 32-bit length prefix can describe
MAX_FRAME_LENGTH = 0xFFFFFFFF

# Upper bound on a declared body length before any buffer is allocated.
# Real Nitro attestation documents are ~5KB; 16 MiB leaves room for large
# test payloads while rejecting multi-gigabyte requests from a hostile peer.
DEFAULT_MAX_MESSAGE_SIZE = 16 * 1024 * 1024

# recv() chunk size when draining a frame body
RECV_CHUNK_SIZE = 65536


# =============================================================================
# VSOCK
# =============================================================================

AF_VSOCK = 40  # socket.AF_VSOCK on Linux systems
VMADDR_CID_ANY = 0xFFFFFFFF
PARENT_CID = 3  # Parent EC2's CID
DEFAULT_ENCLAVE_CID = 16
RELAY_PORT = 5000  # Must match on both sides


# =============================================================================
# COSE / MEASUREMENTS
# =============================================================================

# COSE_Sign1 = [protected, unprotected, payload, signature]
COSE_SIGN1_TAG = 18
COSE_MIN_ELEMENTS = 4
COSE_PAYLOAD_INDEX = 2

# Key of the PCR table inside the attestation document
PCRS_KEY = "pcrs"

# SHA-384 digest length in bytes
PCR_DIGEST_LENGTH = 48

# Largest PCR index representable in the unsigned 64-bit key space
MAX_PCR_INDEX = 2 ** 64 - 1

# All-zero PCR rendered as hex: the "unset" register value
ZERO_PCR_HEX = "0" * (PCR_DIGEST_LENGTH * 2)


# =============================================================================
# ERROR STAGES
# =============================================================================

STAGE_TRANSPORT = "transport"
STAGE_ENVELOPE = "envelope"
STAGE_EVIDENCE = "evidence"
STAGE_SIGNATURE = "signature"
