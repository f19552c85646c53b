"""
Relay Host Configuration
========================

Loads environment variables for the host-side attestation relay.

Environment variables may be set in a .env file in the working directory.
"""

import os

from dotenv import load_dotenv

from pcr_canonical.constants import DEFAULT_ENCLAVE_CID, DEFAULT_MAX_MESSAGE_SIZE, RELAY_PORT as DEFAULT_RELAY_PORT

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================================
# vsock Listener
# ============================================================
RELAY_PORT = int(os.getenv("RELAY_PORT", str(DEFAULT_RELAY_PORT)))
ENCLAVE_CID = int(os.getenv("ENCLAVE_CID", str(DEFAULT_ENCLAVE_CID)))

# Silent peers are dropped after this many seconds (per recv)
RELAY_READ_TIMEOUT = float(os.getenv("RELAY_READ_TIMEOUT", "30"))

# ============================================================
# Evidence Limits
# ============================================================
# Declared frame lengths above this are rejected before allocation
RELAY_MAX_MESSAGE_SIZE = int(os.getenv("RELAY_MAX_MESSAGE_SIZE", str(DEFAULT_MAX_MESSAGE_SIZE)))

# Verify COSE signature + Nitro certificate chain (off by default)
RELAY_VERIFY_SIGNATURE = _env_bool("RELAY_VERIFY_SIGNATURE", False)
