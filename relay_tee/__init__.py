"""
Relay TEE Module
================

Host and enclave halves of the attestation relay.

    relay_tee.host     - vsock listener on the parent EC2 (receives + validates)
    relay_tee.enclave  - NSM binding and framed sender inside the enclave

The decoding logic itself lives in pcr_canonical; both halves import it.
"""
