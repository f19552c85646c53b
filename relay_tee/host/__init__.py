"""
Relay Host Module
=================

Files that run on the HOST (parent EC2), NOT inside the enclave.
These receive attestation documents from the enclave via vsock.
"""

from relay_tee.host.listener import AttestationListener

__all__ = [
    "AttestationListener",
]
