#!/usr/bin/env python3
"""
Enclave Attestation Sender (Runs Inside Nitro Enclave)
======================================================

Requests an attestation document from the NSM and pushes it to the parent
instance as one length-prefixed message over vsock.

COMMUNICATION:
- Enclave dials the parent (CID 3) on RELAY_PORT
- One framed COSE_Sign1 document per connection, then the socket is closed
"""

import socket
import time
from typing import Optional

from pcr_canonical.constants import AF_VSOCK, PARENT_CID, RELAY_PORT
from pcr_canonical.framing import send_message
from relay_tee.enclave.nsm_lib import get_attestation_document

DEFAULT_USER_DATA = b"nitro-pcr-relay"


def make_nonce() -> bytes:
    return f"pcr-relay-nonce-{time.time_ns()}".encode()


def send_attestation(
    document: bytes,
    cid: int = PARENT_CID,
    port: int = RELAY_PORT,
    sock: Optional[socket.socket] = None,
) -> None:
    """
    Send one framed attestation document.

    Args:
        document: raw COSE_Sign1 bytes
        cid: parent CID (ignored when sock is given)
        port: parent port (ignored when sock is given)
        sock: already connected stream socket (tests, TCP)

    Raises:
        OSError: connect or write failed
    """
    own_socket = sock is None
    if own_socket:
        sock = socket.socket(AF_VSOCK, socket.SOCK_STREAM)

    try:
        if own_socket:
            sock.connect((cid, port))
            print(f"[ENCLAVE] Connected to parent via vsock (CID {cid}, Port {port})", flush=True)
        send_message(sock, document)
        print(f"[ENCLAVE] Sent attestation document ({len(document)} bytes)", flush=True)
    finally:
        if own_socket:
            sock.close()


def main() -> None:
    print("[ENCLAVE] Requesting attestation document from NSM...", flush=True)
    document = get_attestation_document(user_data=DEFAULT_USER_DATA, nonce=make_nonce())
    print(f"[ENCLAVE] Obtained attestation document ({len(document)} bytes)", flush=True)

    send_attestation(document)
    print("[ENCLAVE] Finished sending data. Exiting.", flush=True)


if __name__ == "__main__":
    main()
