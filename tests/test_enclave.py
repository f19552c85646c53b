import socket

import cbor2
import pytest

from pcr_canonical.framing import receive_message
from relay_tee.enclave import nsm_lib, sender
from relay_tee.enclave.nsm_lib import (
    NSMError,
    build_attestation_request,
    get_attestation_document,
    parse_attestation_response,
)
from relay_tee.enclave.sender import make_nonce, send_attestation


def test_build_attestation_request():
    request = cbor2.loads(build_attestation_request(user_data=b"ud", nonce=b"n"))
    assert request == {"Attestation": {"user_data": b"ud", "nonce": b"n"}}


def test_build_empty_attestation_request():
    assert cbor2.loads(build_attestation_request()) == {"Attestation": {}}


def test_oversized_request_rejected():
    with pytest.raises(NSMError):
        build_attestation_request(user_data=b"x" * nsm_lib.NSM_REQUEST_MAX_SIZE)


def test_parse_attestation_response():
    assert parse_attestation_response({"Attestation": {"document": b"cose"}}) == b"cose"


@pytest.mark.parametrize("response", [
    {"Error": "InvalidArgument"},
    {"Attestation": {}},
    {"Attestation": {"document": b""}},
    {"Other": 1},
    ["not", "a", "map"],
])
def test_parse_attestation_response_errors(response):
    with pytest.raises(NSMError):
        parse_attestation_response(response)


def test_missing_device(monkeypatch, tmp_path):
    monkeypatch.setattr(nsm_lib, "NSM_DEVICE", str(tmp_path / "nsm"))
    with pytest.raises(NSMError):
        get_attestation_document()


def test_get_attestation_document_decodes_response(monkeypatch):
    sent = {}

    def fake_ioctl(request_cbor):
        sent["request"] = cbor2.loads(request_cbor)
        return cbor2.dumps({"Attestation": {"document": b"\x84cose"}})

    monkeypatch.setattr(nsm_lib, "_nsm_ioctl", fake_ioctl)
    assert get_attestation_document(nonce=b"abc") == b"\x84cose"
    assert sent["request"] == {"Attestation": {"nonce": b"abc"}}


def test_send_attestation_frames_document():
    a, b = socket.socketpair()
    try:
        send_attestation(b"document-bytes", sock=a)
        assert receive_message(b, timeout=5) == b"document-bytes"
    finally:
        a.close()
        b.close()


def test_nonce_format():
    assert make_nonce().startswith(b"pcr-relay-nonce-")


def test_socket_closed_when_connect_fails(monkeypatch):
    class RefusingSocket:
        closed = False

        def __init__(self, family, kind):
            self.family = family

        def connect(self, address):
            raise ConnectionRefusedError("no listener on parent")

        def close(self):
            self.closed = True

    created = []

    def factory(family, kind):
        created.append(RefusingSocket(family, kind))
        return created[-1]

    monkeypatch.setattr(sender.socket, "socket", factory)
    with pytest.raises(ConnectionRefusedError):
        send_attestation(b"document-bytes", cid=3, port=5000)
    assert created[0].closed
