import queue
import socket
import struct
import threading

import pytest

from pcr_canonical.errors import MalformedEnvelope, ReceiveTimeout
from pcr_canonical.framing import send_message
from relay_tee.host.listener import AttestationListener


def _connect(listener):
    host, port = listener.address
    return socket.create_connection((host, port), timeout=5)


def test_slow_peer_does_not_block_others(make_document):
    reports = queue.Queue()
    errors = queue.Queue()
    listener = AttestationListener(
        port=0,
        family="tcp",
        handler=lambda report, peer: reports.put(report),
        on_error=lambda error, peer: errors.put(error),
        read_timeout=1.0,
    ).start()
    try:
        stalled = _connect(listener)
        stalled.sendall(struct.pack(">I", 100))

        good = _connect(listener)
        send_message(good, make_document(pcrs={0: b"\x11" * 48}))
        good.close()

        report = reports.get(timeout=5)
        assert report.rendered == {"0": "11" * 48}

        error = errors.get(timeout=5)
        assert isinstance(error, ReceiveTimeout)
        assert not error.resumable
        stalled.close()
    finally:
        listener.stop()


def test_bad_document_reported_and_listener_keeps_serving(make_document):
    reports = queue.Queue()
    errors = queue.Queue()
    listener = AttestationListener(
        port=0,
        family="tcp",
        handler=lambda report, peer: reports.put(report),
        on_error=lambda error, peer: errors.put(error),
        read_timeout=2.0,
    ).start()
    try:
        bad = _connect(listener)
        send_message(bad, b"\x83\x40\xa0\x40")
        bad.close()
        assert isinstance(errors.get(timeout=5), MalformedEnvelope)

        good = _connect(listener)
        send_message(good, make_document(pcrs={2: b"\x22" * 48}))
        good.close()
        assert reports.get(timeout=5).rendered == {"2": "22" * 48}
    finally:
        listener.stop()


def test_accept_one(make_document):
    listener = AttestationListener(port=0, family="tcp", read_timeout=5).bind()
    document = make_document(pcrs={0: b"\x00" * 48, 1: b"\x01" * 48})

    def enclave():
        with _connect(listener) as sock:
            send_message(sock, document)

    sender = threading.Thread(target=enclave)
    sender.start()
    try:
        report = listener.accept_one()
    finally:
        sender.join()
        listener.stop()

    assert report.nonzero() == {"1": "01" * 48}
    assert "0" in report.rendered


def test_unknown_family_rejected():
    with pytest.raises(ValueError):
        AttestationListener(family="udp")


def test_address_requires_bind():
    with pytest.raises(RuntimeError):
        AttestationListener(port=0, family="tcp").address


def test_peer_filter_by_enclave_cid():
    listener = AttestationListener(family="vsock", expected_cid=16)
    assert listener.peer_allowed((16, 1234))
    assert not listener.peer_allowed((17, 1234))
    assert AttestationListener(family="vsock").peer_allowed((17, 1234))
    assert AttestationListener(family="tcp", expected_cid=16).peer_allowed(("127.0.0.1", 1234))


class _Rejected:
    closed = False

    def close(self):
        self.closed = True


class _FakeServer:
    def __init__(self, connections):
        self.connections = list(connections)

    def accept(self):
        return self.connections.pop(0)

    def close(self):
        pass


def test_accept_one_skips_foreign_cid(make_document):
    host_end, enclave_end = socket.socketpair()
    send_message(enclave_end, make_document(pcrs={3: b"\x33" * 48}))
    enclave_end.close()

    stranger = _Rejected()
    listener = AttestationListener(family="vsock", expected_cid=16, read_timeout=5)
    listener._server = _FakeServer([(stranger, (42, 999)), (host_end, (16, 1000))])
    try:
        report = listener.accept_one()
    finally:
        listener.stop()

    assert stranger.closed
    assert report.nonzero() == {"3": "33" * 48}
