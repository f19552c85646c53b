import io
import socket
import struct
import threading

import pytest

from pcr_canonical.errors import FramingError, MessageTooLarge, ReceiveTimeout, TruncatedMessage
from pcr_canonical.framing import decode_frame, encode_frame, receive_message, send_message


@pytest.mark.parametrize("length", [0, 1, 4096, 10_000_000])
def test_round_trip_through_stream(length):
    payload = bytes(i % 251 for i in range(length)) if length < 100_000 else b"\xab" * length
    stream = io.BytesIO(encode_frame(payload))
    assert receive_message(stream) == payload
    assert stream.read() == b""


def test_header_is_big_endian_length():
    assert encode_frame(b"abc")[:4] == b"\x00\x00\x00\x03"
    assert encode_frame(b"") == b"\x00\x00\x00\x00"


def test_round_trip_over_socket():
    payload = b"\x42" * 200_000
    a, b = socket.socketpair()
    try:
        writer = threading.Thread(target=send_message, args=(a, payload))
        writer.start()
        assert receive_message(b, timeout=5) == payload
        writer.join()
    finally:
        a.close()
        b.close()


def test_header_only_then_close_is_truncated():
    a, b = socket.socketpair()
    try:
        a.sendall(struct.pack(">I", 100))
        a.close()
        with pytest.raises(TruncatedMessage) as excinfo:
            receive_message(b, timeout=5)
        assert excinfo.value.expected == 100
        assert excinfo.value.received == 0
        assert excinfo.value.stage == "transport"
    finally:
        b.close()


def test_partial_body_is_truncated():
    stream = io.BytesIO(struct.pack(">I", 10) + b"12345")
    with pytest.raises(TruncatedMessage):
        receive_message(stream)


def test_partial_header_is_truncated():
    with pytest.raises(TruncatedMessage):
        receive_message(io.BytesIO(b"\x00\x00"))


def test_empty_stream_is_truncated():
    with pytest.raises(TruncatedMessage):
        receive_message(io.BytesIO(b""))


def test_oversized_length_rejected_before_reading_body():
    stream = io.BytesIO(struct.pack(">I", 0xFFFFFFFF) + b"x" * 16)
    with pytest.raises(MessageTooLarge) as excinfo:
        receive_message(stream, max_size=1024)
    assert excinfo.value.declared == 0xFFFFFFFF
    assert excinfo.value.limit == 1024
    assert stream.tell() == 4


def test_length_equal_to_limit_is_accepted():
    assert receive_message(io.BytesIO(encode_frame(b"x" * 8)), max_size=8) == b"x" * 8


def test_timeout_before_header_is_resumable():
    a, b = socket.socketpair()
    try:
        with pytest.raises(ReceiveTimeout) as excinfo:
            receive_message(b, timeout=0.1)
        assert excinfo.value.resumable
    finally:
        a.close()
        b.close()


def test_timeout_after_header_is_not_resumable():
    a, b = socket.socketpair()
    try:
        a.sendall(struct.pack(">I", 50) + b"partial")
        with pytest.raises(ReceiveTimeout) as excinfo:
            receive_message(b, timeout=0.1)
        assert not excinfo.value.resumable
    finally:
        a.close()
        b.close()


def test_decode_frame_in_memory():
    assert decode_frame(encode_frame(b"hello")) == b"hello"
    assert decode_frame(b"\x00\x00\x00\x00") == b""


def test_decode_frame_rejects_trailing_bytes():
    with pytest.raises(FramingError):
        decode_frame(encode_frame(b"hello") + b"!")


def test_decode_frame_rejects_short_input():
    with pytest.raises(TruncatedMessage):
        decode_frame(b"\x00\x00")
    with pytest.raises(TruncatedMessage):
        decode_frame(struct.pack(">I", 100) + b"abc")


def test_decode_frame_rejects_oversized_declaration():
    with pytest.raises(MessageTooLarge):
        decode_frame(struct.pack(">I", 5000) + b"abc", max_size=4096)


class ShortWriter(io.RawIOBase):
    def writable(self):
        return True

    def write(self, data):
        return len(data) - 1


def test_short_write_raises_ioerror():
    with pytest.raises(IOError):
        send_message(ShortWriter(), b"payload")


def test_send_message_to_file_object():
    stream = io.BytesIO()
    send_message(stream, b"doc")
    assert stream.getvalue() == b"\x00\x00\x00\x03doc"
