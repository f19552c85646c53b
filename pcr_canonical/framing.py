"""
PCR Canonical Framing

Length-prefixed framing for the enclave -> host attestation channel.

WIRE FORMAT:
    [4 bytes big-endian unsigned length][length bytes of COSE_Sign1]

There is no magic number, version byte or checksum: the format is minimal and
unversioned. Integrity comes only from the COSE signature (see nitro.py).

One message per call. A receiver either returns the complete body or raises;
it NEVER returns a partial body.

Streams may be sockets (recv/sendall) or binary file objects (read/write).
"""

import logging
import socket
import struct
from typing import Optional

from pcr_canonical.constants import (
    FRAME_HEADER_FORMAT,
    FRAME_HEADER_SIZE,
    MAX_FRAME_LENGTH,
    DEFAULT_MAX_MESSAGE_SIZE,
    RECV_CHUNK_SIZE,
)
from pcr_canonical.errors import (
    TruncatedMessage,
    MessageTooLarge,
    ReceiveTimeout,
    FramingError,
)

logger = logging.getLogger(__name__)


def encode_frame(payload: bytes) -> bytes:
    """Prefix payload with its 4-byte big-endian length."""
    if len(payload) > MAX_FRAME_LENGTH:
        raise ValueError(f"payload of {len(payload)} bytes cannot be framed (max {MAX_FRAME_LENGTH})")
    return struct.pack(FRAME_HEADER_FORMAT, len(payload)) + bytes(payload)


def decode_frame(data: bytes, max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> bytes:
    """
    Unframe exactly one message held in memory (e.g. a captured wire dump).

    Raises:
        TruncatedMessage: header or body shorter than declared
        MessageTooLarge: declared length above max_size
        FramingError: bytes left over after the declared body
    """
    if len(data) < FRAME_HEADER_SIZE:
        raise TruncatedMessage(
            f"frame header needs {FRAME_HEADER_SIZE} bytes, got {len(data)}",
            expected=FRAME_HEADER_SIZE,
            received=len(data),
        )

    (length,) = struct.unpack(FRAME_HEADER_FORMAT, data[:FRAME_HEADER_SIZE])
    if length > max_size:
        raise MessageTooLarge(length, max_size)

    body = data[FRAME_HEADER_SIZE:]
    if len(body) < length:
        raise TruncatedMessage(
            f"frame body declared {length} bytes, got {len(body)}",
            expected=length,
            received=len(body),
        )
    if len(body) > length:
        raise FramingError(f"{len(body) - length} trailing bytes after {length}-byte frame")

    return bytes(body)


def _read_chunk(stream, size: int) -> bytes:
    if hasattr(stream, "recv"):
        return stream.recv(size)
    return stream.read(size)


def _read_exact(stream, count: int, what: str, header: bool) -> bytes:
    """
    Read exactly count bytes or raise.

    Grows the buffer as bytes arrive instead of allocating count up front.
    """
    buf = bytearray()
    while len(buf) < count:
        try:
            chunk = _read_chunk(stream, min(RECV_CHUNK_SIZE, count - len(buf)))
        except socket.timeout:
            # Only a header timeout with nothing consumed leaves the stream on a frame boundary
            raise ReceiveTimeout(
                f"timed out reading {what} ({len(buf)}/{count} bytes)",
                resumable=header and not buf,
            )
        if not chunk:
            raise TruncatedMessage(
                f"stream closed while reading {what} ({len(buf)}/{count} bytes)",
                expected=count,
                received=len(buf),
            )
        buf.extend(chunk)
    return bytes(buf)


def receive_message(
    stream,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Receive one length-prefixed message.

    Blocks until the full body has arrived or the stream ends.

    Args:
        stream: connected socket or readable binary file object
        max_size: largest accepted declared length; checked before the body is read
        timeout: per-recv timeout in seconds (sockets only)

    Returns:
        The message body (may be empty)

    Raises:
        TruncatedMessage: stream ended before header or body completed
        MessageTooLarge: declared length above max_size
        ReceiveTimeout: socket timeout; if not resumable the caller must close the stream
    """
    if timeout is not None and hasattr(stream, "settimeout"):
        stream.settimeout(timeout)

    header = _read_exact(stream, FRAME_HEADER_SIZE, "length header", header=True)
    (length,) = struct.unpack(FRAME_HEADER_FORMAT, header)

    logger.debug(f"[FRAME] Expecting message of {length} bytes")

    if length > max_size:
        logger.warning(f"[FRAME] Rejecting declared length {length} (limit {max_size})")
        raise MessageTooLarge(length, max_size)

    return _read_exact(stream, length, "message body", header=False)


def send_message(stream, payload: bytes) -> None:
    """
    Write one length-prefixed message as a single combined write.

    Raises:
        IOError: the write did not complete
    """
    frame = encode_frame(payload)

    if hasattr(stream, "sendall"):
        stream.sendall(frame)
    else:
        written = stream.write(frame)
        if written is not None and written != len(frame):
            raise IOError(f"short write: {written} of {len(frame)} bytes")
        if hasattr(stream, "flush"):
            stream.flush()

    logger.debug(f"[FRAME] Sent message of {len(payload)} bytes")
