"""
AWS Nitro Security Module (NSM) Python Library
===============================================

Python bindings to the AWS Nitro Secure Module (/dev/nsm) for requesting
attestation documents that contain PCR measurements.

Based on: https://github.com/aws/aws-nitro-enclaves-nsm-api

The NSM device uses ioctl() calls with specific request/response structures.
"""

import ctypes
import fcntl
import os
from typing import Any, Dict, Optional

import cbor2

NSM_DEVICE = "/dev/nsm"
NSM_IOCTL_MAGIC = 0x0A

# Max sizes for NSM requests/responses
NSM_REQUEST_MAX_SIZE = 0x1000  # 4KB
NSM_RESPONSE_MAX_SIZE = 0x3000  # 12KB

# Linux _IOC encoding
_IOC_NRBITS = 8
_IOC_TYPEBITS = 8
_IOC_SIZEBITS = 14
_IOC_NRSHIFT = 0
_IOC_TYPESHIFT = _IOC_NRSHIFT + _IOC_NRBITS
_IOC_SIZESHIFT = _IOC_TYPESHIFT + _IOC_TYPEBITS
_IOC_DIRSHIFT = _IOC_SIZESHIFT + _IOC_SIZEBITS
_IOC_WRITE = 1
_IOC_READ = 2


class NSMError(Exception):
    """Exception raised for NSM operation errors."""
    pass


class NSMMessage(ctypes.Structure):
    """struct nsm_message { request, request_len, response, response_len }"""
    _fields_ = [
        ("request", ctypes.POINTER(ctypes.c_ubyte)),
        ("request_len", ctypes.c_uint32),
        ("response", ctypes.POINTER(ctypes.c_ubyte)),
        ("response_len", ctypes.c_uint32),
    ]


def _iowr(type_: int, nr: int, size: int) -> int:
    return ((_IOC_READ | _IOC_WRITE) << _IOC_DIRSHIFT) | (type_ << _IOC_TYPESHIFT) | \
           (nr << _IOC_NRSHIFT) | (size << _IOC_SIZESHIFT)


NSM_IOCTL_REQUEST = _iowr(NSM_IOCTL_MAGIC, 0, ctypes.sizeof(NSMMessage))


def build_attestation_request(
    user_data: Optional[bytes] = None,
    nonce: Optional[bytes] = None,
    public_key: Optional[bytes] = None,
) -> bytes:
    """
    CBOR request body: {"Attestation": {"user_data": ..., "nonce": ..., "public_key": ...}}
    """
    attestation: Dict[str, bytes] = {}
    if user_data is not None:
        attestation["user_data"] = user_data
    if nonce is not None:
        attestation["nonce"] = nonce
    if public_key is not None:
        attestation["public_key"] = public_key

    request = cbor2.dumps({"Attestation": attestation})
    if len(request) > NSM_REQUEST_MAX_SIZE:
        raise NSMError(f"NSM request is {len(request)} bytes (max {NSM_REQUEST_MAX_SIZE})")
    return request


def parse_attestation_response(response: Dict[str, Any]) -> bytes:
    """
    Pull the raw COSE_Sign1 bytes out of an NSM response.

    Response format: {"Attestation": {"document": <bytes>}} or {"Error": "..."}
    """
    if not isinstance(response, dict):
        raise NSMError(f"Invalid NSM response type: {type(response).__name__}")
    if "Error" in response:
        raise NSMError(f"NSM returned an error: {response['Error']}")

    attestation = response.get("Attestation")
    if not isinstance(attestation, dict):
        raise NSMError("Invalid attestation response: missing 'Attestation' key")

    document = attestation.get("document")
    if not isinstance(document, bytes) or not document:
        raise NSMError("NSM device did not return an attestation document")
    return document


def _nsm_ioctl(request_cbor: bytes) -> bytes:
    if not os.path.exists(NSM_DEVICE):
        raise NSMError(f"{NSM_DEVICE} not found - not running in Nitro Enclave")

    request_buffer = bytearray(NSM_REQUEST_MAX_SIZE)
    request_buffer[:len(request_cbor)] = request_cbor
    response_buffer = bytearray(NSM_RESPONSE_MAX_SIZE)

    req_buf = (ctypes.c_ubyte * len(request_buffer)).from_buffer(request_buffer)
    resp_buf = (ctypes.c_ubyte * len(response_buffer)).from_buffer(response_buffer)

    msg = NSMMessage()
    msg.request = req_buf
    msg.request_len = len(request_cbor)
    msg.response = resp_buf
    msg.response_len = len(response_buffer)

    fd = os.open(NSM_DEVICE, os.O_RDWR)
    try:
        fcntl.ioctl(fd, NSM_IOCTL_REQUEST, msg)
    except OSError as e:
        raise NSMError(f"NSM ioctl failed: {e}") from e
    finally:
        os.close(fd)

    return bytes(response_buffer[:msg.response_len])


def get_attestation_document(
    user_data: Optional[bytes] = None,
    nonce: Optional[bytes] = None,
    public_key: Optional[bytes] = None,
) -> bytes:
    """
    Request an attestation document from the Nitro Security Module.

    Args:
        user_data: Optional user data to include (max 512 bytes)
        nonce: Optional nonce for replay protection (max 512 bytes)
        public_key: Optional public key to bind to the attestation (DER)

    Returns:
        Raw COSE_Sign1 attestation document bytes

    Raises:
        NSMError: device unavailable, ioctl failure, or error response
    """
    request_cbor = build_attestation_request(user_data=user_data, nonce=nonce, public_key=public_key)
    response_data = _nsm_ioctl(request_cbor)

    try:
        response = cbor2.loads(response_data)
    except Exception as e:
        raise NSMError(f"NSM response is not CBOR: {e}") from e

    return parse_attestation_response(response)
