"""
PCR Canonical Measurement Digest

Extend-style SHA-384 digests, used to correlate an external identity string
(e.g. an EC2 instance ID) with a PCR value.

A PCR starts as 48 zero bytes and is "extended" by hashing the current
register value concatenated with new data. The identity digest is a single
extend from the zeroed state:

    SHA384( 0x00 * 48 || UTF8(identity) )

This is ONE hash over the 48+N byte buffer, not a hash of a hash.
"""

import hashlib

from pcr_canonical.constants import PCR_DIGEST_LENGTH

ZERO_REGISTER = bytes(PCR_DIGEST_LENGTH)


def extend_digest(register: bytes, data: bytes) -> bytes:
    """
    Extend a 48-byte register with data.

    Raises:
        ValueError: register is not 48 bytes
    """
    if len(register) != PCR_DIGEST_LENGTH:
        raise ValueError(f"register must be {PCR_DIGEST_LENGTH} bytes, got {len(register)}")
    h = hashlib.sha384()
    h.update(register)
    h.update(data)
    return h.digest()


def calculate_sha384(identity: str) -> str:
    """
    Extend-from-zero SHA-384 of an identity string.

    Returns:
        96-character lowercase hex string
    """
    return extend_digest(ZERO_REGISTER, identity.encode("utf-8")).hex()


# =============================================================================
# UNIT TESTS
# =============================================================================

def test_calculate_sha384_empty():
    """Known-answer vector for the empty identity."""
    expected = (
        "8f0d145c0368ad6b70be22e41c400eea91b971d96ba220fe"
        "c9fae25a58dffdaaf72dbe8f6783d55128c9df4efaf6f8a7"
    )
    result = calculate_sha384("")
    assert result == expected, f"Unexpected digest: {result}"
    print("✅ Empty identity vector test passed")


def test_calculate_sha384_deterministic():
    """Same input, same output; always 96 lowercase hex chars."""
    first = calculate_sha384("i-0123456789abcdef0")
    second = calculate_sha384("i-0123456789abcdef0")
    assert first == second, "Digest should be deterministic"
    assert len(first) == 96, f"Expected 96 chars, got {len(first)}"
    assert first == first.lower(), "Digest should be lowercase"
    print("✅ Determinism test passed")


def test_extend_digest_rejects_short_register():
    """Registers must be exactly 48 bytes."""
    try:
        extend_digest(b"\x00" * 32, b"data")
    except ValueError:
        print("✅ Short register rejected")
        return
    raise AssertionError("32-byte register should be rejected")


if __name__ == "__main__":
    print("Running pcr_canonical/digest.py unit tests...\n")

    test_calculate_sha384_empty()
    test_calculate_sha384_deterministic()
    test_extend_digest_rejects_short_register()

    print("\n" + "=" * 50)
    print("All tests completed!")
