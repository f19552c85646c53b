import cbor2
import pytest

from pcr_canonical.errors import MalformedEvidence
from pcr_canonical.evidence import coerce_pcr_index, coerce_pcr_value, decode_evidence

DIGEST = bytes(range(48))


@pytest.mark.parametrize("key,expected", [
    (0, 0),
    (15, 15),
    (2 ** 64 - 1, 2 ** 64 - 1),
    (-1, None),
    (2 ** 64, None),
    (1.5, None),
    (True, None),
    ("0", None),
    (b"\x00", None),
    (None, None),
])
def test_coerce_pcr_index(key, expected):
    assert coerce_pcr_index(key) == expected


@pytest.mark.parametrize("value,expected", [
    (b"\x01\x02", b"\x01\x02"),
    (bytearray(b"\x01\x02"), b"\x01\x02"),
    ([1, 2, 255], b"\x01\x02\xff"),
    ((0, 0), b"\x00\x00"),
    ([], b""),
    ([256], None),
    ([-1], None),
    ([1, "2"], None),
    ([True], None),
    ("0011", None),
    (7, None),
    ({0: 1}, None),
])
def test_coerce_pcr_value(value, expected):
    assert coerce_pcr_value(value) == expected


def test_decodes_pcr_table():
    result = decode_evidence(cbor2.dumps({"pcrs": {0: DIGEST, 1: b"\x00" * 48}}))
    assert result.pcrs == {0: DIGEST, 1: b"\x00" * 48}
    assert result.skipped == ()


def test_byte_array_encoding_is_equivalent():
    result = decode_evidence(cbor2.dumps({"pcrs": {3: list(DIGEST)}}))
    assert result.pcrs == {3: DIGEST}


def test_float_key_is_skipped_not_fatal():
    result = decode_evidence(cbor2.dumps({"pcrs": {1.5: DIGEST, 2: DIGEST}}))
    assert result.pcrs == {2: DIGEST}
    assert len(result.skipped) == 1
    assert "key" in result.skipped[0].reason


def test_bad_value_is_skipped_not_fatal():
    result = decode_evidence(cbor2.dumps({"pcrs": {0: "not bytes", 1: DIGEST, 2: [300]}}))
    assert result.pcrs == {1: DIGEST}
    assert [entry.key for entry in result.skipped] == ["0", "2"]


def test_other_document_keys_are_ignored():
    result = decode_evidence(cbor2.dumps({"module_id": "x", "nonce": None, "pcrs": {0: DIGEST}}))
    assert result.pcrs == {0: DIGEST}


def test_missing_pcrs():
    with pytest.raises(MalformedEvidence) as excinfo:
        decode_evidence(cbor2.dumps({"module_id": "x"}))
    assert "pcrs missing or wrong type" in str(excinfo.value)
    assert excinfo.value.stage == "evidence"


@pytest.mark.parametrize("pcrs", ["string", [DIGEST], b"bytes", 0])
def test_wrong_type_pcrs(pcrs):
    with pytest.raises(MalformedEvidence):
        decode_evidence(cbor2.dumps({"pcrs": pcrs}))


@pytest.mark.parametrize("payload", [cbor2.dumps([1, 2]), cbor2.dumps("pcrs"), b"\x44\x01", b""])
def test_payload_not_a_map(payload):
    with pytest.raises(MalformedEvidence):
        decode_evidence(payload)


def test_empty_pcrs_map_is_valid():
    result = decode_evidence(cbor2.dumps({"pcrs": {}}))
    assert result.pcrs == {}


def _pcrs_payload(*entries):
    """Hand-encode {"pcrs": {...}} so entries may collide under Python equality."""
    body = b"".join(cbor2.dumps(key) + cbor2.dumps(value) for key, value in entries)
    return b"\xa1" + cbor2.dumps("pcrs") + bytes([0xa0 + len(entries)]) + body


@pytest.mark.parametrize("impostor", [0.0, False])
def test_impostor_key_does_not_replace_pcr0(impostor):
    forged = b"\xee" * 48
    result = decode_evidence(_pcrs_payload((0, DIGEST), (impostor, forged)))
    assert result.pcrs == {0: DIGEST}
    assert [entry.key for entry in result.skipped] == [repr(impostor)]


def test_bool_key_does_not_replace_pcr1():
    result = decode_evidence(_pcrs_payload((1, DIGEST), (True, b"\xee" * 48)))
    assert result.pcrs == {1: DIGEST}
    assert result.skipped[0].key == "True"


def test_impostor_key_before_real_key():
    result = decode_evidence(_pcrs_payload((1.0, b"\xee" * 48), (1, DIGEST)))
    assert result.pcrs == {1: DIGEST}
    assert len(result.skipped) == 1


def test_indefinite_length_pcrs_map():
    payload = b"\xa1" + cbor2.dumps("pcrs") + b"\xbf" + cbor2.dumps(4) + cbor2.dumps(DIGEST) + b"\xff"
    result = decode_evidence(payload)
    assert result.pcrs == {4: DIGEST}


def test_trailing_bytes_after_payload_rejected():
    with pytest.raises(MalformedEvidence) as excinfo:
        decode_evidence(cbor2.dumps({"pcrs": {0: DIGEST}}) + b"\xff\xff garbage")
    assert "trailing" in str(excinfo.value)
