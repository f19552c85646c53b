import cbor2
import pytest


def build_document(pcrs=None, payload_doc=None, tagged=False, extra_fields=None):
    """
    Build a COSE_Sign1-shaped attestation document (unsigned).

    pcrs is placed under "pcrs" unless payload_doc is given explicitly.
    """
    if payload_doc is None:
        payload_doc = {
            "module_id": "i-0123456789abcdef0-enc0123456789abcd",
            "timestamp": 1700000000000,
            "digest": "SHA384",
            "pcrs": pcrs if pcrs is not None else {},
        }
        if extra_fields:
            payload_doc.update(extra_fields)
    envelope = [b"\xa1\x01\x38\x22", {}, cbor2.dumps(payload_doc), b"\x00" * 96]
    if tagged:
        return cbor2.dumps(cbor2.CBORTag(18, envelope))
    return cbor2.dumps(envelope)


@pytest.fixture
def make_document():
    return build_document
