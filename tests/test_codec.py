import zlib

import pytest

from dtnchat import sms
from dtnchat.codec import decode, encode, encode_indefinite_array
from dtnchat.errors import MalformedPayload, UnexpectedPayload


def test_codec_round_trip() -> None:
    obj = [True, b"hello", {"k": 1}]
    assert decode(encode(obj)) == obj


def test_indefinite_array_decodes_as_list() -> None:
    data = encode_indefinite_array([[1, 2], b"x"])
    assert data[:1] == b"\x9f" and data[-1:] == b"\xff"
    assert decode(data) == [[1, 2], b"x"]


@pytest.mark.parametrize("compress", [True, False])
@pytest.mark.parametrize("text", ["hi", "grüße aus dem Netz", "multi\nline text", "🚀 launch"])
def test_sms_round_trip(text: str, compress: bool) -> None:
    assert sms.decode(sms.encode(text, compress)) == (compress, text)


def test_sms_trims_before_encoding() -> None:
    assert sms.decode(sms.encode("  hello world \n", False)) == (False, "hello world")


def test_sms_rejects_empty_message() -> None:
    with pytest.raises(MalformedPayload):
        sms.encode("   ", True)


def test_sms_compressed_body_is_smaller_for_repetitive_text() -> None:
    text = "ping " * 50
    assert len(sms.encode(text, True)) < len(sms.encode(text, False))


def test_sms_rejects_flag_mismatch() -> None:
    # flagged compressed but plain text body
    with pytest.raises(MalformedPayload):
        sms.decode(encode([True, b"plain text"]))
    # flagged plain but compressed body
    with pytest.raises(MalformedPayload):
        sms.decode(encode([False, zlib.compress(b"hello")]))


def test_sms_rejects_wrong_shapes() -> None:
    for obj in ([True], ["yes", b"x"], [False, "not bytes"], {"x": 1}, 5):
        with pytest.raises(UnexpectedPayload):
            sms.decode(encode(obj))
    with pytest.raises(UnexpectedPayload):
        sms.decode(b"\xff\xff\xff")


def test_sms_accepts_map_form() -> None:
    assert sms.decode(encode({"comp": False, "data": b"hey"})) == (False, "hey")
