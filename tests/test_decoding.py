import base64

from imap_mail_reader.models import TransferEncoding
from imap_mail_reader.utils.decoding import decode_header, decode_text, decode_transfer, parse_header_block


def test_decode_header_plain_values_pass_through():
    assert decode_header("Quarterly report") == "Quarterly report"
    assert decode_header(None) == ""
    assert decode_header("") == ""


def test_decode_header_utf8_and_legacy_charsets():
    assert decode_header("=?UTF-8?Q?R=C3=A9union?=") == "Réunion"
    assert decode_header("=?ISO-8859-1?Q?Caf=E9?=") == "Café"
    assert decode_header("=?utf-8?b?" + base64.b64encode("日本".encode()).decode() + "?=") == "日本"


def test_decode_header_mixed_words_keep_surrounding_text():
    value = decode_header("Re: =?ISO-8859-1?Q?Caf=E9?= ready")

    assert value.startswith("Re:")
    assert "Café" in value
    assert value.endswith("ready")


def test_decode_header_unknown_charset_does_not_raise():
    assert decode_header("=?X-UNKNOWN?Q?abc?=") == "abc"


def test_decode_transfer_base64_and_quoted_printable():
    payload = b"binary\x00data"
    wrapped = base64.encodebytes(payload)

    assert decode_transfer(wrapped, TransferEncoding.BASE64) == payload
    assert decode_transfer(b"Caf=C3=A9=\r\n menu", TransferEncoding.QUOTED_PRINTABLE) == "Café menu".encode()
    assert decode_transfer(b"as is", TransferEncoding.EIGHT_BIT) == b"as is"
    assert decode_transfer(b"as is", 5) == b"as is"


def test_decode_transfer_base64_repairs_missing_padding():
    assert decode_transfer(b"aGVsbG8", TransferEncoding.BASE64) == b"hello"


def test_decode_text_uses_declared_charset_then_detection():
    assert decode_text("Café".encode("latin-1"), "ISO-8859-1") == "Café"
    assert decode_text("Café".encode(), None) == "Café"
    assert decode_text(b"plain", "x-no-such-charset") == "plain"
    assert decode_text(b"", "utf-8") == ""


def test_parse_header_block_unfolds_and_keeps_first():
    raw = b"Subject: a very\r\n long subject\r\nFrom: a@example.com\r\nFrom: b@example.com\r\n\r\n"

    headers = parse_header_block(raw)

    assert headers == {"subject": "a very long subject", "from": "a@example.com"}
    assert parse_header_block(None) == {}
