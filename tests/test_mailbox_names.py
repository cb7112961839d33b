import pytest

from imap_mail_reader.utils.mailbox_names import decode_mailbox, encode_mailbox, quote_mailbox


def test_encode_shifts_non_ascii_runs():
    assert encode_mailbox("Été") == "&AMk-t&AOk-"
    assert encode_mailbox("R&D") == "R&-D"
    assert encode_mailbox("INBOX") == "INBOX"


def test_decode_handles_escaped_ampersand_and_shifted_runs():
    assert decode_mailbox("&AMk-t&AOk-") == "Été"
    assert decode_mailbox("R&-D") == "R&D"
    assert decode_mailbox("&ZeVnLIqe-") == "日本語"


@pytest.mark.parametrize("name", ["&AMk", "Sent&", "&A-"])
def test_decode_rejects_malformed_names(name):
    with pytest.raises(ValueError):
        decode_mailbox(name)


def test_quote_mailbox_encodes_and_escapes():
    assert quote_mailbox('Été "x"') == '"&AMk-t&AOk- \\"x\\""'
