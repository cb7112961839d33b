import anyio

from imap_mail_reader.models import DownloadResult, Email, EmailOverview
from imap_mail_reader.server import create_server, parse_args
from imap_mail_reader.tooling import MailDownloadAttachmentResult, MailGetResult, MailListResult


def test_create_server_registers_mail_tools(make_reader):
    session = make_reader()
    server = create_server(session.settings, session)

    tools = anyio.run(server.list_tools)

    assert {tool.name for tool in tools} == {
        "mail.list_mailboxes",
        "mail.list",
        "mail.search",
        "mail.get",
        "mail.download_attachment",
        "mail.delete",
        "mail.expunge",
    }


def test_list_result_uses_header_keys():
    overview = EmailOverview(id=4, subject="Hi", from_="a@example.com")

    result = MailListResult.build("INBOX", [overview], total=10)

    assert result.items[0]["from"] == "a@example.com"
    assert result.total == 10


def test_get_result_drops_absent_bodies():
    result = MailGetResult.build(Email(id=1, body_plain="text"))

    assert result.email["body_plain"] == "text"
    assert "body_html" not in result.email


def test_download_result_carries_message_id():
    result = MailDownloadAttachmentResult.build(
        7, DownloadResult(filename="a.pdf", size=3, type="APPLICATION/PDF", path="/tmp/a.pdf")
    )

    assert result.message_id == 7
    assert result.path == "/tmp/a.pdf"


def test_parse_args_transport():
    args = parse_args(["--transport", "sse"])

    assert args.transport == "sse"
