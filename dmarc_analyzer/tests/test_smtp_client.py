from unittest.mock import MagicMock, patch

import pytest

from dmarc_analyzer.content_type import ContentKind
from dmarc_analyzer.mime_part import MimePart, TextContent
from dmarc_analyzer.notification import Notification
from dmarc_analyzer.smtp_client import ConnectionConfig, deliver, write_to_outbox

CONNECTION = ConnectionConfig(
    username="dmarc-analyzer", password="secret", host="smtp.example.com", port=587
)


@pytest.fixture(name="notification")
def fixture_notification() -> Notification:
    return Notification(
        sender="dmarc-analyzer@example.com",
        recipient="dmarc@example.com",
        subject="Passing DMARC Report",
        root=MimePart.from_content(TextContent(ContentKind.PLAIN_TEXT, "All good")),
        id="3F2504E0-4F89-11D3-9A0C-0305E82C3301",
    )


def test_write_to_outbox_creates_directory(tmp_path, notification):
    outbox = tmp_path / "outbox" / "nested"

    path = write_to_outbox(notification, outbox)

    assert path == outbox / "3F2504E0-4F89-11D3-9A0C-0305E82C3301.eml"
    parsed = MimePart.from_bytes(path.read_bytes())
    assert parsed.headers["subject"] == "Passing DMARC Report"
    assert parsed.content == TextContent(ContentKind.PLAIN_TEXT, "All good")


def test_deliver_prefers_outbox_over_smtp(tmp_path, notification):
    with patch("dmarc_analyzer.smtp_client.SMTP") as smtp_cls:
        path = deliver(notification, connection=CONNECTION, outbox=tmp_path)

    assert path == tmp_path / f"{notification.id}.eml"
    assert path.exists()
    smtp_cls.assert_not_called()


def test_deliver_without_connection_drops_notification(notification):
    with patch("dmarc_analyzer.smtp_client.SMTP") as smtp_cls:
        assert deliver(notification) is None
    smtp_cls.assert_not_called()


def test_deliver_sends_via_smtp(notification):
    smtp = MagicMock()
    with patch("dmarc_analyzer.smtp_client.SMTP") as smtp_cls:
        smtp_cls.return_value.__enter__.return_value = smtp
        assert deliver(notification, connection=CONNECTION) is None

    smtp_cls.assert_called_once_with("smtp.example.com", 587)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("dmarc-analyzer", "secret")
    smtp.sendmail.assert_called_once()
    sender, recipients, message = smtp.sendmail.call_args.args
    assert sender == "dmarc-analyzer@example.com"
    assert recipients == ["dmarc@example.com"]
    assert MimePart.from_bytes(message).headers["message-id"] == (
        notification.message_id
    )


def test_connection_defaults_to_submission_port(notification):
    with patch("dmarc_analyzer.smtp_client.SMTP") as smtp_cls:
        deliver(notification, connection=ConnectionConfig("user", "password"))

    smtp_cls.assert_called_once_with("localhost", 587)
    smtp_cls.return_value.__enter__.return_value.starttls.assert_called_once()
