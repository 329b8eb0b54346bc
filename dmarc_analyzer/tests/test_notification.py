import pytest

from dmarc_analyzer.content_type import ContentKind
from dmarc_analyzer.dmarc_event import Bad, DmarcFailure, FailureReason, Good
from dmarc_analyzer.mime_part import (
    BinaryContent,
    EmbeddedMessage,
    MimePart,
    MultipartContent,
    TextContent,
)
from dmarc_analyzer.notification import (
    ORIGINAL_REPORT_NAME,
    MessageBuilder,
    Notification,
    compose_notification,
    compose_passing_report,
    compose_problem_report,
)

RAW_EMAIL = "From: noreply-dmarc-support@google.com\nSubject: Report\n\nbody\n"

BAD_RESULT = Bad(
    org_name="google.com",
    failures=(
        DmarcFailure("192.168.1.35", FailureReason.APPROVED_SERVER_FAILED_SPF),
        DmarcFailure("192.168.1.50", FailureReason.UNAPPROVED_SERVER_PASSED_FULLY),
    ),
)


def html_of(part: MimePart) -> str:
    html = part.part_of_kind(ContentKind.HTML)
    assert html is not None
    assert isinstance(html.content, TextContent)
    return html.content.text


def test_problem_report_addresses_problem_email(policy):
    notification = compose_problem_report(policy, "example.com", BAD_RESULT, RAW_EMAIL)
    assert notification.sender == "dmarc-analyzer@example.com"
    assert notification.recipient == "dmarc@example.com"
    assert notification.subject == "Problematic example.com DMARC Report"


def test_problem_report_lists_failures(policy):
    notification = compose_problem_report(policy, "example.com", BAD_RESULT, RAW_EMAIL)
    assert html_of(notification.root) == (
        "<h1>Problems with example.com from google.com:</h1><table>"
        "<tr><th>IP Address</th><th>Is Approved Server</th><th>Problem</th></tr>"
        "<tr><td><a href='https://mxtoolbox.com/SuperTool.aspx?action=ptr%3a"
        "192.168.1.35&amp;run=toolpage'>192.168.1.35</a></td><td>Yes</td>"
        "<td>Not included in the SPF record.</td></tr>"
        "<tr><td><a href='https://mxtoolbox.com/SuperTool.aspx?action=ptr%3a"
        "192.168.1.50&amp;run=toolpage'>192.168.1.50</a></td><td>No</td>"
        "<td>This unapproved server is passing fully.</td></tr>"
        "</table>"
    )


def test_problem_report_escapes_html(policy):
    result = Bad(
        org_name="<b>evil</b>",
        failures=(
            DmarcFailure("<script>", FailureReason.UNAPPROVED_SERVER_PASSED_SPF),
        ),
    )
    html = html_of(compose_problem_report(policy, "example.com", result, "").root)
    assert "<b>" not in html
    assert "<script>" not in html
    assert "from &lt;b&gt;evil&lt;/b&gt;:" in html
    assert ">&lt;script&gt;</a>" in html
    assert "Spam server included in SPF record." in html


def test_problem_report_attaches_original_email(policy):
    root = compose_problem_report(policy, "example.com", BAD_RESULT, RAW_EMAIL).root
    assert isinstance(root.content, MultipartContent)
    assert root.content.kind is ContentKind.MULTIPART_MIXED
    attachment = root.child_named(ORIGINAL_REPORT_NAME)
    assert attachment is not None
    assert attachment.content == EmbeddedMessage(RAW_EMAIL)


def test_rendered_problem_report_can_be_parsed(policy):
    notification = compose_problem_report(policy, "example.com", BAD_RESULT, RAW_EMAIL)

    parsed = MimePart.parse(notification.render())

    assert parsed.headers["from"] == "dmarc-analyzer@example.com"
    assert parsed.headers["to"] == "dmarc@example.com"
    assert parsed.headers["subject"] == "Problematic example.com DMARC Report"
    assert parsed.headers["message-id"] == f"<{notification.id}@example.com>"
    assert parsed.headers["mime-version"] == "1.0"
    assert "date" in parsed.headers
    assert html_of(parsed) == html_of(notification.root)
    attachment = parsed.child_named(ORIGINAL_REPORT_NAME)
    assert attachment is not None
    assert attachment.content == EmbeddedMessage(RAW_EMAIL)


def test_non_ascii_subject_is_encoded(policy):
    notification = compose_problem_report(policy, "bücher.example", BAD_RESULT, "")
    rendered = notification.render()
    assert rendered.isascii()
    assert "Subject: =?utf-8?" in rendered


def test_notification_ids_are_unique(policy):
    first = compose_passing_report(policy, Good("google.com"))
    second = compose_passing_report(policy, Good("google.com"))
    assert first.id != second.id
    assert first.id == first.id.upper()


def test_passing_report(policy):
    notification = compose_passing_report(policy, Good("google.com"))
    assert notification.subject == "Passing DMARC Report"
    assert notification.recipient == "dmarc@example.com"
    assert notification.root.content == TextContent(
        ContentKind.PLAIN_TEXT, "All records passed from google.com"
    )


def test_compose_notification_skips_passing_reports_by_default(policy):
    assert compose_notification(policy, "example.com", Good("google.com"), "") is None


def test_compose_notification_on_pass(policy):
    notification = compose_notification(
        policy, "example.com", Good("google.com"), "", notify_on_pass=True
    )
    assert notification is not None
    assert notification.subject == "Passing DMARC Report"


def test_compose_notification_for_problems(policy):
    notification = compose_notification(policy, "example.com", BAD_RESULT, RAW_EMAIL)
    assert isinstance(notification, Notification)
    assert notification.subject == "Problematic example.com DMARC Report"


def test_builder_without_content_builds_empty_text():
    assert MessageBuilder().build().content == TextContent(ContentKind.PLAIN_TEXT, "")


def test_builder_combines_plain_and_html_as_alternative():
    builder = MessageBuilder()
    builder.append_plain("Hello")
    builder.append_html("<p>Hello</p>")

    root = builder.build()

    assert isinstance(root.content, MultipartContent)
    assert root.content.kind is ContentKind.MULTIPART_ALTERNATIVE
    assert [p.content for p in root.content.parts] == [
        TextContent(ContentKind.PLAIN_TEXT, "Hello"),
        TextContent(ContentKind.HTML, "<p>Hello</p>"),
    ]


def test_builder_wraps_attachments_in_mixed():
    builder = MessageBuilder()
    builder.append_html("<p>")
    builder.append_html("Hello</p>")
    builder.append_attachment(BinaryContent(ContentKind.ZIP, b"PK"), "report.zip")

    root = builder.build()

    assert isinstance(root.content, MultipartContent)
    assert root.content.kind is ContentKind.MULTIPART_MIXED
    html, attachment = root.content.parts
    assert html.content == TextContent(ContentKind.HTML, "<p>Hello</p>")
    assert attachment.name == "report.zip"


def test_builder_with_attachment_only():
    builder = MessageBuilder()
    builder.append_attachment(EmbeddedMessage("Subject: Hi\n\n"), "original.eml")

    root = builder.build()

    assert isinstance(root.content, MultipartContent)
    assert [p.name for p in root.content.parts] == ["original.eml"]


def test_builder_with_html_only_returns_html_part():
    builder = MessageBuilder()
    builder.append_html("<p>Hello</p>")
    assert builder.build().content == TextContent(ContentKind.HTML, "<p>Hello</p>")
