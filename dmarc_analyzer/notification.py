import dataclasses
import html
import uuid
from dataclasses import dataclass, field
from email.header import Header
from email.utils import formatdate, parseaddr
from typing import List, Mapping, Optional

from dmarc_analyzer.content_type import ContentKind
from dmarc_analyzer.dmarc_event import AnalysisResult, Bad, FailureReason, Good
from dmarc_analyzer.headers import Headers
from dmarc_analyzer.mime_part import (
    Content,
    EmbeddedMessage,
    MimePart,
    MultipartContent,
    TextContent,
)
from dmarc_analyzer.policy import Policy

ORIGINAL_REPORT_NAME = "original-report.eml"
REVERSE_LOOKUP_URL = "https://mxtoolbox.com/SuperTool.aspx?action=ptr%3a{ip}&run=toolpage"

PROBLEM_DESCRIPTIONS: Mapping[FailureReason, str] = {
    FailureReason.APPROVED_SERVER_FAILED_FULLY: "Approved server is failing both verifications.",
    FailureReason.APPROVED_SERVER_FAILED_SPF: "Not included in the SPF record.",
    FailureReason.APPROVED_SERVER_FAILED_DKIM: "Not signed with DKIM properly.",
    FailureReason.UNAPPROVED_SERVER_PASSED_FULLY: "This unapproved server is passing fully.",
    FailureReason.UNAPPROVED_SERVER_PASSED_SPF: "Spam server included in SPF record.",
}


def _new_id() -> str:
    return str(uuid.uuid4()).upper()


def _encode_header(value: str) -> str:
    if value.isascii():
        return value
    return Header(value, "utf-8").encode()


@dataclass(frozen=True)
class Notification:
    sender: str
    recipient: str
    subject: str
    root: MimePart
    id: str = field(default_factory=_new_id)

    @property
    def message_id(self) -> str:
        _, address = parseaddr(self.sender)
        return f"<{self.id}@{address.rpartition('@')[2]}>"

    def render(self) -> str:
        headers = Headers.of(
            [
                ("From", self.sender),
                ("To", self.recipient),
                ("Subject", _encode_header(self.subject)),
                ("Date", formatdate(localtime=True)),
                ("Message-ID", self.message_id),
                ("MIME-Version", "1.0"),
            ]
        )
        headers.update(self.root.headers)
        return dataclasses.replace(self.root, headers=headers).render()

    def as_bytes(self) -> bytes:
        return self.render().encode("utf-8")


class MessageBuilder:
    """Collects HTML, plain text and attachments of a notification body.

    Text and HTML become a ``multipart/alternative`` part when both are
    present; attachments wrap the body in ``multipart/mixed``.
    """

    def __init__(self):
        self.html = ""
        self.plain = ""
        self.attachments: List[MimePart] = []

    def append_html(self, text: str):
        self.html += text

    def append_plain(self, text: str):
        self.plain += text

    def append_attachment(self, content: Content, name: Optional[str]):
        self.attachments.append(MimePart.from_content(content, name))

    def build(self) -> MimePart:
        body = self._body()
        if not self.attachments:
            return body or MimePart.from_content(
                TextContent(ContentKind.PLAIN_TEXT, "")
            )

        parts = ((body,) if body else ()) + tuple(self.attachments)
        return MimePart.from_content(
            MultipartContent(ContentKind.MULTIPART_MIXED, parts)
        )

    def _body(self) -> Optional[MimePart]:
        texts: List[MimePart] = []
        if self.plain:
            texts.append(
                MimePart.from_content(TextContent(ContentKind.PLAIN_TEXT, self.plain))
            )
        if self.html:
            texts.append(MimePart.from_content(TextContent(ContentKind.HTML, self.html)))

        if len(texts) > 1:
            return MimePart.from_content(
                MultipartContent(ContentKind.MULTIPART_ALTERNATIVE, tuple(texts))
            )
        return texts[0] if texts else None


def compose_problem_report(
    policy: Policy, domain: str, result: Bad, raw_email: str
) -> Notification:
    builder = MessageBuilder()
    builder.append_attachment(EmbeddedMessage(raw_email), ORIGINAL_REPORT_NAME)

    builder.append_html(
        f"<h1>Problems with {html.escape(domain)} "
        f"from {html.escape(result.org_name)}:</h1><table>"
    )
    builder.append_html(
        "<tr><th>IP Address</th><th>Is Approved Server</th><th>Problem</th></tr>"
    )
    for failure in result.failures:
        ip = html.escape(failure.source_ip)
        url = html.escape(REVERSE_LOOKUP_URL.format(ip=failure.source_ip), quote=True)
        approved = "Yes" if failure.reason.concerns_approved_server else "No"
        builder.append_html(
            f"<tr><td><a href='{url}'>{ip}</a></td><td>{approved}</td>"
            f"<td>{PROBLEM_DESCRIPTIONS[failure.reason]}</td></tr>"
        )
    builder.append_html("</table>")

    return Notification(
        sender=policy.source_email,
        recipient=policy.problem_email,
        subject=f"Problematic {domain} DMARC Report",
        root=builder.build(),
    )


def compose_passing_report(policy: Policy, result: Good) -> Notification:
    builder = MessageBuilder()
    builder.append_plain(f"All records passed from {result.org_name}")
    return Notification(
        sender=policy.source_email,
        recipient=policy.problem_email,
        subject="Passing DMARC Report",
        root=builder.build(),
    )


def compose_notification(
    policy: Policy,
    domain: str,
    result: AnalysisResult,
    raw_email: str,
    *,
    notify_on_pass: bool = False,
) -> Optional[Notification]:
    if isinstance(result, Bad):
        return compose_problem_report(policy, domain, result, raw_email)
    if notify_on_pass:
        return compose_passing_report(policy, result)
    return None
