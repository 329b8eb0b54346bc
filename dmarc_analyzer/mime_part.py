import uuid
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import structlog

from dmarc_analyzer.content_disposition import ContentDisposition
from dmarc_analyzer.content_type import Charset, ContentKind, ContentType
from dmarc_analyzer.headers import Headers
from dmarc_analyzer.transfer_encoding import (
    ContentTransferEncoding,
    decode_base64,
    decode_quoted_printable,
    encode_base64,
    encode_quoted_printable,
)

logger = structlog.get_logger()


class MimeError(Exception):
    pass


class MalformedBody(MimeError):
    pass


class UnrecognizedContentType(MimeError):
    def __init__(self, content_type: Optional[str]):
        super().__init__(f"an unknown content type was found '{content_type}'")
        self.content_type = content_type


class MalformedDeliveryStatus(MimeError):
    pass


@dataclass(frozen=True)
class DeliveryStatus:
    final_recipient: str
    status: str
    original_recipient: Optional[str] = None

    @classmethod
    def parse(cls, body: str) -> "DeliveryStatus":
        newline = "\r\n" if "\r\n" in body else "\n"
        original_recipient = None
        final_recipient = None
        status = None

        for line in body.split(newline):
            name, _, remaining = line.partition(":")
            remaining = remaining.strip()
            name = name.lower()
            if name == "final-recipient":
                final_recipient = _recipient(remaining)
            elif name == "original-recipient":
                original_recipient = _recipient(remaining)
            elif name == "status":
                status = remaining

        if final_recipient is None:
            raise MalformedDeliveryStatus(
                "the delivery status is missing a final recipient"
            )
        if status is None:
            raise MalformedDeliveryStatus("the delivery status is missing a status")
        return cls(
            final_recipient=final_recipient,
            status=status,
            original_recipient=original_recipient,
        )

    def render(self) -> str:
        rendered = ""
        if self.original_recipient is not None:
            rendered += f"Original-Recipient: rfc822; {self.original_recipient}\r\n"
        rendered += f"Final-Recipient: rfc822; {self.final_recipient}"
        rendered += f"\r\nStatus: {self.status}"
        return rendered


def _recipient(value: str) -> Optional[str]:
    """``rfc822; someone@example.com`` -> ``someone@example.com``"""
    _, separator, address = value.partition(";")
    if not separator:
        return None
    return address.split(";")[0].strip()


@dataclass(frozen=True)
class BinaryContent:
    kind: ContentKind
    data: bytes


@dataclass(frozen=True)
class TextContent:
    kind: ContentKind
    text: str


@dataclass(frozen=True)
class EmbeddedMessage:
    raw: str


@dataclass(frozen=True)
class MultipartContent:
    kind: ContentKind
    parts: Tuple["MimePart", ...]
    report_type: Optional[str] = None


Content = Union[
    BinaryContent, TextContent, DeliveryStatus, EmbeddedMessage, MultipartContent
]


@dataclass(frozen=True)
class MimePart:
    """One node of a decoded MIME tree.

    Leaf nodes carry a decoded payload, multipart nodes an ordered tuple of
    child parts. ``name`` is the attachment (or form-data) name taken from
    the ``Content-Disposition`` header.
    """

    content: Content
    content_type: ContentType
    headers: Headers = field(default_factory=Headers)
    name: Optional[str] = None

    @classmethod
    def from_bytes(
        cls, data: bytes, charset: Charset = Charset.ISO_LATIN_1
    ) -> "MimePart":
        try:
            raw = data.decode(charset.codec)
        except UnicodeDecodeError as err:
            raise MalformedBody(f"the message is not valid {charset.value}") from err
        return cls.parse(raw)

    @classmethod
    def parse(cls, raw: str, newline: Optional[str] = None) -> "MimePart":
        if newline is None:
            newline = "\r\n" if "\r\n" in raw else "\n"

        lines = raw.split(newline)
        header_lines: List[str] = []
        body = ""
        for index, line in enumerate(lines):
            if not line:
                body = newline.join(lines[index + 1 :])
                break
            if line.startswith((" ", "\t")) and header_lines:
                header_lines[-1] += " " + line.strip()
            else:
                header_lines.append(line)

        headers = Headers()
        for line in header_lines:
            name, separator, value = line.partition(": ")
            if separator:
                headers[name.lower()] = value

        return cls.decode(
            body,
            headers=headers,
            content_type=ContentType.parse(headers.get("content-type")),
            transfer_encoding=ContentTransferEncoding.parse(
                headers.get("content-transfer-encoding")
            ),
            disposition=ContentDisposition.parse(headers.get("content-disposition")),
        )

    @classmethod
    def decode(
        cls,
        body: str,
        *,
        headers: Headers,
        content_type: ContentType,
        transfer_encoding: ContentTransferEncoding,
        disposition: ContentDisposition,
    ) -> "MimePart":
        kind = content_type.kind
        content: Content
        if kind is ContentKind.OTHER:
            raise UnrecognizedContentType(content_type.raw)
        if kind.is_multipart:
            content = MultipartContent(
                kind,
                split_multipart(body, content_type.boundary or ""),
                report_type=content_type.report_type,
            )
        elif kind.is_text:
            charset = content_type.charset or Charset.UTF_8
            content = TextContent(kind, _decode_text(body, transfer_encoding, charset))
        elif kind is ContentKind.NONE_VALUE:
            content = TextContent(
                ContentKind.PLAIN_TEXT,
                _decode_text(body, transfer_encoding, Charset.ISO_LATIN_1),
            )
        elif kind.is_binary:
            content = BinaryContent(kind, _decode_data(body, transfer_encoding))
        elif kind is ContentKind.DELIVERY_STATUS:
            content = DeliveryStatus.parse(
                _decode_text(body, transfer_encoding, Charset.ISO_LATIN_1)
            )
        elif kind is ContentKind.EMAIL:
            content = EmbeddedMessage(
                _decode_text(body, transfer_encoding, Charset.ISO_LATIN_1)
            )
        else:
            raise UnrecognizedContentType(kind.value)

        return cls(
            content=content,
            content_type=content_type,
            headers=headers,
            name=disposition.attachment_name,
        )

    @classmethod
    def from_content(cls, content: Content, name: Optional[str] = None) -> "MimePart":
        return cls(content=content, content_type=_content_type_of(content, name), name=name)

    @property
    def children(self) -> Tuple["MimePart", ...]:
        if isinstance(self.content, MultipartContent):
            return self.content.parts
        if isinstance(self.content, EmbeddedMessage):
            try:
                return (MimePart.parse(self.content.raw),)
            except MimeError as err:
                logger.debug("Embedded message is not decodable.", error=str(err))
        return ()

    def walk(self) -> Iterator["MimePart"]:
        """Depth-first pre-order traversal, descending into embedded messages."""
        yield self
        for child in self.children:
            yield from child.walk()

    def part_of_kind(self, kind: ContentKind) -> Optional["MimePart"]:
        return next((part for part in self.walk() if part.content_type.kind is kind), None)

    def child_named(self, name: str) -> Optional["MimePart"]:
        if not isinstance(self.content, MultipartContent):
            return None
        return next((part for part in self.content.parts if part.name == name), None)

    def render(self) -> str:
        body, content_headers = _render_content(self.content, self.name)
        headers = Headers.of(self.headers.items())
        for name, value in content_headers:
            headers.set_or_remove(name, value)
        return headers.render() + "\r\n" + body


def split_multipart(body: str, boundary: str) -> Tuple[MimePart, ...]:
    """Split a multipart body on ``boundary`` and decode each segment.

    CRLF delimited boundaries take precedence over LF delimited ones. A body
    without a first boundary has no parts. Segments that fail to decode are
    dropped.
    """
    log = logger.bind(boundary=boundary)
    for newline in ("\r\n", "\n"):
        first_boundary = f"--{boundary}{newline}"
        start = body.find(first_boundary)
        if start >= 0:
            break
    else:
        log.debug("No first boundary found.")
        return ()

    segments = body[start + len(first_boundary) :].split(
        f"{newline}--{boundary}{newline}"
    )
    end = segments[-1].find(f"{newline}--{boundary}--")
    if end >= 0:
        segments[-1] = segments[-1][:end]

    parts = []
    for index, segment in enumerate(segments):
        try:
            parts.append(MimePart.parse(segment, newline=newline))
        except MimeError as err:
            log.debug("Skipping undecodable part.", index=index, error=str(err))
    return tuple(parts)


def _to_bytes(body: str) -> bytes:
    try:
        return body.encode("latin-1")
    except UnicodeEncodeError:
        return body.encode("utf-8")


def _decode_text(
    body: str, transfer_encoding: ContentTransferEncoding, charset: Charset
) -> str:
    if transfer_encoding is ContentTransferEncoding.QUOTED_PRINTABLE:
        return decode_quoted_printable(body, charset)
    if transfer_encoding is ContentTransferEncoding.BASE64:
        try:
            return decode_base64(_to_bytes(body)).decode(charset.codec)
        except UnicodeDecodeError:
            return body
    try:
        return _to_bytes(body).decode(charset.codec)
    except UnicodeDecodeError as err:
        raise MalformedBody(f"the body is not valid {charset.value}") from err


def _decode_data(body: str, transfer_encoding: ContentTransferEncoding) -> bytes:
    data = _to_bytes(body)
    if transfer_encoding is ContentTransferEncoding.BASE64:
        return decode_base64(data)
    return data


def _content_type_of(content: Content, name: Optional[str]) -> ContentType:
    if isinstance(content, TextContent):
        return ContentType(content.kind, charset=Charset.UTF_8)
    if isinstance(content, BinaryContent):
        if content.kind in (ContentKind.ZIP, ContentKind.GZIP):
            return ContentType(content.kind, name=name)
        return ContentType(content.kind)
    if isinstance(content, DeliveryStatus):
        return ContentType(ContentKind.DELIVERY_STATUS)
    if isinstance(content, EmbeddedMessage):
        return ContentType(ContentKind.EMAIL)
    return ContentType(content.kind, boundary="", report_type=content.report_type)


_RenderedHeaders = Sequence[Tuple[str, Optional[str]]]


def _content_headers(
    content_type: ContentType,
    disposition: Optional[ContentDisposition],
    transfer_encoding: ContentTransferEncoding,
) -> _RenderedHeaders:
    return (
        ("Content-Type", content_type.render()),
        ("Content-Disposition", disposition.render() if disposition else None),
        ("Content-Transfer-Encoding", transfer_encoding.render()),
    )


def _render_content(
    content: Content, name: Optional[str]
) -> Tuple[str, _RenderedHeaders]:
    quoted_printable = ContentTransferEncoding.QUOTED_PRINTABLE
    if isinstance(content, TextContent):
        return encode_quoted_printable(content.text), _content_headers(
            _content_type_of(content, name), None, quoted_printable
        )
    if isinstance(content, BinaryContent):
        return encode_base64(content.data), _content_headers(
            _content_type_of(content, name),
            ContentDisposition.attachment(name),
            ContentTransferEncoding.BASE64,
        )
    if isinstance(content, DeliveryStatus):
        return encode_quoted_printable(content.render()), _content_headers(
            _content_type_of(content, name), None, quoted_printable
        )
    if isinstance(content, EmbeddedMessage):
        return encode_quoted_printable(content.raw), _content_headers(
            _content_type_of(content, name),
            ContentDisposition.attachment(name),
            quoted_printable,
        )

    boundary = str(uuid.uuid4()).upper()
    content_type = ContentType(
        content.kind, boundary=boundary, report_type=content.report_type
    )
    body = "".join(f"--{boundary}\r\n{part.render()}\r\n" for part in content.parts)
    if content.parts:
        body += f"--{boundary}--"
    return body, _content_headers(
        content_type, None, ContentTransferEncoding.NONE_VALUE
    )
