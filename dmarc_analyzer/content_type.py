from dataclasses import dataclass
from enum import Enum
from typing import List, Mapping, Optional

from dmarc_analyzer.structured_header import parse_structured_header


class Charset(Enum):
    UTF_8 = "utf-8"
    US_ASCII = "us-ascii"
    WINDOWS_1252 = "windows-1252"
    ISO_LATIN_1 = "iso-8859-1"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Charset":
        """Only us-ascii and windows-1252 override the UTF-8 default."""
        if label is None:
            return cls.UTF_8
        return {
            "us-ascii": cls.US_ASCII,
            "windows-1252": cls.WINDOWS_1252,
        }.get(label.strip().lower(), cls.UTF_8)

    @property
    def codec(self) -> str:
        return {
            Charset.UTF_8: "utf-8",
            Charset.US_ASCII: "ascii",
            Charset.WINDOWS_1252: "cp1252",
            Charset.ISO_LATIN_1: "latin-1",
        }[self]


class ContentKind(Enum):
    PDF = "application/pdf"
    PNG = "image/png"
    JPEG = "image/jpeg"
    OCTET_STREAM = "application/octet-stream"
    CSV = "text/csv"
    JSON = "application/json"
    MP4 = "video/mp4"
    HTML = "text/html"
    PLAIN_TEXT = "text/plain"
    ZIP = "application/zip"
    GZIP = "application/gzip"
    DELIVERY_STATUS = "message/delivery-status"
    EMAIL = "message/rfc822"

    MULTIPART_FORM_DATA = "multipart/form-data"
    MULTIPART_ALTERNATIVE = "multipart/alternative"
    MULTIPART_MIXED = "multipart/mixed"
    MULTIPART_RELATED = "multipart/related"
    MULTIPART_REPORT = "multipart/report"

    NONE_VALUE = "none"
    OTHER = "other"

    @property
    def is_multipart(self) -> bool:
        return self in MULTIPART_KINDS

    @property
    def is_text(self) -> bool:
        return self in TEXT_KINDS

    @property
    def is_binary(self) -> bool:
        return self in BINARY_KINDS


MULTIPART_KINDS = frozenset(
    {
        ContentKind.MULTIPART_FORM_DATA,
        ContentKind.MULTIPART_ALTERNATIVE,
        ContentKind.MULTIPART_MIXED,
        ContentKind.MULTIPART_RELATED,
        ContentKind.MULTIPART_REPORT,
    }
)
TEXT_KINDS = frozenset({ContentKind.HTML, ContentKind.PLAIN_TEXT, ContentKind.JSON})
BINARY_KINDS = frozenset(
    {
        ContentKind.PDF,
        ContentKind.PNG,
        ContentKind.JPEG,
        ContentKind.OCTET_STREAM,
        ContentKind.CSV,
        ContentKind.MP4,
        ContentKind.ZIP,
        ContentKind.GZIP,
    }
)


@dataclass(frozen=True)
class ContentType:
    """Classified ``Content-Type`` header value.

    Only the attributes relevant to ``kind`` are set: ``charset`` for text
    kinds, ``name`` for zip and gzip, ``boundary`` for multipart kinds (plus
    ``report_type`` for multipart/report) and ``raw`` for ``OTHER``.
    """

    kind: ContentKind
    charset: Optional[Charset] = None
    name: Optional[str] = None
    boundary: Optional[str] = None
    report_type: Optional[str] = None
    raw: Optional[str] = None

    @classmethod
    def parse(cls, string: Optional[str]) -> "ContentType":
        if string is None:
            return cls(ContentKind.NONE_VALUE)

        token, *parts = string.split(";")
        token = token.strip().lower()
        remaining = ";".join(parts)

        if token in _MULTIPART_TOKENS:
            return _parse_multipart(_MULTIPART_TOKENS[token], parts, string)
        if token in _TEXT_TOKENS:
            charset = parse_structured_header(remaining).get("charset")
            return cls(_TEXT_TOKENS[token], charset=Charset.from_label(charset))
        if token in _ARCHIVE_TOKENS:
            name = parse_structured_header(remaining).get("name")
            return cls(_ARCHIVE_TOKENS[token], name=name)
        if token in _SIMPLE_TOKENS:
            return cls(_SIMPLE_TOKENS[token])
        return cls.other(string)

    @classmethod
    def other(cls, string: str) -> "ContentType":
        return cls(ContentKind.OTHER, raw=string)

    @property
    def is_decodable(self) -> bool:
        return self.kind is not ContentKind.OTHER

    def render(self) -> Optional[str]:
        if self.kind is ContentKind.NONE_VALUE:
            return None
        if self.kind is ContentKind.OTHER:
            return self.raw
        if self.kind.is_multipart:
            rendered = f"{self.kind.value}; boundary={_quote(self.boundary or '')}"
            if self.kind is ContentKind.MULTIPART_REPORT:
                rendered += f"; report-type={self.report_type}"
            return rendered
        if self.kind.is_text:
            charset = self.charset or Charset.UTF_8
            return f"{self.kind.value}; charset={charset.value}"
        if self.kind in (ContentKind.ZIP, ContentKind.GZIP) and self.name:
            return f"{self.kind.value}; name={_quote(self.name)}"
        return self.kind.value


def _quote(value: str) -> str:
    return f'"{value}"'


def _parse_multipart(kind: ContentKind, parts: List[str], string: str) -> ContentType:
    if not parts:
        return ContentType.other(string)
    parameters = parse_structured_header(";".join(parts))
    boundary = parameters.get("boundary")
    if not boundary:
        return ContentType.other(string)
    if kind is ContentKind.MULTIPART_REPORT:
        report_type = parameters.get("report-type")
        if report_type is None:
            return ContentType.other(string)
        return ContentType(kind, boundary=boundary, report_type=report_type)
    return ContentType(kind, boundary=boundary)


_MULTIPART_TOKENS: Mapping[str, ContentKind] = {
    kind.value: kind for kind in MULTIPART_KINDS
}
_TEXT_TOKENS: Mapping[str, ContentKind] = {kind.value: kind for kind in TEXT_KINDS}
_ARCHIVE_TOKENS: Mapping[str, ContentKind] = {
    "application/zip": ContentKind.ZIP,
    "application/x-zip-compressed": ContentKind.ZIP,
    "application/gzip": ContentKind.GZIP,
}
_SIMPLE_TOKENS: Mapping[str, ContentKind] = {
    "application/pdf": ContentKind.PDF,
    "video/mp4": ContentKind.MP4,
    "application/octet-stream": ContentKind.OCTET_STREAM,
    "text/csv": ContentKind.CSV,
    "message/delivery-status": ContentKind.DELIVERY_STATUS,
    "message/rfc822": ContentKind.EMAIL,
    "image/jpeg": ContentKind.JPEG,
    "image/jpg": ContentKind.JPEG,
    "image/png": ContentKind.PNG,
}
