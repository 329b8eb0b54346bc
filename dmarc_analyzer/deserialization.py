import gzip
import io
import os.path
import zlib
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from xml.parsers.expat import ExpatError
from zipfile import BadZipFile, ZipFile

import structlog
import xmltodict

from dmarc_analyzer.analyzer import MissingFeedbackElement
from dmarc_analyzer.content_type import ContentKind
from dmarc_analyzer.mime_part import BinaryContent, MimePart

logger = structlog.get_logger()

Handler = Callable[[Optional[str], bytes], Optional[bytes]]


def gunzip(data: bytes) -> bytes:
    return gzip.decompress(data)


def unzip(data: bytes) -> List[Tuple[str, bytes]]:
    with ZipFile(io.BytesIO(data), "r") as zip_file:
        return [(name, zip_file.read(name)) for name in zip_file.namelist()]


def handle_application_gzip(_filename: Optional[str], gzip_bytes: bytes) -> bytes:
    return gunzip(gzip_bytes)


def handle_application_zip(
    _filename: Optional[str], zip_bytes: bytes
) -> Optional[bytes]:
    for name, data in unzip(zip_bytes):
        if name.lower().endswith(".xml"):
            return data
    return None


def handle_octet_stream(filename: Optional[str], data: bytes) -> Optional[bytes]:
    return file_extension_handlers[_extension(filename)](filename, data)


content_kind_handlers: Mapping[ContentKind, Handler] = {
    ContentKind.ZIP: handle_application_zip,
    ContentKind.GZIP: handle_application_gzip,
}

file_extension_handlers: Mapping[str, Handler] = {
    ".gz": handle_application_gzip,
    ".zip": handle_application_zip,
}


def _extension(filename: Optional[str]) -> str:
    _, file_extension = os.path.splitext(filename or "")
    return file_extension.lower()


class ReportExtractionError(Exception):
    def __init__(self, msg: MimePart, reason: str = "no report found"):
        super().__init__(reason)
        self.msg = msg
        self.reason = reason

    def __str__(self):
        from_email = self.msg.headers.get("from", "<from missing>")
        subject = self.msg.headers.get("subject", "<no subject>")
        return (
            f"Failed to extract report from email by {from_email} "
            f"with subject '{subject}': {self.reason}."
        )


class MissingAttachment(ReportExtractionError):
    pass


def find_report_attachment(msg: MimePart) -> Optional[Tuple[MimePart, Handler]]:
    """Zip attachments take precedence over gzip attachments, which take
    precedence over octet-stream attachments named ``*.zip`` or ``*.gz``."""
    for kind, handler in content_kind_handlers.items():
        part = msg.part_of_kind(kind)
        if part is not None:
            return part, handler
    for part in msg.walk():
        if (
            part.content_type.kind is ContentKind.OCTET_STREAM
            and _extension(part.name) in file_extension_handlers
        ):
            return part, handle_octet_stream
    return None


def get_report_xml_from_email(msg: MimePart) -> bytes:
    found = find_report_attachment(msg)
    if found is None:
        raise MissingAttachment(msg, "no zip or gzip attachment was found")
    part, handler = found
    if not isinstance(part.content, BinaryContent):
        raise MissingAttachment(msg, "the report attachment has no data")

    log = logger.bind(
        content_type=part.content_type.kind.value,
        attachment=part.name,
        size=len(part.content.data),
    )
    log.debug("Found report attachment.")
    try:
        xml = handler(part.name, part.content.data)
    except (BadZipFile, OSError, EOFError, zlib.error) as err:
        raise ReportExtractionError(msg, f"corrupt archive ({err})") from err
    if not xml:
        raise MissingAttachment(msg, "the archive contains no XML report")
    return xml


def parse_report_xml(xml: bytes) -> Dict[str, Any]:
    try:
        tree = xmltodict.parse(xml)
    except ExpatError as err:
        raise MissingFeedbackElement(f"the report is not valid XML ({err})") from err
    if not isinstance(tree, Mapping) or "feedback" not in tree:
        raise MissingFeedbackElement()
    return tree


def get_aggregate_report_from_email(msg: MimePart) -> Dict[str, Any]:
    return parse_report_xml(get_report_xml_from_email(msg))
