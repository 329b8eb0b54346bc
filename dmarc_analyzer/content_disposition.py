from dataclasses import dataclass
from enum import Enum
from typing import Optional

from dmarc_analyzer.structured_header import parse_structured_header


class DispositionKind(Enum):
    INLINE = "inline"
    ATTACHMENT = "attachment"
    FORM_DATA = "form-data"
    NONE_VALUE = "none"
    OTHER = "other"


@dataclass(frozen=True)
class ContentDisposition:
    kind: DispositionKind
    name: Optional[str] = None
    raw: Optional[str] = None

    @classmethod
    def parse(cls, string: Optional[str]) -> "ContentDisposition":
        if not string:
            return cls(DispositionKind.NONE_VALUE)

        token, *parts = string.split(";")
        token = token.strip().lower()
        parameters = parse_structured_header(";".join(parts))

        if token == "inline":
            return cls(DispositionKind.INLINE)
        if token == "attachment":
            return cls(DispositionKind.ATTACHMENT, name=parameters.get("filename"))
        if token == "form-data" and "name" in parameters:
            return cls(DispositionKind.FORM_DATA, name=parameters["name"])
        return cls(DispositionKind.OTHER, raw=string)

    @classmethod
    def attachment(cls, filename: Optional[str] = None) -> "ContentDisposition":
        return cls(DispositionKind.ATTACHMENT, name=filename)

    @property
    def attachment_name(self) -> Optional[str]:
        if self.kind in (DispositionKind.ATTACHMENT, DispositionKind.FORM_DATA):
            return self.name
        return None

    def render(self) -> Optional[str]:
        if self.kind is DispositionKind.ATTACHMENT:
            if self.name is None:
                return "attachment"
            return f'attachment; filename="{self.name}"'
        if self.kind is DispositionKind.FORM_DATA:
            return f'form-data; name="{self.name}"'
        if self.kind is DispositionKind.INLINE:
            return "inline"
        if self.kind is DispositionKind.OTHER:
            return self.raw
        return None
