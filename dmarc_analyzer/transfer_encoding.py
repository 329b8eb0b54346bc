import base64
import binascii
from enum import Enum
from typing import Callable, Dict, List, Optional

from dmarc_analyzer.content_type import Charset

BASE64_LINE_LENGTH = 76
QUOTED_PRINTABLE_LINE_LENGTH = 75
SOFT_LINE_BREAK = "=\r\n"

_HEX_DIGITS = frozenset("0123456789ABCDEFabcdef")


class ContentTransferEncoding(Enum):
    QUOTED_PRINTABLE = "quoted-printable"
    BASE64 = "base64"
    EIGHT_BIT = "8bit"
    SEVEN_BIT = "7bit"
    NONE_VALUE = "none"
    OTHER = "other"

    @classmethod
    def parse(cls, string: Optional[str]) -> "ContentTransferEncoding":
        if not string:
            return cls.NONE_VALUE
        try:
            encoding = cls(string.strip().lower())
        except ValueError:
            return cls.OTHER
        if encoding in (cls.NONE_VALUE, cls.OTHER):
            return cls.OTHER
        return encoding

    def render(self) -> Optional[str]:
        if self in (ContentTransferEncoding.NONE_VALUE, ContentTransferEncoding.OTHER):
            return None
        return self.value.upper()


def decode_base64(data: bytes) -> bytes:
    """Decode base64 ignoring line breaks; returns ``data`` unchanged if invalid."""
    joined = data.replace(b"\r\n", b"").replace(b"\n", b"")
    try:
        return base64.b64decode(joined, validate=True)
    except binascii.Error:
        return data


def encode_base64(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return "\r\n".join(
        encoded[i : i + BASE64_LINE_LENGTH]
        for i in range(0, len(encoded), BASE64_LINE_LENGTH)
    )


class _QpState(Enum):
    NONE = "none"
    EQUAL = "equal"
    CARRIAGE_RETURN = "carriage-return"


class _QuotedPrintableDecoder:
    """Scanner with the states ``none``, ``equal(first digit)`` and
    ``carriage return`` (an ``=`` followed by a lone CR).

    Escaped bytes are buffered until the next literal character so that
    multi-byte characters decode as a whole.
    """

    def __init__(self, charset: Charset):
        self.charset = charset
        self.state = _QpState.NONE
        self.first_digit: Optional[str] = None
        self._output: List[str] = []
        self._pending = bytearray()
        self._transitions: Dict[_QpState, Callable[[str], None]] = {
            _QpState.NONE: self._on_none,
            _QpState.EQUAL: self._on_equal,
            _QpState.CARRIAGE_RETURN: self._on_carriage_return,
        }

    def decode(self, string: str) -> str:
        for token in _tokenize(string):
            self._transitions[self.state](token)
        if self.state is _QpState.EQUAL and self.first_digit is not None:
            self._cancel_escape()
        self._flush()
        return "".join(self._output)

    def _on_none(self, token: str):
        if token == "=":
            self._start_escape()
        elif token == "\r\n":
            self._emit("\n")
        else:
            self._emit(token)

    def _on_equal(self, token: str):
        first = self.first_digit
        if token == "=":
            self._cancel_escape()
            self._start_escape()
        elif token in ("\r\n", "\n") and first is None:
            self._reset()
        elif token == "\r" and first is None:
            self.state = _QpState.CARRIAGE_RETURN
        elif token in _HEX_DIGITS and first is None:
            self.first_digit = token
        elif token in _HEX_DIGITS:
            self._pending.append(int(first + token, 16))
            self._reset()
        else:
            self._cancel_escape()
            self._on_none(token)

    def _on_carriage_return(self, token: str):
        if token == "\n":
            self._reset()
            return
        self._emit("=\r")
        self._reset()
        self._on_none(token)

    def _start_escape(self):
        self.state = _QpState.EQUAL
        self.first_digit = None

    def _cancel_escape(self):
        self._emit("=" + (self.first_digit or ""))
        self._reset()

    def _reset(self):
        self.state = _QpState.NONE
        self.first_digit = None

    def _emit(self, text: str):
        self._flush()
        self._output.append(text)

    def _flush(self):
        if self._pending:
            decoded = bytes(self._pending).decode(self.charset.codec, errors="replace")
            self._output.append(decoded.replace("\ufffd", "?"))
            self._pending.clear()


def _tokenize(string: str):
    index = 0
    while index < len(string):
        if string.startswith("\r\n", index):
            yield "\r\n"
            index += 2
        else:
            yield string[index]
            index += 1


def decode_quoted_printable(string: str, charset: Charset = Charset.UTF_8) -> str:
    return _QuotedPrintableDecoder(charset).decode(string)


def encode_quoted_printable(string: str) -> str:
    result: List[str] = []
    line_length = 0

    for byte in string.encode("utf-8"):
        if 32 <= byte <= 126 and byte != ord("="):
            result.append(chr(byte))
            line_length += 1
        elif byte == ord("\r"):
            continue
        elif byte == ord("\n"):
            if result and result[-1] == " ":
                result.append(SOFT_LINE_BREAK)
            result.append("\r\n")
            line_length = 0
        else:
            if line_length > QUOTED_PRINTABLE_LINE_LENGTH - 3:
                result.append(SOFT_LINE_BREAK)
                line_length = 0
            result.append(f"={byte:02X}")
            line_length += 3

        if line_length == QUOTED_PRINTABLE_LINE_LENGTH:
            result.append(SOFT_LINE_BREAK)
            line_length = 0

    return "".join(result)
