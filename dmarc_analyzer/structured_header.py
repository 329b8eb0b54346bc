from enum import Enum
from typing import Dict, Optional


class _Mode(Enum):
    NONE = "none"
    QUOTED = "quoted"


def parse_structured_header(string: str) -> Dict[str, str]:
    """Parse a ``name=value; name2="quoted value"`` parameter list.

    The input is the remainder of a header value after its primary token,
    e.g. everything after ``multipart/mixed``. Names are lower-cased; later
    parameters overwrite earlier ones with the same name. Fragments that cannot be parsed are left
    out of the result instead of raising.
    """
    parameters: Dict[str, str] = {}

    mode = _Mode.NONE
    key = ""
    value: Optional[str] = None

    for char in string:
        if char == ";" and mode is _Mode.NONE:
            if value is not None:
                parameters[key.lower()] = value
            key = ""
            value = None
        elif char == "=" and value is None and mode is _Mode.NONE:
            value = ""
        elif char == " " and mode is _Mode.NONE:
            continue
        elif char == '"' and mode is _Mode.QUOTED:
            mode = _Mode.NONE
        elif char == '"' and value == "":
            mode = _Mode.QUOTED
        elif value is not None:
            value += char
        else:
            key += char

    if key:
        parameters[key.lower()] = value or ""

    return parameters
