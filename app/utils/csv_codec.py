"""Line codec for the CSV tables.

One record per line, so values never contain a raw line break on disk: backslashes, newlines,
carriage returns and commas are backslash-escaped first, and any value that still holds a comma
or a quote is then wrapped in double quotes with inner quotes doubled.

Decoding trims whitespace around every field unless ``strip=False`` is passed; with trimming on,
leading/trailing spaces of a value are not preserved.
"""
from __future__ import annotations
import re
from typing import Any, Dict, List, Mapping, Sequence

from app.errors import DecodeError

DELIMITER = ","
QUOTE = '"'

_ESCAPES = {"n": "\n", "r": "\r", ",": ",", '"': '"', "\\": "\\"}
_ESCAPE_RE = re.compile(r"\\(.)", re.S)


def _escape(value: Any) -> str:
    if value is None:
        return ""
    s = str(value)
    s = s.replace("\\", "\\\\").replace("\n", "\\n").replace("\r", "\\r").replace(DELIMITER, "\\" + DELIMITER)
    if DELIMITER in s or QUOTE in s or "\n" in s:
        s = QUOTE + s.replace(QUOTE, QUOTE * 2) + QUOTE
    return s


def _unescape(value: str) -> str:
    # unknown sequences such as "\t" are left untouched
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(0)), value)


def split_line(line: str, strip: bool = True) -> List[str]:
    """Split one raw line on unquoted delimiters. Quote handling only, no unescaping."""
    fields: List[str] = []
    buf: List[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == QUOTE:
            if in_quotes and i + 1 < n and line[i + 1] == QUOTE:
                buf.append(QUOTE)
                i += 2
                continue
            in_quotes = not in_quotes
        elif ch == DELIMITER and not in_quotes:
            fields.append("".join(buf))
            buf = []
        else:
            buf.append(ch)
        i += 1
    if in_quotes:
        raise DecodeError(line)
    fields.append("".join(buf))
    if strip:
        fields = [f.strip() for f in fields]
    return fields


def encode_line(record: Mapping[str, Any], header: Sequence[str]) -> str:
    """Encode ``record`` in ``header`` order; fields missing from the record are written empty."""
    return DELIMITER.join(_escape(record.get(field)) for field in header)


def encode_header(header: Sequence[str]) -> str:
    return DELIMITER.join(header)


def decode_line(line: str, header: Sequence[str], strip: bool = True) -> Dict[str, str]:
    values = split_line(line, strip=strip)
    record: Dict[str, str] = {}
    for index, field in enumerate(header):
        record[field] = _unescape(values[index]) if index < len(values) else ""
    return record
