from __future__ import annotations

from dataclasses import dataclass

from .errors import InputFormatError


@dataclass(frozen=True)
class TagPair:
    code: int
    value: str


def scan_tags(text: str | bytes) -> list[TagPair]:
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8-sig", errors="replace")
    if not isinstance(text, str):
        raise InputFormatError(
            f"DXF input must be str or bytes, got {type(text).__name__}"
        )

    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    pairs: list[TagPair] = []
    i = 0
    n = len(lines)
    while i < n:
        code_line = lines[i].strip()
        i += 1
        if code_line == "":
            continue
        if i >= n:
            break
        value = lines[i]
        i += 1
        try:
            code = int(code_line)
        except ValueError:
            continue
        pairs.append(TagPair(code, value))

    if not pairs:
        raise InputFormatError("the provided file does not contain any DXF data")
    return pairs
