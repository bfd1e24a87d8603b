"""Telegram MarkdownV2 escaping primitives.

Every character in the reserved set must be backslash-escaped when it appears
outside an entity. Code entities only need the backtick and the backslash
escaped, and link targets only ``)`` and the backslash.
"""

from __future__ import annotations

import re

RESERVED_CHARS = "_*[]()~`>#+-=|{}.!\\"

# Characters that must be escaped in Telegram MarkdownV2 plain text
_MDV2_ESCAPE_RE = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")
_CODE_ESCAPE_RE = re.compile(r"([`\\])")
_URL_ESCAPE_RE = re.compile(r"([)\\])")


def escape_markdown_v2(text: str) -> str:
    """Escape every reserved character; the literal-text fallback of the engine."""

    if not text:
        return ""
    return _MDV2_ESCAPE_RE.sub(r"\\\1", text)


def escape_code(text: str) -> str:
    return _CODE_ESCAPE_RE.sub(r"\\\1", text)


def escape_url(url: str) -> str:
    return _URL_ESCAPE_RE.sub(r"\\\1", url)


def escape_plain(text: str) -> str:
    """Escape reserved characters but keep existing ``\\X`` escapes as they are.

    A backslash that already escapes a reserved character is passed through, so
    escaping text that was escaped before does not double the backslashes.
    """

    out: list[str] = []
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\\" and index + 1 < length and text[index + 1] in RESERVED_CHARS:
            out.append(text[index : index + 2])
            index += 2
            continue
        if char in RESERVED_CHARS:
            out.append("\\")
        out.append(char)
        index += 1
    return "".join(out)


def is_escaped(text: str, index: int) -> bool:
    """Return True when ``text[index]`` is preceded by an odd run of backslashes."""

    backslashes = 0
    position = index - 1
    while position >= 0 and text[position] == "\\":
        backslashes += 1
        position -= 1
    return backslashes % 2 == 1
