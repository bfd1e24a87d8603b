"""Length-bounded splitting of target-dialect text.

Callers split text that is already transcoded. A cut never separates a
backslash from the character it escapes, and a formatting entity that is open
at the cut is closed at the end of the part and reopened at the start of the
next one, so every physical message parses on its own.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

from core.markdown_v2 import escape_plain, is_escaped

SEPARATOR_CHAR = "━"
SEPARATOR_LINE = SEPARATOR_CHAR * 25
PART_JOINER = "\n\n"

# Break points in order of preference; the offset used is the end of the match.
_BREAK_PATTERNS = (
    re.compile(r"\n\n"),
    re.compile(r"\n"),
    re.compile(r"[.!?]\s+"),
    re.compile(r",\s+"),
    re.compile(r"\s+"),
)
_MIN_CUT_RATIO = 0.8

# Longest first, so "__" reads as underline and not as two italic markers.
_ENTITY_DELIMITERS = ("```", "||", "__", "`", "*", "_", "~")
_CODE_DELIMITERS = ("```", "`")
_RUN_CHARS = "_|`"

_SEPARATOR_LINE_RE = re.compile(rf"^[ \t]*{SEPARATOR_CHAR}{{3,}}[ \t]*$\n?", re.MULTILINE)
_URL_RE = re.compile(r"https?://\S+")


def continuation_suffix(continuation_marker: str) -> str:
    """What every part but the last ends with; the marker is escaped for MarkdownV2."""

    return f"{PART_JOINER}{escape_plain(continuation_marker)}"


def _safe_offset(text: str, offset: int) -> int:
    # Never leave a dangling escape backslash, or half of "__", "||" or "```".
    while 0 < offset < len(text) and (
        is_escaped(text, offset)
        or (text[offset] in _RUN_CHARS and text[offset - 1] == text[offset] and not is_escaped(text, offset - 1))
    ):
        offset -= 1
    return offset


def _last_break(text: str, max_length: int) -> Optional[int]:
    window = text[: max_length + 1]
    for pattern in _BREAK_PATTERNS:
        candidates = [
            match
            for match in pattern.finditer(window)
            if 0 < len(window[: match.end()].rstrip()) <= max_length
        ]
        if candidates:
            return min(candidates[-1].end(), max_length)
    return None


def find_split_point(text: str, max_length: int) -> int:
    """Return the offset at which ``text`` should be cut to fit ``max_length``.

    Blank lines win over line breaks, which win over sentence ends, commas and
    plain whitespace. Without any of those the cut walks back from
    ``max_length`` to a space, but never below 80% of the limit.
    """

    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if len(text) <= max_length:
        return len(text)

    offset = _last_break(text, max_length)
    if offset is None:
        offset = max_length
        floor = max(1, int(max_length * _MIN_CUT_RATIO))
        position = max_length
        while position > floor:
            if text[position - 1].isspace():
                offset = position
                break
            position -= 1
    offset = _safe_offset(text, offset)
    return max(offset, 1)


def open_entities(text: str) -> Tuple[List[str], Optional[int]]:
    """Report what is still open at the end of MarkdownV2 ``text``.

    Returns the open delimiters, outermost first, and the offset of the ``[``
    when the text stops inside a link. Code contents and link targets never
    count as markup.
    """

    stack: List[str] = []
    link_start: Optional[int] = None
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if stack and stack[-1] in _CODE_DELIMITERS:
            if text.startswith(stack[-1], index):
                index += len(stack.pop())
            else:
                index += 1
            continue
        if char == "[":
            link_start = index
            index += 1
            continue
        if char == "]" and link_start is not None and text.startswith("](", index):
            close = index + 2
            while close < length and (text[close] != ")" or is_escaped(text, close)):
                close += 1
            if close >= length:
                break
            link_start = None
            index = close + 1
            continue
        for delimiter in _ENTITY_DELIMITERS:
            if text.startswith(delimiter, index):
                if stack and stack[-1] == delimiter:
                    stack.pop()
                else:
                    stack.append(delimiter)
                index += len(delimiter)
                break
        else:
            index += 1
    return stack, link_start


def _closing(part: str, stack: List[str]) -> str:
    closing = ""
    last = part[-1:]
    for delimiter in reversed(stack):
        # "___" is ambiguous: an italic closing before an underline one needs "\r".
        if last == "_" and delimiter.startswith("_"):
            closing += "\r"
        closing += delimiter
        last = delimiter[-1]
    return closing


def _cut(text: str, budget: int) -> Tuple[str, str]:
    """Take at most ``budget`` characters off the front of ``text``.

    Returns ``(head, rest)``. Entities open at the cut are closed in ``head``
    and reopened in ``rest``; the closing delimiters count against the budget.
    """

    limit = budget
    while True:
        cut = find_split_point(text, limit)
        stack, link_start = open_entities(text[:cut])
        if link_start is not None and text[:link_start].strip():
            cut = link_start
            stack, _ = open_entities(text[:cut])
        head, tail = text[:cut].strip(), text[cut:].strip()
        if not tail:
            return head, ""
        closing = _closing(head, stack)
        overflow = len(head) + len(closing) - budget
        if overflow > 0 and limit > 1:
            limit = max(1, limit - overflow)
            continue
        # A fence reopens on its own line so the first code line is not read as a language.
        rest = "".join("```\n" if delimiter == "```" else delimiter for delimiter in stack) + tail
        if len(rest) >= len(text):
            # Reopening would make no progress; cut plainly instead.
            return head, tail
        return f"{head}{closing}", rest


def split_long_text(text: str, max_length: int, continuation_marker: str) -> List[str]:
    """Split ``text`` into parts of at most ``max_length`` characters.

    Every part except the last ends with a blank line and the escaped
    ``continuation_marker``. Text that already fits comes back unchanged as the
    only part.
    """

    if len(text) <= max_length:
        return [text]

    suffix = continuation_suffix(continuation_marker)
    budget = max_length - len(suffix)
    if budget <= 0:
        raise ValueError(
            f"max_length {max_length} leaves no room for the continuation marker {continuation_marker!r}"
        )

    parts: List[str] = []
    remaining = text.strip()
    while len(remaining) > max_length:
        head, remaining = _cut(remaining, budget)
        parts.append(f"{head}{suffix}")
    if remaining:
        parts.append(remaining)
    return parts


def split_with_head(text: str, head_limit: int, tail_limit: int, continuation_marker: str) -> List[str]:
    """Like split_long_text, but the first part has its own, usually smaller, limit.

    Used when the head of a chain is a media caption and the rest are text
    messages.
    """

    if len(text) <= head_limit:
        return [text]
    suffix = continuation_suffix(continuation_marker)
    budget = head_limit - len(suffix)
    if budget <= 0:
        raise ValueError(
            f"head_limit {head_limit} leaves no room for the continuation marker {continuation_marker!r}"
        )
    head, rest = _cut(text.strip(), budget)
    if not rest:
        return [head]
    return [f"{head}{suffix}"] + split_long_text(rest, tail_limit, continuation_marker)


def remove_separator_line(text: str) -> str:
    """Drop the header separator line (a run of ``━``) to save room when splitting."""

    return _SEPARATOR_LINE_RE.sub("", text, count=1).strip()


def extract_header(text: str) -> Tuple[str, str]:
    """Split rendered text into ``(header, body)``.

    The header ends at the separator line when there is one, else at the first
    blank line. Text with neither is all body.
    """

    separator = _SEPARATOR_LINE_RE.search(text)
    if separator is not None:
        return text[: separator.start()].strip(), text[separator.end() :].strip()
    head, joiner, body = text.partition(PART_JOINER)
    if not joiner:
        return "", text.strip()
    return head.strip(), body.strip()


def has_url(text: str) -> bool:
    return _URL_RE.search(text) is not None
