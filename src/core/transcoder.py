"""Source markdown → Telegram MarkdownV2 transcoding (core domain).

The transcoder runs a fixed pipeline:
1) Protect code blocks and inline code behind opaque placeholders
2) Turn headings into bold markup
3) Neutralize mentions and custom emoji
4) Re-delimit links and formatting using sentinel delimiters
5) Re-delimit quotes
6) Detect non-overlapping spans, most specific pattern first
7) Escape everything outside accepted spans
8) Balance-check paired delimiters, then restore placeholders

Recognized markup is rewritten into private-use sentinel characters instead of
the target's own delimiters. Span detection only ever sees sentinels, so a raw
``*`` left in the text (for example a single-star italic marker) is always
literal and gets escaped, never mistaken for target bold.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Callable, List, Optional, Tuple

from core.markdown_v2 import (
    escape_code,
    escape_markdown_v2,
    escape_plain,
    escape_url,
    is_escaped,
)
from core.models import MentionDirectory

LOGGER = logging.getLogger(__name__)

BOLD = "bold"
STRIKETHROUGH = "strikethrough"
UNDERLINE = "underline"
SPOILER = "spoiler"
LINK = "link"
QUOTE = "quote"
INLINE_CODE = "inlineCode"
CODE_BLOCK = "codeBlock"

# Sentinel delimiters (Unicode private use area).
_PH_OPEN = "\ue000"
_PH_CLOSE = "\ue001"
_B = "\ue010"
_I = "\ue011"
_U = "\ue012"
_S = "\ue013"
_SP = "\ue014"
_Q = "\ue015"
_LO = "\ue016"
_LM = "\ue017"
_LC = "\ue018"

_SENTINEL_RE = re.compile("[\ue000-\ue01f]")
_PLACEHOLDER_RE = re.compile(f"{_PH_OPEN}(\\d+){_PH_CLOSE}")
_LINK_TARGET_RE = re.compile(f"{_LM}({_PH_OPEN}\\d+{_PH_CLOSE}){_LC}$")

# Target delimiter for each sentinel when it is part of an accepted span.
_TARGET_DELIMITERS = {
    _B: "*",
    _I: "_",
    _U: "__",
    _S: "~",
    _SP: "||",
    _Q: ">",
    _LO: "[",
    _LM: "](",
    _LC: ")",
}

# Escaped source text for a sentinel that did not end up in any span.
_LITERAL_DELIMITERS = {
    _B: "\\*\\*",
    _I: "\\*",
    _U: "\\_\\_",
    _S: "\\~\\~",
    _SP: "\\|\\|",
    _Q: "\\>",
    _LO: "\\[",
    _LM: "\\]\\(",
    _LC: "\\)",
}

PAIRED_DELIMITERS = "*_~|"

_FENCED_CODE_RE = re.compile(r"(?<!\\)```(?:([\w+#-]+)\n)?([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"(?<!\\)`([^`\n]+)`")
_HEADING_RE = re.compile(r"^#{1,3} +(.+?)[ \t]*$", re.MULTILINE)

_USER_MENTION_RE = re.compile(r"<@!?(\d+)>")
_ROLE_MENTION_RE = re.compile(r"<@&(\d+)>")
_CHANNEL_MENTION_RE = re.compile(r"<#(\d+)>")
_MASS_MENTION_RE = re.compile(r"@(everyone|here)\b")
_CUSTOM_EMOJI_RE = re.compile(r"<a?:(\w+):\d+>")

_LINK_RE = re.compile(r"(?<!\\)\[([^\]\n]+)\]\(([^)\s]+)\)")
_BARE_URL_RE = re.compile(r"https?://[^\s<>]+")

# Source delimiter combinations, richest first, and their sentinel rewrite.
_DELIMITER_TABLE: List[Tuple[re.Pattern, Tuple[str, ...]]] = [
    (re.compile(r"(?<!\\)__\*\*\*(.+?)(?<!\\)\*\*\*__"), (_U, _B, _I)),
    (re.compile(r"(?<!\\)__\*\*(.+?)(?<!\\)\*\*__"), (_U, _B)),
    (re.compile(r"(?<!\\)__\*(.+?)(?<!\\)\*__"), (_U, _I)),
    (re.compile(r"(?<!\\)\*\*\*(.+?)(?<!\\)\*\*\*"), (_B, _I)),
    (re.compile(r"(?<!\\)\*\*(.+?)(?<!\\)\*\*"), (_B,)),
    (re.compile(r"(?<!\\)__(.+?)(?<!\\)__"), (_U,)),
    (re.compile(r"(?<!\\)~~(.+?)(?<!\\)~~"), (_S,)),
    (re.compile(r"(?<!\\)\|\|(.+?)(?<!\\)\|\|"), (_SP,)),
]

_QUOTE_LINE_RE = re.compile(r"^> ", re.MULTILINE)
_MULTI_QUOTE_RE = re.compile(r"^>>> ", re.MULTILINE)


def _pair(kind: str, *delimiters: str) -> Tuple[str, re.Pattern]:
    opening = "".join(delimiters)
    closing = "".join(reversed(delimiters))
    outer = delimiters[0]
    return kind, re.compile(f"{opening}[^{outer}\\n]*?{closing}")


# Span patterns in priority order: combined styles, single styles, links,
# quotes, then protected placeholders.
_SPAN_PATTERNS: List[Tuple[str, re.Pattern]] = [
    _pair(UNDERLINE, _U, _B, _I),
    _pair(UNDERLINE, _U, _B),
    _pair(UNDERLINE, _U, _I),
    _pair(BOLD, _B, _I),
    _pair(BOLD, _B),
    _pair(UNDERLINE, _U),
    _pair(STRIKETHROUGH, _S),
    _pair(SPOILER, _SP),
    (LINK, re.compile(f"{_LO}[^{_LO}{_LC}\\n]*?{_LM}{_PH_OPEN}\\d+{_PH_CLOSE}{_LC}")),
    (QUOTE, re.compile(f"^{_Q}", re.MULTILINE)),
    (CODE_BLOCK, _PLACEHOLDER_RE),
]


@dataclass(frozen=True)
class FormattingSpan:
    """An accepted run of markup, already rendered in the target dialect."""

    kind: str
    raw_text: str
    start: int
    end: int


@dataclass(frozen=True)
class ProtectedToken:
    placeholder: str
    replacement: str
    raw: str = ""


class _TokenVault:
    """Placeholders for content that must bypass every markup transformation."""

    def __init__(self) -> None:
        self.tokens: List[ProtectedToken] = []

    def protect(self, replacement: str, raw: str = "") -> str:
        placeholder = f"{_PH_OPEN}{len(self.tokens)}{_PH_CLOSE}"
        self.tokens.append(ProtectedToken(placeholder, replacement, raw))
        return placeholder

    def get(self, placeholder: str) -> ProtectedToken:
        match = _PLACEHOLDER_RE.fullmatch(placeholder)
        if match is None:
            raise ValueError(f"Not a placeholder: {placeholder!r}")
        return self.tokens[int(match.group(1))]

    def restore(self, text: str) -> str:
        # Restored content is never rescanned, so code cannot smuggle placeholders.
        return _PLACEHOLDER_RE.sub(lambda m: self.tokens[int(m.group(1))].replacement, text)


def _protect_code(text: str, vault: _TokenVault) -> str:
    def fenced(match: re.Match) -> str:
        language = match.group(1)
        code = escape_code(match.group(2))
        if language:
            return vault.protect(f"```{language}\n{code}```")
        return vault.protect(f"```{code}```")

    def inline(match: re.Match) -> str:
        return vault.protect(f"`{escape_code(match.group(1))}`")

    text = _FENCED_CODE_RE.sub(fenced, text)
    return _INLINE_CODE_RE.sub(inline, text)


def _normalize_headings(text: str) -> str:
    return _HEADING_RE.sub(r"**\1**", text)


def _display(name: str) -> str:
    # Display names are inert text: pre-escape so they never form markup.
    return escape_markdown_v2(name)


def _neutralize_references(text: str, mentions: MentionDirectory) -> str:
    def user(match: re.Match) -> str:
        return _display(f"＠{mentions.users.get(match.group(1), 'User')}")

    def role(match: re.Match) -> str:
        return _display(f"＠{mentions.roles.get(match.group(1), 'Role')}")

    def channel(match: re.Match) -> str:
        return _display(f"#{mentions.channels.get(match.group(1), 'channel')}")

    text = _USER_MENTION_RE.sub(user, text)
    text = _ROLE_MENTION_RE.sub(role, text)
    text = _CHANNEL_MENTION_RE.sub(channel, text)
    text = _MASS_MENTION_RE.sub(r"＠\1", text)
    return _CUSTOM_EMOJI_RE.sub(lambda m: _display(f":{m.group(1)}:"), text)


def _redelimit_links(text: str, vault: _TokenVault) -> str:
    def link(match: re.Match) -> str:
        url = match.group(2)
        target = vault.protect(escape_markdown_v2(url), raw=url)
        return f"{_LO}{match.group(1)}{_LM}{target}{_LC}"

    text = _LINK_RE.sub(link, text)
    # Bare URLs are protected so that "__" or "**" inside them stay literal.
    return _BARE_URL_RE.sub(lambda m: vault.protect(escape_markdown_v2(m.group(0)), raw=m.group(0)), text)


def _redelimit_formatting(text: str) -> str:
    for pattern, sentinels in _DELIMITER_TABLE:
        opening = "".join(sentinels)
        closing = "".join(reversed(sentinels))
        text = pattern.sub(lambda m, o=opening, c=closing: f"{o}{m.group(1)}{c}", text)
    return text


def _redelimit_quotes(text: str) -> str:
    multi = _MULTI_QUOTE_RE.search(text)
    if multi is not None:
        head = text[: multi.start()]
        quoted = "\n".join(f"{_Q}{line}" for line in text[multi.end() :].split("\n"))
        return _QUOTE_LINE_RE.sub(_Q, head) + quoted
    return _QUOTE_LINE_RE.sub(_Q, text)


def _escape_span_content(text: str) -> str:
    # Inside a span only raw paired delimiters are escaped; other reserved
    # characters stay as they are.
    out: List[str] = []
    for index, char in enumerate(text):
        if char in PAIRED_DELIMITERS and not is_escaped(text, index):
            out.append("\\")
        out.append(char)
    return "".join(out)


def _render_span(kind: str, segment: str, vault: _TokenVault) -> str:
    if kind == CODE_BLOCK:
        return segment
    if kind == LINK:
        target = _LINK_TARGET_RE.search(segment)
        if target is not None:
            token = vault.get(target.group(1))
            if token.raw:
                # Inside the parentheses only ")" and "\" need escaping.
                link_target = vault.protect(escape_url(token.raw), raw=token.raw)
                segment = segment[: target.start(1)] + link_target + segment[target.end(1) :]

    out: List[str] = []
    buffer: List[str] = []
    for index, char in enumerate(segment):
        if char in _TARGET_DELIMITERS:
            if buffer:
                out.append(_escape_span_content("".join(buffer)))
                buffer = []
            delimiter = _TARGET_DELIMITERS[char]
            # "___" is ambiguous in MarkdownV2; an italic closing right before
            # an underline closing needs the documented \r separator.
            if char == _I and segment[index + 1 : index + 2] == _U:
                delimiter = "_\r"
            out.append(delimiter)
        else:
            buffer.append(char)
    if buffer:
        out.append(_escape_span_content("".join(buffer)))
    return "".join(out)


def detect_spans(text: str, vault: _TokenVault) -> List[FormattingSpan]:
    """Greedy, priority-ordered span detection; accepted spans never overlap."""

    claimed = [False] * len(text)
    accepted: List[FormattingSpan] = []
    for kind, pattern in _SPAN_PATTERNS:
        for match in pattern.finditer(text):
            start, end = match.span()
            if start == end or any(claimed[start:end]):
                continue
            for offset in range(start, end):
                claimed[offset] = True
            accepted.append(
                FormattingSpan(
                    kind=kind,
                    raw_text=_render_span(kind, match.group(0), vault),
                    start=start,
                    end=end,
                )
            )
    accepted.sort(key=lambda span: span.start)
    return accepted


def _escape_outside(text: str) -> str:
    out: List[str] = []
    buffer: List[str] = []
    for char in text:
        if char in _LITERAL_DELIMITERS:
            out.append(escape_plain("".join(buffer)))
            buffer = []
            out.append(_LITERAL_DELIMITERS[char])
        else:
            buffer.append(char)
    out.append(escape_plain("".join(buffer)))
    return "".join(out)


def _assemble(text: str, spans: List[FormattingSpan]) -> str:
    parts: List[str] = []
    position = 0
    for span in spans:
        if span.start > position:
            parts.append(_escape_outside(text[position : span.start]))
        parts.append(span.raw_text)
        position = span.end
    if position < len(text):
        parts.append(_escape_outside(text[position:]))
    return "".join(parts)


def repair_balance(text: str) -> str:
    """Escape the last unescaped occurrence of any paired delimiter with an odd count.

    Callers run this while code and URLs are still behind placeholders, so
    their contents never take part in the count.
    """

    for char in PAIRED_DELIMITERS:
        positions = [
            index
            for index, value in enumerate(text)
            if value == char and not is_escaped(text, index)
        ]
        if len(positions) % 2 == 1:
            last = positions[-1]
            LOGGER.warning("Unmatched %r delimiter (count %s), escaping the last one", char, len(positions))
            text = f"{text[:last]}\\{text[last:]}"
    return text


def _transcode(text: str, mentions: MentionDirectory) -> str:
    vault = _TokenVault()
    text = _SENTINEL_RE.sub("", text)
    text = _protect_code(text, vault)
    text = _normalize_headings(text)
    text = _neutralize_references(text, mentions)
    text = _redelimit_links(text, vault)
    text = _redelimit_formatting(text)
    text = _redelimit_quotes(text)
    spans = detect_spans(text, vault)
    text = _assemble(text, spans)
    text = repair_balance(text)
    return vault.restore(text).strip()


def transcode(
    text: str,
    mentions: Optional[MentionDirectory] = None,
    *,
    fallback: Callable[[str], str] = escape_markdown_v2,
) -> str:
    """Convert source markdown to Telegram MarkdownV2.

    Never raises: any internal failure returns the fully escaped input instead
    of partially transformed text.
    """

    if not text:
        return ""
    try:
        return _transcode(text, mentions or MentionDirectory())
    except Exception:
        LOGGER.exception("Markup transcoding failed; sending literal text instead")
        return fallback(text.strip())
