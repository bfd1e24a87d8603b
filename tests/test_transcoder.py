from __future__ import annotations

import pytest

from core import transcoder
from core.markdown_v2 import RESERVED_CHARS
from core.models import MentionDirectory
from core.transcoder import repair_balance, transcode


def test_plain_text_passes_through() -> None:
    assert transcode("Hello") == "Hello"
    assert transcode("") == ""
    assert transcode("  padded  ") == "padded"


def test_every_reserved_char_is_escaped_exactly_once() -> None:
    source = " ".join(RESERVED_CHARS)

    assert transcode(source) == " ".join(f"\\{char}" for char in RESERVED_CHARS)


def test_bold_span_keeps_inner_punctuation() -> None:
    assert transcode("**a.b** c.d") == "*a.b* c\\.d"


def test_single_star_italic_is_literal() -> None:
    assert transcode("*soft* words") == "\\*soft\\* words"


def test_unclosed_markers_are_escaped() -> None:
    assert transcode("5 ** 2 = 25") == "5 \\*\\* 2 \\= 25"


@pytest.mark.parametrize(
    "source, expected",
    [
        ("__***x***__", "__*_x_*__"),
        ("__**x**__", "__*x*__"),
        ("__*x*__", "___x_\r__"),
        ("***x***", "*_x_*"),
        ("**x**", "*x*"),
        ("__x__", "__x__"),
        ("~~x~~", "~x~"),
        ("||x||", "||x||"),
    ],
)
def test_delimiter_table(source: str, expected: str) -> None:
    assert transcode(source) == expected


def test_nested_styles_inside_bold() -> None:
    assert transcode("**a ~~b~~ c**") == "*a ~b~ c*"


def test_reescaping_plain_text_is_stable() -> None:
    plain = "Version 2.0 (beta) - now 50% more #features! a+b=c {x} [y] ~z >w |v"

    once = transcode(plain)

    assert transcode(once) == once


def test_reescaping_formatted_output_never_doubles_backslashes() -> None:
    once = transcode("**bold** and __under__ 1.5")
    twice = transcode(once)

    assert once == "*bold* and __under__ 1\\.5"
    assert "\\\\" not in twice


def test_escaped_source_markers_stay_literal() -> None:
    assert transcode("\\*\\*not bold\\*\\*") == "\\*\\*not bold\\*\\*"


def test_inline_code_is_protected() -> None:
    assert transcode("Use `a_b*c` here.") == "Use `a_b*c` here\\."


def test_fenced_code_keeps_language_and_content() -> None:
    source = "```py\nprint('**x**')\n```"

    assert transcode(source) == "```py\nprint('**x**')\n```"


def test_code_escapes_backticks_and_backslashes() -> None:
    assert transcode("```\na\\b\n```") == "```\na\\\\b\n```"


def test_headings_become_bold() -> None:
    assert transcode("# Title\nbody.") == "*Title*\nbody\\."
    assert transcode("### Deep") == "*Deep*"


def test_mentions_become_inert_text() -> None:
    mentions = MentionDirectory(users={"42": "alice"}, channels={"7": "general"})

    result = transcode("<@42> <@!9> <@&5> <#7> @everyone @here", mentions)

    assert result == "＠alice ＠User ＠Role \\#general ＠everyone ＠here"


def test_custom_emoji_become_names() -> None:
    assert transcode("<:wave:123> hi <a:dance:9>") == ":wave: hi :dance:"


def test_links_keep_text_and_url() -> None:
    assert transcode("[Docs](https://example.com/a_b)") == "[Docs](https://example.com/a_b)"


def test_bare_urls_are_not_formatted() -> None:
    result = transcode("see https://example.com/__init__.py now")

    assert result == "see https://example\\.com/\\_\\_init\\_\\_\\.py now"


def test_quote_lines() -> None:
    assert transcode("> quoted.\nplain") == ">quoted\\.\nplain"


def test_multi_line_quote_covers_the_rest() -> None:
    assert transcode("intro\n>>> one\ntwo") == "intro\n>one\n>two"


def test_repair_balance_escapes_last_unmatched_delimiter() -> None:
    assert repair_balance("*bold* and *") == "*bold* and \\*"
    assert repair_balance("*bold*") == "*bold*"


def test_internal_failure_falls_back_to_literal_text(monkeypatch) -> None:
    def boom(text, mentions):
        raise RuntimeError("broken")

    monkeypatch.setattr(transcoder, "_transcode", boom)

    assert transcode(" **a.b** ") == "\\*\\*a\\.b\\*\\*"
