"""Core configuration dataclasses.

We keep config file parsing outside the core, but this dataclass defines the
shape the engine expects and validates it once so nothing downstream has to
second-guess a value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from core.splitter import continuation_suffix
from core.strategy import DEFAULT_UNRELIABLE_MEDIA_PATTERNS, SEPARATE, SMART_SPLIT, SPLIT_STRATEGIES

DEFAULT_CONTINUATION_MARKER = "...(continued)"

_STRATEGY_ALIASES = {
    "smart": SMART_SPLIT,
    SMART_SPLIT: SMART_SPLIT,
    "separate": SEPARATE,
}


@dataclass(frozen=True)
class RelayConfig:
    """Length limits, split behaviour and rendering toggles for forwarding."""

    caption_limit: int = 900
    text_limit: int = 4000
    continuation_marker: str = DEFAULT_CONTINUATION_MARKER
    split_strategy: str = SMART_SPLIT
    unreliable_media_patterns: Tuple[str, ...] = DEFAULT_UNRELIABLE_MEDIA_PATTERNS
    hide_source_header: bool = False
    smart_link_previews: bool = True

    def __post_init__(self) -> None:
        if self.split_strategy not in SPLIT_STRATEGIES:
            raise ValueError(f"split_strategy must be one of {SPLIT_STRATEGIES}, got {self.split_strategy!r}")
        reserved = len(continuation_suffix(self.continuation_marker))
        for name in ("caption_limit", "text_limit"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
            if value <= reserved:
                raise ValueError(f"{name} ({value}) leaves no room for the continuation marker")
        if self.caption_limit > self.text_limit:
            raise ValueError("caption_limit cannot exceed text_limit")


def _as_int(raw: Dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"telegram.{key} must be an integer, got {value!r}") from exc


def build_relay_config(raw: Dict[str, Any]) -> RelayConfig:
    """Build a RelayConfig from the ``telegram`` section of config.json."""

    raw = raw or {}
    strategy = str(raw.get("caption_split_strategy", SMART_SPLIT)).strip().lower()
    if strategy not in _STRATEGY_ALIASES:
        raise ValueError(f"Unknown caption_split_strategy: {strategy!r}")

    patterns = raw.get("unreliable_media_patterns", DEFAULT_UNRELIABLE_MEDIA_PATTERNS)
    if isinstance(patterns, str) or not all(isinstance(item, str) for item in patterns):
        raise ValueError("telegram.unreliable_media_patterns must be a list of strings")

    return RelayConfig(
        caption_limit=_as_int(raw, "caption_length_limit", 900),
        text_limit=_as_int(raw, "text_length_limit", 4000),
        continuation_marker=str(raw.get("split_indicator", DEFAULT_CONTINUATION_MARKER)),
        split_strategy=_STRATEGY_ALIASES[strategy],
        unreliable_media_patterns=tuple(patterns),
        hide_source_header=bool(raw.get("hide_source_header", False)),
        smart_link_previews=bool(raw.get("smart_link_previews", True)),
    )
