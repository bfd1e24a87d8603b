"""Dispatch strategy selection and media classification."""

from __future__ import annotations

import os
from typing import Iterable, Optional, Sequence
from urllib.parse import urlparse

from core.models import PHOTO, VIDEO, MediaItem

TEXT_ONLY = "text-only"
MEDIA_WITH_CAPTION = "media-with-caption"
SMART_SPLIT = "smart-split"
SEPARATE = "separate"

SPLIT_STRATEGIES = (SMART_SPLIT, SEPARATE)
STRATEGIES = (TEXT_ONLY, MEDIA_WITH_CAPTION, SMART_SPLIT, SEPARATE)

# Hosts and path fragments of proxies the Bot API cannot reliably re-fetch.
DEFAULT_UNRELIABLE_MEDIA_PATTERNS = (
    "cdn-telegram.org",
    "discordapp.net",
    "images-ext-",
)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"})
VIDEO_EXTENSIONS = frozenset({".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mkv"})


def select_strategy(
    has_media: bool,
    caption_length: int,
    caption_limit: int,
    configured_mode: str,
    media_looks_unreliable: bool,
) -> str:
    """Pick how one dispatch or reconcile cycle is shaped.

    Media from an unreliable proxy never goes through ``separate``: a caption
    that does not fit is always smart-split in that case.
    """

    if configured_mode not in SPLIT_STRATEGIES:
        raise ValueError(f"Unknown split strategy: {configured_mode!r}")
    if not has_media:
        return TEXT_ONLY
    if caption_length <= caption_limit:
        return MEDIA_WITH_CAPTION
    if media_looks_unreliable:
        return SMART_SPLIT
    return configured_mode


def media_looks_unreliable(media: Iterable[MediaItem], patterns: Sequence[str]) -> bool:
    """True when any media URL contains any of the configured patterns."""

    return any(pattern in item.url for item in media for pattern in patterns if pattern)


def _extension(filename: str) -> str:
    path = urlparse(filename).path if "://" in filename else filename
    return os.path.splitext(path)[1].lower()


def is_image_file(filename: str) -> bool:
    return _extension(filename) in IMAGE_EXTENSIONS


def is_video_file(filename: str) -> bool:
    return _extension(filename) in VIDEO_EXTENSIONS


def classify_attachment(filename: str) -> Optional[str]:
    """Media kind for an attachment, or None when it should travel as a link."""

    if is_image_file(filename):
        return PHOTO
    if is_video_file(filename):
        return VIDEO
    return None
