"""
外部リンク（Spotify / YouTube / Apple Music など）の判定とバリデーション。
"""
from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass
from typing import Callable, Dict, Optional, TypedDict


@dataclass(frozen=True)
class ServiceConfig:
    name: str
    url_pattern: "re.Pattern[str]"
    id_extractor: Callable[[str], Optional[str]]
    search_url: str


def _group_extractor(pattern: str, group: int) -> Callable[[str], Optional[str]]:
    compiled = re.compile(pattern)

    def extract(url: str) -> Optional[str]:
        m = compiled.search(url)
        return m.group(group) if m else None

    return extract


# 判定は定義順。"other" は最後にマッチさせる
SERVICE_CONFIGS: Dict[str, ServiceConfig] = {
    "spotify": ServiceConfig(
        name="Spotify",
        url_pattern=re.compile(r"^https?://open\.spotify\.com/(track|album|artist|playlist)/([a-zA-Z0-9]+)"),
        id_extractor=_group_extractor(r"/(track|album|artist|playlist)/([a-zA-Z0-9]+)", 2),
        search_url="https://open.spotify.com/search/{query}",
    ),
    "youtube": ServiceConfig(
        name="YouTube",
        url_pattern=re.compile(r"^https?://(www\.)?(youtube\.com|youtu\.be)/(watch\?v=|)([a-zA-Z0-9_-]+)"),
        id_extractor=_group_extractor(r"(?:v=|youtu\.be/)([a-zA-Z0-9_-]+)", 1),
        search_url="https://www.youtube.com/results?search_query={query}",
    ),
    "apple_music": ServiceConfig(
        name="Apple Music",
        url_pattern=re.compile(r"^https?://music\.apple\.com/[a-z]{2}/(album|artist|playlist)/[^/]+/(\d+)"),
        id_extractor=_group_extractor(r"/(\d+)(?:\?|$)", 1),
        search_url="https://music.apple.com/search?term={query}",
    ),
    "line_music": ServiceConfig(
        name="LINE MUSIC",
        url_pattern=re.compile(r"^https?://music\.line\.me/(track|album|artist)/([a-z0-9]+)"),
        id_extractor=_group_extractor(r"/(track|album|artist)/([a-z0-9]+)", 2),
        search_url="https://music.line.me/search?query={query}",
    ),
    "amazon_music": ServiceConfig(
        name="Amazon Music",
        url_pattern=re.compile(r"^https?://music\.amazon\.co\.jp/(albums|tracks|artists)/([A-Z0-9]+)"),
        id_extractor=_group_extractor(r"/(albums|tracks|artists)/([A-Z0-9]+)", 2),
        search_url="https://music.amazon.co.jp/search/{query}",
    ),
    "other": ServiceConfig(
        name="その他",
        url_pattern=re.compile(r"^https?://.+"),
        id_extractor=lambda url: None,
        search_url="https://www.google.com/search?q={query}",
    ),
}


class DetectedLink(TypedDict):
    service: str
    target_type: str
    service_id: Optional[str]


class LinkValidation(TypedDict, total=False):
    valid: bool
    warning: Optional[str]
    detected: Optional[DetectedLink]


def _target_type(url: str) -> str:
    if "/track" in url:
        return "track"
    if "/album" in url:
        return "album"
    if "/artist" in url:
        return "artist"
    if "/playlist" in url:
        return "playlist"
    if "/watch" in url or "youtu.be" in url:
        return "video"
    if "/channel" in url or "/@" in url:
        return "channel"
    return "other"


def detect_link_service(url: str) -> Optional[DetectedLink]:
    """URL からサービスとリンク種別を判定する。http(s) でなければ None。"""
    for service, config in SERVICE_CONFIGS.items():
        if config.url_pattern.match(url or ""):
            return {
                "service": service,
                "target_type": _target_type(url),
                "service_id": config.id_extractor(url),
            }
    return None


def validate_external_url(url: str, expected_type: Optional[str] = None) -> LinkValidation:
    if not (url or "").startswith(("http://", "https://")):
        return {"valid": False, "warning": "URL must start with http:// or https://"}

    detected = detect_link_service(url)
    if detected is None:
        return {"valid": True, "warning": "Unrecognized service (saved as-is)"}

    if expected_type and detected["target_type"] not in (expected_type, "other"):
        return {
            "valid": True,
            "warning": f"This URL points to a {detected['target_type']} (expected {expected_type})",
            "detected": detected,
        }
    return {"valid": True, "detected": detected}


def build_search_query(
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    year: Optional[int] = None,
) -> str:
    parts = [p for p in (title, artist, album) if p]
    if year:
        parts.append(str(year))
    return " ".join(parts)


def search_url(service: str, query: str) -> str:
    config = SERVICE_CONFIGS.get(service) or SERVICE_CONFIGS["other"]
    return config.search_url.format(query=urllib.parse.quote(query, safe=""))
