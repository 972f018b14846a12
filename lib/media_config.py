"""Paths, extensions and cache settings (environment overridable)."""
from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# メディアのルート（デフォルト: プロジェクト直下の programs/media）
MEDIA_ROOT = Path(os.getenv("MEDIA_ROOT", str(BASE_DIR / "programs" / "media"))).expanduser()

# JSON データベースの置き場所
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data" / "db"))).expanduser()

# ユーザー上書き（カバー / 歌詞 / クレジット）の保存先
OVERRIDES_PATH = Path(os.getenv("OVERRIDES_PATH", str(DATA_DIR / "overrides.json"))).expanduser()

PLAYABLE_EXTENSIONS = (".mp3", ".mp4", ".wav", ".m4a", ".m4v")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")

# スキャン対象のサブフォルダ → カテゴリ名。"" はルート直下のファイルのみ（再帰しない）
ROOT_DIRS = (
    ("", "Original"),
    ("live_remix", "LIVE REMIX"),
    ("rare", "Rare / Unreleased"),
    ("videos", "Videos"),
)

DB_CACHE_TTL_S = float(os.getenv("DB_CACHE_TTL_S", "5"))
SCAN_CACHE_TTL_S = int(os.getenv("SCAN_CACHE_TTL_S", "30"))
SCAN_CACHE_MAXSIZE = int(os.getenv("SCAN_CACHE_MAXSIZE", "8"))
