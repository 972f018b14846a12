"""
正規化ヘルパー: ファイル名 / 曲名のゆらぎを減らし、年を取り出す。
"""
from __future__ import annotations

import re
from typing import Any, Optional

# 英字を1文字以上含む 1〜5 文字の拡張子だけを対象にする（"Mr. Heartache" や "ver.2" は残す）
_EXTENSION_RE = re.compile(r"\.(?=[0-9]*[A-Za-z])[A-Za-z0-9]{1,5}$")
_FOLDER_YEAR_RE = re.compile(r"\((\d{4})\)")
_RELEASE_YEAR_RE = re.compile(r"^\s*(\d{4})")


def strip_extension(name: str) -> str:
    """末尾の拡張子だけを落とす（"Dragon Night.mp3" → "Dragon Night"）。"""
    return _EXTENSION_RE.sub("", name or "")


def normalize_title(title: str) -> str:
    """
    マッチング用の曲名正規化:
    - 前後の空白を削る
    - 拡張子を削る（削った後にもう一度空白を削る）
    - 小文字化
    """
    return strip_extension((title or "").strip()).strip().lower()


def titles_match(file_name_norm: str, song_title_norm: str) -> bool:
    """どちらか一方がもう一方を含んでいれば一致とみなす。空文字は一致しない。"""
    if not file_name_norm or not song_title_norm:
        return False
    return song_title_norm in file_name_norm or file_name_norm in song_title_norm


def extract_folder_year(category: str) -> int:
    """
    フォルダ名（カテゴリ）から年を取り出す。
    例: "(2023) Terminal" → 2023, "(2010)FACTORY LIVE" → 2010, "Bonus" → 0
    """
    m = _FOLDER_YEAR_RE.search(category or "")
    return int(m.group(1)) if m else 0


def release_year(release_date: Optional[str]) -> int:
    """"YYYY-MM-DD" 形式の先頭4桁を年として返す。取れなければ 0。"""
    m = _RELEASE_YEAR_RE.match(release_date or "")
    return int(m.group(1)) if m else 0


def positive_year(value: Any) -> Optional[int]:
    """正の整数年だけを通す。0 / 負数 / 数値でない値は None。"""
    if isinstance(value, bool):
        return None
    try:
        year = int(value)
    except (TypeError, ValueError):
        return None
    return year if year > 0 else None
