#!/usr/bin/env python3
"""
ローカルライブラリのコアモジュール。

- メディアフォルダのスキャン結果
- JSON データベースの曲 / ディスコグラフィー
- ユーザー上書き（カバー / 歌詞 / クレジット）

を突き合わせて、一覧 / 再生キュー / 動画グループ / 年表を Python 辞書で返す。
"""

from __future__ import annotations

import logging
import time
import urllib.parse
from pathlib import Path
from typing import Any, Dict, List, Optional

from lib.catalog import (
    group_by_category,
    merge_catalog,
    playlist_from,
    scan_media_root,
    smart_playlist_queue,
    sort_and_filter,
    timeline,
    unique_categories,
    category_options,
)
from lib.catalog.models import ALL_CATEGORIES, MergedTrack, SortOption
from lib.catalog.playlist import SmartPlaylist
from lib.store import JsonDatabase, OverrideStore, is_active

# Configure logger for this module
logger = logging.getLogger(__name__)


def media_url(relative_path: str) -> str:
    return f"/api/media?file={urllib.parse.quote(relative_path, safe='')}"


def _active_records(db: JsonDatabase, collection: str) -> List[Dict[str, Any]]:
    return [r for r in db.load_data(collection) if is_active(r)]


def track_to_dict(track: MergedTrack) -> Dict[str, Any]:
    data = track.to_dict()
    # ファイル由来のサムネイルはメディア配信 URL に変換する
    if track.cover and track.cover == track.file.thumbnail:
        data["cover"] = media_url(track.cover)
    return data


def load_merged_tracks(
    db: JsonDatabase,
    overrides: OverrideStore,
    media_root: str | Path | None = None,
) -> Dict[str, Any]:
    """スキャン → DB 読み込み → マージ。各段階の所要時間も返す。"""
    t0 = time.perf_counter()
    files = scan_media_root(media_root)
    t1 = time.perf_counter()
    songs = _active_records(db, "songs")
    discography = _active_records(db, "discography")
    t2 = time.perf_counter()
    tracks = merge_catalog(files, songs, overrides.snapshot(), discography)
    t3 = time.perf_counter()
    return {
        "files": files,
        "tracks": tracks,
        "perf": {
            "scan_ms": (t1 - t0) * 1000,
            "db_ms": (t2 - t1) * 1000,
            "merge_ms": (t3 - t2) * 1000,
        },
    }


def list_songs(
    db: JsonDatabase,
    overrides: OverrideStore,
    media_root: str | Path | None = None,
    query: str = "",
    sort: str = SortOption.YEAR_DESC.value,
    category: str = ALL_CATEGORIES,
) -> Dict[str, Any]:
    """曲一覧ページ用: マージ → 検索 / 絞り込み / 並べ替え。"""
    loaded = load_merged_tracks(db, overrides, media_root)
    t0 = time.perf_counter()
    tracks = sort_and_filter(loaded["tracks"], query, sort, category)
    sort_ms = (time.perf_counter() - t0) * 1000

    perf = {**loaded["perf"], "sort_ms": sort_ms}
    logger.info(
        f"[songs] files={len(loaded['files'])} merged={len(loaded['tracks'])} shown={len(tracks)} "
        f"q={query!r} sort={sort} category={category} "
        f"scan_ms={perf['scan_ms']:.1f} merge_ms={perf['merge_ms']:.1f} sort_ms={sort_ms:.1f}"
    )
    return {
        "tracks": [track_to_dict(t) for t in tracks],
        "total_files": len(loaded["files"]),
        "categories": category_options(loaded["files"]),
        "meta": perf,
    }


def song_queue(
    db: JsonDatabase,
    overrides: OverrideStore,
    media_root: str | Path | None = None,
    query: str = "",
    sort: str = SortOption.YEAR_DESC.value,
    category: str = ALL_CATEGORIES,
    start: Any = 0,
) -> Dict[str, Any]:
    """表示中の一覧と同じ順序の再生キュー。"""
    loaded = load_merged_tracks(db, overrides, media_root)
    tracks = sort_and_filter(loaded["tracks"], query, sort, category)
    return playlist_from(tracks, start).to_dict()


def file_categories(media_root: str | Path | None = None) -> List[str]:
    return unique_categories(scan_media_root(media_root))


def video_groups(media_root: str | Path | None = None) -> List[Dict[str, Any]]:
    groups = group_by_category(scan_media_root(media_root))
    for group in groups:
        group["files"] = [
            {**f.to_dict(), "thumbnail_url": media_url(f.thumbnail) if f.thumbnail else None}
            for f in group["files"]
        ]
    return groups


def smart_queue(
    playlist: SmartPlaylist,
    media_root: str | Path | None = None,
    shuffle: bool = False,
) -> Dict[str, Any]:
    queue = smart_playlist_queue(scan_media_root(media_root), playlist, shuffle=shuffle)
    return {"playlist_id": playlist.id, "name": playlist.name, **queue.to_dict()}


def history_timeline(
    db: JsonDatabase,
    include_private: bool = False,
    newest_first: bool = False,
) -> List[Dict[str, Any]]:
    events = timeline(db.load_data("history"), include_private=include_private, newest_first=newest_first)
    return [e.raw for e in events]


def resolve_media_path(media_root: str | Path, relative: str) -> Optional[Path]:
    """メディアルート配下に収まるパスだけを返す。外に出るなら None。"""
    root = Path(media_root).expanduser().resolve()
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        return None
    return target
