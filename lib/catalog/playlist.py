"""
再生キューの組み立てとスマートプレイリスト（キーワードによる気分別リスト）。
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from lib.catalog.matcher import coerce_files
from lib.catalog.models import ORIGINAL_CATEGORY, LocalFile, MergedTrack, PlayQueue, QueueEntry


@dataclass(frozen=True)
class SmartPlaylist:
    id: str
    name: str
    description: str
    keywords: List[str]


SMART_PLAYLISTS: List[SmartPlaylist] = [
    SmartPlaylist(
        id="energetic",
        name="元気になりたい時",
        description="アップテンポでエネルギッシュな曲",
        keywords=["Dragon Night", "RPG", "スターライトパレード", "Habit", "Fight Music",
                  "炎と森のカーニバル", "Hey Ho", "ANTI-HERO", "ファンタジー"],
    ),
    SmartPlaylist(
        id="emotional",
        name="しっとり聴きたい時",
        description="しっとりとした感動的な曲",
        keywords=["眠り姫", "silent", "RAIN", "サザンカ", "幻の命", "虹色の戦争",
                  "プレゼント", "Diary", "umbrella", "tears"],
    ),
    SmartPlaylist(
        id="chill",
        name="リラックスしたい時",
        description="落ち着いたメロディーの曲",
        keywords=["scent of memory", "Utopia", "Eve", "イルミネーション", "バードマン",
                  "ターコイズ", "深海魚", "Blue Flower"],
    ),
    SmartPlaylist(
        id="drive",
        name="ドライブ用",
        description="運転中に最適な曲",
        keywords=["Dragon Night", "RPG", "スターライトパレード", "ANTI-HERO", "Hey Ho",
                  "Death Disco", "ROBO", "バタフライエフェクト"],
    ),
    SmartPlaylist(
        id="work",
        name="作業用BGM",
        description="集中力を高める曲",
        keywords=["インスタントラジオ", "MAGIC", "銀河街の悪夢", "ムーンライトステーション",
                  "Play", "サラバ", "タイムマシン", "最高到達点"],
    ),
    SmartPlaylist(
        id="night",
        name="夜のリスニング",
        description="夜にぴったりな曲",
        keywords=["眠り姫", "silent", "RAIN", "深い森", "スノーマジックファンタジー",
                  "ムーンライトステーション", "深海魚", "Eve"],
    ),
    SmartPlaylist(
        id="morning",
        name="朝のスタート",
        description="朝から元気になれる曲",
        keywords=["RPG", "スターライトパレード", "Hey Ho", "Habit", "炎と森のカーニバル",
                  "ファンタジー", "タイムマシン"],
    ),
    SmartPlaylist(
        id="nostalgia",
        name="懐かしい気分",
        description="初期の名曲コレクション",
        keywords=["幻の命", "虹色の戦争", "インスタントラジオ", "天使と悪魔", "ファンタジー",
                  "不死鳥", "yume", "世界平和"],
    ),
]


def get_smart_playlist(playlist_id: str) -> Optional[SmartPlaylist]:
    return next((p for p in SMART_PLAYLISTS if p.id == playlist_id), None)


def _entry(item: Union[MergedTrack, LocalFile]) -> QueueEntry:
    if isinstance(item, MergedTrack):
        f = item.file
        return QueueEntry(
            name=f.name,
            path=f.path,
            type=f.type,
            category=item.category,
            thumbnail=f.thumbnail,
            album=item.album,
        )
    return QueueEntry(
        name=item.name,
        path=item.path,
        type=item.type,
        category=item.category,
        thumbnail=item.thumbnail,
    )


def playlist_from(tracks: Sequence[Union[MergedTrack, LocalFile]], start_index: Any = 0) -> PlayQueue:
    """
    表示中の並び順のまま再生キューを作る。
    start_index が範囲外（負数・件数以上・数値でない）なら 0 にする。
    """
    entries = [_entry(t) for t in tracks]
    try:
        idx = int(start_index)
    except (TypeError, ValueError):
        idx = 0
    if idx < 0 or idx >= len(entries):
        idx = 0
    return PlayQueue(entries=entries, start_index=idx)


def smart_playlist_tracks(files: Any, playlist: SmartPlaylist) -> List[LocalFile]:
    """Original のファイルのうち、ファイル名にキーワードを含むもの。"""
    keywords = [k.lower() for k in playlist.keywords]
    return [
        f for f in coerce_files(files)
        if f.category == ORIGINAL_CATEGORY and any(k in f.name.lower() for k in keywords)
    ]


def smart_playlist_queue(
    files: Any,
    playlist: SmartPlaylist,
    shuffle: bool = False,
    rng: Optional[random.Random] = None,
) -> PlayQueue:
    tracks = smart_playlist_tracks(files, playlist)
    if shuffle:
        tracks = list(tracks)
        (rng or random.Random()).shuffle(tracks)
    return playlist_from(tracks, 0)


def smart_playlist_summary(files: Any) -> List[Dict[str, Any]]:
    local_files = coerce_files(files)
    return [
        {
            "id": p.id,
            "name": p.name,
            "description": p.description,
            "track_count": len(smart_playlist_tracks(local_files, p)),
        }
        for p in SMART_PLAYLISTS
    ]
