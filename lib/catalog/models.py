"""
ローカルライブラリとキュレーション済みメタデータのデータモデル。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, TypedDict, Union


# 年が不明なトラックの表示値
YEAR_UNSET = "unset"
UNKNOWN_ALBUM = "Unknown Album"
CREDIT_PLACEHOLDER = "-"
ORIGINAL_CATEGORY = "Original"
ALL_CATEGORIES = "all"


class CatalogValidationError(ValueError):
    """呼び出し側のバグ（配列でない入力・必須フィールド欠落）を示す。"""

    def __init__(self, collection: str, message: str):
        self.collection = collection
        super().__init__(f"{collection}: {message}")


class SongCategory(str, Enum):
    ORIGINAL = "Original"
    LIVE_REMIX = "LIVE REMIX"
    RARE = "Rare"
    DEMO = "Demo"
    COVER = "Cover"
    OTHER = "Other"


class AlbumType(str, Enum):
    ALBUM = "Album"
    SINGLE = "Single"
    EP = "EP"
    COMPILATION = "Compilation"
    VIDEO = "Video"
    OTHER = "Other"


class Visibility(str, Enum):
    PUBLIC = "public"
    HIDDEN = "hidden"
    PRIVATE = "private"


class SortOption(str, Enum):
    """
    一覧の並び順。
    year_* は Discography / 曲メタデータ由来のリリース年、
    folder_year_* はカテゴリ（フォルダ名）の "(YYYY)" から取る年。
    """
    TITLE_AZ = "az"
    TITLE_ZA = "za"
    YEAR_ASC = "year_asc"
    YEAR_DESC = "year_desc"
    FOLDER_YEAR_ASC = "folder_year_asc"
    FOLDER_YEAR_DESC = "folder_year_desc"
    ALBUM_AZ = "album_az"
    ALBUM_ZA = "album_za"
    WRITER = "writer"
    COMPOSER = "composer"
    CATEGORY = "category"
    FILENAME = "filename"


def _required(data: Mapping[str, Any], key: str, collection: str, index: int) -> Any:
    if key not in data or data[key] is None:
        raise CatalogValidationError(collection, f"item {index} missing required field '{key}'")
    return data[key]


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None and value != "" else None
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class LocalFile:
    """ファイルシステムから見つかった再生可能メディア。identity は path。"""
    name: str
    path: str
    type: str
    category: str
    thumbnail: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "LocalFile":
        if not isinstance(data, Mapping):
            raise CatalogValidationError("files", f"item {index} is not an object")
        return cls(
            name=str(_required(data, "name", "files", index)),
            path=str(_required(data, "path", "files", index)),
            type=str(data.get("type") or ""),
            category=str(data.get("category") or ""),
            thumbnail=data.get("thumbnail") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "category": self.category,
            "thumbnail": self.thumbnail,
        }


@dataclass(frozen=True)
class CuratedSong:
    """ユーザーが登録した曲メタデータ。"""
    id: str
    title: str
    album: Optional[str] = None
    year: Optional[int] = None
    writer: Optional[str] = None
    composer: Optional[str] = None
    category: str = SongCategory.ORIGINAL.value
    tags: List[str] = field(default_factory=list)
    play_count: int = 0
    is_favorite: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "CuratedSong":
        if not isinstance(data, Mapping):
            raise CatalogValidationError("curated", f"item {index} is not an object")
        return cls(
            id=str(data.get("id") or f"song-{index}"),
            title=str(_required(data, "title", "curated", index)),
            album=data.get("album") or None,
            year=_as_int(data.get("year")),
            writer=data.get("writer") or None,
            composer=data.get("composer") or None,
            category=str(data.get("category") or SongCategory.ORIGINAL.value),
            tags=list(data.get("tags") or []),
            play_count=_as_int(data.get("playCount")) or 0,
            is_favorite=bool(data.get("isFavorite", False)),
        )


@dataclass(frozen=True)
class TrackInfo:
    id: str
    track_number: int
    title: str
    is_bonus: bool = False
    version_note: Optional[str] = None


@dataclass(frozen=True)
class DiscItem:
    disc_number: int
    tracks: List[TrackInfo]
    disc_title: Optional[str] = None


@dataclass(frozen=True)
class Discography:
    """アルバム / シングル等のリリース。マルチディスク対応。"""
    id: str
    title: str
    type: str = AlbumType.ALBUM.value
    release_date: Optional[str] = None
    discs: List[DiscItem] = field(default_factory=list)
    cover_image: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_complete: bool = False
    missing_fields: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "Discography":
        if not isinstance(data, Mapping):
            raise CatalogValidationError("discography", f"item {index} is not an object")
        album_id = str(data.get("id") or f"discography-{index}")
        discs: List[DiscItem] = []
        for d_idx, disc in enumerate(data.get("discs") or []):
            tracks = [
                TrackInfo(
                    id=str(t.get("id") or f"{album_id}-d{d_idx + 1}-t{t_idx + 1}"),
                    track_number=_as_int(t.get("trackNumber")) or t_idx + 1,
                    title=str(t.get("title") or ""),
                    is_bonus=bool(t.get("isBonus", False)),
                    version_note=t.get("versionNote") or None,
                )
                for t_idx, t in enumerate(disc.get("tracks") or [])
                if isinstance(t, Mapping)
            ]
            discs.append(DiscItem(
                disc_number=_as_int(disc.get("discNumber")) or d_idx + 1,
                tracks=tracks,
                disc_title=disc.get("discTitle") or None,
            ))

        # 旧形式: tracks が曲名の配列
        legacy_tracks = data.get("tracks")
        if isinstance(legacy_tracks, list) and legacy_tracks:
            discs.append(DiscItem(
                disc_number=len(discs) + 1,
                tracks=[
                    TrackInfo(id=f"{album_id}-track-{i + 1}", track_number=i + 1, title=str(title))
                    for i, title in enumerate(legacy_tracks)
                    if isinstance(title, str)
                ],
            ))

        return cls(
            id=album_id,
            title=str(data.get("title") or ""),
            type=str(data.get("type") or AlbumType.ALBUM.value),
            release_date=data.get("releaseDate") or None,
            discs=discs,
            cover_image=data.get("coverImage") or None,
            tags=list(data.get("tags") or []),
            is_complete=bool(data.get("isComplete", False)),
            missing_fields=list(data.get("missingFields") or []),
        )

    def track_titles(self) -> List[str]:
        return [t.title for disc in self.discs for t in disc.tracks if t.title]


@dataclass(frozen=True)
class HistoryDate:
    year: int
    month: Optional[int] = None
    day: Optional[int] = None
    sort_order: Optional[int] = None
    unknown_position: str = "start"


@dataclass(frozen=True)
class HistoryEvent:
    id: str
    date: HistoryDate
    title: str
    details: Dict[str, str] = field(default_factory=dict)
    event_types: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    live_info: Optional[Dict[str, Any]] = None
    bgm: Optional[Dict[str, Any]] = None
    image_paths: List[str] = field(default_factory=list)
    visibility: str = Visibility.PUBLIC.value
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: int = 0) -> "HistoryEvent":
        if not isinstance(data, Mapping):
            raise CatalogValidationError("history", f"item {index} is not an object")
        date = data.get("date")
        if not isinstance(date, Mapping):
            raise CatalogValidationError("history", f"item {index} missing required field 'date'")
        year = _as_int(date.get("year"))
        if year is None:
            raise CatalogValidationError("history", f"item {index} has no date.year")
        return cls(
            id=str(data.get("id") or f"history-{year}-{index}"),
            date=HistoryDate(
                year=year,
                month=_as_int(date.get("month")),
                day=_as_int(date.get("day")),
                sort_order=_as_int(date.get("sortOrder")),
                unknown_position=date.get("unknownPosition") or "start",
            ),
            title=str(data.get("title") or ""),
            details=dict(data.get("details") or {}),
            event_types=list(data.get("eventTypes") or []),
            tags=list(data.get("tags") or []),
            live_info=data.get("liveInfo") or None,
            bgm=data.get("bgm") or None,
            image_paths=list(data.get("imagePaths") or []),
            visibility=str(data.get("visibility") or Visibility.PUBLIC.value),
            raw=dict(data),
        )


class SongLinks(TypedDict, total=False):
    spotify: str
    youtube: str
    apple: str


class SongDetails(TypedDict, total=False):
    """
    ユーザーが編集した曲の詳細情報（クレジット上書き）。

    Fields:
        writer: 作詞者
        composer: 作曲者
        memo: メモ
        links: 外部サービスへのリンク
    """
    writer: str
    composer: str
    memo: str
    links: SongLinks


@dataclass(frozen=True)
class Overrides:
    """ファイルパスをキーとした上書きマップのスナップショット。merge では読み取りのみ。"""
    covers: Mapping[str, str] = field(default_factory=dict)
    lyrics: Mapping[str, str] = field(default_factory=dict)
    credits: Mapping[str, SongDetails] = field(default_factory=dict)


@dataclass(frozen=True)
class MergedTrack:
    """ファイル + メタデータ + 上書きを統合した表示用トラック。永続化しない。"""
    id: str
    title: str
    album: str
    year: Union[int, str]
    writer: str
    composer: str
    category: str
    file: LocalFile
    cover: Optional[str] = None
    lyrics: str = ""
    memo: Optional[str] = None
    links: Dict[str, str] = field(default_factory=dict)

    @property
    def has_year(self) -> bool:
        return isinstance(self.year, int)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "album": self.album,
            "year": self.year,
            "writer": self.writer,
            "composer": self.composer,
            "category": self.category,
            "file": self.file.to_dict(),
            "cover": self.cover,
            "lyrics": self.lyrics,
            "memo": self.memo,
            "links": dict(self.links),
        }


@dataclass(frozen=True)
class QueueEntry:
    """プレイヤーに渡すキューの1曲。"""
    name: str
    path: str
    type: str
    category: str
    thumbnail: Optional[str] = None
    album: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "category": self.category,
            "thumbnail": self.thumbnail,
            "album": self.album,
        }


@dataclass(frozen=True)
class PlayQueue:
    entries: List[QueueEntry]
    start_index: int = 0

    @property
    def current(self) -> Optional[QueueEntry]:
        return self.entries[self.start_index] if self.entries else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_index": self.start_index,
            "tracks": [e.to_dict() for e in self.entries],
        }
