"""
ローカルファイルとキュレーション済みメタデータの突き合わせ（カタログマージ）。

解決の優先順:
  年       : Discography のリリース年（Single 優先） → 曲メタデータの year → "unset"
  クレジット: ユーザー上書き → 曲メタデータ → "-"
  カバー    : ユーザー上書き → Discography のカバー → ファイル自身のサムネイル → None
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from lib.catalog.models import (
    ALL_CATEGORIES,
    CREDIT_PLACEHOLDER,
    ORIGINAL_CATEGORY,
    UNKNOWN_ALBUM,
    YEAR_UNSET,
    AlbumType,
    CatalogValidationError,
    CuratedSong,
    Discography,
    LocalFile,
    MergedTrack,
    Overrides,
)
from lib.catalog.normalizer import (
    normalize_title,
    positive_year,
    release_year,
    strip_extension,
    titles_match,
)

logger = logging.getLogger(__name__)


@dataclass
class DiscographyHit:
    """曲名（正規化済み）ごとの Discography 由来情報。"""
    album_type: str
    cover: Optional[str] = None
    year: Optional[int] = None


def ensure_sequence(value: Any, collection: str) -> Sequence[Any]:
    if not isinstance(value, (list, tuple)):
        raise CatalogValidationError(
            collection, f"expected a list, got {type(value).__name__}"
        )
    return value


def coerce_files(files: Any) -> List[LocalFile]:
    items = ensure_sequence(files, "files")
    return [f if isinstance(f, LocalFile) else LocalFile.from_dict(f, i) for i, f in enumerate(items)]


def coerce_songs(curated: Any) -> List[CuratedSong]:
    items = ensure_sequence(curated, "curated")
    return [s if isinstance(s, CuratedSong) else CuratedSong.from_dict(s, i) for i, s in enumerate(items)]


def coerce_discography(discography: Any) -> List[Discography]:
    if discography is None:
        return []
    items = ensure_sequence(discography, "discography")
    return [d if isinstance(d, Discography) else Discography.from_dict(d, i) for i, d in enumerate(items)]


def coerce_overrides(overrides: Any) -> Overrides:
    if overrides is None:
        return Overrides()
    if isinstance(overrides, Overrides):
        return overrides
    if not isinstance(overrides, Mapping):
        raise CatalogValidationError("overrides", f"expected an object, got {type(overrides).__name__}")
    maps = {}
    for key in ("covers", "lyrics", "credits"):
        value = overrides.get(key) or {}
        if not isinstance(value, Mapping):
            raise CatalogValidationError("overrides", f"'{key}' must be an object")
        maps[key] = value
    return Overrides(**maps)


def build_discography_index(discography: Sequence[Discography]) -> Dict[str, DiscographyHit]:
    """
    曲名 → (カバー, リリース年) のインデックスを作る。

    同じ曲が複数リリースに収録されている場合:
    - 先に見つかったリリースを採用
    - ただし後から Single が来たら、Single 以外の情報を Single で上書きする
    """
    index: Dict[str, DiscographyHit] = {}
    for album in discography:
        is_single = album.type == AlbumType.SINGLE.value
        year = release_year(album.release_date)
        for title in album.track_titles():
            key = normalize_title(title)
            if not key:
                continue
            existing = index.get(key)
            if existing is not None and (existing.album_type == AlbumType.SINGLE.value or not is_single):
                continue
            hit = existing or DiscographyHit(album_type=album.type)
            hit.album_type = album.type or AlbumType.ALBUM.value
            if album.cover_image:
                hit.cover = album.cover_image
            if year > 0:
                hit.year = year
            index[key] = hit
    return index


def find_curated_match(file_name: str, songs: Sequence[Tuple[str, CuratedSong]]) -> Optional[CuratedSong]:
    """ソース順で最初に一致した曲を返す（同点の並べ替えはしない）。"""
    name_norm = normalize_title(file_name)
    for title_norm, song in songs:
        if titles_match(name_norm, title_norm):
            return song
    return None


def _override_value(details: Mapping[str, Any], key: str) -> Optional[str]:
    value = details.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


def merge_catalog(
    files: Any,
    curated: Any,
    overrides: Any = None,
    discography: Any = None,
) -> List[MergedTrack]:
    """
    files: スキャナの出力（LocalFile または dict の配列）
    curated: 曲メタデータ（CuratedSong または dict の配列）
    overrides: Overrides または {"covers", "lyrics", "credits"} の dict
    discography: Discography（または dict）の配列。省略可。

    category == "Original" のファイルだけを対象に MergedTrack を入力順で返す。
    メタデータが見つからなくても除外はせず、プレースホルダで埋める。

    Raises:
        CatalogValidationError: files / curated が配列でない、必須フィールド欠落など
    """
    t0 = time.time()
    local_files = coerce_files(files)
    songs = coerce_songs(curated)
    albums = coerce_discography(discography)
    ov = coerce_overrides(overrides)

    disco_index = build_discography_index(albums)
    song_keys = [(normalize_title(s.title), s) for s in songs]

    merged: List[MergedTrack] = []
    matched_count = 0
    for f in local_files:
        if f.category != ORIGINAL_CATEGORY:
            continue

        meta = find_curated_match(f.name, song_keys)
        if meta is not None:
            matched_count += 1

        track_id = f.path
        title = meta.title if meta else strip_extension(f.name.strip()).strip()
        hit = disco_index.get(normalize_title(title))

        year = (hit.year if hit else None) or positive_year(meta.year if meta else None)

        details = ov.credits.get(track_id) or {}
        writer = _override_value(details, "writer") or (meta.writer if meta and meta.writer else CREDIT_PLACEHOLDER)
        composer = _override_value(details, "composer") or (meta.composer if meta and meta.composer else CREDIT_PLACEHOLDER)
        links = {k: v for k, v in (details.get("links") or {}).items() if isinstance(v, str) and v}

        cover = ov.covers.get(track_id) or (hit.cover if hit else None) or f.thumbnail or None

        merged.append(MergedTrack(
            id=track_id,
            title=title,
            album=(meta.album if meta and meta.album else UNKNOWN_ALBUM),
            year=year if year is not None else YEAR_UNSET,
            writer=writer,
            composer=composer,
            category=f.category,
            file=f,
            cover=cover,
            lyrics=ov.lyrics.get(track_id) or "",
            memo=_override_value(details, "memo"),
            links=links,
        ))

    merge_ms = int((time.time() - t0) * 1000)
    logger.debug(
        f"[catalog] merge files={len(local_files)} tracks={len(merged)} "
        f"matched={matched_count} curated={len(songs)} merge_ms={merge_ms}ms"
    )
    return merged


def unique_categories(files: Any) -> List[str]:
    """ファイルのカテゴリ一覧（重複なし・昇順）。"""
    cats = {f.category for f in coerce_files(files) if f.category}
    return sorted(cats)


def category_options(files: Any) -> List[str]:
    """曲一覧で選べるカテゴリ。"all" と、存在すれば "Original"。"""
    options = [ALL_CATEGORIES]
    if ORIGINAL_CATEGORY in unique_categories(files):
        options.append(ORIGINAL_CATEGORY)
    return options
