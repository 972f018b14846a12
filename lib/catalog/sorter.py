"""
MergedTrack の検索 / 絞り込み / 並べ替え。

Python の sorted は安定ソートなので、同じキーの曲は元の並び順を保つ。
年が不明な曲は昇順・降順どちらでも常に末尾に沈める。
"""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from lib.catalog.models import (
    ALL_CATEGORIES,
    ORIGINAL_CATEGORY,
    CatalogValidationError,
    LocalFile,
    MergedTrack,
    SortOption,
)
from lib.catalog.matcher import coerce_files
from lib.catalog.normalizer import extract_folder_year, strip_extension


def _fold(value: Optional[str]) -> str:
    return (value or "").casefold()


def _text_key(value: Optional[str]) -> Tuple[str, str]:
    # 大文字小文字だけが違う文字列も、元の文字列で順序を決める
    return (_fold(value), value or "")


def _numeric_key(year: Optional[int], descending: bool) -> Tuple[int, int]:
    # (不明フラグ, 値) の昇順ソートで、不明は必ず後ろ
    if not year:
        return (1, 0)
    return (0, -year if descending else year)


def _release_year(track: MergedTrack) -> Optional[int]:
    return track.year if isinstance(track.year, int) and not isinstance(track.year, bool) else None


_TEXT_SORTS: Dict[SortOption, Tuple[Callable[[MergedTrack], Tuple[str, str]], bool]] = {
    SortOption.TITLE_AZ: (lambda t: _text_key(t.title), False),
    SortOption.TITLE_ZA: (lambda t: _text_key(t.title), True),
    SortOption.ALBUM_AZ: (lambda t: _text_key(t.album), False),
    SortOption.ALBUM_ZA: (lambda t: _text_key(t.album), True),
    SortOption.WRITER: (lambda t: _text_key(t.writer), False),
    SortOption.COMPOSER: (lambda t: _text_key(t.composer), False),
    SortOption.CATEGORY: (lambda t: _text_key(t.category), False),
    SortOption.FILENAME: (lambda t: _text_key(t.file.name), False),
}

_NUMERIC_SORTS: Dict[SortOption, Tuple[Callable[[MergedTrack], Optional[int]], bool]] = {
    SortOption.YEAR_ASC: (_release_year, False),
    SortOption.YEAR_DESC: (_release_year, True),
    SortOption.FOLDER_YEAR_ASC: (lambda t: extract_folder_year(t.category), False),
    SortOption.FOLDER_YEAR_DESC: (lambda t: extract_folder_year(t.category), True),
}


def parse_sort_option(value: Union[str, SortOption]) -> SortOption:
    if isinstance(value, SortOption):
        return value
    try:
        return SortOption(value)
    except ValueError:
        valid = ", ".join(o.value for o in SortOption)
        raise CatalogValidationError("sort", f"unknown sort option '{value}' (expected one of: {valid})")


def matches_query(track: MergedTrack, query: str) -> bool:
    """タイトル / アルバム / 歌詞のいずれかに部分一致（大文字小文字無視）。"""
    q = (query or "").strip().casefold()
    if not q:
        return True
    return (
        q in _fold(track.title)
        or q in _fold(track.album)
        or q in _fold(track.lyrics)
    )


def sort_tracks(tracks: Iterable[MergedTrack], sort_option: Union[str, SortOption]) -> List[MergedTrack]:
    option = parse_sort_option(sort_option)
    if option in _NUMERIC_SORTS:
        get_year, descending = _NUMERIC_SORTS[option]
        return sorted(tracks, key=lambda t: _numeric_key(get_year(t), descending))
    get_text, reverse = _TEXT_SORTS[option]
    # reverse=True でも同じキー同士の元の順序は保たれる
    return sorted(tracks, key=get_text, reverse=reverse)


def sort_and_filter(
    tracks: Sequence[MergedTrack],
    query: str = "",
    sort_option: Union[str, SortOption] = SortOption.YEAR_DESC,
    category_filter: str = ALL_CATEGORIES,
) -> List[MergedTrack]:
    """
    検索語とカテゴリで絞り込み、指定の順序で並べた新しいリストを返す。
    同じ入力に対しては何度呼んでも同じ順序になる（冪等）。
    """
    if not isinstance(tracks, (list, tuple)):
        raise CatalogValidationError("tracks", f"expected a list, got {type(tracks).__name__}")
    option = parse_sort_option(sort_option)
    category = category_filter or ALL_CATEGORIES

    filtered = [
        t for t in tracks
        if matches_query(t, query) and (category == ALL_CATEGORIES or t.category == category)
    ]
    return sort_tracks(filtered, option)


def group_by_category(files: Sequence[Any], exclude_category: Optional[str] = ORIGINAL_CATEGORY) -> List[Dict[str, Any]]:
    """
    動画やライブ音源をカテゴリ（フォルダ）ごとにまとめる。
    グループはフォルダ年の新しい順（年なしは末尾）、グループ内はファイル名順。
    """
    groups: Dict[str, List[LocalFile]] = {}
    for f in coerce_files(files):
        if exclude_category is not None and f.category == exclude_category:
            continue
        groups.setdefault(f.category, []).append(f)

    ordered = sorted(
        groups.items(),
        key=lambda kv: (_numeric_key(extract_folder_year(kv[0]), True), _text_key(kv[0])),
    )
    return [
        {
            "category": category,
            "year": extract_folder_year(category) or None,
            "files": sorted(items, key=lambda f: _text_key(strip_extension(f.name))),
        }
        for category, items in ordered
    ]
