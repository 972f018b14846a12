"""
Local catalog scanning, merging and ordering.

Public API:
  - scan_media_root(root) -> list[LocalFile]
  - merge_catalog(files, curated, overrides, discography) -> list[MergedTrack]
  - sort_and_filter(tracks, query, sort_option, category_filter) -> list[MergedTrack]
  - playlist_from(tracks, start_index) -> PlayQueue
"""
from lib.catalog.matcher import merge_catalog, build_discography_index, unique_categories, category_options
from lib.catalog.sorter import sort_and_filter, group_by_category, parse_sort_option
from lib.catalog.playlist import playlist_from, get_smart_playlist, smart_playlist_queue, smart_playlist_summary
from lib.catalog.scanner import scan_media_root
from lib.catalog.history import timeline
from lib.catalog.models import (
    CatalogValidationError,
    LocalFile,
    CuratedSong,
    Discography,
    HistoryEvent,
    MergedTrack,
    Overrides,
    PlayQueue,
    QueueEntry,
    SortOption,
    YEAR_UNSET,
)

__all__ = [
    "merge_catalog",
    "build_discography_index",
    "unique_categories",
    "category_options",
    "sort_and_filter",
    "group_by_category",
    "parse_sort_option",
    "playlist_from",
    "get_smart_playlist",
    "smart_playlist_queue",
    "smart_playlist_summary",
    "scan_media_root",
    "timeline",
    "CatalogValidationError",
    "LocalFile",
    "CuratedSong",
    "Discography",
    "HistoryEvent",
    "MergedTrack",
    "Overrides",
    "PlayQueue",
    "QueueEntry",
    "SortOption",
    "YEAR_UNSET",
]
