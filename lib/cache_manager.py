"""Centralized cache utilities (TTLCache settings & key builders)."""
from __future__ import annotations

import os
from pathlib import Path

from cachetools import TTLCache

from lib.media_config import DB_CACHE_TTL_S, SCAN_CACHE_MAXSIZE, SCAN_CACHE_TTL_S

CACHE_VERSION = int(os.getenv("LIBRARY_CACHE_VERSION", "1"))

# Lazy-initialized caches
_scan_cache: TTLCache | None = None
_db_cache: TTLCache | None = None


def get_scan_cache() -> TTLCache:
    global _scan_cache
    if _scan_cache is None:
        _scan_cache = TTLCache(maxsize=SCAN_CACHE_MAXSIZE, ttl=SCAN_CACHE_TTL_S)
    return _scan_cache


def get_db_cache() -> TTLCache:
    global _db_cache
    if _db_cache is None:
        _db_cache = TTLCache(maxsize=64, ttl=DB_CACHE_TTL_S)
    return _db_cache


def reset_caches() -> None:
    global _scan_cache, _db_cache
    _scan_cache = None
    _db_cache = None


def build_scan_cache_key(root: Path) -> str:
    """ルートのパスと mtime（直下の変更で変わる）をキーにする。"""
    try:
        mtime = root.stat().st_mtime_ns
    except OSError:
        mtime = 0
    return f"scan:{CACHE_VERSION}:{root}:{mtime}"


def build_db_cache_key(data_dir: Path, collection: str) -> str:
    return f"db:{CACHE_VERSION}:{data_dir}:{collection}"
