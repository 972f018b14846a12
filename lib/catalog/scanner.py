"""
メディアフォルダのスキャナー。ファイル列挙とサムネイル検出を担当。
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from lib.cache_manager import build_scan_cache_key, get_scan_cache
from lib.catalog.models import LocalFile
from lib.media_config import IMAGE_EXTENSIONS, MEDIA_ROOT, PLAYABLE_EXTENSIONS, ROOT_DIRS

logger = logging.getLogger(__name__)


def _find_thumbnail(dir_path: Path, base_name: str, relative_dir: str) -> Optional[str]:
    """同じフォルダにある同名の画像ファイルをサムネイルとして返す（相対パス）。"""
    for ext in IMAGE_EXTENSIONS:
        candidate = dir_path / f"{base_name}{ext}"
        if candidate.is_file():
            return f"{relative_dir}/{candidate.name}" if relative_dir else candidate.name
    return None


def _sorted_entries(dir_path: Path) -> List[Path]:
    # ディレクトリの列挙順は OS 依存なので名前順に固定する
    return sorted(dir_path.iterdir(), key=lambda p: p.name)


def _file_entry(entry: Path, category: str, relative_dir: str) -> Optional[LocalFile]:
    ext = entry.suffix.lower()
    if ext in IMAGE_EXTENSIONS or ext not in PLAYABLE_EXTENSIONS:
        return None
    return LocalFile(
        name=entry.name,
        path=f"{relative_dir}/{entry.name}" if relative_dir else entry.name,
        type=ext.lstrip("."),
        category=category,
        thumbnail=_find_thumbnail(entry.parent, entry.stem, relative_dir),
    )


def scan_directory(dir_path: Path, category: str, relative_dir: str = "") -> List[LocalFile]:
    """
    サブフォルダを再帰的にスキャンする。
    サブフォルダに入るたびにカテゴリは "<親カテゴリ> / <フォルダ名>" になる。
    """
    files: List[LocalFile] = []
    if not dir_path.is_dir():
        return files

    for entry in _sorted_entries(dir_path):
        entry_relative = f"{relative_dir}/{entry.name}" if relative_dir else entry.name
        if entry.is_dir():
            files.extend(scan_directory(entry, f"{category} / {entry.name}", entry_relative))
        elif entry.is_file():
            item = _file_entry(entry, category, relative_dir)
            if item is not None:
                files.append(item)
    return files


def scan_root_files(dir_path: Path, category: str) -> List[LocalFile]:
    """ルート直下のファイルだけ（サブフォルダには入らない）。"""
    if not dir_path.is_dir():
        return []
    files = []
    for entry in _sorted_entries(dir_path):
        if entry.is_file():
            item = _file_entry(entry, category, "")
            if item is not None:
                files.append(item)
    return files


def scan_media_root(
    root: str | Path | None = None,
    root_dirs: Sequence[Tuple[str, str]] = ROOT_DIRS,
    use_cache: bool = True,
) -> List[LocalFile]:
    """
    メディアルートをスキャンして LocalFile の一覧を返す。

    Args:
        root: メディアルート（省略時は MEDIA_ROOT）
        root_dirs: (サブフォルダ, カテゴリ) の組。"" はルート直下のみ
        use_cache: TTLCache を使うかどうか

    ルートが存在しなければ作成して空リストを返す。
    """
    root_path = Path(root if root is not None else MEDIA_ROOT).expanduser()
    if not root_path.exists():
        root_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"[scanner] created media root {root_path}")
        return []

    cache = get_scan_cache()
    cache_key = build_scan_cache_key(root_path)
    if use_cache:
        cached = cache.get(cache_key)
        if cached is not None:
            return list(cached)

    t0 = time.time()
    all_files: List[LocalFile] = []
    for sub_dir, category in root_dirs:
        if sub_dir == "":
            all_files.extend(scan_root_files(root_path, category))
        else:
            all_files.extend(scan_directory(root_path / sub_dir, category, sub_dir))

    scan_ms = int((time.time() - t0) * 1000)
    logger.info(f"[scanner] scanned {root_path} files={len(all_files)} scan_ms={scan_ms}ms")

    if use_cache:
        cache[cache_key] = tuple(all_files)
    return all_files


def files_to_dicts(files: Iterable[LocalFile]) -> List[dict]:
    return [f.to_dict() for f in files]
