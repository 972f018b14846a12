"""
JSON ファイルベースのデータベース。

コレクションごとに <data_dir>/<collection>.json（レコードの配列）を持つ。
読み込みは短い TTL のメモリキャッシュを通し、書き込みは一時ファイル + rename で原子的に行う。
FastAPI は def エンドポイントをスレッドプールで動かすので、
読み込み → 変更 → 書き込みはコレクションごとのロックの中で行う。
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from lib.cache_manager import build_db_cache_key, get_db_cache
from lib.store.records import Record, utc_now_iso, with_derived_fields

logger = logging.getLogger(__name__)

COLLECTIONS = (
    "history",
    "songs",
    "discography",
    "tags",
    "members",
    "settings",
    "playHistory",
    "favorites",
    "goods",
    "gallery_metadata",
)

# (data_dir, collection) -> ロック。同じディレクトリを指す JsonDatabase 同士でも共有する
_collection_locks: Dict[Tuple[str, str], threading.RLock] = {}
_registry_lock = threading.Lock()
# TTLCache 自体はスレッドセーフではない
_cache_lock = threading.Lock()


def _lock_for(data_dir: Path, collection: str) -> threading.RLock:
    key = (str(data_dir.resolve()), collection)
    with _registry_lock:
        lock = _collection_locks.get(key)
        if lock is None:
            lock = _collection_locks[key] = threading.RLock()
        return lock


class InvalidCollectionError(ValueError):
    pass


class ItemNotFoundError(KeyError):
    def __init__(self, collection: str, item_id: str):
        self.collection = collection
        self.item_id = item_id
        super().__init__(f'Item with id "{item_id}" not found in {collection}')

    def __str__(self) -> str:
        return self.args[0]


class DuplicateItemError(ValueError):
    def __init__(self, collection: str, item_id: str):
        self.collection = collection
        self.item_id = item_id
        super().__init__(f'Item with id "{item_id}" already exists in {collection}')


def validate_collection(name: str) -> str:
    if name not in COLLECTIONS:
        raise InvalidCollectionError(f"Invalid collection: {name}")
    return name


def _derived_all(collection: str, items: List[Any]) -> List[Any]:
    return [with_derived_fields(collection, item) if isinstance(item, dict) else item for item in items]


class JsonDatabase:
    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir).expanduser()

    # ── files ───────────────────────────────────────────────────────────

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _lock(self, collection: str) -> threading.RLock:
        return _lock_for(self.data_dir, validate_collection(collection))

    def file_path(self, collection: str) -> Path:
        return self.data_dir / f"{validate_collection(collection)}.json"

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise

    # ── read / write ────────────────────────────────────────────────────

    def load_data(self, collection: str) -> List[Record]:
        """コレクションの全件。ファイルが無ければ空配列。"""
        path = self.file_path(collection)
        key = build_db_cache_key(self.data_dir, collection)
        with _cache_lock:
            cached = get_db_cache().get(key)
        if cached is not None:
            return copy.deepcopy(cached)

        self._ensure_dir()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        if not isinstance(data, list):
            raise ValueError(f"{path.name} must contain a JSON array")

        with _cache_lock:
            get_db_cache()[key] = data
        return copy.deepcopy(data)

    def save_data(self, collection: str, data: List[Record]) -> None:
        path = self.file_path(collection)
        with self._lock(collection):
            self._write_json(path, data)
            with _cache_lock:
                get_db_cache()[build_db_cache_key(self.data_dir, collection)] = copy.deepcopy(data)
        logger.debug(f"[db] saved {collection} items={len(data)}")

    def clear_cache(self, collection: Optional[str] = None) -> None:
        names = [collection] if collection else list(COLLECTIONS)
        with _cache_lock:
            cache = get_db_cache()
            for name in names:
                cache.pop(build_db_cache_key(self.data_dir, name), None)

    # ── CRUD ────────────────────────────────────────────────────────────

    def get_by_id(self, collection: str, item_id: str) -> Optional[Record]:
        return next((item for item in self.load_data(collection) if item.get("id") == item_id), None)

    def create(self, collection: str, item: Record) -> Record:
        with self._lock(collection):
            data = self.load_data(collection)
            if any(existing.get("id") == item.get("id") for existing in data):
                raise DuplicateItemError(collection, item.get("id"))
            data.append(item)
            self.save_data(collection, data)
        return item

    def update(self, collection: str, item_id: str, updates: Record) -> Record:
        with self._lock(collection):
            data = self.load_data(collection)
            for index, item in enumerate(data):
                if item.get("id") == item_id:
                    data[index] = {**item, **updates, "id": item_id, "updatedAt": utc_now_iso()}
                    self.save_data(collection, data)
                    return data[index]
        raise ItemNotFoundError(collection, item_id)

    def remove(self, collection: str, item_id: str) -> bool:
        with self._lock(collection):
            data = self.load_data(collection)
            remaining = [item for item in data if item.get("id") != item_id]
            if len(remaining) == len(data):
                return False
            self.save_data(collection, remaining)
        return True

    def soft_delete(self, collection: str, item_id: str) -> Record:
        """論理削除（deletedAt を付けるだけ）。"""
        return self.update(collection, item_id, {"deletedAt": utc_now_iso()})

    def query(self, collection: str, predicate: Callable[[Record], bool]) -> List[Record]:
        return [item for item in self.load_data(collection) if predicate(item)]

    def bulk_update(self, collection: str, updates: Iterable[Record]) -> int:
        """updates: [{"id": ..., "data": {...}}, ...]。存在しない id は無視。更新件数を返す。"""
        with self._lock(collection):
            data = self.load_data(collection)
            index_by_id = {item.get("id"): i for i, item in enumerate(data)}
            now = utc_now_iso()
            updated = 0
            for entry in updates:
                i = index_by_id.get(entry.get("id"))
                if i is None:
                    continue
                merged = {**data[i], **(entry.get("data") or {}), "id": data[i].get("id"), "updatedAt": now}
                data[i] = with_derived_fields(collection, merged)
                updated += 1
            self.save_data(collection, data)
        return updated

    # ── backup ──────────────────────────────────────────────────────────

    def export_all(self) -> Dict[str, List[Record]]:
        return {name: self.load_data(name) for name in COLLECTIONS}

    def import_all(self, payload: Dict[str, Any]) -> List[str]:
        """配列になっているコレクションだけ上書きする。復元したコレクション名を返す。"""
        restored = []
        for name in COLLECTIONS:
            items = payload.get(name)
            if isinstance(items, list):
                self.save_data(name, _derived_all(name, items))
                restored.append(name)
        self.clear_cache()
        return restored

    def create_backup(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        backup_path = self.data_dir / "backups" / f"backup-{stamp}"
        backup_path.mkdir(parents=True, exist_ok=True)
        for name in COLLECTIONS:
            self._write_json(backup_path / f"{name}.json", self.load_data(name))
        logger.info(f"[db] backup created at {backup_path}")
        return backup_path

    def restore_from_backup(self, backup_path: str | Path) -> List[str]:
        backup_dir = Path(backup_path)
        if not backup_dir.is_dir():
            raise FileNotFoundError(f"Backup not found: {backup_dir}")
        restored = []
        for name in COLLECTIONS:
            src = backup_dir / f"{name}.json"
            if not src.exists():
                continue
            items = json.loads(src.read_text(encoding="utf-8"))
            if not isinstance(items, list):
                raise ValueError(f"{src.name} must contain a JSON array")
            self.save_data(name, _derived_all(name, items))
            restored.append(name)
        self.clear_cache()
        logger.info(f"[db] restored {len(restored)} collections from {backup_dir}")
        return restored
