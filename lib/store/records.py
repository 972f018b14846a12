"""Record lifecycle helpers: ids and timestamps on create, derived discography fields."""
from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

Record = Dict[str, Any]

# 欠けていると未完成扱いになる項目
DISCOGRAPHY_REQUIRED_FIELDS = ("title", "releaseDate", "coverImage", "tracks")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_id(collection: str) -> str:
    """"<collection>-<ミリ秒>-<ランダム7文字>" 形式の ID。"""
    return f"{collection}-{int(time.time() * 1000)}-{secrets.token_hex(4)[:7]}"


def _track_count(record: Mapping[str, Any]) -> int:
    count = sum(len(d.get("tracks") or []) for d in record.get("discs") or [] if isinstance(d, Mapping))
    legacy = record.get("tracks")
    if isinstance(legacy, list):
        count += len(legacy)
    return count


def compute_completion(record: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """タイトル / リリース日 / カバー画像 / 1曲以上のトラック、が揃っていれば完成。"""
    missing: List[str] = []
    for field in DISCOGRAPHY_REQUIRED_FIELDS:
        if field == "tracks":
            if _track_count(record) == 0:
                missing.append(field)
        elif not record.get(field):
            missing.append(field)
    return (not missing, missing)


def with_derived_fields(collection: str, record: Record) -> Record:
    """保存前に派生フィールドを付け直す。discography 以外はそのまま。"""
    if collection != "discography":
        return record
    is_complete, missing = compute_completion(record)
    derived = {**record, "isComplete": is_complete}
    if missing:
        derived["missingFields"] = missing
    else:
        derived.pop("missingFields", None)
    return derived


def prepare_new_record(collection: str, body: Mapping[str, Any], now: Optional[str] = None) -> Record:
    record: Dict[str, Any] = dict(body)
    if not record.get("id"):
        record["id"] = generate_id(collection)
    stamp = now or utc_now_iso()
    record["createdAt"] = stamp
    record["updatedAt"] = stamp
    return with_derived_fields(collection, record)


def prepare_updates(collection: str, existing: Mapping[str, Any], updates: Mapping[str, Any]) -> Record:
    """PUT の差分に、マージ後のレコードから再計算した派生フィールドを加える。"""
    changes = {k: v for k, v in updates.items() if k not in ("id", "createdAt")}
    if collection != "discography":
        return changes
    merged = with_derived_fields(collection, {**existing, **changes})
    changes["isComplete"] = merged["isComplete"]
    changes["missingFields"] = merged.get("missingFields", [])
    return changes


def is_active(record: Mapping[str, Any]) -> bool:
    return not record.get("deletedAt")
