"""
ユーザー上書き（カバー画像 / 歌詞 / クレジット）の保存。

トラック ID（= ファイルパス）をキーにした3つの独立したマップを1つの JSON ファイルに持つ。
ファイルをリネームすると以前の上書きは紐付かなくなる。
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from lib.catalog.links import validate_external_url
from lib.catalog.models import Overrides

logger = logging.getLogger(__name__)

OVERRIDE_KINDS = ("covers", "lyrics", "credits")
CREDIT_FIELDS = ("writer", "composer", "memo")
LINK_FIELDS = ("spotify", "youtube", "apple")


class OverrideValidationError(ValueError):
    pass


def validate_override_kind(kind: str) -> str:
    if kind not in OVERRIDE_KINDS:
        raise OverrideValidationError(f"Unknown override kind: {kind}")
    return kind


def clean_credits(value: Any) -> Dict[str, Any]:
    """空欄を落とし、リンクは http(s) の URL だけ受け付ける。"""
    if not isinstance(value, Mapping):
        raise OverrideValidationError("credits must be an object")
    details: Dict[str, Any] = {}
    for key in CREDIT_FIELDS:
        v = value.get(key)
        if isinstance(v, str) and v.strip():
            details[key] = v.strip()
    links: Dict[str, str] = {}
    for key in LINK_FIELDS:
        url = ((value.get("links") or {}).get(key) or "").strip()
        if not url:
            continue
        check = validate_external_url(url)
        if not check.get("valid"):
            raise OverrideValidationError(f"links.{key}: {check.get('warning')}")
        links[key] = url
    if links:
        details["links"] = links
    return details


class OverrideStore:
    """
    上書きマップの読み書き。スレッドプールから同時に呼ばれるので、
    メモリ上のマップへのアクセスとファイル保存は1つのロックで直列化する。
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._data: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = threading.RLock()

    def _quarantine(self, reason: str) -> None:
        # 読めないファイルは上書きせず横に退避する
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, target)
        logger.warning(f"[overrides] {self.path} {reason}; moved to {target}")

    def _read_file(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            self._quarantine(f"is not valid JSON ({e})")
            return {}
        if not isinstance(data, dict) or any(
            not isinstance(data.get(kind) or {}, dict) for kind in OVERRIDE_KINDS
        ):
            self._quarantine("does not contain an object of override maps")
            return {}
        return data

    def _load(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if self._data is None:
                data = self._read_file()
                self._data = {kind: dict(data.get(kind) or {}) for kind in OVERRIDE_KINDS}
            return self._data

    def _save(self) -> None:
        with self._lock:
            data = self._load()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise

    def get(self, kind: str, track_id: str) -> Any:
        with self._lock:
            return self._load()[validate_override_kind(kind)].get(track_id)

    def all(self, kind: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._load()[validate_override_kind(kind)])

    def set(self, kind: str, track_id: str, value: Any) -> Any:
        validate_override_kind(kind)
        if kind == "credits":
            value = clean_credits(value)
        elif not isinstance(value, str):
            raise OverrideValidationError(f"{kind} value must be a string")
        with self._lock:
            self._load()[kind][track_id] = value
            self._save()
        return value

    def clear(self, kind: str, track_id: str) -> bool:
        with self._lock:
            removed = self._load()[validate_override_kind(kind)].pop(track_id, None) is not None
            if removed:
                self._save()
        return removed

    def snapshot(self) -> Overrides:
        """merge に渡す読み取り専用のスナップショット。"""
        with self._lock:
            data = self._load()
            return Overrides(
                covers=MappingProxyType(dict(data["covers"])),
                lyrics=MappingProxyType(dict(data["lyrics"])),
                credits=MappingProxyType({k: dict(v) for k, v in data["credits"].items()}),
            )
