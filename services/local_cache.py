#!/usr/bin/env python3
"""
LocalCache - ユーザー単位のローカルキャッシュ

JSON snapshots stored one file per key. Keys are ``{collection}-{user_id}``, or
``{collection}-guest`` without a session. Reads never raise: missing or
corrupt entries fall back to the caller's default.
"""

import json
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from urllib.parse import quote

from config.constants import CACHE_DIR, GUEST_CACHE_SCOPE
from config.loggers import GenericLogger

T = TypeVar("T")


def scoped_key(kind: str, user_id: Optional[str]) -> str:
    """コレクション種別とユーザーIDからキャッシュキーを生成"""
    return f"{kind}-{user_id or GUEST_CACHE_SCOPE}"


class LocalCache:
    """ファイルベースのキー・バリューキャッシュ"""

    def __init__(self, cache_dir: Optional[str] = None):
        self.cache_dir = Path(cache_dir or CACHE_DIR)
        self.logger = GenericLogger("service", "local_cache")

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{quote(key, safe='-_.')}.json"

    def load(self, key: str, default_factory: Callable[[], T], parse: Optional[Callable[[Any], T]] = None) -> T:
        """
        キャッシュを読み込む

        Args:
            key: Cache key
            default_factory: Builds the typed default for absent/corrupt entries
            parse: Converts the decoded JSON into the typed value

        Returns:
            Parsed value, or ``default_factory()``
        """
        path = self._path_for(key)
        if not path.exists():
            return default_factory()

        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return parse(raw) if parse else raw
        except Exception as e:
            self.logger.error(f"❌ [CACHE] Failed to parse cached state '{key}': {e}")
            return default_factory()

    def save(self, key: str, value: Any) -> bool:
        """キャッシュに保存（失敗してもログのみ）"""
        path = self._path_for(key)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
            tmp_path.replace(path)
            return True
        except Exception as e:
            self.logger.error(f"❌ [CACHE] Failed to persist cached state '{key}': {e}")
            return False

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()
