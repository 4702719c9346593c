import hashlib
import json
import os
import time
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from gemini_bridge.domain.exceptions import CacheStoreError


class JsonFileCacheStore:
    """基于 JSON 文件的 TTL 缓存存储。

    每个键对应 root 下的一个文件，内容为 {"key", "expires_at", "value"}；
    写入使用临时文件 + os.replace，读到过期条目时删除文件并视为未命中。
    读写失败抛出 CacheStoreError，由上层转换为 StoreUnavailable。
    """

    def __init__(self, root: str | Path, clock=time.time):
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except Exception as e:
            raise CacheStoreError(code="STORE_READ_ERROR", message=str(e), cache_key=key)
        if float(data.get("expires_at", 0)) <= self._clock():
            self.delete(key)
            return None
        return data.get("value")

    def set(self, key: str, value: Any, ttl: int) -> bool:
        path = self._path_for(key)
        tmp_path = self._root / f"{path.stem}.{uuid4().hex}.json.tmp"
        obj = {"key": key, "expires_at": self._clock() + ttl, "value": value}
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except Exception as e:
            raise CacheStoreError(code="STORE_WRITE_ERROR", message=str(e), cache_key=key)
        return True

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        try:
            path.unlink()
        except Exception as e:
            raise CacheStoreError(code="STORE_DELETE_ERROR", message=str(e), cache_key=key)
        return True

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self._root / f"{digest}.json"
