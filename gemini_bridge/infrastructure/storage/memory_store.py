"""进程内 TTL 缓存存储，默认注册为 "default"。"""

import copy
import threading
import time
from typing import Any, Dict, Optional, Tuple


class MemoryCacheStore:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._items: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= self._clock():
                del self._items[key]
                return None
            # 返回副本，调用方修改列表不会影响已缓存的历史
            return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl: int) -> bool:
        with self._lock:
            self._items[key] = (self._clock() + ttl, copy.deepcopy(value))
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
