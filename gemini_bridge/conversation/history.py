"""基于宿主缓存存储的会话历史。

键由固定前缀加调用方给定的标识组成，标识中 [A-Za-z0-9_-] 以外的字符
替换为 "_"。所有读写都是 fail-open：

- 存储无法解析或读取异常 -> StoreUnavailable（记 warning，不抛出）。
- 写入异常 -> 返回 False（记 warning，不抛出）。

同一进程内对同一会话标识的 读取-追加-写入 通过 lock(conversation_id)
串行化；跨进程仍是最后写入者生效。
"""

import re
import threading
import weakref
from contextlib import nullcontext
from typing import Any, Callable, ContextManager, Dict, List, Optional, Union

from gemini_bridge.domain.cache import CacheHit, CacheLookup, CacheMiss, CacheStore, StoreUnavailable
from gemini_bridge.domain.models import Role, make_turn
from gemini_bridge.infrastructure.logging.logger import logger
from gemini_bridge.infrastructure.storage.registry import resolve_cache_store


_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9_\-]", re.IGNORECASE)


class PrefixedCache:
    """以固定前缀保存值的缓存视图。"""

    def __init__(
        self,
        store_name: Optional[str],
        prefix: str,
        ttl: int,
        resolver: Callable[[str], CacheStore] = resolve_cache_store,
    ):
        self._store_name = store_name
        self._prefix = prefix
        self._ttl = ttl
        self._resolver = resolver

    @property
    def ttl(self) -> int:
        return self._ttl

    def key_for(self, identifier: str) -> str:
        return self._prefix + _UNSAFE_KEY_CHARS.sub("_", str(identifier))

    def resolve_store(self) -> Union[CacheStore, StoreUnavailable]:
        if not self._store_name:
            return StoreUnavailable(reason="no cache store configured")
        try:
            return self._resolver(self._store_name)
        except Exception as e:
            logger.warning(f"Gemini cache not available: {e}", extra={"extra": {
                "cache_store": self._store_name,
            }})
            return StoreUnavailable(reason=str(e))

    def load(self, identifier: str) -> CacheLookup:
        store = self.resolve_store()
        if isinstance(store, StoreUnavailable):
            return store
        key = self.key_for(identifier)
        try:
            value = store.get(key)
        except Exception as e:
            logger.warning(f"Gemini cache read failed: {e}", extra={"extra": {"cache_key": key}})
            return StoreUnavailable(reason=str(e))
        if value is None or not self._accepts(value):
            return CacheMiss(key=key)
        return CacheHit(value=value)

    def save(self, identifier: str, value: Any, ttl: Optional[int] = None) -> bool:
        store = self.resolve_store()
        if isinstance(store, StoreUnavailable):
            return False
        key = self.key_for(identifier)
        try:
            return bool(store.set(key, value, ttl or self._ttl))
        except Exception as e:
            logger.warning(f"Gemini cache write failed: {e}", extra={"extra": {"cache_key": key}})
            return False

    def _accepts(self, value: Any) -> bool:
        return True


class ConversationLock:
    """单个会话的互斥锁；不再被持有时从锁表中自动移除。"""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self) -> "ConversationLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self._lock.release()


class ConversationHistory(PrefixedCache):
    """会话轮次列表 [{role, parts: [{text}]}, ...] 的读写。"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._locks: "weakref.WeakValueDictionary[str, ConversationLock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, list)

    def clear(self, conversation_id: str) -> bool:
        return self.save(conversation_id, [])

    def lock(self, conversation_id: Optional[str]) -> ContextManager:
        if conversation_id is None:
            return nullcontext()
        key = self.key_for(conversation_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = ConversationLock()
                self._locks[key] = lock
        return lock

    @staticmethod
    def append(turns: List[Dict[str, Any]], role: Role, text: str) -> List[Dict[str, Any]]:
        """返回追加一轮后的新列表，原列表不变。"""

        return [*turns, make_turn(role, text)]


class ServerCacheHandles(PrefixedCache):
    """调用方标识 -> 服务端 cachedContents 句柄名。"""

    def _accepts(self, value: Any) -> bool:
        return isinstance(value, str) and bool(value)
