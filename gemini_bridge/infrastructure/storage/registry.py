"""缓存存储注册表。

宿主应用按名称注册缓存组件（实例或无参工厂），组件在首次使用时按配置中的
cache_store 名称解析。工厂只会调用一次，结果被缓存下来供后续复用。
"""

import threading
from typing import Any, Callable, Dict, Union

from gemini_bridge.domain.cache import CacheStore
from gemini_bridge.infrastructure.storage.memory_store import MemoryCacheStore


StoreFactory = Callable[[], CacheStore]

_lock = threading.Lock()
_factories: Dict[str, StoreFactory] = {}
_instances: Dict[str, CacheStore] = {}


def register_cache_store(name: str, store: Union[CacheStore, StoreFactory]) -> None:
    """注册缓存存储；传入类或不具备 get/set 的可调用对象时视为工厂，延迟构造。"""

    key = name.lower()
    with _lock:
        _instances.pop(key, None)
        _factories.pop(key, None)
        if _is_store(store):
            _instances[key] = store  # type: ignore[assignment]
        else:
            _factories[key] = store  # type: ignore[assignment]


def unregister_cache_store(name: str) -> None:
    key = name.lower()
    with _lock:
        _instances.pop(key, None)
        _factories.pop(key, None)


def resolve_cache_store(name: str) -> CacheStore:
    """根据名称解析缓存存储，名称不区分大小写；未注册时抛出 KeyError。"""

    key = name.lower()
    with _lock:
        if key in _instances:
            return _instances[key]
        factory = _factories.get(key)
        if factory is None:
            raise KeyError(f"Unknown cache store: {name!r}")
        store = factory()
        _instances[key] = store
        return store


def _is_store(obj: Any) -> bool:
    if isinstance(obj, type):
        return False
    return callable(getattr(obj, "get", None)) and callable(getattr(obj, "set", None))


register_cache_store("default", MemoryCacheStore)
