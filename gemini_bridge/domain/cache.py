"""缓存存储协议与查询结果类型。

会话历史与服务端缓存句柄都保存在宿主应用提供的键值缓存中。
缓存访问采用 fail-open 策略：存储不可用只会让组件“忘记上下文”，
不会导致生成请求失败。查询结果用三种变体显式区分：

- CacheHit: 命中，value 为缓存值。
- CacheMiss: 存储可用但键不存在（或已过期）。
- StoreUnavailable: 存储无法解析或读写异常，reason 记录原因。
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union


class CacheStore(Protocol):
    """宿主缓存组件需要提供的最小接口。"""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: int) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...


@dataclass(frozen=True)
class CacheHit:
    value: Any


@dataclass(frozen=True)
class CacheMiss:
    key: str


@dataclass(frozen=True)
class StoreUnavailable:
    reason: str


CacheLookup = Union[CacheHit, CacheMiss, StoreUnavailable]
