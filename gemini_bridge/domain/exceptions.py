"""统一业务异常模型。

组件内只有配置错误会向调用方抛出（ConfigurationError）；网络与 API 错误在
传输层被收敛为 ResponseEnvelope，缓存存储抛出的 CacheStoreError 在会话历史层
被收敛为 StoreUnavailable。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 cache_key）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置无效（缺少 API 密钥、未知缓存模式等），在构造客户端时立即抛出。"""


class CacheStoreError(BusinessError):
    """缓存存储读写失败。"""
