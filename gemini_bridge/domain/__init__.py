"""领域层模型与协议。

包含：
- models: 统一的 ResponseEnvelope / StreamResult、对话轮次与 GenerationOverlay。
- cache: 缓存存储协议以及 CacheHit / CacheMiss / StoreUnavailable 查询结果。
- exceptions: 业务异常类型定义。
"""
