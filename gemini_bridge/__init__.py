"""Gemini Bridge 顶层包。

把 Google Gemini REST API 适配为宿主 Web 应用可直接使用的组件：
生成、流式生成、embeddings、文件上传、模型查询，以及基于宿主缓存存储的
会话历史与服务端缓存句柄。
"""

from gemini_bridge.domain.models import ResponseEnvelope, StreamResult
from gemini_bridge.infrastructure.storage.registry import register_cache_store
from gemini_bridge.providers import create_client
from gemini_bridge.providers.gemini_client import GeminiClient
from gemini_bridge.providers.responses import extract_text, get_finish_reason, get_usage_metadata

__all__ = [
    "GeminiClient",
    "ResponseEnvelope",
    "StreamResult",
    "create_client",
    "extract_text",
    "get_finish_reason",
    "get_usage_metadata",
    "register_cache_store",
]
