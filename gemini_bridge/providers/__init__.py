"""Gemini Provider 集成层。

该包下的模块负责：
- 端点与常量 (registry)。
- HTTP 传输与统一响应信封 (transport)。
- SSE 行解码 (streaming) 与响应字段提取 (responses)。
- 各 API 的请求构造 (gemini_client)。
"""

from typing import Optional

import httpx

from gemini_bridge.config.settings import settings
from gemini_bridge.providers.gemini_client import GeminiClient


def create_client(cfg=None, http_client: Optional[httpx.Client] = None) -> GeminiClient:
    """根据配置创建 GeminiClient，默认使用全局 settings。"""

    return GeminiClient(cfg or settings, http_client=http_client)
