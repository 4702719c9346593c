"""对外 API 服务模块。

提供简化的函数接口供宿主应用调用，内部复用一个按需创建的默认客户端。
"""

import threading
from typing import Any, Dict, Mapping, Optional

from gemini_bridge.domain.models import ResponseEnvelope
from gemini_bridge.infrastructure.logging.logger import logger
from gemini_bridge.providers import create_client
from gemini_bridge.providers.gemini_client import GeminiClient
from gemini_bridge.providers.responses import extract_text, get_finish_reason, get_usage_metadata


_client: Optional[GeminiClient] = None
_client_lock = threading.Lock()


def get_default_client() -> GeminiClient:
    """获取默认 GeminiClient 实例（单例，首次调用时创建）。"""
    global _client
    with _client_lock:
        if _client is None:
            _client = create_client()
        return _client


def reset_default_client() -> None:
    """关闭并丢弃默认客户端，下次调用时按当前配置重新创建。"""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
        _client = None


def generate(model: str, content: Any, options: Optional[Mapping[str, Any]] = None) -> ResponseEnvelope:
    return get_default_client().generate_content(model, content, options)


def chat(
    model: str,
    text: str,
    conversation_id: Optional[str] = None,
    options: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """运行一轮对话，并把常用字段摊平成便于序列化的字典。

    Returns:
        {"ok", "status", "error", "text", "finish_reason", "usage"}
    """
    resp = get_default_client().chat(model, text, conversation_id=conversation_id, options=options)
    if not resp.ok:
        logger.error(f"Chat failed: {resp.error}", extra={"extra": {
            "conversation_id": conversation_id,
            "status": resp.status,
        }})
    return {
        "ok": resp.ok,
        "status": resp.status,
        "error": resp.error,
        "text": extract_text(resp),
        "finish_reason": get_finish_reason(resp),
        "usage": get_usage_metadata(resp),
    }
