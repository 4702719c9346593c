"""响应字段提取。

纯函数，按固定路径读取解码后的 generateContent 响应；任一层缺失或类型不符时
返回 None，而不是抛异常。参数可以是 dict、None 或 ResponseEnvelope。
"""

from typing import Any, Dict, Mapping, Optional, Sequence

from gemini_bridge.domain.models import ResponseEnvelope


def _as_mapping(response: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(response, ResponseEnvelope):
        response = response.data
    return response if isinstance(response, Mapping) else None


def _first(seq: Any) -> Any:
    if isinstance(seq, Sequence) and not isinstance(seq, (str, bytes)) and seq:
        return seq[0]
    return None


def _first_candidate(response: Any) -> Optional[Mapping[str, Any]]:
    data = _as_mapping(response)
    if data is None:
        return None
    candidate = _first(data.get("candidates"))
    return candidate if isinstance(candidate, Mapping) else None


def extract_text(response: Any) -> Optional[str]:
    """candidates[0].content.parts[0].text"""

    candidate = _first_candidate(response)
    if candidate is None:
        return None
    content = candidate.get("content")
    if not isinstance(content, Mapping):
        return None
    part = _first(content.get("parts"))
    if not isinstance(part, Mapping):
        return None
    text = part.get("text")
    return text if isinstance(text, str) else None


def get_finish_reason(response: Any) -> Optional[str]:
    candidate = _first_candidate(response)
    if candidate is None:
        return None
    reason = candidate.get("finishReason")
    return reason if isinstance(reason, str) else None


def get_usage_metadata(response: Any) -> Optional[Dict[str, Any]]:
    data = _as_mapping(response)
    if data is None:
        return None
    usage = data.get("usageMetadata")
    return dict(usage) if isinstance(usage, Mapping) else None
