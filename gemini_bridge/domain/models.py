"""统一的请求/响应数据模型。

本模块定义了组件对外返回的标准结构以及构造对话内容的辅助函数：

- ResponseEnvelope: 所有非流式调用的统一返回 {ok, status, data, error}。
- StreamResult: 流式调用的返回 {ok, status, error}，不含 data。
- user_turn / model_turn / *_part: 按 Gemini 线协议构造对话轮次与内容片段。
- GenerationOverlay: 实例默认 generationConfig 与单次调用覆盖参数的叠加。

对话轮次本身保持为普通 dict，便于直接序列化进请求体与缓存存储。
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Mapping, Optional


# Gemini 对话角色
Role = Literal["user", "model"]

ROLE_USER: Role = "user"
ROLE_MODEL: Role = "model"


@dataclass(frozen=True)
class ResponseEnvelope:
    """一次非流式调用的结果。

    - ok: 传输层报告成功（2xx）时为 True。
    - status: HTTP 状态码；请求未能完成时为 0。
    - data: 解码后的 JSON 响应体（dict），请求未完成时为 None。
    - error: ok 为 False 时的错误信息，否则为 None。
    """

    ok: bool
    status: int
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str, status: int = 0, data: Optional[Dict[str, Any]] = None) -> "ResponseEnvelope":
        return cls(ok=False, status=status, data=data, error=error or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "status": self.status, "data": self.data, "error": self.error}


@dataclass(frozen=True)
class StreamResult:
    """流式调用结果，chunk 已经通过回调交付，因此不携带 data。"""

    ok: bool
    status: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ok": self.ok, "status": self.status}
        if self.error is not None:
            result["error"] = self.error
        return result


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def inline_data_part(mime_type: str, data: bytes) -> Dict[str, Any]:
    """内联二进制片段，data 以 base64 编码。"""

    return {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}}


def file_data_part(file_uri: str, mime_type: str) -> Dict[str, Any]:
    """引用已上传文件的片段。"""

    return {"fileData": {"fileUri": file_uri, "mimeType": mime_type}}


def make_turn(role: Role, text: str) -> Dict[str, Any]:
    return {"role": role, "parts": [text_part(text)]}


def user_turn(text: str) -> Dict[str, Any]:
    return make_turn(ROLE_USER, text)


def model_turn(text: str) -> Dict[str, Any]:
    return make_turn(ROLE_MODEL, text)


@dataclass(frozen=True)
class GenerationOverlay:
    """generationConfig 叠加结构。

    base 为实例级默认值，overrides 为单次调用参数；resolve() 每次返回新的 dict，
    按 key 逐个覆盖。覆盖值为 None 时保留默认值。
    """

    base: Mapping[str, Any] = field(default_factory=dict)
    overrides: Mapping[str, Any] = field(default_factory=dict)

    def resolve(self) -> Dict[str, Any]:
        merged: Dict[str, Any] = dict(self.base or {})
        for key, value in (self.overrides or {}).items():
            if value is None:
                continue
            merged[key] = value
        return merged

