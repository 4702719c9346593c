"""HTTP 传输适配层。

对 httpx.Client 做一层薄封装：
- 每个请求附带 API 密钥请求头（密钥不会出现在日志里）。
- 请求体序列化为 JSON，响应体解码为 dict。
- 结果统一为 ResponseEnvelope；任何异常（网络错误、超时、序列化失败）
  都在这里被收敛为 ok=False、status=0 的信封，不会继续向上抛出。

底层 httpx.Client 在首次使用时创建并在实例生命周期内复用；
也可以在构造时注入一个外部 client。
"""

import threading
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from gemini_bridge.config.settings import DEFAULT_BASE_URL
from gemini_bridge.domain.models import ResponseEnvelope, StreamResult
from gemini_bridge.infrastructure.logging.logger import logger, register_secret
from gemini_bridge.providers.registry import ALLOWED_METHODS


class HttpTransport:
    def __init__(self, cfg, http_client: Optional[httpx.Client] = None):
        self._settings = cfg
        self._client = http_client
        self._owns_client = http_client is None
        self._client_lock = threading.Lock()
        register_secret(getattr(cfg, "api_key", None))

    @property
    def client(self) -> httpx.Client:
        """返回底层 client，首次访问时创建，并发首次访问也只创建一个。"""

        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    options: Dict[str, Any] = {"trust_env": False}
                    options.update(getattr(self._settings, "transport_options", None) or {})
                    self._client = httpx.Client(
                        base_url=getattr(self._settings, "base_url", None) or DEFAULT_BASE_URL,
                        timeout=getattr(self._settings, "http_timeout", 30.0),
                        **options,
                    )
        return self._client

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None and self._owns_client:
                self._client.close()
                self._client = None

    # ---- 普通请求 ----

    def request(
        self,
        method: str,
        endpoint: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        method = (method or "").upper()
        if method not in ALLOWED_METHODS:
            return ResponseEnvelope.failure(f"Unsupported HTTP method: {method!r}")
        try:
            resp = self.client.request(
                method,
                endpoint,
                json=dict(body) if body is not None else None,
                params=dict(params) if params else None,
                headers=self._auth_headers(),
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}", extra={"extra": {
                "method": method,
                "endpoint": endpoint,
                "error": str(e),
            }})
            return ResponseEnvelope.failure(str(e))
        return self._to_envelope(resp, method, endpoint)

    def put_raw(self, url: str, content: bytes, headers: Optional[Mapping[str, str]] = None) -> ResponseEnvelope:
        """向绝对 URL 直接 PUT 原始内容（用于文件上传）。"""

        merged = self._auth_headers()
        merged.update(headers or {})
        try:
            resp = self.client.put(url, content=content, headers=merged)
        except Exception as e:
            logger.error(f"Gemini upload failed: {e}", extra={"extra": {"error": str(e)}})
            return ResponseEnvelope.failure(str(e))
        return self._to_envelope(resp, "PUT", "<upload>")

    # ---- 流式 ----

    def stream(
        self,
        endpoint: str,
        body: Mapping[str, Any],
        on_line: Callable[[str], None],
    ) -> StreamResult:
        """以 POST 打开流式请求，逐行交给 on_line 处理。"""

        try:
            with self.client.stream(
                "POST",
                endpoint,
                json=dict(body),
                headers=self._auth_headers(),
            ) as resp:
                status = int(resp.status_code)
                if not _is_success(status):
                    resp.read()
                    data = _decode(resp)
                    error = _error_message(data, status)
                    logger.warning(f"Gemini stream rejected: {error}", extra={"extra": {
                        "endpoint": endpoint,
                        "status": status,
                    }})
                    return StreamResult(ok=False, status=status, error=error)
                for line in resp.iter_lines():
                    on_line(line)
                return StreamResult(ok=True, status=status)
        except Exception as e:
            logger.error(f"Gemini stream failed: {e}", extra={"extra": {
                "endpoint": endpoint,
                "error": str(e),
            }})
            return StreamResult(ok=False, status=0, error=str(e))

    # ---- 辅助方法 ----

    def _auth_headers(self) -> Dict[str, str]:
        header = getattr(self._settings, "api_key_header", None) or "x-goog-api-key"
        return {header: str(getattr(self._settings, "api_key", "") or "")}

    def _to_envelope(self, resp: Any, method: str, endpoint: str) -> ResponseEnvelope:
        status = int(resp.status_code)
        data = _decode(resp)
        if _is_success(status):
            return ResponseEnvelope(ok=True, status=status, data=data)
        error = _error_message(data, status)
        logger.warning(f"Gemini API error: {error}", extra={"extra": {
            "method": method,
            "endpoint": endpoint,
            "status": status,
        }})
        return ResponseEnvelope(ok=False, status=status, data=data, error=error)


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _decode(resp: Any) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    return {"value": data}


def _error_message(data: Mapping[str, Any], status: int) -> str:
    err = data.get("error") if isinstance(data, Mapping) else None
    if isinstance(err, Mapping):
        message = err.get("message")
        if isinstance(message, str) and message:
            return message
    return f"Request failed with status {status}"
