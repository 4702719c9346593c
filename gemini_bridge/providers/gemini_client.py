"""Google Gemini REST 适配器。

每个公开方法对应一次 Gemini API 请求：
- URL: {base_url}{endpoint}，base_url 默认 https://generativelanguage.googleapis.com/v1beta/
- 认证: x-goog-api-key: <api_key>

请求体只包含非空字段；实例级 generationConfig 与单次调用的 options 通过
GenerationOverlay 叠加，safetySettings / systemInstruction 未配置时不发送。
非流式方法统一返回 ResponseEnvelope，调用方需先检查 ok 再读取 data。
"""

import base64
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import httpx

from gemini_bridge.config.settings import settings
from gemini_bridge.conversation.history import ConversationHistory, ServerCacheHandles
from gemini_bridge.domain.cache import CacheHit, StoreUnavailable
from gemini_bridge.domain.exceptions import ConfigurationError
from gemini_bridge.domain.models import (
    ROLE_MODEL,
    ROLE_USER,
    GenerationOverlay,
    ResponseEnvelope,
    StreamResult,
    text_part,
    user_turn,
)
from gemini_bridge.infrastructure.logging.logger import logger
from gemini_bridge.providers.registry import (
    CACHE_MODES,
    FALLBACK_SYSTEM_INSTRUCTION,
    SERVER_CACHE_ERROR,
    endpoint,
    qualify,
)
from gemini_bridge.providers.responses import extract_text
from gemini_bridge.providers.streaming import SseLineDecoder
from gemini_bridge.providers.transport import HttpTransport


def normalize_contents(content: Any) -> List[Dict[str, Any]]:
    """把调用方输入整理为 contents 列表。

    - str: 包装为一条 user 轮次。
    - 非空序列且首元素为 dict: 视为已构造好的轮次列表，原样使用。
    - dict: 单个轮次，包装为单元素列表。
    - 其他: 转为字符串后包装为 user 轮次。
    """

    if isinstance(content, str):
        return [user_turn(content)]
    if isinstance(content, Sequence) and not isinstance(content, (bytes, bytearray)):
        if content and isinstance(content[0], Mapping):
            return list(content)
    elif isinstance(content, Mapping):
        return [dict(content)]
    return [user_turn(str(content))]


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings, http_client: Optional[httpx.Client] = None):
        self._settings = cfg
        self._validate()
        self._transport = HttpTransport(cfg, http_client=http_client)
        store_name = getattr(cfg, "cache_store", None)
        ttl = int(getattr(cfg, "cache_ttl", 3600))
        self._history = ConversationHistory(
            store_name,
            getattr(cfg, "cache_prefix", None) or "gem_chat_",
            ttl,
        )
        self._server_handles = ServerCacheHandles(
            store_name,
            getattr(cfg, "server_cache_prefix", None) or "gem_server_cache_",
            ttl,
        )

    def _validate(self) -> None:
        api_key = getattr(self._settings, "api_key", None)
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigurationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        mode = getattr(self._settings, "cache_mode", "client")
        if mode not in CACHE_MODES:
            raise ConfigurationError(code="INVALID_CACHE_MODE", message=f"Unknown cache mode: {mode!r}")
        ttl = getattr(self._settings, "cache_ttl", 3600)
        if not isinstance(ttl, int) or ttl < 1:
            raise ConfigurationError(code="INVALID_CACHE_TTL", message=f"cache_ttl must be a positive integer, got {ttl!r}")

    @property
    def cache_mode(self) -> str:
        return getattr(self._settings, "cache_mode", "client")

    @property
    def history(self) -> ConversationHistory:
        return self._history

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "GeminiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        """直接调用任意端点，供尚未封装的 API 使用。"""

        return self._transport.request(method, path, body, params)

    # ---- 生成 ----

    def generate_content(
        self,
        model: str,
        content: Any,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        body = self._build_body(normalize_contents(content), options)
        return self._transport.request("POST", endpoint("generate", model=model), body)

    def stream_generate_content(
        self,
        model: str,
        content: Any,
        callback: Callable[[Any], None],
        options: Optional[Mapping[str, Any]] = None,
    ) -> StreamResult:
        """流式生成；每个 `data: ` 行解码后同步回调一次。"""

        body = self._build_body(normalize_contents(content), options)
        decoder = SseLineDecoder(callback)
        result = self._transport.stream(endpoint("stream_generate", model=model), body, decoder)
        logger.info("Gemini stream finished", extra={"extra": {
            "model": model,
            "ok": result.ok,
            "status": result.status,
            "chunks": decoder.delivered,
        }})
        return result

    def count_tokens(self, model: str, text: str) -> Optional[int]:
        resp = self._transport.request(
            "POST",
            endpoint("count_tokens", model=model),
            {"contents": [user_turn(text)]},
        )
        if not resp.ok or not resp.data:
            return None
        total = resp.data.get("totalTokens")
        if isinstance(total, bool) or not isinstance(total, int):
            return None
        return total

    # ---- 会话（客户端缓存） ----

    def chat(
        self,
        model: str,
        text: str,
        conversation_id: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        """带历史的多轮对话。

        cache_mode 为 "none" 时等价于 generate_content。否则读取会话历史，
        追加本轮 user 消息后整体发送；调用成功且能取到回复文本时，
        追加 model 轮次并写回缓存。缓存故障只会丢失上下文，不影响本次生成。
        该路径不发送 systemInstruction。
        """

        if self.cache_mode == "none":
            return self.generate_content(model, text, options)

        conv_id = conversation_id if conversation_id is not None else getattr(self._settings, "conversation_id", None)
        with self._history.lock(conv_id):
            turns: List[Dict[str, Any]] = []
            if conv_id is not None:
                lookup = self._history.load(conv_id)
                if isinstance(lookup, CacheHit):
                    turns = list(lookup.value)
                elif isinstance(lookup, StoreUnavailable):
                    logger.warning("Chat continuing without history", extra={"extra": {
                        "conversation_id": conv_id,
                        "reason": lookup.reason,
                    }})

            turns = self._history.append(turns, ROLE_USER, text)
            body = self._build_body(turns, options, include_system=False)
            resp = self._transport.request("POST", endpoint("generate", model=model), body)

            if resp.ok and conv_id is not None:
                reply = extract_text(resp.data)
                if reply is not None:
                    turns = self._history.append(turns, ROLE_MODEL, reply)
                    self._history.save(conv_id, turns)
            return resp

    def load_conversation(self, conversation_id: str) -> Optional[List[Dict[str, Any]]]:
        """读取会话历史；未命中或缓存不可用时返回 None。"""

        lookup = self._history.load(conversation_id)
        if isinstance(lookup, CacheHit):
            return list(lookup.value)
        return None

    def save_conversation(self, conversation_id: str, turns: List[Dict[str, Any]]) -> bool:
        return self._history.save(conversation_id, list(turns))

    def clear_conversation(self, conversation_id: str) -> bool:
        return self._history.clear(conversation_id)

    # ---- 服务端缓存 ----

    def create_server_cache(
        self,
        model: str,
        cache_id: str,
        system_text: str,
        ttl: Optional[int] = None,
    ) -> Optional[str]:
        """创建 cachedContents 并在本地记录 cache_id -> 句柄名。

        失败时返回 None；本地记录写入失败不影响返回值。
        """

        ttl_seconds = int(ttl or self._server_handles.ttl)
        body = {
            "model": qualify(model, "models"),
            "systemInstruction": {"parts": [text_part(system_text)]},
            "ttl": f"{ttl_seconds}s",
        }
        resp = self._transport.request("POST", endpoint("cached_contents"), body)
        if not resp.ok:
            logger.warning(f"Server cache creation failed: {resp.error}", extra={"extra": {
                "cache_id": cache_id,
                "status": resp.status,
            }})
            return None
        handle = (resp.data or {}).get("name")
        if not isinstance(handle, str) or not handle:
            return None
        self._server_handles.save(cache_id, handle, ttl_seconds)
        return handle

    def chat_server(
        self,
        model: str,
        text: str,
        cache_id: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> ResponseEnvelope:
        """使用服务端缓存作为上下文的单轮对话。"""

        handle: Optional[str] = None
        lookup = self._server_handles.load(cache_id)
        if isinstance(lookup, CacheHit):
            handle = lookup.value
        else:
            logger.warning(
                "No stored server cache handle, creating one with the fallback instruction; "
                "the provider's minimum cache size usually rejects it",
                extra={"extra": {"cache_id": cache_id}},
            )
            handle = self.create_server_cache(model, cache_id, FALLBACK_SYSTEM_INSTRUCTION)
        if handle is None:
            return ResponseEnvelope.failure(SERVER_CACHE_ERROR)

        body: Dict[str, Any] = {"contents": [user_turn(text)], "cachedContent": handle}
        generation_config = self._generation_config(options)
        if generation_config:
            body["generationConfig"] = generation_config
        return self._transport.request("POST", endpoint("generate", model=model), body)

    # ---- Embeddings ----

    def embed_content(self, model: str, content: Any, task_type: Optional[str] = None) -> ResponseEnvelope:
        if isinstance(content, Mapping):
            payload_content = dict(content)
        else:
            payload_content = {"parts": [text_part(str(content))]}
        body: Dict[str, Any] = {"content": payload_content}
        if task_type:
            body["taskType"] = task_type
        return self._transport.request("POST", endpoint("embed", model=model), body)

    def batch_embed_contents(self, model: str, requests: Sequence[Mapping[str, Any]]) -> ResponseEnvelope:
        body = {"requests": [dict(r) for r in requests]}
        return self._transport.request("POST", endpoint("batch_embed", model=model), body)

    # ---- Files ----

    def upload_file(
        self,
        source: Union[bytes, str, Path],
        mime_type: str,
        display_name: Optional[str] = None,
    ) -> ResponseEnvelope:
        """上传文件：先提交元数据拿到上传地址，再把 base64 内容 PUT 过去。

        非断点续传协议，适合小文件。
        """

        if isinstance(source, (bytes, bytearray)):
            raw = bytes(source)
        else:
            path = Path(source)
            try:
                raw = path.read_bytes()
            except OSError as e:
                logger.error(f"Failed to read upload source: {e}", extra={"extra": {"path": str(path)}})
                return ResponseEnvelope.failure(f"Failed to read upload source: {e}")
            display_name = display_name or path.name

        metadata: Dict[str, Any] = {"mimeType": mime_type}
        if display_name:
            metadata["displayName"] = display_name
        created = self._transport.request("POST", endpoint("files"), {"file": metadata})
        if not created.ok:
            return created

        data = created.data or {}
        file_info = data.get("file") if isinstance(data.get("file"), Mapping) else {}
        upload_url = file_info.get("uploadUri") or data.get("uploadUri")
        if not upload_url:
            return ResponseEnvelope.failure("Upload URL not returned", status=created.status, data=data)

        return self._transport.put_raw(
            upload_url,
            base64.b64encode(raw),
            headers={"Content-Type": mime_type},
        )

    def get_file(self, name: str) -> ResponseEnvelope:
        return self._transport.request("GET", endpoint("file", file=name))

    def list_files(self, page_size: Optional[int] = None, page_token: Optional[str] = None) -> ResponseEnvelope:
        return self._transport.request("GET", endpoint("files"), params=_page_params(page_size, page_token))

    def delete_file(self, name: str) -> ResponseEnvelope:
        return self._transport.request("DELETE", endpoint("file", file=name))

    # ---- Models ----

    def list_models(self, page_size: Optional[int] = None, page_token: Optional[str] = None) -> ResponseEnvelope:
        return self._transport.request("GET", endpoint("models"), params=_page_params(page_size, page_token))

    def get_model(self, model: str) -> ResponseEnvelope:
        return self._transport.request("GET", endpoint("model", model=model))

    # ---- 辅助方法 ----

    def _generation_config(self, options: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        base = getattr(self._settings, "generation_config", None) or {}
        return GenerationOverlay(base=base, overrides=options or {}).resolve()

    def _build_body(
        self,
        contents: List[Dict[str, Any]],
        options: Optional[Mapping[str, Any]],
        include_system: bool = True,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"contents": contents}
        generation_config = self._generation_config(options)
        if generation_config:
            body["generationConfig"] = generation_config
        safety = getattr(self._settings, "safety_settings", None)
        if safety:
            body["safetySettings"] = [dict(s) for s in safety]
        if include_system:
            instruction = getattr(self._settings, "system_instruction", None)
            if instruction:
                if isinstance(instruction, Mapping):
                    body["systemInstruction"] = dict(instruction)
                else:
                    body["systemInstruction"] = {"parts": [text_part(str(instruction))]}
        return body


def _page_params(page_size: Optional[int], page_token: Optional[str]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if page_size is not None:
        params["pageSize"] = page_size
    if page_token:
        params["pageToken"] = page_token
    return params
