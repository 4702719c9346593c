"""Gemini REST 端点与常量。

所有端点均为相对 base_url 的路径；模型名与文件名会先补全资源前缀
（"models/"、"files/"），调用方既可以传 "gemini-2.0-flash"，
也可以传 "models/gemini-2.0-flash"。"""

from typing import Dict, FrozenSet


ALLOWED_METHODS: FrozenSet[str] = frozenset({"GET", "POST", "PUT", "DELETE"})
CACHE_MODES: FrozenSet[str] = frozenset({"none", "client", "server"})

SSE_QUERY = "alt=sse"

ENDPOINTS: Dict[str, str] = {
    "generate": "{model}:generateContent",
    "stream_generate": "{model}:streamGenerateContent?" + SSE_QUERY,
    "count_tokens": "{model}:countTokens",
    "embed": "{model}:embedContent",
    "batch_embed": "{model}:batchEmbedContents",
    "files": "files",
    "file": "{file}",
    "models": "models",
    "model": "{model}",
    "cached_contents": "cachedContents",
}

# 服务端缓存句柄不存在时使用的兜底系统指令。
# Gemini 对 cachedContents 有最小 token 数要求，这条指令通常不满足，
# 创建会失败并返回固定错误信息。
FALLBACK_SYSTEM_INSTRUCTION = "You are a helpful AI assistant."
SERVER_CACHE_ERROR = "Failed to create or retrieve server cache"


def qualify(name: str, collection: str) -> str:
    """补全资源前缀，例如 qualify("gemini-pro", "models") -> "models/gemini-pro"。"""

    name = name.strip().lstrip("/")
    prefix = f"{collection}/"
    return name if name.startswith(prefix) else prefix + name


def endpoint(key: str, model: str = "", file: str = "") -> str:
    template = ENDPOINTS[key]
    return template.format(
        model=qualify(model, "models") if model else "",
        file=qualify(file, "files") if file else "",
    )
