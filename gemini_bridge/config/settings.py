"""配置管理模块。

支持从 .env、gemini.yaml 以及环境变量加载配置（环境变量前缀 GEMINI_）。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/"

CacheMode = Literal["none", "client", "server"]


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 gemini.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("GEMINI_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "gemini.yaml",
        Path(__file__).resolve().parents[2] / "gemini.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except Exception as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class GeminiSettings(BaseSettings):
    """Gemini 组件配置（不可变）。

    实例构造后不再修改；单次调用的覆盖参数通过 GenerationOverlay 叠加，
    不会写回这里。
    """

    # ---- 认证与传输 ----
    api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Gemini REST API 基础URL")
    api_key_header: str = Field(default="x-goog-api-key", description="携带 API 密钥的请求头")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    transport_options: Dict[str, Any] = Field(
        default_factory=dict,
        description="透传给 httpx.Client 的额外参数，例如 headers/params/verify/proxy",
    )

    # ---- 生成默认值 ----
    generation_config: Dict[str, Any] = Field(
        default_factory=dict,
        description="默认 generationConfig：temperature/topP/topK/maxOutputTokens/stopSequences/candidateCount",
    )
    safety_settings: List[Dict[str, Any]] = Field(default_factory=list, description="默认安全设置")
    system_instruction: Optional[str] = Field(default=None, description="默认系统指令")

    # ---- 会话缓存 ----
    cache_mode: CacheMode = Field(default="client", description="会话缓存模式：none/client/server")
    cache_ttl: int = Field(default=3600, ge=1, description="会话缓存 TTL（秒）")
    cache_prefix: str = Field(default="gem_chat_", description="会话历史缓存键前缀")
    server_cache_prefix: str = Field(default="gem_server_cache_", description="服务端缓存句柄键前缀")
    cache_store: Optional[str] = Field(default="default", description="已注册缓存存储的名称")
    conversation_id: Optional[str] = Field(default=None, description="默认会话ID")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否截断日志内容")

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("api_key")
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

    @field_validator("base_url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        # httpx 拼接相对路径时需要以 / 结尾
        return v if v.endswith("/") else v + "/"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = GeminiSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = GeminiSettings
