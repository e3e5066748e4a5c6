"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SearchMode = Literal["keyword", "semantic"]


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("AGENT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
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
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class PydanticSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    default_provider: str = Field(
        default="openrouter",
        description="默认使用的 Provider 名称",
    )
    default_model: str = Field(
        default="anthropic/claude-3.5-sonnet",
        description="发送给补全服务的模型标识，也可以是 registry 中的逻辑别名",
    )
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API 密钥")
    openrouter_base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API 基础URL",
    )
    http_referer: str = Field(default="https://obsidian.md", description="HTTP-Referer 请求头")
    app_title: str = Field(default="Vault Chat", description="X-Title 请求头")
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- Agent ----
    max_context_messages: int = Field(default=20, ge=1, le=100, description="最大历史消息数")
    max_agent_iterations: int = Field(
        default=10,
        ge=1,
        le=50,
        description="单次 Agent 循环内调用模型的最大次数",
    )

    # ---- 检索 ----
    search_max_results: int = Field(default=10, ge=1, le=100, description="检索结果上限")
    search_excerpt_chars: int = Field(default=800, ge=50, description="注入上下文的笔记摘录长度")
    search_mode: SearchMode = Field(
        default="keyword",
        description="检索模式；semantic 尚未实现，会退回 keyword",
    )

    # ---- Vault ----
    vault_root: str = Field(
        default_factory=lambda: str(Path.cwd()),
        description="笔记库根目录",
    )
    note_extension: str = Field(default=".md", description="笔记文件扩展名")

    # ---- 宿主开关的默认值（只在 api.service 中读取） ----
    enable_search: bool = Field(default=False, description="默认是否检索笔记作为上下文")
    enable_agent: bool = Field(default=False, description="默认是否允许模型调用工具")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openrouter_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("note_extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("note_extension must not be empty")
        return v if v.startswith(".") else f".{v}"

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


settings = PydanticSettings()
