"""Provider 与模型配置。

本模块把"逻辑模型名"映射到补全服务真正使用的模型 ID：

- 逻辑名（logical_name）：代码里使用的统一别名，例如 "vault-chat"。
- provider_model：服务端实际提供的模型 ID，例如 "anthropic/claude-3.5-sonnet"。

不在表中的模型名原样透传，因此用户也可以直接配置任意 OpenRouter 模型 ID。"""

from dataclasses import dataclass
from typing import Dict, Mapping


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]

    def resolve_model(self, model: str) -> ModelConfig:
        cfg = self.models.get(model)
        if cfg is not None:
            return cfg
        return ModelConfig(logical_name=model, provider_model=model)


OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    base_url="https://openrouter.ai/api/v1",
    models={
        "vault-chat": ModelConfig(
            logical_name="vault-chat",
            provider_model="anthropic/claude-3.5-sonnet",
        ),
        "vault-chat-fast": ModelConfig(
            logical_name="vault-chat-fast",
            provider_model="anthropic/claude-3-haiku",
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openrouter": OPENROUTER_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""
    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
