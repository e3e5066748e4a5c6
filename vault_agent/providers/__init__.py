"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供补全服务的具体实现 (openrouter_client)。
"""

from typing import Optional

from vault_agent.config.settings import settings
from vault_agent.domain.exceptions import ValidationError
from vault_agent.providers.base import ProviderClient
from vault_agent.providers.openrouter_client import OpenRouterClient
from vault_agent.providers.registry import PROVIDER_REGISTRY


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "openrouter")).lower()
    if provider_name not in PROVIDER_REGISTRY:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name}")
    return OpenRouterClient(settings)


__all__ = ["ProviderClient", "OpenRouterClient", "create_provider"]
