"""Provider 抽象接口。

上层 AgentEngine 不直接依赖具体的 HTTP 细节，而是依赖此协议：

- 每个补全服务实现一个 ProviderClient（如 OpenRouterClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把响应 JSON 解析为 ChatResult。
"""

from typing import Protocol
from vault_agent.domain.models import ChatRequest, ChatResult


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - ensure_configured(): 检查凭据等配置，缺失时抛出 ValidationError。
    - chat(req): 执行一次非流式补全调用，返回统一的 ChatResult。
    """

    name: str

    def ensure_configured(self) -> object:
        ...

    def chat(self, req: ChatRequest) -> ChatResult:
        ...
