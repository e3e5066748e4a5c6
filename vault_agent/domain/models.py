"""统一的对话与结果数据模型。

本模块定义了 Agent 内部与补全服务之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant/tool）。
- ChatRequest: 发给补全服务的完整请求。
- ChatResult: 从补全服务解析后的统一响应结果。

Provider 适配器（如 OpenRouterClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal, Optional, List, TYPE_CHECKING

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from vault_agent.tools.definitions import ToolCall, ToolDef


# LLM 消息角色类型（与 OpenAI / OpenRouter 的 role 字段对应）
Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色。
    - content: 文本内容；assistant 发起工具调用时可以为 None。
    - tool_calls: role 为 "assistant" 且模型触发工具调用时的调用列表。
    - tool_call_id: role 为 "tool" 时，对应 assistant 某一次调用的 id。
    """

    role: Role
    content: Optional[str]
    tool_calls: Optional[List["ToolCall"]] = None
    tool_call_id: Optional[str] = None


@dataclass
class ChatRequest:
    """一次完整的补全请求。

    Provider 适配层负责把本结构转换成 API 的 JSON 请求体。
    """

    provider: str  # Provider 名，如 "openrouter"
    model: str  # 模型标识或 registry 中的逻辑别名
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    tools: Optional[List["ToolDef"]] = None
    tool_choice: Literal["auto"] = "auto"


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（只使用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次补全调用的结果。"""

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None
