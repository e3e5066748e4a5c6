"""笔记库对话 Agent 的便捷包装。

负责把宿主 UI 的开关（是否检索、是否允许工具）转成显式参数交给 AgentEngine，
并维护一份只存在于内存中的对话历史。
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from vault_agent.agents.base_agent import AgentConfig, AgentEngine, AgentStatus
from vault_agent.blocks.query_block import (
    PLACEHOLDER_QUERY,
    QueryBlock,
    TextEdit,
    answer_edit,
    find_block_at,
    new_query_edit,
)
from vault_agent.config.settings import settings
from vault_agent.domain.exceptions import ValidationError
from vault_agent.domain.models import ChatMessage
from vault_agent.domain.vault import Vault
from vault_agent.infrastructure.logging.logger import logger
from vault_agent.providers.base import ProviderClient
from vault_agent.search.engine import SearchEngine, SearchResult
from vault_agent.tools.executor import ToolExecutor, default_tool_defs, default_tools

MAX_ITERATIONS_NOTICE = "Agent reached maximum iterations without a final answer."


@dataclass
class ChatReply:
    """一次对话的结果。answer 为 None 表示 Agent 达到了最大轮数。"""

    status: AgentStatus
    answer: Optional[str]
    search_results: List[SearchResult] = field(default_factory=list)
    iterations: int = 0

    @property
    def notice(self) -> Optional[str]:
        if self.status is AgentStatus.MAX_ITERATIONS:
            return MAX_ITERATIONS_NOTICE
        return None


@dataclass
class BlockEditResult:
    """问答块操作的结果。

    - text: 应用编辑后的完整文档。
    - edit: 需要宿主编辑器执行的最小替换。
    - block: 被回答的查询块；新插入查询块时为 None。
    - reply: 补全结果；新插入查询块时为 None。
    """

    text: str
    edit: Optional[TextEdit]
    block: Optional[QueryBlock] = None
    reply: Optional[ChatReply] = None

    @property
    def created_block(self) -> bool:
        return self.block is None and self.edit is not None


class VaultChatAgent:
    """笔记库对话 Agent。"""

    def __init__(
        self,
        vault: Vault,
        provider_client: ProviderClient,
        tool_executor: Optional[ToolExecutor] = None,
        search_engine: Optional[SearchEngine] = None,
        temperature: Optional[float] = None,
        model_name: Optional[str] = None,
        max_iterations: Optional[int] = None,
    ):
        """初始化对话 Agent。

        Args:
            vault: 笔记库
            provider_client: 补全服务客户端
            tool_executor: 工具执行器（可选，不提供时基于 vault 创建默认工具）
            search_engine: 检索引擎（可选）
            temperature: 生成温度，None 表示使用服务端默认值
            model_name: 模型标识，默认取配置
            max_iterations: Agent 循环上限，默认取配置
        """
        self._vault = vault
        self._provider_client = provider_client
        self._search = search_engine or SearchEngine(vault)
        self._tool_executor = tool_executor or ToolExecutor(default_tools(vault))
        provider_name = getattr(provider_client, "name", None) or settings.default_provider
        self._config = AgentConfig(
            provider=provider_name,
            model=model_name or settings.default_model,
            max_iterations=max_iterations or settings.max_agent_iterations,
            temperature=temperature,
        )
        self._engine = AgentEngine(
            provider_client=provider_client,
            tool_executor=self._tool_executor,
            tool_defs=default_tool_defs(),
            config=self._config,
        )
        self._history: List[ChatMessage] = []

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    def clear(self) -> None:
        self._history.clear()

    def search(self, query: str) -> List[SearchResult]:
        return self._search.search(query)

    def chat(self, user_input: str, *, use_search: bool = False, use_agent: bool = False) -> ChatReply:
        """发起一轮对话。

        配置错误（如缺少 API 密钥）在写入历史和检索之前抛出。
        用户消息先写入历史；只有拿到最终回答时才追加 assistant 消息。
        补全服务报错时异常原样抛出，历史中不会留下不完整的回答。
        """
        message = (user_input or "").strip()
        if not message:
            raise ValidationError(code="EMPTY_INPUT", message="Message must not be empty")
        self._provider_client.ensure_configured()

        prior = list(self._history)
        self._history.append(ChatMessage(role="user", content=message))
        reply = self._ask(message, prior, use_search=use_search, use_agent=use_agent)
        if reply.answer is not None:
            self._history.append(ChatMessage(role="assistant", content=reply.answer))
        return reply

    def answer_query_block(
        self,
        text: str,
        cursor: int,
        selection: Optional[Tuple[int, int]] = None,
        *,
        use_search: bool = False,
        use_agent: bool = False,
    ) -> BlockEditResult:
        """在文档中回答光标所在的查询块，或插入新的查询块。

        问答块彼此独立，不读写对话历史。
        """
        block = find_block_at(text, cursor)
        if block is None:
            edit = new_query_edit(text, cursor, selection)
            logger.info(
                "Inserted query block",
                extra={"extra": {"cursor": cursor, "from_selection": bool(selection)}},
            )
            return BlockEditResult(text=edit.apply(text), edit=edit)

        if not block.query or block.query == PLACEHOLDER_QUERY:
            raise ValidationError(code="EMPTY_INPUT", message="Query block is empty")
        self._provider_client.ensure_configured()

        reply = self._ask(block.query, [], use_search=use_search, use_agent=use_agent)
        if reply.answer is None:
            return BlockEditResult(text=text, edit=None, block=block, reply=reply)
        edit = answer_edit(block, reply.answer)
        logger.info(
            "Answered query block",
            extra={"extra": {"block_start": block.start, "refreshed": block.has_answer}},
        )
        return BlockEditResult(text=edit.apply(text), edit=edit, block=block, reply=reply)

    def _ask(
        self,
        message: str,
        prior: List[ChatMessage],
        *,
        use_search: bool,
        use_agent: bool,
    ) -> ChatReply:
        results = self._search.search(message) if use_search else []
        outcome = self._engine.run(
            message,
            history=prior,
            search_results=results,
            use_tools=use_agent,
        )
        return ChatReply(
            status=outcome.status,
            answer=outcome.answer if outcome.done else None,
            search_results=results,
            iterations=outcome.iterations,
        )
