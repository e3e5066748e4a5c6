"""Agent 引擎核心模块。

实现上下文构造、调用补全服务、分发工具调用的多轮循环。

状态机：
    AWAITING_MODEL --(有 tool_calls)--> DISPATCHING_TOOLS --(本批全部执行完)--> AWAITING_MODEL
    AWAITING_MODEL --(无 tool_calls)--> DONE
    AWAITING_MODEL --(达到 max_iterations)--> MAX_ITERATIONS

只有 DONE 会产出给用户看的回答。循环本身不读取任何全局开关，
是否检索、是否允许工具都由调用方显式传入。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any, Sequence
from uuid import uuid4
import time
import logging

from vault_agent.config.settings import settings
from vault_agent.domain.models import ChatMessage, ChatRequest, ChatResult, ChatUsage
from vault_agent.infrastructure.logging.logger import logger
from vault_agent.prompts import load_system_prompt
from vault_agent.providers.base import ProviderClient
from vault_agent.search.engine import SearchResult
from vault_agent.tools.definitions import ToolDef
from vault_agent.tools.executor import ToolExecutor


class AgentStatus(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    MAX_ITERATIONS = "max_iterations"


@dataclass
class AgentConfig:
    agent_type: str = "vault-agent"
    provider: str = "openrouter"
    model: str = field(default_factory=lambda: settings.default_model)
    max_iterations: int = field(default_factory=lambda: settings.max_agent_iterations)
    max_context_messages: int = field(default_factory=lambda: settings.max_context_messages)
    excerpt_chars: int = field(default_factory=lambda: settings.search_excerpt_chars)
    temperature: Optional[float] = None


@dataclass
class AgentOutcome:
    """一次 Agent 运行的结果。

    - status: DONE 或 MAX_ITERATIONS。
    - answer: 仅在 DONE 时有值。
    - messages: 本次运行的完整消息序列（含 system、工具调用与工具结果）。
    - iterations: 调用补全服务的次数。
    """

    status: AgentStatus
    answer: Optional[str]
    messages: List[ChatMessage]
    iterations: int
    usage: Dict[str, Any] = field(default_factory=dict)

    @property
    def done(self) -> bool:
        return self.status is AgentStatus.DONE


def format_grounding_context(results: Sequence[SearchResult], excerpt_chars: int) -> str:
    """把检索结果序列化成带标题和路径的摘录。"""

    parts: List[str] = []
    for result in results:
        excerpt = result.content[:excerpt_chars]
        if len(result.content) > excerpt_chars:
            excerpt += "..."
        parts.append(f"### {result.title} ({result.path})\n{excerpt}")
    return "\n\n".join(parts)


class AgentEngine:
    def __init__(
        self,
        provider_client: ProviderClient,
        tool_executor: Optional[ToolExecutor] = None,
        tool_defs: Optional[List[ToolDef]] = None,
        config: Optional[AgentConfig] = None,
    ):
        self._provider_client = provider_client
        self._tool_executor = tool_executor
        self._tool_defs = tool_defs
        self._config = config or AgentConfig(provider=getattr(provider_client, "name", "openrouter"))

    @property
    def config(self) -> AgentConfig:
        return self._config

    def run(
        self,
        user_input: str,
        *,
        history: Optional[Sequence[ChatMessage]] = None,
        search_results: Optional[Sequence[SearchResult]] = None,
        use_tools: bool = False,
    ) -> AgentOutcome:
        """执行一次对话。

        Args:
            user_input: 用户输入
            history: 之前的对话消息（system 消息会被丢弃）
            search_results: 作为上下文注入的检索结果
            use_tools: 是否进入工具调用循环；False 时只调用一次补全服务

        Returns:
            AgentOutcome

        Raises:
            ValidationError / NetworkError / ApiError: 由 Provider 抛出，原样向上传播
        """
        start_time = time.time()
        log_ctx: Dict[str, Any] = {
            "trace_id": f"tr-{uuid4().hex}",
            "agent_type": self._config.agent_type,
        }
        prior = self._prior_history(history or [], log_ctx)
        results = list(search_results or [])

        if use_tools and self._tool_executor and self._tool_defs:
            outcome = self._run_with_tools(user_input, prior, results, log_ctx)
        else:
            if use_tools:
                logger.warning("Tool mode requested but no tools configured; fallback to simple run")
            outcome = self._run_simple(user_input, prior, results, log_ctx)

        self._log(
            logging.INFO,
            "Completed agent run",
            log_ctx,
            status=outcome.status.value,
            iterations=outcome.iterations,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return outcome

    def build_system_message(self, search_results: Sequence[SearchResult]) -> ChatMessage:
        content = load_system_prompt(self._config.agent_type)
        if search_results:
            context = format_grounding_context(search_results, self._config.excerpt_chars)
            content = f"{content}\n\nRelevant notes from the user's vault:\n\n{context}"
        return ChatMessage(role="system", content=content)

    def _prior_history(self, history: Sequence[ChatMessage], log_ctx: Dict[str, Any]) -> List[ChatMessage]:
        path = [m for m in history if m.role != "system"]
        max_context = self._config.max_context_messages
        if len(path) > max_context:
            self._log(
                logging.INFO,
                "Truncated context",
                log_ctx,
                max_context=max_context,
                trimmed=len(path) - max_context,
            )
            path = path[-max_context:]
        return path

    def _run_simple(
        self,
        user_input: str,
        prior: List[ChatMessage],
        results: List[SearchResult],
        log_ctx: Dict[str, Any],
    ) -> AgentOutcome:
        """简单模式：检索结果折叠进用户消息，只调用一次补全服务。"""
        content = user_input
        if results:
            context = format_grounding_context(results, self._config.excerpt_chars)
            content = f"Relevant notes from my vault:\n\n{context}\n\nQuestion: {user_input}"
        chat_messages = prior + [ChatMessage(role="user", content=content)]
        req = ChatRequest(
            provider=self._config.provider,
            model=self._config.model,
            messages=chat_messages,
            temperature=self._config.temperature,
        )

        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            provider=self._config.provider,
            model=self._config.model,
            message_count=len(chat_messages),
        )

        result: ChatResult = self._provider_client.chat(req)
        assistant_msg = result.choices[0].message
        chat_messages.append(assistant_msg)
        usage_meta = self._usage_meta_from_usage(result.usage)
        if usage_meta:
            self._log(logging.INFO, "Token usage", log_ctx, **usage_meta)
        return AgentOutcome(
            status=AgentStatus.DONE,
            answer=assistant_msg.content or "",
            messages=chat_messages,
            iterations=1,
            usage=usage_meta,
        )

    def _run_with_tools(
        self,
        user_input: str,
        prior: List[ChatMessage],
        results: List[SearchResult],
        log_ctx: Dict[str, Any],
    ) -> AgentOutcome:
        """工具模式：支持多轮工具调用循环。

        实现流程：
        1. 携带工具 schema 调用补全服务（tool_choice="auto"）
        2. 如果有 tool_calls，按顺序逐个执行，结果以 tool 消息追加
        3. 重复步骤 1-2，最多 max_iterations 次
        4. 第一条不带 tool_calls 的 assistant 消息即为最终回答
        """
        current_messages = [self.build_system_message(results)] + prior
        current_messages.append(ChatMessage(role="user", content=user_input))
        max_rounds = self._config.max_iterations
        tool_defs = self._tool_defs or []
        usage_meta: Dict[str, Any] = {}
        state = AgentStatus.AWAITING_MODEL

        for round_num in range(1, max_rounds + 1):
            self._log(
                logging.INFO,
                "Agent iteration",
                log_ctx,
                round=round_num,
                max_rounds=max_rounds,
                state=state.value,
            )

            req = ChatRequest(
                provider=self._config.provider,
                model=self._config.model,
                messages=current_messages,
                temperature=self._config.temperature,
                tools=tool_defs,
                tool_choice="auto",
            )

            result: ChatResult = self._provider_client.chat(req)
            assistant_msg = result.choices[0].message
            current_messages.append(assistant_msg)
            usage_meta = self._accumulate_usage(usage_meta, result.usage)

            # 没有工具调用，视为最终回答
            if not assistant_msg.tool_calls:
                state = AgentStatus.DONE
                return AgentOutcome(
                    status=state,
                    answer=assistant_msg.content or "",
                    messages=current_messages,
                    iterations=round_num,
                    usage=usage_meta,
                )

            state = AgentStatus.DISPATCHING_TOOLS
            self._log(
                logging.INFO,
                "Executing tool calls",
                log_ctx,
                call_count=len(assistant_msg.tool_calls),
            )
            for tool_call in assistant_msg.tool_calls:
                self._log(
                    logging.INFO,
                    "Tool call received",
                    log_ctx,
                    tool_name=tool_call.name,
                    tool_call_id=tool_call.id,
                )
                tool_result = self._tool_executor.execute(tool_call)
                self._log(
                    logging.INFO,
                    "Tool execution finished",
                    log_ctx,
                    tool_call_id=tool_call.id,
                    result_preview=(tool_result.content[:200] if tool_result.content else ""),
                )
                current_messages.append(
                    ChatMessage(
                        role="tool",
                        content=tool_result.content,
                        tool_call_id=tool_call.id,
                    )
                )
            state = AgentStatus.AWAITING_MODEL

        self._log(
            logging.WARNING,
            "Reached max agent iterations",
            log_ctx,
            max_rounds=max_rounds,
        )
        return AgentOutcome(
            status=AgentStatus.MAX_ITERATIONS,
            answer=None,
            messages=current_messages,
            iterations=max_rounds,
            usage=usage_meta,
        )

    @staticmethod
    def _usage_meta_from_usage(usage: Optional[ChatUsage]) -> Dict[str, Any]:
        if not usage:
            return {}
        return {
            "prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens,
        }

    @classmethod
    def _accumulate_usage(cls, total: Dict[str, Any], usage: Optional[ChatUsage]) -> Dict[str, Any]:
        current = cls._usage_meta_from_usage(usage)
        if not current:
            return total
        return {key: total.get(key, 0) + value for key, value in current.items()}

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
