"""对外 API 服务模块。

提供简化的函数接口供宿主应用调用。宿主 UI 上的"检索 / Agent"开关
在这里转换成显式参数；未指定时使用配置里的默认值。
"""

from typing import Optional, Dict, Any, List, Tuple

from vault_agent.agents.vault_chat_agent import VaultChatAgent
from vault_agent.config.settings import settings
from vault_agent.infrastructure.logging.logger import logger
from vault_agent.infrastructure.storage.fs_vault import FileSystemVault
from vault_agent.providers import create_provider


_agent: Optional[VaultChatAgent] = None


def get_default_agent() -> VaultChatAgent:
    """获取默认的对话 Agent 实例（单例）。"""
    global _agent
    if _agent is None:
        vault = FileSystemVault(root=settings.vault_root, extension=settings.note_extension)
        _agent = VaultChatAgent(vault=vault, provider_client=create_provider())
    return _agent


def run_chat(
    user_input: str,
    use_search: Optional[bool] = None,
    use_agent: Optional[bool] = None,
) -> Dict[str, Any]:
    """运行一轮对话。

    Args:
        user_input: 用户输入内容
        use_search: 是否检索笔记作为上下文，默认取 settings.enable_search
        use_agent: 是否允许模型调用工具，默认取 settings.enable_agent

    Returns:
        包含回答、状态、提示信息与引用笔记的字典

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    search = settings.enable_search if use_search is None else use_search
    agent_mode = settings.enable_agent if use_agent is None else use_agent
    try:
        reply = get_default_agent().chat(user_input, use_search=search, use_agent=agent_mode)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"error": str(e)}})
        raise
    return {
        "status": reply.status.value,
        "answer": reply.answer,
        "notice": reply.notice,
        "iterations": reply.iterations,
        "sources": [
            {"path": r.path, "title": r.title, "score": r.score, "matches": list(r.matches)}
            for r in reply.search_results
        ],
    }


def run_query_block(
    text: str,
    cursor: int,
    selection: Optional[Tuple[int, int]] = None,
    use_search: Optional[bool] = None,
    use_agent: Optional[bool] = None,
) -> Dict[str, Any]:
    """处理文档中的问答块，返回编辑后的文档以及需要执行的替换。"""
    search = settings.enable_search if use_search is None else use_search
    agent_mode = settings.enable_agent if use_agent is None else use_agent
    result = get_default_agent().answer_query_block(
        text,
        cursor,
        selection,
        use_search=search,
        use_agent=agent_mode,
    )
    return {
        "text": result.text,
        "edit": (
            {"start": result.edit.start, "end": result.edit.end, "text": result.edit.text}
            if result.edit
            else None
        ),
        "created_block": result.created_block,
        "notice": result.reply.notice if result.reply else None,
    }


def search_notes(query: str) -> List[Dict[str, Any]]:
    """检索笔记，返回按相关性排序的列表。"""
    return [
        {"path": r.path, "title": r.title, "score": r.score, "matches": list(r.matches)}
        for r in get_default_agent().search(query)
    ]


def clear_history() -> None:
    """清空当前对话历史。"""
    get_default_agent().clear()


def get_history() -> List[Dict[str, Any]]:
    return [{"role": m.role, "content": m.content} for m in get_default_agent().history]
