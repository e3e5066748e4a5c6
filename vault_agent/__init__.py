"""Vault Agent 顶层包。

该包让用户在个人笔记库（vault）中与远程大模型对话，
包括配置加载、领域模型、笔记检索、工具系统、Agent 循环、
文档内嵌问答块以及补全服务适配等能力。
"""

from vault_agent.agents.base_agent import AgentEngine, AgentOutcome, AgentStatus
from vault_agent.agents.vault_chat_agent import VaultChatAgent

__all__ = ["AgentEngine", "AgentOutcome", "AgentStatus", "VaultChatAgent"]
