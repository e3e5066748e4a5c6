import tempfile
from pathlib import Path

import pytest

from vault_agent.agents.base_agent import AgentStatus
from vault_agent.agents.vault_chat_agent import MAX_ITERATIONS_NOTICE, VaultChatAgent
from vault_agent.domain.exceptions import NetworkError, ValidationError
from vault_agent.domain.models import ChatChoice, ChatMessage, ChatResult
from vault_agent.infrastructure.storage.fs_vault import FileSystemVault
from vault_agent.providers.openrouter_client import OpenRouterClient
from vault_agent.tools.definitions import ToolCall


class FakeProvider:
    name = "fake"

    def __init__(self, answer="done", tool_loop=False):
        self._answer = answer
        self._tool_loop = tool_loop
        self.requests = []

    def ensure_configured(self):
        return "key"

    def chat(self, req):
        self.requests.append(req)
        if self._tool_loop:
            msg = ChatMessage(
                role="assistant",
                content=None,
                tool_calls=[ToolCall(id=f"c{len(self.requests)}", name="list_files", arguments="{}")],
            )
        else:
            msg = ChatMessage(role="assistant", content=self._answer)
        return ChatResult(provider="fake", model=req.model, choices=[ChatChoice(index=0, message=msg)], usage=None, raw={})


class DownProvider:
    name = "fake"

    def ensure_configured(self):
        return "key"

    def chat(self, req):
        raise NetworkError(code="NETWORK_ERROR", message="connection refused")


class NoKeySettings:
    openrouter_api_key = None
    http_timeout = 1.0
    openrouter_base_url = "https://openrouter.ai/api/v1"
    http_referer = "https://obsidian.md"
    app_title = "Vault Chat"


class CountingVault(FileSystemVault):
    reads = 0

    def read(self, file):
        CountingVault.reads += 1
        return super().read(file)


def _agent(root: Path, provider, **kw) -> VaultChatAgent:
    (root / "Python Basics.md").write_text("python loops\npython functions", encoding="utf-8")
    vault = FileSystemVault(root=root, extension=".md")
    return VaultChatAgent(vault=vault, provider_client=provider, model_name="vault-chat", **kw)


def test_chat_keeps_history():
    provider = FakeProvider(answer="hello back")
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), provider)
        reply = agent.chat("hello")
        assert reply.status is AgentStatus.DONE
        assert reply.answer == "hello back"
        assert reply.notice is None
        agent.chat("again")
        assert [(m.role, m.content) for m in agent.history] == [
            ("user", "hello"),
            ("assistant", "hello back"),
            ("user", "again"),
            ("assistant", "hello back"),
        ]
        assert [m.content for m in provider.requests[1].messages] == ["hello", "hello back", "again"]
        agent.clear()
        assert agent.history == []


def test_chat_rejects_empty_input():
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), FakeProvider())
        with pytest.raises(ValidationError) as exc:
            agent.chat("   ")
        assert exc.value.code == "EMPTY_INPUT"
        assert agent.history == []


def test_transport_failure_leaves_no_assistant_message():
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), DownProvider())
        with pytest.raises(NetworkError):
            agent.chat("hello")
        assert [m.role for m in agent.history] == ["user"]


def test_missing_api_key_fails_before_history_and_search(monkeypatch):
    class Client:
        def __init__(self, *a, **kw):
            raise AssertionError("network should not be touched")

    monkeypatch.setattr("httpx.Client", Client)
    monkeypatch.setattr(CountingVault, "reads", 0)
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        (root / "Python Basics.md").write_text("python loops", encoding="utf-8")
        vault = CountingVault(root=root, extension=".md")
        agent = VaultChatAgent(vault=vault, provider_client=OpenRouterClient(NoKeySettings()))
        with pytest.raises(ValidationError) as exc:
            agent.chat("python", use_search=True)
        assert exc.value.code == "MISSING_API_KEY"
        assert agent.history == []
        assert CountingVault.reads == 0

        text = "```ai-query\npython\n```"
        with pytest.raises(ValidationError):
            agent.answer_query_block(text, 3, use_search=True)
        assert CountingVault.reads == 0

        # 插入新查询块不需要调用补全服务
        assert agent.answer_query_block("notes", 5).created_block


def test_max_iterations_reports_notice():
    provider = FakeProvider(tool_loop=True)
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), provider, max_iterations=3)
        reply = agent.chat("loop forever", use_agent=True)
        assert reply.status is AgentStatus.MAX_ITERATIONS
        assert reply.answer is None
        assert reply.notice == MAX_ITERATIONS_NOTICE
        assert len(provider.requests) == 3
        assert [m.role for m in agent.history] == ["user"]


def test_chat_with_search_grounds_the_question():
    provider = FakeProvider()
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), provider)
        reply = agent.chat("python", use_search=True)
        assert [r.title for r in reply.search_results] == ["Python Basics"]
        content = provider.requests[0].messages[-1].content
        assert content.startswith("Relevant notes from my vault:")
        assert "### Python Basics (Python Basics.md)" in content
        # 历史中只保存用户原话
        assert agent.history[0].content == "python"


def test_answer_query_block_inserts_answer():
    provider = FakeProvider(answer="4")
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), provider)
        agent.chat("unrelated")
        result = agent.answer_query_block("```ai-query\n2+2\n```", 3)
        assert result.text == "```ai-query\n2+2\n```\n\n```ai-answer\n4\n```"
        assert not result.created_block
        assert result.block.query == "2+2"
        # 问答块不读写对话历史
        assert [m.content for m in provider.requests[-1].messages] == ["2+2"]
        assert len(agent.history) == 2


def test_answer_query_block_outside_block_creates_one():
    provider = FakeProvider()
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), provider)
        result = agent.answer_query_block("Some notes", 4, selection=(0, 4))
        assert result.created_block
        assert result.text == "```ai-query\nSome\n```\n notes"
        assert provider.requests == []


def test_answer_query_block_rejects_placeholder():
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), FakeProvider())
        text = agent.answer_query_block("", 0).text
        with pytest.raises(ValidationError):
            agent.answer_query_block(text, 2)


def test_answer_query_block_at_cap_leaves_text_unchanged():
    with tempfile.TemporaryDirectory() as d:
        agent = _agent(Path(d), FakeProvider(tool_loop=True), max_iterations=2)
        text = "```ai-query\nq\n```"
        result = agent.answer_query_block(text, 0, use_agent=True)
        assert result.text == text
        assert result.edit is None
        assert result.reply.notice == MAX_ITERATIONS_NOTICE
