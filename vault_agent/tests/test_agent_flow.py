import tempfile
from pathlib import Path

import pytest

from vault_agent.agents.base_agent import AgentConfig, AgentEngine, AgentStatus
from vault_agent.domain.exceptions import ApiError
from vault_agent.domain.models import ChatChoice, ChatMessage, ChatResult, ChatUsage
from vault_agent.domain.vault import NoteFile
from vault_agent.infrastructure.storage.fs_vault import FileSystemVault
from vault_agent.search.engine import SearchResult
from vault_agent.tools.definitions import ToolCall
from vault_agent.tools.executor import ToolExecutor, default_tool_defs, default_tools


class ScriptedProvider:
    """按顺序返回预设的 assistant 消息，并记录收到的请求。"""

    name = "fake"

    def __init__(self, replies):
        self._replies = list(replies)
        self.requests = []

    def chat(self, req):
        self.requests.append(req)
        msg = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        usage = ChatUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2)
        return ChatResult(provider="fake", model=req.model, choices=[ChatChoice(index=0, message=msg)], usage=usage, raw={})


class FailingProvider:
    name = "fake"

    def chat(self, req):
        raise ApiError(code="API_ERROR", message="API Error: 500 - boom", http_status=500, body="boom")


def _tool_turn(*calls, content=None):
    return ChatMessage(
        role="assistant",
        content=content,
        tool_calls=[ToolCall(id=cid, name=name, arguments=args) for cid, name, args in calls],
    )


def _final(text):
    return ChatMessage(role="assistant", content=text)


def _engine(root: Path, provider, **cfg):
    (root / "a.md").write_text("alpha", encoding="utf-8")
    vault = FileSystemVault(root=root, extension=".md")
    config = AgentConfig(provider="fake", model="vault-chat", **cfg)
    return AgentEngine(
        provider_client=provider,
        tool_executor=ToolExecutor(default_tools(vault)),
        tool_defs=default_tool_defs(),
        config=config,
    )


def test_loop_stops_at_first_turn_without_tool_calls():
    provider = ScriptedProvider([
        _tool_turn(("c1", "list_files", "{}"), content="let me look"),
        _tool_turn(("c2", "read_note", '{"file_path": "a"}')),
        _final("alpha is the answer"),
    ])
    with tempfile.TemporaryDirectory() as d:
        outcome = _engine(Path(d), provider).run("what is in a?", use_tools=True)
    assert outcome.status is AgentStatus.DONE
    assert outcome.done
    assert outcome.answer == "alpha is the answer"
    assert outcome.iterations == 3
    assert len(provider.requests) == 3
    assert outcome.usage["total_tokens"] == 6
    assert provider.requests[0].tools and provider.requests[0].tool_choice == "auto"


def test_loop_stops_at_iteration_cap_without_answer():
    provider = ScriptedProvider([_tool_turn(("c", "read_note", '{"file_path": "a"}'), content="again")])
    with tempfile.TemporaryDirectory() as d:
        outcome = _engine(Path(d), provider, max_iterations=10).run("loop", use_tools=True)
    assert outcome.status is AgentStatus.MAX_ITERATIONS
    assert outcome.answer is None
    assert outcome.iterations == 10
    assert len(provider.requests) == 10


def test_tool_results_follow_call_order():
    provider = ScriptedProvider([
        _tool_turn(
            ("A", "read_note", '{"file_path": "a"}'),
            ("B", "read_note", "{broken"),
            ("C", "list_files", "{}"),
        ),
        _final("ok"),
    ])
    with tempfile.TemporaryDirectory() as d:
        outcome = _engine(Path(d), provider).run("go", use_tools=True)
    roles = [m.role for m in outcome.messages]
    assert roles == ["system", "user", "assistant", "tool", "tool", "tool", "assistant"]
    tool_msgs = [m for m in outcome.messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_msgs] == ["A", "B", "C"]
    assert tool_msgs[0].content == "alpha"
    assert tool_msgs[1].content.startswith("Error parsing arguments:")
    assert tool_msgs[2].content.endswith("Total: 1 files in 1 folders")
    # 第二次请求带上了全部工具结果
    assert [m.role for m in provider.requests[1].messages][-3:] == ["tool", "tool", "tool"]


def test_simple_path_makes_one_call_without_tools():
    provider = ScriptedProvider([_tool_turn(("x", "list_files", "{}"), content="plain")])
    results = [SearchResult(file=NoteFile("notes/a.md"), content="alpha body", score=5.5)]
    with tempfile.TemporaryDirectory() as d:
        outcome = _engine(Path(d), provider).run("hi", search_results=results, use_tools=False)
    assert outcome.status is AgentStatus.DONE
    assert outcome.answer == "plain"
    assert len(provider.requests) == 1
    req = provider.requests[0]
    assert req.tools is None
    assert [m.role for m in req.messages] == ["user"]
    content = req.messages[0].content
    assert content.startswith("Relevant notes from my vault:\n\n### a (notes/a.md)\nalpha body")
    assert content.endswith("\n\nQuestion: hi")


def test_tools_requested_without_executor_falls_back_to_simple():
    provider = ScriptedProvider([_final("plain")])
    engine = AgentEngine(provider_client=provider, config=AgentConfig(provider="fake", model="vault-chat"))
    outcome = engine.run("hi", use_tools=True)
    assert outcome.answer == "plain"
    assert provider.requests[0].tools is None


def test_history_drops_system_messages():
    provider = ScriptedProvider([_final("done")])
    history = [
        ChatMessage(role="system", content="old system"),
        ChatMessage(role="user", content="q1"),
        ChatMessage(role="assistant", content="a1"),
    ]
    with tempfile.TemporaryDirectory() as d:
        _engine(Path(d), provider).run("q2", history=history, use_tools=True)
    messages = provider.requests[0].messages
    assert [m.role for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0].content != "old system"
    assert [m.content for m in messages[1:]] == ["q1", "a1", "q2"]


def test_history_is_trimmed_to_max_context():
    provider = ScriptedProvider([_final("done")])
    history = [ChatMessage(role="user", content=f"m{i}") for i in range(5)]
    with tempfile.TemporaryDirectory() as d:
        _engine(Path(d), provider, max_context_messages=2).run("now", history=history)
    assert [m.content for m in provider.requests[0].messages] == ["m3", "m4", "now"]


def test_grounding_excerpts_in_system_message():
    provider = ScriptedProvider([_final("done")])
    long_note = SearchResult(file=NoteFile("docs/Long.md"), content="x" * 1000, score=5.0)
    short_note = SearchResult(file=NoteFile("Short.md"), content="tiny", score=5.0)
    with tempfile.TemporaryDirectory() as d:
        _engine(Path(d), provider).run("q", search_results=[long_note, short_note], use_tools=True)
    system = provider.requests[0].messages[0]
    assert system.role == "system"
    assert "Relevant notes from the user's vault:" in system.content
    assert "### Long (docs/Long.md)\n" + "x" * 800 + "..." in system.content
    assert "x" * 801 not in system.content
    assert "### Short (Short.md)\ntiny" in system.content
    assert "tiny..." not in system.content


def test_provider_errors_propagate():
    engine = AgentEngine(provider_client=FailingProvider(), config=AgentConfig(provider="fake", model="vault-chat"))
    with pytest.raises(ApiError) as exc:
        engine.run("hi")
    assert exc.value.http_status == 500
    assert exc.value.extra["body"] == "boom"
