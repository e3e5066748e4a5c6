from vault_agent.blocks import answer_edit, find_block_at, find_query_blocks, new_query_edit
from vault_agent.blocks.query_block import PLACEHOLDER_QUERY, render_answer_block, render_query_block


def _refresh(text: str, cursor: int, answer: str) -> str:
    block = find_block_at(text, cursor)
    assert block is not None
    return answer_edit(block, answer).apply(text)


def test_answer_appended_directly_after_query():
    text = "```ai-query\n2+2\n```"
    block = find_block_at(text, 3)
    assert block.query == "2+2"
    assert not block.has_answer
    edit = answer_edit(block, "4")
    assert (edit.start, edit.end) == (len(text), len(text))
    assert edit.apply(text) == "```ai-query\n2+2\n```\n\n```ai-answer\n4\n```"


def test_refresh_replaces_attached_answer():
    text = "```ai-query\n2+2\n```\n\n```ai-answer\n4\n```"
    block = find_block_at(text, 3)
    assert block.has_answer
    assert (block.answer_start, block.answer_end) == (19, len(text))
    refreshed = _refresh(text, 3, "four")
    assert refreshed == "```ai-query\n2+2\n```\n\n```ai-answer\nfour\n```"
    assert _refresh(refreshed, 3, "four") == refreshed


def test_round_trip_inside_document():
    text = "Intro\nWhat is Python?\nOutro"
    edit = new_query_edit(text, 0, selection=(6, 21))
    doc = edit.apply(text)
    assert doc == "Intro\n```ai-query\nWhat is Python?\n```\nOutro"

    cursor = doc.index("What")
    doc = _refresh(doc, cursor, "A language.")
    assert doc == "Intro\n```ai-query\nWhat is Python?\n```\n\n```ai-answer\nA language.\n```\nOutro"

    doc = _refresh(doc, cursor, "A snake.")
    assert doc.count("```ai-query") == 1
    assert doc.count("```ai-answer") == 1
    assert "A language." not in doc
    assert doc.endswith("```ai-answer\nA snake.\n```\nOutro")


def test_answer_separated_by_extra_blank_line_is_not_attached():
    text = "```ai-query\nq\n```\n\n\n```ai-answer\nold\n```"
    block = find_block_at(text, 0)
    assert not block.has_answer
    doc = answer_edit(block, "new").apply(text)
    assert doc.startswith("```ai-query\nq\n```\n\n```ai-answer\nnew\n```\n\n\n```ai-answer\nold\n```")


def test_cursor_outside_block_inserts_placeholder():
    text = "hello world"
    assert find_block_at(text, 5) is None
    edit = new_query_edit(text, 5)
    assert (edit.start, edit.end) == (5, 5)
    assert edit.text == f"\n```ai-query\n{PLACEHOLDER_QUERY}\n```\n"
    assert new_query_edit("", 0).text == f"```ai-query\n{PLACEHOLDER_QUERY}\n```"


def test_cursor_range_is_half_open():
    text = "```ai-query\nq\n```"
    assert find_block_at(text, 0) is not None
    assert find_block_at(text, len(text) - 1) is not None
    assert find_block_at(text, len(text)) is None


def test_first_containing_block_wins():
    text = "```ai-query\none\n```\n\ntext\n\n```ai-query\ntwo\n```"
    blocks = find_query_blocks(text)
    assert [b.query for b in blocks] == ["one", "two"]
    assert find_block_at(text, text.index("two")).query == "two"
    assert find_block_at(text, text.index("text")) is None


def test_unclosed_and_nested_fences():
    assert find_query_blocks("```ai-query\nq\n") == []
    nested = "```ai-query\na\n```ai-query\nb\n```"
    blocks = find_query_blocks(nested)
    assert len(blocks) == 1
    assert blocks[0].query == "a\n```ai-query\nb"


def test_answer_with_code_fence_round_trips():
    answer = "Use:\n```python\nprint(1)\n```"
    assert render_answer_block(answer).startswith("````ai-answer\n")
    text = render_query_block("how to print?")
    doc = _refresh(text, 0, answer)
    block = find_block_at(doc, 0)
    assert block.has_answer
    assert block.answer_end == len(doc)
    doc = _refresh(doc, 0, "print(2)")
    assert doc == "```ai-query\nhow to print?\n```\n\n```ai-answer\nprint(2)\n```"


def test_answer_blocks_are_not_scanned_for_queries():
    answer = "Example:\n```ai-query\ninner\n```"
    doc = _refresh("```ai-query\nouter\n```", 0, answer)
    assert [b.query for b in find_query_blocks(doc)] == ["outer"]


def test_crlf_document_refresh_is_idempotent():
    text = "```ai-query\r\nq\r\n```\r\n\r\n```ai-answer\r\nold\r\n```"
    block = find_block_at(text, 3)
    assert block.query == "q"
    assert block.has_answer
    assert block.newline == "\r\n"
    refreshed = _refresh(text, 3, "new")
    assert refreshed == "```ai-query\r\nq\r\n```\r\n\r\n```ai-answer\r\nnew\r\n```"
    assert _refresh(refreshed, 3, "new") == refreshed


def test_crlf_document_answer_and_new_block_keep_line_endings():
    text = "```ai-query\r\nq\r\n```\r\nafter"
    doc = _refresh(text, 0, "line one\nline two")
    assert doc == "```ai-query\r\nq\r\n```\r\n\r\n```ai-answer\r\nline one\r\nline two\r\n```\r\nafter"
    assert find_block_at(doc, 0).has_answer

    edit = new_query_edit("first\r\nsecond", 5)
    assert edit.text == f"\r\n```ai-query\r\n{PLACEHOLDER_QUERY}\r\n```"
