"""文档内嵌的问答块。

一个查询块是以 ```ai-query 开头、``` 结尾的围栏区域；回答块以 ```ai-answer 开头。
两者之间恰好隔一个空行时，回答块才算"挂在"查询块后面：

    ```ai-query
    2+2?
    ```

    ```ai-answer
    4
    ```

扫描器逐行工作，只有两个状态：寻找开围栏、寻找闭围栏。围栏必须从行首开始；
闭围栏是一行只有反引号、且长度不小于开围栏的文本。围栏不嵌套，开围栏之后
遇到的另一行 ```ai-query 只算正文；没有闭合的开围栏不构成块。

所有偏移量都是 Python 字符串下标。文档可以使用 "\\n" 或 "\\r\\n" 换行，
插入的文本沿用查询块原有的换行风格。
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

QUERY_TAG = "ai-query"
ANSWER_TAG = "ai-answer"
PLACEHOLDER_QUERY = "Ask your question here"
MIN_FENCE = 3

_BACKTICK_RUN = re.compile(r"`{3,}")


class _ScanState(Enum):
    SEEKING_OPEN = "seeking_open"
    SEEKING_CLOSE = "seeking_close"


@dataclass(frozen=True)
class QueryBlock:
    """文档中某一时刻定位到的查询块，只是对文本的一个视图。

    newline 记录查询块开围栏使用的换行符，渲染回答时沿用。
    """

    start: int
    end: int
    query: str
    answer_start: Optional[int] = None
    answer_end: Optional[int] = None
    newline: str = "\n"

    @property
    def has_answer(self) -> bool:
        return self.answer_end is not None

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


@dataclass(frozen=True)
class TextEdit:
    """把 [start, end) 替换为 text。"""

    start: int
    end: int
    text: str

    def apply(self, document: str) -> str:
        return document[: self.start] + self.text + document[self.end :]


def _iter_lines(text: str, pos: int = 0) -> Iterator[Tuple[int, int, str]]:
    """逐行产出 (行首偏移, 行尾偏移, 行内容)，行尾不含 "\\n" 或 "\\r\\n"。"""
    while pos < len(text):
        newline = text.find("\n", pos)
        end = len(text) if newline == -1 else newline
        if end > pos and text[end - 1] == "\r":
            end -= 1
        yield pos, end, text[pos:end]
        if newline == -1:
            return
        pos = newline + 1


def _newline_at(text: str, pos: int) -> str:
    return "\r\n" if text.startswith("\r\n", pos) else "\n"


def _opening_fence(line: str, tag: str) -> Optional[int]:
    """line 是 tag 的开围栏时返回反引号个数。"""
    stripped = line.rstrip()
    if not stripped.endswith(tag):
        return None
    fence = stripped[: -len(tag)]
    if len(fence) >= MIN_FENCE and set(fence) == {"`"}:
        return len(fence)
    return None


def _is_closing_fence(line: str, width: int) -> bool:
    stripped = line.rstrip()
    return len(stripped) >= width and set(stripped) == {"`"}


def _find_close(text: str, body_start: int, width: int) -> Optional[Tuple[int, int]]:
    """从 body_start 开始寻找闭围栏，返回 (闭围栏行首, 闭围栏行尾)。"""
    for line_start, line_end, line in _iter_lines(text, body_start):
        if _is_closing_fence(line, width):
            return line_start, line_end
    return None


def _fence_for(body: str) -> str:
    """围栏长度比正文里最长的反引号串多一个，保证正文不会提前闭合围栏。"""
    longest = max((len(m.group(0)) for m in _BACKTICK_RUN.finditer(body)), default=0)
    return "`" * max(MIN_FENCE, longest + 1)


def _render(tag: str, body: str, newline: str) -> str:
    fence = _fence_for(body)
    lines = body.replace("\r\n", "\n").split("\n")
    return newline.join([f"{fence}{tag}", *lines, fence])


def render_query_block(query: str, newline: str = "\n") -> str:
    return _render(QUERY_TAG, query, newline)


def render_answer_block(answer: str, newline: str = "\n") -> str:
    return _render(ANSWER_TAG, answer.strip(), newline)


def _attached_answer(text: str, pos: int, newline: str = "\n") -> Optional[Tuple[int, int]]:
    """检查 pos 处是否紧跟一个空行 + 回答块；是则返回 (回答块起点, 终点)。

    起点包含前导的两个换行符。多一个空行或夹杂其他内容都不算挂接。
    """
    separator = newline * 2
    if not text.startswith(separator, pos):
        return None
    open_start = pos + len(separator)
    opener = next(_iter_lines(text, open_start), None)
    if opener is None:
        return None
    _, open_end, line = opener
    width = _opening_fence(line, ANSWER_TAG)
    if width is None:
        return None
    body_start = text.find("\n", open_end) + 1
    if body_start == 0:
        return None
    close = _find_close(text, body_start, width)
    if close is None:
        return None
    return pos, close[1]


def find_query_blocks(text: str) -> List[QueryBlock]:
    """按文档顺序找出全部格式完整的查询块。"""

    blocks: List[QueryBlock] = []
    state = _ScanState.SEEKING_OPEN
    open_start = width = 0
    body_start: Optional[int] = None
    newline = "\n"
    skip_until = 0
    for line_start, line_end, line in _iter_lines(text):
        if line_start < skip_until:
            continue
        if state is _ScanState.SEEKING_OPEN:
            fence = _opening_fence(line, QUERY_TAG)
            if fence is not None:
                open_start, width, body_start = line_start, fence, None
                newline = _newline_at(text, line_end)
                state = _ScanState.SEEKING_CLOSE
            continue
        if body_start is None:
            body_start = line_start
        if _is_closing_fence(line, width):
            query = text[body_start:line_start].replace("\r\n", "\n").strip()
            answer = _attached_answer(text, line_end, newline)
            blocks.append(
                QueryBlock(
                    start=open_start,
                    end=line_end,
                    query=query,
                    answer_start=answer[0] if answer else None,
                    answer_end=answer[1] if answer else None,
                    newline=newline,
                )
            )
            if answer:
                skip_until = answer[1]
            state = _ScanState.SEEKING_OPEN
    return blocks


def find_block_at(text: str, cursor: int) -> Optional[QueryBlock]:
    """返回包含 cursor 的第一个查询块。"""
    for block in find_query_blocks(text):
        if block.contains(cursor):
            return block
    return None


def answer_edit(block: QueryBlock, answer: str) -> TextEdit:
    """计算插入或刷新 block 回答的最小替换。

    已挂接回答时，替换从两个前导换行符到回答闭围栏的整段；
    否则直接在查询块后追加空行 + 回答块，不去文档别处寻找旧回答。
    换行符沿用查询块本身的风格（"\\n" 或 "\\r\\n"）。
    """
    rendered = block.newline * 2 + render_answer_block(answer, block.newline)
    if block.has_answer:
        return TextEdit(block.answer_start, block.answer_end, rendered)
    return TextEdit(block.end, block.end, rendered)


def new_query_edit(
    text: str,
    cursor: int,
    selection: Optional[Tuple[int, int]] = None,
) -> TextEdit:
    """在光标处插入新的查询块。

    有选区时用选中文本作为查询并替换选区，否则使用占位提示。
    围栏必须位于行首，必要时在前后补换行；文档使用 "\\r\\n" 时沿用。
    """
    if selection and selection[0] != selection[1]:
        start, end = sorted(selection)
    else:
        start = end = cursor
    start = max(0, min(start, len(text)))
    end = max(start, min(end, len(text)))
    query = text[start:end].strip() or PLACEHOLDER_QUERY
    newline = "\r\n" if "\r\n" in text else "\n"

    block = render_query_block(query, newline)
    if start > 0 and text[start - 1] != "\n":
        block = newline + block
    if end < len(text) and text[end] not in "\r\n":
        block = block + newline
    return TextEdit(start, end, block)
