"""文档内嵌问答块的定位与编辑。"""

from vault_agent.blocks.query_block import (
    QueryBlock,
    TextEdit,
    answer_edit,
    find_block_at,
    find_query_blocks,
    new_query_edit,
)

__all__ = [
    "QueryBlock",
    "TextEdit",
    "answer_edit",
    "find_block_at",
    "find_query_blocks",
    "new_query_edit",
]
