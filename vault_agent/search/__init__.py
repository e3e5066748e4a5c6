"""笔记检索：根据自由文本查询挑选并排序 vault 中的文档。"""

from vault_agent.search.engine import SearchEngine, SearchResult

__all__ = ["SearchEngine", "SearchResult"]
