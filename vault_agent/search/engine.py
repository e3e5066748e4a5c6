"""关键词相关性检索。

不依赖外部索引或向量模型：每次检索都顺序读取 vault 中的全部文档，
按三项可加分数排序。分数可以完全拆解，结果可复现。

评分规则：
- 标题原样包含查询串：+10
- 正文（忽略大小写）包含查询串：+5
- 查询按空白切分后，每个长度 > 2 的 token 在正文中每出现一次：+0.5

分数为 0 的文档不返回。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from vault_agent.config.settings import SearchMode, settings
from vault_agent.domain.vault import NoteFile, Vault
from vault_agent.infrastructure.logging.logger import logger

TITLE_MATCH_SCORE = 10.0
CONTENT_MATCH_SCORE = 5.0
TOKEN_OCCURRENCE_SCORE = 0.5
MIN_TOKEN_LENGTH = 3
MAX_MATCH_LINES = 3


@dataclass(frozen=True)
class SearchResult:
    """一次检索命中的文档。"""

    file: NoteFile
    content: str
    score: float
    matches: Tuple[str, ...] = ()

    @property
    def title(self) -> str:
        return self.file.title

    @property
    def path(self) -> str:
        return self.file.path


def score_document(query: str, title: str, content: str) -> float:
    query = query.strip()
    if not query:
        return 0.0
    lowered = content.lower()
    score = 0.0
    if query in title:
        score += TITLE_MATCH_SCORE
    if query.lower() in lowered:
        score += CONTENT_MATCH_SCORE
    for token in query.lower().split():
        if len(token) >= MIN_TOKEN_LENGTH:
            score += TOKEN_OCCURRENCE_SCORE * lowered.count(token)
    return score


def extract_matches(query: str, content: str, limit: int = MAX_MATCH_LINES) -> Tuple[str, ...]:
    """取出最多 limit 行包含查询串（忽略大小写）的原文行，仅用于展示。"""

    needle = query.strip().lower()
    if not needle:
        return ()
    matches: List[str] = []
    for line in content.splitlines():
        if needle in line.lower():
            matches.append(line.strip())
            if len(matches) >= limit:
                break
    return tuple(matches)


class SearchEngine:
    def __init__(
        self,
        vault: Vault,
        max_results: Optional[int] = None,
        mode: Optional[SearchMode] = None,
    ):
        self._vault = vault
        self._max_results = max_results or settings.search_max_results
        self._mode: SearchMode = mode or settings.search_mode
        if self._mode == "semantic":
            logger.warning(
                "Semantic search is not available; falling back to keyword search",
                extra={"extra": {"search_mode": self._mode}},
            )

    @property
    def mode(self) -> SearchMode:
        return self._mode

    def search(self, query: str, max_results: Optional[int] = None) -> List[SearchResult]:
        limit = max_results or self._max_results
        if not query or not query.strip():
            return []

        results: List[SearchResult] = []
        skipped = 0
        files = self._vault.list_files()
        for file in files:
            try:
                content = self._vault.read(file)
            except (OSError, UnicodeDecodeError) as exc:
                skipped += 1
                logger.log(
                    logging.DEBUG,
                    "Skipping unreadable document",
                    extra={"extra": {"path": file.path, "error": str(exc)}},
                )
                continue
            score = score_document(query, file.title, content)
            if score <= 0:
                continue
            results.append(
                SearchResult(
                    file=file,
                    content=content,
                    score=score,
                    matches=extract_matches(query, content),
                )
            )

        # sorted 是稳定排序，同分时保留枚举顺序
        ranked = sorted(results, key=lambda r: r.score, reverse=True)[:limit]
        logger.info(
            "Vault search finished",
            extra={"extra": {
                "documents": len(files),
                "hits": len(results),
                "returned": len(ranked),
                "skipped": skipped,
            }},
        )
        return ranked
