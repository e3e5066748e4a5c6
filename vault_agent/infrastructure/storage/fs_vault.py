"""本地目录实现的 Vault。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional

from vault_agent.config.settings import settings
from vault_agent.domain.vault import NoteFile


@dataclass
class FileSystemVault:
    """把一个本地目录当作笔记库使用。

    - 只枚举扩展名为 extension 的文件，按路径排序，保证检索结果可复现。
    - 以 "." 开头的目录（如 .obsidian、.git）不参与枚举。
    - 所有路径都必须局限在 root 之内。
    """

    root: Path
    extension: str = ""

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        if not self.extension:
            self.extension = settings.note_extension

    # ---- helpers -------------------------------------------------

    def _resolve(self, raw: str) -> Path:
        rel = _normalize(raw)
        candidate = (self.root / rel).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise PermissionError(f"path outside vault root: {raw}") from exc
        return candidate

    def _to_note(self, path: Path) -> NoteFile:
        return NoteFile(path=path.relative_to(self.root).as_posix())

    # ---- read ops ------------------------------------------------

    def list_files(self) -> List[NoteFile]:
        notes: List[NoteFile] = []
        for file in sorted(self.root.rglob(f"*{self.extension}")):
            rel_parts = file.relative_to(self.root).parts
            if any(part.startswith(".") for part in rel_parts[:-1]):
                continue
            if file.is_file():
                notes.append(self._to_note(file))
        return notes

    def get_file(self, path: str) -> Optional[NoteFile]:
        try:
            resolved = self._resolve(path)
        except PermissionError:
            return None
        if resolved.is_file() and resolved.suffix == self.extension:
            return self._to_note(resolved)
        return None

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).exists()
        except PermissionError:
            return False

    def read(self, file: NoteFile) -> str:
        return self._resolve(file.path).read_text(encoding="utf-8")

    # ---- write ops -----------------------------------------------

    def modify(self, file: NoteFile, content: str) -> None:
        resolved = self._resolve(file.path)
        if not resolved.is_file():
            raise FileNotFoundError(f"file not found: {file.path}")
        resolved.write_text(content, encoding="utf-8")

    def create(self, path: str, content: str) -> NoteFile:
        resolved = self._resolve(path)
        if resolved.exists():
            raise FileExistsError(f"file already exists: {path}")
        if not resolved.parent.is_dir():
            raise FileNotFoundError(f"parent folder does not exist: {path}")
        resolved.write_text(content, encoding="utf-8")
        return self._to_note(resolved)

    def create_folder(self, path: str) -> None:
        resolved = self._resolve(path)
        if resolved.exists():
            raise FileExistsError(f"folder already exists: {path}")
        resolved.mkdir(parents=True)


def _normalize(raw: str) -> str:
    text = (raw or "").strip().replace("\\", "/").strip("/")
    return str(PurePosixPath(text)) if text else ""
