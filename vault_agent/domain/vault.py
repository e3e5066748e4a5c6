"""笔记库（Vault）协作方协议。

核心逻辑只通过 Vault 协议访问文档：枚举、读取、写入、创建文件与文件夹。
具体实现（本地目录、宿主编辑器 API 等）位于 infrastructure 层。
"""

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class NoteFile:
    """Vault 中一个文档的句柄。

    path 使用相对 vault 根目录的 POSIX 路径，例如 "projects/alpha.md"。
    """

    path: str

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def basename(self) -> str:
        return PurePosixPath(self.path).stem

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix

    @property
    def parent(self) -> str:
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent

    @property
    def title(self) -> str:
        return self.basename


class Vault(Protocol):
    def list_files(self) -> List[NoteFile]:
        ...

    def get_file(self, path: str) -> Optional[NoteFile]:
        ...

    def exists(self, path: str) -> bool:
        """文件或文件夹是否已存在。"""
        ...

    def read(self, file: NoteFile) -> str:
        ...

    def modify(self, file: NoteFile, content: str) -> None:
        ...

    def create(self, path: str, content: str) -> NoteFile:
        """创建新文档；已存在时抛出 FileExistsError。"""
        ...

    def create_folder(self, path: str) -> None:
        """创建文件夹；已存在时抛出 FileExistsError。"""
        ...
