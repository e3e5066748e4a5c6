from pathlib import PurePosixPath
from typing import Callable, Dict, Any, List, Optional

from vault_agent.config.settings import settings
from vault_agent.domain.exceptions import ToolArgumentError
from vault_agent.domain.vault import NoteFile, Vault
from vault_agent.infrastructure.logging.logger import logger
from .arguments import (
    CreateFileArgs,
    CreateFolderArgs,
    EditFileArgs,
    ListFilesArgs,
    ReadNoteArgs,
    parse_tool_arguments,
)
from .definitions import ToolCall, ToolResult, ToolDef, ToolParam


ToolFunc = Callable[[Any], str]
MAX_CANDIDATES = 10


class ToolExecutor:
    """按工具名分发模型发起的调用。

    execute 永远不会抛出异常：参数错误、找不到文件、vault 写入失败等
    都会变成文本结果，交给模型自行修正。
    """

    def __init__(self, tools: Dict[str, ToolFunc]):
        self._tools = tools

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def execute(self, call: ToolCall) -> ToolResult:
        func = self._tools.get(call.name)
        if not func:
            logger.warning(
                "Unknown tool requested",
                extra={"extra": {"tool_name": call.name, "tool_call_id": call.id}},
            )
            return ToolResult(call_id=call.id, content=f"Error: Unknown tool: {call.name}")
        try:
            args = parse_tool_arguments(call.name, call.arguments)
        except ToolArgumentError as exc:
            logger.warning(
                "Tool arguments rejected",
                extra={"extra": {"tool_name": call.name, "tool_call_id": call.id, "error": exc.message}},
            )
            return ToolResult(call_id=call.id, content=exc.message)
        try:
            result = func(args)
        except Exception as exc:  # noqa: BLE001 - 需要把异常转换为工具结果
            logger.warning(
                "Tool execution failed",
                extra={"extra": {"tool_name": call.name, "tool_call_id": call.id, "error": str(exc)}},
            )
            result = f"Error: {exc}"
        return ToolResult(call_id=call.id, content=result)


def _normalize_path(raw: str) -> str:
    text = (raw or "").strip().replace("\\", "/").strip("/")
    return str(PurePosixPath(text)) if text else ""


def _with_extension(path: str, extension: str) -> str:
    return path if path.endswith(extension) else f"{path}{extension}"


def _resolve_note(vault: Vault, raw: str, extension: str) -> Optional[NoteFile]:
    """先按字面路径查找，找不到再按文件名（带或不带扩展名）匹配。"""

    path = _normalize_path(raw)
    if not path:
        return None
    for candidate in (path, _with_extension(path, extension)):
        file = vault.get_file(candidate)
        if file is not None:
            return file
    wanted = PurePosixPath(path).name
    stem = wanted[: -len(extension)] if wanted.endswith(extension) else wanted
    for file in vault.list_files():
        if file.name == wanted or file.basename == stem:
            return file
    return None


def _not_found_message(vault: Vault, raw: str, extension: str) -> str:
    names = [file.name for file in vault.list_files()]
    if not names:
        return f"Error: File not found: {raw}. The vault contains no files."
    stem = PurePosixPath(_normalize_path(raw)).name.lower()
    if stem.endswith(extension):
        stem = stem[: -len(extension)]
    similar = [name for name in names if stem and stem in name.lower()]
    candidates = (similar or names)[:MAX_CANDIDATES]
    return f"Error: File not found: {raw}. Available files: {', '.join(candidates)}"


def _make_read_note_tool(vault: Vault, extension: str) -> ToolFunc:
    def _run(args: ReadNoteArgs) -> str:
        file = _resolve_note(vault, args.file_path, extension)
        if file is None:
            return _not_found_message(vault, args.file_path, extension)
        return vault.read(file)

    return _run


def _make_list_files_tool(vault: Vault) -> ToolFunc:
    def _run(args: ListFilesArgs) -> str:
        files = vault.list_files()
        folder = _normalize_path(args.folder_path or "")
        if folder:
            prefix = f"{folder}/"
            matched = [file for file in files if file.path.startswith(prefix)]
            if not matched:
                return f"No files found in folder: {folder}\nTotal: 0 files"
            lines = [f"Files in {folder}:"]
            lines.extend(f"- {file.path}" for file in matched)
            lines.append("")
            lines.append(f"Total: {len(matched)} files")
            return "\n".join(lines)

        groups: Dict[str, List[NoteFile]] = {}
        for file in files:
            groups.setdefault(file.parent, []).append(file)
        lines: List[str] = []
        for parent in sorted(groups):
            if args.include_folders:
                lines.append(f"Folder: {parent or '/'}")
                lines.extend(f"  - {file.path}" for file in groups[parent])
            else:
                lines.extend(f"- {file.path}" for file in groups[parent])
        if lines:
            lines.append("")
        lines.append(f"Total: {len(files)} files in {len(groups)} folders")
        return "\n".join(lines)

    return _run


def _make_edit_file_tool(vault: Vault, extension: str) -> ToolFunc:
    def _run(args: EditFileArgs) -> str:
        file = _resolve_note(vault, args.file_path, extension)
        if file is None:
            return (
                f"Error: File not found: {args.file_path}. "
                "Use create_file to create a new file."
            )
        if args.mode == "replace":
            new_content = args.content
        else:
            current = vault.read(file)
            if args.mode == "append":
                new_content = f"{current}\n\n{args.content}"
            else:
                new_content = f"{args.content}\n\n{current}"
        vault.modify(file, new_content)
        return f"Successfully updated {file.path} (mode: {args.mode})"

    return _run


def _make_create_file_tool(vault: Vault, extension: str) -> ToolFunc:
    def _run(args: CreateFileArgs) -> str:
        path = _normalize_path(args.file_path)
        if not path:
            return "Error: file_path must not be empty"
        path = _with_extension(path, extension)
        if vault.exists(path):
            return f"Error: File already exists: {path}. Use edit_file to modify it."
        parents = list(PurePosixPath(path).parents)[:-1]
        for folder in reversed(parents):
            try:
                vault.create_folder(str(folder))
            except FileExistsError:
                pass
        vault.create(path, args.content)
        return f"Successfully created file: {path}"

    return _run


def _make_create_folder_tool(vault: Vault) -> ToolFunc:
    def _run(args: CreateFolderArgs) -> str:
        path = _normalize_path(args.folder_path)
        if not path:
            return "Error: folder_path must not be empty"
        if vault.exists(path):
            return f"Folder already exists: {path}"
        try:
            vault.create_folder(path)
        except FileExistsError:
            return f"Folder already exists: {path}"
        return f"Successfully created folder: {path}"

    return _run


def default_tools(vault: Vault, extension: Optional[str] = None) -> Dict[str, ToolFunc]:
    ext = extension or getattr(vault, "extension", None) or settings.note_extension
    return {
        "read_note": _make_read_note_tool(vault, ext),
        "list_files": _make_list_files_tool(vault),
        "edit_file": _make_edit_file_tool(vault, ext),
        "create_file": _make_create_file_tool(vault, ext),
        "create_folder": _make_create_folder_tool(vault),
    }


def default_tool_defs() -> List[ToolDef]:
    return [
        ToolDef(
            name="read_note",
            description="Read the full content of a note in the vault",
            params={
                "file_path": ToolParam(
                    name="file_path",
                    description="Path of the note relative to the vault root, or just its file name",
                    required=True,
                    schema={"type": "string"},
                )
            },
        ),
        ToolDef(
            name="list_files",
            description="List notes in the vault, optionally limited to one folder",
            params={
                "folder_path": ToolParam(
                    name="folder_path",
                    description="Folder to list; omit to list the whole vault",
                    required=False,
                    schema={"type": "string"},
                ),
                "include_folders": ToolParam(
                    name="include_folders",
                    description="Group the listing under folder headers",
                    required=False,
                    schema={"type": "boolean"},
                ),
            },
        ),
        ToolDef(
            name="edit_file",
            description="Edit an existing note: replace its content, or append/prepend text",
            params={
                "file_path": ToolParam(
                    name="file_path",
                    description="Path of the note to edit",
                    required=True,
                    schema={"type": "string"},
                ),
                "content": ToolParam(
                    name="content",
                    description="New content, or the text to append/prepend",
                    required=True,
                    schema={"type": "string"},
                ),
                "mode": ToolParam(
                    name="mode",
                    description="How to apply the content",
                    required=True,
                    schema={"type": "string", "enum": ["replace", "append", "prepend"]},
                ),
            },
        ),
        ToolDef(
            name="create_file",
            description="Create a new note; missing folders are created automatically",
            params={
                "file_path": ToolParam(
                    name="file_path",
                    description="Path of the new note; the .md extension is added if missing",
                    required=True,
                    schema={"type": "string"},
                ),
                "content": ToolParam(
                    name="content",
                    description="Initial content of the note",
                    required=True,
                    schema={"type": "string"},
                ),
            },
        ),
        ToolDef(
            name="create_folder",
            description="Create a folder in the vault",
            params={
                "folder_path": ToolParam(
                    name="folder_path",
                    description="Path of the folder to create",
                    required=True,
                    schema={"type": "string"},
                )
            },
        ),
    ]
