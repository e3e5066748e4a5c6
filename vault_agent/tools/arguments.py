"""工具参数模型。

补全服务给出的 arguments 是不可信的 JSON 字符串。每个工具对应一个
Pydantic 模型，按工具名选择模型做校验，相当于一个以工具名为标签的联合类型。
"""

from __future__ import annotations

import json
from typing import Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from vault_agent.domain.exceptions import ToolArgumentError


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=False)


class ReadNoteArgs(_ToolArgs):
    file_path: str = Field(min_length=1)


class ListFilesArgs(_ToolArgs):
    folder_path: Optional[str] = None
    include_folders: bool = False


class EditFileArgs(_ToolArgs):
    file_path: str = Field(min_length=1)
    content: str
    mode: Literal["replace", "append", "prepend"]


class CreateFileArgs(_ToolArgs):
    file_path: str = Field(min_length=1)
    content: str


class CreateFolderArgs(_ToolArgs):
    folder_path: str = Field(min_length=1)


ToolArguments = Union[ReadNoteArgs, ListFilesArgs, EditFileArgs, CreateFileArgs, CreateFolderArgs]

TOOL_ARGUMENT_MODELS: Dict[str, Type[_ToolArgs]] = {
    "read_note": ReadNoteArgs,
    "list_files": ListFilesArgs,
    "edit_file": EditFileArgs,
    "create_file": CreateFileArgs,
    "create_folder": CreateFolderArgs,
}


def parse_tool_arguments(name: str, raw: Union[str, dict, None]) -> ToolArguments:
    """把原始参数解析成对应工具的参数模型。

    Raises:
        ToolArgumentError: 工具未注册、JSON 无法解析或字段不符合 schema。
    """

    model = TOOL_ARGUMENT_MODELS.get(name)
    if model is None:
        raise ToolArgumentError(code="UNKNOWN_TOOL", message=f"Unknown tool: {name}")

    if isinstance(raw, dict):
        data = raw
    else:
        text = (raw or "").strip() or "{}"
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ToolArgumentError(
                code="ARGUMENT_PARSE_ERROR",
                message=f"Error parsing arguments: {exc}",
            ) from exc

    if not isinstance(data, dict):
        raise ToolArgumentError(
            code="ARGUMENT_PARSE_ERROR",
            message=f"Error parsing arguments: expected a JSON object, got {type(data).__name__}",
        )

    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ToolArgumentError(
            code="ARGUMENT_INVALID",
            message=f"Invalid arguments for {name}: {problems}",
        ) from exc
