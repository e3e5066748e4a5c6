"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型。
- vault: 笔记库（Vault）协作方协议与 NoteFile 句柄。
- exceptions: 业务异常类型定义。
"""
