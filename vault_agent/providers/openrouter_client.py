"""OpenRouter Provider 适配器。

接口与 OpenAI chat/completions 兼容：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
- OpenRouter 额外读取 HTTP-Referer / X-Title 两个请求头用于应用标识。

响应中的 tool_calls 被视为不可信输入：字段缺失或类型不对时做兜底，
参数保留原始 JSON 字符串，交给 Dispatcher 按工具 schema 校验。
"""

import json
from typing import Any, Dict, List

import httpx

from vault_agent.config.settings import settings
from vault_agent.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from vault_agent.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from vault_agent.providers.registry import OPENROUTER_CONFIG, ModelConfig
from vault_agent.tools.definitions import ToolCall, ToolDef


class OpenRouterClient:
    """OpenRouter Provider 客户端实现。"""

    name = "openrouter"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def ensure_configured(self) -> str:
        """检查凭据，缺失时立即抛出 ValidationError，不发起任何网络请求。"""
        api_key = getattr(self._settings, "openrouter_api_key", None)
        if not api_key:
            raise ValidationError(code="MISSING_API_KEY", message="OPENROUTER_API_KEY not set")
        return api_key

    def chat(self, req: ChatRequest) -> ChatResult:
        api_key = self.ensure_configured()
        model_cfg = OPENROUTER_CONFIG.resolve_model(req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "openrouter_base_url", None) or OPENROUTER_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base.rstrip('/')}/chat/completions",
                    json=payload,
                    headers=self._headers(api_key),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(
                code="RATE_LIMIT",
                message=f"API Error: 429 - {resp.text}",
                http_status=429,
                body=resp.text,
            )
        if not 200 <= resp.status_code < 300:
            raise ApiError(
                code="API_ERROR",
                message=f"API Error: {resp.status_code} - {resp.text}",
                http_status=resp.status_code,
                body=resp.text,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(
                code="INVALID_RESPONSE",
                message=f"Completion service returned invalid JSON: {e}",
                http_status=502,
                body=resp.text,
            ) from e
        result = self._parse_response(data, req)
        if not result.choices:
            raise ApiError(code="EMPTY_RESPONSE", message="Completion service returned no choices", http_status=502)
        return result

    # ---- 辅助方法 ----

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        referer = getattr(self._settings, "http_referer", None)
        if referer:
            headers["HTTP-Referer"] = referer
        title = getattr(self._settings, "app_title", None)
        if title:
            headers["X-Title"] = title
        return headers

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        payload: Dict[str, Any] = {
            "model": model_cfg.provider_model,
            "messages": [self._message_to_payload(m) for m in req.messages],
        }
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.tools:
            payload["tools"] = [self._serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        choices: list[ChatChoice] = []
        raw_choices = data.get("choices") if isinstance(data, dict) else None
        for i, ch in enumerate(raw_choices or []):
            if not isinstance(ch, dict):
                continue
            msg = ch.get("message") or {}
            cm = self._build_chat_message(msg if isinstance(msg, dict) else {})
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason")))
        usage = None
        usage_raw = data.get("usage") if isinstance(data, dict) else None
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=self._token_count(usage_raw.get("prompt_tokens")),
                completion_tokens=self._token_count(usage_raw.get("completion_tokens")),
                total_tokens=self._token_count(usage_raw.get("total_tokens")),
            )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage, raw=data)

    def _build_chat_message(self, payload: Dict[str, Any]) -> ChatMessage:
        """解析 assistant message，兼容 tool_calls/function_call。"""

        content = payload.get("content")
        if content is not None and not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False)
        tool_calls: List[ToolCall] = []
        tool_calls_raw = payload.get("tool_calls")
        for idx, call in enumerate(tool_calls_raw if isinstance(tool_calls_raw, list) else []):
            if not isinstance(call, dict):
                continue
            func = call.get("function") if isinstance(call.get("function"), dict) else {}
            call_id = call.get("id")
            tool_calls.append(
                ToolCall(
                    id=call_id if isinstance(call_id, str) and call_id else f"call_{idx}",
                    name=str(func.get("name") or call.get("name") or ""),
                    arguments=self._raw_arguments(func.get("arguments")),
                )
            )

        function_call = payload.get("function_call")
        if isinstance(function_call, dict):
            tool_calls.append(
                ToolCall(
                    id=str(function_call.get("id") or "function_call"),
                    name=str(function_call.get("name") or ""),
                    arguments=self._raw_arguments(function_call.get("arguments")),
                )
            )

        return ChatMessage(
            role="assistant",
            content=content,
            tool_calls=tool_calls or None,
        )

    def _message_to_payload(self, message: ChatMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": message.role, "content": message.content or ""}
        if message.tool_calls:
            payload["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        if message.tool_call_id:
            payload["tool_call_id"] = message.tool_call_id
        return payload

    def _serialize_tool(self, tool: ToolDef) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for name, param in tool.params.items():
            schema = param.schema or {"type": "string"}
            if param.description:
                schema = {**schema, "description": param.description}
            properties[name] = schema
            if param.required:
                required.append(name)
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    @staticmethod
    def _raw_arguments(raw: Any) -> str:
        if isinstance(raw, str):
            return raw
        if raw is None:
            return "{}"
        return json.dumps(raw, ensure_ascii=False)

    @staticmethod
    def _token_count(raw: Any) -> int:
        # 部分上游模型会返回 null 或字符串
        try:
            return int(raw or 0)
        except (TypeError, ValueError):
            return 0
