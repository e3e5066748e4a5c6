"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或宿主 UI 层做统一捕获与用户提示。

只有配置错误（ValidationError）与传输错误（NetworkError / ApiError）
会中断当前用户操作；工具执行中的失败一律转成文本结果回灌给模型。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如响应 body、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """补全服务返回非 2xx 状态码时抛出，extra["body"] 保存响应原文。"""


class RateLimitError(ApiError):
    """Provider 限流（429）。核心层不做自动重试。"""


class ValidationError(BusinessError):
    """参数或配置校验失败，例如缺少 API 密钥。"""


class ToolArgumentError(BusinessError):
    """工具参数无法解析或不符合该工具的 schema。

    仅在 Dispatcher 内部使用，最终会被转换成工具的文本结果。
    """
