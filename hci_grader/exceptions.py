"""领域异常。

路由层不直接拼 HTTP 状态码，而是抛出这里的异常，由 ``main.py`` 中
注册的异常处理器统一转换为 ``{"error": ...}`` 响应体。
"""


class GraderError(Exception):
    """所有业务异常的基类。"""

    status_code = 500
    public_message: str | None = None

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def response_message(self) -> str:
        return self.public_message or self.message


class ValidationFailedError(GraderError):
    """缺少必填字段或取值非法，在调用任何外部服务之前抛出。"""

    status_code = 400


class NotFoundError(GraderError):
    status_code = 404


class LLMNotConfiguredError(GraderError):
    """未配置 OpenRouter API Key。"""

    status_code = 400


class LLMAuthenticationError(GraderError):
    status_code = 401


class LLMUpstreamError(GraderError):
    """LLM / OCR 调用失败，原样透传上游错误信息。"""

    status_code = 500


class MalformedResponseError(GraderError):
    """LLM 输出无法解析为 JSON 或结构与约定不符。"""

    status_code = 500
    public_message = "The AI response could not be parsed"
