"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在服务层或 UI 层做统一捕获与用户提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "EMPTY_POOL"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、conversation_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ProviderError(BusinessError):
    """Provider 调用失败的基类。"""


class NetworkError(ProviderError):
    """网络层错误，例如连接失败、超时等（Provider 不可达）。"""


class ApiError(ProviderError):
    """Provider 返回非 2xx 状态码时抛出，http_status 为实际状态码。"""


class RateLimitError(ApiError):
    """Provider 限流（429）。本项目不自动重试，直接交给调用方。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""


class WorkerAlreadyRunningError(BusinessError):
    """同一会话已有正在运行的推理，拒绝第二次启动（不排队）。"""


class RouterError(BusinessError):
    """SolutionRouter 的错误。

    code 取值：ROUTER_DISABLED / EMPTY_POOL / PROVIDER_FAILURE / UNPARSABLE_RESPONSE。
    """


class ExtractorError(BusinessError):
    """LLMExtractor 的错误。

    code 取值：MISSING_CREDENTIAL / PROVIDER_FAILURE / UNPARSABLE_RESPONSE。
    """


class PackagingError(BusinessError):
    """问答对不适合打包为解决方案（无代码块、问题或回答过短）。"""


class AnalyzerError(BusinessError):
    """PromptAnalyzer 的错误。"""
