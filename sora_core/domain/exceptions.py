"""统一业务异常模型。

跨模块抛出的错误都继承自 BusinessError，API 层和客户端控制器可以统一捕获，
再映射为 HTTP 状态码或面向用户的提示。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "AUDIO_TOO_SHORT"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时使用的状态码，默认 400。
        extra: 其他补充字段（provider、message_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """输入无效、为空或过大，在发起任何网络请求前拒绝。"""


class ProviderError(BusinessError):
    """第三方服务调用失败。"""

    def __init__(self, code: str, message: str, http_status: int = 502, **extra):
        super().__init__(code, message, http_status, **extra)


class NetworkError(ProviderError):
    """网络层错误，例如连接失败、DNS 错误、超时等。"""


class ApiError(ProviderError):
    """Provider 返回非 2xx 状态码。"""


class RateLimitError(ProviderError):
    """Provider 返回 429 限流。"""

    def __init__(self, code: str, message: str, http_status: int = 429, **extra):
        super().__init__(code, message, http_status, **extra)


class TranscriptionUnavailable(ProviderError):
    """云端引擎和本地识别器都失败了。"""


class EnrichmentTimeout(BusinessError):
    """上下文增强子流程超时，按“无结果”处理。"""

    def __init__(self, code: str, message: str, http_status: int = 504, **extra):
        super().__init__(code, message, http_status, **extra)


class StateError(BusinessError):
    """当前轮次或播放句柄无法接受该操作。"""

    def __init__(self, code: str, message: str, http_status: int = 409, **extra):
        super().__init__(code, message, http_status, **extra)


class UnsupportedPlaybackOperation(StateError):
    """播放句柄不支持所请求的控制操作。"""
