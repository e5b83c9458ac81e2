"""Provider 抽象接口。

上层组件（ConversationWorker、SolutionRouter、LLMExtractor）不直接依赖具体厂商的
HTTP 协议，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（OllamaClient、OpenAIClient）。
- 负责：把 ChatMessage 转成具体 API 请求，并把响应解析为纯文本。
- 流式调用通过 on_chunk 回调逐段交付文本（非累计），由调用方负责累加。

这样可以在不改上层代码的前提下接入更多厂商。
"""

from typing import Callable, List, Protocol

from chat_core.domain.models import ChatMessage, ProviderOptions

ChunkCallback = Callable[[str], None]


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - supports_vision: 是否原样发送图片内容。
    - complete: 一次非流式调用，失败抛 NetworkError / ApiError。
    - stream_complete: 一次流式调用，传输结束后才返回；单个坏帧只记录日志并跳过。
    - check_liveness: 返回服务端版本号或身份标识。
    """

    name: str
    supports_vision: bool

    def complete(self, messages: List[ChatMessage], options: ProviderOptions) -> str:
        ...

    def stream_complete(
        self,
        messages: List[ChatMessage],
        on_chunk: ChunkCallback,
        options: ProviderOptions,
    ) -> None:
        ...

    def check_liveness(self, options: ProviderOptions) -> str:
        ...

    def list_models(self, options: ProviderOptions) -> List[str]:
        ...
