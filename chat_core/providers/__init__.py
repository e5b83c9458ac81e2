"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 选择与调用参数 (registry)。
- 提供各厂商的具体实现 (ollama_client、openai_client)。
"""

from typing import Literal, Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ChunkCallback, ProviderClient
from chat_core.providers.ollama_client import OllamaClient
from chat_core.providers.openai_client import OpenAIClient
from chat_core.providers.registry import create_client


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 llm_provider。"""

    return create_client(name or getattr(settings, "llm_provider", "ollama"))


DefaultProviderName = Literal["ollama", "openai"]

__all__ = [
    "ChunkCallback",
    "DefaultProviderName",
    "OllamaClient",
    "OpenAIClient",
    "ProviderClient",
    "create_provider",
]
