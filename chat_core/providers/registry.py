"""Provider 配置与选择。

本模块把“当前配置”翻译成具体的 (ProviderClient, ProviderOptions)：

- 主对话：按 llm_provider 选择；只要任意消息带图片，就强制走 OpenAI 视觉模型
  （仅影响这一次调用，不修改配置）。
- 元数据提取 / 路由 / 提示词分类：按 solution_extraction_provider 选择，温度由调用方指定。
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import ChatMessage, ProviderOptions
from chat_core.providers.base import ProviderClient
from chat_core.providers.ollama_client import OllamaClient
from chat_core.providers.openai_client import OpenAIClient


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    supports_vision: bool
    client_cls: type


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "ollama": ProviderConfig(name="ollama", supports_vision=False, client_cls=OllamaClient),
    "openai": ProviderConfig(name="openai", supports_vision=True, client_cls=OpenAIClient),
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = (name or "").lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k == key:
            return cfg
    raise ValidationError(code="UNKNOWN_PROVIDER", message=f"Unknown LLM provider: {name!r}")


def create_client(name: str) -> ProviderClient:
    return get_provider_config(name).client_cls()


def _base_url(cfg, provider: str) -> str:
    return cfg.openai_base_url if provider == "openai" else cfg.ollama_url


def chat_options(cfg, provider: str, model: Optional[str] = None) -> ProviderOptions:
    """主对话调用参数。"""

    if model is None:
        model = cfg.openai_model if provider == "openai" else cfg.ollama_model
    return ProviderOptions(
        model=model,
        base_url=_base_url(cfg, provider),
        temperature=cfg.temperature,
        vision_model=cfg.openai_vision_model,
        api_key=cfg.openai_api_key if provider == "openai" else None,
        timeout=cfg.http_timeout,
    )


def extraction_options(cfg, temperature: float) -> Tuple[str, ProviderOptions]:
    """元数据提取、路由与提示词分类共用的调用参数。"""

    provider = cfg.solution_extraction_provider
    get_provider_config(provider)
    model = cfg.solution_extraction_openai_model if provider == "openai" else cfg.solution_extraction_ollama_model
    options = ProviderOptions(
        model=model,
        base_url=_base_url(cfg, provider),
        temperature=temperature,
        api_key=cfg.openai_api_key if provider == "openai" else None,
        timeout=cfg.http_timeout,
    )
    return provider, options


def needs_vision(messages: List[ChatMessage]) -> bool:
    return any(m.has_images() for m in messages)


def resolve_stream_target(
    messages: List[ChatMessage],
    cfg,
    clients: Optional[Dict[str, ProviderClient]] = None,
) -> Tuple[ProviderClient, ProviderOptions]:
    """为一次流式对话选择 Provider。

    消息中只要有图片就强制使用 OpenAI + openai_vision_model，覆盖 llm_provider 配置。
    clients 用于注入已有实例（测试或复用连接），缺省时按名称新建。
    """

    clients = clients or {}
    if needs_vision(messages):
        provider = "openai"
        options = chat_options(cfg, provider, model=cfg.openai_vision_model)
    else:
        provider = get_provider_config(cfg.llm_provider).name
        options = chat_options(cfg, provider)
    client = clients.get(provider) or create_client(provider)
    return client, options
