"""Chat Core 顶层包。

该包提供对话后台编排的核心实现，包括配置加载、领域模型、Provider 适配
（Ollama / OpenAI）、会话级流式 worker、解决方案路由与 LLM 元数据提取等能力。
"""

from chat_core.api.service import ChatService, RoutingDecision

__all__ = ["ChatService", "RoutingDecision"]
