"""为用户消息选择最合适的系统提示词类别。

与解决方案路由共用 Provider 配置与 JSON 恢复逻辑；模型给出不在候选列表中的类别时，
视为没有匹配，调用方使用默认系统提示词。
"""

from dataclasses import dataclass
from typing import List, Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import AnalyzerError, ProviderError, ValidationError
from chat_core.domain.models import ChatMessage
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_system_prompt
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import create_client, extraction_options
from chat_core.solutions.json_recovery import recover_json_object

ANALYZER_TEMPERATURE = 0.1


@dataclass(frozen=True)
class CategoryDecision:
    category: Optional[str]
    confidence: float
    reasoning: str = ""


class PromptAnalyzer:
    def __init__(self, provider_client: Optional[ProviderClient] = None, cfg=settings):
        self._provider_client = provider_client
        self._settings = cfg

    def analyze(self, user_message: str, categories: List[str]) -> CategoryDecision:
        """Raises AnalyzerError: ORCHESTRATOR_DISABLED / NO_CATEGORIES / PROVIDER_FAILURE / UNPARSABLE_RESPONSE"""

        if not self._settings.orchestrator_enabled:
            raise AnalyzerError(code="ORCHESTRATOR_DISABLED", message="Prompt orchestrator is disabled")
        if not categories:
            raise AnalyzerError(code="NO_CATEGORIES", message="No categories available")

        try:
            provider_name, options = extraction_options(self._settings, ANALYZER_TEMPERATURE)
            client = self._provider_client or create_client(provider_name)
        except ValidationError as e:
            raise AnalyzerError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)
        messages = [
            ChatMessage(role="system", content=load_system_prompt("prompt_analyzer")),
            ChatMessage(role="user", content=build_categorization_prompt(user_message, categories)),
        ]
        logger.info("Orchestrator: categorizing prompt", extra={"extra": {"provider": client.name, "model": options.model}})
        try:
            response = client.complete(messages, options)
        except (ProviderError, ValidationError) as e:
            raise AnalyzerError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)

        parsed = recover_json_object(response)
        if parsed is None:
            raise AnalyzerError(code="UNPARSABLE_RESPONSE", message="Categorization response is not valid JSON")

        category = parsed.get("category")
        try:
            confidence = max(0.0, min(1.0, float(parsed.get("confidence") or 0.0)))
        except (TypeError, ValueError):
            confidence = 0.0
        reasoning = str(parsed.get("reasoning") or "")
        if category not in categories:
            if category is not None:
                logger.warning("Orchestrator: unknown category", extra={"extra": {"category": category}})
            return CategoryDecision(category=None, confidence=confidence, reasoning=reasoning)
        return CategoryDecision(category=category, confidence=confidence, reasoning=reasoning)


def build_categorization_prompt(user_message: str, categories: List[str]) -> str:
    subcategories = [c for c in categories if "/" in c]
    general = [c for c in categories if "/" not in c]
    lines = [f'User Message:\n"{user_message}"', "", "Available Categories:"]
    if general:
        lines.append("General: " + ", ".join(general))
    if subcategories:
        lines.append("Specific: " + ", ".join(subcategories))
    lines.append("")
    lines.append("Select the single best category, or null if none applies.")
    return "\n".join(lines)
