"""使用 LLM 为解决方案生成元数据（标题、主题、难度、描述、语言）。"""

from typing import Any, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ExtractorError, ProviderError, ValidationError
from chat_core.domain.models import ChatMessage, ExtractedMetadata, SolutionCandidate
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_system_prompt
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import create_client, extraction_options
from chat_core.solutions.json_recovery import recover_json_object

EXTRACTION_TEMPERATURE = 0.3
ANSWER_PREVIEW_CHARS = 2000


class LLMExtractor:
    def __init__(self, provider_client: Optional[ProviderClient] = None, cfg=settings):
        self._provider_client = provider_client
        self._settings = cfg

    def extract(self, candidate: SolutionCandidate) -> ExtractedMetadata:
        """对一个打包好的问答对执行一次元数据提取。

        Raises:
            ExtractorError: MISSING_CREDENTIAL / PROVIDER_FAILURE / UNPARSABLE_RESPONSE
        """

        try:
            provider_name, options = extraction_options(self._settings, EXTRACTION_TEMPERATURE)
            client = self._provider_client or create_client(provider_name)
        except ValidationError as e:
            raise ExtractorError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)
        if provider_name == "openai" and not options.api_key:
            raise ExtractorError(code="MISSING_CREDENTIAL", message="OpenAI API key not set")

        messages = [
            ChatMessage(role="system", content=load_system_prompt("metadata_extractor")),
            ChatMessage(role="user", content=build_extraction_prompt(candidate)),
        ]
        logger.info("Extracting metadata", extra={"extra": {"provider": client.name, "model": options.model}})
        try:
            response = client.complete(messages, options)
        except ValidationError as e:
            raise ExtractorError(code="MISSING_CREDENTIAL", message=e.message)
        except ProviderError as e:
            logger.error("Metadata extraction failed", extra={"extra": {"provider": client.name, "error": e.message}})
            raise ExtractorError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)
        return parse_llm_response(response)


def build_extraction_prompt(candidate: SolutionCandidate) -> str:
    languages = ", ".join(candidate.languages)
    return (
        "Analyze this Q&A exchange and extract metadata:\n\n"
        "**User Question:**\n"
        f"{candidate.query}\n\n"
        "**Assistant Answer:**\n"
        f"{candidate.answer[:ANSWER_PREVIEW_CHARS]}\n\n"
        "**Code Blocks Found:**\n"
        f"{len(candidate.code_blocks)} code blocks in languages: {languages}\n\n"
        "Extract and return the metadata as JSON."
    )


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value if item is not None]


def parse_llm_response(response: str) -> ExtractedMetadata:
    parsed = recover_json_object(response)
    if parsed is None:
        logger.error("Failed to parse LLM response as JSON", extra={"extra": {"response": (response or "")[:500]}})
        raise ExtractorError(code="UNPARSABLE_RESPONSE", message="Extraction response is not valid JSON")
    return ExtractedMetadata(
        title=_as_str(parsed.get("title")),
        topics=_as_str_list(parsed.get("topics")),
        difficulty=_as_str(parsed.get("difficulty")),
        description=_as_str(parsed.get("description")),
        languages=_as_str_list(parsed.get("languages")),
    )
