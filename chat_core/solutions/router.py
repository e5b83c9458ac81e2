"""把用户问题路由到已保存的解决方案。

在调用主对话 LLM 之前，先用一次非流式 LLM 调用判断解决方案库里是否已有语义上
等价的答案。低于阈值的匹配不会被自动采用，但置信度仍会返回给界面，供人工选择。
"""

import time
from typing import Any, Dict, List, Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ProviderError, RouterError, ValidationError
from chat_core.domain.models import ChatMessage, MatchResult, SolutionCandidate
from chat_core.domain.ports import SolutionSource
from chat_core.infrastructure.logging.logger import logger
from chat_core.prompts import load_system_prompt
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import create_client, extraction_options
from chat_core.solutions.json_recovery import recover_json_object

ROUTER_TEMPERATURE = 0.1


class SolutionRouter:
    def __init__(self, provider_client: Optional[ProviderClient] = None, cfg=settings):
        self._provider_client = provider_client
        self._settings = cfg

    def route(self, query: str, source: SolutionSource) -> MatchResult:
        """使用配置中的开关与阈值，对解决方案库执行一次匹配。"""

        if not self._settings.enable_solution_router:
            raise RouterError(code="ROUTER_DISABLED", message="Solution router is disabled")
        return self.find_match(query, source.list_solutions(), self._settings.solution_router_threshold)

    def find_match(self, query: str, pool: List[SolutionCandidate], threshold: float) -> MatchResult:
        """在 pool 中查找与 query 最匹配的解决方案。

        Returns:
            MatchResult；accepted=True 表示可直接使用该解决方案。

        Raises:
            RouterError: EMPTY_POOL / PROVIDER_FAILURE / UNPARSABLE_RESPONSE
        """

        if not pool:
            raise RouterError(code="EMPTY_POOL", message="No solutions available")
        if not (query or "").strip():
            return MatchResult.no_match(reasoning="Empty query")

        try:
            provider_name, options = extraction_options(self._settings, ROUTER_TEMPERATURE)
            client = self._provider_client or create_client(provider_name)
        except ValidationError as e:
            raise RouterError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)
        messages = [
            ChatMessage(role="system", content=load_system_prompt("solution_router")),
            ChatMessage(role="user", content=build_matching_prompt(query, pool)),
        ]
        log_ctx = {"provider": client.name, "model": options.model, "pool_size": len(pool)}
        logger.info("Router: checking solutions", extra={"extra": log_ctx})

        start = time.time()
        try:
            response = client.complete(messages, options)
        except (ProviderError, ValidationError) as e:
            logger.error("Router: matching failed", extra={"extra": {**log_ctx, "error": e.message}})
            raise RouterError(code="PROVIDER_FAILURE", message=e.message, cause=e.code)

        result = self._parse_response(response, pool, threshold)
        logger.info(
            "Router: match result",
            extra={"extra": {
                **log_ctx,
                "solution_id": result.solution_id,
                "confidence": result.confidence,
                "accepted": result.accepted,
                "elapsed_seconds": round(time.time() - start, 2),
            }},
        )
        return result

    def _parse_response(self, response: str, pool: List[SolutionCandidate], threshold: float) -> MatchResult:
        parsed = recover_json_object(response)
        if parsed is None:
            logger.error("Router: failed to parse LLM response as JSON", extra={"extra": {"response": response[:500]}})
            raise RouterError(code="UNPARSABLE_RESPONSE", message="Router response is not valid JSON")

        match_id = parsed.get("best_match_id")
        confidence = _as_confidence(parsed.get("confidence"))
        reasoning = parsed.get("reasoning") or ""
        logger.debug("Router: reasoning", extra={"extra": {"reasoning": reasoning}})

        if match_id is None:
            return MatchResult.no_match(confidence=confidence, reasoning=reasoning)

        solution = _find_in_pool(match_id, pool)
        if solution is None:
            logger.error("Router: solution id not found in pool", extra={"extra": {"solution_id": match_id}})
            raise RouterError(
                code="UNPARSABLE_RESPONSE",
                message=f"Solution ID {match_id!r} not found in solutions list",
                confidence=confidence,
            )

        accepted = confidence >= threshold
        if not accepted:
            logger.info(
                "Router: match below threshold",
                extra={"extra": {"confidence": confidence, "threshold": threshold}},
            )
        return MatchResult(solution_id=solution.id, confidence=confidence, accepted=accepted, reasoning=reasoning)


def _as_confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        c = float(value)
    except (TypeError, ValueError):
        return 0.0
    if c != c:  # NaN
        return 0.0
    return max(0.0, min(1.0, c))


def _find_in_pool(match_id: Any, pool: List[SolutionCandidate]) -> Optional[SolutionCandidate]:
    for solution in pool:
        if solution.id is not None and str(solution.id) == str(match_id):
            return solution
    return None


def _describe_solution(solution: SolutionCandidate) -> str:
    fields: Dict[str, str] = {
        "ID": str(solution.id),
        "Title": solution.title or "Untitled",
        "Topics": ", ".join(solution.topics),
        "Difficulty": solution.difficulty or "unknown",
        "Original Question": solution.query,
        "Description": solution.description or "No description",
    }
    return "\n".join(f"{k}: {v}" for k, v in fields.items())


def build_matching_prompt(query: str, pool: List[SolutionCandidate]) -> str:
    solutions_text = "\n---\n".join(_describe_solution(s) for s in pool)
    return (
        "User's New Question:\n"
        f'"{query}"\n\n'
        "Saved Solutions:\n"
        f"{solutions_text}\n\n"
        "Find the best matching solution for the user's question. "
        "Consider semantic meaning, not just keywords."
    )
