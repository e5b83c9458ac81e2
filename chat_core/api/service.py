"""对外服务模块。

把路由、后台推理、打包与元数据提取串成一条流程，供 UI / Web 层调用：

1. 用户消息到达后先询问 SolutionRouter，命中且置信度达标时直接返回已保存的解决方案；
2. 否则（启用 orchestrator 时）由 PromptAnalyzer 选出类别对应的系统提示词，
   再为该会话启动 ConversationWorker，流式结果通过 PubSub 推送；
3. 需要保存解决方案时，Packager + LLMExtractor 生成 candidate，人工确认后 commit。
"""

from dataclasses import dataclass
from typing import List, Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import AnalyzerError, ExtractorError, RouterError, ValidationError
from chat_core.domain.models import ChatMessage, MatchResult, SolutionCandidate
from chat_core.domain.ports import MessageSink, SolutionLibrary
from chat_core.infrastructure.logging.logger import logger
from chat_core.orchestrator.analyzer import PromptAnalyzer
from chat_core.solutions.llm_extractor import LLMExtractor
from chat_core.solutions.packager import Packager
from chat_core.solutions.router import SolutionRouter
from chat_core.streaming.pubsub import PubSub, Subscription
from chat_core.streaming.worker import ConversationWorker, WorkerRegistry


@dataclass
class RoutingDecision:
    """send_message 的结果。

    - solution 不为空：路由命中，未启动推理。
    - worker 不为空：已启动后台推理；match 可能仍带有未达阈值的候选，供界面展示。
    """

    match: Optional[MatchResult] = None
    solution: Optional[SolutionCandidate] = None
    worker: Optional[ConversationWorker] = None

    @property
    def routed(self) -> bool:
        return self.solution is not None


class ChatService:
    def __init__(
        self,
        sink: MessageSink,
        library: SolutionLibrary,
        *,
        registry: Optional[WorkerRegistry] = None,
        router: Optional[SolutionRouter] = None,
        extractor: Optional[LLMExtractor] = None,
        packager: Optional[Packager] = None,
        analyzer: Optional[PromptAnalyzer] = None,
        cfg=settings,
    ):
        self._settings = cfg
        self._library = library
        self.registry = registry or WorkerRegistry(sink=sink, cfg=cfg)
        self._router = router or SolutionRouter(cfg=cfg)
        self._extractor = extractor or LLMExtractor(cfg=cfg)
        self._packager = packager or Packager()
        self._analyzer = analyzer or PromptAnalyzer(cfg=cfg)

    @property
    def pubsub(self) -> PubSub:
        return self.registry.pubsub

    def subscribe(self, conversation_id: str, replay: bool = True) -> Subscription:
        """订阅会话事件；默认先收到进行中推理的最新状态，断线重连后界面可直接恢复。"""

        return self.pubsub.subscribe(conversation_id, replay=replay)

    def send_message(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        triggering_message_id: Optional[str] = None,
        query: Optional[str] = None,
    ) -> RoutingDecision:
        """处理一条新的用户消息。

        Args:
            conversation_id: 会话ID
            messages: 发送给 LLM 的完整上下文（最后一条通常是用户消息）
            triggering_message_id: 触发本次推理的用户消息ID
            query: 用于路由的问题文本，缺省取最后一条用户消息

        Raises:
            ValidationError: 用户消息为空。
            WorkerAlreadyRunningError: 该会话已有推理在运行。
        """

        if query is None:
            query = _last_user_text(messages)
        if not messages or not (query or "").strip():
            raise ValidationError(code="EMPTY_MESSAGE", message="Message content is empty")

        match = self._try_route(conversation_id, query)
        if match is not None and match.accepted:
            solution = self._find_solution(match.solution_id)
            if solution is not None:
                logger.info(
                    "Routed to saved solution",
                    extra={"extra": {"conversation_id": conversation_id, "solution_id": solution.id}},
                )
                return RoutingDecision(match=match, solution=solution)

        messages = self._with_system_prompt(conversation_id, messages, query)
        worker = self.registry.start(conversation_id, messages, triggering_message_id)
        return RoutingDecision(match=match, worker=worker)

    def start_inference(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        triggering_message_id: Optional[str] = None,
    ) -> ConversationWorker:
        """跳过路由直接推理，例如用户拒绝了路由给出的解决方案。"""

        return self.registry.start(conversation_id, messages, triggering_message_id)

    def stop(self, conversation_id: str) -> bool:
        return self.registry.stop(conversation_id)

    def prepare_solution(self, question: str, answer: str) -> SolutionCandidate:
        """打包问答对并补充 LLM 元数据；提取失败时返回只含解析结果的 candidate。

        Raises:
            PackagingError: 问答对不适合保存。
        """

        candidate = self._packager.validate_and_package(question, answer)
        try:
            metadata = self._extractor.extract(candidate)
        except ExtractorError as e:
            logger.warning("Metadata extraction skipped", extra={"extra": {"code": e.code, "error": e.message}})
            return candidate
        return self._packager.merge_llm_metadata(candidate, metadata)

    def save_solution(self, candidate: SolutionCandidate) -> SolutionCandidate:
        return self._library.commit(candidate)

    # ---- 内部 ----

    def _try_route(self, conversation_id: str, query: str) -> Optional[MatchResult]:
        if not self._settings.enable_solution_router:
            return None
        try:
            return self._router.route(query, self._library)
        except RouterError as e:
            # 路由失败不影响正常对话
            logger.info(
                "Router skipped",
                extra={"extra": {"conversation_id": conversation_id, "code": e.code, "error": e.message}},
            )
            return None

    def _with_system_prompt(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        query: str,
    ) -> List[ChatMessage]:
        """按类别替换（或补上）开头的系统提示词；未启用、无匹配或分析失败时原样返回。"""

        prompts = self._settings.orchestrator_prompts or {}
        if not self._settings.orchestrator_enabled or not prompts:
            return messages
        try:
            decision = self._analyzer.analyze(query, list(prompts))
        except AnalyzerError as e:
            logger.info(
                "Orchestrator skipped",
                extra={"extra": {"conversation_id": conversation_id, "code": e.code, "error": e.message}},
            )
            return messages
        if decision.category is None:
            return messages
        logger.info(
            "Orchestrator: selected system prompt",
            extra={"extra": {
                "conversation_id": conversation_id,
                "category": decision.category,
                "confidence": decision.confidence,
            }},
        )
        system = ChatMessage(role="system", content=prompts[decision.category])
        rest = messages[1:] if messages and messages[0].role == "system" else messages
        return [system, *rest]

    def _find_solution(self, solution_id) -> Optional[SolutionCandidate]:
        for solution in self._library.list_solutions():
            if str(solution.id) == str(solution_id):
                return solution
        return None


def _last_user_text(messages: List[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.text()
    return ""
