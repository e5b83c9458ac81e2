"""会话级后台推理 worker。

每个正在推理的会话对应一个 ConversationWorker：

- 启动后立即广播 Started，然后在后台线程中调用 Provider 的流式接口。
- 传输线程通过 on_chunk 把文本片段放进 worker 的收件队列，worker 线程负责累加并
  广播 ChunkAppended（携带累计文本）。
- 流结束且有内容时调用持久化回调，再广播 Completed；没有内容或传输失败时广播 Failed。
- worker 只服务一次交换，结束后从 WorkerRegistry 中移除，不会复用。

WorkerRegistry 保证同一会话同时最多一个 worker（检查与插入在同一把锁内完成），
调用方断开后 worker 继续运行，重新订阅即可拿到后续事件。
"""

import queue
import threading
import time
from enum import Enum
from typing import Dict, List, Optional, Tuple

from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError, WorkerAlreadyRunningError
from chat_core.domain.models import (
    ChatMessage,
    ChunkAppended,
    Completed,
    Failed,
    ProviderOptions,
    Started,
    StreamEvent,
)
from chat_core.domain.ports import MessageSink
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import resolve_stream_target
from chat_core.streaming.pubsub import PubSub

NO_RESPONSE_ERROR = "No response received from LLM"
SAVE_FAILED_ERROR = "Failed to save message"


class WorkerState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class _StreamCancelled(Exception):
    """在 on_chunk 中抛出，用来让传输循环尽快退出。"""


class ConversationWorker:
    def __init__(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        triggering_message_id: Optional[str],
        *,
        registry: "WorkerRegistry",
        pubsub: PubSub,
        sink: MessageSink,
        cfg=settings,
        clients: Optional[Dict[str, ProviderClient]] = None,
    ):
        self.conversation_id = conversation_id
        self.triggering_message_id = triggering_message_id
        self._messages = list(messages)
        self._registry = registry
        self._pubsub = pubsub
        self._sink = sink
        self._settings = cfg
        self._clients = clients
        self._inbox: "queue.Queue[Tuple[str, Optional[str]]]" = queue.Queue()
        self._emit_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._state = WorkerState.IDLE
        self._buffer = ""
        self._thread: Optional[threading.Thread] = None
        self._log_ctx = {"conversation_id": conversation_id}

    # ---- 对外接口 ----

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def buffer(self) -> str:
        return self._buffer

    def start(self) -> None:
        self._thread = threading.Thread(
            target=self._run,
            name=f"conversation-worker-{self.conversation_id}",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        """协作式取消：之后不再广播任何事件，迟到的片段直接丢弃。"""

        with self._emit_lock:
            if self._state in (WorkerState.COMPLETED, WorkerState.FAILED):
                return
            self._cancelled.set()
            self._state = WorkerState.CANCELLED
        self._inbox.put(("cancelled", None))
        logger.info("Worker cancelled", extra={"extra": self._log_ctx})

    def join(self, timeout: Optional[float] = None) -> bool:
        """等待 worker 线程结束，返回是否已结束。"""

        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ---- worker 线程 ----

    def _run(self) -> None:
        started_at = time.time()
        if not self._emit(Started(self.conversation_id, self.triggering_message_id), WorkerState.STREAMING):
            self._registry._deregister(self.conversation_id, self)
            return

        try:
            client, options = resolve_stream_target(self._messages, self._settings, self._clients)
        except BusinessError as e:
            self._fail(e.message)
            return

        logger.info(
            "Starting LLM stream",
            extra={"extra": {
                **self._log_ctx,
                "provider": client.name,
                "model": options.model,
                "messages": len(self._messages),
            }},
        )
        threading.Thread(
            target=self._transport,
            args=(client, options),
            name=f"conversation-transport-{self.conversation_id}",
            daemon=True,
        ).start()

        while True:
            kind, payload = self._inbox.get()
            if self._cancelled.is_set() or kind == "cancelled":
                self._registry._deregister(self.conversation_id, self)
                return
            if kind == "chunk":
                self._buffer += payload or ""
                logger.debug("Received chunk", extra={"extra": {**self._log_ctx, "size": len(payload or "")}})
                self._emit(ChunkAppended(self.conversation_id, self._buffer))
            elif kind == "error":
                logger.error("LLM stream failed", extra={"extra": {**self._log_ctx, "error": payload}})
                self._fail(payload or "Unknown error")
                return
            elif kind == "done":
                self._complete(started_at)
                return

    def _transport(self, client: ProviderClient, options: ProviderOptions) -> None:
        try:
            client.stream_complete(self._messages, self._on_chunk, options)
        except _StreamCancelled:
            return
        except BusinessError as e:
            self._inbox.put(("error", e.message))
        except Exception as exc:  # noqa: BLE001 - 线程边界，需要把异常转换为 Failed 事件
            logger.exception("Unexpected transport error", extra={"extra": self._log_ctx})
            self._inbox.put(("error", f"{type(exc).__name__}: {exc}"))
        else:
            self._inbox.put(("done", None))

    def _on_chunk(self, text: str) -> None:
        if self._cancelled.is_set():
            raise _StreamCancelled()
        if text:
            self._inbox.put(("chunk", text))

    def _complete(self, started_at: float) -> None:
        if not self._buffer:
            logger.warning("Stream completed with no content", extra={"extra": self._log_ctx})
            self._fail(NO_RESPONSE_ERROR)
            return
        try:
            persisted = self._sink.save(self.conversation_id, "assistant", self._buffer)
        except Exception:  # noqa: BLE001 - 持久化失败统一转换为 Failed 事件
            logger.exception("Failed to save assistant message", extra={"extra": self._log_ctx})
            self._fail(SAVE_FAILED_ERROR)
            return
        final_message = persisted.to_chat_message()
        self._registry._deregister(self.conversation_id, self)
        self._emit(Completed(self.conversation_id, final_message), WorkerState.COMPLETED)
        logger.info(
            "LLM stream completed",
            extra={"extra": {
                **self._log_ctx,
                "chars": len(self._buffer),
                "elapsed_seconds": round(time.time() - started_at, 2),
            }},
        )

    def _fail(self, error: str) -> None:
        self._registry._deregister(self.conversation_id, self)
        self._emit(Failed(self.conversation_id, error), WorkerState.FAILED)

    def _emit(self, event: StreamEvent, new_state: Optional[WorkerState] = None) -> bool:
        """在取消检查的同一把锁内广播，保证取消后不会再有事件发出。"""

        with self._emit_lock:
            if self._cancelled.is_set():
                return False
            if new_state is not None:
                self._state = new_state
            self._pubsub.publish(self.conversation_id, event)
            return True


class WorkerRegistry:
    """会话 ID → 正在运行的 ConversationWorker。

    start 在一把锁内完成“检查是否存在 + 插入”，同一会话并发启动时只有一个成功，
    其余立即得到 WorkerAlreadyRunningError（不排队、不合并）。
    """

    def __init__(
        self,
        sink: MessageSink,
        pubsub: Optional[PubSub] = None,
        cfg=settings,
        clients: Optional[Dict[str, ProviderClient]] = None,
    ):
        self.pubsub = pubsub or PubSub()
        self._sink = sink
        self._settings = cfg
        self._clients = clients
        self._lock = threading.Lock()
        self._workers: Dict[str, ConversationWorker] = {}

    def start(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        triggering_message_id: Optional[str] = None,
    ) -> ConversationWorker:
        """注册并启动 worker，注册完成后立即返回，不等待第一个片段。

        Raises:
            WorkerAlreadyRunningError: 该会话已有运行中的 worker。
        """

        with self._lock:
            if conversation_id in self._workers:
                raise WorkerAlreadyRunningError(
                    code="ALREADY_RUNNING",
                    message=f"Conversation {conversation_id} already has an inference running",
                    http_status=409,
                    conversation_id=conversation_id,
                )
            worker = ConversationWorker(
                conversation_id,
                messages,
                triggering_message_id,
                registry=self,
                pubsub=self.pubsub,
                sink=self._sink,
                cfg=self._settings,
                clients=self._clients,
            )
            self._workers[conversation_id] = worker
        try:
            worker.start()
        except RuntimeError:
            self._deregister(conversation_id, worker)
            raise
        return worker

    def stop(self, conversation_id: str) -> bool:
        """停止并注销会话的 worker，之后可以立即为该会话重新 start。"""

        with self._lock:
            worker = self._workers.pop(conversation_id, None)
            if worker is None:
                return False
            # 新的 start 只能在旧 worker 静默、缓存清除之后注册
            worker.cancel()
            self.pubsub.forget(conversation_id)
        return True

    def get(self, conversation_id: str) -> Optional[ConversationWorker]:
        with self._lock:
            return self._workers.get(conversation_id)

    def is_running(self, conversation_id: str) -> bool:
        with self._lock:
            return conversation_id in self._workers

    def active_conversations(self) -> List[str]:
        with self._lock:
            return list(self._workers)

    def _deregister(self, conversation_id: str, worker: ConversationWorker) -> None:
        # 只移除自己：stop 之后同一会话可能已经注册了新的 worker
        with self._lock:
            if self._workers.get(conversation_id) is worker:
                del self._workers[conversation_id]
