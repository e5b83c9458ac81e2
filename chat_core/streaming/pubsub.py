"""按会话 ID 分发 StreamEvent 的进程内发布/订阅通道。

- 每个订阅者持有自己的无界队列，publish 只做 put_nowait，慢订阅者不会拖慢 worker。
- 订阅与 worker 生命周期无关：可以在 worker 启动前订阅，也可以中途断开再重连。
- 进行中会话的最后一条事件会被缓存，重连时 subscribe(replay=True) 立即收到它以恢复界面；
  终止事件（Completed / Failed）发布后或 forget 后缓存即被清除。
"""

import queue
import threading
from typing import Dict, List, Optional

from chat_core.domain.models import Completed, Failed, StreamEvent


class Subscription:
    def __init__(self, hub: "PubSub", conversation_id: str):
        self.conversation_id = conversation_id
        self._hub = hub
        self._queue: "queue.Queue[StreamEvent]" = queue.Queue()

    def _deliver(self, event: StreamEvent) -> None:
        self._queue.put_nowait(event)

    def get(self, timeout: Optional[float] = None) -> StreamEvent:
        """阻塞等待下一条事件，超时抛 queue.Empty。"""

        return self._queue.get(timeout=timeout)

    def drain(self) -> List[StreamEvent]:
        events: List[StreamEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._hub.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> bool:
        self.close()
        return False


class PubSub:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._last_event: Dict[str, StreamEvent] = {}

    def subscribe(self, conversation_id: str, replay: bool = False) -> Subscription:
        """订阅会话事件；replay=True 时先投递缓存的最后一条事件（如果有）。"""

        sub = Subscription(self, conversation_id)
        with self._lock:
            self._subscribers.setdefault(conversation_id, []).append(sub)
            last = self._last_event.get(conversation_id) if replay else None
            if last is not None:
                sub._deliver(last)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.conversation_id)
            if not subs:
                return
            self._subscribers[sub.conversation_id] = [s for s in subs if s is not sub]
            if not self._subscribers[sub.conversation_id]:
                del self._subscribers[sub.conversation_id]

    def publish(self, conversation_id: str, event: StreamEvent) -> int:
        """投递给当前所有订阅者，返回投递数量。"""

        with self._lock:
            if isinstance(event, (Completed, Failed)):
                self._last_event.pop(conversation_id, None)
            else:
                self._last_event[conversation_id] = event
            targets = list(self._subscribers.get(conversation_id, ()))
        for sub in targets:
            sub._deliver(event)
        return len(targets)

    def last_event(self, conversation_id: str) -> Optional[StreamEvent]:
        with self._lock:
            return self._last_event.get(conversation_id)

    def forget(self, conversation_id: str) -> None:
        with self._lock:
            self._last_event.pop(conversation_id, None)

    def subscriber_count(self, conversation_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(conversation_id, ()))
