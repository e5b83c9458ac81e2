"""会话级流式推理：worker、注册表与事件广播。"""

from chat_core.streaming.pubsub import PubSub, Subscription
from chat_core.streaming.worker import ConversationWorker, WorkerRegistry, WorkerState

__all__ = ["ConversationWorker", "PubSub", "Subscription", "WorkerRegistry", "WorkerState"]
