from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol

from .models import ChatMessage, Role, SolutionCandidate


@dataclass
class PersistedMessage:
    id: str
    conversation_id: str
    role: Role
    content: str
    created_at: datetime

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content, id=self.id)


class MessageSink(Protocol):
    """持久化回调：ConversationWorker 在一次交换完成后调用且只调用一次。"""

    def save(self, conversation_id: str, role: Role, content: str) -> PersistedMessage:
        ...


class SolutionSource(Protocol):
    def list_solutions(self) -> List[SolutionCandidate]:
        ...


class SolutionLibrary(SolutionSource, Protocol):
    """可写的解决方案库：人工确认后通过 commit 保存 candidate。"""

    def commit(self, candidate: SolutionCandidate) -> SolutionCandidate:
        ...
