import threading
from dataclasses import replace
from typing import Dict, List, Optional
from uuid import uuid4

from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import SolutionCandidate


class InMemorySolutionLibrary:
    """进程内的解决方案库，实现 SolutionSource。

    candidate 只有在人工确认后才通过 commit 写入，此时分配 id。
    """

    def __init__(self, solutions: Optional[List[SolutionCandidate]] = None):
        self._lock = threading.Lock()
        self._items: Dict[str, SolutionCandidate] = {}
        for s in solutions or []:
            self.commit(s)

    def commit(self, candidate: SolutionCandidate) -> SolutionCandidate:
        if not candidate.query or not candidate.answer:
            raise ValidationError(code="INVALID_SOLUTION", message="Solution requires a query and an answer")
        solution_id = str(candidate.id) if candidate.id is not None else f"s-{uuid4().hex}"
        saved = replace(candidate, id=solution_id)
        with self._lock:
            self._items[solution_id] = saved
        return saved

    def get(self, solution_id: str) -> SolutionCandidate:
        with self._lock:
            try:
                return self._items[str(solution_id)]
            except KeyError:
                raise ValidationError(code="SOLUTION_NOT_FOUND", message=f"Solution {solution_id!r} not found")

    def delete(self, solution_id: str) -> None:
        with self._lock:
            self._items.pop(str(solution_id), None)

    def list_solutions(self) -> List[SolutionCandidate]:
        with self._lock:
            return list(self._items.values())

    def search_by_tag(self, tag_type: str, tag_value: str) -> List[SolutionCandidate]:
        """按标签（topic / difficulty / language）精确查找。"""

        with self._lock:
            return [
                s for s in self._items.values()
                if any(t.tag_type == tag_type and t.tag_value == tag_value for t in s.tags)
            ]
