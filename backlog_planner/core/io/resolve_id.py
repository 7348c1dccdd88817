from __future__ import annotations

from typing import Iterable, Optional

from backlog_planner.core.model import Task


class IdResolver:
    """Resolve human input (full id, short id, or part of a name) to a canonical id.

    Exact ids and short ids are tried first; then a case-insensitive substring
    match on task names, first match in document order.
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self._tasks = list(tasks)
        self._exact: dict[str, str] = {}
        for t in self._tasks:
            if t.short_id:
                self._exact.setdefault(t.short_id, t.id)
        # A canonical id always wins over someone else's short id.
        for t in self._tasks:
            self._exact[t.id] = t.id

    def __call__(self, token: str) -> Optional[str]:
        return self.resolve(token)

    def resolve(self, token: str) -> Optional[str]:
        token = token.strip()
        if not token:
            return None
        hit = self._exact.get(token)
        if hit is not None:
            return hit
        query = token.lower()
        for t in self._tasks:
            if t.name and query in t.name.lower():
                return t.id
        return None
