from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml

from backlog_planner.core.errors import BacklogError, StaleSnapshotError, TaskNotFound
from backlog_planner.core.io.load_backlog import parse_backlog, read_document
from backlog_planner.core.io.resolve_id import IdResolver
from backlog_planner.core.model import ALLOWED_STATUSES, Task, now_iso


log = logging.getLogger(__name__)


def update_task_status(
    path: str,
    token: str,
    new_status: str,
    *,
    reason: str = "Status update",
    actor: str = "system",
    expected_revision: Optional[int] = None,
    timestamp: Optional[str] = None,
) -> Task:
    """Append a status transition to one task and write the backlog back.

    Read-modify-write with an atomic rename. When `expected_revision` is given
    the write is refused if someone else bumped the revision since the caller
    took its snapshot; without it the store assumes a single writer.

    Returns the updated task as the next snapshot will see it.
    """

    if new_status not in ALLOWED_STATUSES:
        raise BacklogError(
            code="E_INVALID_STATUS",
            message=f"invalid status: {new_status} (valid: {', '.join(sorted(ALLOWED_STATUSES))})",
            path="status",
        )

    data = read_document(path)
    backlog = parse_backlog(data, file=path)

    if expected_revision is not None and backlog.revision != expected_revision:
        raise StaleSnapshotError(
            code="E_STALE_SNAPSHOT",
            message=(
                f"backlog changed since snapshot (expected revision {expected_revision}, "
                f"found {backlog.revision})"
            ),
            file=path,
            path="revision",
        )

    tid = IdResolver(backlog.tasks).resolve(token)
    if tid is None:
        raise TaskNotFound.of(token)
    current = next(t for t in backlog.tasks if t.id == tid)

    now = timestamp or now_iso()
    updated = current.with_status(new_status, reason=reason, actor=actor, timestamp=now)
    change = updated.history[-1]

    raw = _find_raw_task(data, tid)
    if raw.get("changelog"):
        raw["changelog"].append(change.to_dict())
    else:
        # Persist the synthesized history too, so the log starts with CREATED.
        raw["changelog"] = [c.to_dict() for c in updated.history]
    raw["status"] = new_status
    if new_status == "IN_PROGRESS":
        raw["started_at"] = now
    if new_status == "COMPLETE":
        raw["completed_at"] = now

    data["revision"] = backlog.revision + 1
    data["updated_at"] = now
    _refresh_metrics(data)

    write_document(path, data)
    log.info("%s: %s -> %s (revision %d)", tid, change.previous_value, new_status, data["revision"])
    return updated


def write_document(path: str, data: dict[str, Any]) -> None:
    """Write via a temp file in the same directory, then rename over the original."""

    p = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            if p.suffix.lower() in {".yaml", ".yml"}:
                yaml.safe_dump(data, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2)
                f.write("\n")
        os.replace(tmp, p)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def _find_raw_task(data: dict[str, Any], tid: str) -> dict[str, Any]:
    for epic in data.get("epics", []):
        for feature in epic.get("features", []):
            for raw in feature.get("tasks", []):
                if raw.get("id") == tid:
                    return raw
    raise TaskNotFound.of(tid)  # pragma: no cover


def _refresh_metrics(data: dict[str, Any]) -> None:
    statuses = [
        raw.get("status")
        for epic in data.get("epics", [])
        for feature in epic.get("features", [])
        for raw in feature.get("tasks", [])
    ]
    total = len(statuses)
    completed = sum(1 for s in statuses if s == "COMPLETE")
    metrics = data.setdefault("metrics", {})
    metrics["total_tasks"] = total
    metrics["completed_tasks"] = completed
    metrics["completion_percentage"] = (completed * 100 // total) if total else 0
