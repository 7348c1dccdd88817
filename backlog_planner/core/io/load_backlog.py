from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from backlog_planner.core.errors import BacklogLoadError
from backlog_planner.core.model import ALLOWED_STATUSES, StatusChange, Task


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Backlog:
    """A read-only snapshot of the task store.

    `tasks` is flattened epic -> feature -> task in document order; each task
    carries its epic's business value.
    """

    project_name: Optional[str]
    revision: int
    tasks: list[Task] = field(default_factory=list)
    file: Optional[str] = None


def read_document(path: str) -> dict[str, Any]:
    """Read the raw backlog document (.json, .yaml or .yml)."""

    p = Path(path)
    if not p.exists():
        raise BacklogLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BacklogLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix == ".json":
            data = json.loads(raw_text)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        else:
            raise BacklogLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .json and .yaml/.yml",
                file=str(p),
            )
    except BacklogLoadError:
        raise
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        code = "E_JSON_PARSE" if suffix == ".json" else "E_YAML_PARSE"
        raise BacklogLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise BacklogLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )
    return data


def load_backlog(path: str) -> Backlog:
    data = read_document(path)
    return parse_backlog(data, file=str(Path(path)))


def parse_backlog(data: dict[str, Any], *, file: Optional[str] = None) -> Backlog:
    revision = data.get("revision", 0)
    if not isinstance(revision, int) or isinstance(revision, bool):
        raise _invalid(file, "revision", "revision must be an integer")

    epics = data.get("epics", [])
    if not isinstance(epics, list):
        raise _invalid(file, "epics", "epics must be an array")

    tasks: list[Task] = []
    for ei, epic in enumerate(epics):
        epic_path = f"epics[{ei}]"
        if not isinstance(epic, dict):
            raise _invalid(file, epic_path, "epic must be an object")
        business_value = epic.get("business_value") or "medium"
        if not isinstance(business_value, str):
            raise _invalid(file, f"{epic_path}.business_value", "business_value must be a string")

        features = epic.get("features", [])
        if not isinstance(features, list):
            raise _invalid(file, f"{epic_path}.features", "features must be an array")
        for fi, feature in enumerate(features):
            feat_path = f"{epic_path}.features[{fi}]"
            if not isinstance(feature, dict):
                raise _invalid(file, feat_path, "feature must be an object")
            raw_tasks = feature.get("tasks", [])
            if not isinstance(raw_tasks, list):
                raise _invalid(file, f"{feat_path}.tasks", "tasks must be an array")
            for ti, raw in enumerate(raw_tasks):
                tasks.append(_parse_task(raw, f"{feat_path}.tasks[{ti}]", business_value, file))

    project_name = data.get("project_name")
    log.debug("loaded %d tasks (revision %d) from %s", len(tasks), revision, file or "<memory>")
    return Backlog(
        project_name=project_name if isinstance(project_name, str) else None,
        revision=revision,
        tasks=tasks,
        file=file,
    )


def _parse_task(raw: Any, path: str, business_value: str, file: Optional[str]) -> Task:
    if not isinstance(raw, dict):
        raise _invalid(file, path, "task must be an object")

    tid = raw.get("id")
    if not isinstance(tid, str) or not tid.strip():
        raise BacklogLoadError(
            code="E_REQUIRED_FIELD",
            message="id is required and must be a non-empty string",
            file=file,
            path=f"{path}.id",
        )

    short_id = raw.get("short_id") or ""
    if not isinstance(short_id, str):
        raise _invalid(file, f"{path}.short_id", "short_id must be a string")

    deps = raw.get("depends_on") or []
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise _invalid(file, f"{path}.depends_on", "depends_on must be an array of strings")

    priority = raw.get("priority", 3)
    if not isinstance(priority, int) or isinstance(priority, bool) or not 1 <= priority <= 5:
        raise BacklogLoadError(
            code="E_INVALID_ENUM",
            message="priority must be an integer from 1 (highest) to 5 (lowest)",
            file=file,
            path=f"{path}.priority",
        )

    stored_status = raw.get("status", "PENDING")
    if stored_status not in ALLOWED_STATUSES:
        raise BacklogLoadError(
            code="E_INVALID_ENUM",
            message=f"status must be one of {sorted(ALLOWED_STATUSES)}",
            file=file,
            path=f"{path}.status",
        )

    effort = raw.get("effort")
    name = raw.get("name")

    history = _parse_history(raw, path, file)
    if not history:
        history = _synthesize_history(raw, stored_status)
    elif history[-1].new_value != stored_status:
        log.warning(
            "%s: stored status %s disagrees with history (%s); using history",
            tid,
            stored_status,
            history[-1].new_value,
        )

    return Task(
        id=tid,
        short_id=short_id,
        depends_on=tuple(deps),
        priority=priority,
        business_value=business_value,
        name=name if isinstance(name, str) else "",
        effort=effort if isinstance(effort, dict) else None,
        history=history,
    )


def _parse_history(raw: dict[str, Any], path: str, file: Optional[str]) -> tuple[StatusChange, ...]:
    changelog = raw.get("changelog") or []
    if not isinstance(changelog, list):
        raise _invalid(file, f"{path}.changelog", "changelog must be an array")

    out: list[StatusChange] = []
    for i, entry in enumerate(changelog):
        if not isinstance(entry, dict):
            raise _invalid(file, f"{path}.changelog[{i}]", "changelog entry must be an object")
        new_value = _status_of(entry.get("new_value"))
        if new_value is None:
            # Not a status transition (e.g. a field edit); it has no bearing on status.
            continue
        out.append(
            StatusChange(
                timestamp=str(entry.get("timestamp") or ""),
                action=str(entry.get("action") or "STATUS_CHANGED"),
                previous_value=_status_of(entry.get("previous_value")),
                new_value=new_value,
                reason=str(entry.get("reason") or ""),
                actor=str(entry.get("actor") or "system"),
            )
        )
    return tuple(out)


def _synthesize_history(raw: dict[str, Any], stored_status: str) -> tuple[StatusChange, ...]:
    ts = str(raw.get("created_at") or "")
    created = StatusChange(
        timestamp=ts,
        action="CREATED",
        previous_value=None,
        new_value="PENDING",
        reason="Initial creation",
        actor=str(raw.get("actor") or "architect"),
    )
    if stored_status == "PENDING":
        return (created,)
    imported = StatusChange(
        timestamp=ts,
        action="STATUS_CHANGED",
        previous_value="PENDING",
        new_value=stored_status,
        reason="Imported without history",
        actor="system",
    )
    return (created, imported)


def _status_of(value: Any) -> Optional[str]:
    # CREATED entries store {"status": "PENDING"}; transitions store the bare status.
    if isinstance(value, dict):
        value = value.get("status")
    if isinstance(value, str) and value in ALLOWED_STATUSES:
        return value
    return None


def _invalid(file: Optional[str], path: str, message: str) -> BacklogLoadError:
    return BacklogLoadError(code="E_INVALID_TYPE", message=message, file=file, path=path)
