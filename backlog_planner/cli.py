from __future__ import annotations

import json
from typing import Any, Callable, Optional

import typer
from rich.console import Console
from rich.table import Table

from backlog_planner.core.analytics.traversal import blockers, critical_path, impact
from backlog_planner.core.config import BacklogConfig, ConfigError, load_config
from backlog_planner.core.errors import (
    BacklogError,
    BacklogLoadError,
    GraphValidationError,
    StaleSnapshotError,
)
from backlog_planner.core.graph.build_graph import build_graph
from backlog_planner.core.io.load_backlog import Backlog, load_backlog
from backlog_planner.core.io.resolve_id import IdResolver
from backlog_planner.core.io.store import update_task_status
from backlog_planner.core.log import setup_logging
from backlog_planner.core.model import TaskGraph
from backlog_planner.core.plan.batches import parallel_batches
from backlog_planner.core.plan.levels import compute_levels, group_by_level
from backlog_planner.core.score.scoring import ready_tasks, score_task, select_next_task
from backlog_planner.core.validate.validate_graph import summarize_report, validate_graph

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console(highlight=False)

FORMAT_HELP = "Output format: text|json"


@app.callback()
def _callback(
    ctx: typer.Context,
    backlog: Optional[str] = typer.Option(None, "--backlog", help="Path to backlog.json (or .yaml)"),
    config: Optional[str] = typer.Option(None, "--config", help="Optional YAML settings file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG|INFO|WARNING|ERROR"),
) -> None:
    """Backlog planner CLI: dependency graph analysis and next-task selection."""
    try:
        cfg = load_config(config, backlog_file=backlog, log_level=log_level)
    except FileNotFoundError:
        _print_errors(
            [
                BacklogLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config}",
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _print_errors([BacklogLoadError(code="E_CONFIG_INVALID", message=str(e), path="config")])
        raise typer.Exit(code=2)

    try:
        setup_logging(cfg.log_level)
    except ValueError as e:
        _print_errors([BacklogLoadError(code="E_CONFIG_INVALID", message=str(e), path="log_level")])
        raise typer.Exit(code=2)
    ctx.obj = cfg


@app.command("validate")
def validate(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Check the dependency graph for cycles, unknown references and isolated tasks."""
    _check_format(format, "validate")
    _, graph = _load(ctx, format, "validate")

    report = validate_graph(graph)
    if format == "json":
        errors: list[BacklogError] = list(report.errors())
        _emit_json(
            "validate",
            ok=report.valid,
            errors=errors,
            result=report.to_dict(),
            exit_code=0 if report.valid else 2,
        )

    typer.echo(summarize_report(report, graph))
    if not report.valid:
        raise typer.Exit(code=2)


@app.command("levels")
def levels(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Show the static dependency level of every task."""
    _check_format(format, "levels")
    _, graph = _load(ctx, format, "levels")

    lv = _run(format, "levels", lambda: compute_levels(graph))
    if format == "json":
        _emit_json("levels", ok=True, errors=[], result={"levels": lv}, exit_code=0)

    if graph.is_empty:
        typer.echo("No tasks in backlog")
        return
    table = Table(title="Dependency levels")
    table.add_column("Level")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Name")
    table.add_column("Depends on")
    for i, ids in enumerate(group_by_level(lv)):
        for tid in ids:
            t = graph.tasks_by_id[tid]
            deps = ", ".join(_label(graph, d) for d in graph.deps[tid])
            table.add_row(str(i), t.label, t.status, t.name, deps)
    console.print(table)


@app.command("batches")
def batches(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Group tasks into waves that could run in parallel, given what is already complete."""
    _check_format(format, "batches")
    _, graph = _load(ctx, format, "batches")

    waves = _run(format, "batches", lambda: parallel_batches(graph))
    if format == "json":
        _emit_json("batches", ok=True, errors=[], result={"batches": waves}, exit_code=0)

    if not waves:
        typer.echo("No tasks in backlog")
        return
    table = Table(title="Parallel execution batches")
    table.add_column("Batch")
    table.add_column("Tasks")
    for i, wave in enumerate(waves, start=1):
        table.add_row(str(i), ", ".join(_label(graph, tid) for tid in wave))
    console.print(table)
    typer.echo("Tasks in the same batch can be executed in parallel")


@app.command("critical-path")
def critical_path_cmd(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Show the longest dependency chain."""
    _check_format(format, "critical-path")
    _, graph = _load(ctx, format, "critical-path")

    cp = _run(format, "critical-path", lambda: critical_path(graph))
    if format == "json":
        _emit_json("critical-path", ok=True, errors=[], result=cp.to_dict(), exit_code=0)

    if cp.fully_parallel:
        typer.echo("No critical path - all tasks can run in parallel")
        return
    typer.echo("Critical path: " + " -> ".join(_label(graph, tid) for tid in cp.path))
    typer.echo(f"Length: {cp.length} tasks")


@app.command("impact")
def impact_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, short id or part of its name"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Show every task downstream of TASK_ID."""
    _check_format(format, "impact")
    backlog, graph = _load(ctx, format, "impact")
    token = _resolve(backlog, task_id)

    rep = _run(format, "impact", lambda: impact(graph, token))
    if format == "json":
        _emit_json("impact", ok=True, errors=[], result=rep.to_dict(), exit_code=0)

    label = _label(graph, rep.task_id)
    if not rep.direct:
        typer.echo(f"No tasks depend on {label}")
        return
    typer.echo("Direct dependents:")
    for tid in rep.direct:
        typer.echo(f"  -> {_describe(graph, tid)}")
    if rep.transitive:
        typer.echo("Transitive dependents:")
        for tid in rep.transitive:
            typer.echo(f"  => {_describe(graph, tid)}")
    typer.echo(f"Changes to {label} affect {rep.total_affected} downstream tasks")


@app.command("blockers")
def blockers_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, short id or part of its name"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Show the dependencies of TASK_ID and whether they are complete."""
    _check_format(format, "blockers")
    backlog, graph = _load(ctx, format, "blockers")
    token = _resolve(backlog, task_id)

    rep = _run(format, "blockers", lambda: blockers(graph, token))
    if format == "json":
        _emit_json("blockers", ok=True, errors=[], result=rep.to_dict(), exit_code=0)

    label = _label(graph, rep.task_id)
    if not rep.blockers:
        typer.echo(f"No blockers - {label} can start immediately")
        return
    for b in rep.blockers:
        mark = "done" if b.status == "COMPLETE" else "wait"
        typer.echo(f"  [{mark}] {_describe(graph, b.task_id)} ({b.status})")
    if rep.ready:
        typer.echo("All dependencies complete - ready to start")
    else:
        typer.echo(f"{rep.blocking_count} blocking tasks remain")


@app.command("score")
def score_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, short id or part of its name"),
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Compute the priority score of TASK_ID."""
    _check_format(format, "score")
    backlog, graph = _load(ctx, format, "score")
    token = _resolve(backlog, task_id)

    sc = _run(format, "score", lambda: score_task(graph, token))
    if format == "json":
        _emit_json("score", ok=True, errors=[], result=sc.to_dict(), exit_code=0)

    parts = " ".join(f"{k}={v}" for k, v in sc.breakdown.items())
    typer.echo(f"{_label(graph, sc.task_id)}: score {sc.score} ({parts})")
    typer.echo("Ready: yes" if sc.ready else "Ready: no")


@app.command("ready")
def ready_cmd(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """List pending tasks whose dependencies are all complete."""
    _check_format(format, "ready")
    _, graph = _load(ctx, format, "ready")

    tasks = _run(format, "ready", lambda: ready_tasks(graph))
    if format == "json":
        result = {
            "tasks": [
                {"task_id": t.id, "short_id": t.short_id, "priority": t.priority, "name": t.name}
                for t in tasks
            ]
        }
        _emit_json("ready", ok=True, errors=[], result=result, exit_code=0)

    if not tasks:
        typer.echo("No ready tasks")
        return
    table = Table(title="Ready tasks")
    table.add_column("Task")
    table.add_column("Priority")
    table.add_column("Name")
    for t in tasks:
        table.add_row(t.label, str(t.priority), t.name)
    console.print(table)


@app.command("next")
def next_cmd(
    ctx: typer.Context,
    format: str = typer.Option("text", "--format", help=FORMAT_HELP),
) -> None:
    """Select the single highest-scoring ready task."""
    _check_format(format, "next")
    _, graph = _load(ctx, format, "next")

    sel = _run(format, "next", lambda: select_next_task(graph))
    if format == "json":
        result: dict[str, Any] = {"task": None, "score": None, "candidates": sel.candidates}
        if sel.task is not None:
            result["task"] = {
                "task_id": sel.task.id,
                "short_id": sel.task.short_id,
                "name": sel.task.name,
                "priority": sel.task.priority,
                "business_value": sel.task.business_value,
                "status": sel.task.status,
            }
            result["score"] = sel.score
        _emit_json("next", ok=True, errors=[], result=result, exit_code=0)

    if sel.task is None:
        typer.echo("No ready tasks")
        return
    typer.echo(f"Next: {_describe(graph, sel.task.id)} (score {sel.score})")


@app.command("update-status")
def update_status_cmd(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task id, short id or part of its name"),
    status: str = typer.Argument(..., help="PENDING|IN_PROGRESS|COMPLETE|CANCELLED|BLOCKED"),
    reason: str = typer.Option("Status update", "--reason"),
    actor: Optional[str] = typer.Option(None, "--actor", help="Defaults to the configured actor"),
    expected_revision: Optional[int] = typer.Option(
        None,
        "--expected-revision",
        help="Refuse the write if the backlog revision moved since this value",
    ),
) -> None:
    """Append a status transition to a task's history."""
    cfg: BacklogConfig = ctx.obj
    try:
        task = update_task_status(
            cfg.backlog_file,
            task_id,
            status,
            reason=reason,
            actor=actor or cfg.actor,
            expected_revision=expected_revision,
        )
    except (BacklogLoadError, StaleSnapshotError) as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    except BacklogError as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    prev = task.history[-1].previous_value
    typer.echo(f"OK: {task.label} {prev} -> {task.status}")


def _load(ctx: typer.Context, format: str, command: str) -> tuple[Backlog, TaskGraph]:
    cfg: BacklogConfig = ctx.obj
    try:
        backlog = load_backlog(cfg.backlog_file)
    except BacklogLoadError as e:
        if format == "json":
            _emit_json(command, ok=False, errors=[e], result=None, exit_code=1)
        _print_errors([e])
        raise typer.Exit(code=1)
    return backlog, build_graph(backlog.tasks)


def _resolve(backlog: Backlog, token: str) -> str:
    # Unresolvable input is passed through so the query reports TaskNotFound.
    return IdResolver(backlog.tasks).resolve(token) or token


def _run(format: str, command: str, fn: Callable[[], Any]) -> Any:
    try:
        return fn()
    except BacklogError as e:
        if format == "json":
            _emit_json(command, ok=False, errors=[e], result=None, exit_code=2)
        _print_errors([e])
        raise typer.Exit(code=2)


def _check_format(format: str, command: str) -> None:
    if format not in ("text", "json"):
        err = GraphValidationError(
            code=f"E_{command.upper().replace('-', '_')}_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _to_item(e: BacklogError) -> dict:
    source = "load" if isinstance(e, BacklogLoadError) else "graph"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _emit_json(
    command: str,
    *,
    ok: bool,
    errors: list[BacklogError],
    result: Any,
    exit_code: int,
) -> None:
    payload = {
        "tool": "backlog-planner",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
        "result": result,
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _label(graph: TaskGraph, tid: str) -> str:
    task = graph.tasks_by_id.get(tid)
    return task.label if task else tid


def _describe(graph: TaskGraph, tid: str) -> str:
    task = graph.tasks_by_id[tid]
    return f"{task.label}: {task.name}" if task.name else task.label


def _print_errors(errors: list[BacklogError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="backlog-planner")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
