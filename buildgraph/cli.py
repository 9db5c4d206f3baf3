"""Click CLI entrypoint — `build <subcommand>`.

JSON output by default, --human for tables, --compact for one line per task.
Exit codes: 0 success (or everything skipped), 1 task failure or bad
configuration, 2 dependency cycle.
"""

from __future__ import annotations

import json
import logging
import sys

import click

from .errors import BuildError, CycleDetectedError, TaskExecutionError

EXIT_FAILURE = 1
EXIT_CYCLE = 2


def _output(data, human: bool = False, compact: bool = False) -> None:
    """Route output: JSON (default), compact (one line per row), or human (tables)."""
    if compact:
        click.echo(_format_compact(data))
    elif human:
        _print_human(data)
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _error(message: str, code: int = EXIT_FAILURE, task_ids: list[str] | None = None) -> None:
    data = {"error": message}
    if task_ids:
        data["task_ids"] = task_ids
    click.echo(json.dumps(data, indent=2, default=str), err=True)
    sys.exit(code)


def _print_table(rows: list[dict]) -> None:
    keys = list(rows[0].keys())
    widths = {k: max(len(k), *(len(_cell(row.get(k))) for row in rows)) for k in keys}
    click.echo("  ".join(k.upper().ljust(widths[k]) for k in keys))
    for row in rows:
        click.echo("  ".join(_cell(row.get(k)).ljust(widths[k]) for k in keys))


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


def _print_human(data) -> None:
    if isinstance(data, list):
        if not data:
            click.echo("(none)")
        elif isinstance(data[0], dict):
            _print_table(data)
        else:
            for item in data:
                click.echo(item)
    elif isinstance(data, dict):
        rows = data.get("tasks")
        for k, v in data.items():
            if k != "tasks":
                click.echo(f"{k}: {v}")
        if rows:
            _print_table(rows)
    else:
        click.echo(data)


def _format_compact(data) -> str:
    """Concise text: `name status` per executed task, `name enabled|disabled` per planned task."""
    if isinstance(data, dict) and "tasks" in data:
        lines = []
        if "status" in data:
            lines.append(f"{data.get('build', '?')}: {data['status']}")
        lines.extend(_format_compact(data["tasks"]).splitlines())
        return "\n".join(lines)
    if isinstance(data, list):
        if not data:
            return "(none)"
        lines = []
        for row in data:
            if not isinstance(row, dict):
                lines.append(str(row))
            elif "status" in row:
                err = f" — {row['error']}" if row.get("error") else ""
                lines.append(f"{row['name']} {row['status']}{err}")
            elif "enabled" in row:
                state = "enabled" if row["enabled"] else "disabled"
                deps = f" ← {', '.join(row['depends_on'])}" if row.get("depends_on") else ""
                lines.append(f"{row['name']} {state}{deps}")
            else:
                lines.append(json.dumps(row, default=str))
        return "\n".join(lines)
    return str(data)


def _load(file_path, build_name):
    """Build file from --file, else --build NAME, else $BUILDGRAPH_FILE, else ./build.yaml."""
    import os

    from buildgraph import load_build, load_build_file

    if file_path:
        return load_build_file(file_path)
    if build_name:
        return load_build(build_name)
    return load_build_file(os.getenv("BUILDGRAPH_FILE") or "build.yaml")


def _env_flag(ctx, name: str) -> bool | None:
    """Boolean env var parsed like a click BOOL (1/0, true/false, yes/no); None when unset."""
    import os

    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return click.BOOL.convert(raw, None, ctx)


def _build_options(f):
    f = click.option("--build", "-b", "build_name", default=None, help="Named build from the builds directory")(f)
    f = click.option("--file", "-f", "file_path", default=None, help="Path to a build file")(f)
    return f


def _task_row(task) -> dict:
    return {
        "name": task.name,
        "enabled": task.enabled,
        "injected": task.injected,
        "depends_on": list(task.dependencies),
    }


@click.group()
@click.option("--human", is_flag=True, help="Human-readable table output")
@click.option("--compact", is_flag=True, help="Compact one-line-per-task output")
@click.option("--verbose", "-v", is_flag=True, help="Log progress to stderr")
@click.option("--log-file", default=None, type=click.Path(dir_okay=False), help="Write debug logs here")
@click.pass_context
def main(ctx, human, compact, verbose, log_file):
    """build — task-graph build runner."""
    from .logging_setup import setup_logging

    ctx.ensure_object(dict)
    ctx.obj["human"] = human
    ctx.obj["compact"] = compact
    setup_logging(console_level=logging.INFO if verbose else logging.WARNING, log_file=log_file)


@main.command("run")
@click.argument("targets", nargs=-1)
@_build_options
@click.option(
    "--continue-on-failure/--abort-on-failure",
    default=None,
    help="Keep running tasks that do not depend on a failed one, or stop at the first failure. "
    "Overrides $BUILDGRAPH_CONTINUE_ON_FAILURE and the build file.",
)
@click.option(
    "--disable-pattern",
    "disable_patterns",
    multiple=True,
    help="Disable tasks whose name contains this (case-insensitive). Repeatable.",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, envvar="BUILDGRAPH_WORKERS", help="Parallel workers")
@click.pass_context
def run(ctx, targets, file_path, build_name, continue_on_failure, disable_patterns, workers):
    """Run TARGETS (default: every task) and their dependencies."""
    try:
        build = _load(file_path, build_name)
        if continue_on_failure is None:
            continue_on_failure = _env_flag(ctx, "BUILDGRAPH_CONTINUE_ON_FAILURE")
        if continue_on_failure is not None:
            build.continue_on_failure = continue_on_failure
        if workers is not None:
            build.max_workers = workers
        for pattern in disable_patterns:
            build.disable(pattern)
        result = build.run(list(targets) or None)
    except CycleDetectedError as e:
        _error(str(e), EXIT_CYCLE, e.task_ids)
        return
    except click.BadParameter as e:
        _error(f"BUILDGRAPH_CONTINUE_ON_FAILURE: {e.format_message()}")
        return
    except TaskExecutionError as e:
        out = {"build": build.name, **e.result.to_dict(), "error": str(e)}
        _output(out, ctx.obj["human"], ctx.obj["compact"])
        sys.exit(EXIT_FAILURE)
    except BuildError as e:
        _error(str(e), EXIT_FAILURE, e.task_ids)
        return
    except (FileNotFoundError, ValueError) as e:
        _error(str(e))
        return

    _output({"build": build.name, **result.to_dict()}, ctx.obj["human"], ctx.obj["compact"])
    if not result.success:
        sys.exit(EXIT_FAILURE)


@main.command("plan")
@click.argument("targets", nargs=-1)
@_build_options
@click.option("--disable-pattern", "disable_patterns", multiple=True, help="Extra disable pattern. Repeatable.")
@click.pass_context
def plan(ctx, targets, file_path, build_name, disable_patterns):
    """Show the execution order with both override passes applied. Runs nothing."""
    try:
        build = _load(file_path, build_name)
        for pattern in disable_patterns:
            build.disable(pattern)
        ordered = build.plan(list(targets) or None)
    except CycleDetectedError as e:
        _error(str(e), EXIT_CYCLE, e.task_ids)
        return
    except BuildError as e:
        _error(str(e), EXIT_FAILURE, e.task_ids)
        return
    except (FileNotFoundError, ValueError) as e:
        _error(str(e))
        return

    out = {"build": build.name, "tasks": [_task_row(t) for t in ordered]}
    _output(out, ctx.obj["human"], ctx.obj["compact"])


@main.command("list-tasks")
@_build_options
@click.pass_context
def list_tasks(ctx, file_path, build_name):
    """List declared tasks in registration order."""
    try:
        build = _load(file_path, build_name)
    except BuildError as e:
        _error(str(e), EXIT_FAILURE, e.task_ids)
        return
    except (FileNotFoundError, ValueError) as e:
        _error(str(e))
        return

    result = [
        {"name": t.name, "description": t.description, "depends_on": list(t.dependencies)}
        for t in build.registry
    ]
    _output(result, ctx.obj["human"], ctx.obj["compact"])


@main.command("list-builds")
@click.pass_context
def list_builds_cmd(ctx):
    """List available named builds."""
    from buildgraph import list_builds

    _output(list_builds(), ctx.obj["human"], ctx.obj["compact"])
