"""Error hierarchy. Every error names the offending task(s)."""

from __future__ import annotations


class BuildError(ValueError):
    """Base for all buildgraph errors. `task_ids` lists the tasks involved."""

    def __init__(self, message: str, task_ids: list[str] | None = None):
        super().__init__(message)
        self.task_ids = list(task_ids or [])


class DuplicateTaskError(BuildError):
    def __init__(self, name: str):
        super().__init__(f"Task '{name}' is already registered", [name])


class UnknownTaskError(BuildError):
    def __init__(self, name: str, required_by: str | None = None):
        if required_by:
            msg = f"Task '{required_by}' depends on unknown task '{name}'"
            ids = [required_by, name]
        else:
            msg = f"Task '{name}' not found"
            ids = [name]
        super().__init__(msg, ids)


class CycleDetectedError(BuildError):
    def __init__(self, cycle: list[str]):
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}", cycle)
        self.cycle = cycle


class GraphFrozenError(BuildError):
    pass


class TaskExecutionError(BuildError):
    """An enabled task's action raised. `result` holds the partial BuildResult."""

    def __init__(self, task_id: str, cause: BaseException, result=None):
        super().__init__(f"Task '{task_id}' failed: {cause}", [task_id])
        self.task_id = task_id
        self.cause = cause
        self.result = result
