"""Executor — run ordered tasks, respecting dependencies and enabled flags."""

from __future__ import annotations

import concurrent.futures
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field

from .dag import Task
from .errors import TaskExecutionError

logger = logging.getLogger(__name__)

EXECUTED = "executed"
SKIPPED = "skipped"  # disabled by an override
FAILED = "failed"
BLOCKED = "blocked"  # a dependency failed (continue-on-failure only)
NOT_RUN = "not_run"  # build aborted before the task started

_SATISFIED = {EXECUTED, SKIPPED}


@dataclass
class TaskOutcome:
    name: str
    status: str
    duration_seconds: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error,
        }


@dataclass
class BuildResult:
    order: list[str] = field(default_factory=list)
    outcomes: dict[str, TaskOutcome] = field(default_factory=dict)

    def add(self, outcome: TaskOutcome) -> None:
        self.outcomes[outcome.name] = outcome

    def status(self, name: str) -> str | None:
        outcome = self.outcomes.get(name)
        return outcome.status if outcome else None

    def _with_status(self, status: str) -> list[str]:
        return [n for n in self.order if self.status(n) == status]

    @property
    def executed(self) -> list[str]:
        return self._with_status(EXECUTED)

    @property
    def skipped(self) -> list[str]:
        return self._with_status(SKIPPED)

    @property
    def failed(self) -> list[str]:
        return self._with_status(FAILED)

    @property
    def blocked(self) -> list[str]:
        return self._with_status(BLOCKED)

    @property
    def not_run(self) -> list[str]:
        return self._with_status(NOT_RUN)

    @property
    def success(self) -> bool:
        return all(self.status(n) in _SATISFIED for n in self.order)

    def to_dict(self) -> dict:
        return {
            "status": "success" if self.success else "failed",
            "tasks": [self.outcomes[n].to_dict() for n in self.order if n in self.outcomes],
        }


class Executor:
    """Walk an ordered task list.

    Disabled tasks are skipped and count as satisfied for their dependents.
    With continue_on_failure=False the first failure raises TaskExecutionError
    and nothing new starts; with True, only dependents of the failed task are
    held back. max_workers > 1 runs independent tasks on a thread pool.
    """

    def __init__(self, continue_on_failure: bool = False, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.continue_on_failure = continue_on_failure
        self.max_workers = max_workers

    def run(self, ordered_tasks: list[Task]) -> BuildResult:
        tasks = list(ordered_tasks)
        for task in tasks:
            task.lock()
        result = BuildResult(order=[t.name for t in tasks])
        if self.max_workers == 1:
            failure = self._run_serial(tasks, result)
        else:
            failure = self._run_parallel(tasks, result)
        if failure is not None:
            for task in tasks:
                if task.name not in result.outcomes:
                    result.add(TaskOutcome(task.name, NOT_RUN))
            name, exc = failure
            raise TaskExecutionError(name, exc, result)
        return result

    # --- helpers ---

    def _execute(self, task: Task) -> tuple[TaskOutcome, Exception | None]:
        logger.info("executing %s", task.name)
        start = time.monotonic()
        try:
            if task.action is not None:
                task.action()
        except Exception as e:
            elapsed = time.monotonic() - start
            logger.error("task %s failed: %s", task.name, e)
            return TaskOutcome(task.name, FAILED, elapsed, str(e) or type(e).__name__), e
        return TaskOutcome(task.name, EXECUTED, time.monotonic() - start), None

    def _precheck(self, task: Task, result: BuildResult) -> TaskOutcome | None:
        """Outcome decided without running the action, or None if it should run."""
        unsatisfied = [
            d for d in task.dependencies
            if result.status(d) is not None and result.status(d) not in _SATISFIED
        ]
        if unsatisfied:
            return TaskOutcome(task.name, BLOCKED, error=f"dependency not satisfied: {', '.join(unsatisfied)}")
        if not task.enabled:
            logger.info("skipping %s (disabled)", task.name)
            return TaskOutcome(task.name, SKIPPED)
        return None

    def _run_serial(self, tasks: list[Task], result: BuildResult):
        for task in tasks:
            outcome = self._precheck(task, result)
            if outcome is not None:
                result.add(outcome)
                continue
            outcome, exc = self._execute(task)
            result.add(outcome)
            if exc is not None and not self.continue_on_failure:
                return task.name, exc
        return None

    def _run_parallel(self, tasks: list[Task], result: BuildResult):
        by_name = {t.name: t for t in tasks}
        pending = {t.name: {d for d in t.dependencies if d in by_name} for t in tasks}
        dependents: dict[str, list[str]] = defaultdict(list)
        for task in tasks:
            for dep in pending[task.name]:
                dependents[dep].append(task.name)
        ready = deque(t.name for t in tasks if not pending[t.name])
        failure = None

        def release(name: str) -> None:
            for child in dependents[name]:
                pending[child].discard(name)
                if not pending[child]:
                    ready.append(child)

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            running: dict[concurrent.futures.Future, str] = {}
            while ready or running:
                while ready and failure is None:
                    task = by_name[ready.popleft()]
                    outcome = self._precheck(task, result)
                    if outcome is not None:
                        result.add(outcome)
                        release(task.name)
                        continue
                    running[pool.submit(self._execute, task)] = task.name
                if not running:
                    break
                done, _ = concurrent.futures.wait(
                    running, return_when=concurrent.futures.FIRST_COMPLETED
                )
                for future in done:
                    name = running.pop(future)
                    outcome, exc = future.result()
                    result.add(outcome)
                    if exc is not None and not self.continue_on_failure and failure is None:
                        failure = (name, exc)
                    release(name)
        return failure
