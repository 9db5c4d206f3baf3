"""Build — owns one task graph and drives it through its lifecycle.

configure -> evaluate (after_evaluate callbacks) -> plan (ordering, then
when_ready callbacks) -> run (Executor). Each phase runs at most once;
asking for a later phase runs the earlier ones first.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from .dag import Task, TaskGraph, TaskRegistry, TaskRule
from .errors import GraphFrozenError, TaskExecutionError
from .executor import BuildResult, Executor
from .overrides import ExecutionGraphHook, GraphFinalizer, OverrideRule
from .predicates import CaseInsensitiveSubstring, Predicate

logger = logging.getLogger(__name__)


class Build:
    def __init__(
        self,
        name: str = "build",
        description: str = "",
        rules: Iterable[OverrideRule] = (),
        continue_on_failure: bool = False,
        max_workers: int = 1,
    ):
        self.name = name
        self.description = description
        self.registry = TaskRegistry()
        self.graph = TaskGraph(self.registry)
        self.rules: list[OverrideRule] = list(rules)
        self.continue_on_failure = continue_on_failure
        self.max_workers = max_workers
        self._finalizer = GraphFinalizer()
        self._hook = ExecutionGraphHook()
        self._after_evaluate: list[Callable[[TaskRegistry], None]] = [
            lambda registry: self._finalizer.apply(self.rules, registry)
        ]
        self._when_ready: list[Callable[[list[Task]], None]] = [
            lambda ordered: self._hook.apply(self.rules, ordered)
        ]
        self._evaluated = False
        self._plan: list[Task] | None = None
        self._plan_targets: list[str] | None = None
        self._result: BuildResult | None = None

    # --- configuration ---

    def task(
        self,
        name: str,
        depends_on: Iterable[str] = (),
        action: Callable[[], object] | None = None,
        description: str = "",
    ) -> Task:
        return self.registry.register(name, depends_on, action, description)

    def task_rule(self, prefix: str, factory: Callable[[str], dict], description: str = "") -> TaskRule:
        rule = TaskRule(prefix=prefix, factory=factory, description=description)
        self.registry.add_rule(rule)
        return rule

    def disable(self, pattern: str | Predicate) -> OverrideRule:
        """Add a disable rule. A plain string matches as a case-insensitive substring."""
        predicate = CaseInsensitiveSubstring(pattern) if isinstance(pattern, str) else pattern
        rule = OverrideRule(predicate)
        self.rules.append(rule)
        return rule

    def after_evaluate(self, callback: Callable[[TaskRegistry], None]) -> Callable[[TaskRegistry], None]:
        """Register a callback run once configuration is complete. Usable as a decorator."""
        self._after_evaluate.append(callback)
        return callback

    def when_ready(self, callback: Callable[[list[Task]], None]) -> Callable[[list[Task]], None]:
        """Register a callback run once the execution order is known. Usable as a decorator."""
        self._when_ready.append(callback)
        return callback

    # --- lifecycle ---

    def evaluate(self) -> None:
        if self._evaluated:
            return
        self.graph.validate()
        for callback in self._after_evaluate:
            callback(self.registry)
        self._evaluated = True
        logger.debug("build %s evaluated: %d tasks", self.name, len(self.registry))

    def plan(self, targets: Iterable[str] | None = None) -> list[Task]:
        """Order the graph for `targets` (default: every task).

        The order is computed once. Asking again for different targets raises
        GraphFrozenError, since the registry is already frozen around the first
        plan.
        """
        wanted = list(targets) if targets is not None else None
        if self._plan is not None:
            if wanted != self._plan_targets:
                raise GraphFrozenError(
                    f"Build '{self.name}' is already planned for "
                    f"{_describe_targets(self._plan_targets)}; "
                    f"cannot re-plan for {_describe_targets(wanted)}",
                    wanted or [],
                )
            return self._plan
        self.evaluate()
        ordered = self.graph.execution_order(wanted)
        for callback in self._when_ready:
            callback(ordered)
        self._plan = ordered
        self._plan_targets = wanted
        self._log_unused_rules()
        return ordered

    def run(self, targets: Iterable[str] | None = None) -> BuildResult:
        ordered = self.plan(targets)
        if self._result is not None:
            return self._result
        self.registry.lock()
        executor = Executor(self.continue_on_failure, self.max_workers)
        try:
            self._result = executor.run(ordered)
        except TaskExecutionError as e:
            self._result = e.result
            raise
        return self._result

    def _log_unused_rules(self) -> None:
        for rule in self.rules:
            if not self.registry.find(rule.predicate):
                logger.debug("override rule matched no task: %s", rule.describe())


def _describe_targets(targets: list[str] | None) -> str:
    return "all tasks" if targets is None else f"targets {targets}"
