"""TaskGraph — register tasks, resolve dependencies, compute execution order."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator

from .errors import CycleDetectedError, DuplicateTaskError, GraphFrozenError, UnknownTaskError

logger = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


@dataclass
class Task:
    name: str
    dependencies: list[str] = field(default_factory=list)
    action: Callable[[], object] | None = None
    description: str = ""
    injected: bool = False  # created by a TaskRule during ordering
    _enabled: bool = field(default=True, init=False, repr=False)
    _locked: bool = field(default=False, init=False, repr=False)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def disable(self) -> None:
        self._set_enabled(False)

    def enable(self) -> None:
        self._set_enabled(True)

    def _set_enabled(self, value: bool) -> None:
        if self._locked:
            raise GraphFrozenError(
                f"Task '{self.name}' is locked: execution has started", [self.name]
            )
        self._enabled = value

    def lock(self) -> None:
        self._locked = True


@dataclass
class TaskRule:
    """Creates tasks on demand for unregistered names starting with `prefix`.

    `factory(name)` returns a dict with any of `dependencies`, `action`,
    `description`.
    """

    prefix: str
    factory: Callable[[str], dict]
    description: str = ""

    def claims(self, name: str) -> bool:
        return name.startswith(self.prefix) and len(name) > len(self.prefix)


class TaskRegistry:
    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._rules: list[TaskRule] = []
        self.frozen = False

    def register(
        self,
        name: str,
        dependencies: Iterable[str] = (),
        action: Callable[[], object] | None = None,
        description: str = "",
        *,
        injected: bool = False,
    ) -> Task:
        if self.frozen:
            raise GraphFrozenError(f"Cannot register '{name}': graph is frozen", [name])
        if name in self._tasks:
            raise DuplicateTaskError(name)
        task = Task(
            name=name,
            dependencies=list(dependencies),
            action=action,
            description=description,
            injected=injected,
        )
        self._tasks[name] = task
        logger.debug("registered task %s (deps=%s)", name, task.dependencies)
        return task

    def get(self, name: str) -> Task | None:
        return self._tasks.get(name)

    def find(self, predicate: Callable[[str], bool]) -> list[Task]:
        """All tasks whose name satisfies `predicate`, in registration order."""
        return [t for t in self._tasks.values() if predicate(t.name)]

    def names(self) -> list[str]:
        return list(self._tasks)

    def add_rule(self, rule: TaskRule) -> None:
        self._rules.append(rule)

    @property
    def rules(self) -> list[TaskRule]:
        return list(self._rules)

    def rule_for(self, name: str) -> TaskRule | None:
        """First rule claiming `name`, in the order rules were added."""
        for rule in self._rules:
            if rule.claims(name):
                return rule
        return None

    def materialize(self, name: str, rule: TaskRule) -> Task:
        spec = rule.factory(name) or {}
        task = self.register(
            name,
            dependencies=spec.get("dependencies", ()),
            action=spec.get("action"),
            description=spec.get("description", rule.description),
            injected=True,
        )
        logger.info("task rule '%s' injected task %s", rule.prefix, name)
        return task

    def freeze(self) -> None:
        self.frozen = True

    def lock(self) -> None:
        """Lock every enabled flag. Called right before execution starts."""
        for task in self._tasks.values():
            task.lock()

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)


class TaskGraph:
    """Tasks plus dependency edges. Must stay acyclic; frozen once ordered."""

    def __init__(self, registry: TaskRegistry | None = None):
        self.registry = registry if registry is not None else TaskRegistry()

    def validate(self) -> None:
        """Static resolution: every dependency is registered or claimable by a rule."""
        for task in self.registry:
            for dep in task.dependencies:
                if dep not in self.registry and self.registry.rule_for(dep) is None:
                    raise UnknownTaskError(dep, required_by=task.name)

    def _resolve(self, name: str, required_by: str | None) -> Task:
        task = self.registry.get(name)
        if task is not None:
            return task
        rule = self.registry.rule_for(name)
        if rule is None:
            raise UnknownTaskError(name, required_by=required_by)
        return self.registry.materialize(name, rule)

    def execution_order(self, targets: Iterable[str] | None = None) -> list[Task]:
        """Depth-first topological order; dependencies come before dependents.

        Roots are `targets` (default: every registered task, registration
        order). Dependencies are visited in declared order, so the result is
        deterministic. Unregistered names are injected through task rules.
        Freezes the registry.
        """
        roots = list(targets) if targets is not None else self.registry.names()
        state: dict[str, int] = {}
        order: list[Task] = []

        for root in roots:
            if state.get(root) == _DONE:
                continue
            task = self._resolve(root, None)
            state[root] = _VISITING
            # (task, iterator over its remaining dependencies); names form the cycle path
            stack = [(task, iter(task.dependencies))]
            while stack:
                current, deps = stack[-1]
                dep = next(deps, None)
                if dep is None:
                    stack.pop()
                    state[current.name] = _DONE
                    order.append(current)
                    continue
                mark = state.get(dep)
                if mark == _DONE:
                    continue
                if mark == _VISITING:
                    path = [t.name for t, _ in stack]
                    raise CycleDetectedError(path[path.index(dep):] + [dep])
                child = self._resolve(dep, current.name)
                state[dep] = _VISITING
                stack.append((child, iter(child.dependencies)))
        self.registry.freeze()
        return order
