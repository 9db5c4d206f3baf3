"""Override rules and the two passes that apply them.

GraphFinalizer runs once configuration is complete, over the registry.
ExecutionGraphHook runs once the execution order exists, over the ordered
tasks, so tasks injected during ordering are filtered too. Both passes take
the same rule list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .dag import Task, TaskRegistry
from .predicates import CaseInsensitiveSubstring, Predicate, parse_predicate

logger = logging.getLogger(__name__)

DISABLE = "disable"
EFFECTS = {DISABLE}


@dataclass(frozen=True)
class OverrideRule:
    predicate: Predicate
    effect: str = DISABLE

    def __post_init__(self):
        if self.effect not in EFFECTS:
            raise ValueError(f"Unknown override effect '{self.effect}'. Valid: {sorted(EFFECTS)}")

    def describe(self) -> str:
        return f"{self.effect} if name {self.predicate.describe()}"


def rules_from_patterns(patterns: Iterable[str]) -> list[OverrideRule]:
    """Plain patterns: disable any task whose name contains it, case-insensitive."""
    return [OverrideRule(CaseInsensitiveSubstring(p)) for p in patterns]


def rules_from_config(raw: Iterable) -> list[OverrideRule]:
    return [OverrideRule(parse_predicate(item)) for item in raw]


def _disable_matching(rules: list[OverrideRule], tasks: Iterable[Task], pass_name: str) -> list[Task]:
    newly_disabled: list[Task] = []
    tasks = list(tasks)
    for rule in rules:
        for task in tasks:
            if not rule.predicate(task.name):
                continue
            if task.enabled:
                task.disable()
                newly_disabled.append(task)
                logger.info("%s: disabled %s (%s)", pass_name, task.name, rule.describe())
    return newly_disabled


class GraphFinalizer:
    name = "after_evaluate"

    def apply(self, rules: list[OverrideRule], registry: TaskRegistry) -> list[Task]:
        """Disable every registered task matching a rule. Returns the tasks this call disabled."""
        return _disable_matching(rules, registry, self.name)


class ExecutionGraphHook:
    name = "when_ready"

    def apply(self, rules: list[OverrideRule], ordered_tasks: list[Task]) -> list[Task]:
        """Same as GraphFinalizer, over the realized execution order."""
        return _disable_matching(rules, ordered_tasks, self.name)
