"""buildgraph — task-graph build engine with name-pattern task disabling."""

from .build import Build
from .dag import Task, TaskGraph, TaskRegistry, TaskRule
from .errors import (
    BuildError,
    CycleDetectedError,
    DuplicateTaskError,
    GraphFrozenError,
    TaskExecutionError,
    UnknownTaskError,
)
from .executor import BuildResult, Executor, TaskOutcome
from .loader import list_builds, load_build, load_build_file
from .overrides import ExecutionGraphHook, GraphFinalizer, OverrideRule, rules_from_patterns
from .predicates import CaseInsensitiveSubstring, Custom, Exact, Substring, matches

__all__ = [
    "Build",
    "Task",
    "TaskGraph",
    "TaskRegistry",
    "TaskRule",
    "BuildError",
    "CycleDetectedError",
    "DuplicateTaskError",
    "GraphFrozenError",
    "TaskExecutionError",
    "UnknownTaskError",
    "BuildResult",
    "Executor",
    "TaskOutcome",
    "list_builds",
    "load_build",
    "load_build_file",
    "ExecutionGraphHook",
    "GraphFinalizer",
    "OverrideRule",
    "rules_from_patterns",
    "CaseInsensitiveSubstring",
    "Custom",
    "Exact",
    "Substring",
    "matches",
]
