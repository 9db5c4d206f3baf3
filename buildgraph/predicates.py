"""Task-name predicates: Exact, Substring, CaseInsensitiveSubstring, Custom."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Union


def matches(task_id: str, substring: str) -> bool:
    """Case-insensitive containment. Empty substring matches every name."""
    return substring.casefold() in task_id.casefold()


@dataclass(frozen=True)
class Exact:
    value: str

    def __call__(self, task_id: str) -> bool:
        return task_id == self.value

    def describe(self) -> str:
        return f"== {self.value!r}"


@dataclass(frozen=True)
class Substring:
    value: str

    def __call__(self, task_id: str) -> bool:
        return self.value in task_id

    def describe(self) -> str:
        return f"contains {self.value!r}"


@dataclass(frozen=True)
class CaseInsensitiveSubstring:
    value: str

    def __call__(self, task_id: str) -> bool:
        return matches(task_id, self.value)

    def describe(self) -> str:
        return f"icontains {self.value!r}"


@dataclass(frozen=True)
class Custom:
    fn: Callable[[str], bool] = field(compare=False)
    label: str = "custom"

    def __call__(self, task_id: str) -> bool:
        return bool(self.fn(task_id))

    def describe(self) -> str:
        return self.label


Predicate = Union[Exact, Substring, CaseInsensitiveSubstring, Custom]

# Build-file keys for the dict form of a predicate.
_KINDS = {
    "exact": Exact,
    "contains": Substring,
    "icontains": CaseInsensitiveSubstring,
}


def parse_predicate(raw) -> Predicate:
    """Build a predicate from build-file data.

    A bare string is a case-insensitive substring; a single-key mapping picks
    the kind explicitly (`exact`, `contains`, `icontains`).
    """
    if isinstance(raw, str):
        return CaseInsensitiveSubstring(raw)
    if isinstance(raw, dict) and len(raw) == 1:
        kind, value = next(iter(raw.items()))
        if kind in _KINDS and isinstance(value, str):
            return _KINDS[kind](value)
    raise ValueError(
        f"Invalid predicate {raw!r}: expected a string or one of "
        f"{sorted(_KINDS)} mapped to a string"
    )
