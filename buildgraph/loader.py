"""YAML loading, inheritance resolution, and validation for build files."""

from __future__ import annotations

import logging
import subprocess
import warnings
from pathlib import Path

import yaml

from ._schema import (
    REQUIRED_RULE_KEYS,
    REQUIRED_TOP_KEYS,
    VALID_RULE_KEYS,
    VALID_SETTINGS_KEYS,
    VALID_TASK_KEYS,
    VALID_TOP_KEYS,
)
from .build import Build
from .overrides import rules_from_config

logger = logging.getLogger(__name__)


# Search order: env var, ~/.buildgraph/build-files/, bundled with package
def _find_builds_dir() -> Path:
    import os
    import sysconfig

    env = os.getenv("BUILDGRAPH_BUILDS_DIR")
    if env:
        return Path(env)
    user_dir = Path.home() / ".buildgraph" / "build-files"
    if user_dir.exists():
        return user_dir
    shared = Path(sysconfig.get_path("data")) / "share" / "buildgraph" / "build-files"
    if shared.exists():
        return shared
    return Path(__file__).resolve().parent.parent / "build-files"


def _load_yaml(path: Path) -> dict:
    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Build file {path} is not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Build file {path} must contain a mapping, got {type(raw).__name__}")
    return raw


def _build_path(builds_dir: Path, name: str) -> Path:
    filename = f"_{name}.yaml" if name == "base" else f"{name}.yaml"
    return builds_dir / filename


def _merge_tasks(base_tasks: dict, override_tasks: dict | None) -> dict:
    """Deep-merge override tasks into base. Override keys replace base keys per-task."""
    if not override_tasks:
        return dict(base_tasks)
    merged = {}
    for name, base_cfg in base_tasks.items():
        if name in override_tasks:
            merged[name] = {**(base_cfg or {}), **(override_tasks[name] or {})}
        else:
            merged[name] = dict(base_cfg or {})
    for name, cfg in override_tasks.items():
        if name not in merged:
            merged[name] = dict(cfg or {})
    return merged


def _resolve_inheritance(raw: dict, builds_dir: Path, seen: tuple[str, ...] = ()) -> dict:
    """If the build file has `inherits`, load the parent and merge."""
    parent_name = raw.get("inherits")
    if not parent_name:
        return raw
    if parent_name in seen:
        chain = " -> ".join([*seen, parent_name])
        raise ValueError(f"Circular inheritance: {chain}")
    parent_path = _build_path(builds_dir, parent_name)
    if not parent_path.exists():
        raise FileNotFoundError(f"Parent build '{parent_name}' not found at {parent_path}")
    parent_raw = _load_yaml(parent_path)
    _validate_shapes(parent_raw, parent_name)
    parent_raw = _resolve_inheritance(parent_raw, builds_dir, (*seen, parent_name))
    result = {**parent_raw, **raw}
    result["tasks"] = _merge_tasks(parent_raw.get("tasks") or {}, raw.get("tasks"))
    result["settings"] = {**(parent_raw.get("settings") or {}), **(raw.get("settings") or {})}
    result["disable"] = [*(parent_raw.get("disable") or []), *(raw.get("disable") or [])]
    result["task_rules"] = [*(parent_raw.get("task_rules") or []), *(raw.get("task_rules") or [])]
    result.pop("inherits", None)
    return result


def _validate_shapes(raw: dict, name: str) -> None:
    """Container types of the top-level keys, checked per file before inheritance merges them."""
    for key in ("disable", "task_rules"):
        value = raw.get(key)
        if value is not None and not isinstance(value, list):
            raise ValueError(f"Build '{name}': '{key}' must be a list, got {type(value).__name__}")
    for key in ("tasks", "settings"):
        value = raw.get(key)
        if value is not None and not isinstance(value, dict):
            raise ValueError(f"Build '{name}': '{key}' must be a mapping, got {type(value).__name__}")
    settings = raw.get("settings") or {}
    if "continue_on_failure" in settings and not isinstance(settings["continue_on_failure"], bool):
        raise ValueError(f"Build '{name}': 'continue_on_failure' must be true or false")
    workers = settings.get("max_workers", 1)
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ValueError(f"Build '{name}': 'max_workers' must be a positive integer")


def _validate_command(command, where: str) -> None:
    if command is None or isinstance(command, str):
        return
    if isinstance(command, list) and command and all(isinstance(c, str) for c in command):
        return
    raise ValueError(f"{where}: 'command' must be a string or a non-empty list of strings")


def _validate_depends_on(deps, where: str) -> None:
    if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
        raise ValueError(f"{where}: 'depends_on' must be a list of task names")


def _validate(raw: dict, name: str) -> None:
    """Required keys, known keys only, well-formed tasks and rules."""
    missing = REQUIRED_TOP_KEYS - set(raw.keys())
    if missing:
        raise ValueError(f"Build '{name}' missing required keys: {missing}")
    unknown = set(raw.keys()) - VALID_TOP_KEYS
    if unknown:
        raise ValueError(f"Build '{name}' has unknown keys: {unknown}")
    tasks = raw.get("tasks")
    if not tasks or not isinstance(tasks, dict):
        raise ValueError(f"Build '{name}' has no tasks")
    for task_name, cfg in tasks.items():
        where = f"Build '{name}', task '{task_name}'"
        cfg = cfg or {}
        if not isinstance(cfg, dict):
            raise ValueError(f"{where}: task must be a mapping")
        bad = set(cfg.keys()) - VALID_TASK_KEYS
        if bad:
            raise ValueError(f"{where}: unknown keys {bad}")
        _validate_depends_on(cfg.get("depends_on", []), where)
        _validate_command(cfg.get("command"), where)
    for i, cfg in enumerate(raw.get("task_rules") or []):
        where = f"Build '{name}', task rule #{i + 1}"
        if not isinstance(cfg, dict) or REQUIRED_RULE_KEYS - set(cfg.keys()):
            raise ValueError(f"{where}: must be a mapping with a 'prefix'")
        bad = set(cfg.keys()) - VALID_RULE_KEYS
        if bad:
            raise ValueError(f"{where}: unknown keys {bad}")
        _validate_depends_on(cfg.get("depends_on", []), where)
        _validate_command(cfg.get("command"), where)
    settings = raw.get("settings") or {}
    bad = set(settings.keys()) - VALID_SETTINGS_KEYS
    if bad:
        raise ValueError(f"Build '{name}': unknown settings {bad}")


def _command_action(command):
    """Action running `command`: a string goes through the shell, a list is argv."""

    def action():
        logger.debug("running command: %s", command)
        subprocess.run(command, shell=isinstance(command, str), check=True)

    return action


def _substitute(value, fields: dict):
    if isinstance(value, list):
        return [_substitute(v, fields) for v in value]
    if isinstance(value, str):
        for key, replacement in fields.items():
            value = value.replace("{" + key + "}", replacement)
    return value


def _rule_factory(prefix: str, cfg: dict):
    """Factory for a task rule. `{name}` and `{suffix}` are substituted in its fields."""

    def factory(name: str) -> dict:
        fields = {"name": name, "suffix": name[len(prefix):]}
        command = _substitute(cfg.get("command"), fields)
        return {
            "dependencies": _substitute(list(cfg.get("depends_on", [])), fields),
            "action": _command_action(command) if command else None,
            "description": _substitute(cfg.get("description", ""), fields),
        }

    return factory


def _build_from_raw(raw: dict) -> Build:
    settings = raw.get("settings") or {}
    for item in raw.get("disable") or []:
        if item == "":
            warnings.warn(
                f"Build '{raw['name']}': empty disable pattern disables every task",
                stacklevel=2,
            )
    build = Build(
        name=raw["name"],
        description=raw.get("description", ""),
        rules=rules_from_config(raw.get("disable") or []),
        continue_on_failure=bool(settings.get("continue_on_failure", False)),
        max_workers=int(settings.get("max_workers", 1)),
    )
    for task_name, cfg in raw["tasks"].items():
        cfg = cfg or {}
        command = cfg.get("command")
        build.task(
            task_name,
            depends_on=cfg.get("depends_on", []),
            action=_command_action(command) if command else None,
            description=cfg.get("description", ""),
        )
    for cfg in raw.get("task_rules") or []:
        build.task_rule(cfg["prefix"], _rule_factory(cfg["prefix"], cfg), cfg.get("description", ""))
    return build


def load_build_file(path: str | Path) -> Build:
    """Load a build file by path. Parents named by `inherits` live in the same directory."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Build file not found at {path}")
    raw = _load_yaml(path)
    _validate_shapes(raw, raw.get("name", path.stem))
    raw = _resolve_inheritance(raw, path.parent)
    _validate(raw, raw.get("name", path.stem))
    return _build_from_raw(raw)


def load_build(name: str, builds_dir: str | Path | None = None) -> Build:
    """Load a named build file from the builds directory. Resolves inheritance from _base.yaml."""
    builds_path = Path(builds_dir) if builds_dir else _find_builds_dir()
    build_path = _build_path(builds_path, name)
    if not build_path.exists():
        raise FileNotFoundError(f"Build '{name}' not found at {build_path}")
    return load_build_file(build_path)


def list_builds(builds_dir: str | Path | None = None) -> list[str]:
    """List available build names."""
    builds_path = Path(builds_dir) if builds_dir else _find_builds_dir()
    names = []
    for p in sorted(builds_path.glob("*.yaml")):
        name = p.stem
        if name.startswith("_"):
            name = name[1:]
        names.append(name)
    return names
