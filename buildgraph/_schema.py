"""Validation constants for the build-file YAML schema."""

REQUIRED_TOP_KEYS = {"name", "tasks"}
VALID_TOP_KEYS = {"name", "description", "inherits", "settings", "disable", "tasks", "task_rules"}
VALID_TASK_KEYS = {"description", "depends_on", "command"}
REQUIRED_RULE_KEYS = {"prefix"}
VALID_RULE_KEYS = {"prefix", "description", "depends_on", "command"}
VALID_SETTINGS_KEYS = {"continue_on_failure", "max_workers"}
