"""YAML configuration loader for brain-monitor.yaml.

The file is optional: a repository without one gets MonitorConfig()
defaults. A file that exists is validated strictly, and problems raise
ConfigError with a message naming the offending key.

Key functions:
- load_config: Load and validate brain-monitor.yaml from a repository path
- _parse_yaml: Parse YAML content with error handling
- _validate_schema: Reject unknown top-level fields
- _build_config: Convert the parsed dict to MonitorConfig
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from brain_monitor.core.models import Adjustment, TaskCategory
from brain_monitor.domain.config import (
    DEFAULT_GATES,
    ConfigError,
    CoverageSettings,
    GateConfig,
    MonitorConfig,
    SuiteConfig,
    TestsConfig,
    WatchSettings,
    parse_non_negative_number,
)

if TYPE_CHECKING:
    from pathlib import Path

CONFIG_FILE_NAME = "brain-monitor.yaml"

# Fields allowed at the top level of brain-monitor.yaml
_ALLOWED_TOP_LEVEL_FIELDS = frozenset(
    {
        "report_dir",
        "log_dir",
        "package_dirs",
        "max_parallel",
        "gates",
        "tests",
        "coverage",
        "watch",
    }
)

_GATE_NAMES = {
    "typecheck": TaskCategory.TYPECHECK,
    "lint": TaskCategory.LINT,
    "format": TaskCategory.FORMAT,
}
_TESTS_FIELDS = frozenset({"command_template", "timeout", "sequential", "suites"})
_SUITE_FIELDS = frozenset(
    {"target_coverage", "max_retries", "adjustments", "coverage_artifact", "extra_args"}
)
_COVERAGE_FIELDS = frozenset({"target", "artifact"})
_WATCH_FIELDS = frozenset(
    {"interval", "poll_interval", "change_command", "summary_interval"}
)


def load_config(repo_path: Path) -> MonitorConfig:
    """Load and validate brain-monitor.yaml from the repository root.

    Args:
        repo_path: Path to the repository root directory.

    Returns:
        MonitorConfig; defaults when the file does not exist.

    Raises:
        ConfigError: If the file cannot be read, has invalid YAML syntax,
            contains unknown fields, or has invalid values.
    """
    config_file = repo_path / CONFIG_FILE_NAME
    if not config_file.exists():
        return MonitorConfig()

    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(f"Failed to decode {config_file}: {e}") from e
    data = _parse_yaml(content)
    _validate_schema(data)
    return _build_config(data)


def _parse_yaml(content: str) -> dict[str, Any]:
    """Parse YAML content into a dictionary.

    Returns:
        Parsed dictionary. Returns empty dict for empty/null YAML.

    Raises:
        ConfigError: If YAML syntax is invalid or the root is not a mapping.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {CONFIG_FILE_NAME}: {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigError(
            f"{CONFIG_FILE_NAME} must be a YAML mapping, got {type(data).__name__}"
        )

    return data


def _check_fields(data: dict[str, Any], allowed: frozenset[str], where: str) -> None:
    unknown = set(data.keys()) - allowed
    if unknown:
        # str() handles non-string YAML keys (null, integers)
        first_unknown = sorted(str(k) for k in unknown)[0]
        raise ConfigError(f"Unknown field '{first_unknown}' in {where}")


def _validate_schema(data: dict[str, Any]) -> None:
    """Reject unknown top-level fields. Value types are checked while building."""
    _check_fields(data, _ALLOWED_TOP_LEVEL_FIELDS, CONFIG_FILE_NAME)


def _require_mapping(value: object, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _require_str(value: object, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{where} must be a non-empty string")
    return value


def _optional_number(data: dict[str, Any], key: str, where: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    return parse_non_negative_number(value, f"{where}.{key}")


def _parse_int(value: object, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{where} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ConfigError(f"{where} must be non-negative, got {value}")
    return value


def _parse_adjustment(value: object, where: str) -> Adjustment:
    try:
        return Adjustment(value)
    except ValueError:
        valid = ", ".join(a.value for a in Adjustment)
        raise ConfigError(
            f"{where}: unknown adjustment '{value}' (expected one of: {valid})"
        ) from None


def _parse_str_list(value: object, where: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"{where} must be a list, got {type(value).__name__}")
    return tuple(_require_str(item, f"{where}[{i}]") for i, item in enumerate(value))


def _build_gates(value: object) -> MappingProxyType[TaskCategory, GateConfig]:
    data = _require_mapping(value, "gates")
    gates = dict(DEFAULT_GATES)
    for name, gate_value in data.items():
        category = _GATE_NAMES.get(str(name))
        if category is None:
            raise ConfigError(f"Unknown field '{name}' in gates")
        gates[category] = GateConfig.from_value(gate_value, str(name))
    return MappingProxyType(gates)


def _build_suite(script: str, value: object) -> SuiteConfig:
    where = f"tests.suites.{script}"
    data = _require_mapping(value, where)
    _check_fields(data, _SUITE_FIELDS, where)

    max_retries = data.get("max_retries")
    if max_retries is not None:
        max_retries = _parse_int(max_retries, f"{where}.max_retries")

    adjustments = data.get("adjustments")
    if adjustments is not None:
        if not isinstance(adjustments, list):
            raise ConfigError(f"{where}.adjustments must be a list")
        adjustments = frozenset(
            _parse_adjustment(item, f"{where}.adjustments") for item in adjustments
        )

    artifact = data.get("coverage_artifact")
    if artifact is not None:
        artifact = _require_str(artifact, f"{where}.coverage_artifact")

    extra_args: dict[Adjustment, str] = {}
    raw_extra = data.get("extra_args")
    if raw_extra is not None:
        for key, arg in _require_mapping(raw_extra, f"{where}.extra_args").items():
            adjustment = _parse_adjustment(key, f"{where}.extra_args")
            extra_args[adjustment] = _require_str(arg, f"{where}.extra_args.{key}")

    return SuiteConfig(
        target_coverage=_optional_number(data, "target_coverage", where),
        max_retries=max_retries,
        adjustments=adjustments,
        coverage_artifact=artifact,
        extra_args=MappingProxyType(extra_args),
    )


def _build_tests(value: object) -> TestsConfig:
    data = _require_mapping(value, "tests")
    _check_fields(data, _TESTS_FIELDS, "tests")
    defaults = TestsConfig()

    template = defaults.command_template
    if "command_template" in data:
        template = _require_str(data["command_template"], "tests.command_template")
        if "{script}" not in template:
            raise ConfigError("tests.command_template must contain '{script}'")

    timeout = defaults.timeout
    if "timeout" in data:
        timeout = _optional_number(data, "timeout", "tests")

    sequential = defaults.sequential
    if "sequential" in data:
        sequential = frozenset(_parse_str_list(data["sequential"], "tests.sequential"))

    suites = {
        str(script): _build_suite(str(script), suite)
        for script, suite in _require_mapping(
            data.get("suites") or {}, "tests.suites"
        ).items()
    }
    return TestsConfig(
        command_template=template,
        timeout=timeout,
        sequential=sequential,
        suites=MappingProxyType(suites),
    )


def _build_coverage(value: object) -> CoverageSettings:
    data = _require_mapping(value, "coverage")
    _check_fields(data, _COVERAGE_FIELDS, "coverage")
    defaults = CoverageSettings()
    target = _optional_number(data, "target", "coverage")
    artifact = data.get("artifact")
    return CoverageSettings(
        target=defaults.target if target is None else target,
        artifact=(
            defaults.artifact
            if artifact is None
            else _require_str(artifact, "coverage.artifact")
        ),
    )


def _build_watch(value: object) -> WatchSettings:
    data = _require_mapping(value, "watch")
    _check_fields(data, _WATCH_FIELDS, "watch")
    defaults = WatchSettings()
    change_command = data.get("change_command")
    if change_command is not None:
        change_command = _require_str(change_command, "watch.change_command")
    interval = _optional_number(data, "interval", "watch")
    poll_interval = _optional_number(data, "poll_interval", "watch")
    summary_interval = _optional_number(data, "summary_interval", "watch")
    return WatchSettings(
        interval=defaults.interval if interval is None else interval,
        poll_interval=defaults.poll_interval if poll_interval is None else poll_interval,
        change_command=change_command,
        summary_interval=(
            defaults.summary_interval if summary_interval is None else summary_interval
        ),
    )


def _build_config(data: dict[str, Any]) -> MonitorConfig:
    """Convert a validated top-level mapping into MonitorConfig."""
    defaults = MonitorConfig()
    kwargs: dict[str, Any] = {}

    for key in ("report_dir", "log_dir"):
        if data.get(key) is not None:
            kwargs[key] = _require_str(data[key], key)
    if data.get("package_dirs") is not None:
        kwargs["package_dirs"] = _parse_str_list(data["package_dirs"], "package_dirs")
    if data.get("max_parallel") is not None:
        max_parallel = _parse_int(data["max_parallel"], "max_parallel")
        if max_parallel == 0:
            raise ConfigError("max_parallel must be at least 1")
        kwargs["max_parallel"] = max_parallel

    kwargs["gates"] = (
        _build_gates(data["gates"]) if data.get("gates") is not None else defaults.gates
    )
    if data.get("tests") is not None:
        kwargs["tests"] = _build_tests(data["tests"])
    if data.get("coverage") is not None:
        kwargs["coverage"] = _build_coverage(data["coverage"])
    if data.get("watch") is not None:
        kwargs["watch"] = _build_watch(data["watch"])
    return MonitorConfig(**kwargs)
