"""
Configuration management for pveups.

Two layers:

* ``Settings`` uses Pydantic's BaseSettings to read process-level settings
  (file locations, NUT credentials, logging) from environment variables.
* ``OrchestratorConfig`` is the declarative shutdown configuration
  (timings, defaults and per-guest overrides) stored as YAML. It is parsed
  strictly: unknown keys and invalid values are rejected. Action names are
  the exception; see ``OrchestratorConfig.unsupported_actions``.

The old shell-style ``/etc/proxmox-ups-shutdown.conf`` can be converted
with ``parse_legacy_config``; it is parsed line by line and never executed.
"""
import re
from pathlib import Path
from types import MappingProxyType
from typing import Annotated, Any, Dict, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pveups.inventory.models import SUPPORTED_ACTIONS, Action, WorkloadKind
from pveups.nut.models import parse_ups_identifier
from pveups.utils.timeparse import parse_duration


class Settings(BaseSettings):
    """
    Process settings.

    These settings are loaded from environment variables.
    """

    CONFIG_FILE: str = "/etc/pveups/config.yaml"
    LOCK_FILE: str = "/run/pveups.lock"

    # NUT credentials (optional, upsd allows anonymous reads by default)
    NUT_USERNAME: str | None = None
    NUT_PASSWORD: str | None = None
    NUT_TIMEOUT: float = 5.0

    # Logging
    LOG_DIR: str | None = "/var/log/pveups"
    LOG_RETENTION_DAYS: int = 7
    SYSLOG_ENABLED: bool = True
    SYSLOG_TAG: str = "PVE-UPS"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        env_prefix="PVEUPS_",
        extra="ignore",
    )


settings = Settings()


class ConfigError(Exception):
    """Raised when the orchestrator configuration cannot be loaded."""
    pass


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TimingConfig(_Strict):
    """Delays of the shutdown sequence, in seconds."""

    power_failure_wait: int = 300
    action_delay: int = 1
    shutdown_timeout: int = 20
    sync_after_action: bool = True

    @field_validator("power_failure_wait", "action_delay", "shutdown_timeout", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> int:
        return parse_duration(value)


def _action_name(value: Any) -> Any:
    if isinstance(value, Action):
        return value.value
    if isinstance(value, str):
        return value.strip().lower()
    return value


# Action names are kept as written; an unknown name falls back to shutdown
# when it is executed, so a typo never blocks a run
ActionName = Annotated[str, BeforeValidator(_action_name), Field(min_length=1)]


class DefaultsConfig(_Strict):
    """Kind-level priority and action for guests without an override."""

    vm_priority: int = 50
    ct_priority: int = 50
    vm_action: ActionName = Action.SHUTDOWN.value
    ct_action: ActionName = Action.SHUTDOWN.value

    def priority_for(self, kind: WorkloadKind) -> int:
        return self.vm_priority if kind is WorkloadKind.VM else self.ct_priority

    def action_for(self, kind: WorkloadKind) -> str:
        return self.vm_action if kind is WorkloadKind.VM else self.ct_action


class GuestOverride(_Strict):
    """Per-guest priority and/or action. Missing values use the defaults."""

    priority: Optional[int] = None
    action: Optional[ActionName] = None


class OverridesConfig(_Strict):
    vm: Dict[int, GuestOverride] = Field(default_factory=dict)
    ct: Dict[int, GuestOverride] = Field(default_factory=dict)


OverrideTable = Mapping[Tuple[WorkloadKind, int], GuestOverride]


class OrchestratorConfig(_Strict):
    """
    Shutdown orchestrator configuration.

    Loaded once at startup and never modified during a run.
    """

    ups_identifier: str = "myups@localhost"
    proceed_on_unknown: bool = False
    boost_low_battery_threshold: float = Field(20, ge=0, le=100)
    dry_run_host: bool = False
    timing: TimingConfig = Field(default_factory=TimingConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    overrides: OverridesConfig = Field(default_factory=OverridesConfig)

    @field_validator("ups_identifier")
    @classmethod
    def _valid_identifier(cls, value: str) -> str:
        parse_ups_identifier(value)
        return value.strip()

    def override_table(self) -> OverrideTable:
        """Immutable (kind, id) -> override mapping for the plan builder."""
        table = {}
        for workload_id, override in self.overrides.vm.items():
            table[(WorkloadKind.VM, workload_id)] = override
        for workload_id, override in self.overrides.ct.items():
            table[(WorkloadKind.CT, workload_id)] = override
        return MappingProxyType(table)

    def unsupported_actions(self) -> List[str]:
        """
        Configured actions the guest kind does not support, as
        ``location=value`` strings. These run as a graceful shutdown.
        """
        found = []
        for kind in (WorkloadKind.VM, WorkloadKind.CT):
            known = {action.value for action in SUPPORTED_ACTIONS[kind]}
            default = self.defaults.action_for(kind)
            if default not in known:
                found.append(f"defaults.{kind.value}_action={default}")
            for workload_id, override in sorted(getattr(self.overrides, kind.value).items()):
                if override.action is not None and override.action not in known:
                    found.append(f"overrides.{kind.value}.{workload_id}.action={override.action}")
        return found


def _format_validation_error(source: str, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{location}: {item['msg']}")
    return f"Invalid configuration in {source}: " + "; ".join(problems)


def parse_config(text: str, source: str = "<string>") -> OrchestratorConfig:
    """
    Parse YAML configuration text.

    Raises:
        ConfigError: On malformed YAML, unknown keys or invalid values.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Malformed YAML in {source}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid configuration in {source}: top level must be a mapping")

    try:
        return OrchestratorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(source, e)) from e


def load_config(path: Optional[Union[str, Path]] = None) -> OrchestratorConfig:
    """
    Load the orchestrator configuration.

    A missing file yields the built-in defaults.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed.
    """
    config_path = Path(path or settings.CONFIG_FILE)
    if not config_path.exists():
        return OrchestratorConfig()
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {config_path}: {e}") from e
    return parse_config(text, str(config_path))


def dump_config(config: OrchestratorConfig) -> str:
    """Serialize a configuration to YAML accepted by ``parse_config``."""
    data = config.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


# Legacy shell configuration

_LEGACY_SCALARS = {
    "UPS_IDENTIFIER": ("ups_identifier",),
    "PROCEED_ON_UNKNOWN": ("proceed_on_unknown",),
    "BOOST_LOW_BATT_THRESHOLD": ("boost_low_battery_threshold",),
    "DRY_RUN": ("dry_run_host",),
    "DRY_RUN_HOST_ONLY": ("dry_run_host",),
    "POWER_FAILURE_WAIT_TIME": ("timing", "power_failure_wait"),
    "ACTION_DELAY": ("timing", "action_delay"),
    "SHUTDOWN_TIMEOUT": ("timing", "shutdown_timeout"),
    "SYNC_AFTER_ACTION": ("timing", "sync_after_action"),
    "DEFAULT_VM_PRIORITY": ("defaults", "vm_priority"),
    "DEFAULT_CT_PRIORITY": ("defaults", "ct_priority"),
    "DEFAULT_VM_ACTION": ("defaults", "vm_action"),
    "DEFAULT_CT_ACTION": ("defaults", "ct_action"),
}

# Settings of the old toolkit that are environment-level here
_LEGACY_IGNORED = {"LOG_TAG", "LOG_DIR", "LOG_RETENTION_DAYS", "CONFIG_FILE"}

_LEGACY_TABLES = {
    "VM_PRIORITY": ("vm", "priority"),
    "VM_ACTIONS": ("vm", "action"),
    "CT_PRIORITY": ("ct", "priority"),
    "CT_ACTIONS": ("ct", "action"),
}

_ASSIGNMENT = re.compile(r"^([A-Z_][A-Z0-9_]*)(?:\[(['\"]?)([0-9]+)\2\])?=(.*)$")
_DECLARE = re.compile(r"^declare\s+-A\s+([A-Z_][A-Z0-9_ ]*)$")


_QUOTED = re.compile(r"""^(["'])(.*?)\1\s*(?:#.*)?$""")


def _unquote(value: str) -> str:
    value = value.strip()
    quoted = _QUOTED.match(value)
    if quoted:
        return quoted.group(2)
    # Drop a trailing comment on unquoted values
    return re.split(r"\s+#", value, maxsplit=1)[0].strip()


def parse_legacy_config(text: str, source: str = "<legacy>") -> OrchestratorConfig:
    """
    Convert a shell-style configuration from the old toolkit.

    Only plain ``KEY=value`` assignments, ``declare -A`` lines and the
    ``VM_PRIORITY[id]=n`` style table entries are understood.

    Raises:
        ConfigError: On an unknown key or a line that is not understood.
    """
    data: Dict[str, Any] = {}
    overrides: Dict[str, Dict[int, Dict[str, str]]] = {"vm": {}, "ct": {}}

    for line_no, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        declare = _DECLARE.match(line)
        if declare:
            unknown = [name for name in declare.group(1).split() if name not in _LEGACY_TABLES]
            if unknown:
                raise ConfigError(f"{source}:{line_no}: unknown table {unknown[0]}")
            continue

        match = _ASSIGNMENT.match(line)
        if not match:
            raise ConfigError(f"{source}:{line_no}: cannot parse line: {line}")

        key, _, index, value = match.groups()
        value = _unquote(value)

        if index is not None:
            if key not in _LEGACY_TABLES:
                raise ConfigError(f"{source}:{line_no}: unknown table {key}")
            kind, field = _LEGACY_TABLES[key]
            overrides[kind].setdefault(int(index), {})[field] = value
        elif key in _LEGACY_SCALARS:
            target = data
            path = _LEGACY_SCALARS[key]
            for part in path[:-1]:
                target = target.setdefault(part, {})
            target[path[-1]] = value
        elif key in _LEGACY_IGNORED:
            continue
        else:
            raise ConfigError(f"{source}:{line_no}: unknown setting {key}")

    if overrides["vm"] or overrides["ct"]:
        data["overrides"] = overrides

    try:
        return OrchestratorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(source, e)) from e
