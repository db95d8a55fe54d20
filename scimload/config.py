from __future__ import annotations

import dataclasses
import json
import os
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class ConfigError(Exception):
    """Raised when the harness configuration cannot be loaded or is invalid."""


@dataclass(frozen=True)
class ServerConfig:
    """Identity server endpoint and the super-tenant admin credentials."""

    host: str = "localhost"
    port: int = 9443
    username: str = "admin@wso2.com"
    password: str = "tpass"
    verify_tls: bool = False


@dataclass(frozen=True)
class PayloadConfig:
    """Names used when building roles and users on the server."""

    username_prefix: str = "isTestUser_"
    user_password: str = "Password_1"
    role_name: str = "isTestUserRole"
    tenant_prefix: str = "tenant"


@dataclass(frozen=True)
class ExecutionConfig:
    """Concurrency, workload size and output file locations."""

    thread_count: int = 1
    user_count: int = 1000
    tenant_count: int = 5
    user_start_number: int = 1
    tenant_start_number: int = 1
    ramp_up_period_s: float = 10.0
    request_timeout_s: float = 30.0
    role_creation_delay_s: float = 5.0
    scim_id_csv_path: str = "scimIDs.csv"
    failed_users_csv_path: str = "failedUsers.csv"
    record_scim_ids: bool = False
    dedupe_retries: bool = True


_CAMEL_CASE_SECTIONS = {"test": "payload"}

_CAMEL_CASE_KEYS = {
    "usernamePrefix": "username_prefix",
    "userPassword": "user_password",
    "roleName": "role_name",
    "tenantPrefix": "tenant_prefix",
    "noOfThreads": "thread_count",
    "noOfUsers": "user_count",
    "noOfTenants": "tenant_count",
    "userStartNumber": "user_start_number",
    "tenantStartNumber": "tenant_start_number",
    "rampUpPeriod": "ramp_up_period_s",
    "scimIdCsvPath": "scim_id_csv_path",
    "failedUsersCsvPath": "failed_users_csv_path",
}

# Present in older config files but never read by any run.
_IGNORED_KEYS = frozenset({"loopCount"})


def _normalise_keys(data: dict[str, Any]) -> dict[str, dict[str, Any]]:
    sections: dict[str, dict[str, Any]] = {}
    for name, values in data.items():
        if not isinstance(values, dict):
            raise ConfigError(f"config section {name!r} must be a JSON object")
        section = sections.setdefault(_CAMEL_CASE_SECTIONS.get(name, name), {})
        for key, value in values.items():
            if key in _IGNORED_KEYS:
                continue
            section[_CAMEL_CASE_KEYS.get(key, key)] = value
    return sections


def _check_field_types(section: Any) -> None:
    hints = typing.get_type_hints(type(section))
    for f in dataclasses.fields(section):
        expected = hints[f.name]
        value = getattr(section, f.name)
        if expected is float:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        elif expected is int:
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, expected)
        if not ok:
            raise ConfigError(
                f"{f.name} must be of type {expected.__name__}, got {type(value).__name__} {value!r}"
            )


@dataclass(frozen=True)
class HarnessConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    payload: PayloadConfig = field(default_factory=PayloadConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)

    @property
    def server_url(self) -> str:
        return f"https://{self.server.host}:{self.server.port}"

    def tenant_admin_username(self, tenant_index: int) -> str:
        # admin@wso2.com@tenant11.com
        return f"{self.server.username}@{self.payload.tenant_prefix}{tenant_index}.com"

    def test_username(self, user_index: int) -> str:
        return f"{self.payload.username_prefix}{user_index}"

    def tenant_indices(self) -> range:
        start = self.execution.tenant_start_number
        return range(start, start + self.execution.tenant_count)

    def expected_user_operations(self) -> int:
        return self.execution.user_count * self.execution.tenant_count

    def validate(self) -> "HarnessConfig":
        for section in (self.server, self.payload, self.execution):
            _check_field_types(section)
        execution = self.execution
        if execution.thread_count < 1:
            raise ConfigError(f"thread_count must be >= 1, got {execution.thread_count}")
        if execution.user_count < 0:
            raise ConfigError(f"user_count must be >= 0, got {execution.user_count}")
        if execution.tenant_count < 0:
            raise ConfigError(f"tenant_count must be >= 0, got {execution.tenant_count}")
        if execution.ramp_up_period_s < 0:
            raise ConfigError("ramp_up_period_s must be >= 0")
        if execution.request_timeout_s <= 0:
            raise ConfigError("request_timeout_s must be > 0")
        return self

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HarnessConfig":
        """Build a config from JSON data, accepting the camelCase file layout too."""
        data = _normalise_keys(data)
        try:
            config = cls(
                server=ServerConfig(**data.get("server", {})),
                payload=PayloadConfig(**data.get("payload", {})),
                execution=ExecutionConfig(**data.get("execution", {})),
            )
        except TypeError as exc:
            raise ConfigError(f"invalid configuration: {exc}") from exc
        for section in (config.server, config.payload, config.execution):
            _check_field_types(section)
        return config


def load_config(path: str | os.PathLike[str] | None) -> HarnessConfig:
    """Return the defaults, overlaid with the JSON file at ``path`` when given."""
    if not path:
        return HarnessConfig()
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"failed to read config file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return HarnessConfig.from_dict(data)


def save_config(config: HarnessConfig, path: str | os.PathLike[str]) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
    except OSError as exc:
        raise ConfigError(f"failed to write config file {path}: {exc}") from exc
    return path


def apply_overrides(config: HarnessConfig, **sections: dict[str, Any]) -> HarnessConfig:
    """Replace fields per section, ignoring ``None`` values (flags not given)."""
    replaced: dict[str, Any] = {}
    for section_name, values in sections.items():
        changes = {key: value for key, value in values.items() if value is not None}
        if changes:
            replaced[section_name] = dataclasses.replace(getattr(config, section_name), **changes)
    return dataclasses.replace(config, **replaced) if replaced else config


__all__ = [
    "ConfigError",
    "ServerConfig",
    "PayloadConfig",
    "ExecutionConfig",
    "HarnessConfig",
    "load_config",
    "save_config",
    "apply_overrides",
]
