from __future__ import annotations

import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError


def _default_config_path() -> Path:
    """Return bundled default configuration TOML path.

    Example:
        ```python
        path = _default_config_path()
        ```
    """
    return Path(__file__).with_name("default_config.toml")


def _read_config_toml(path: Path) -> dict[str, Any]:
    """Read configuration TOML and return the `[godot]` table as a dictionary.

    Example:
        ```python
        raw = _read_config_toml(Path("/tmp/godot.toml"))
        ```
    """
    if not path.exists():
        return {
            "lsp_host": "127.0.0.1",
            "lsp_port": 6005,
            "process_timeout_seconds": 30,
            "request_timeout_seconds": 10,
            "initialize_timeout_seconds": 15,
            "terminate_grace_seconds": 2,
            "debug_mode": False,
        }
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    config_obj = raw.get("godot", raw)
    if not isinstance(config_obj, dict):
        raise ConfigError("Config must be a TOML table")
    return config_obj


def _dict_of_str(value: Any, field_name: str) -> dict[str, str]:
    """Validate and normalize a string-to-string mapping field.

    Example:
        ```python
        env = _dict_of_str({"DISPLAY": ":0"}, "extra_env")
        ```
    """
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{field_name}' must be a table of strings")
    out: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(item, str):
            raise ConfigError(f"'{field_name}' must contain only strings")
        out[str(key)] = item
    return out


def default_godot_path(platform: str | None = None) -> str:
    """Return the conventional Godot binary location for a platform.

    Example:
        ```python
        path = default_godot_path("linux")
        ```
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        return "C:\\Program Files\\Godot\\Godot.exe"
    if platform == "darwin":
        return "/Applications/Godot.app/Contents/MacOS/Godot"
    return "/usr/bin/godot"


_DEFAULT_CONFIG_RAW = _read_config_toml(_default_config_path())
DEFAULT_LSP_HOST = str(_DEFAULT_CONFIG_RAW.get("lsp_host", "127.0.0.1"))
DEFAULT_LSP_PORT = int(_DEFAULT_CONFIG_RAW.get("lsp_port", 6005))
DEFAULT_PROCESS_TIMEOUT_SECONDS = float(_DEFAULT_CONFIG_RAW.get("process_timeout_seconds", 30))
DEFAULT_REQUEST_TIMEOUT_SECONDS = float(_DEFAULT_CONFIG_RAW.get("request_timeout_seconds", 10))
DEFAULT_INITIALIZE_TIMEOUT_SECONDS = float(
    _DEFAULT_CONFIG_RAW.get("initialize_timeout_seconds", 15)
)
DEFAULT_TERMINATE_GRACE_SECONDS = float(_DEFAULT_CONFIG_RAW.get("terminate_grace_seconds", 2))
DEFAULT_DEBUG_MODE = bool(_DEFAULT_CONFIG_RAW.get("debug_mode", False))


@dataclass(frozen=True, slots=True)
class GodotConfig:
    """Immutable settings shared by the executor, the language client and the CLI.

    Example:
        ```python
        config = GodotConfig(godot_path="/usr/bin/godot", project_path="/work/game")
        ```
    """

    godot_path: str = field(default_factory=default_godot_path)
    project_path: str = field(default_factory=os.getcwd)
    lsp_host: str = DEFAULT_LSP_HOST
    lsp_port: int = DEFAULT_LSP_PORT
    process_timeout_seconds: float = DEFAULT_PROCESS_TIMEOUT_SECONDS
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    initialize_timeout_seconds: float = DEFAULT_INITIALIZE_TIMEOUT_SECONDS
    terminate_grace_seconds: float = DEFAULT_TERMINATE_GRACE_SECONDS
    scratch_dir: str | None = None
    extra_env: dict[str, str] = field(default_factory=dict)
    debug_mode: bool = DEFAULT_DEBUG_MODE

    @classmethod
    def from_file(cls, config_path: str) -> "GodotConfig":
        """Create a configuration from a TOML file, filling gaps with defaults.

        Example:
            ```python
            config = GodotConfig.from_file("/work/game/godot-runner.toml")
            ```
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        raw = _read_config_toml(path)
        try:
            return cls(
                godot_path=str(raw.get("godot_path") or default_godot_path()),
                project_path=str(raw.get("project_path") or os.getcwd()),
                lsp_host=str(raw.get("lsp_host", DEFAULT_LSP_HOST)),
                lsp_port=int(raw.get("lsp_port", DEFAULT_LSP_PORT)),
                process_timeout_seconds=float(
                    raw.get("process_timeout_seconds", DEFAULT_PROCESS_TIMEOUT_SECONDS)
                ),
                request_timeout_seconds=float(
                    raw.get("request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS)
                ),
                initialize_timeout_seconds=float(
                    raw.get("initialize_timeout_seconds", DEFAULT_INITIALIZE_TIMEOUT_SECONDS)
                ),
                terminate_grace_seconds=float(
                    raw.get("terminate_grace_seconds", DEFAULT_TERMINATE_GRACE_SECONDS)
                ),
                scratch_dir=raw.get("scratch_dir"),
                extra_env=_dict_of_str(raw.get("extra_env"), "extra_env"),
                debug_mode=bool(raw.get("debug_mode", DEFAULT_DEBUG_MODE)),
            )
        except ConfigError:
            raise
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value in {config_path}: {exc}") from exc

    def validate(self) -> list[str]:
        """Return a list of configuration problems; empty when usable.

        Example:
            ```python
            problems = GodotConfig(godot_path="").validate()
            ```
        """
        errors: list[str] = []
        if not self.godot_path:
            errors.append("godot_path is required")
        if not self.project_path:
            errors.append("project_path is required")
        if not 0 < self.lsp_port < 65536:
            errors.append("lsp_port must be between 1 and 65535")
        for name in (
            "process_timeout_seconds",
            "request_timeout_seconds",
            "initialize_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.terminate_grace_seconds < 0:
            errors.append("terminate_grace_seconds must not be negative")
        return errors

    def as_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain dictionary for display.

        Example:
            ```python
            payload = config.as_dict()
            ```
        """
        return {
            "godot_path": self.godot_path,
            "project_path": self.project_path,
            "lsp_host": self.lsp_host,
            "lsp_port": self.lsp_port,
            "process_timeout_seconds": self.process_timeout_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "initialize_timeout_seconds": self.initialize_timeout_seconds,
            "terminate_grace_seconds": self.terminate_grace_seconds,
            "scratch_dir": self.scratch_dir,
            "extra_env": dict(self.extra_env),
            "debug_mode": self.debug_mode,
        }
