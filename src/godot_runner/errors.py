from __future__ import annotations


class GodotRunnerError(Exception):
    """Base class for godot-runner errors that are not reported as result values."""


class ConfigError(GodotRunnerError, ValueError):
    """Raised when a configuration file cannot be interpreted."""


class StagingError(GodotRunnerError, OSError):
    """Raised when an inline payload cannot be written to its scratch file."""


class ProtocolError(GodotRunnerError, ValueError):
    """Raised when a received frame is not a valid JSON-RPC envelope."""


class NotConnectedError(GodotRunnerError, RuntimeError):
    """Raised when a request is issued on a client that never opened a connection."""
