from .config import GodotConfig
from .errors import GodotRunnerError, NotConnectedError, StagingError
from .execution.process_engine import ProcessEngine
from .execution.types import ExecutionOptions, ExecutionResult
from .executor import GodotExecutor
from .lsp.client import LspClient, RpcOutcome
from .lsp.diagnostics import DiagnosticReport, translate_diagnostics

__all__ = [
    "DiagnosticReport",
    "ExecutionOptions",
    "ExecutionResult",
    "GodotConfig",
    "GodotExecutor",
    "GodotRunnerError",
    "LspClient",
    "NotConnectedError",
    "ProcessEngine",
    "RpcOutcome",
    "StagingError",
    "translate_diagnostics",
]
