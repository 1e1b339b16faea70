from .engine import ExecutionEngine
from .process_engine import ManagedProcess, ProcessEngine
from .staging import staged_payload
from .types import ExecutionOptions, ExecutionRequest, ExecutionResult

__all__ = [
    "ExecutionEngine",
    "ExecutionOptions",
    "ExecutionRequest",
    "ExecutionResult",
    "ManagedProcess",
    "ProcessEngine",
    "staged_payload",
]
