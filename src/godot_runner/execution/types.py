from __future__ import annotations

from dataclasses import dataclass

# Exit code reported when no real exit status exists (spawn error, timeout).
NO_EXIT_CODE = -1
TIMEOUT_ERROR = "Process timed out"


@dataclass(frozen=True, slots=True)
class ExecutionOptions:
    """Per-call options accepted by `GodotExecutor.execute`.

    Example:
        ```python
        options = ExecutionOptions(timeout_seconds=5, capture_output=False)
        ```
    """

    timeout_seconds: float | None = None
    capture_output: bool = True
    working_directory: str | None = None


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """Normalized request sent to an execution engine.

    Example:
        ```python
        req = ExecutionRequest(args=("--version",), working_directory="/work/game")
        ```
    """

    args: tuple[str, ...]
    working_directory: str | None = None
    capture_output: bool = True
    timeout_seconds: float = 30.0


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Normalized result returned by an execution engine, exactly once per request.

    Example:
        ```python
        result = ExecutionResult(success=True, output="4.2.stable\\n", exit_code=0)
        ```
    """

    success: bool
    output: str = ""
    error: str | None = None
    exit_code: int = NO_EXIT_CODE
    timed_out: bool = False

    @classmethod
    def spawn_failure(cls, message: str) -> "ExecutionResult":
        """Build the result reported when the process could not be started.

        Example:
            ```python
            result = ExecutionResult.spawn_failure("No such file or directory")
            ```
        """
        return cls(success=False, output="", error=message, exit_code=NO_EXIT_CODE)
