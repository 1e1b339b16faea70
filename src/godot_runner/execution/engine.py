from __future__ import annotations

from typing import Protocol

from .types import ExecutionRequest, ExecutionResult


class ExecutionEngine(Protocol):
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute one request and return its normalized result.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(args=("--version",)))
            ```
        """
        ...
