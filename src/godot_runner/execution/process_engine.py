from __future__ import annotations

import asyncio
import codecs
import logging
import os
from typing import Mapping

from .types import NO_EXIT_CODE, TIMEOUT_ERROR, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)

_READ_CHUNK = 4096


class ManagedProcess:
    """One live OS process owned by a single `ProcessEngine.execute` call.

    The process makes exactly one terminal transition (`exited` or
    `timed_out`) and `supervise` produces exactly one result for it.

    Example:
        ```python
        managed = ManagedProcess(proc, capture_output=True, grace_seconds=2)
        result = await managed.supervise(timeout_seconds=30)
        ```
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        capture_output: bool,
        grace_seconds: float,
    ) -> None:
        """Wrap a freshly spawned process.

        Example:
            ```python
            managed = ManagedProcess(proc, capture_output=True, grace_seconds=2)
            ```
        """
        self._process = process
        self._capture_output = capture_output
        self._grace_seconds = grace_seconds
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self.state = "running"

    @property
    def pid(self) -> int:
        """Return the OS process id.

        Example:
            ```python
            pid = managed.pid
            ```
        """
        return self._process.pid

    @property
    def output(self) -> str:
        """Return standard output accumulated so far.

        Example:
            ```python
            text = managed.output
            ```
        """
        return "".join(self._stdout)

    @property
    def error_output(self) -> str:
        """Return standard error accumulated so far.

        Example:
            ```python
            text = managed.error_output
            ```
        """
        return "".join(self._stderr)

    async def supervise(self, timeout_seconds: float) -> ExecutionResult:
        """Wait for exit or timeout, tear the process down, and build the result.

        Example:
            ```python
            result = await managed.supervise(timeout_seconds=5)
            ```
        """
        try:
            code = await asyncio.wait_for(self._wait_for_close(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            self.state = "timed_out"
            logger.warning("Process %s timed out after %ss", self.pid, timeout_seconds)
            await self._terminate()
            return ExecutionResult(
                success=False,
                output=self.output,
                error=TIMEOUT_ERROR,
                exit_code=NO_EXIT_CODE,
                timed_out=True,
            )
        finally:
            if self.state == "running" and self._process.returncode is None:
                # Caller cancelled us; never leave the child behind.
                await asyncio.shield(self._terminate())

        self.state = "exited"
        stderr = self.error_output
        logger.debug("Process %s exited with %s", self.pid, code)
        return ExecutionResult(
            success=code == 0,
            output=self.output,
            error=stderr or None,
            exit_code=code,
        )

    async def _wait_for_close(self) -> int:
        """Drain both output streams, then reap the process.

        Example:
            ```python
            code = await managed._wait_for_close()
            ```
        """
        pumps = []
        if self._capture_output:
            if self._process.stdout is not None:
                pumps.append(self._pump(self._process.stdout, self._stdout))
            if self._process.stderr is not None:
                pumps.append(self._pump(self._process.stderr, self._stderr))
        if pumps:
            await asyncio.gather(*pumps)
        return await self._process.wait()

    async def _pump(self, stream: asyncio.StreamReader, sink: list[str]) -> None:
        """Append decoded chunks from `stream` to `sink` until end of stream.

        Example:
            ```python
            await managed._pump(proc.stdout, managed._stdout)
            ```
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            sink.append(decoder.decode(chunk))
        tail = decoder.decode(b"", final=True)
        if tail:
            sink.append(tail)

    async def _terminate(self) -> None:
        """Send SIGTERM, escalate to SIGKILL after the grace period, and reap.

        Example:
            ```python
            await managed._terminate()
            ```
        """
        if self._process.returncode is not None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self._process.wait(), timeout=self._grace_seconds)
            return
        except asyncio.TimeoutError:
            logger.warning("Process %s ignored SIGTERM; killing", self.pid)
        try:
            self._process.kill()
        except ProcessLookupError:
            return
        await self._process.wait()


class ProcessEngine:
    """Spawn the configured binary and supervise it until exit or timeout.

    Example:
        ```python
        engine = ProcessEngine("/usr/bin/godot")
        result = await engine.execute(ExecutionRequest(args=("--version",)))
        ```
    """

    def __init__(
        self,
        binary_path: str,
        *,
        extra_env: Mapping[str, str] | None = None,
        terminate_grace_seconds: float = 2.0,
    ) -> None:
        """Initialize an engine bound to one executable.

        Example:
            ```python
            engine = ProcessEngine("/usr/bin/godot", extra_env={"DISPLAY": ":0"})
            ```
        """
        cleaned = binary_path.strip()
        if not cleaned:
            raise ValueError("ProcessEngine requires a non-empty 'binary_path'")
        self._binary_path = cleaned
        self._extra_env = dict(extra_env or {})
        self._grace_seconds = terminate_grace_seconds

    @property
    def binary_path(self) -> str:
        """Return the executable this engine launches.

        Example:
            ```python
            path = engine.binary_path
            ```
        """
        return self._binary_path

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one process to completion, timeout, or spawn failure.

        Example:
            ```python
            result = await engine.execute(ExecutionRequest(args=("--headless", "--quit"), timeout_seconds=10))
            ```
        """
        pipe = asyncio.subprocess.PIPE if request.capture_output else asyncio.subprocess.DEVNULL
        logger.info("Spawning %s %s", self._binary_path, " ".join(request.args))
        try:
            process = await asyncio.create_subprocess_exec(
                self._binary_path,
                *request.args,
                cwd=request.working_directory,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=pipe,
                stderr=pipe,
                env=self._env(),
            )
        except OSError as exc:
            logger.warning("Failed to spawn %s: %s", self._binary_path, exc)
            return ExecutionResult.spawn_failure(str(exc))

        managed = ManagedProcess(
            process,
            capture_output=request.capture_output,
            grace_seconds=self._grace_seconds,
        )
        return await managed.supervise(max(0.0, float(request.timeout_seconds)))

    def _env(self) -> dict[str, str]:
        """Build the child environment: inherited, plus GODOT_PATH and overrides.

        Example:
            ```python
            env = engine._env()
            ```
        """
        env = dict(os.environ)
        env["GODOT_PATH"] = self._binary_path
        env.update(self._extra_env)
        return env
