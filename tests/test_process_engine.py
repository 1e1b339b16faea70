from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from godot_runner import ProcessEngine
from godot_runner.execution import ExecutionRequest

ENGINE = ProcessEngine(sys.executable, terminate_grace_seconds=1)


def run_python(code: str, *, timeout: float = 10.0, capture: bool = True, cwd: str | None = None, engine=ENGINE):
    request = ExecutionRequest(
        args=("-c", code),
        working_directory=cwd,
        capture_output=capture,
        timeout_seconds=timeout,
    )
    return asyncio.run(engine.execute(request))


def _assert_gone(pid: int) -> None:
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_zero_exit_is_success() -> None:
    result = run_python("print('hello')")

    assert result.success is True
    assert result.exit_code == 0
    assert result.error is None
    assert result.timed_out is False
    assert "hello" in result.output


def test_nonzero_exit_keeps_code_and_stderr() -> None:
    result = run_python("import sys\nsys.stdout.write('partial')\nsys.stderr.write('boom')\nsys.exit(3)")

    assert result.success is False
    assert result.exit_code == 3
    assert result.output == "partial"
    assert result.error == "boom"


def test_timeout_terminates_process_and_keeps_partial_output() -> None:
    code = "import os, time\nprint(os.getpid(), flush=True)\ntime.sleep(30)"
    started = time.monotonic()
    result = run_python(code, timeout=1.5)
    elapsed = time.monotonic() - started

    assert result.success is False
    assert result.timed_out is True
    assert result.exit_code == -1
    assert result.error == "Process timed out"
    assert elapsed < 10
    _assert_gone(int(result.output.split()[0]))


def test_timeout_escalates_when_sigterm_is_ignored() -> None:
    code = (
        "import os, signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print(os.getpid(), flush=True)\n"
        "time.sleep(30)"
    )
    result = run_python(code, timeout=1.5)

    assert result.timed_out is True
    assert result.exit_code == -1
    _assert_gone(int(result.output.split()[0]))


def test_capture_disabled_returns_empty_output() -> None:
    result = run_python("print('not collected')", capture=False)

    assert result.success is True
    assert result.output == ""
    assert result.error is None


def test_spawn_failure_reports_error_without_process() -> None:
    engine = ProcessEngine("/nonexistent/path/to/godot")
    result = asyncio.run(engine.execute(ExecutionRequest(args=())))

    assert result.success is False
    assert result.exit_code == -1
    assert result.output == ""
    assert result.error
    assert result.timed_out is False


def test_working_directory_is_honoured(tmp_path: Path) -> None:
    result = run_python("import os\nprint(os.getcwd())", cwd=str(tmp_path))

    assert result.success is True
    assert os.path.realpath(result.output.strip()) == os.path.realpath(tmp_path)


def test_environment_carries_binary_path_and_overrides() -> None:
    engine = ProcessEngine(sys.executable, extra_env={"GODOT_RUNNER_MARK": "on"})
    result = run_python(
        "import os\nprint(os.environ['GODOT_PATH'])\nprint(os.environ['GODOT_RUNNER_MARK'])",
        engine=engine,
    )

    assert result.output.split() == [sys.executable, "on"]


def test_invalid_utf8_is_replaced() -> None:
    result = run_python("import sys\nsys.stdout.buffer.write(b'\\xff ok')")

    assert result.success is True
    assert result.output == "\ufffd ok"


def test_concurrent_executions_are_independent() -> None:
    async def scenario():
        return await asyncio.gather(
            *[
                ENGINE.execute(
                    ExecutionRequest(
                        args=("-c", f"import time\ntime.sleep(0.{3 - i})\nprint('run-{i}')"),
                        timeout_seconds=10,
                    )
                )
                for i in range(3)
            ]
        )

    results = asyncio.run(scenario())

    assert [r.output.strip() for r in results] == ["run-0", "run-1", "run-2"]
    assert all(r.success for r in results)


def test_cancelled_execution_reaps_child(tmp_path: Path) -> None:
    pid_file = tmp_path / "pid"
    code = f"import os, time\nopen({str(pid_file)!r}, 'w').write(str(os.getpid()))\ntime.sleep(30)"

    async def scenario() -> int:
        task = asyncio.create_task(
            ENGINE.execute(ExecutionRequest(args=("-c", code), timeout_seconds=30))
        )
        deadline = time.monotonic() + 10
        while not pid_file.exists() or not pid_file.read_text():
            assert time.monotonic() < deadline
            await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return int(pid_file.read_text())

    _assert_gone(asyncio.run(scenario()))


def test_engine_requires_binary_path() -> None:
    with pytest.raises(ValueError, match="binary_path"):
        ProcessEngine("  ")
