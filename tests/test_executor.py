from __future__ import annotations

import asyncio
import os
import stat
from pathlib import Path

import pytest

from godot_runner import ExecutionOptions, ExecutionResult, GodotConfig, GodotExecutor
from godot_runner.execution import ExecutionRequest


class _RecordingEngine:
    def __init__(self, result: ExecutionResult | None = None, raises: Exception | None = None) -> None:
        self.result = result or ExecutionResult(success=True, output="ok", exit_code=0)
        self.raises = raises
        self.requests: list[ExecutionRequest] = []
        self.scripts: list[tuple[Path, str | None]] = []

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        self.requests.append(request)
        if "--script" in request.args:
            script = Path(request.args[request.args.index("--script") + 1])
            self.scripts.append((script, script.read_text(encoding="utf-8") if script.exists() else None))
        if self.raises is not None:
            raise self.raises
        return self.result


@pytest.fixture
def config(tmp_path: Path) -> GodotConfig:
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return GodotConfig(
        godot_path="/usr/bin/godot",
        project_path=str(tmp_path / "game"),
        process_timeout_seconds=12,
        scratch_dir=str(scratch),
    )


def _make(config: GodotConfig, **kwargs) -> tuple[GodotExecutor, _RecordingEngine]:
    engine = _RecordingEngine(**kwargs)
    return GodotExecutor(config, engine=engine), engine


def test_execute_applies_configured_defaults(config: GodotConfig) -> None:
    executor, engine = _make(config)
    asyncio.run(executor.execute(["--version"]))

    request = engine.requests[0]
    assert request.args == ("--version",)
    assert request.working_directory == config.project_path
    assert request.capture_output is True
    assert request.timeout_seconds == 12


def test_execute_honours_options(config: GodotConfig) -> None:
    executor, engine = _make(config)
    options = ExecutionOptions(timeout_seconds=3, capture_output=False, working_directory="/elsewhere")
    asyncio.run(executor.execute(["-e"], options))

    request = engine.requests[0]
    assert request.timeout_seconds == 3
    assert request.capture_output is False
    assert request.working_directory == "/elsewhere"


def test_derived_operations_shape_arguments(config: GodotConfig) -> None:
    executor, engine = _make(config)
    project = config.project_path

    async def scenario() -> None:
        await executor.launch_editor()
        await executor.run_project(debug=True, headless=True)
        await executor.run_script("tools/report.gd")
        await executor.export_project("Linux/X11", "build/game.x86_64")
        await executor.get_export_presets()
        await executor.get_version()
        await executor.quit()
        await executor.open_file("res://player.gd")

    asyncio.run(scenario())

    assert [r.args for r in engine.requests] == [
        ("--path", project, "-e"),
        ("--path", project, "--debug", "--headless"),
        ("--path", project, "--headless", "--script", "tools/report.gd"),
        ("--path", project, "--headless", "--export-release", "Linux/X11", "build/game.x86_64"),
        ("--path", project, "--headless", "--export-presets"),
        ("--version",),
        ("--path", project, "--headless", "--quit"),
        ("--path", project, "-e", "--", "res://player.gd"),
    ]


def test_inline_script_is_staged_and_removed(config: GodotConfig) -> None:
    executor, engine = _make(config)
    result = asyncio.run(executor.run_inline_script("extends SceneTree\n"))

    assert result.success is True
    script, content = engine.scripts[0]
    assert content == "extends SceneTree\n"
    assert script.parent == Path(config.scratch_dir)
    assert not script.exists()


def test_inline_script_removed_after_timeout(config: GodotConfig) -> None:
    timed_out = ExecutionResult(success=False, error="Process timed out", exit_code=-1, timed_out=True)
    executor, engine = _make(config, result=timed_out)
    result = asyncio.run(executor.run_inline_script("loop()"))

    assert result.timed_out is True
    assert not engine.scripts[0][0].exists()


def test_inline_script_removed_when_engine_raises(config: GodotConfig) -> None:
    executor, engine = _make(config, raises=RuntimeError("engine failure"))
    with pytest.raises(RuntimeError, match="engine failure"):
        asyncio.run(executor.run_inline_script("x"))

    assert not engine.scripts[0][0].exists()


def test_inline_script_staging_failure_skips_execution(tmp_path: Path) -> None:
    config = GodotConfig(godot_path="godot", project_path=str(tmp_path), scratch_dir=str(tmp_path / "nope"))
    executor, engine = _make(config)
    result = asyncio.run(executor.run_inline_script("x"))

    assert result.success is False
    assert result.exit_code == -1
    assert "Failed to write scratch file" in (result.error or "")
    assert engine.requests == []


def test_missing_binary_end_to_end(tmp_path: Path) -> None:
    config = GodotConfig(godot_path=str(tmp_path / "no-such-godot"), project_path=str(tmp_path))
    result = asyncio.run(GodotExecutor(config).execute([]))

    assert result.success is False
    assert result.exit_code == -1
    assert result.output == ""
    assert result.error


def _fake_binary(tmp_path: Path, body: str) -> str:
    binary = tmp_path / "fake-godot"
    binary.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR)
    return str(binary)


@pytest.mark.skipif(os.name != "posix", reason="shell script stand-in needs POSIX")
def test_inline_script_runs_through_real_process(tmp_path: Path, config: GodotConfig) -> None:
    # Arguments are: --path <project> --headless --script <file>
    binary = _fake_binary(tmp_path, 'cat "$5"')
    real = GodotConfig(godot_path=binary, project_path=str(tmp_path), scratch_dir=config.scratch_dir)
    result = asyncio.run(GodotExecutor(real).run_inline_script("print('from scratch')"))

    assert result.success is True
    assert result.output == "print('from scratch')"
    assert list(Path(config.scratch_dir).iterdir()) == []


@pytest.mark.skipif(os.name != "posix", reason="shell script stand-in needs POSIX")
def test_inline_script_timeout_removes_scratch_file(tmp_path: Path, config: GodotConfig) -> None:
    binary = _fake_binary(tmp_path, "exec sleep 30")
    real = GodotConfig(
        godot_path=binary,
        project_path=str(tmp_path),
        scratch_dir=config.scratch_dir,
        process_timeout_seconds=0.5,
        terminate_grace_seconds=1,
    )
    result = asyncio.run(GodotExecutor(real).run_inline_script("loop forever"))

    assert result.success is False
    assert result.error == "Process timed out"
    assert result.exit_code == -1
    assert list(Path(config.scratch_dir).iterdir()) == []


def test_run_project_debug_defaults_to_config(tmp_path: Path) -> None:
    config = GodotConfig(godot_path="godot", project_path=str(tmp_path), debug_mode=True)
    executor, engine = _make(config)

    async def scenario() -> None:
        await executor.run_project()
        await executor.run_project(debug=False)

    asyncio.run(scenario())

    project = str(tmp_path)
    assert [r.args for r in engine.requests] == [
        ("--path", project, "--debug"),
        ("--path", project),
    ]
