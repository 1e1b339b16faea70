from __future__ import annotations

import logging
from typing import Sequence

from .config import GodotConfig
from .errors import StagingError
from .execution.engine import ExecutionEngine
from .execution.process_engine import ProcessEngine
from .execution.staging import staged_payload
from .execution.types import ExecutionOptions, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)


class GodotExecutor:
    """Run the Godot binary against one project with fixed argument templates.

    Each call owns its own process and timer, so one executor may be shared by
    concurrent callers.

    Example:
        ```python
        executor = GodotExecutor(GodotConfig(godot_path="/usr/bin/godot", project_path="/work/game"))
        result = await executor.get_version()
        ```
    """

    def __init__(self, config: GodotConfig, *, engine: ExecutionEngine | None = None) -> None:
        """Initialize an executor from configuration, optionally with a custom engine.

        Example:
            ```python
            executor = GodotExecutor(config, engine=ProcessEngine("/opt/godot/godot"))
            ```
        """
        self._config = config
        self._engine: ExecutionEngine = engine or ProcessEngine(
            config.godot_path,
            extra_env=config.extra_env,
            terminate_grace_seconds=config.terminate_grace_seconds,
        )

    @property
    def config(self) -> GodotConfig:
        """Return the configuration this executor was built with.

        Example:
            ```python
            project = executor.config.project_path
            ```
        """
        return self._config

    async def execute(
        self,
        args: Sequence[str],
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """Run the binary with `args` and return its normalized result.

        Example:
            ```python
            result = await executor.execute(["--version"], ExecutionOptions(timeout_seconds=5))
            ```
        """
        options = options or ExecutionOptions()
        timeout = options.timeout_seconds
        if timeout is None:
            timeout = self._config.process_timeout_seconds
        request = ExecutionRequest(
            args=tuple(args),
            working_directory=options.working_directory or self._config.project_path,
            capture_output=options.capture_output,
            timeout_seconds=timeout,
        )
        return await self._engine.execute(request)

    def _project_args(self, *extra: str) -> list[str]:
        """Prefix `extra` with the `--path <project>` selector.

        Example:
            ```python
            args = executor._project_args("--headless", "--quit")
            ```
        """
        return ["--path", self._config.project_path, *extra]

    async def launch_editor(self) -> ExecutionResult:
        """Open the project in the Godot editor.

        Example:
            ```python
            result = await executor.launch_editor()
            ```
        """
        return await self.execute(self._project_args("-e"))

    async def open_file(self, file_path: str) -> ExecutionResult:
        """Open the editor with `file_path` passed through to the project.

        Example:
            ```python
            result = await executor.open_file("res://player.gd")
            ```
        """
        return await self.execute(self._project_args("-e", "--", file_path))

    async def run_project(
        self, *, debug: bool | None = None, headless: bool = False
    ) -> ExecutionResult:
        """Run the project's main scene.

        `debug=None` falls back to the configured `debug_mode`.

        Example:
            ```python
            result = await executor.run_project(headless=True)
            ```
        """
        args = self._project_args()
        if debug is None:
            debug = self._config.debug_mode
        if debug:
            args.append("--debug")
        if headless:
            args.append("--headless")
        return await self.execute(args)

    async def run_script(self, script_path: str) -> ExecutionResult:
        """Run a script file headlessly against the project.

        Example:
            ```python
            result = await executor.run_script("/work/game/tools/report.gd")
            ```
        """
        return await self.execute(self._project_args("--headless", "--script", script_path))

    async def run_inline_script(self, code: str) -> ExecutionResult:
        """Stage `code` in a scratch file, run it, and delete the file afterwards.

        Example:
            ```python
            result = await executor.run_inline_script("extends SceneTree\\nfunc _init():\\n    quit()\\n")
            ```
        """
        try:
            async with staged_payload(code, directory=self._config.scratch_dir) as path:
                return await self.run_script(str(path))
        except StagingError as exc:
            logger.warning("Inline script not executed: %s", exc)
            return ExecutionResult.spawn_failure(str(exc))

    async def export_project(self, platform: str, output_path: str) -> ExecutionResult:
        """Export the project with a named export preset.

        Example:
            ```python
            result = await executor.export_project("Linux/X11", "build/game.x86_64")
            ```
        """
        return await self.execute(
            self._project_args("--headless", "--export-release", platform, output_path)
        )

    async def get_export_presets(self) -> ExecutionResult:
        """Ask the binary to list the project's export presets.

        Example:
            ```python
            result = await executor.get_export_presets()
            ```
        """
        return await self.execute(self._project_args("--headless", "--export-presets"))

    async def get_version(self) -> ExecutionResult:
        """Query the engine version string.

        Example:
            ```python
            result = await executor.get_version()
            ```
        """
        return await self.execute(["--version"])

    async def quit(self) -> ExecutionResult:
        """Ask a headless instance of the project to quit immediately.

        Example:
            ```python
            result = await executor.quit()
            ```
        """
        return await self.execute(self._project_args("--headless", "--quit"))
