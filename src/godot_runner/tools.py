from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Sequence

from .config import GodotConfig
from .execution.types import ExecutionResult
from .executor import GodotExecutor
from .lsp.client import LspClient

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

LSP_HINT = "Enable LSP in Godot editor: Editor > Editor Settings > Network > Language Server"

PROJECT_INFO_SCRIPT = """extends SceneTree
func _init():
    var info = {
        "project_path": ProjectSettings.globalize_path("res://"),
        "name": "Unknown",
        "engine_version": Engine.get_version_info()["string"],
        "version_major": Engine.get_version_info()["major"],
        "version_minor": Engine.get_version_info()["minor"],
        "version_patch": Engine.get_version_info()["patch"],
        "debug_build": Engine.is_debug_build()
    }
    var cfg = ConfigFile.new()
    if cfg.load("res://project.godot") == OK:
        info["name"] = cfg.get_value("application", "config/name", "Unknown")
        if cfg.has_section_key("application", "config/icon"):
            info["icon"] = cfg.get_value("application", "config/icon", "")
        if cfg.has_section_key("application", "config/description"):
            info["description"] = cfg.get_value("application", "config/description", "")
    print(JSON.stringify(info))
    quit()
"""


@dataclass(slots=True)
class ToolResult:
    """Caller-facing outcome of one tool operation.

    Example:
        ```python
        result = ToolResult(success=True, message="Project stopped")
        ```
    """

    success: bool
    message: str
    data: Any = None
    error: str | None = None


def extract_json_object(text: str) -> Any | None:
    """Parse the first `{...}` span embedded in process output, or return None.

    Example:
        ```python
        info = extract_json_object('Godot Engine v4.2\\n{"name": "Demo"}\\n')  # {"name": "Demo"}
        ```
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return None
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError:
        return None


def _status(result: ExecutionResult, ok_message: str) -> ToolResult:
    """Map a process result to a fixed success message or a `Failed: ...` message.

    Example:
        ```python
        tool = _status(result, "Project stopped")
        ```
    """
    if result.success:
        return ToolResult(True, ok_message, data=result.output or None)
    return ToolResult(False, f"Failed: {result.error}", data=result.output or None, error=result.error)


def _echo(result: ExecutionResult, fallback: str) -> ToolResult:
    """Surface the process output (or its error) as the message.

    Example:
        ```python
        tool = _echo(result, "Executed")
        ```
    """
    message = result.output or result.error or fallback
    return ToolResult(result.success, message, data=result.exit_code, error=result.error)


async def launch_editor(executor: GodotExecutor) -> ToolResult:
    """Launch the editor for the configured project.

    Example:
        ```python
        tool = await launch_editor(executor)
        ```
    """
    return _status(await executor.launch_editor(), "Godot editor launched successfully")


async def run_project(
    executor: GodotExecutor, *, debug: bool | None = None, headless: bool = False
) -> ToolResult:
    """Run the project, echoing its output when there is any.

    Example:
        ```python
        tool = await run_project(executor, headless=True)
        ```
    """
    result = await executor.run_project(debug=debug, headless=headless)
    if result.output:
        return ToolResult(result.success, result.output, error=result.error)
    return _status(result, "Project running")


async def stop_project(executor: GodotExecutor) -> ToolResult:
    """Ask a running project to quit.

    Example:
        ```python
        tool = await stop_project(executor)
        ```
    """
    return _status(await executor.quit(), "Project stopped")


async def get_version(executor: GodotExecutor) -> ToolResult:
    """Report the installed engine version.

    Example:
        ```python
        tool = await get_version(executor)  # tool.message == "4.2.1.stable.official"
        ```
    """
    result = await executor.get_version()
    message = result.output.strip() or result.error or "Unknown version"
    return ToolResult(result.success, message, error=result.error)


async def get_project_info(executor: GodotExecutor) -> ToolResult:
    """Collect project metadata by running a probe script inside the engine.

    Example:
        ```python
        tool = await get_project_info(executor)
        name = tool.data["name"]
        ```
    """
    result = await executor.run_inline_script(PROJECT_INFO_SCRIPT)
    info = extract_json_object(result.output)
    if not isinstance(info, dict):
        info = {"project_path": executor.config.project_path, "name": "Unknown"}
        return ToolResult(False, json.dumps(info, indent=2), data=info, error=result.error)
    return ToolResult(True, json.dumps(info, indent=2), data=info)


async def run_script(executor: GodotExecutor, script_path: str) -> ToolResult:
    """Run a script file and echo what it printed.

    Example:
        ```python
        tool = await run_script(executor, "tools/report.gd")
        ```
    """
    return _echo(await executor.run_script(script_path), "Executed")


async def run_code(executor: GodotExecutor, code: str) -> ToolResult:
    """Run inline script source and echo what it printed.

    Example:
        ```python
        tool = await run_code(executor, "extends SceneTree\\nfunc _init():\\n    print(1)\\n    quit()\\n")
        ```
    """
    return _echo(await executor.run_inline_script(code), "Executed")


async def export_project(executor: GodotExecutor, platform: str, output_path: str) -> ToolResult:
    """Export the project with one preset.

    Example:
        ```python
        tool = await export_project(executor, "Linux/X11", "build/game.x86_64")
        ```
    """
    return _status(
        await executor.export_project(platform, output_path), f"Exported to {output_path}"
    )


async def get_export_presets(executor: GodotExecutor) -> ToolResult:
    """List export presets known to the project.

    Example:
        ```python
        tool = await get_export_presets(executor)
        ```
    """
    result = await executor.get_export_presets()
    return ToolResult(result.success, result.output or "No presets found", error=result.error)


async def execute_args(executor: GodotExecutor, raw_args: str | Sequence[str]) -> ToolResult:
    """Run the binary with raw arguments, given as one whitespace-separated string or a list.

    Example:
        ```python
        tool = await execute_args(executor, "--headless --version")
        tool = await execute_args(executor, ["--path", "/work/my game", "--headless", "--quit"])
        ```
    """
    args = raw_args.split() if isinstance(raw_args, str) else list(raw_args)
    return _echo(await executor.execute(args), "Executed")


async def validate_script(client: LspClient, file_path: str) -> ToolResult:
    """Validate a script through the language server.

    Example:
        ```python
        tool = await validate_script(client, "scripts/player.gd")
        ```
    """
    report = await client.validate_file(file_path)
    data = {
        "file": file_path,
        "valid": report.valid,
        "errors": [asdict(item) for item in report.errors],
        "warnings": [asdict(item) for item in report.warnings],
    }
    return ToolResult(report.valid, json.dumps(data, indent=2), data=data)


async def check_lsp(client: LspClient) -> ToolResult:
    """Probe the language server with a full handshake, then disconnect.

    Example:
        ```python
        tool = await check_lsp(client)
        ```
    """
    connected = await client.connect()
    await client.disconnect()
    if connected:
        return ToolResult(True, "LSP connected")
    return ToolResult(False, f"LSP not connected. {LSP_HINT}")


def get_config(config: GodotConfig) -> ToolResult:
    """Report the effective configuration.

    Example:
        ```python
        tool = get_config(config)
        ```
    """
    data = config.as_dict()
    problems = config.validate()
    return ToolResult(not problems, json.dumps(data, indent=2), data=data, error="; ".join(problems) or None)
