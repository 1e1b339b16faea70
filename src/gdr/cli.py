from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter

from godot_runner import GodotConfig, GodotExecutor, LspClient, tools
from godot_runner.errors import ConfigError

_CONSOLE = Console(no_color=False)
_ERR_CONSOLE = Console(stderr=True)


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m gdr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def _configure_logging(verbosity: int) -> None:
    """Route library logs through Rich on stderr at a level chosen by `-v`.

    Example:
        ```python
        _configure_logging(1)  # INFO
        ```
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_ERR_CONSOLE, show_path=False)],
    )


def _add_position_command(sub: Any, name: str, help_text: str) -> None:
    """Register a `<file> <line> <column>` language-server subcommand.

    Example:
        ```python
        _add_position_command(sub, "hover", "Show hover text.")
        ```
    """
    cmd = sub.add_parser(
        name,
        help=help_text,
        description=f"{help_text}\nLine and column are 0-based.",
        formatter_class=_HELP_FORMATTER,
    )
    cmd.add_argument("file")
    cmd.add_argument("line", type=int)
    cmd.add_argument("column", type=int)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for godot-runner operations.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m gdr",
        description=(
            "godot-runner CLI\n"
            "Drive the Godot binary and the running editor's language server."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m gdr version\n"
            "  python -m gdr --project-path ~/games/demo info\n"
            "  python -m gdr code --file snippet.gd\n"
            "  python -m gdr export \"Linux/X11\" build/demo.x86_64\n\n"
            "Language Server Examples:\n"
            "  python -m gdr lsp-status\n"
            "  python -m gdr validate scripts/player.gd\n"
            "  python -m gdr hover scripts/player.gd 12 8"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--config",
        help="Path to a TOML config file with a [godot] table.",
    )
    parser.add_argument("--godot-path", help="Godot executable to launch.")
    parser.add_argument("--project-path", help="Project directory (default: current directory).")
    parser.add_argument("--lsp-port", type=int, help="Language server port (default: 6005).")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Process timeout in seconds (default: 30).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Show INFO logs; repeat for DEBUG.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )
    sub.add_parser("version", help="Print the engine version.", formatter_class=_HELP_FORMATTER)
    sub.add_parser("editor", help="Launch the editor.", formatter_class=_HELP_FORMATTER)
    run_cmd = sub.add_parser(
        "run",
        help="Run the project.",
        description="Run the project's main scene and print its output.",
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument(
        "--debug",
        action="store_true",
        help="Run with --debug (default: debug_mode from the config file).",
    )
    run_cmd.add_argument("--headless", action="store_true", help="Run without a display.")
    sub.add_parser("stop", help="Quit a running project.", formatter_class=_HELP_FORMATTER)
    sub.add_parser("info", help="Show project metadata.", formatter_class=_HELP_FORMATTER)

    script_cmd = sub.add_parser(
        "script",
        help="Run a script file headlessly.",
        formatter_class=_HELP_FORMATTER,
    )
    script_cmd.add_argument("path")

    code_cmd = sub.add_parser(
        "code",
        help="Run inline script source.",
        description=(
            "Run inline script source through a temporary file.\n"
            "The temporary file is always removed afterwards."
        ),
        epilog=(
            "Examples:\n"
            "  python -m gdr code 'extends SceneTree\\nfunc _init():\\n    quit()'\n"
            "  python -m gdr code --file snippet.gd"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    code_src = code_cmd.add_mutually_exclusive_group(required=True)
    code_src.add_argument("source", nargs="?", help="Script source text.")
    code_src.add_argument("--file", help="Read script source from this file.")

    export_cmd = sub.add_parser(
        "export",
        help="Export the project with a preset.",
        formatter_class=_HELP_FORMATTER,
    )
    export_cmd.add_argument("platform")
    export_cmd.add_argument("output")
    sub.add_parser("presets", help="List export presets.", formatter_class=_HELP_FORMATTER)

    exec_cmd = sub.add_parser(
        "exec",
        help="Run the binary with raw arguments.",
        description=(
            "Run the binary with raw arguments.\n"
            "Everything after `exec` is passed through unchanged."
        ),
        epilog="Examples:\n  python -m gdr exec --headless --version",
        formatter_class=_HELP_FORMATTER,
        allow_abbrev=False,
    )
    exec_cmd.set_defaults(args=[])

    validate_cmd = sub.add_parser(
        "validate",
        help="Validate a script through the language server.",
        formatter_class=_HELP_FORMATTER,
    )
    validate_cmd.add_argument("file")
    sub.add_parser(
        "lsp-status",
        help="Check whether the language server accepts connections.",
        formatter_class=_HELP_FORMATTER,
    )
    _add_position_command(sub, "complete", "List completions at a position.")
    _add_position_command(sub, "hover", "Show hover text at a position.")
    _add_position_command(sub, "definition", "Find definitions of the symbol at a position.")
    sub.add_parser("config", help="Show the effective configuration.", formatter_class=_HELP_FORMATTER)

    return parser


def build_config(args: argparse.Namespace) -> GodotConfig:
    """Resolve configuration from an optional file plus CLI overrides.

    Example:
        ```python
        config = build_config(args)
        ```
    """
    config = GodotConfig.from_file(args.config) if args.config else GodotConfig()
    overrides: dict[str, Any] = {}
    if args.godot_path:
        overrides["godot_path"] = args.godot_path
    if args.project_path:
        overrides["project_path"] = str(Path(args.project_path).expanduser())
    if args.lsp_port is not None:
        overrides["lsp_port"] = args.lsp_port
    if args.timeout is not None:
        overrides["process_timeout_seconds"] = args.timeout
    return dataclasses.replace(config, **overrides) if overrides else config


def _print_result(result: tools.ToolResult, title: str) -> int:
    """Render a tool result in a panel and return the exit code.

    Example:
        ```python
        code = _print_result(tools.ToolResult(True, "ok"), "Version")
        ```
    """
    style = "green" if result.success else "red"
    _CONSOLE.print(
        Panel(Text(result.message.rstrip() or "(no output)"), title=title, border_style=style)
    )
    return 0 if result.success else 1


def _print_diagnostics(data: dict[str, Any]) -> None:
    """Render validation diagnostics in a rich table.

    Example:
        ```python
        _print_diagnostics({"file": "a.gd", "errors": [], "warnings": []})
        ```
    """
    table = Table(title=f"Diagnostics: {data['file']}")
    table.add_column("Severity", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Column", justify="right")
    table.add_column("Message")
    for row in [*data["errors"], *data["warnings"]]:
        table.add_row(row["severity"], str(row["line"]), str(row["column"]), row["message"])
    _CONSOLE.print(table)


async def _dispatch(args: argparse.Namespace, config: GodotConfig) -> int:
    """Run the selected subcommand.

    Example:
        ```python
        code = await _dispatch(args, config)
        ```
    """
    if args.command == "config":
        result = tools.get_config(config)
        _CONSOLE.print(Panel.fit(Pretty(result.data), title="Configuration", border_style="cyan"))
        if result.error:
            _CONSOLE.print(Panel.fit(result.error, style="bold yellow"))
        return 0

    if args.command in {"validate", "lsp-status", "complete", "hover", "definition"}:
        client = LspClient(config)
        try:
            if args.command == "lsp-status":
                return _print_result(await tools.check_lsp(client), "Language Server")
            if args.command == "validate":
                result = await tools.validate_script(client, args.file)
                _print_diagnostics(result.data)
                return 0 if result.success else 1
            if args.command == "complete":
                items = await client.get_completions(args.file, args.line, args.column)
                _CONSOLE.print(Panel.fit(Pretty(items), title="Completions", border_style="cyan"))
                return 0
            if args.command == "hover":
                text = await client.get_hover(args.file, args.line, args.column)
                _CONSOLE.print(Panel.fit(Text(text or "(nothing)"), title="Hover", border_style="cyan"))
                return 0
            locations = await client.find_definitions(args.file, args.line, args.column)
            _CONSOLE.print(Panel.fit(Pretty(locations), title="Definitions", border_style="cyan"))
            return 0
        finally:
            await client.disconnect()

    executor = GodotExecutor(config)
    if args.command == "version":
        return _print_result(await tools.get_version(executor), "Version")
    if args.command == "editor":
        return _print_result(await tools.launch_editor(executor), "Editor")
    if args.command == "run":
        return _print_result(
            await tools.run_project(executor, debug=args.debug or None, headless=args.headless), "Run"
        )
    if args.command == "stop":
        return _print_result(await tools.stop_project(executor), "Stop")
    if args.command == "info":
        result = await tools.get_project_info(executor)
        _CONSOLE.print(Panel.fit(Pretty(result.data), title="Project", border_style="cyan"))
        return 0 if result.success else 1
    if args.command == "script":
        return _print_result(await tools.run_script(executor, args.path), "Script")
    if args.command == "code":
        source = args.source
        if args.file:
            try:
                source = Path(args.file).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                _CONSOLE.print(Panel.fit(Text(f"Cannot read {args.file}: {exc}"), style="bold red"))
                return 2
        return _print_result(await tools.run_code(executor, source), "Inline Script")
    if args.command == "export":
        return _print_result(
            await tools.export_project(executor, args.platform, args.output), "Export"
        )
    if args.command == "presets":
        return _print_result(await tools.get_export_presets(executor), "Export Presets")
    if args.command == "exec":
        return _print_result(await tools.execute_args(executor, args.args), "Exec")
    return 2


def parse_cli_args(
    parser: argparse.ArgumentParser, argv: Sequence[str] | None = None
) -> argparse.Namespace:
    """Parse arguments, handing unknown tokens to `exec` and rejecting them elsewhere.

    Example:
        ```python
        args = parse_cli_args(build_parser(), ["exec", "--headless", "--version"])
        # args.args == ["--headless", "--version"]
        ```
    """
    args, extra = parser.parse_known_args(list(argv) if argv is not None else None)
    if args.command == "exec":
        args.args = extra[1:] if extra[:1] == ["--"] else extra
    elif extra:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")
    return args


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `gdr` CLI command handler.

    Example:
        ```python
        code = main(["version"])
        ```
    """
    parser = build_parser()
    args = parse_cli_args(parser, argv)
    _configure_logging(args.verbose)
    try:
        config = build_config(args)
    except ConfigError as exc:
        _CONSOLE.print(Panel.fit(str(exc), style="bold red"))
        return 2
    return asyncio.run(_dispatch(args, config))
