from __future__ import annotations

import asyncio
import contextlib
import logging
import tempfile
import uuid
from pathlib import Path
from typing import AsyncIterator

from ..errors import StagingError

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "godot_runner_"
SCRIPT_SUFFIX = ".gd"


def scratch_path(directory: str | Path | None = None, suffix: str = SCRIPT_SUFFIX) -> Path:
    """Return a fresh, collision-resistant scratch file path.

    Example:
        ```python
        path = scratch_path("/tmp")  # /tmp/godot_runner_<hex>.gd
        ```
    """
    base = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    return base / f"{SCRATCH_PREFIX}{uuid.uuid4().hex}{suffix}"


def _write_exclusive(path: Path, text: str) -> None:
    """Create `path` (failing if it exists) and write `text` as UTF-8.

    Example:
        ```python
        _write_exclusive(Path("/tmp/godot_runner_x.gd"), "extends SceneTree")
        ```
    """
    with path.open("x", encoding="utf-8") as handle:
        handle.write(text)


def _remove(path: Path) -> None:
    """Delete a scratch file, logging instead of raising on failure.

    Example:
        ```python
        _remove(Path("/tmp/godot_runner_x.gd"))
        ```
    """
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove scratch file %s: %s", path, exc)


@contextlib.asynccontextmanager
async def staged_payload(
    text: str,
    *,
    directory: str | Path | None = None,
    suffix: str = SCRIPT_SUFFIX,
) -> AsyncIterator[Path]:
    """Write `text` to a unique scratch file and remove it when the block exits.

    Raises `StagingError` if the file cannot be written; in that case the body
    never runs.

    Example:
        ```python
        async with staged_payload("extends SceneTree\\n") as path:
            await executor.run_script(str(path))
        ```
    """
    path = scratch_path(directory, suffix)
    try:
        await asyncio.to_thread(_write_exclusive, path, text)
    except OSError as exc:
        if not isinstance(exc, FileExistsError):
            _remove(path)
        raise StagingError(f"Failed to write scratch file {path}: {exc}") from exc
    logger.debug("Staged %d chars at %s", len(text), path)
    try:
        yield path
    finally:
        _remove(path)
