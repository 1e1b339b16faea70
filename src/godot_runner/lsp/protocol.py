from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import ProtocolError

PROTOCOL_VERSION = "2.0"
_VERSION_KEY = "jsonrpc"


@dataclass(frozen=True, slots=True)
class Envelope:
    """One newline-delimited JSON-RPC message.

    Example:
        ```python
        env = Envelope(id=1, method="textDocument/hover", params={"position": {"line": 0, "character": 0}})
        ```
    """

    id: int | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: Any = None

    @property
    def payload(self) -> Any:
        """Return the response body, preferring `result` over `params`.

        Example:
            ```python
            body = env.payload
            ```
        """
        return self.result if self.result is not None else self.params


def encode_envelope(envelope: Envelope) -> bytes:
    """Serialize an envelope to one UTF-8 JSON line.

    Example:
        ```python
        data = encode_envelope(Envelope(method="initialized", params={}))
        ```
    """
    message: dict[str, Any] = {_VERSION_KEY: PROTOCOL_VERSION}
    if envelope.id is not None:
        message["id"] = envelope.id
    if envelope.method is not None:
        message["method"] = envelope.method
    if envelope.params is not None:
        message["params"] = envelope.params
    if envelope.result is not None:
        message["result"] = envelope.result
    if envelope.error is not None:
        message["error"] = envelope.error
    return (json.dumps(message, separators=(",", ":")) + "\n").encode("utf-8")


def decode_envelope(line: bytes | str) -> Envelope:
    """Parse one received line into an envelope.

    Raises `ProtocolError` when the line is not a JSON object or its fields
    have the wrong types.

    Example:
        ```python
        env = decode_envelope(b'{"jsonrpc":"2.0","id":1,"result":null}')
        ```
    """
    try:
        raw = json.loads(line)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"Malformed frame: {exc}") from exc
    if not isinstance(raw, dict):
        raise ProtocolError("Frame is not a JSON object")
    msg_id = raw.get("id")
    if msg_id is not None and (isinstance(msg_id, bool) or not isinstance(msg_id, int)):
        raise ProtocolError(f"Unsupported id: {msg_id!r}")
    method = raw.get("method")
    if method is not None and not isinstance(method, str):
        raise ProtocolError(f"Unsupported method: {method!r}")
    return Envelope(
        id=msg_id,
        method=method,
        params=raw.get("params"),
        result=raw.get("result"),
        error=raw.get("error"),
    )


def file_uri(path: str, root: str | None = None) -> str:
    """Convert a filesystem path (relative paths resolve against `root`) to a file URI.

    Example:
        ```python
        uri = file_uri("scripts/player.gd", root="/work/game")  # file:///work/game/scripts/player.gd
        ```
    """
    if path.startswith("file://"):
        return path
    candidate = Path(path).expanduser()
    if not candidate.is_absolute() and root:
        candidate = Path(root) / candidate
    return candidate.resolve().as_uri()
