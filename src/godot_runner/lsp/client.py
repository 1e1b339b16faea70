from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable

from ..config import GodotConfig
from ..errors import NotConnectedError, ProtocolError
from .diagnostics import DiagnosticReport, translate_diagnostics
from .protocol import Envelope, decode_envelope, encode_envelope, file_uri
from .results import (
    CompletionReply,
    DefinitionReply,
    DiagnosticsReply,
    HoverReply,
    parse_completion_reply,
    parse_definition_reply,
    parse_diagnostics_reply,
    parse_hover_reply,
)

logger = logging.getLogger(__name__)

_STREAM_LIMIT = 16 * 1024 * 1024
REQUEST_TIMEOUT_ERROR = "Request timeout"

NotificationHandler = Callable[[Any], None]


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    INITIALIZED = "initialized"


@dataclass(frozen=True, slots=True)
class RpcOutcome:
    """Result of one request: a payload, a timeout, or an error message.

    Example:
        ```python
        outcome = await client.request("textDocument/hover", params)
        if outcome.ok:
            print(outcome.result)
        ```
    """

    result: Any = None
    timed_out: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return True when the peer answered without an error.

        Example:
            ```python
            if outcome.ok: ...
            ```
        """
        return not self.timed_out and self.error is None


class _RequestTimedOut(Exception):
    pass


class _ConnectionClosed(Exception):
    pass


def _error_text(error: Any) -> str:
    """Render a JSON-RPC error member as a message.

    Example:
        ```python
        text = _error_text({"code": -32601, "message": "Method not found"})
        ```
    """
    if isinstance(error, dict) and "message" in error:
        code = error.get("code")
        return f"{error['message']} (code {code})" if code is not None else str(error["message"])
    return str(error)


class LspClient:
    """Newline-delimited JSON-RPC client for the Godot editor's language server.

    One socket and one reader task serve every in-flight request; responses are
    matched to callers by correlation id and each request has its own timer.

    Example:
        ```python
        async with LspClient(GodotConfig(project_path="/work/game")) as client:
            report = await client.validate_file("player.gd")
        ```
    """

    def __init__(
        self,
        config: GodotConfig,
        *,
        host: str | None = None,
        port: int | None = None,
        max_frame_bytes: int = _STREAM_LIMIT,
    ) -> None:
        """Initialize a disconnected client.

        Frames longer than `max_frame_bytes` are dropped by the reader.

        Example:
            ```python
            client = LspClient(config, port=6008)
            ```
        """
        self._config = config
        self._host = host or config.lsp_host
        self._port = port if port is not None else config.lsp_port
        self._max_frame_bytes = max_frame_bytes
        self._state = ConnectionState.DISCONNECTED
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._pending: dict[int, asyncio.Future[Envelope]] = {}
        self._next_id = 0
        self._attempted = False
        self._connect_lock = asyncio.Lock()
        self._handlers: dict[str, list[NotificationHandler]] = {}

    @property
    def state(self) -> ConnectionState:
        """Return the current connection state.

        Example:
            ```python
            state = client.state
            ```
        """
        return self._state

    @property
    def pending_count(self) -> int:
        """Return how many requests are awaiting a response.

        Example:
            ```python
            waiting = client.pending_count
            ```
        """
        return len(self._pending)

    async def __aenter__(self) -> "LspClient":
        """Connect on entry; the client is returned even if the handshake failed.

        Example:
            ```python
            async with LspClient(config) as client: ...
            ```
        """
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        """Disconnect on exit.

        Example:
            ```python
            async with LspClient(config) as client: ...
            ```
        """
        await self.disconnect()

    def is_connected(self) -> bool:
        """Return True when the handshake completed and the socket is open.

        Example:
            ```python
            if not client.is_connected():
                await client.connect()
            ```
        """
        return (
            self._state is ConnectionState.INITIALIZED
            and self._writer is not None
            and not self._writer.is_closing()
        )

    async def connect(self) -> bool:
        """Open the socket and perform the initialize handshake.

        Returns True once initialized (immediately if already initialized) and
        False on any failure, leaving the client disconnected.

        Example:
            ```python
            ok = await client.connect()
            ```
        """
        if self.is_connected():
            return True
        async with self._connect_lock:
            if self.is_connected():
                return True
            self._attempted = True
            self._state = ConnectionState.CONNECTING
            try:
                connected = await self._handshake()
            finally:
                if self._state is not ConnectionState.INITIALIZED:
                    await self.disconnect()
            return connected

    async def _handshake(self) -> bool:
        """Open the socket, send `initialize`, then `initialized`.

        Example:
            ```python
            ok = await client._handshake()
            ```
        """
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port, limit=self._max_frame_bytes),
                timeout=self._config.initialize_timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.info("Language server unavailable at %s:%s: %s", self._host, self._port, exc)
            return False

        self._reader, self._writer = reader, writer
        self._next_id = 0
        self._pending = {}
        self._reader_task = asyncio.create_task(self._read_loop(reader), name="godot-lsp-reader")

        outcome = await self._call(
            "initialize",
            {
                "processId": os.getpid(),
                "rootUri": file_uri(self._config.project_path),
                "capabilities": {},
            },
            self._config.initialize_timeout_seconds,
        )
        if not outcome.ok:
            logger.warning("Language server handshake failed: %s", outcome.error)
            return False
        try:
            await self._send(Envelope(method="initialized", params={}))
        except (_ConnectionClosed, ConnectionError, OSError) as exc:
            logger.warning("Language server closed during handshake: %s", exc)
            return False
        self._state = ConnectionState.INITIALIZED
        logger.info("Connected to language server at %s:%s", self._host, self._port)
        return True

    async def disconnect(self) -> None:
        """Close the connection and fail every pending request; safe to repeat.

        Example:
            ```python
            await client.disconnect()
            ```
        """
        writer, task = self._detach("Connection closed")
        if writer is not None:
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait({task})

    def _detach(
        self, reason: str
    ) -> tuple[asyncio.StreamWriter | None, asyncio.Task[None] | None]:
        """Reset to disconnected, abandon pending requests, and close the transport.

        Example:
            ```python
            writer, task = client._detach("peer went away")
            ```
        """
        writer, task = self._writer, self._reader_task
        self._reader = None
        self._writer = None
        self._reader_task = None
        self._state = ConnectionState.DISCONNECTED
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(_ConnectionClosed(reason))
        if pending:
            logger.debug("Abandoned %d pending request(s): %s", len(pending), reason)
        if writer is not None:
            writer.close()
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        return writer, task

    def add_notification_handler(self, method: str, handler: NotificationHandler) -> None:
        """Register `handler(params)` for unsolicited messages named `method`.

        Example:
            ```python
            client.add_notification_handler("textDocument/publishDiagnostics", diagnostics.append)
            ```
        """
        self._handlers.setdefault(method, []).append(handler)

    async def request(
        self,
        method: str,
        params: Any = None,
        timeout: float | None = None,
    ) -> RpcOutcome:
        """Send a request and wait for its response or timeout.

        Raises `NotConnectedError` if `connect()` was never called; every other
        failure is reported in the returned outcome.

        Example:
            ```python
            outcome = await client.request("textDocument/definition", params, timeout=5)
            ```
        """
        if not self._attempted:
            raise NotConnectedError("connect() must be called before request()")
        if timeout is None:
            timeout = self._config.request_timeout_seconds
        return await self._call(method, params, timeout)

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification without waiting for any reply.

        Example:
            ```python
            await client.notify("textDocument/didSave", {"textDocument": {"uri": uri}})
            ```
        """
        try:
            await self._send(Envelope(method=method, params=params))
        except (_ConnectionClosed, ConnectionError, OSError) as exc:
            logger.debug("Notification %s not sent: %s", method, exc)

    async def _call(self, method: str, params: Any, timeout: float) -> RpcOutcome:
        """Register a pending entry, send the request, and await its resolution.

        Example:
            ```python
            outcome = await client._call("initialize", params, 15)
            ```
        """
        if self._writer is None:
            return RpcOutcome(error="Not connected")
        loop = asyncio.get_running_loop()
        self._next_id += 1
        request_id = self._next_id
        future: asyncio.Future[Envelope] = loop.create_future()
        self._pending[request_id] = future
        timer = loop.call_later(timeout, self._expire, request_id)
        try:
            await self._send(Envelope(id=request_id, method=method, params=params))
            envelope = await future
        except _RequestTimedOut:
            logger.info("Request %s (%s) timed out after %ss", request_id, method, timeout)
            return RpcOutcome(timed_out=True, error=REQUEST_TIMEOUT_ERROR)
        except _ConnectionClosed as exc:
            return RpcOutcome(error=str(exc))
        except (ConnectionError, OSError) as exc:
            return RpcOutcome(error=f"Send failed: {exc}")
        finally:
            timer.cancel()
            self._pending.pop(request_id, None)
            # A failed send leaves the future unawaited; consume whatever _detach set on it.
            if not future.done():
                future.cancel()
            elif not future.cancelled():
                future.exception()
        if envelope.error is not None:
            return RpcOutcome(error=_error_text(envelope.error))
        return RpcOutcome(result=envelope.payload)

    def _expire(self, request_id: int) -> None:
        """Timer callback: fail the request if its response has not claimed it yet.

        Example:
            ```python
            loop.call_later(10, client._expire, 7)
            ```
        """
        future = self._pending.pop(request_id, None)
        if future is not None and not future.done():
            future.set_exception(_RequestTimedOut())

    async def _send(self, envelope: Envelope) -> None:
        """Write one encoded envelope to the socket.

        Example:
            ```python
            await client._send(Envelope(method="exit"))
            ```
        """
        writer = self._writer
        if writer is None or writer.is_closing():
            raise _ConnectionClosed("Not connected")
        writer.write(encode_envelope(envelope))
        await writer.drain()

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Read newline-delimited frames until EOF and route each one.

        Example:
            ```python
            task = asyncio.create_task(client._read_loop(reader))
            ```
        """
        reason = "Connection closed by peer"
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError as exc:
                    logger.warning("Dropping oversized frame: %s", exc)
                    continue
                except (ConnectionError, OSError) as exc:
                    reason = f"Connection lost: {exc}"
                    break
                if not line:
                    break
                if line.strip():
                    self._dispatch(line)
        finally:
            if self._reader is reader:
                self._detach(reason)

    def _dispatch(self, line: bytes) -> None:
        """Resolve the pending request whose id matches, else hand the frame to notification handlers.

        A matching id wins even when the frame also names a `method`; the peer
        may answer with `params` instead of `result`.

        Example:
            ```python
            client._dispatch(b'{"jsonrpc":"2.0","id":3,"result":[]}')
            ```
        """
        try:
            envelope = decode_envelope(line)
        except ProtocolError as exc:
            logger.debug("Dropping malformed frame: %s", exc)
            return
        if envelope.id is not None:
            future = self._pending.pop(envelope.id, None)
            if future is not None:
                if not future.done():
                    future.set_result(envelope)
                return
        if envelope.method is None:
            logger.debug("Dropping response with unknown id %s", envelope.id)
            return
        for handler in self._handlers.get(envelope.method, []):
            try:
                handler(envelope.params)
            except Exception:
                logger.exception("Notification handler for %s failed", envelope.method)

    async def _ensure_connected(self) -> bool:
        """Connect unless already initialized.

        Example:
            ```python
            ready = await client._ensure_connected()
            ```
        """
        return self.is_connected() or await self.connect()

    def _position_params(self, file_path: str, line: int, column: int) -> dict[str, Any]:
        """Build text-document position params from 0-based line and column.

        Example:
            ```python
            params = client._position_params("player.gd", 3, 8)
            ```
        """
        return {
            "textDocument": {"uri": file_uri(file_path, self._config.project_path)},
            "position": {"line": line, "character": column},
        }

    async def validate_file(self, file_path: str) -> DiagnosticReport:
        """Request diagnostics for a script; empty report when unavailable.

        Example:
            ```python
            report = await client.validate_file("scripts/player.gd")
            ```
        """
        if not await self._ensure_connected():
            return DiagnosticReport()
        outcome = await self.request(
            "textDocument/publishDiagnostics",
            {"uri": file_uri(file_path, self._config.project_path)},
        )
        if not outcome.ok:
            logger.info("Diagnostics unavailable for %s: %s", file_path, outcome.error)
            return DiagnosticReport()
        reply = parse_diagnostics_reply(outcome.result)
        if isinstance(reply, DiagnosticsReply):
            return translate_diagnostics(reply.diagnostics)
        return DiagnosticReport()

    async def get_completions(self, file_path: str, line: int, column: int) -> list[Any]:
        """Return completion items at a 0-based position; empty when unavailable.

        Example:
            ```python
            items = await client.get_completions("player.gd", 10, 4)
            ```
        """
        if not await self._ensure_connected():
            return []
        outcome = await self.request(
            "textDocument/completion", self._position_params(file_path, line, column)
        )
        if not outcome.ok:
            return []
        reply = parse_completion_reply(outcome.result)
        return reply.items if isinstance(reply, CompletionReply) else []

    async def get_hover(self, file_path: str, line: int, column: int) -> str | None:
        """Return hover text at a 0-based position, or None.

        Example:
            ```python
            text = await client.get_hover("player.gd", 10, 4)
            ```
        """
        if not await self._ensure_connected():
            return None
        outcome = await self.request(
            "textDocument/hover", self._position_params(file_path, line, column)
        )
        if not outcome.ok:
            return None
        reply = parse_hover_reply(outcome.result)
        return reply.text if isinstance(reply, HoverReply) else None

    async def find_definitions(self, file_path: str, line: int, column: int) -> list[Any]:
        """Return definition locations for the symbol at a 0-based position.

        Example:
            ```python
            locations = await client.find_definitions("player.gd", 10, 4)
            ```
        """
        if not await self._ensure_connected():
            return []
        outcome = await self.request(
            "textDocument/definition", self._position_params(file_path, line, column)
        )
        if not outcome.ok:
            return []
        reply = parse_definition_reply(outcome.result)
        return reply.locations if isinstance(reply, DefinitionReply) else []
