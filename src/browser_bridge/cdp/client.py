"""Remote Command Client for the Chrome DevTools Protocol.

Owns one persistent control connection to one target at a time:
- Target discovery over the CDP HTTP endpoints (/json/list, /json/new, /json/close)
- Numbered command/response exchange over the target's WebSocket
- Deadline per command; late or duplicate responses are dropped
- Lazy reconnection: any command issued while detached attaches first

Wire format on the control connection:
    out: {"id": 7, "method": "Page.navigate", "params": {"url": "..."}}
    in:  {"id": 7, "result": {...}}  or  {"id": 7, "error": {"message": "..."}}
    in:  {"method": "Runtime.consoleAPICalled", "params": {...}}  (events)

All state lives on the instance, so several clients can run side by side.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

import httpx

from ..config import CdpConfig
from ..errors import (
    CommandTimeout,
    NoTarget,
    ParseError,
    RemoteCommandError,
    ScriptError,
    TransportUnavailable,
)
from ..transport import ConnectionState, FramedConnection, connect_websocket
from .types import ConsoleEntry, Target

logger = logging.getLogger(__name__)

# Opens a control connection for a target's WebSocket URL
Connector = Callable[[str], Awaitable[FramedConnection]]

CONSOLE_TYPES = {"warning": "warn"}


@dataclass
class PendingCommand:
    """A command waiting for its response or its deadline."""

    id: int
    method: str
    future: asyncio.Future
    deadline: float  # loop.time() based


class RemoteCommandClient:
    """Client for one Chrome DevTools endpoint."""

    def __init__(
        self,
        config: CdpConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        connector: Connector | None = None,
    ):
        self.config = config or CdpConfig()
        self._http = http_client
        self._owns_http = http_client is None
        self._connector = connector or self._open_websocket

        self._state = ConnectionState.DISCONNECTED
        self._connection: FramedConnection | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._target: Target | None = None
        self._last_target_id: str | None = None
        self._attach_lock = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

        self._ids = itertools.count(1)
        self._pending: dict[int, PendingCommand] = {}
        self._console: deque[ConsoleEntry] = deque(maxlen=self.config.console_buffer_size)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return (
            self._state == ConnectionState.CONNECTED
            and self._connection is not None
            and self._connection.is_open
        )

    @property
    def target(self) -> Target | None:
        """The currently attached target, if any."""
        return self._target if self.is_connected else None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Target discovery (HTTP)
    # =========================================================================

    def _http_client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.discovery_timeout),
            )
        return self._http

    async def _http_request(self, method: str, path: str) -> httpx.Response:
        try:
            response = await self._http_client().request(method, path)
            response.raise_for_status()
        except httpx.TransportError as e:
            raise TransportUnavailable(
                f"Failed to connect to Chrome at {self.config.base_url}: {e}. "
                f"Is Chrome running with --remote-debugging-port={self.config.port}?"
            ) from e
        except httpx.HTTPStatusError as e:
            raise TransportUnavailable(
                f"Chrome endpoint returned {e.response.status_code} for {path}"
            ) from e
        return response

    async def discover_targets(self) -> list[Target]:
        """List every target the endpoint exposes.

        Raises:
            TransportUnavailable: The endpoint refused the connection
            ParseError: The listing is not valid JSON
        """
        response = await self._http_request("GET", "/json/list")
        try:
            entries = response.json()
            return [Target.model_validate(entry) for entry in entries]
        except ValueError as e:
            raise ParseError(f"Failed to parse targets: {e}") from e

    async def list_pages(self) -> list[Target]:
        """Page-type targets only (browser tabs)."""
        return [t for t in await self.discover_targets() if t.is_page]

    async def create_target(self, url: str | None = None) -> Target:
        """Open a new tab, optionally at ``url``."""
        path = f"/json/new?{quote(url, safe='')}" if url else "/json/new"
        response = await self._http_request("PUT", path)
        try:
            return Target.model_validate(response.json())
        except ValueError as e:
            raise ParseError(f"Failed to create tab: {response.text[:200]}") from e

    async def close_target(self, target_id: str) -> None:
        """Close a tab by id."""
        await self._http_request("GET", f"/json/close/{target_id}")
        if self._target and self._target.id == target_id:
            await self._drop_connection()

    # =========================================================================
    # Control connection
    # =========================================================================

    async def attach(self, target_id: str | None = None) -> Target:
        """Attach to ``target_id``, or to the first page target if omitted.

        Already attached to ``target_id``: the open connection is kept.
        Otherwise any existing control connection is closed first.

        Raises:
            NoTarget: No matching target exists
            TransportUnavailable: Discovery or the WebSocket handshake failed
        """
        async with self._attach_lock:
            if target_id and self.is_connected and self._target and self._target.id == target_id:
                return self._target
            return await self._attach_locked(target_id)

    async def ensure_connected(self) -> None:
        """Attach lazily if no control connection is open."""
        if self.is_connected:
            return
        async with self._attach_lock:
            if self.is_connected:
                return
            logger.info("Control connection not open, attaching before command")
            try:
                await self._attach_locked(self._last_target_id)
            except NoTarget:
                if self._last_target_id is None:
                    raise
                logger.warning(f"Target {self._last_target_id} is gone, using first page target")
                await self._attach_locked(None)

    async def _attach_locked(self, target_id: str | None) -> Target:
        targets = await self.discover_targets()
        if target_id:
            target = next((t for t in targets if t.id == target_id), None)
        else:
            target = next((t for t in targets if t.is_page), None)

        if target is None:
            raise NoTarget(
                f"No target with id {target_id}" if target_id else "No suitable target found",
                details={"target_id": target_id} if target_id else None,
            )
        if not target.control_socket_url:
            raise NoTarget(f"Target {target.id} exposes no control socket (already attached?)")

        await self._drop_connection()

        self._state = ConnectionState.CONNECTING
        try:
            connection = await self._connector(target.control_socket_url)
        except Exception:
            self._state = ConnectionState.DISCONNECTED
            raise

        connection.set_handlers(
            on_message=self._handle_message,
            on_close=lambda: self._handle_close(connection),
            on_error=self._handle_error,
        )
        self._connection = connection
        self._target = target
        self._last_target_id = target.id
        self._state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(connection.run())
        logger.info(f"Attached to target {target.id} ({target.url})")

        if self.config.capture_console:
            task = asyncio.create_task(self._enable_console(target.id))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

        return target

    async def _open_websocket(self, url: str) -> FramedConnection:
        return await connect_websocket(
            url,
            open_timeout=self.config.discovery_timeout,
            max_size=self.config.max_message_size,
            label=f"cdp:{url.rsplit('/', 1)[-1]}",
        )

    async def _enable_console(self, target_id: str) -> None:
        try:
            await self._send_command("Runtime.enable", {})
        except Exception as e:
            logger.warning(f"Console capture unavailable for {target_id}: {e}")

    async def _drop_connection(self) -> None:
        connection, task = self._connection, self._reader_task
        self._connection = None
        self._reader_task = None
        self._target = None
        self._state = ConnectionState.DISCONNECTED
        self._fail_pending("Control connection closed")

        if connection is not None:
            await connection.close()
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _handle_close(self, connection: FramedConnection) -> None:
        if connection is not self._connection:
            return  # Superseded by a newer attach
        logger.info(f"Control connection to {self._last_target_id} closed")
        self._connection = None
        self._reader_task = None
        self._target = None
        self._state = ConnectionState.DISCONNECTED
        self._fail_pending("Control connection closed by Chrome")

    def _fail_pending(self, reason: str) -> None:
        # Responses can only arrive on the connection the command went out on
        for pending in self._pending.values():
            if not pending.future.done():
                details = {"id": pending.id, "method": pending.method}
                pending.future.set_exception(TransportUnavailable(reason, details=details))
        self._pending.clear()

    async def _handle_error(self, error: Exception) -> None:
        logger.warning(f"Control connection error: {error}")

    async def _handle_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            logger.debug(f"Ignoring non-object CDP message: {message!r:.100}")
            return

        if "id" in message:
            self._resolve(message)
        elif "method" in message:
            self._handle_event(message["method"], message.get("params") or {})

    def _resolve(self, message: dict[str, Any]) -> None:
        command_id = message["id"]
        pending = self._pending.pop(command_id, None) if isinstance(command_id, int) else None
        if pending is None or pending.future.done():
            logger.debug(f"Dropping response for unknown or settled command id {command_id}")
            return

        error = message.get("error")
        if error is not None:
            text = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            pending.future.set_exception(
                RemoteCommandError(text, details={"method": pending.method, "code": code})
            )
        else:
            pending.future.set_result(message.get("result") or {})

    # =========================================================================
    # Commands
    # =========================================================================

    async def invoke(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one command and wait for its response.

        Attaches first when no control connection is open.

        Raises:
            CommandTimeout: No response before the deadline
            RemoteCommandError: The endpoint answered with an error
            NoTarget / TransportUnavailable: Lazy attach failed
        """
        await self.ensure_connected()
        return await self._send_command(method, params or {})

    async def _send_command(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        connection = self._connection
        if connection is None or not connection.is_open:
            raise TransportUnavailable("Not connected to Chrome")

        loop = asyncio.get_running_loop()
        timeout = self.config.command_timeout
        command_id = next(self._ids)
        future: asyncio.Future = loop.create_future()
        self._pending[command_id] = PendingCommand(
            id=command_id,
            method=method,
            future=future,
            deadline=loop.time() + timeout,
        )

        try:
            await connection.send({"id": command_id, "method": method, "params": params})
            logger.debug(f"Sent {method} (id={command_id})")
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as e:
            logger.error(f"Command {method} (id={command_id}) timed out after {timeout}s")
            raise CommandTimeout(
                f"Command {method} timed out",
                details={"id": command_id, "method": method},
            ) from e
        finally:
            self._pending.pop(command_id, None)

    async def navigate(self, url: str) -> dict[str, Any]:
        return await self.invoke("Page.navigate", {"url": url})

    async def click(
        self, x: float, y: float, button: str = "left", click_count: int = 1
    ) -> None:
        """Press then release at (x, y)."""
        for event_type in ("mousePressed", "mouseReleased"):
            await self.invoke(
                "Input.dispatchMouseEvent",
                {"type": event_type, "x": x, "y": y, "button": button, "clickCount": click_count},
            )

    async def type_text(self, text: str) -> None:
        """Type ``text`` one character at a time, each key pair awaited in order."""
        for char in text:
            await self.invoke("Input.dispatchKeyEvent", {"type": "keyDown", "text": char})
            await self.invoke("Input.dispatchKeyEvent", {"type": "keyUp", "text": char})

    async def press_key(self, key: str) -> None:
        await self.invoke("Input.dispatchKeyEvent", {"type": "keyDown", "key": key})
        await self.invoke("Input.dispatchKeyEvent", {"type": "keyUp", "key": key})

    async def scroll(
        self, x: float = 0, y: float = 0, delta_x: float = 0, delta_y: float = -100
    ) -> None:
        await self.invoke(
            "Input.dispatchMouseEvent",
            {"type": "mouseWheel", "x": x, "y": y, "deltaX": delta_x, "deltaY": delta_y},
        )

    async def capture_screenshot(self, format: str = "png", quality: int = 80) -> str:
        """Capture the viewport. Returns base64 image data."""
        params: dict[str, Any] = {"format": format}
        if format == "jpeg":
            params["quality"] = quality
        result = await self.invoke("Page.captureScreenshot", params)
        return result.get("data", "")

    async def evaluate(self, expression: str) -> Any:
        """Evaluate ``expression`` in the page and return its value.

        Raises:
            ScriptError: The script threw inside the page
        """
        result = await self.invoke(
            "Runtime.evaluate", {"expression": expression, "returnByValue": True}
        )
        details = result.get("exceptionDetails")
        if details:
            exception = details.get("exception") or {}
            raise ScriptError(
                details.get("text") or exception.get("description") or "Script error",
                details={"description": exception.get("description")},
            )
        return (result.get("result") or {}).get("value")

    async def accessibility_tree(self, limit: int = 100) -> list[dict[str, Any]]:
        result = await self.invoke("Accessibility.getFullAXTree")
        return (result.get("nodes") or [])[:limit]

    # =========================================================================
    # Console buffer
    # =========================================================================

    def _handle_event(self, method: str, params: dict[str, Any]) -> None:
        if method == "Runtime.consoleAPICalled":
            args = params.get("args") or []
            text = " ".join(
                str(arg.get("value", arg.get("description", ""))) for arg in args
            )
            raw_type = params.get("type", "log")
            self._buffer_console(CONSOLE_TYPES.get(raw_type, raw_type), text, params.get("timestamp"))
        elif method == "Runtime.exceptionThrown":
            details = params.get("exceptionDetails") or {}
            exception = details.get("exception") or {}
            text = exception.get("description") or details.get("text", "")
            self._buffer_console("error", text, params.get("timestamp"))

    def _buffer_console(self, entry_type: str, text: str, timestamp_ms: float | None) -> None:
        when = (
            datetime.fromtimestamp(timestamp_ms / 1000, UTC)
            if timestamp_ms is not None
            else datetime.now(UTC)
        )
        self._console.append(
            ConsoleEntry(
                type=entry_type,
                text=text,
                timestamp=when.isoformat(),
                target_id=self._last_target_id,
            )
        )

    def console_messages(
        self,
        limit: int = 50,
        types: list[str] | None = None,
        since: str | None = None,
        clear: bool = False,
    ) -> list[dict[str, Any]]:
        """Read buffered console output, newest last."""
        entries = list(self._console)
        if types:
            entries = [e for e in entries if e.type in types]
        if since:
            try:
                cutoff = datetime.fromisoformat(since)
            except (TypeError, ValueError) as e:
                raise ParseError(f"Argument 'since' is not an ISO timestamp: {since!r}") from e
            if cutoff.tzinfo is None:
                cutoff = cutoff.replace(tzinfo=UTC)
            entries = [e for e in entries if datetime.fromisoformat(e.timestamp) > cutoff]
        if clear:
            self._console.clear()
        return [e.to_dict() for e in entries[-limit:]] if limit > 0 else []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Close the control connection and the HTTP client."""
        await self._drop_connection()
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
