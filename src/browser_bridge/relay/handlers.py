"""Tool dispatch table.

Maps each tool name a downstream client may call onto a handler that drives
the Remote Command Client. Handlers take the tool's ``arguments`` dict and
return a JSON-serializable result.

Target selection, shared by every tab-scoped tool:
- ``tabId`` given and not the attached target: attach to it first
- otherwise use the attached target, attaching to a page target lazily
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..cdp import RemoteCommandClient
from ..errors import ParseError, RemoteCommandError, UnknownTool

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]

# Elements returned by ``find`` are addressed as "element-<index>"
ELEMENT_REF_PREFIX = "element-"
FIND_LIMIT = 10
READ_PAGE_LIMIT = 100
DEFAULT_WAIT_MS = 1000

_FIND_SCRIPT = """
(function() {
  const elements = document.querySelectorAll(%(query)s);
  return Array.from(elements).slice(0, %(limit)d).map((el, i) => ({
    ref: %(prefix)s + i,
    tag: el.tagName,
    text: el.innerText ? el.innerText.substring(0, 100) : null,
    value: el.value
  }));
})()
"""

_FORM_INPUT_SCRIPT = """
(function() {
  const index = parseInt(%(ref)s.replace(%(prefix)s, ''), 10);
  const elements = document.querySelectorAll('input, textarea, select');
  const el = elements[index];
  if (!el) return false;
  el.value = %(value)s;
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
})()
"""


def _require(args: dict[str, Any], name: str) -> Any:
    value = args.get(name)
    if value is None or value == "":
        raise ParseError(f"Missing required argument: {name}")
    return value


def _coordinate(args: dict[str, Any], required: bool = True) -> tuple[float, float]:
    value = args.get("coordinate")
    if value is None and not required:
        return 0.0, 0.0
    if not isinstance(value, list | tuple) or len(value) != 2:
        raise ParseError("Argument 'coordinate' must be an [x, y] pair")
    return float(value[0]), float(value[1])


class ToolHandlers:
    """The fixed set of tools the relay can execute against the browser."""

    def __init__(self, client: RemoteCommandClient):
        self.client = client
        self._table: dict[str, ToolHandler] = {
            "tabs_context_mcp": self.tabs_context,
            "tabs_create_mcp": self.tabs_create,
            "tabs_close_mcp": self.tabs_close,
            "navigate": self.navigate,
            "computer": self.computer,
            "read_page": self.read_page,
            "get_page_text": self.get_page_text,
            "javascript_tool": self.javascript,
            "find": self.find,
            "form_input": self.form_input,
            "console_logs": self.console_logs,
        }

    @property
    def names(self) -> list[str]:
        return list(self._table)

    def resolve(self, tool_name: str) -> ToolHandler:
        """Look up a handler.

        Raises:
            UnknownTool: ``tool_name`` is not in the table
        """
        handler = self._table.get(tool_name)
        if handler is None:
            raise UnknownTool(f"Unknown tool: {tool_name}", details={"tool": tool_name})
        return handler

    async def dispatch(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        handler = self.resolve(tool_name)
        logger.debug(f"Tool call: {tool_name} {arguments}")
        return await handler(arguments)

    async def _use_target(self, args: dict[str, Any]) -> None:
        tab_id = args.get("tabId")
        if tab_id is not None:
            tab_id = str(tab_id)
            current = self.client.target
            if current is None or current.id != tab_id:
                await self.client.attach(tab_id)
                return
        await self.client.ensure_connected()

    # =========================================================================
    # Tabs
    # =========================================================================

    async def tabs_context(self, args: dict[str, Any]) -> dict[str, Any]:
        pages = await self.client.list_pages()
        if not pages and args.get("createIfEmpty"):
            created = await self.client.create_target()
            tab = created.summary()
            tab["title"] = tab["title"] or "New Tab"
            tab["url"] = tab["url"] or "about:blank"
            return {"tabs": [tab], "activeTabId": created.id}

        active = self.client.target
        return {
            "tabs": [page.summary() for page in pages],
            "activeTabId": active.id if active else (pages[0].id if pages else None),
        }

    async def tabs_create(self, args: dict[str, Any]) -> dict[str, Any]:
        target = await self.client.create_target(args.get("url"))
        return target.summary()

    async def tabs_close(self, args: dict[str, Any]) -> dict[str, Any]:
        tab_id = str(_require(args, "tabId"))
        await self.client.close_target(tab_id)
        return {"success": True, "tabId": tab_id}

    # =========================================================================
    # Page
    # =========================================================================

    async def navigate(self, args: dict[str, Any]) -> dict[str, Any]:
        url = _require(args, "url")
        await self._use_target(args)
        result = await self.client.navigate(url)
        if result.get("errorText"):
            raise RemoteCommandError(
                f"Navigation to {url} failed: {result['errorText']}",
                details={"method": "Page.navigate"},
            )
        return {"success": True, "frameId": result.get("frameId")}

    async def read_page(self, args: dict[str, Any]) -> dict[str, Any]:
        await self._use_target(args)
        return {"tree": await self.client.accessibility_tree(limit=READ_PAGE_LIMIT)}

    async def get_page_text(self, args: dict[str, Any]) -> dict[str, Any]:
        await self._use_target(args)
        return {"text": await self.client.evaluate("document.body.innerText")}

    async def javascript(self, args: dict[str, Any]) -> dict[str, Any]:
        expression = _require(args, "text")
        await self._use_target(args)
        return {"result": await self.client.evaluate(expression)}

    async def find(self, args: dict[str, Any]) -> dict[str, Any]:
        query = _require(args, "query")
        await self._use_target(args)
        script = _FIND_SCRIPT % {
            "query": json.dumps(query),
            "limit": FIND_LIMIT,
            "prefix": json.dumps(ELEMENT_REF_PREFIX),
        }
        return {"elements": await self.client.evaluate(script) or []}

    async def form_input(self, args: dict[str, Any]) -> dict[str, Any]:
        ref = str(_require(args, "ref"))
        if "value" not in args:
            raise ParseError("Missing required argument: value")
        await self._use_target(args)
        script = _FORM_INPUT_SCRIPT % {
            "ref": json.dumps(ref),
            "prefix": json.dumps(ELEMENT_REF_PREFIX),
            "value": json.dumps(args["value"]),
        }
        return {"success": bool(await self.client.evaluate(script))}

    async def console_logs(self, args: dict[str, Any]) -> dict[str, Any]:
        types = args.get("types")
        if isinstance(types, str):
            types = [types]
        try:
            limit = int(args.get("limit", 50))
        except (TypeError, ValueError) as e:
            raise ParseError("Argument 'limit' must be an integer") from e
        messages = self.client.console_messages(
            limit=limit,
            types=types,
            since=args.get("since"),
            clear=bool(args.get("clear", False)),
        )
        return {"messages": messages, "count": len(messages)}

    # =========================================================================
    # Input
    # =========================================================================

    async def computer(self, args: dict[str, Any]) -> dict[str, Any]:
        action = _require(args, "action")

        if action == "wait":
            duration_ms = float(args.get("duration") or DEFAULT_WAIT_MS)
            await asyncio.sleep(duration_ms / 1000)
            return {"success": True}

        await self._use_target(args)
        match action:
            case "screenshot":
                data = await self.client.capture_screenshot()
                return {"type": "image", "data": data, "mediaType": "image/png"}

            case "left_click" | "click":
                x, y = _coordinate(args)
                await self.client.click(x, y)

            case "right_click":
                x, y = _coordinate(args)
                await self.client.click(x, y, button="right")

            case "double_click" | "triple_click":
                x, y = _coordinate(args)
                clicks = 2 if action == "double_click" else 3
                for count in range(1, clicks + 1):
                    await self.client.click(x, y, click_count=count)

            case "type":
                await self.client.type_text(str(_require(args, "text")))

            case "key":
                await self.client.press_key(str(_require(args, "text")))

            case "scroll":
                x, y = _coordinate(args, required=False)
                await self.client.scroll(x, y, delta_y=float(args.get("delta") or -100))

            case _:
                raise UnknownTool(
                    f"Unknown action: {action}", details={"tool": "computer", "action": action}
                )

        return {"success": True}
