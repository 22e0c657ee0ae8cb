"""Browser tool schemas advertised by ``tools/list``.

Names must match the relay's dispatch table.
"""

from __future__ import annotations

from typing import Any

_TAB_ID = {"type": "number", "description": "Tab ID to act on"}

BROWSER_TOOLS: list[dict[str, Any]] = [
    {
        "name": "computer",
        "description": "Control the browser with mouse and keyboard actions, take screenshots",
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": [
                        "screenshot",
                        "left_click",
                        "right_click",
                        "type",
                        "key",
                        "scroll",
                        "wait",
                        "double_click",
                        "triple_click",
                    ],
                    "description": "The action to perform",
                },
                "coordinate": {
                    "type": "array",
                    "items": {"type": "number"},
                    "description": "x, y coordinates for click and scroll actions",
                },
                "text": {"type": "string", "description": "Text to type or key to press"},
                "delta": {"type": "number", "description": "Vertical scroll delta (default -100)"},
                "duration": {"type": "number", "description": "Wait time in ms (default 1000)"},
                "tabId": _TAB_ID,
            },
            "required": ["action"],
        },
    },
    {
        "name": "navigate",
        "description": "Navigate to a URL in the browser",
        "inputSchema": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "URL to navigate to"},
                "tabId": _TAB_ID,
            },
            "required": ["url"],
        },
    },
    {
        "name": "read_page",
        "description": "Get the accessibility tree of the current page",
        "inputSchema": {"type": "object", "properties": {"tabId": _TAB_ID}},
    },
    {
        "name": "tabs_context_mcp",
        "description": "Get information about browser tabs",
        "inputSchema": {
            "type": "object",
            "properties": {
                "createIfEmpty": {"type": "boolean", "description": "Create a tab if none exists"}
            },
        },
    },
    {
        "name": "tabs_create_mcp",
        "description": "Create a new browser tab",
        "inputSchema": {
            "type": "object",
            "properties": {"url": {"type": "string", "description": "Initial URL"}},
        },
    },
    {
        "name": "tabs_close_mcp",
        "description": "Close a browser tab",
        "inputSchema": {
            "type": "object",
            "properties": {"tabId": _TAB_ID},
            "required": ["tabId"],
        },
    },
    {
        "name": "find",
        "description": "Find elements on the page by CSS selector",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "CSS selector"},
                "tabId": _TAB_ID,
            },
            "required": ["query"],
        },
    },
    {
        "name": "form_input",
        "description": "Fill a form field",
        "inputSchema": {
            "type": "object",
            "properties": {
                "ref": {"type": "string", "description": "Element reference (element-<n>)"},
                "value": {"type": "string", "description": "Value to set"},
                "tabId": _TAB_ID,
            },
            "required": ["ref", "value"],
        },
    },
    {
        "name": "get_page_text",
        "description": "Extract text content from the page",
        "inputSchema": {"type": "object", "properties": {"tabId": _TAB_ID}},
    },
    {
        "name": "javascript_tool",
        "description": "Execute JavaScript in the page context",
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {"type": "string", "const": "javascript_exec"},
                "text": {"type": "string", "description": "JavaScript code"},
                "tabId": _TAB_ID,
            },
            "required": ["text"],
        },
    },
    {
        "name": "console_logs",
        "description": "Read browser console output (log, warn, error, info)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "tabId": _TAB_ID,
                "limit": {"type": "number", "description": "Max entries to return (default 50)"},
                "types": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["log", "warn", "error", "info", "debug"]},
                    "description": "Filter by log type (default all)",
                },
                "clear": {"type": "boolean", "description": "Clear buffer after reading"},
                "since": {
                    "type": "string",
                    "description": "ISO timestamp; only return logs after this time",
                },
            },
        },
    },
]


def tool_names() -> list[str]:
    return [tool["name"] for tool in BROWSER_TOOLS]
