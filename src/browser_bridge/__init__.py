"""Browser Bridge - relay browser tool calls across stdio, Unix sockets and WebSockets.

Components:
- relay:  far side, next to the browser; drives the Chrome DevTools endpoint
- bridge: near side; joins a local Unix socket consumer to the relay
- mcp:    JSON-RPC stdio front-end that talks to the relay directly
"""

__version__ = "0.1.0"
