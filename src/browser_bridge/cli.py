"""Browser Bridge CLI.

Usage:
    browser-bridge host                       # Relay server next to the browser
    browser-bridge host --native-messaging    # ...plus one session over stdio
    browser-bridge bridge                     # Unix socket <-> relay bridge
    browser-bridge mcp                        # MCP stdio front-end
    browser-bridge health                     # Check a relay's /health
    browser-bridge tabs                       # List browser tabs

Every option defaults to its BROWSER_BRIDGE_* environment variable, then to
the built-in default.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
import httpx

from . import __version__
from .config import AcceptPolicy, BridgeConfig, CdpConfig, RelayConfig
from .errors import BridgeError

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(verbose: bool = False, stdio_safe: bool = False) -> None:
    """Send all logging to stderr.

    With ``stdio_safe`` every handler installed by anyone else is removed
    first, because stdout carries protocol frames in that mode.
    """
    root_logger = logging.getLogger()

    if stdio_safe:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        for logger_name in list(logging.Logger.manager.loggerDict.keys()):
            logger_instance = logging.getLogger(logger_name)
            for handler in logger_instance.handlers[:]:
                logger_instance.removeHandler(handler)
            logger_instance.propagate = True

    if not root_logger.handlers:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    # Per-request noise from the HTTP client
    logging.getLogger("httpx").setLevel(logging.WARNING)


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="browser-bridge")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Browser Bridge - relay browser tool calls between hosts."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# =============================================================================
# Relay
# =============================================================================


@main.command()
@click.option("--host", default=None, help="Address to listen on [default: 0.0.0.0]")
@click.option("--port", type=int, default=None, help="Port to listen on [default: 19222]")
@click.option("--cdp-host", default=None, help="Chrome DevTools host [default: localhost]")
@click.option("--cdp-port", type=int, default=None, help="Chrome DevTools port [default: 9222]")
@click.option(
    "--accept-policy",
    type=click.Choice([p.value for p in AcceptPolicy]),
    default=None,
    help="Allow many clients, or only the first [default: multi]",
)
@click.option("--command-timeout", type=float, default=None, help="Seconds per CDP command")
@click.option(
    "--native-messaging",
    is_flag=True,
    help="Also serve one session over stdin/stdout (Chrome native messaging framing)",
)
@click.pass_context
def host(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    cdp_host: str | None,
    cdp_port: int | None,
    accept_policy: str | None,
    command_timeout: float | None,
    native_messaging: bool,
) -> None:
    """Run the relay server next to the browser."""
    configure_logging(ctx.obj["verbose"], stdio_safe=native_messaging)

    config = RelayConfig.from_env()
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if cdp_host is not None:
        config.cdp.host = cdp_host
    if cdp_port is not None:
        config.cdp.port = cdp_port
    if accept_policy is not None:
        config.accept_policy = AcceptPolicy(accept_policy)
    if command_timeout is not None:
        config.cdp.command_timeout = command_timeout

    click.echo(f"Starting relay on ws://{config.host}:{config.port}", err=True)
    click.echo(f"  Chrome DevTools: {config.cdp.base_url}", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    try:
        asyncio.run(_run_relay(config, native_messaging))
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


async def _run_relay(config: RelayConfig, native_messaging: bool) -> None:
    import uvicorn

    from .cdp import RemoteCommandClient
    from .relay import RelayCore, create_app, serve_native_messaging

    core = RelayCore(RemoteCommandClient(config.cdp), policy=config.accept_policy)
    app = create_app(core, max_message_size=config.max_message_size)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_config=None,  # Use our stderr logging
            access_log=False,
        )
    )

    if not native_messaging:
        await server.serve()
        return

    serve_task = asyncio.create_task(server.serve())
    try:
        await serve_native_messaging(core, config.max_frame_size)
    finally:
        # stdin closed: Chrome has gone away, so the host goes too
        server.should_exit = True
        await serve_task


# =============================================================================
# Bridge
# =============================================================================


@main.command()
@click.option("--relay-url", default=None, help="Relay WebSocket URL [default: ws://127.0.0.1:19222]")
@click.option("--socket-path", default=None, help="Unix socket for the local client")
@click.option("--max-attempts", type=int, default=None, help="Reconnect attempts before giving up")
@click.pass_context
def bridge(
    ctx: click.Context,
    relay_url: str | None,
    socket_path: str | None,
    max_attempts: int | None,
) -> None:
    """Run the bridge between a local Unix socket and the relay."""
    from .bridge import TransportBridge

    configure_logging(ctx.obj["verbose"])

    config = BridgeConfig.from_env()
    if relay_url is not None:
        config.relay_url = relay_url
    if socket_path is not None:
        config.socket_path = socket_path
    if max_attempts is not None:
        config.reconnect.max_attempts = max_attempts

    click.echo("Starting bridge", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    try:
        asyncio.run(TransportBridge(config).run_forever())
    except KeyboardInterrupt:
        click.echo("\nShutting down", err=True)


# =============================================================================
# MCP
# =============================================================================


@main.command()
@click.option("--relay-url", default=None, help="Relay WebSocket URL [default: ws://127.0.0.1:19222]")
@click.option("--connect-timeout", type=float, default=None, help="Seconds to wait for the relay")
@click.pass_context
def mcp(ctx: click.Context, relay_url: str | None, connect_timeout: float | None) -> None:
    """Run the MCP stdio server (JSON-RPC on stdin/stdout)."""
    from .bridge import Uplink
    from .mcp import McpServer

    configure_logging(ctx.obj["verbose"], stdio_safe=True)

    config = BridgeConfig.from_env()
    if relay_url is not None:
        config.relay_url = relay_url
    if connect_timeout is not None:
        config.connect_timeout = connect_timeout

    uplink = Uplink(
        config.relay_url,
        reconnect=config.reconnect,
        connect_timeout=config.connect_timeout,
        max_size=config.max_message_size,
    )
    server = McpServer(uplink, connect_timeout=config.connect_timeout)

    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted")


# =============================================================================
# Diagnostics
# =============================================================================


@main.command()
@click.option("--url", default="http://127.0.0.1:19222", help="Relay base URL")
@click.option("--timeout", type=float, default=5.0, help="Request timeout in seconds")
def health(url: str, timeout: float) -> None:
    """Check relay health."""

    async def check() -> httpx.Response:
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.get(f"{url.rstrip('/')}/health")

    try:
        response = asyncio.run(check())
    except httpx.TransportError as e:
        click.echo(f"Cannot connect to relay at {url}: {e}", err=True)
        sys.exit(1)

    if response.status_code != 200:
        click.echo(f"Relay returned {response.status_code}", err=True)
        sys.exit(1)
    data = response.json()
    click.echo(
        f"Relay is healthy: {data.get('sessions', 0)} session(s), "
        f"browser link {data.get('remote_state', 'unknown')}"
    )


@main.command()
@click.option("--cdp-host", default=None, help="Chrome DevTools host [default: localhost]")
@click.option("--cdp-port", type=int, default=None, help="Chrome DevTools port [default: 9222]")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
def tabs(cdp_host: str | None, cdp_port: int | None, output_format: str) -> None:
    """List open browser tabs.

    Examples:

        # Tabs of the local Chrome
        browser-bridge tabs

        # JSON output for scripting
        browser-bridge tabs --format json
    """
    from .cdp import RemoteCommandClient

    config = CdpConfig.from_env()
    if cdp_host is not None:
        config.host = cdp_host
    if cdp_port is not None:
        config.port = cdp_port

    async def fetch() -> list[dict[str, str]]:
        client = RemoteCommandClient(config)
        try:
            return [page.summary() for page in await client.list_pages()]
        finally:
            await client.close()

    try:
        pages = asyncio.run(fetch())
    except BridgeError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(pages, indent=2, ensure_ascii=False))
        return

    if not pages:
        click.echo("No tabs found.")
        return

    click.echo(f"{'ID':<34} {'Title':<30} {'URL':<40}")
    click.echo("-" * 106)
    for page in pages:
        click.echo(f"{page['id']:<34} {truncate(page['title'], 30):<30} {truncate(page['url'], 40):<40}")

    click.echo(f"\nTotal: {len(pages)} tab(s)")


if __name__ == "__main__":
    main()
