"""MCP server bridge for the run reporter's control server.

This exposes a small tool surface for a remote client to:
- prepare a run from an execution config and inspect the prepared tree
- run it, receiving every lifecycle event as a log notification
- poll the sequenced event stream and fetch the failure list
- build the report for the last run
- shut the server process down

Transport: stdio (local-first) or HTTP SSE.
"""
from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import anyio
import mcp.types as types
import uvicorn
from mcp.server import InitializationOptions, Server
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route

from config import ReporterConfig, load_config
from control_server import ControlServer, Runner, resolve_runner_factory
from exceptions import ServerStateError
from notifications import NotificationEvent
from reporters import ReportAssembler, ReportData, build_navigation_tree

logger = logging.getLogger("run_reporter_mcp")
logger.propagate = False

SERVER_VERSION = "0.1.0"
EVENT_LOGGER = "run_reporter.events"
SHUTDOWN_POLL_SECONDS = 0.5


class SessionForwarder:
    """Event subscriber that pushes each event to an MCP client session.

    Must be called from a worker thread started by ``anyio.to_thread``; it
    blocks that thread until the notification has been sent.
    """

    def __init__(self, session: Any):
        self.session = session

    def on_event(self, event: NotificationEvent) -> None:
        anyio.from_thread.run(self._send, event)

    async def _send(self, event: NotificationEvent) -> None:
        await self.session.send_log_message(
            level="info",
            data=event.to_transport(),
            logger=EVENT_LOGGER,
        )


class ReporterMCPServer:
    """Glue layer between MCP and the control server."""

    def __init__(self, config: ReporterConfig, control: Optional[ControlServer] = None) -> None:
        self.config = config
        self.server = Server(
            config.server.name,
            instructions="Prepare and run executions, follow their events and build reports",
        )
        self.control = control or ControlServer(
            runner_factory=self._create_runner,
            source=config.server.name,
            event_log_size=config.server.event_log_size,
            logger=logger,
        )
        self.log_level: types.LoggingLevel = "info"
        self._register_handlers()

    def _create_runner(self) -> Runner:
        factory = resolve_runner_factory(self.config.server.runner_factory)
        return factory()

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return [
                types.Tool(
                    name="prepare_run",
                    description="Prepare a run from an execution config; returns the prepared tree",
                    inputSchema={
                        "type": "object",
                        "properties": {"config": {"type": "object", "additionalProperties": True}},
                    },
                ),
                types.Tool(
                    name="run",
                    description="Run the prepared execution; events are pushed as log notifications",
                    inputSchema={"type": "object", "properties": {}},
                ),
                types.Tool(
                    name="get_failures",
                    description="List failures of the current or last run",
                    inputSchema={"type": "object", "properties": {}},
                ),
                types.Tool(
                    name="get_events",
                    description="Events with a sequence number greater than 'since'",
                    inputSchema={
                        "type": "object",
                        "properties": {"since": {"type": "integer", "minimum": 0}},
                    },
                ),
                types.Tool(
                    name="build_report",
                    description="Build the report for the last run",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "output_dir": {"type": "string"},
                            "title": {"type": "string"},
                        },
                    },
                ),
                types.Tool(
                    name="shutdown",
                    description="Stop the server process",
                    inputSchema={"type": "object", "properties": {}},
                ),
            ]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            logger.info("call_tool start: %s args=%s", name, arguments)
            try:
                session = self.server.request_context.session
                payload = await self.handle_tool(name, arguments or {}, session=session)
            except Exception as exc:
                logger.exception("Tool call failed: %s", name)
                payload = {"error": str(exc), "tool": name}

            logger.info("call_tool done: %s", name)
            return [types.TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]

        @self.server.set_logging_level()
        async def set_logging_level(level: types.LoggingLevel) -> None:
            logger.info("Client log level set to %s", level)
            self.log_level = level

    async def handle_tool(self, name: str, arguments: dict[str, Any], session: Any = None) -> Any:
        """Dispatch one tool call; errors propagate to the caller."""
        if name == "prepare_run":
            root = self.control.prepare(arguments.get("config") or {})
            return {
                "state": self.control.state.value,
                "node_count": root.node_count(),
                "tree": build_navigation_tree([root]),
            }
        if name == "run":
            root = await anyio.to_thread.run_sync(self._run_blocking, session)
            return {
                "state": self.control.state.value,
                "succeeded": not root.has_error(),
                "last_sequence": self.control.sequence.current,
                "tree": build_navigation_tree([root]),
            }
        if name == "get_failures":
            return [asdict(failure) for failure in self.control.get_failures()]
        if name == "get_events":
            since = int(arguments.get("since") or 0)
            return {
                "events": [e.to_transport() for e in self.control.events.events_since(since)],
                "last_sequence": self.control.sequence.current,
            }
        if name == "build_report":
            return self._build_report(arguments)
        if name == "shutdown":
            self.control.shutdown()
            return {"status": "shutting_down"}
        raise ValueError(f"Unknown tool: {name}")

    def _run_blocking(self, session: Any) -> Any:
        forwarder = SessionForwarder(session) if session is not None else None
        if forwarder is not None:
            self.control.subscribe(forwarder)
        try:
            return self.control.run()
        finally:
            if forwarder is not None:
                self.control.unsubscribe(forwarder)

    def _build_report(self, arguments: dict[str, Any]) -> dict[str, Any]:
        root = self.control.root_node
        if root is None:
            raise ServerStateError("build report", self.control.state.value)
        output_dir = Path(arguments.get("output_dir") or self.config.reporting.reports_folder)
        assembler = ReportAssembler(self.config.reporting, logger=logger)
        report_dir = assembler.build_report(
            ReportData(root_nodes=[root], output_dir=output_dir, title=arguments.get("title"))
        )
        return {
            "report_dir": str(report_dir),
            "report": (report_dir / "report_frame.html").resolve().as_uri(),
        }

    def initialization_options(self) -> InitializationOptions:
        return InitializationOptions(
            server_name=self.config.server.name,
            server_version=SERVER_VERSION,
            capabilities=self.server.get_capabilities(
                notification_options=self.server.notification_options,
                experimental_capabilities={},
            ),
            instructions=self.server.instructions,
        )

    async def serve_until_shutdown(self, serve: Callable[[], Awaitable[None]]) -> None:
        """Run ``serve`` until it returns or the shutdown latch is released."""
        async with anyio.create_task_group() as tg:

            async def watch_shutdown() -> None:
                # Bounded waits so no worker thread outlives the server
                while not await anyio.to_thread.run_sync(
                    self.control.wait_for_shutdown, SHUTDOWN_POLL_SECONDS
                ):
                    pass
                logger.info("Shutdown requested, stopping server")
                # Let the shutdown tool response reach the client first
                await anyio.sleep(0.2)
                tg.cancel_scope.cancel()

            tg.start_soon(watch_shutdown)
            await serve()
            tg.cancel_scope.cancel()

    async def serve_stdio(self) -> None:
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                initialization_options=self.initialization_options(),
            )

    async def serve_http(self, bind: str) -> None:
        host, _, port = bind.rpartition(":")
        transport = SseServerTransport("/messages")

        async def handle_sse(request):
            async with transport.connect_sse(request.scope, request.receive, request._send) as streams:
                await self.server.run(
                    streams[0],
                    streams[1],
                    initialization_options=self.initialization_options(),
                )
            return Response()

        async def handle_root(request):
            return Response("run-reporter MCP server", media_type="text/plain")

        async def post_message(request):
            session_id = request.query_params.get("session_id")
            if not session_id:
                return Response("Accepted", status_code=202)
            await transport.handle_post_message(request.scope, request.receive, request._send)
            return Response("Accepted", status_code=202)

        routes = [
            Route("/", endpoint=handle_root, methods=["GET"]),
            Route("/sse", endpoint=handle_sse, methods=["GET"]),
            Route("/messages", endpoint=post_message, methods=["POST"]),
        ]

        app = Starlette(routes=routes)
        logger.info("HTTP SSE server listening on http://%s:%s", host, port)
        uv_config = uvicorn.Config(app, host=host, port=int(port), log_level="info")
        await uvicorn.Server(uv_config).serve()


def _setup_logging(log_file: Path, verbose: bool) -> None:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"))
        # Replace any existing handlers to avoid writing to stdout/stderr (which breaks MCP stdio)
        level = logging.DEBUG if verbose else logging.INFO
        logging.basicConfig(level=level, handlers=[handler], force=True)
        logger.handlers = [handler]
        logger.setLevel(level)
        logging.getLogger("mcp").setLevel(logging.INFO)
        logging.getLogger("anyio").setLevel(logging.WARNING)
        logger.info("MCP server logging to %s", log_file)
    except OSError:
        logger.exception("Failed to set up file logging")


def main() -> None:
    parser = argparse.ArgumentParser(description="Run reporter MCP server (stdio or HTTP SSE)")
    parser.add_argument("--http", help="Run HTTP SSE server on host:port (e.g., 127.0.0.1:8765)")
    parser.add_argument("--config", help="Path to config file (default: config.json if exists)")
    parser.add_argument("--runner-factory", help="Runner factory as package.module:attribute")
    parser.add_argument("--log-file", help="Log file path")
    parser.add_argument("--verbose", "-v", action="store_true", default=None, help="Debug logging")
    args = parser.parse_args()

    config = load_config(
        Path(args.config) if args.config else None,
        {
            "http": args.http,
            "runner_factory": args.runner_factory,
            "log_file": args.log_file,
            "verbose": args.verbose,
        },
    )
    _setup_logging(config.server.log_file, config.verbose)

    srv = ReporterMCPServer(config)

    async def run() -> None:
        if config.server.http_bind:
            await srv.serve_until_shutdown(lambda: srv.serve_http(config.server.http_bind))
        else:
            await srv.serve_until_shutdown(srv.serve_stdio)

    try:
        anyio.run(run)
    except Exception:
        logger.exception("MCP server crashed")
        raise
    logger.info("MCP server stopped")


if __name__ == "__main__":
    main()
