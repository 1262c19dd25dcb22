"""Unit tests for the MCP tool dispatch."""
from __future__ import annotations

import threading
from pathlib import Path

import anyio
import pytest

from config import ReporterConfig
from control_server import ControlServer
from exceptions import RunnerFactoryError, ServerStateError
from mcp_server import EVENT_LOGGER, ReporterMCPServer


REMOTE_RUNNER_SOURCE = '''
from execution_tree import ExecutionNode, NodeType


class SingleNodeRunner:
    def prepare_execution_config(self, config):
        self.root = ExecutionNode(id=1, node_type=NodeType.ROOT, line=config["name"])
        return self.root

    def add_notifier(self, listener):
        pass

    def run(self):
        return self.root

    def get_failures(self):
        return []


def create_runner():
    return SingleNodeRunner()
'''


class FakeSession:
    """Records log notifications the way an MCP client would receive them."""

    def __init__(self):
        self.messages = []
        self.threads = set()

    async def send_log_message(self, level, data, logger=None, related_request_id=None):
        self.threads.add(threading.get_ident())
        self.messages.append({"level": level, "data": data, "logger": logger})


@pytest.fixture
def mcp_server(runner_factory) -> ReporterMCPServer:
    control = ControlServer(runner_factory, source="mcp-test")
    return ReporterMCPServer(ReporterConfig(), control=control)


def call(server: ReporterMCPServer, name: str, arguments=None, session=None):
    return anyio.run(server.handle_tool, name, arguments or {}, session)


class TestRunTools:
    """Tests for prepare_run, run, get_failures and get_events."""

    def test_prepare_run(self, mcp_server, runner_factory):
        result = call(mcp_server, "prepare_run", {"config": {"tags": "smoke"}})

        assert result["state"] == "configured"
        assert result["node_count"] == 4
        assert result["tree"]["children"][0]["data"]["attr"]["id"] == "1"
        assert runner_factory.runners[0].prepared_with == {"tags": "smoke"}

    def test_run(self, mcp_server):
        call(mcp_server, "prepare_run")
        result = call(mcp_server, "run")

        assert result["state"] == "idle"
        assert result["succeeded"] is False
        assert result["last_sequence"] == 9
        assert result["tree"]["data"]["icon"] == "imgF"

    def test_run_without_prepare(self, mcp_server):
        with pytest.raises(ServerStateError):
            call(mcp_server, "run")

    def test_get_failures(self, mcp_server):
        call(mcp_server, "prepare_run")
        call(mcp_server, "run")

        failures = call(mcp_server, "get_failures")
        assert failures == [
            {
                "node_id": 4,
                "message": 'expected <ok>\nbut was "locked"',
                "is_setup_or_teardown": False,
            }
        ]

    def test_get_events(self, mcp_server):
        call(mcp_server, "prepare_run")
        call(mcp_server, "run")

        everything = call(mcp_server, "get_events")
        assert [e["sequenceNumber"] for e in everything["events"]] == list(range(1, 10))
        assert everything["last_sequence"] == 9

        tail = call(mcp_server, "get_events", {"since": 8})
        assert len(tail["events"]) == 1
        assert tail["events"][0]["type"] == "ExecConfigComplete"
        assert tail["events"][0]["source"] == "mcp-test"

    def test_events_pushed_to_session(self, mcp_server):
        session = FakeSession()
        call(mcp_server, "prepare_run")
        call(mcp_server, "run", session=session)

        assert len(session.messages) == 9
        assert all(m["logger"] == EVENT_LOGGER for m in session.messages)
        assert session.messages[0]["data"]["type"] == "ExNode"
        assert session.messages[-1]["data"]["type"] == "ExecConfigComplete"
        numbers = [m["data"]["sequenceNumber"] for m in session.messages]
        assert numbers == sorted(numbers)

    def test_forwarder_removed_after_run(self, mcp_server):
        session = FakeSession()
        call(mcp_server, "prepare_run")
        call(mcp_server, "run", session=session)

        # Only the server's own event log stays subscribed
        assert mcp_server.control.channel.subscribers == [mcp_server.control.events]

    def test_forwarder_removed_after_failed_run(self, mcp_server, runner_factory):
        runner_factory.fail_with = RuntimeError("runner crashed")
        session = FakeSession()
        call(mcp_server, "prepare_run")

        with pytest.raises(RuntimeError):
            call(mcp_server, "run", session=session)

        assert session.messages[-1]["data"]["userData"]["succeeded"] is False
        assert len(mcp_server.control.channel.subscribers) == 1


class TestReportTool:
    """Tests for build_report."""

    def test_build_report(self, mcp_server, temp_dir: Path):
        call(mcp_server, "prepare_run")
        call(mcp_server, "run")

        result = call(mcp_server, "build_report", {"output_dir": str(temp_dir), "title": "Remote"})

        report_dir = Path(result["report_dir"])
        assert report_dir == temp_dir / "feature_report"
        assert (report_dir / "report_frame.html").is_file()
        assert result["report"].startswith("file://")

    def test_build_report_before_prepare(self, mcp_server):
        with pytest.raises(ServerStateError, match="build report"):
            call(mcp_server, "build_report")


class TestServerTools:
    """Tests for shutdown, unknown tools and runner factory resolution."""

    def test_shutdown(self, mcp_server):
        assert call(mcp_server, "shutdown") == {"status": "shutting_down"}
        assert mcp_server.control.is_shutdown

    def test_unknown_tool(self, mcp_server):
        with pytest.raises(ValueError, match="Unknown tool"):
            call(mcp_server, "explode")

    def test_unconfigured_runner_factory(self):
        server = ReporterMCPServer(ReporterConfig())
        with pytest.raises(RunnerFactoryError):
            call(server, "prepare_run")

    def test_configured_runner_factory(self, temp_dir: Path, monkeypatch):
        (temp_dir / "remote_runner_module.py").write_text(REMOTE_RUNNER_SOURCE, encoding="utf-8")
        monkeypatch.syspath_prepend(str(temp_dir))
        config = ReporterConfig.model_validate(
            {"server": {"runner_factory": "remote_runner_module:create_runner"}}
        )
        server = ReporterMCPServer(config)

        result = call(server, "prepare_run", {"config": {"name": "remote"}})
        assert result["node_count"] == 1
        assert result["tree"]["children"][0]["data"]["title"] == "remote"


class TestServeUntilShutdown:
    """Tests for the shutdown watcher around a transport."""

    def test_stops_serving_on_shutdown(self, mcp_server):
        async def main():
            with anyio.fail_after(10):
                async with anyio.create_task_group() as tg:
                    tg.start_soon(mcp_server.serve_until_shutdown, anyio.sleep_forever)
                    await anyio.sleep(0.05)
                    mcp_server.control.shutdown()

        anyio.run(main)
        assert mcp_server.control.is_shutdown

    def test_returns_when_transport_ends(self, mcp_server):
        async def serve():
            await anyio.sleep(0.01)

        async def main():
            with anyio.fail_after(10):
                await mcp_server.serve_until_shutdown(serve)

        anyio.run(main)
        assert not mcp_server.control.is_shutdown
