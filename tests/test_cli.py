"""Tests for studio_producer/cli.py -- argument handling and exit codes."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from studio_producer import cli
from studio_producer.models import SubagentName, SupervisorResult


def _supervisor(result):
    supervisor = MagicMock()
    supervisor.run = AsyncMock(return_value=result)
    supervisor.aclose = AsyncMock()
    return supervisor


def _result(success=True, **kwargs):
    return SupervisorResult(success=success, session_id=None, completed_stages=[],
                            message="Production complete", duration=0.5, **kwargs)


class TestMain:

    def test_no_request(self, monkeypatch, capsys):
        monkeypatch.delenv("STUDIO_REQUEST", raising=False)
        assert cli.main([]) == 2
        assert "no production request" in capsys.readouterr().err

    def test_request_from_env(self, monkeypatch):
        monkeypatch.setenv("STUDIO_REQUEST", "video about rivers")
        supervisor = _supervisor(_result())
        with patch("studio_producer.cli.build_supervisor", return_value=supervisor):
            assert cli.main(["--json"]) == 0
        assert supervisor.run.await_args.args[0] == "video about rivers"
        supervisor.aclose.assert_awaited_once()

    def test_json_output(self, capsys):
        with patch("studio_producer.cli.build_supervisor", return_value=_supervisor(_result())):
            code = cli.main(["--json", "video about owls"])
        assert code == 0
        out = json.loads(capsys.readouterr().out)
        assert out["success"] is True
        assert out["message"] == "Production complete"

    def test_failed_production_exit_code(self, capsys):
        result = _result(success=False, failed_stage=SubagentName.CONTENT, error="planner down")
        with patch("studio_producer.cli.build_supervisor", return_value=_supervisor(result)):
            assert cli.main(["--json", "x"]) == 1
        assert json.loads(capsys.readouterr().out)["failedStage"] == "content"

    def test_unexpected_error(self, capsys):
        supervisor = MagicMock()
        supervisor.run = AsyncMock(side_effect=RuntimeError("boom"))
        supervisor.aclose = AsyncMock()
        with patch("studio_producer.cli.build_supervisor", return_value=supervisor):
            assert cli.main(["--json", "x"]) == 1
        assert json.loads(capsys.readouterr().out) == {"success": False, "error": "boom"}
        supervisor.aclose.assert_awaited_once()

    def test_session_dir_uses_file_store(self, tmp_path):
        supervisor = _supervisor(_result())
        with patch("studio_producer.cli.build_supervisor", return_value=supervisor) as build:
            cli.main(["--json", "--session-dir", str(tmp_path), "x"])
        store = build.call_args.kwargs["store"]
        assert type(store).__name__ == "JsonFileSessionStore"
        assert store.directory == tmp_path
