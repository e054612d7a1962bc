"""
Unit tests for the CLI commands, run against the demo mesh.
"""

import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from svcnav.cli.main import main
from svcnav.core.demo import DemoManager, StaticMetricsSource
from svcnav.metrics.queries import QueryKind


@pytest.fixture
def run():
    runner = CliRunner()

    def _invoke(*args):
        with runner.isolated_filesystem():
            return runner.invoke(main, list(args))

    return _invoke


class TestTreeCommand:
    def test_text_output(self, run):
        result = run("tree", "--demo")

        assert result.exit_code == 0
        assert "Edge.Gateway" in result.output
        assert "payments-adapter" in result.output

    def test_json_output(self, run):
        result = run("tree", "--demo", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["environment"] == "prod"
        assert data["window"] == "5m"
        assert data["stats"]["total_edges"] == 8
        assert [r["id"] for r in data["roots"]] == ["edge::gateway", "reporting::reporting"]
        gateway = data["roots"][0]
        assert gateway["status"] == "degraded"
        assert [c["id"] for c in gateway["children"]] == [
            "default::auth-service",
            "default::billing-service",
        ]

    def test_depth_limit(self, run):
        result = run("tree", "--demo", "--depth", "1")

        assert result.exit_code == 0
        assert "more" in result.output
        assert "postgres-auth" not in result.output

    def test_unknown_environment(self, run):
        result = run("tree", "--demo", "-e", "staging")

        assert result.exit_code == 1
        assert "Unknown environment" in result.output

    def test_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"environments": ["live"], "default_environment": "live"}))

        result = CliRunner().invoke(main, ["-c", str(path), "tree", "--demo", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["environment"] == "live"

    def test_missing_config_file(self, tmp_path):
        result = CliRunner().invoke(main, ["-c", str(tmp_path / "nope.yaml"), "tree", "--demo"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestColumnsCommand:
    def test_drill_down_json(self, run):
        result = run("columns", "--demo", "-s", "edge::gateway", "-s", "default::auth-service", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["path"] == ["edge::gateway", "default::auth-service"]
        assert [len(c) for c in data["columns"]] == [2, 2, 2]
        assert data["columns"][0][0]["selected"] is True
        assert data["columns"][0][0]["edge"] is None
        auth = data["columns"][1][0]
        assert auth["id"] == "default::auth-service"
        assert auth["edge"]["rps"] == 30
        assert data["details_edge"] == "edge::gateway->default::auth-service"
        assert data["details"][0]["path"] == "/token"

    def test_max_columns(self, run):
        result = run("columns", "--demo", "-s", "edge::gateway", "--max-columns", "1", "--json")

        assert result.exit_code == 0
        assert len(json.loads(result.output)["columns"]) == 1

    def test_text_output(self, run):
        result = run("columns", "--demo", "-s", "edge::gateway")

        assert result.exit_code == 0
        assert "Roots" in result.output
        assert "rps" in result.output

    def test_invalid_selection(self, run):
        result = run("columns", "--demo", "-s", "default::auth-service")

        assert result.exit_code == 1
        assert "not in column 0" in result.output


class TestDetailsCommand:
    def test_json(self, run):
        result = run("details", "edge::gateway", "default::auth-service", "--demo", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["edge"] == "edge::gateway->default::auth-service"
        assert data["metrics"]["error_rate"] == pytest.approx(0.05)
        assert [p["path"] for p in data["paths"]] == ["/token", "/userinfo"]

    def test_relaxed_fallback(self, run):
        result = run("details", "reporting::reporting", "etl-jobs", "--demo", "--json")

        assert result.exit_code == 0
        assert json.loads(result.output)["paths"][0]["path"] == "/run"

    def test_text_output(self, run):
        result = run("details", "billing-service", "payments-adapter", "--demo")

        assert result.exit_code == 0
        assert "/charge" in result.output
        assert "502" in result.output

    def test_no_error_data(self, run):
        result = run("details", "billing-service", "postgres-billing", "--demo")

        assert result.exit_code == 0
        assert "No error data" in result.output

    def test_unknown_node(self, run):
        result = run("details", "ghost", "default::auth-service", "--demo")

        assert result.exit_code == 1
        assert "Node not found: ghost" in result.output

    def test_not_an_edge(self, run):
        result = run("details", "edge::gateway", "payments-adapter", "--demo")

        assert result.exit_code == 1
        assert "No edge between" in result.output


class TestGroupsCommand:
    def test_groups(self, run):
        result = run("groups", "--demo", "--depth", "1", "--all")

        assert result.exit_code == 0
        assert "(all)" in result.output
        assert "Edge" in result.output
        assert "Reporting" in result.output
        assert "critical" in result.output


class TestBackendSource:
    @patch("svcnav.cli.utils.PrometheusClient")
    def test_uses_configured_backend(self, mock_client_cls, run, monkeypatch):
        monkeypatch.setenv("SVCNAV_PROMETHEUS_URL", "http://prom.internal/api/v1/query")
        mock_client_cls.return_value = DemoManager().build_source()

        result = run("tree", "--json", "-w", "15m")

        assert result.exit_code == 0
        (backend,), _ = mock_client_cls.call_args
        assert backend.url == "http://prom.internal/api/v1/query"
        assert json.loads(result.output)["window"] == "15m"

    @patch("svcnav.cli.utils.PrometheusClient")
    def test_refresh_failure_exits(self, mock_client_cls, run):
        mock_client_cls.return_value = StaticMetricsSource(failures=[QueryKind.TOTAL])

        result = run("tree")

        assert result.exit_code == 1
        assert "Failed to load metrics" in result.output
