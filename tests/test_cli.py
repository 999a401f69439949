"""
Tests for the skiprate CLI
"""

import csv
import json
from unittest.mock import patch

import pytest

from conftest import ENDPOINT, MIXED, SCENARIO_A, FakeSender, block_production_body, json_response
from skiprate import __version__
from skiprate.cli import build_config, cli
from skiprate.client import BlockProductionClient
from skiprate.config import ClientConfig
from skiprate.transport import RpcTransport

HEALTHY = json_response({"jsonrpc": "2.0", "id": 1, "result": "ok"})


@pytest.fixture(autouse=True)
def isolated_cli(monkeypatch):
    for name in ("RPC_ENDPOINT", "TIMEOUT", "RETRY_ATTEMPTS", "RATE_LIMIT",
                 "MAX_CONCURRENT_REQUESTS", "RETRY_BACKOFF", "OVERALL_TIMEOUT", "USER_AGENT"):
        monkeypatch.delenv(f"SKIPRATE_{name}", raising=False)
    with patch("skiprate.cli.setup_logging") as setup_logging:
        yield setup_logging


@pytest.fixture
def scripted(monkeypatch):
    """Route the CLI's clients through a scripted sender"""
    def install(items):
        sender = FakeSender(items)

        def factory(config):
            return BlockProductionClient(config, transport=RpcTransport(config, sender=sender))

        monkeypatch.setattr("skiprate.cli.BlockProductionClient", factory)
        return sender
    return install


def invoke(runner, *args):
    return runner.invoke(cli, ["--endpoint", ENDPOINT, *args], obj={})


def test_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("health", "report", "validators"):
        assert command in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_debug_flag_configures_logging(runner, scripted, isolated_cli):
    scripted([HEALTHY])
    runner.invoke(cli, ["--debug", "--endpoint", ENDPOINT, "health"], obj={})
    isolated_cli.assert_called_once_with(True)


def test_health_ok(runner, scripted):
    sender = scripted([HEALTHY])
    result = invoke(runner, "health")

    assert result.exit_code == 0
    assert "is healthy" in result.output
    assert sender.calls[0]["payload"]["method"] == "getHealth"
    assert sender.calls[0]["url"] == ENDPOINT


def test_health_failure_exits_nonzero(runner, scripted):
    scripted([json_response({}, status=503)])
    result = invoke(runner, "health")

    assert result.exit_code == 1
    assert "not healthy" in result.output


def test_report_quiet(runner, scripted):
    scripted([json_response(block_production_body(SCENARIO_A))])
    result = invoke(runner, "report", "--quiet")

    assert result.exit_code == 0
    assert "validators=4 slots=400 skip_rate=8.00%" in result.output
    assert "concerning=2" in result.output


def test_report_table(runner, scripted):
    scripted([json_response(block_production_body(MIXED))])
    result = invoke(runner, "report")

    assert result.exit_code == 0
    assert "Network Overview" in result.output
    assert "Skip Rate Distribution" in result.output
    assert "Top Problematic Validators" in result.output


def test_report_json_to_file(runner, scripted, tmp_path):
    sender = scripted([json_response(block_production_body(SCENARIO_A, 100, 200))])
    path = tmp_path / "report.json"

    result = invoke(runner, "report", "--first-slot", "100", "--last-slot", "200",
                    "--format", "json", "--output", str(path))

    assert result.exit_code == 0
    data = json.loads(path.read_text())
    assert data["statistics"]["total_validators"] == 4
    assert data["slot_range"] == {"first_slot": 100, "last_slot": 200}
    assert sender.calls[0]["payload"]["params"] == [{"range": {"firstSlot": 100, "lastSlot": 200}}]


def test_report_needs_both_slot_bounds(runner, scripted):
    sender = scripted([json_response(block_production_body(SCENARIO_A))])
    result = invoke(runner, "report", "--first-slot", "100")

    assert result.exit_code == 1
    assert "Invalid slot range" in result.output
    assert sender.calls == []


def test_report_reversed_range(runner, scripted):
    sender = scripted([json_response(block_production_body(SCENARIO_A))])
    result = invoke(runner, "report", "--first-slot", "2000", "--last-slot", "1000")

    assert result.exit_code == 1
    assert "InvalidSlotRangeError" in result.output
    assert sender.calls == []


def test_report_rpc_error(runner, scripted):
    body = {"jsonrpc": "2.0", "id": 2, "error": {"code": -32602, "message": "Invalid params"}}
    scripted([json_response(body)])
    result = invoke(runner, "report")

    assert result.exit_code == 1
    assert "RpcError" in result.output


def test_validators_csv_to_file(runner, scripted, tmp_path):
    scripted([json_response(block_production_body(MIXED))])
    path = tmp_path / "concerning.csv"

    result = invoke(runner, "validators", "--view", "concerning", "--format", "csv", "--output", str(path))

    assert result.exit_code == 0
    with open(path, newline="") as f:
        rows = list(csv.DictReader(f))
    assert [r["identity"] for r in rows] == ["tiny", "big_bad", "slow", "offline"]
    assert rows[-1]["category"] == "Offline"


def test_validators_limit(runner, scripted, tmp_path):
    scripted([json_response(block_production_body(MIXED))])
    path = tmp_path / "significant.json"

    result = invoke(runner, "validators", "--view", "significant", "--limit", "2",
                    "--format", "json", "--output", str(path))

    assert result.exit_code == 0
    assert [r["identity"] for r in json.loads(path.read_text())] == ["perfect", "big_ok"]


def test_validators_table(runner, scripted):
    scripted([json_response(block_production_body(MIXED))])
    result = invoke(runner, "validators", "--view", "offline")

    assert result.exit_code == 0
    assert "offline" in result.output


def test_validators_empty_view(runner, scripted):
    scripted([json_response(block_production_body(SCENARIO_A))])
    result = invoke(runner, "validators", "--view", "offline")

    assert result.exit_code == 0
    assert "No validators" in result.output


def test_unknown_view_is_rejected(runner, scripted):
    result = invoke(runner, "validators", "--view", "favourites")
    assert result.exit_code == 2


def test_invalid_endpoint_exits_nonzero(runner, scripted):
    sender = scripted([HEALTHY])
    result = runner.invoke(cli, ["--endpoint", "ftp://rpc.example.com", "health"], obj={})

    assert result.exit_code == 1
    assert "ConfigurationError" in result.output
    assert sender.calls == []


def test_build_config_precedence(tmp_path, monkeypatch):
    path = tmp_path / "skiprate.yaml"
    path.write_text("rpc_endpoint: https://file.example.com\ntimeout: 12\n")
    monkeypatch.setenv("SKIPRATE_RETRY_ATTEMPTS", "7")

    from_file = build_config(None, str(path), None)
    assert from_file.rpc_endpoint == "https://file.example.com"
    assert from_file.timeout == 12
    assert from_file.retry_attempts == 7

    overridden = build_config("https://flag.example.com", str(path), None)
    assert overridden.rpc_endpoint == "https://flag.example.com"
    assert overridden.timeout == 12


def test_build_config_preset_and_auto():
    assert build_config("https://rpc.example.com", None, "high_frequency").rate_limit == 50
    assert build_config("https://mainnet.helius-rpc.com", None, None).rate_limit == 20
    assert build_config(None, None, None) == ClientConfig()
