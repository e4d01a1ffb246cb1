# PATH: tests/integration/test_paper_session.py
"""
Paper-mode CLI sessions: run_orchestrator.main against the demo market.
"""

import json
import logging

import pytest
import yaml
from click.testing import CliRunner

from config import CONFIG_DIR
from execution.journal import ExecutionJournal
from run_orchestrator import main

pytestmark = pytest.mark.integration

ENV_KEYS = (
    "FLASHARB_PRIVATE_KEY",
    "FLASHARB_RPC_URLS",
    "FLASHARB_SETTLEMENT_ADDRESS",
    "FLASHARB_CHAIN_ID",
)


def _close_all_handlers():
    for handler in logging.root.handlers[:]:
        handler.close()
        logging.root.removeHandler(handler)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    yield
    _close_all_handlers()


@pytest.fixture
def config_file(tmp_path):
    data = yaml.safe_load((CONFIG_DIR / "orchestrator.yaml").read_text(encoding="utf-8"))
    data["orchestrator"]["journal_path"] = str(tmp_path / "journal.jsonl")
    data["settlement"]["market_file"] = str(CONFIG_DIR / "paper_market.yaml")
    path = tmp_path / "orchestrator.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def _run(*args):
    result = CliRunner().invoke(main, list(args))
    assert result.exit_code == 0, result.output
    return result


class TestPaperSession:
    def test_demo_opportunities(self, config_file, tmp_path):
        result = _run("--config", str(config_file), "--log-level", "ERROR")
        summary = json.loads(result.output)

        assert summary["mode"] == "paper"
        outcomes = {r["opportunity_id"]: r for r in summary["results"]}
        assert outcomes["weth-tri-1"]["success"] is True
        assert outcomes["weth-tri-1"]["tx_hash"].startswith("0x")
        assert outcomes["weth-roundtrip-loss"]["success"] is False
        assert outcomes["weth-roundtrip-loss"]["error_code"] == "RISK_DISALLOWED"

        assert summary["metrics"]["total_executions"] == len(outcomes)
        assert summary["risk"]["outstanding_tickets"] == 0

        records = ExecutionJournal.load(tmp_path / "journal.jsonl")
        assert len(records) == len(outcomes)

    def test_opportunity_file_and_strategy_override(self, config_file, tmp_path):
        opportunities = tmp_path / "opps.yaml"
        opportunities.write_text(
            yaml.safe_dump([{
                "id": "custom-1",
                "asset": "WETH",
                "amount": "2",
                "path": [
                    ["uni_weth_usdc_500", "USDC"],
                    ["curve_usdc_dai", "DAI"],
                    ["sushi_dai_weth", "WETH"],
                ],
            }]),
            encoding="utf-8",
        )

        result = _run(
            "--config", str(config_file),
            "--opportunities", str(opportunities),
            "--strategy", "conservative",
            "--log-level", "ERROR",
        )
        summary = json.loads(result.output)

        assert [r["opportunity_id"] for r in summary["results"]] == ["custom-1"]

    def test_structured_log_file(self, config_file, tmp_path):
        log_file = tmp_path / "session.log"

        _run("--config", str(config_file), "--no-json-logs", "--log-file", str(log_file))
        _close_all_handlers()

        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        messages = [line["message"] for line in lines]
        assert "Starting orchestrator session" in messages
        assert all(line["logger"].startswith("flasharb.") for line in lines)


class TestSessionErrors:
    def test_live_mode_without_endpoints_fails_validation(self, config_file):
        result = CliRunner().invoke(main, ["--config", str(config_file), "--mode", "live", "--log-level", "ERROR"])

        assert result.exit_code == 1

    def test_missing_config_file(self, tmp_path):
        result = CliRunner().invoke(main, ["--config", str(tmp_path / "nope.yaml"), "--log-level", "ERROR"])

        assert result.exit_code == 1
