"""Tests for the CLI entry point and console formatting."""

import json

import pytest

from yieldforge.allocation.engine import AllocationEngine
from yieldforge.cli.report import format_allocation, format_backtest
from yieldforge.main import _run_cli
from yieldforge.strategy.models import OpportunityRecord
from yieldforge.strategy.registry import default_registry


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ["YF_DEFAULT_STRATEGY", "YF_INITIAL_CAPITAL", "YF_INVESTMENT_AMOUNT", "LOG_LEVEL"]:
        monkeypatch.delenv(var, raising=False)


def _write(tmp_path, name, payload):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


_OPPORTUNITIES = [
    {"name": "A", "apy": 0.04, "tvl": 2e9, "audited": True, "age": 1000, "protocol": "compound"},
]

_SNAPSHOTS = {
    "snapshots": [
        {"timestamp": "2025-01-01T00:00:00Z", "prices": {"A": 1.0},
         "protocols": _OPPORTUNITIES, "signals": {"momentum": 0.2}},
        {"timestamp": "2025-01-02T00:00:00Z", "prices": {"A": 1.05},
         "protocols": _OPPORTUNITIES},
    ]
}


class TestFormatting:
    def test_format_allocation(self, capsys):
        result = AllocationEngine(default_registry()).optimize(
            "conservative", [OpportunityRecord.from_dict(_OPPORTUNITIES[0])], 1000,
        )
        output = format_allocation(result)
        assert "conservative allocation" in output
        assert "Protocols:       1" in output
        assert "A" in capsys.readouterr().out

    def test_format_backtest_missing_fields(self):
        output = format_backtest({"strategy": "moderate"})
        assert "moderate backtest" in output
        assert "Risk rating:     N/A" in output


class TestRunCli:
    def test_allocate_text(self, tmp_path, capsys):
        path = _write(tmp_path, "opps.json", _OPPORTUNITIES)
        code = _run_cli([
            "--mode", "allocate", "--input", path,
            "--strategy", "conservative", "--amount", "1000",
        ])
        assert code == 0
        assert "$250.00" in capsys.readouterr().out

    def test_allocate_json_uses_config_amount(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("YF_INVESTMENT_AMOUNT", "2000")
        path = _write(tmp_path, "opps.json", {"opportunities": _OPPORTUNITIES})
        _run_cli([
            "--mode", "allocate", "--input", path,
            "--strategy", "conservative", "--format", "json",
        ])
        data = json.loads(capsys.readouterr().out)
        assert data["total_amount"] == 2000
        assert data["entries"][0]["amount"] == 500

    def test_backtest_csv(self, tmp_path, capsys):
        path = _write(tmp_path, "snaps.json", _SNAPSHOTS)
        _run_cli([
            "--mode", "backtest", "--input", path,
            "--strategy", "conservative", "--format", "csv",
        ])
        lines = capsys.readouterr().out.strip().split("\n")
        assert lines[0].startswith("Strategy,Total Return")
        assert lines[1].startswith("conservative,")
        assert lines[1].endswith(",1")

    def test_backtest_text(self, tmp_path, capsys):
        path = _write(tmp_path, "snaps.json", _SNAPSHOTS)
        _run_cli(["--mode", "backtest", "--input", path, "--strategy", "conservative"])
        assert "conservative backtest" in capsys.readouterr().out

    def test_input_required(self):
        with pytest.raises(SystemExit):
            _run_cli(["--mode", "allocate"])
