"""Tests for the command-line interface."""

import json

import pytest

from dca_backtester import cli


@pytest.fixture(autouse=True)
def no_log_setup(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)
    monkeypatch.delenv("LOG_DIR", raising=False)


class TestParser:

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_common_options(self):
        args = cli.build_parser().parse_args(["optimize", "SOL", "--seed", "3", "--workers", "2", "--json"])
        assert args.command == "optimize"
        assert args.symbol == "SOL"
        assert args.seed == 3
        assert args.workers == 2
        assert args.json is True


class TestCommands:

    def test_run_json(self, capsys):
        assert cli.main(["run", "ADA", "--years", "1", "--seed", "1", "--json"]) == 0

        out = json.loads(capsys.readouterr().out)
        assert out["symbol"] == "ADA"
        assert out["candles_processed"] > 0

    def test_run_table(self, capsys):
        assert cli.main(["run", "ADA", "--years", "1", "--seed", "1"]) == 0
        assert capsys.readouterr().out.lstrip().startswith("ADA")

    def test_portfolio_json(self, capsys):
        code = cli.main(["portfolio", "--symbols", "ada,dot", "--years", "1", "--seed", "2", "--json"])
        assert code == 0

        out = json.loads(capsys.readouterr().out)
        assert [r["symbol"] for r in out["results"]] == ["ADA", "DOT"]
        assert out["portfolio"]["assets"] == 2

    def test_bad_config_exits_with_2(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("leverage: -1\n", encoding="utf-8")

        assert cli.main(["run", "ADA", "--config", str(path)]) == 2
        assert "invalid config" in capsys.readouterr().err

    def test_missing_config_exits_with_2(self, tmp_path):
        assert cli.main(["run", "ADA", "--config", str(tmp_path / "none.yaml")]) == 2
