"""Tests for config — WAGER_* environment loading."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from config import configure_logging, load_bet_settings


_VARS = (
    "WAGER_BANKROLL", "WAGER_RISK_TOLERANCE", "WAGER_MAX_TOTAL_EXPOSURE",
    "WAGER_MIN_OVERLAY_PCT", "WAGER_SCORE_MODEL", "WAGER_PAPER_MODE", "WAGER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    # setenv first so teardown also removes anything a .env file loads
    for name in _VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestLoadBetSettings:
    def test_defaults(self):
        s = load_bet_settings()
        assert s.bankroll == 1000.0
        assert s.risk_tolerance == "moderate"
        assert s.max_total_exposure == 0.10
        assert s.score_model == "v1"
        assert s.paper_mode is True

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("WAGER_BANKROLL", "2500")
        monkeypatch.setenv("WAGER_RISK_TOLERANCE", "aggressive")
        monkeypatch.setenv("WAGER_PAPER_MODE", "false")
        s = load_bet_settings()
        assert s.bankroll == 2500.0
        assert s.sizing_config.kelly_fraction == "half"
        assert s.paper_mode is False

    def test_bad_number_falls_back(self, monkeypatch):
        monkeypatch.setenv("WAGER_MAX_TOTAL_EXPOSURE", "lots")
        assert load_bet_settings().max_total_exposure == 0.10

    def test_env_file(self, tmp_path):
        env_file = tmp_path / "wager.env"
        env_file.write_text("WAGER_MIN_OVERLAY_PCT=25\n")
        assert load_bet_settings(str(env_file)).min_overlay_pct == 25.0


class TestConfigureLogging:
    def test_does_not_raise_on_unknown_level(self):
        configure_logging("chatty")
        assert logging.getLogger().level is not None
