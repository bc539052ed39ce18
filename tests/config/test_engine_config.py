"""
Tests for configuration loading and validation.

Covers:
- Bundled default configuration
- Environment overrides
- Rejection of invalid settings (fatal at startup, never per call)
"""

from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from ctru_config import DEFAULT_CONFIG_FILE, get_active_config, parse_engine_config
from ctru_config.loader import ENV_CONFIG_FILE, ENV_DATABASE_URL, ENV_FALLBACK_RATE
from ctru_config.schema import EngineConfig
from ctru_kernel.domain.classification import ACTIVE_STATES, UnitState
from ctru_kernel.exceptions import ConfigurationError, MissingFallbackRateError
from ctru_services.engine import CtruEngine


def _write(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "ctru.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultConfig:
    def test_bundled_defaults(self):
        config = get_active_config(DEFAULT_CONFIG_FILE, env={})

        assert config.fallback_exchange_rate == Decimal("3.70")
        assert config.local_currency == "PEN"
        assert config.source_currency == "USD"
        assert config.freight_expense_type == "freight"
        assert config.active_states == ACTIVE_STATES
        assert config.auto_recalculate_on_expense is True
        assert config.config_source == str(DEFAULT_CONFIG_FILE)

    def test_config_trace_emitted(self, captured_logs):
        get_active_config(DEFAULT_CONFIG_FILE, env={})

        traces = [r for r in captured_logs() if r["message"] == "CTRU_CONFIG_TRACE"]
        assert traces[-1]["fallback_exchange_rate"] == "3.70"


class TestEnvironment:
    def test_config_file_from_environment(self, tmp_path):
        path = _write(tmp_path, {"engine": {"fallback_exchange_rate": "4.10"}})

        config = get_active_config(env={ENV_CONFIG_FILE: str(path)})

        assert config.fallback_exchange_rate == Decimal("4.10")

    def test_overrides(self, tmp_path):
        path = _write(tmp_path, {"engine": {"fallback_exchange_rate": "4.10"}})

        config = get_active_config(
            path,
            env={ENV_FALLBACK_RATE: "3.95", ENV_DATABASE_URL: "sqlite+pysqlite:///x.db"},
        )

        assert config.fallback_exchange_rate == Decimal("3.95")
        assert config.database_url == "sqlite+pysqlite:///x.db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml", env={})


class TestValidation:
    @pytest.mark.parametrize("rate", [None, 0, "-1", "abc", True])
    def test_fallback_rate_required(self, rate):
        with pytest.raises(MissingFallbackRateError):
            parse_engine_config({"engine": {"fallback_exchange_rate": rate}})

    def test_missing_fallback_rate(self):
        with pytest.raises(MissingFallbackRateError):
            parse_engine_config({"engine": {"local_currency": "PEN"}})

    def test_terminal_state_cannot_be_active(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_engine_config(
                {"engine": {"fallback_exchange_rate": "3.7", "active_states": ["sold"]}}
            )
        assert exc_info.value.setting == "active_states"

    @pytest.mark.parametrize(
        "engine, setting",
        [
            ({"local_currency": "ZZZ"}, "local_currency"),
            ({"freight_expense_type": " "}, "freight_expense_type"),
            ({"active_states": []}, "active_states"),
            ({"active_states": ["lost"]}, "active_states"),
            ({"auto_recalculate_on_expense": "yes"}, "auto_recalculate_on_expense"),
            ({"presentation_decimal_places": 12}, "presentation_decimal_places"),
        ],
    )
    def test_invalid_settings(self, engine, setting):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_engine_config({"engine": {"fallback_exchange_rate": "3.7", **engine}})
        assert exc_info.value.setting == setting

    def test_invalid_log_level(self):
        with pytest.raises(ConfigurationError):
            parse_engine_config(
                {"engine": {"fallback_exchange_rate": "3.7"}, "logging": {"level": "LOUD"}}
            )

    def test_custom_active_states(self):
        config = parse_engine_config(
            {"engine": {"fallback_exchange_rate": "3.7", "active_states": ["reserved"]}}
        )
        assert config.active_states == frozenset({UnitState.RESERVED})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            get_active_config(path, env={})


class TestEngineStartup:
    def test_engine_rejects_missing_fallback_at_construction(self, session_factory):
        config = EngineConfig(fallback_exchange_rate=Decimal("0"))
        with pytest.raises(MissingFallbackRateError):
            CtruEngine(config, session_factory=session_factory)
