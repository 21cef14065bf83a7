"""설정 로드 테스트."""

import json
from pathlib import Path

import pytest

from signal_allocator.core.errors import ValidationError
from signal_allocator.utils.config import AllocatorConfig, deep_merge, load_config

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "portfolio_strategies.yaml"


class TestDeepMerge:
    def test_nested_keys_are_merged(self) -> None:
        base = {"risk_management": {"risk_target_pct": 0.01, "atr_period": 14}, "log_level": "INFO"}
        merged = deep_merge(base, {"risk_management": {"risk_target_pct": 0.02}})
        assert merged == {"risk_management": {"risk_target_pct": 0.02, "atr_period": 14}, "log_level": "INFO"}

    def test_base_is_not_mutated(self) -> None:
        base = {"strategies": {"ma_trend": {"weight": 0.5}}}
        deep_merge(base, {"strategies": {"ma_trend": {"weight": 1.0}}})
        assert base == {"strategies": {"ma_trend": {"weight": 0.5}}}

    def test_non_dict_value_replaces(self) -> None:
        merged = deep_merge({"tickers": ["SPY", "QQQ"]}, {"tickers": ["IWM"]})
        assert merged == {"tickers": ["IWM"]}


class TestLoadConfig:
    def test_default_mode(self) -> None:
        config = load_config(CONFIG_PATH)

        assert config.trading_mode == "default"
        assert config.risk.risk_target_pct == 0.01
        assert config.risk.max_position_pct == 0.10
        assert config.weights == {"ma_trend": 0.5, "ma_cross": 0.3}
        assert "manual" not in config.enabled_strategies

    def test_paper_mode_overrides_risk_only(self) -> None:
        config = load_config(CONFIG_PATH, trading_mode="paper")

        assert config.risk.risk_target_pct == 0.02
        assert config.risk.atr_period == 14
        assert set(config.enabled_strategies) == {"ma_trend", "ma_cross"}

    def test_live_mode_disables_strategy(self) -> None:
        config = load_config(CONFIG_PATH, trading_mode="live")

        assert config.risk.max_position_pct == 0.05
        assert config.weights == {"ma_trend": 0.5}
        # 모드 섹션에 없는 값은 default 유지
        assert config.strategies["ma_cross"].params["slow_period"] == 60

    def test_override_is_applied_last(self) -> None:
        config = load_config(
            CONFIG_PATH,
            trading_mode="paper",
            override={"strategies": {"manual": {"enabled": True, "params": {"signals": {"TSLA": -0.5}}}}},
        )

        assert config.weights["manual"] == 0.2
        assert config.risk.risk_target_pct == 0.02
        assert "TSLA" in config.strategy_universe()

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = load_config(tmp_path / "missing.yaml")

        assert config.risk.risk_target_pct == 0.01
        assert config.cache.max_workers == 4
        assert config.strategies == {}

    def test_json_document(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "default": {"strategies": {"manual": {"enabled": True, "weight": 1.0}}},
            "live": {"risk_management": {"risk_target_pct": 0.003}},
        }))

        config = load_config(path, trading_mode="live")

        assert config.risk.risk_target_pct == 0.003
        assert config.weights == {"manual": 1.0}

    def test_unknown_keys_are_ignored(self) -> None:
        config = AllocatorConfig.from_dict({"risk_management": {"risk_target_pct": 0.01, "leverage": 3}})
        assert config.risk.risk_target_pct == 0.01

    def test_strategy_universe(self) -> None:
        config = load_config(CONFIG_PATH)
        assert config.strategy_universe() == ["GLD", "IWM", "QQQ", "SPY", "TLT"]

    def test_to_dict_round_trips_through_from_dict(self) -> None:
        config = load_config(CONFIG_PATH, trading_mode="live")
        assert AllocatorConfig.from_dict(config.to_dict(), "live") == config


class TestValidate:
    def test_shipped_config_is_valid(self) -> None:
        for mode in ("default", "paper", "live"):
            load_config(CONFIG_PATH, trading_mode=mode).validate()

    @pytest.mark.parametrize("risk", [
        {"risk_target_pct": 0},
        {"risk_target_pct": 1.5},
        {"max_position_pct": 0},
        {"atr_period": 0},
        {"max_conviction": 0},
    ])
    def test_invalid_risk(self, risk: dict) -> None:
        config = AllocatorConfig.from_dict({"risk_management": risk})
        with pytest.raises(ValidationError):
            config.validate()

    @pytest.mark.parametrize("weight", [-0.1, 1.5, float("nan")])
    def test_invalid_weight(self, weight: float) -> None:
        config = AllocatorConfig.from_dict({"strategies": {"manual": {"enabled": True, "weight": weight}}})
        with pytest.raises(ValidationError, match="manual"):
            config.validate()
