"""전략 레지스트리 및 기본 전략 테스트."""

from datetime import date

import pandas as pd
import pytest

from builders import make_bars
from signal_allocator.core.bar_store import BAR_COLUMNS
from signal_allocator.core.errors import ValidationError
from signal_allocator.core.trading_strategy import Direction, RunContext, TradingStrategy
from signal_allocator.data.memory_store import InMemoryBarStore
from signal_allocator.strategies import (
    create_strategy,
    list_strategies,
    register,
    validate_strategies,
)
from signal_allocator.strategies.ma_cross import MACrossStrategy
from signal_allocator.strategies.ma_trend import MATrendStrategy
from signal_allocator.strategies.manual import ManualStrategy

AS_OF = date(2024, 6, 14)


def frame(closes: list[float], volume: int = 1_000_000) -> pd.DataFrame:
    rows = [(date(2024, 1, 1), c, c + 1, c - 1, c, volume) for c in closes]
    return pd.DataFrame(rows, columns=BAR_COLUMNS)


class TestRegistry:
    def test_builtin_strategies_are_registered(self) -> None:
        assert {"ma_trend", "ma_cross", "manual"} <= set(list_strategies())

    def test_create_strategy(self) -> None:
        strategy = create_strategy("ma_trend", {"ma_period": 5})
        assert isinstance(strategy, MATrendStrategy)
        assert strategy.ma_period == 5
        assert strategy.params["sensitivity"] == 10.0

    def test_unknown_strategy(self) -> None:
        with pytest.raises(ValidationError, match="Unknown strategy"):
            create_strategy("does_not_exist")

    def test_validate_strategies(self) -> None:
        validate_strategies(["ma_trend", "manual"])
        with pytest.raises(ValidationError, match="nope"):
            validate_strategies(["ma_trend", "nope"])

    def test_register_rejects_non_strategy(self) -> None:
        with pytest.raises(TypeError):
            register("not_a_strategy")(dict)

    def test_register_rejects_name_clash(self) -> None:
        class Impostor(TradingStrategy):
            def generate_signals(self, context):
                return []

        with pytest.raises(ValueError, match="already registered"):
            register("manual")(Impostor)

    def test_reregistering_same_class_is_allowed(self) -> None:
        assert register("manual")(ManualStrategy) is ManualStrategy


class TestMATrendStrategy:
    def test_close_above_ma_is_long(self) -> None:
        strategy = MATrendStrategy({"ma_period": 3, "sensitivity": 1.0})

        signal = strategy.evaluate("AAPL", frame([10, 10, 10, 13]))

        # MA3 = 11, 이격도 2/11
        assert signal.direction is Direction.LONG
        assert signal.strength == pytest.approx(2 / 11)
        assert signal.strategy_id == "ma_trend"
        assert signal.metadata["ma"] == pytest.approx(11.0)

    def test_close_below_ma_is_short(self) -> None:
        signal = MATrendStrategy({"ma_period": 3}).evaluate("AAPL", frame([12, 12, 9]))
        assert signal.direction is Direction.SHORT

    def test_strength_is_capped(self) -> None:
        signal = MATrendStrategy({"ma_period": 2, "sensitivity": 100.0}).evaluate("AAPL", frame([10, 20]))
        assert signal.strength == 1.0

    def test_insufficient_data(self) -> None:
        assert MATrendStrategy({"ma_period": 20}).evaluate("AAPL", frame([10, 11])) is None

    def test_low_volume_is_filtered(self) -> None:
        strategy = MATrendStrategy({"ma_period": 2, "min_volume_threshold": 5_000})
        assert strategy.evaluate("AAPL", frame([10, 12], volume=100)) is None

    def test_flat_price_has_no_signal(self) -> None:
        assert MATrendStrategy({"ma_period": 3}).evaluate("AAPL", frame([10, 10, 10])) is None

    def test_generate_signals_reads_cached_bars(self) -> None:
        closes = [100 + i for i in range(25)]
        store = InMemoryBarStore(make_bars("SPY", AS_OF, 25, closes=closes))
        strategy = MATrendStrategy({"tickers": ["spy", "QQQ"], "ma_period": 20})

        signals = strategy.generate_signals(RunContext(as_of=AS_OF, store=store))

        # QQQ는 캐시가 없어서 시그널 없음
        assert [s.symbol for s in signals] == ["SPY"]
        assert signals[0].direction is Direction.LONG


class TestMACrossStrategy:
    def test_fast_must_be_shorter_than_slow(self) -> None:
        with pytest.raises(ValueError):
            MACrossStrategy({"fast_period": 10, "slow_period": 5})

    def test_is_above_ma(self) -> None:
        strategy = MACrossStrategy({"fast_period": 2, "slow_period": 4})

        above, fast_ma, slow_ma = strategy.is_above_ma(frame([10, 10, 14, 14]))

        assert above
        assert fast_ma == 14.0
        assert slow_ma == 12.0

    def test_is_above_ma_insufficient_data(self) -> None:
        strategy = MACrossStrategy({"fast_period": 2, "slow_period": 4})
        assert strategy.is_above_ma(frame([10, 11])) == (False, None, None)

    def test_downtrend_is_short(self) -> None:
        closes = [200 - i for i in range(60)]
        store = InMemoryBarStore(make_bars("QQQ", AS_OF, 60, closes=closes))
        strategy = MACrossStrategy({"tickers": ["QQQ"], "fast_period": 10, "slow_period": 50})

        signals = strategy.generate_signals(RunContext(as_of=AS_OF, store=store))

        assert len(signals) == 1
        assert signals[0].direction is Direction.SHORT
        assert 0 < signals[0].strength <= 1.0


class TestManualStrategy:
    def test_both_formats(self) -> None:
        strategy = ManualStrategy({"signals": {
            "msft": -0.5,
            "AAPL": {"direction": "long", "strength": 0.8},
            "ZERO": 0,
        }})

        signals = strategy.generate_signals(RunContext(as_of=AS_OF))

        assert [(s.symbol, s.direction, s.strength) for s in signals] == [
            ("AAPL", Direction.LONG, 0.8),
            ("MSFT", Direction.SHORT, 0.5),
        ]
        assert all(s.metadata["source"] == "manual" for s in signals)

    def test_invalid_direction(self) -> None:
        strategy = ManualStrategy({"signals": {"AAPL": {"direction": "sideways"}}})
        with pytest.raises(ValueError):
            strategy.generate_signals(RunContext(as_of=AS_OF))

    def test_no_signals(self) -> None:
        assert ManualStrategy().generate_signals(RunContext(as_of=AS_OF)) == []
