"""ATR 계산 및 변동성 사이징 테스트."""

from datetime import date

import pandas as pd
import pytest

from builders import UnreadableBarStore, make_bar, make_bars
from signal_allocator.allocation.sizing import VolatilitySizer, conviction_scale
from signal_allocator.allocation.volatility import average_true_range, true_ranges
from signal_allocator.core.bar_store import BAR_COLUMNS
from signal_allocator.core.positions import NetScore
from signal_allocator.data.memory_store import InMemoryBarStore

AS_OF = date(2024, 6, 14)


def to_frame(bars) -> pd.DataFrame:
    rows = [(b.trading_date, b.open, b.high, b.low, b.close, b.volume) for b in bars]
    return pd.DataFrame(rows, columns=BAR_COLUMNS)


def scores(**values: float) -> dict[str, NetScore]:
    return {symbol: NetScore(symbol, score) for symbol, score in values.items()}


class TestAverageTrueRange:
    def test_constant_bars(self) -> None:
        bars = to_frame(make_bars("AAPL", AS_OF, 15, close=50.0, spread=1.5))
        assert average_true_range(bars, 14) == pytest.approx(3.0)

    def test_gap_uses_previous_close(self) -> None:
        bars = to_frame([
            make_bar("AAPL", date(2024, 1, 2), close=100.0),
            make_bar("AAPL", date(2024, 1, 3), close=109.0),  # high 110, low 108
        ])
        assert list(true_ranges(bars)) == [10.0]
        assert average_true_range(bars, 1) == pytest.approx(10.0)

    def test_only_last_period_is_used(self) -> None:
        wide = make_bars("AAPL", date(2024, 5, 30), 10, spread=5.0)
        narrow = make_bars("AAPL", AS_OF, 11, spread=1.0)
        bars = to_frame(wide + narrow)
        assert average_true_range(bars, 10) == pytest.approx(2.0)

    def test_insufficient_history(self) -> None:
        bars = to_frame(make_bars("AAPL", AS_OF, 14))
        assert average_true_range(bars, 14) is None
        assert average_true_range(to_frame([]), 14) is None

    def test_invalid_period(self) -> None:
        with pytest.raises(ValueError):
            average_true_range(to_frame(make_bars("AAPL", AS_OF, 5)), 0)


class TestConvictionScale:
    def test_bounded_by_max(self) -> None:
        assert conviction_scale(2.5) == 1.0
        assert conviction_scale(-2.5, max_conviction=2.0) == 2.0

    def test_monotonic_in_magnitude(self) -> None:
        values = [conviction_scale(s) for s in (0.1, 0.3, 0.7, 1.0, 1.5)]
        assert values == sorted(values)
        assert conviction_scale(-0.3) == conviction_scale(0.3)


class TestVolatilitySizer:
    @pytest.fixture
    def store(self) -> InMemoryBarStore:
        return InMemoryBarStore(
            make_bars("AAPL", AS_OF, 20, close=5.0, spread=1.0)      # ATR 2
            + make_bars("MSFT", AS_OF, 20, close=5.0, spread=0.5)    # ATR 1
            + make_bars("SPY", AS_OF, 20, close=100.0, spread=1.0)   # ATR 2
            + make_bars("BBB", AS_OF, 20, close=10.0, spread=2.0)    # ATR 4
            + make_bars("NEW", AS_OF, 10, close=5.0)
            + make_bars("FLAT", AS_OF, 20, close=5.0, spread=0.0)
        )

    def test_target_value_is_inverse_to_atr(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store).size(scores(AAPL=1.0, MSFT=1.0), 100_000, 0.01, AS_OF)

        values = {p.symbol: p.target_value for p in result.positions}
        # 예산 1,000 / ATR 2 = 500
        assert values["AAPL"] == pytest.approx(500.0)
        assert values["MSFT"] == pytest.approx(1_000.0)
        assert values["MSFT"] == pytest.approx(2 * values["AAPL"])

    def test_double_atr_halves_exposure_at_any_price(self, store: InMemoryBarStore) -> None:
        # SPY 종가 100 / ATR 2, BBB 종가 10 / ATR 4
        result = VolatilitySizer(store, max_position_pct=1.0).size(scores(SPY=1.0, BBB=1.0), 100_000, 0.01, AS_OF)

        values = {p.symbol: p.target_value for p in result.positions}
        assert values["SPY"] == pytest.approx(500.0)
        assert values["BBB"] == pytest.approx(250.0)
        assert values["BBB"] == pytest.approx(values["SPY"] / 2)
        assert not any(p.metadata["capped"] for p in result.positions)
        assert result.positions[0].metadata["shares"] == pytest.approx(25.0)  # BBB: 250 / 10

    def test_short_position(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store).size(scores(AAPL=-0.5), 100_000, 0.01, AS_OF)

        position = result.positions[0]
        assert position.target_value == pytest.approx(-250.0)
        assert not position.is_long
        assert position.metadata["conviction_scale"] == 0.5

    def test_position_cap(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store, max_position_pct=0.10).size(scores(SPY=1.0), 100_000, 0.5, AS_OF)

        position = result.positions[0]
        assert position.target_value == pytest.approx(10_000.0)
        assert position.metadata["capped"] is True
        assert position.metadata["shares"] == pytest.approx(100.0)

    def test_insufficient_history_is_skipped(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store).size(scores(NEW=1.0, AAPL=1.0), 100_000, 0.01, AS_OF)

        assert [p.symbol for p in result.positions] == ["AAPL"]
        assert result.skipped == {"NEW": "insufficient_history"}

    def test_uncached_symbol_is_skipped(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store).size(scores(NVDA=1.0), 100_000, 0.01, AS_OF)
        assert result.positions == []
        assert result.skipped == {"NVDA": "insufficient_history"}

    def test_zero_atr_is_skipped(self, store: InMemoryBarStore) -> None:
        result = VolatilitySizer(store).size(scores(FLAT=1.0), 100_000, 0.01, AS_OF)
        assert result.skipped == {"FLAT": "zero_atr"}

    def test_store_read_failure_is_skipped(self) -> None:
        broken = UnreadableBarStore({"BAD"}, make_bars("AAPL", AS_OF, 20, close=5.0, spread=1.0))

        result = VolatilitySizer(broken).size(scores(AAPL=1.0, BAD=1.0), 100_000, 0.01, AS_OF)

        assert [p.symbol for p in result.positions] == ["AAPL"]
        assert result.skipped == {"BAD": "store_read_failed"}

    def test_bars_after_as_of_are_ignored(self, store: InMemoryBarStore) -> None:
        store.insert_if_absent(make_bars("AAPL", date(2024, 6, 21), 5, close=5.0, spread=4.0))
        result = VolatilitySizer(store).size(scores(AAPL=1.0), 100_000, 0.01, AS_OF)
        assert result.positions[0].metadata["atr"] == pytest.approx(2.0)

    def test_metadata(self, store: InMemoryBarStore) -> None:
        position = VolatilitySizer(store).size(scores(AAPL=0.8), 100_000, 0.01, AS_OF).positions[0]

        assert position.asset_type == "stock"
        assert position.metadata["net_score"] == 0.8
        assert position.metadata["atr"] == pytest.approx(2.0)
        assert position.metadata["last_close"] == 5.0
        assert position.metadata["risk_budget"] == pytest.approx(800.0)
        assert position.metadata["implied_stop_loss"] == pytest.approx(4.0)
