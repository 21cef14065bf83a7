"""
이동평균 교차(MA Cross) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 MA가 장기 MA 위면 롱, 아래면 숏"
    ma_trend.py와 유사하나 종가 대신 단기 MA를 장기 MA와 비교.

[ 전략 흐름 ]
    실행마다 generate_signals() 호출됨 (← allocation/allocator.py에서)
        └── tickers의 종목마다
              ├── 캐시된 최근 slow_period개 일봉 조회
              ├── is_above_ma()로 단기 MA와 장기 MA 비교
              └── strength = min(|fast - slow| / slow × sensitivity, max_strength)

[ 파라미터 (설정 문서 strategies.ma_cross.params) ]
    tickers:      대상 종목 리스트
    fast_period:  단기 이동평균 기간 (일)
    slow_period:  장기 이동평균 기간 (일)
    sensitivity:  괴리율 → 강도 배율
    max_strength: 강도 상한
"""

from typing import Any, Optional

import pandas as pd

from signal_allocator.core.trading_strategy import (
    Direction,
    RunContext,
    Signal,
    TradingStrategy,
)
from signal_allocator.strategies import register


@register("ma_cross")
class MACrossStrategy(TradingStrategy):
    """이동평균 교차 전략 구현체."""

    DEFAULT_PARAMS = {
        "tickers": [],
        "fast_period": 20,
        "slow_period": 60,
        "sensitivity": 20.0,
        "max_strength": 1.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="ma_cross", params=merged)
        if self.fast_period >= self.slow_period:
            raise ValueError(
                f"fast_period ({self.fast_period}) must be shorter than slow_period ({self.slow_period})"
            )

    @property
    def tickers(self) -> list[str]:
        return [str(t).strip().upper() for t in self.params["tickers"]]

    @property
    def fast_period(self) -> int:
        return int(self.params["fast_period"])

    @property
    def slow_period(self) -> int:
        return int(self.params["slow_period"])

    def is_above_ma(self, market_data: pd.DataFrame) -> tuple[bool, Optional[float], Optional[float]]:
        """단기 MA가 장기 MA 위에 있는지 판단.

        Returns:
            (단기 MA > 장기 MA 여부, 단기 MA 또는 None, 장기 MA 또는 None)
        """
        if len(market_data) < self.slow_period:
            return False, None, None

        closes = market_data["close"].astype(float)
        fast_ma = float(closes.tail(self.fast_period).mean())
        slow_ma = float(closes.tail(self.slow_period).mean())
        return fast_ma > slow_ma, fast_ma, slow_ma

    def generate_signals(self, context: RunContext) -> list[Signal]:
        signals = []
        for ticker in self.tickers:
            above, fast_ma, slow_ma = self.is_above_ma(context.bars(ticker, self.slow_period))
            if fast_ma is None or not slow_ma or fast_ma == slow_ma:
                continue

            gap = abs(fast_ma - slow_ma) / slow_ma
            strength = min(gap * float(self.params["sensitivity"]), float(self.params["max_strength"]))
            signals.append(self.make_signal(
                ticker,
                Direction.LONG if above else Direction.SHORT,
                strength,
                fast_ma=fast_ma,
                slow_ma=slow_ma,
            ))
        return signals
