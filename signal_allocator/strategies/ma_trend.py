"""
이동평균선 추세 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "종가가 이동평균선 위면 롱, 아래면 숏. 이격도가 클수록 강한 시그널"

[ 전략 흐름 ]
    실행마다 generate_signals() 호출됨 (← allocation/allocator.py에서)
        └── tickers의 종목마다
              ├── 캐시된 최근 ma_period개 일봉 조회 (RunContext.bars)
              ├── 데이터 부족 → 시그널 없음
              ├── 거래량 < min_volume_threshold → 시그널 없음
              └── 종가 vs MA
                    ├── 종가 > MA → LONG
                    ├── 종가 < MA → SHORT
                    └── strength = min(|종가 - MA| / MA × sensitivity, max_strength)

[ 파라미터 (설정 문서 strategies.ma_trend.params) ]
    tickers:              대상 종목 리스트
    ma_period:            이동평균선 기간 (일)
    min_volume_threshold: 최소 거래량
    sensitivity:          이격도 → 강도 배율
    max_strength:         강도 상한
"""

import logging
from typing import Any, Optional

import pandas as pd

from signal_allocator.core.trading_strategy import (
    Direction,
    RunContext,
    Signal,
    TradingStrategy,
)
from signal_allocator.strategies import register

logger = logging.getLogger("signal_allocator.strategies")


@register("ma_trend")
class MATrendStrategy(TradingStrategy):
    """이동평균선 추세 전략 구현체."""

    # 설정 문서에서 오버라이드 가능한 기본값
    DEFAULT_PARAMS = {
        "tickers": [],
        "ma_period": 20,                 # 이동평균선 기간 (일)
        "min_volume_threshold": 0,       # 최소 거래량
        "sensitivity": 10.0,             # 이격도 10% → 강도 1.0
        "max_strength": 1.0,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        # DEFAULT_PARAMS를 기본으로 하고, 전달된 params로 오버라이드
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="ma_trend", params=merged)

    @property
    def tickers(self) -> list[str]:
        return [str(t).strip().upper() for t in self.params["tickers"]]

    @property
    def ma_period(self) -> int:
        return int(self.params["ma_period"])

    @property
    def min_volume_threshold(self) -> int:
        return int(self.params["min_volume_threshold"])

    def calculate_ma(self, market_data: pd.DataFrame) -> Optional[float]:
        """최근 ma_period일 종가 평균. 데이터 부족 시 None."""
        if len(market_data) < self.ma_period:
            return None
        return float(market_data["close"].tail(self.ma_period).mean())

    def generate_signals(self, context: RunContext) -> list[Signal]:
        signals = []
        for ticker in self.tickers:
            signal = self.evaluate(ticker, context.bars(ticker, self.ma_period))
            if signal is not None:
                signals.append(signal)
        return signals

    def evaluate(self, ticker: str, market_data: pd.DataFrame) -> Optional[Signal]:
        """종목 하나의 시그널. 조건 미충족이면 None."""
        ma_value = self.calculate_ma(market_data)
        if ma_value is None or ma_value <= 0:
            logger.debug(f"ma_trend: {ticker} 데이터 부족 (최소 {self.ma_period}일 필요, 현재 {len(market_data)}일)")
            return None

        current_volume = int(market_data.iloc[-1]["volume"])
        if current_volume < self.min_volume_threshold:
            logger.debug(f"ma_trend: {ticker} 거래량 부족 ({current_volume:,} < {self.min_volume_threshold:,})")
            return None

        current_price = float(market_data.iloc[-1]["close"])
        if current_price == ma_value:
            return None

        deviation = (current_price - ma_value) / ma_value
        strength = min(abs(deviation) * float(self.params["sensitivity"]), float(self.params["max_strength"]))
        direction = Direction.LONG if deviation > 0 else Direction.SHORT
        return self.make_signal(
            ticker,
            direction,
            strength,
            close=current_price,
            ma=ma_value,
            reason=f"종가 {current_price:,.2f} vs MA{self.ma_period} {ma_value:,.2f} ({deviation * 100:+.2f}%)",
        )
