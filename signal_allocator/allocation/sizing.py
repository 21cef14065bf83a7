"""
변동성 기반 포지션 사이징 모듈.

[ 역할 ]
    순점수가 있는 종목마다 최근 변동성(ATR)에 반비례하는 목표 금액을 계산.
    같은 점수·같은 예산이면 ATR이 두 배인 종목은 정확히 절반의 금액을 받는다.

[ 계산 ]
    conviction_scale = min(|net_score|, max_conviction)        (유계·단조)
    risk_budget      = total_equity × risk_target_pct × conviction_scale
    target_value     = sign(net_score) × risk_budget / ATR
    shares           = |target_value| / 최근 종가              (메타데이터용, 반올림 없음)
    |target_value|  ≤ total_equity × max_position_pct          (종목당 상한)

[ 제외 조건 ]
    캐시된 일봉이 atr_period + 1개 미만이거나 ATR이 0 → 이번 실행에서 제외.
    신규 종목이 첫날 포지션을 못 받는 주된 이유. 에러가 아님.
    저장소 읽기 실패 → 해당 종목만 제외 (store_read_failed), 나머지는 계속.

[ 호출하는 곳 ]
    - allocation/allocator.py::MasterAllocator.run() (네팅 직후)
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping

from signal_allocator.allocation.volatility import DEFAULT_ATR_PERIOD, average_true_range
from signal_allocator.core.bar_store import BarStore
from signal_allocator.core.positions import NetScore, TargetPosition

logger = logging.getLogger("signal_allocator.sizing")

DEFAULT_MAX_POSITION_PCT = 0.10
DEFAULT_MAX_CONVICTION = 1.0
STOP_LOSS_ATR_MULTIPLE = 2


def conviction_scale(score: float, max_conviction: float = DEFAULT_MAX_CONVICTION) -> float:
    """|score|를 [0, max_conviction]으로 자른 값. |score|에 대해 단조 증가."""
    return min(abs(score), max_conviction)


@dataclass
class SizingResult:
    positions: list[TargetPosition] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # symbol → 제외 사유


class VolatilitySizer:
    """ATR 기반 사이저.

    사용 예:
        sizer = VolatilitySizer(store, atr_period=14, max_position_pct=0.10)
        result = sizer.size(net_scores, total_equity=100_000, risk_target_pct=0.01, as_of=date(2024, 3, 15))
    """

    def __init__(
        self,
        store: BarStore,
        atr_period: int = DEFAULT_ATR_PERIOD,
        max_position_pct: float = DEFAULT_MAX_POSITION_PCT,
        max_conviction: float = DEFAULT_MAX_CONVICTION,
    ):
        self.store = store
        self.atr_period = atr_period
        self.max_position_pct = max_position_pct
        self.max_conviction = max_conviction

    def size(
        self,
        net_scores: Mapping[str, NetScore],
        total_equity: float,
        risk_target_pct: float,
        as_of: date,
    ) -> SizingResult:
        """순점수 → 목표 포지션 (심볼 순)."""
        result = SizingResult()
        position_cap = total_equity * self.max_position_pct

        for symbol in sorted(net_scores):
            score = net_scores[symbol].score
            if score == 0:
                continue

            try:
                bars = self.store.get_recent_bars(symbol, as_of, self.atr_period + 1)
            except Exception as e:
                logger.error(f"{symbol}: failed to read cached bars: {e}")
                result.skipped[symbol] = "store_read_failed"
                continue
            atr = average_true_range(bars, self.atr_period)
            if atr is None:
                logger.info(f"{symbol}: insufficient history for ATR ({len(bars)}/{self.atr_period + 1} bars), skipping")
                result.skipped[symbol] = "insufficient_history"
                continue
            if atr <= 0 or math.isnan(atr):
                logger.warning(f"{symbol}: ATR is {atr}, skipping")
                result.skipped[symbol] = "zero_atr"
                continue

            last_close = float(bars.iloc[-1]["close"])
            scale = conviction_scale(score, self.max_conviction)
            risk_budget = total_equity * risk_target_pct * scale
            target_value = math.copysign(risk_budget / atr, score)

            capped = abs(target_value) > position_cap
            if capped:
                logger.info(f"{symbol}: target {target_value:,.2f} capped at {position_cap:,.2f}")
                target_value = math.copysign(position_cap, score)

            result.positions.append(TargetPosition(
                symbol=symbol,
                asset_type="stock",
                target_value=target_value,
                metadata={
                    "net_score": score,
                    "atr": atr,
                    "last_close": last_close,
                    "shares": abs(target_value) / last_close,
                    "risk_budget": risk_budget,
                    "conviction_scale": scale,
                    "capped": capped,
                    "implied_stop_loss": atr * STOP_LOSS_ATR_MULTIPLE,
                },
            ))

        return result
