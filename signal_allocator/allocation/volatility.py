"""
변동성(ATR) 계산.

    TR  = max(high - low, |high - 이전 종가|, |low - 이전 종가|)
    ATR = 최근 period개 TR의 단순 평균

일봉이 period + 1개 미만이면 None (값을 지어내지 않는다).
"""

from typing import Optional

import pandas as pd

DEFAULT_ATR_PERIOD = 14


def true_ranges(bars: pd.DataFrame) -> pd.Series:
    """일봉 DataFrame(high, low, close)의 True Range. 첫 행은 이전 종가가 없어 제외."""
    high = bars["high"].astype(float)
    low = bars["low"].astype(float)
    prev_close = bars["close"].astype(float).shift(1)

    ranges = pd.concat(
        [high - low, (high - prev_close).abs(), (low - prev_close).abs()],
        axis=1,
    ).max(axis=1)
    return ranges.iloc[1:].reset_index(drop=True)


def average_true_range(bars: pd.DataFrame, period: int = DEFAULT_ATR_PERIOD) -> Optional[float]:
    """최근 period개 True Range의 평균. 데이터 부족 시 None."""
    if period <= 0:
        raise ValueError(f"ATR period must be positive, got {period}")
    if bars is None or len(bars) < period + 1:
        return None

    recent = bars.tail(period + 1)
    trs = true_ranges(recent)
    if len(trs) < period or trs.isna().any():
        return None
    return float(trs.sum() / period)
