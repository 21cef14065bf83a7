"""테스트용 일봉/설정 빌더."""

from datetime import date
from typing import Any, Iterable, Optional

import pandas as pd

from signal_allocator.core.data_provider import PriceBar
from signal_allocator.data.history_cache import is_trading_day, previous_trading_day
from signal_allocator.data.memory_store import InMemoryBarStore
from signal_allocator.utils.config import AllocatorConfig

TODAY = date(2024, 6, 14)  # 금요일


def fixed_clock() -> date:
    return TODAY


def make_bar(
    symbol: str,
    day: date,
    close: float = 100.0,
    spread: float = 1.0,
    volume: int = 1_000_000,
) -> PriceBar:
    """open = close, high/low = close ± spread. 종가가 일정하면 TR = 2 × spread."""
    return PriceBar(
        symbol=symbol,
        trading_date=day,
        open=close,
        high=close + spread,
        low=close - spread,
        close=close,
        volume=volume,
    )


def make_bars(
    symbol: str,
    end: date,
    count: int,
    close: float = 100.0,
    spread: float = 1.0,
    closes: Optional[Iterable[float]] = None,
) -> list[PriceBar]:
    """end(포함)까지 거슬러 올라간 count개 거래일 일봉, 날짜 오름차순."""
    day = end if is_trading_day(end) else previous_trading_day(end)
    days = []
    for _ in range(count):
        days.append(day)
        day = previous_trading_day(day)
    days.reverse()

    prices = list(closes) if closes is not None else [close] * count
    return [make_bar(symbol, d, close=p, spread=spread) for d, p in zip(days, prices)]


def make_config(strategies: dict[str, dict[str, Any]], **risk: Any) -> AllocatorConfig:
    """strategies: {strategy_id: {enabled, weight, params}}."""
    return AllocatorConfig.from_dict({
        "risk_management": risk,
        "cache": {"max_workers": 2, "fetch_timeout": 5, "history_buffer_days": 5},
        "strategies": strategies,
    })


class UnreadableBarStore(InMemoryBarStore):
    """지정한 심볼 조회 시 연결 오류를 내는 저장소."""

    def __init__(self, unreadable: set[str], bars: Optional[Iterable[PriceBar]] = None):
        super().__init__(bars)
        self.unreadable = unreadable

    def get_bars(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        if symbol in self.unreadable:
            raise ConnectionError("clickhouse read timeout")
        return super().get_bars(symbol, start_date, end_date)
