"""
일봉 저장소 추상 클래스 정의.

[ 역할 ]
    캐시된 일봉의 영속 저장소 인터페이스.
    (symbol, trading_date) 유일성이 유일한 정합성 보장 장치이며,
    쓰기는 "없을 때만 삽입"만 허용한다. 갱신/삭제 없음.

[ 구현체 ]
    - data/clickhouse_store.py::ClickHouseBarStore  (운영)
    - data/memory_store.py::InMemoryBarStore        (테스트/샘플용)

[ 호출하는 곳 ]
    - data/history_cache.py (existing_dates, insert_if_absent)
    - allocation/sizing.py, core/trading_strategy.py::RunContext (get_bars)
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable

import pandas as pd

from signal_allocator.core.data_provider import PriceBar

BAR_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


class BarStore(ABC):
    """일봉 저장소 추상 클래스."""

    @abstractmethod
    def existing_dates(self, symbol: str, start_date: date, end_date: date) -> set[date]:
        """기간 내 이미 저장된 날짜 집합."""
        ...

    @abstractmethod
    def insert_if_absent(self, bars: Iterable[PriceBar]) -> int:
        """저장되지 않은 일봉만 삽입. 중복은 에러 없이 무시.

        Returns:
            실제로 삽입된 개수
        """
        ...

    @abstractmethod
    def get_bars(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        """기간 내 일봉 조회.

        Returns:
            DataFrame with columns: [date, open, high, low, close, volume], 날짜 오름차순
        """
        ...

    def get_recent_bars(self, symbol: str, end_date: date, count: int) -> pd.DataFrame:
        """end_date 이하의 최근 count개 일봉."""
        # 주말/휴일을 감안해 넉넉하게 조회한 뒤 tail
        start = (pd.Timestamp(end_date) - pd.Timedelta(days=count * 2 + 10)).date()
        df = self.get_bars(symbol, start, end_date)
        return df.tail(count).reset_index(drop=True)
