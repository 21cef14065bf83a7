"""
주가 데이터 제공 추상 클래스 정의.

[ 역할 ]
    일봉(OHLCV) 데이터의 단위 객체 PriceBar와
    상위(upstream) 가격 제공자 인터페이스 PriceProvider 정의.
    데이터 소스(Yahoo Finance, 메모리 등)와 무관하게 캐시 레이어에 데이터 공급.

[ 구현체 ]
    - ingestion/yahoo_finance.py::YahooFinanceProvider  (실제 수집)
    - data/memory_store.py::StaticPriceProvider         (테스트/샘플용)

[ 호출하는 곳 ]
    - data/history_cache.py::HistoricalPriceCache가 누락된 날짜 구간만 fetch_bars() 호출
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Union


@dataclass(frozen=True)
class PriceBar:
    """단일 일봉 데이터. (symbol, trading_date) 조합이 유일키.

    한 번 저장된 과거 일봉은 변하지 않으므로 frozen.
    """
    symbol: str
    trading_date: date
    open: float      # 시가
    high: float      # 고가
    low: float       # 저가
    close: float     # 종가
    volume: int      # 거래량

    def __post_init__(self):
        prices = (self.open, self.high, self.low, self.close)
        if any(math.isnan(p) or p <= 0 for p in prices):
            raise ValueError(f"Invalid price for {self.symbol} on {self.trading_date}: {prices}")
        if not (self.low <= self.open <= self.high and self.low <= self.close <= self.high):
            raise ValueError(
                f"Invalid OHLC relationship for {self.symbol} on {self.trading_date}: "
                f"open={self.open}, high={self.high}, low={self.low}, close={self.close}"
            )
        if self.volume < 0:
            raise ValueError(f"Invalid volume for {self.symbol} on {self.trading_date}: {self.volume}")

    @property
    def key(self) -> tuple[str, date]:
        return self.symbol, self.trading_date


class PriceProvider(ABC):
    """상위 가격 제공자 추상 클래스.

    구현체는 요청 하나가 무한정 블록되지 않도록 자체 타임아웃을 가져야 한다.
    supports_batch가 True이면 여러 심볼을 한 번의 호출로 조회할 수 있다.
    """

    supports_batch: bool = False

    @abstractmethod
    def fetch_bars(
        self,
        symbols: Union[str, Iterable[str]],
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        """기간 내 일봉 조회 (start_date, end_date 모두 포함).

        Args:
            symbols: 심볼 하나 또는 심볼 목록 (supports_batch인 경우)
            start_date: 시작일
            end_date: 종료일

        Returns:
            PriceBar 리스트. 조회 실패 시 예외를 던진다.
        """
        ...
