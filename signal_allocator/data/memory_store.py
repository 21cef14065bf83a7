"""
메모리 기반 저장소 및 가격 제공자 구현.

[ 역할 ]
    ClickHouse / Yahoo Finance 없이 캐시·사이징·얼로케이터를 실행.

[ 포함 클래스 ]
    InMemoryBarStore    - core/bar_store.py::BarStore 구현체
                          dict 기반, 락으로 insert-if-absent를 원자적으로 보장
    StaticPriceProvider - core/data_provider.py::PriceProvider 구현체
                          미리 로드된 일봉에서 구간 조회, 호출 기록 보관

[ 호출하는 곳 ]
    - run_allocator.py (--source sample)
    - tests/ 전반
"""

import threading
from datetime import date
from typing import Iterable, Optional, Union

import pandas as pd

from signal_allocator.core.bar_store import BAR_COLUMNS, BarStore
from signal_allocator.core.data_provider import PriceBar, PriceProvider


class InMemoryBarStore(BarStore):
    """dict 기반 일봉 저장소.

    사용법:
        store = InMemoryBarStore()
        store.insert_if_absent(bars)
        df = store.get_bars("AAPL", date(2024, 1, 1), date(2024, 1, 31))
    """

    def __init__(self, bars: Optional[Iterable[PriceBar]] = None):
        self._bars: dict[tuple[str, date], PriceBar] = {}  # (symbol, date) → PriceBar
        self._lock = threading.Lock()
        self.insert_calls = 0
        if bars:
            self.insert_if_absent(bars)
            self.insert_calls = 0

    def existing_dates(self, symbol: str, start_date: date, end_date: date) -> set[date]:
        with self._lock:
            return {
                day for (sym, day) in self._bars
                if sym == symbol and start_date <= day <= end_date
            }

    def insert_if_absent(self, bars: Iterable[PriceBar]) -> int:
        inserted = 0
        with self._lock:
            self.insert_calls += 1
            for bar in bars:
                if bar.key in self._bars:
                    continue
                self._bars[bar.key] = bar
                inserted += 1
        return inserted

    def get_bars(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        with self._lock:
            rows = [
                (bar.trading_date, bar.open, bar.high, bar.low, bar.close, bar.volume)
                for (sym, day), bar in self._bars.items()
                if sym == symbol and start_date <= day <= end_date
            ]
        rows.sort(key=lambda row: row[0])
        return pd.DataFrame(rows, columns=BAR_COLUMNS)

    def get_bar(self, symbol: str, trading_date: date) -> Optional[PriceBar]:
        with self._lock:
            return self._bars.get((symbol, trading_date))

    def count(self, symbol: Optional[str] = None) -> int:
        with self._lock:
            if symbol is None:
                return len(self._bars)
            return sum(1 for (sym, _) in self._bars if sym == symbol)


class StaticPriceProvider(PriceProvider):
    """미리 로드된 일봉을 돌려주는 제공자.

    failing_symbols에 있는 심볼을 요청하면 예외를 던진다 (수집 실패 모사).
    calls에 (심볼들, 시작, 끝)이 호출 순서대로 기록된다.
    """

    def __init__(
        self,
        bars: Optional[Iterable[PriceBar]] = None,
        supports_batch: bool = False,
        failing_symbols: Iterable[str] = (),
    ):
        self._bars: dict[str, list[PriceBar]] = {}
        self.supports_batch = supports_batch
        self.failing_symbols = set(failing_symbols)
        self.calls: list[tuple[tuple[str, ...], date, date]] = []
        self._lock = threading.Lock()
        for bar in bars or ():
            self._bars.setdefault(bar.symbol, []).append(bar)

    def fetch_bars(
        self,
        symbols: Union[str, Iterable[str]],
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        requested = (symbols,) if isinstance(symbols, str) else tuple(symbols)
        with self._lock:
            self.calls.append((requested, start_date, end_date))

        failed = self.failing_symbols.intersection(requested)
        if failed:
            raise ConnectionError(f"upstream unavailable for {', '.join(sorted(failed))}")

        result = []
        for symbol in requested:
            result.extend(
                bar for bar in self._bars.get(symbol, [])
                if start_date <= bar.trading_date <= end_date
            )
        return sorted(result, key=lambda bar: (bar.symbol, bar.trading_date))
