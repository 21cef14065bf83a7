"""
ClickHouse 기반 BarStore 구현.

[ 역할 ]
    ClickHouse의 historical_bars 테이블을 일봉 캐시 저장소로 사용.
    쓰기는 명시적 "비교 후 삽입": 삽입 직전에 이미 있는 날짜를 조회해
    없는 일봉만 insert 한다. 기존 행은 절대 갱신하지 않는다.

[ 의존성 ]
    - core/bar_store.py::BarStore (추상 클래스)
    - ingestion/clickhouse_schema.py (ClickHouse 연결 및 스키마)

[ 호출하는 곳 ]
    - run_allocator.py (--source clickhouse)
    - scripts/warm_cache.py
"""

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

import pandas as pd
from clickhouse_connect.driver import Client

from signal_allocator.core.bar_store import BAR_COLUMNS, BarStore
from signal_allocator.core.data_provider import PriceBar
from signal_allocator.ingestion.clickhouse_schema import BARS_TABLE, get_client

logger = logging.getLogger("signal_allocator.clickhouse")

INSERT_COLUMNS = ["symbol", "trading_date", "open", "high", "low", "close", "volume"]


class ClickHouseBarStore(BarStore):
    """ClickHouse 일봉 저장소.

    사용 예:
        store = ClickHouseBarStore.connect('localhost', 8123, 'default', password='password')
        df = store.get_bars('AAPL', date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(self, client: Client, table: str = BARS_TABLE):
        self.client = client
        self.table = table

    @classmethod
    def connect(
        cls,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
    ) -> "ClickHouseBarStore":
        return cls(get_client(host, port, database, user, password))

    def existing_dates(self, symbol: str, start_date: date, end_date: date) -> set[date]:
        query = f"""
            SELECT DISTINCT trading_date
            FROM {self.table}
            WHERE symbol = %(symbol)s
              AND trading_date >= %(start_date)s
              AND trading_date <= %(end_date)s
        """
        result = self.client.query(
            query,
            parameters={"symbol": symbol, "start_date": start_date, "end_date": end_date},
        )
        return {row[0] for row in result.result_rows}

    def insert_if_absent(self, bars: Iterable[PriceBar]) -> int:
        # 심볼별로 묶어 기존 날짜와 비교한 뒤 없는 것만 삽입
        by_symbol: dict[str, dict[date, PriceBar]] = defaultdict(dict)
        for bar in bars:
            by_symbol[bar.symbol].setdefault(bar.trading_date, bar)

        inserted = 0
        for symbol, dated in by_symbol.items():
            existing = self.existing_dates(symbol, min(dated), max(dated))
            new_bars = [bar for day, bar in sorted(dated.items()) if day not in existing]
            if not new_bars:
                logger.debug(f"All {len(dated)} bars already exist for {symbol}")
                continue

            data = [
                [bar.symbol, bar.trading_date, bar.open, bar.high, bar.low, bar.close, bar.volume]
                for bar in new_bars
            ]
            self.client.insert(self.table, data, column_names=INSERT_COLUMNS)
            inserted += len(data)
            logger.info(f"Inserted {len(data)} rows for {symbol}")

        return inserted

    def get_bars(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        # FINAL: 병합 전 중복 행이 있어도 하나로
        query = f"""
            SELECT trading_date, open, high, low, close, volume
            FROM {self.table} FINAL
            WHERE symbol = %(symbol)s
              AND trading_date >= %(start_date)s
              AND trading_date <= %(end_date)s
            ORDER BY trading_date ASC
        """
        result = self.client.query(
            query,
            parameters={"symbol": symbol, "start_date": start_date, "end_date": end_date},
        )
        return pd.DataFrame(result.result_rows, columns=BAR_COLUMNS)

    def get_date_range(self, symbol: str) -> Optional[tuple[date, date]]:
        """특정 심볼의 (최소 날짜, 최대 날짜), 데이터가 없으면 None."""
        query = f"""
            SELECT MIN(trading_date) as min_date, MAX(trading_date) as max_date
            FROM {self.table}
            WHERE symbol = %(symbol)s
        """
        result = self.client.query(query, parameters={"symbol": symbol})

        if result.result_rows:
            min_date, max_date = result.result_rows[0]
            if min_date and max_date:
                return (min_date, max_date)

        return None

    def close(self):
        """ClickHouse 연결 종료."""
        if hasattr(self.client, 'close'):
            self.client.close()
