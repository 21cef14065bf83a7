"""
Yahoo Finance 데이터 수집 모듈
"""
import logging
import time
from datetime import date, timedelta
from typing import Iterable, Union

import pandas as pd
import yfinance as yf

from signal_allocator.core.data_provider import PriceBar, PriceProvider

logger = logging.getLogger("signal_allocator.yahoo")

COLUMN_MAP = {
    'Date': 'date',
    'Open': 'open',
    'High': 'high',
    'Low': 'low',
    'Close': 'close',
    'Volume': 'volume',
}
REQUIRED_COLUMNS = ['date', 'open', 'high', 'low', 'close', 'volume']


class YahooFinanceProvider(PriceProvider):
    """yfinance 기반 가격 제공자.

    요청마다 timeout(초)을 걸고, 실패 시 retry_delay 간격으로 max_retries번 재시도.
    모든 재시도가 실패하면 마지막 예외를 그대로 던진다 (캐시가 FetchFailure로 기록).
    """

    def __init__(
        self,
        timeout: float = 10,
        max_retries: int = 3,
        retry_delay: float = 5,
        supports_batch: bool = False,
    ):
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay
        self.supports_batch = supports_batch

    def fetch_bars(
        self,
        symbols: Union[str, Iterable[str]],
        start_date: date,
        end_date: date,
    ) -> list[PriceBar]:
        requested = [symbols] if isinstance(symbols, str) else list(symbols)
        label = ','.join(requested)

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching {label} from {start_date} to {end_date} (attempt {attempt + 1}/{self.max_retries})")
                if len(requested) == 1:
                    frames = {requested[0]: self._history(requested[0], start_date, end_date)}
                else:
                    frames = self._download(requested, start_date, end_date)
                break
            except Exception as e:
                logger.error(f"Error fetching {label} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    logger.info(f"Retrying in {self.retry_delay} seconds...")
                    time.sleep(self.retry_delay)
                else:
                    logger.error(f"Max retries reached for {label}")
                    raise

        bars = []
        for symbol, df in frames.items():
            bars.extend(frame_to_bars(symbol, df))
        logger.info(f"Successfully fetched {len(bars)} bars for {label}")
        return bars

    def _history(self, symbol: str, start_date: date, end_date: date) -> pd.DataFrame:
        ticker_obj = yf.Ticker(symbol)
        return ticker_obj.history(
            start=start_date,
            end=end_date + timedelta(days=1),  # end_date 포함
            auto_adjust=False,
            actions=False,
            timeout=self.timeout,
        )

    def _download(self, symbols: list[str], start_date: date, end_date: date) -> dict[str, pd.DataFrame]:
        df = yf.download(
            symbols,
            start=start_date,
            end=end_date + timedelta(days=1),
            group_by='ticker',
            auto_adjust=False,
            actions=False,
            threads=False,
            progress=False,
            timeout=self.timeout,
        )
        if df is None or df.empty:
            return {}

        frames = {}
        if isinstance(df.columns, pd.MultiIndex):
            available = set(df.columns.get_level_values(0))
            for symbol in symbols:
                if symbol in available:
                    frames[symbol] = df[symbol]
        elif len(symbols) == 1:
            frames[symbols[0]] = df
        return frames


def standardize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """yfinance 결과를 [date, open, high, low, close, volume] 형태로 정리."""
    if df is None or df.empty:
        return pd.DataFrame(columns=REQUIRED_COLUMNS)

    # 인덱스(날짜)를 컬럼으로 변환
    df = df.reset_index()
    df = df.rename(columns=COLUMN_MAP)

    missing_columns = set(REQUIRED_COLUMNS) - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing columns in provider response: {sorted(missing_columns)}")

    df = df[REQUIRED_COLUMNS].dropna().copy()

    # date 컬럼을 datetime.date로 변환 (timezone 제거)
    if pd.api.types.is_datetime64_any_dtype(df['date']):
        df['date'] = df['date'].dt.date
    return df


def frame_to_bars(symbol: str, df: pd.DataFrame) -> list[PriceBar]:
    """DataFrame 행을 PriceBar로 변환. 검증에 실패한 행은 경고 후 제외."""
    bars = []
    for row in standardize_frame(df).itertuples(index=False):
        try:
            bars.append(PriceBar(
                symbol=symbol,
                trading_date=row.date,
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=int(row.volume),
            ))
        except ValueError as e:
            logger.warning(f"Dropping invalid bar for {symbol}: {e}")
    return bars
