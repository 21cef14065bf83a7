"""
과거 일봉 캐시 모듈.

[ 역할 ]
    심볼 목록과 기간을 받아, 로컬 저장소에 모든 거래일 일봉이 있도록 보장.
    이미 있는 날짜는 다시 가져오지 않고, 누락된 날짜만 상위 제공자에서 수집.

[ 처리 흐름 ]
    ensure_cached(symbols, start, end)
        ├── 입력 검증 (end < start, end가 미래 → ValidationError, 수집 전 중단)
        ├── 심볼별 누락 날짜 = 거래일(주말 제외) - 저장된 날짜
        │     └── 누락 없음 → 해당 심볼 스킵 (상위 호출 0회)
        ├── 누락 날짜를 연속 구간으로 병합 (group_consecutive_dates)
        ├── 구간별 1회 수집 (배치 지원 제공자는 같은 구간의 심볼을 묶어서)
        │     └── ThreadPoolExecutor로 병렬 수집, 전체 대기 시간 제한
        └── insert_if_absent로 저장 (중복은 조용히 무시)

[ 한계 ]
    거래일 = 주말만 제외. 거래소 휴장일은 매 실행마다 "누락"으로 판정되어
    재수집을 시도하지만 영원히 채워지지 않는다.

[ 호출하는 곳 ]
    - allocation/allocator.py::MasterAllocator (사이징 전 캐시 예열)
    - scripts/warm_cache.py
"""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Union

from signal_allocator.core.bar_store import BarStore
from signal_allocator.core.data_provider import PriceBar, PriceProvider
from signal_allocator.core.errors import FetchFailure, ValidationError

logger = logging.getLogger("signal_allocator.cache")

DateLike = Union[date, datetime, str]


def parse_date(value: DateLike) -> date:
    """date / datetime / 'YYYY-MM-DD' 문자열을 date로 변환."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError as e:
            raise ValidationError(f"Date parsing error: {value!r}") from e
    raise ValidationError(f"Invalid date format: {value!r}")


def is_trading_day(day: date) -> bool:
    """월~금이면 거래일 (휴장일은 고려하지 않음)."""
    return day.weekday() < 5


def trading_days(start_date: date, end_date: date) -> list[date]:
    """기간 내 모든 거래일 (양 끝 포함)."""
    days = []
    current = start_date
    while current <= end_date:
        if is_trading_day(current):
            days.append(current)
        current += timedelta(days=1)
    return days


def previous_trading_day(day: date) -> date:
    """day 직전의 거래일."""
    current = day - timedelta(days=1)
    while not is_trading_day(current):
        current -= timedelta(days=1)
    return current


def shift_trading_days(day: date, count: int) -> date:
    """day로부터 count 거래일 이전 날짜."""
    current = day
    for _ in range(count):
        current = previous_trading_day(current)
    return current


def group_consecutive_dates(dates: Iterable[date]) -> list[tuple[date, date]]:
    """날짜를 연속 구간으로 병합.

    다음 날짜가 정확히 하루 뒤일 때만 구간을 연장한다.
    예: {d1, d3, d4, d5, d8} → [(d1, d1), (d3, d5), (d8, d8)]
    """
    sorted_dates = sorted(set(dates))
    if not sorted_dates:
        return []

    ranges = []
    current_start = current_end = sorted_dates[0]
    for next_date in sorted_dates[1:]:
        if next_date == current_end + timedelta(days=1):
            current_end = next_date
        else:
            ranges.append((current_start, current_end))
            current_start = current_end = next_date

    ranges.append((current_start, current_end))
    return ranges


@dataclass
class CacheFillResult:
    """ensure_cached()의 반환값."""
    fetched_bars: list[PriceBar] = field(default_factory=list)
    errors: list[FetchFailure] = field(default_factory=list)
    cached_bars_count: int = 0      # 실제로 새로 저장된 개수
    fetch_calls: int = 0
    skipped_symbols: list[str] = field(default_factory=list)  # 이미 전부 캐시된 심볼

    @property
    def success(self) -> bool:
        return not self.errors


class HistoricalPriceCache:
    """저장소 + 상위 제공자를 묶은 갭 인식 캐시.

    사용 예:
        cache = HistoricalPriceCache(store, YahooFinanceProvider())
        result = cache.ensure_cached(["AAPL", "MSFT"], date(2024, 1, 1), date(2024, 1, 31))
    """

    def __init__(
        self,
        store: BarStore,
        provider: PriceProvider,
        max_workers: int = 4,
        fetch_timeout: float = 30.0,
        clock: Callable[[], date] = date.today,
    ):
        """
        Args:
            store: 일봉 저장소
            provider: 상위 가격 제공자
            max_workers: 병렬 수집 스레드 수
            fetch_timeout: 수집 전체 대기 시간 상한 (초)
            clock: 오늘 날짜 (테스트에서 교체)
        """
        self.store = store
        self.provider = provider
        self.max_workers = max(1, int(max_workers))
        self.fetch_timeout = fetch_timeout
        self.clock = clock

    def ensure_cached(
        self,
        symbols: Union[str, Iterable[str]],
        start_date: DateLike,
        end_date: DateLike,
    ) -> CacheFillResult:
        """기간 내 모든 거래일 일봉이 저장소에 있도록 누락분만 수집.

        Raises:
            ValidationError: end < start, end가 미래, 날짜 파싱 실패
        """
        symbols = normalize_symbols(symbols)
        start = parse_date(start_date)
        end = parse_date(end_date)
        self._validate_dates(start, end)

        result = CacheFillResult()
        if not symbols:
            return result

        jobs = self._plan_fetches(symbols, start, end, result)
        if not jobs:
            logger.info(f"All {len(symbols)} symbols fully cached ({start} to {end})")
            return result

        self._run_fetches(jobs, result)

        logger.info(
            f"Cache fill done: {result.fetch_calls} fetch calls, "
            f"{result.cached_bars_count} new bars, {len(result.errors)} errors"
        )
        return result

    def find_missing_dates(self, symbol: str, start_date: date, end_date: date) -> list[date]:
        """저장소에 없는 거래일 목록."""
        existing = self.store.existing_dates(symbol, start_date, end_date)
        return [day for day in trading_days(start_date, end_date) if day not in existing]

    def _validate_dates(self, start: date, end: date) -> None:
        if start > end:
            raise ValidationError(f"Start date must be before or equal to end date ({start} > {end})")
        if end > self.clock():
            raise ValidationError(f"End date cannot be in the future ({end})")

    def _plan_fetches(
        self,
        symbols: list[str],
        start: date,
        end: date,
        result: CacheFillResult,
    ) -> list[tuple[tuple[str, ...], date, date]]:
        """(심볼들, 구간 시작, 구간 끝) 수집 작업 목록 생성."""
        by_range: dict[tuple[date, date], list[str]] = defaultdict(list)

        for symbol in symbols:
            try:
                missing = self.find_missing_dates(symbol, start, end)
            except Exception as e:
                logger.error(f"Failed to read cached dates for {symbol}: {e}")
                result.errors.append(FetchFailure((symbol,), start, end, f"store read failed: {e}"))
                continue

            if not missing:
                result.skipped_symbols.append(symbol)
                continue

            ranges = group_consecutive_dates(missing)
            logger.info(f"Fetching {len(missing)} missing data points for {symbol} in {len(ranges)} ranges")
            for date_range in ranges:
                by_range[date_range].append(symbol)

        jobs = []
        for (range_start, range_end), range_symbols in sorted(by_range.items()):
            if self.provider.supports_batch:
                jobs.append((tuple(range_symbols), range_start, range_end))
            else:
                jobs.extend(((symbol,), range_start, range_end) for symbol in range_symbols)
        return jobs

    def _run_fetches(self, jobs, result: CacheFillResult) -> None:
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs)))
        try:
            futures = {
                executor.submit(self._fetch_and_store, job_symbols, range_start, range_end): (
                    job_symbols, range_start, range_end
                )
                for job_symbols, range_start, range_end in jobs
            }
            result.fetch_calls = len(futures)
            done, not_done = wait(futures, timeout=self.fetch_timeout)

            # 제출 순서대로 결과를 모아 실행 간 결과 순서를 고정
            for future, (job_symbols, range_start, range_end) in futures.items():
                if future in not_done:
                    future.cancel()
                    msg = f"timed out after {self.fetch_timeout}s"
                    logger.error(f"API call failed for {','.join(job_symbols)} ({range_start} to {range_end}): {msg}")
                    result.errors.append(FetchFailure(job_symbols, range_start, range_end, msg))
                    continue

                error = future.exception()
                if error is not None:
                    logger.error(
                        f"API call failed for {','.join(job_symbols)} ({range_start} to {range_end}): {error}"
                    )
                    result.errors.append(FetchFailure(job_symbols, range_start, range_end, str(error)))
                    continue

                bars, stored_count = future.result()
                result.fetched_bars.extend(bars)
                result.cached_bars_count += stored_count
        finally:
            # 타임아웃된 작업을 기다리지 않는다
            executor.shutdown(wait=False, cancel_futures=True)

    def _fetch_and_store(
        self,
        symbols: tuple[str, ...],
        start_date: date,
        end_date: date,
    ) -> tuple[list[PriceBar], int]:
        request = symbols[0] if len(symbols) == 1 else list(symbols)
        bars = self.provider.fetch_bars(request, start_date, end_date)

        wanted = set(symbols)
        bars = [
            bar for bar in bars
            if bar.symbol in wanted and start_date <= bar.trading_date <= end_date
        ]
        if not bars:
            logger.warning(f"No data returned for {','.join(symbols)} between {start_date} and {end_date}")
            return [], 0

        stored_count = self.store.insert_if_absent(bars)
        logger.info(f"Stored {stored_count} bars for {','.join(symbols)} ({start_date} to {end_date})")
        return bars, stored_count


def normalize_symbols(symbols: Union[str, Iterable[str]]) -> list[str]:
    """공백 제거 + 대문자 + 중복 제거 (순서 유지)."""
    if isinstance(symbols, str):
        symbols = [symbols]
    seen: dict[str, None] = {}
    for symbol in symbols:
        cleaned = str(symbol).strip().upper()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)
