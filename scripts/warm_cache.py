#!/usr/bin/env python3
"""
전략 유니버스의 일봉을 ClickHouse 캐시에 미리 채우는 스크립트
- 활성화된 전략의 tickers / signals 종목을 대상으로
- 직전 거래일까지 universe_lookback_days 거래일 구간을 확인
- 누락된 날짜만 Yahoo Finance에서 수집 (이미 있는 일봉은 건드리지 않음)

MA 전략은 시그널을 만들 때 캐시된 일봉만 읽으므로,
얼로케이터 실행 전에 (예: 장 마감 후 cron) 이 스크립트를 돌려 둔다.
"""
import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from signal_allocator.core.errors import ValidationError
from signal_allocator.data.clickhouse_store import ClickHouseBarStore
from signal_allocator.data.history_cache import (
    HistoricalPriceCache,
    previous_trading_day,
    shift_trading_days,
)
from signal_allocator.ingestion.clickhouse_schema import initialize_schema, verify_connection
from signal_allocator.ingestion.yahoo_finance import YahooFinanceProvider
from signal_allocator.utils.config import DEFAULT_CONFIG_PATH, load_config
from signal_allocator.utils.logger import setup_logger

logger = logging.getLogger("signal_allocator.warm_cache")


def main() -> int:
    parser = argparse.ArgumentParser(
        description='Fill missing daily bars for the strategy universe into the ClickHouse cache'
    )

    # 설정 파일
    parser.add_argument(
        '--config',
        type=str,
        default=str(DEFAULT_CONFIG_PATH),
        help=f'Path to config file (default: {DEFAULT_CONFIG_PATH})'
    )
    parser.add_argument('--mode', type=str, default='default', help='Trading mode section to apply')

    # 티커 선택 (선택사항)
    parser.add_argument(
        '--tickers',
        type=str,
        help='Comma-separated ticker symbols (overrides the strategy universe)'
    )
    parser.add_argument(
        '--lookback-days',
        type=int,
        help='Trading days to keep cached (overrides cache.universe_lookback_days)'
    )
    parser.add_argument('--init-schema', action='store_true', help='Create the bars table if missing')
    parser.add_argument('--batch', action='store_true', help='Fetch symbols sharing a date range in one request')

    args = parser.parse_args()

    config = load_config(args.config, trading_mode=args.mode)
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    if args.tickers:
        tickers = [t.strip().upper() for t in args.tickers.split(',') if t.strip()]
    else:
        tickers = config.strategy_universe()

    if not tickers:
        logger.error("No tickers specified in config or command line")
        return 1

    lookback_days = args.lookback_days or config.cache.universe_lookback_days
    end_date = previous_trading_day(date.today())
    start_date = shift_trading_days(end_date, lookback_days)

    db = config.database
    logger.info("Warm-up parameters:")
    logger.info(f"  Tickers: {tickers}")
    logger.info(f"  Range: {start_date} to {end_date} ({lookback_days} trading days)")
    logger.info(f"  ClickHouse: {db.host}:{db.port}/{db.database}")

    store = ClickHouseBarStore.connect(db.host, db.port, db.database, db.user, db.password)
    try:
        if not verify_connection(store.client):
            logger.error(f"Cannot reach ClickHouse at {db.host}:{db.port}, aborting warm-up")
            return 1

        if args.init_schema:
            initialize_schema(store.client)

        provider = YahooFinanceProvider(
            timeout=config.cache.request_timeout,
            max_retries=config.cache.max_retries,
            retry_delay=config.cache.retry_delay,
            supports_batch=args.batch,
        )
        cache = HistoricalPriceCache(
            store,
            provider,
            max_workers=config.cache.max_workers,
            fetch_timeout=config.cache.fetch_timeout,
        )
        result = cache.ensure_cached(tickers, start_date, end_date)

        # 결과 요약
        logger.info("=" * 60)
        logger.info("Warm-up completed:")
        logger.info(f"  Fetch calls: {result.fetch_calls}")
        logger.info(f"  New bars: {result.cached_bars_count}")
        logger.info(f"  Already cached: {len(result.skipped_symbols)}/{len(tickers)}")
        for ticker in tickers:
            date_range = store.get_date_range(ticker)
            if date_range:
                logger.info(f"  {ticker}: {date_range[0]} ~ {date_range[1]}")
            else:
                logger.warning(f"  {ticker}: no cached data")
        for error in result.errors:
            logger.error(f"  Failed: {error}")
        logger.info("=" * 60)

        return 0 if result.success else 1

    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 2
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
