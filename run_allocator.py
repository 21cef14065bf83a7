"""
얼로케이션 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config/portfolio_strategies.yaml, default 모드, 샘플 데이터)
    python run_allocator.py --equity 100000

    # 트레이딩 모드 지정
    python run_allocator.py --equity 100000 --mode paper

    # ClickHouse 캐시 + Yahoo Finance 사용
    python run_allocator.py --equity 100000 --source clickhouse

    # 기준일 지정
    python run_allocator.py --equity 100000 --as-of 2024-06-14

    # 전략 설정 오버라이드
    python run_allocator.py --equity 100000 -s ma_cross.enabled=false -s ma_trend.weight=1.0

    # 등록된 전략 목록 확인
    python run_allocator.py --list
"""

import argparse
import json
import sys
from datetime import date
from typing import Any

import numpy as np
import pandas as pd
import yaml

from signal_allocator.allocation.allocator import AllocationResult, MasterAllocator
from signal_allocator.core.data_provider import PriceBar
from signal_allocator.core.errors import ValidationError
from signal_allocator.data.clickhouse_store import ClickHouseBarStore
from signal_allocator.data.memory_store import InMemoryBarStore, StaticPriceProvider
from signal_allocator.ingestion.yahoo_finance import YahooFinanceProvider
from signal_allocator.strategies import list_strategies
from signal_allocator.utils.config import AllocatorConfig, DEFAULT_CONFIG_PATH, deep_merge, load_config
from signal_allocator.utils.logger import setup_logger


def generate_sample_bars(
    ticker: str,
    end_date: date,
    days: int = 120,
    initial_price: float = 100.0,
    volatility: float = 0.02,
) -> list[PriceBar]:
    """샘플 일봉 생성. 티커별로 시드가 고정되어 실행마다 같은 데이터."""
    rng = np.random.default_rng(sum(ord(c) for c in ticker))

    dates = pd.bdate_range(end=end_date, periods=days)
    returns = rng.normal(0.0003, volatility, len(dates))
    closes = initial_price * np.cumprod(1 + returns)

    bars = []
    for d, close in zip(dates, closes):
        open_price = close * (1 + rng.normal(0, 0.005))
        high = max(open_price, close) * (1 + abs(rng.normal(0, 0.01)))
        low = min(open_price, close) * (1 - abs(rng.normal(0, 0.01)))
        bars.append(PriceBar(
            symbol=ticker,
            trading_date=d.date(),
            open=round(float(open_price), 2),
            high=round(float(high), 2),
            low=round(float(low), 2),
            close=round(float(close), 2),
            volume=int(rng.lognormal(14, 1)),
        ))
    return bars


def parse_setting(setting: str) -> dict[str, Any]:
    """'ma_trend.weight=0.5' → {'strategies': {'ma_trend': {'weight': 0.5}}}.

    값은 YAML 스칼라로 해석 (숫자, true/false 자동 변환).
    """
    key, _, value = setting.partition("=")
    strategy_id, _, field_name = key.strip().partition(".")
    if not strategy_id or not field_name:
        raise ValueError(f"Invalid setting '{setting}', expected <strategy>.<field>=<value>")
    return {"strategies": {strategy_id: {field_name: yaml.safe_load(value.strip())}}}


def build_backend(config: AllocatorConfig, source: str, as_of: date):
    """(store, provider) 생성."""
    if source == "sample":
        print("샘플 데이터 생성 중...")
        bars = []
        for ticker in config.strategy_universe():
            bars.extend(generate_sample_bars(ticker, as_of))
        print(f"  {len(config.strategy_universe())}개 종목, {len(bars)}개 일봉")
        return InMemoryBarStore(bars), StaticPriceProvider(bars)

    if source == "clickhouse":
        db = config.database
        store = ClickHouseBarStore.connect(db.host, db.port, db.database, db.user, db.password)
        provider = YahooFinanceProvider(
            timeout=config.cache.request_timeout,
            max_retries=config.cache.max_retries,
            retry_delay=config.cache.retry_delay,
        )
        return store, provider

    raise ValueError(f"Unknown data source: {source}")


def print_result(result: AllocationResult) -> None:
    meta = result.metadata
    print(f"\n{'=' * 60}")
    print(f"얼로케이션 결과 ({meta['trading_mode']}, 기준일 {meta['as_of']})")
    print(f"{'=' * 60}")
    print(f"  시그널: {meta['total_signals']}개, 순점수 종목: {meta['netted_tickers']}개, "
          f"포지션: {meta['generated_positions']}개 (risk_target_pct={meta['risk_target_pct']})")

    print("\n전략별 결과:")
    for strategy_id, info in result.strategy_results.items():
        status = "OK  " if info["status"] == "success" else "FAIL"
        detail = f"{info['signal_count']}개 시그널" if info["status"] == "success" else info.get("error", "")
        print(f"  [{status}] {strategy_id}: {detail}")

    if result.target_positions:
        print("\n목표 포지션:")
        for p in result.target_positions:
            side = "LONG " if p.is_long else "SHORT"
            capped = " (상한 적용)" if p.metadata.get("capped") else ""
            print(f"  {side} {p.symbol:<8} {p.target_value:>14,.2f}  "
                  f"score={p.metadata['net_score']:+.3f} ATR={p.metadata['atr']:.2f}{capped}")

    if meta["skipped_tickers"]:
        print(f"\n제외된 종목 (데이터 부족): {', '.join(meta['skipped_tickers'])}")
    if result.fetch_errors:
        print(f"\n수집 실패 {len(result.fetch_errors)}건:")
        for error in result.fetch_errors:
            print(f"  - {error}")


def main() -> int:
    parser = argparse.ArgumentParser(description="시그널 얼로케이션 실행")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG_PATH), help="설정 파일 경로")
    parser.add_argument("--mode", type=str, default="default", help="트레이딩 모드 (default, paper, live)")
    parser.add_argument("--equity", type=float, help="총 자본 (필수, 양수)")
    parser.add_argument("--account", type=str, default="default", help="계정 ID (동시 실행 직렬화 단위)")
    parser.add_argument("--as-of", type=str, default=None, help="기준일 YYYY-MM-DD (기본: 오늘)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "clickhouse"], help="데이터 소스")
    parser.add_argument("-s", "--set", action="append", default=[], help="전략 설정 오버라이드 (예: -s ma_trend.weight=0.5)")
    parser.add_argument("--json", action="store_true", help="결과를 JSON으로 출력")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args()

    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}")
        return 0

    if args.equity is None:
        parser.error("--equity is required")

    override: dict[str, Any] = {}
    for setting in args.set:
        override = deep_merge(override, parse_setting(setting))

    # 설정은 실행마다 새로 로드
    config = load_config(args.config, trading_mode=args.mode, override=override or None)
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    as_of = date.fromisoformat(args.as_of) if args.as_of else date.today()
    store, provider = build_backend(config, args.source, as_of)

    allocator = MasterAllocator(config, store, provider)
    try:
        result = allocator.run(args.equity, account_id=args.account, as_of=as_of)
    except ValidationError as e:
        print(f"오류: {e}", file=sys.stderr)
        return 2
    finally:
        if isinstance(store, ClickHouseBarStore):
            store.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
