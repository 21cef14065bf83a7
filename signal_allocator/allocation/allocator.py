"""
마스터 얼로케이터 (시스템 오케스트레이터).

[ 역할 ]
    한 번의 실행으로 설정 → 전략 → 캐시 예열 → 네팅 → 사이징을 거쳐
    최종 목표 포지션 리스트를 만든다. 주문은 내지 않는다.

[ 실행 순서 (순서 자체가 불변식) ]
    1. 설정 (AllocatorConfig 값으로 전달받음)
    2. 사전 검증: total_equity > 0, as_of가 미래가 아님, 리스크 파라미터, 전략 등록 여부
       → 실패 시 ValidationError. 어떤 수집/저장도 일어나지 않음
    3. 활성화된 전략 생성
    4. 전략별 시그널 생성 (실패한 전략은 격리, 빈 시그널로 처리)
    5. 시그널에 등장한 심볼 전체에 대해 가격 캐시 예열
       → 실패해도 중단하지 않고 이미 캐시된 데이터로 진행
    6. 네팅
    7. 사이징
    8. 목표 포지션 + 메타데이터 반환

[ 동시성 ]
    같은 account_id의 실행은 계정별 락으로 직렬화 (리스크 예산 이중 사용 방지).
    실행 로컬 상태(시그널, 순점수)는 실행이 끝나면 버려진다.

[ 호출하는 곳 ]
    - run_allocator.py
    - 외부 실행 레이어가 AllocationResult.target_positions를 소비
"""

import logging
import math
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterator, Optional

from signal_allocator.allocation.netting import net_signals
from signal_allocator.allocation.sizing import VolatilitySizer
from signal_allocator.core.bar_store import BarStore
from signal_allocator.core.data_provider import PriceProvider
from signal_allocator.core.errors import FetchFailure, StrategyFailure, ValidationError
from signal_allocator.core.positions import NetScore, TargetPosition
from signal_allocator.core.trading_strategy import RunContext, Signal, TradingStrategy
from signal_allocator.data.history_cache import (
    HistoricalPriceCache,
    parse_date,
    previous_trading_day,
    shift_trading_days,
)
from signal_allocator.strategies import create_strategy, validate_strategies
from signal_allocator.utils.config import AllocatorConfig

logger = logging.getLogger("signal_allocator.allocator")

_RUN_LOCKS: dict[str, "_AccountLock"] = {}
_RUN_LOCKS_GUARD = threading.Lock()


@dataclass
class _AccountLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0  # 락을 잡고 있거나 기다리는 실행 수


@contextmanager
def run_lock(account_id: str) -> Iterator[None]:
    """계정별 실행 락.

    같은 account_id의 실행은 하나씩만 진입한다.
    마지막 실행이 빠져나가면 항목을 지워서 레지스트리가 계정 수만큼 쌓이지 않는다.
    """
    with _RUN_LOCKS_GUARD:
        entry = _RUN_LOCKS.setdefault(account_id, _AccountLock())
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _RUN_LOCKS_GUARD:
            entry.users -= 1
            if entry.users == 0:
                del _RUN_LOCKS[account_id]


@dataclass
class AllocationResult:
    """MasterAllocator.run()의 반환값."""
    target_positions: list[TargetPosition]
    metadata: dict[str, Any]
    strategy_results: dict[str, dict[str, Any]] = field(default_factory=dict)
    fetch_errors: list[FetchFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_positions": [p.to_dict() for p in self.target_positions],
            "metadata": self.metadata,
            "strategy_results": self.strategy_results,
            "fetch_errors": [e.to_dict() for e in self.fetch_errors],
        }


class MasterAllocator:
    """신호 수집 → 네팅 → 변동성 사이징 오케스트레이터.

    사용 예:
        config = load_config("config/portfolio_strategies.yaml", trading_mode="paper")
        allocator = MasterAllocator(config, store, YahooFinanceProvider())
        result = allocator.run(total_equity=100_000)
    """

    def __init__(
        self,
        config: AllocatorConfig,
        store: BarStore,
        provider: PriceProvider,
        clock: Callable[[], date] = date.today,
    ):
        self.config = config
        self.store = store
        self.provider = provider
        self.clock = clock

    def run(
        self,
        total_equity: float,
        account_id: str = "default",
        as_of: Optional[date] = None,
    ) -> AllocationResult:
        """얼로케이션 1회 실행.

        Raises:
            ValidationError: 사전 검증 실패 (부수효과 없음)
        """
        with run_lock(account_id):
            as_of = self._validate(total_equity, as_of)
            risk = self.config.risk
            logger.info(
                f"Allocation run started: account={account_id}, mode={self.config.trading_mode}, "
                f"equity={total_equity:,.2f}, as_of={as_of}"
            )

            strategy_results: dict[str, dict[str, Any]] = {}
            failures: list[StrategyFailure] = []
            strategies = self._initialize_strategies(strategy_results, failures)
            context = RunContext(as_of=as_of, trading_mode=self.config.trading_mode, store=self.store)
            all_signals = self._generate_all_signals(strategies, context, strategy_results, failures)

            symbols = sorted({signal.symbol for signal in all_signals})
            fetch_errors = self._prewarm_cache(symbols, as_of)

            net_scores = self._net_signals(all_signals)
            sizing = VolatilitySizer(
                self.store,
                atr_period=int(risk.atr_period),
                max_position_pct=risk.max_position_pct,
                max_conviction=risk.max_conviction,
            ).size(net_scores, total_equity, risk.risk_target_pct, as_of)

            metadata = self._build_metadata(
                account_id, as_of, all_signals, net_scores, sizing.positions,
                sizing.skipped, failures, fetch_errors,
            )
            logger.info(
                f"Allocation run finished: {metadata['total_signals']} signals, "
                f"{metadata['netted_tickers']} netted, {metadata['generated_positions']} positions"
            )
            return AllocationResult(
                target_positions=sizing.positions,
                metadata=metadata,
                strategy_results=strategy_results,
                fetch_errors=fetch_errors,
            )

    def _validate(self, total_equity: float, as_of: Optional[date]) -> date:
        if total_equity is None or isinstance(total_equity, bool):
            raise ValidationError("total_equity parameter is required and must be positive")
        try:
            equity = float(total_equity)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"total_equity must be a number, got {total_equity!r}") from e
        if not math.isfinite(equity) or equity <= 0:
            raise ValidationError("total_equity parameter is required and must be positive")

        today = self.clock()
        as_of = today if as_of is None else parse_date(as_of)
        if as_of > today:
            raise ValidationError(f"as_of cannot be in the future ({as_of})")

        self.config.validate()
        validate_strategies(self.config.enabled_strategies)
        return as_of

    def _initialize_strategies(
        self,
        strategy_results: dict[str, dict[str, Any]],
        failures: list[StrategyFailure],
    ) -> dict[str, TradingStrategy]:
        instances = {}
        for strategy_id, conf in sorted(self.config.enabled_strategies.items()):
            try:
                instances[strategy_id] = create_strategy(strategy_id, conf.params)
            except Exception as e:
                self._record_failure(strategy_id, e, strategy_results, failures)
        return instances

    def _generate_all_signals(
        self,
        strategies: dict[str, TradingStrategy],
        context: RunContext,
        strategy_results: dict[str, dict[str, Any]],
        failures: list[StrategyFailure],
    ) -> list[Signal]:
        all_signals: list[Signal] = []

        for strategy_id, strategy in strategies.items():
            try:
                signals = self._collect(strategy_id, strategy, context)
            except Exception as e:
                self._record_failure(strategy_id, e, strategy_results, failures)
                continue

            all_signals.extend(signals)
            strategy_results[strategy_id] = {"status": "success", "signal_count": len(signals)}
            logger.info(f"Strategy {strategy_id}: {len(signals)} signals")

        return all_signals

    @staticmethod
    def _record_failure(
        strategy_id: str,
        error: Exception,
        strategy_results: dict[str, dict[str, Any]],
        failures: list[StrategyFailure],
    ) -> None:
        logger.error(f"Strategy {strategy_id} failed: {error}", exc_info=True)
        failures.append(StrategyFailure(strategy_id, str(error)))
        strategy_results[strategy_id] = {"status": "failed", "error": str(error), "signal_count": 0}

    @staticmethod
    def _collect(strategy_id: str, strategy: TradingStrategy, context: RunContext) -> list[Signal]:
        signals = strategy.generate_signals(context)
        if signals is None:
            return []

        collected = []
        for signal in signals:
            if not isinstance(signal, Signal):
                raise TypeError(f"expected Signal, got {type(signal).__name__}")
            if signal.strategy_id != strategy_id:
                signal = Signal(signal.symbol, strategy_id, signal.direction, signal.strength, signal.metadata)
            collected.append(signal)
        return collected

    def _prewarm_cache(self, symbols: list[str], as_of: date) -> list[FetchFailure]:
        """ATR 구간(+여유분)에 대해 캐시 예열. 실패해도 실행은 계속."""
        if not symbols:
            return []

        risk = self.config.risk
        cache_conf = self.config.cache
        # 장 마감된 날까지만 캐시 (당일 미완성 봉은 저장하지 않음)
        end = previous_trading_day(as_of)
        start = shift_trading_days(end, int(risk.atr_period) + int(cache_conf.history_buffer_days))

        cache = HistoricalPriceCache(
            self.store,
            self.provider,
            max_workers=cache_conf.max_workers,
            fetch_timeout=cache_conf.fetch_timeout,
            clock=self.clock,
        )
        try:
            result = cache.ensure_cached(symbols, start, end)
        except Exception as e:
            logger.error(f"Cache pre-warm failed, using cached data only: {e}")
            return [FetchFailure(tuple(symbols), start, end, str(e))]

        for error in result.errors:
            logger.warning(f"Cache pre-warm error (continuing with cached data): {error}")
        return result.errors

    def _net_signals(self, all_signals: list[Signal]) -> dict[str, NetScore]:
        return net_signals(all_signals, self.config.weights, epsilon=self.config.risk.netting_epsilon)

    def _build_metadata(
        self,
        account_id: str,
        as_of: date,
        all_signals: list[Signal],
        net_scores: dict[str, NetScore],
        positions: list[TargetPosition],
        skipped: dict[str, str],
        failures: list[StrategyFailure],
        fetch_errors: list[FetchFailure],
    ) -> dict[str, Any]:
        return {
            "total_signals": len(all_signals),
            "netted_tickers": len(net_scores),
            "generated_positions": len(positions),
            "risk_target_pct": self.config.risk.risk_target_pct,
            "account_id": account_id,
            "as_of": as_of.isoformat(),
            "trading_mode": self.config.trading_mode,
            "skipped_tickers": dict(skipped),
            "failed_strategies": [f.to_dict() for f in failures],
            "fetch_errors": len(fetch_errors),
        }
