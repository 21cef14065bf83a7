"""
시그널 네팅 모듈.

[ 역할 ]
    같은 종목에 대한 여러 전략의 시그널을 전략 가중치로 합산해
    종목별 부호 있는 순점수(NetScore) 하나로 만든다.

    net_score = Σ weight[strategy_id] × (+1 long / -1 short) × strength

[ 성질 ]
    - 순수 함수: 같은 입력이면 항상 같은 출력
    - 시그널 순서와 무관 (math.fsum으로 합산 → 반올림 오차도 순서 무관)
    - |net_score| < epsilon 이면 제외 → 반대 방향 전략이 상쇄되면 포지션 없음

[ 호출하는 곳 ]
    - allocation/allocator.py::MasterAllocator._net_signals()
"""

import logging
import math
from collections import defaultdict
from typing import Iterable, Mapping

from signal_allocator.core.positions import NetScore
from signal_allocator.core.trading_strategy import Signal

logger = logging.getLogger("signal_allocator.netting")

DEFAULT_EPSILON = 1e-9


def net_signals(
    signals: Iterable[Signal],
    weights: Mapping[str, float],
    epsilon: float = DEFAULT_EPSILON,
) -> dict[str, NetScore]:
    """시그널을 종목별 순점수로 합산.

    Args:
        signals: 모든 전략의 시그널
        weights: strategy_id → 가중치 (0~1)
        epsilon: 이 값보다 작은 |순점수|는 0으로 보고 제외

    Returns:
        symbol → NetScore (심볼 순 정렬)
    """
    terms: dict[str, list[float]] = defaultdict(list)
    contributions: dict[str, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))
    unweighted: set[str] = set()

    for signal in signals:
        weight = float(weights.get(signal.strategy_id, 0.0))
        if weight == 0.0:
            unweighted.add(signal.strategy_id)
            continue

        term = weight * signal.signed_strength
        terms[signal.symbol].append(term)
        contributions[signal.symbol][signal.strategy_id].append(term)

    for strategy_id in sorted(unweighted):
        logger.warning(f"Strategy '{strategy_id}' has 0 weight or is missing, its signals are ignored")

    net_scores = {}
    for symbol in sorted(terms):
        score = math.fsum(terms[symbol])
        if abs(score) < epsilon:
            logger.info(f"{symbol}: signals cancel out (net score {score:.3g}), no position")
            continue
        net_scores[symbol] = NetScore(
            symbol=symbol,
            score=score,
            contributions={
                strategy_id: math.fsum(values)
                for strategy_id, values in sorted(contributions[symbol].items())
            },
        )

    return net_scores
