"""
매매 전략(시그널 생성기) 추상 클래스 정의.

[ 역할 ]
    전략의 출력 형식(Signal)과 인터페이스(generate_signals)를 고정.
    얼로케이터는 전략이 방향/강도를 어떻게 정하는지 전혀 모른다.
    "무엇을 할지(시그널)"와 "얼마나 살지(사이징)"를 분리.

[ 구현체 ]
    - strategies/ma_trend.py::MATrendStrategy   (이동평균 추세)
    - strategies/ma_cross.py::MACrossStrategy   (이동평균 교차)
    - strategies/manual.py::ManualStrategy      (고정 시그널)

[ 호출하는 곳 ]
    - allocation/allocator.py::MasterAllocator._generate_all_signals()에서
      활성화된 전략마다 실행당 한 번 generate_signals() 호출

[ 데이터 흐름 ]
    RunContext(기준일, 캐시 읽기) → generate_signals() → list[Signal]
    → netting.py에서 종목별 순점수로 합산
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional

import pandas as pd

from signal_allocator.core.bar_store import BAR_COLUMNS, BarStore


class Direction(Enum):
    """시그널 방향."""
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


@dataclass(frozen=True)
class Signal:
    """전략 하나가 종목 하나에 대해 내는 시그널. 실행 내에서만 사용되고 저장되지 않음."""
    symbol: str
    strategy_id: str
    direction: Direction
    strength: float          # 0 이상
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if isinstance(self.direction, str):
            object.__setattr__(self, "direction", Direction(self.direction.lower()))
        if not isinstance(self.direction, Direction):
            raise ValueError(f"Invalid direction for {self.symbol}: {self.direction!r}")
        strength = float(self.strength)
        if math.isnan(strength) or math.isinf(strength) or strength < 0:
            raise ValueError(f"Strength must be a finite value >= 0, got {self.strength!r}")
        object.__setattr__(self, "strength", strength)
        object.__setattr__(self, "symbol", self.symbol.strip().upper())

    @property
    def signed_strength(self) -> float:
        return self.direction.sign * self.strength


@dataclass
class RunContext:
    """실행 컨텍스트. 전략에 읽기 전용으로 전달된다."""
    as_of: date
    trading_mode: str = "default"
    store: Optional[BarStore] = None

    def bars(self, symbol: str, lookback: int) -> pd.DataFrame:
        """기준일 이전까지 캐시된 최근 lookback개 일봉. 저장소가 없으면 빈 DataFrame."""
        if self.store is None:
            return pd.DataFrame(columns=BAR_COLUMNS)
        return self.store.get_recent_bars(symbol, self.as_of, lookback)


class TradingStrategy(ABC):
    """시그널 생성 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 generate_signals()를 구현하고
    strategies/__init__.py의 @register 데코레이터로 등록한다.
    """

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        self.name = name
        self.params = params or {}  # 설정 문서의 strategies.<id>.params

    @abstractmethod
    def generate_signals(self, context: RunContext) -> list[Signal]:
        """시그널 생성.

        Args:
            context: 실행 컨텍스트

        Returns:
            Signal 리스트 (없으면 빈 리스트)
        """
        ...

    def make_signal(self, symbol: str, direction: Direction, strength: float, **metadata) -> Signal:
        return Signal(
            symbol=symbol,
            strategy_id=self.name,
            direction=direction,
            strength=strength,
            metadata=metadata,
        )
