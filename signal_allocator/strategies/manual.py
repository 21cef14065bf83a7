"""
고정 시그널 전략 구현.

[ 역할 ]
    설정 문서에 적힌 시그널을 그대로 내보낸다.
    운영자 오버라이드, 외부에서 만든 확신도 리스트 주입 등에 사용.

[ 파라미터 (설정 문서 strategies.manual.params) ]
    signals: 종목별 시그널. 두 가지 형식 지원
        AAPL: {direction: long, strength: 0.8}
        MSFT: -0.5        # 부호 = 방향, 절댓값 = 강도
"""

from typing import Any

from signal_allocator.core.trading_strategy import (
    Direction,
    RunContext,
    Signal,
    TradingStrategy,
)
from signal_allocator.strategies import register


@register("manual")
class ManualStrategy(TradingStrategy):
    """고정 시그널 전략."""

    DEFAULT_PARAMS = {
        "signals": {},
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="manual", params=merged)

    def generate_signals(self, context: RunContext) -> list[Signal]:
        signals = []
        entries = {str(symbol).strip().upper(): entry for symbol, entry in dict(self.params["signals"] or {}).items()}
        for symbol, entry in sorted(entries.items()):
            if isinstance(entry, dict):
                direction = Direction(str(entry.get("direction", "long")).lower())
                strength = float(entry.get("strength", 1.0))
            else:
                value = float(entry)
                if value == 0:
                    continue
                direction = Direction.LONG if value > 0 else Direction.SHORT
                strength = abs(value)
            signals.append(self.make_signal(symbol, direction, strength, source="manual"))
        return signals
