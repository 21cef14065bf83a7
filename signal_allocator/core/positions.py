"""
순점수(NetScore)와 목표 포지션(TargetPosition) 정의.

[ 역할 ]
    전략 레이어와 실행 레이어 사이의 안정적인 데이터 계약.
    TargetPosition이 이 시스템의 유일한 출력이며,
    결과에 없는 종목은 "포지션 없음(flat)"을 의미한다.

[ 호출하는 곳 ]
    - allocation/netting.py → NetScore 생성
    - allocation/sizing.py  → TargetPosition 생성
    - 외부 실행 레이어가 target_positions를 소비
"""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class NetScore:
    """종목별 가중 순점수. 실행 중에만 존재."""
    symbol: str
    score: float
    contributions: dict[str, float] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class TargetPosition:
    """목표 포지션. target_value는 부호 있는 달러 금액 (음수 = 숏)."""
    symbol: str
    asset_type: str
    target_value: float
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_long(self) -> bool:
        return self.target_value > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
