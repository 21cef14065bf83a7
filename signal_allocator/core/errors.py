"""
에러 분류.

    ValidationError  - 실행 전 검증 실패. 유일하게 실행 전체를 중단시킨다.
    StrategyFailure  - 전략 하나의 실패 기록. 나머지 전략은 계속 진행.
    FetchFailure     - 심볼/구간 하나의 수집 실패 기록. 캐시된 데이터로 계속 진행.

ATR 계산용 데이터 부족은 에러가 아니다 (sizing.py에서 해당 종목만 제외).
"""

from dataclasses import dataclass
from datetime import date


class ValidationError(ValueError):
    """입력 검증 실패. 어떤 수집/저장도 일어나기 전에 발생."""


@dataclass(frozen=True)
class StrategyFailure:
    strategy_id: str
    error: str

    def to_dict(self) -> dict:
        return {"strategy_id": self.strategy_id, "error": self.error}


@dataclass(frozen=True)
class FetchFailure:
    symbols: tuple[str, ...]
    start_date: date
    end_date: date
    error: str

    def __str__(self) -> str:
        return f"{','.join(self.symbols)} ({self.start_date} to {self.end_date}): {self.error}"

    def to_dict(self) -> dict:
        return {
            "symbols": list(self.symbols),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "error": self.error,
        }
