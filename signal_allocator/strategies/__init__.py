"""
전략 모듈.

[ 전략 등록 방식 ]
    @register("전략이름") 데코레이터를 붙이면 STRATEGY_REGISTRY에 등록.
    등록 대상 모듈은 아래 _STRATEGY_MODULES에 명시적으로 나열한다.
    설정 문서의 strategies.<id>는 이 이름으로 전략 클래스를 찾는다.

[ 새 전략 추가 방법 ]
    1. 이 디렉토리에 새 .py 파일 생성
    2. TradingStrategy를 상속받고 generate_signals() 구현
    3. @register("이름") 데코레이터 추가
    4. _STRATEGY_MODULES에 모듈 이름 추가
    5. 설정 문서 strategies 섹션에 enabled / weight / params 지정

[ 검증 ]
    validate_strategies()가 실행 전에 호출되어,
    활성화된 전략 id가 등록되어 있지 않으면 ValidationError로 실행을 중단한다.
"""

from importlib import import_module
from typing import Any, Iterable

from signal_allocator.core.errors import ValidationError
from signal_allocator.core.trading_strategy import TradingStrategy

# 전략 이름 → 전략 클래스 매핑
STRATEGY_REGISTRY: dict[str, type[TradingStrategy]] = {}

_STRATEGY_MODULES = ("ma_trend", "ma_cross", "manual")


def register(name: str):
    """전략 클래스를 STRATEGY_REGISTRY에 등록하는 데코레이터."""
    def decorator(cls: type[TradingStrategy]):
        if not (isinstance(cls, type) and issubclass(cls, TradingStrategy)):
            raise TypeError(f"{cls!r} is not a TradingStrategy subclass")
        existing = STRATEGY_REGISTRY.get(name)
        if existing is not None and existing is not cls:
            raise ValueError(f"Strategy '{name}' is already registered to {existing.__name__}")
        STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


def create_strategy(name: str, params: dict[str, Any] | None = None) -> TradingStrategy:
    """이름으로 전략 인스턴스를 생성.

    Args:
        name: 등록된 전략 이름 (예: "ma_trend", "manual")
        params: 전략 파라미터 (각 전략의 DEFAULT_PARAMS를 오버라이드)

    Raises:
        ValidationError: 등록되지 않은 전략 이름
    """
    if name not in STRATEGY_REGISTRY:
        available = ", ".join(sorted(STRATEGY_REGISTRY.keys()))
        raise ValidationError(f"Unknown strategy: '{name}'. Available: {available}")
    return STRATEGY_REGISTRY[name](params=params)


def list_strategies() -> list[str]:
    """등록된 전략 이름 목록 반환."""
    return sorted(STRATEGY_REGISTRY.keys())


def validate_strategies(strategy_ids: Iterable[str]) -> None:
    """활성화된 전략 id가 모두 등록되어 있는지 확인."""
    unknown = sorted(set(strategy_ids) - set(STRATEGY_REGISTRY))
    if unknown:
        available = ", ".join(list_strategies())
        raise ValidationError(f"Unknown strategies in config: {', '.join(unknown)}. Available: {available}")


for _module in _STRATEGY_MODULES:
    import_module(f"signal_allocator.strategies.{_module}")
