"""
설정 관리 모듈.

[ 역할 ]
    config/portfolio_strategies.yaml 파일을 파싱하여 AllocatorConfig 객체로 변환.
    default 섹션 위에 트레이딩 모드(paper, live 등) 섹션을 깊은 병합하고,
    필요하면 override dict를 한 번 더 병합한다.
    전역 상태가 아니라 실행 시작 시 얼로케이터에 값으로 전달된다.

[ 설정 파일 구조 ]
    default:                   → 모든 모드의 기본값
      risk_management:         → RiskConfig
      cache:                   → CacheConfig
      database:                → DatabaseConfig
      strategies:              → {strategy_id: StrategyConfig}
      log_level / log_dir
    paper: / live: ...         → 모드별 오버라이드 (default와 같은 구조)

[ 호출하는 곳 ]
    - run_allocator.py에서 실행마다 load_config()로 새로 로드
    - allocation/allocator.py::MasterAllocator 생성 시 전달
"""

import json
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from signal_allocator.core.errors import ValidationError

DEFAULT_CONFIG_PATH = Path("config/portfolio_strategies.yaml")


@dataclass
class RiskConfig:
    """리스크 설정. risk_management 섹션에 대응."""
    risk_target_pct: float = 0.01     # 종목당 리스크 예산 (자본 대비)
    max_position_pct: float = 0.10    # 종목당 최대 비중 (자본 대비)
    atr_period: int = 14              # ATR lookback (거래일)
    max_conviction: float = 1.0       # 확신도 스케일 상한
    netting_epsilon: float = 1e-9


@dataclass
class CacheConfig:
    """가격 캐시 설정. cache 섹션에 대응."""
    max_workers: int = 4
    fetch_timeout: float = 30.0       # 캐시 예열 전체 대기 상한 (초)
    request_timeout: float = 10.0     # 상위 요청 1회 타임아웃 (초)
    max_retries: int = 3
    retry_delay: float = 5.0
    history_buffer_days: int = 5      # ATR 구간 외 추가로 예열할 거래일
    universe_lookback_days: int = 120 # warm_cache.py가 전략 유니버스를 채우는 기간 (거래일)


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"


@dataclass
class StrategyConfig:
    """전략 하나의 설정. strategies.<id> 섹션에 대응."""
    strategy_id: str
    enabled: bool = False
    weight: float = 0.0
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class AllocatorConfig:
    """전체 설정. load_config() 또는 from_dict()로 생성."""
    trading_mode: str = "default"
    risk: RiskConfig = field(default_factory=RiskConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    strategies: dict[str, StrategyConfig] = field(default_factory=dict)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @property
    def enabled_strategies(self) -> dict[str, StrategyConfig]:
        return {sid: conf for sid, conf in self.strategies.items() if conf.enabled}

    @property
    def weights(self) -> dict[str, float]:
        """활성화된 전략의 가중치."""
        return {sid: conf.weight for sid, conf in self.enabled_strategies.items()}

    def strategy_universe(self) -> list[str]:
        """활성화된 전략들의 params.tickers / params.signals 종목 합집합."""
        symbols = set()
        for conf in self.enabled_strategies.values():
            symbols.update(str(t).strip().upper() for t in conf.params.get("tickers") or [])
            symbols.update(str(t).strip().upper() for t in conf.params.get("signals") or {})
        return sorted(s for s in symbols if s)

    @classmethod
    def from_yaml(
        cls,
        path: str | Path,
        trading_mode: str = "default",
        override: Optional[dict[str, Any]] = None,
    ) -> "AllocatorConfig":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            document = yaml.safe_load(f) or {}
        return cls.from_document(document, trading_mode, override)

    @classmethod
    def from_json(
        cls,
        path: str | Path,
        trading_mode: str = "default",
        override: Optional[dict[str, Any]] = None,
    ) -> "AllocatorConfig":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
        return cls.from_document(document, trading_mode, override)

    @classmethod
    def from_document(
        cls,
        document: dict[str, Any],
        trading_mode: str = "default",
        override: Optional[dict[str, Any]] = None,
    ) -> "AllocatorConfig":
        """default + 모드 섹션 + override 병합 후 생성."""
        data = deep_merge(document.get("default") or {}, document.get(trading_mode) or {})
        if override:
            data = deep_merge(data, override)
        return cls.from_dict(data, trading_mode)

    @classmethod
    def from_dict(cls, data: dict[str, Any], trading_mode: str = "default") -> "AllocatorConfig":
        """병합이 끝난 딕셔너리에서 AllocatorConfig 생성."""
        risk = RiskConfig(**{
            k: v for k, v in (data.get("risk_management") or {}).items()
            if k in RiskConfig.__dataclass_fields__
        })
        cache = CacheConfig(**{
            k: v for k, v in (data.get("cache") or {}).items()
            if k in CacheConfig.__dataclass_fields__
        })
        database = DatabaseConfig(**{
            k: v for k, v in (data.get("database") or {}).items()
            if k in DatabaseConfig.__dataclass_fields__
        })

        strategies = {}
        for strategy_id, conf in (data.get("strategies") or {}).items():
            conf = conf or {}
            strategies[strategy_id] = StrategyConfig(
                strategy_id=strategy_id,
                enabled=bool(conf.get("enabled", False)),
                weight=float(conf.get("weight", 0.0) or 0.0),
                params=dict(conf.get("params") or {}),
            )

        return cls(
            trading_mode=trading_mode,
            risk=risk,
            cache=cache,
            database=database,
            strategies=strategies,
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def validate(self) -> None:
        """값 범위 검증. 실패 시 ValidationError."""
        risk = self.risk
        if not (0 < risk.risk_target_pct <= 1):
            raise ValidationError(f"risk_target_pct must be in (0, 1], got {risk.risk_target_pct}")
        if not (0 < risk.max_position_pct <= 1):
            raise ValidationError(f"max_position_pct must be in (0, 1], got {risk.max_position_pct}")
        if int(risk.atr_period) < 1:
            raise ValidationError(f"atr_period must be >= 1, got {risk.atr_period}")
        if not risk.max_conviction > 0:
            raise ValidationError(f"max_conviction must be positive, got {risk.max_conviction}")

        for strategy_id, conf in self.strategies.items():
            if math.isnan(conf.weight) or not (0.0 <= conf.weight <= 1.0):
                raise ValidationError(f"Weight for strategy '{strategy_id}' must be in [0, 1], got {conf.weight}")

    def to_dict(self) -> dict[str, Any]:
        """설정 문서 형식의 딕셔너리로 변환."""
        return {
            "risk_management": asdict(self.risk),
            "cache": asdict(self.cache),
            "database": asdict(self.database),
            "strategies": {
                sid: {"enabled": conf.enabled, "weight": conf.weight, "params": conf.params}
                for sid, conf in self.strategies.items()
            },
            "log_level": self.log_level,
            "log_dir": self.log_dir,
        }


def deep_merge(base: dict[str, Any], other: dict[str, Any]) -> dict[str, Any]:
    """중첩 dict 병합. 양쪽 모두 dict인 키는 재귀 병합, 그 외에는 other 값 우선."""
    merged = dict(base)
    for key, value in other.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path = DEFAULT_CONFIG_PATH,
    trading_mode: str = "default",
    override: Optional[dict[str, Any]] = None,
) -> AllocatorConfig:
    """설정 파일 로드. 파일이 없으면 기본값(+override) 사용."""
    path = Path(path)
    if not path.exists():
        return AllocatorConfig.from_document({}, trading_mode, override)
    if path.suffix == ".json":
        return AllocatorConfig.from_json(path, trading_mode, override)
    return AllocatorConfig.from_yaml(path, trading_mode, override)
