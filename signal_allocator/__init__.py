"""
=============================================================================
시그널 얼로케이터 (Signal Allocator)
=============================================================================

[ 시스템 전체 구조 ]

    run_allocator.py (진입점)
         │
         ├── utils/config.py            ← portfolio_strategies.yaml 설정 로드 (실행마다)
         ├── utils/logger.py            ← 로깅
         │
         └── allocation/allocator.py    ← MasterAllocator (실행 오케스트레이션)
               │
               ├── strategies/                  ← 전략 레지스트리 + 시그널 생성
               ├── data/history_cache.py        ← 갭 인식 일봉 캐시 예열
               ├── allocation/netting.py        ← 종목별 순점수
               └── allocation/sizing.py         ← ATR 기반 목표 금액


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py    → ingestion/yahoo_finance.py::YahooFinanceProvider
                             → data/memory_store.py::StaticPriceProvider (테스트용)

    core/bar_store.py        → data/clickhouse_store.py::ClickHouseBarStore
                             → data/memory_store.py::InMemoryBarStore (테스트용)

    core/trading_strategy.py → strategies/ma_trend.py, ma_cross.py, manual.py


[ 데이터 흐름 ]

    1. 설정 문서에서 전략 활성화/가중치/리스크 파라미터 로드
    2. 활성화된 전략이 Signal(종목, 방향, 강도) 생성
    3. 시그널에 등장한 종목의 일봉을 캐시에 예열 (누락분만 수집)
    4. 전략 가중치로 종목별 순점수 합산
    5. ATR에 반비례하도록 목표 금액 계산 → TargetPosition 리스트
    6. 외부 실행 레이어가 TargetPosition을 받아 주문 (이 시스템은 주문하지 않음)
"""
