"""
ClickHouse 일봉 캐시 테이블 정의 및 연결 관리

    historical_bars: (symbol, trading_date)당 일봉 1행.
    ReplacingMergeTree + ORDER BY (symbol, trading_date)라서
    두 실행이 같은 일봉을 동시에 넣어도 병합 후에는 한 행만 남는다.
    쓰기 경로(ClickHouseBarStore)는 삽입 전에 기존 날짜를 비교하고,
    읽기 경로는 FINAL로 병합 전 중복을 가린다.
"""
import logging

import clickhouse_connect
from clickhouse_connect.driver import Client

logger = logging.getLogger("signal_allocator.clickhouse")

BARS_TABLE = "historical_bars"

BARS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    symbol String,
    trading_date Date,
    open Float64,
    high Float64,
    low Float64,
    close Float64,
    volume UInt64,
    source String DEFAULT 'yahoo',
    ingestion_time DateTime DEFAULT now()
)
ENGINE = ReplacingMergeTree()
PARTITION BY toYYYYMM(trading_date)
ORDER BY (symbol, trading_date)
SETTINGS index_granularity = 8192
"""


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
    query_timeout: int = 30,
) -> Client:
    """
    ClickHouse HTTP 클라이언트 생성

    캐시 예열 중 여러 스레드가 클라이언트 하나를 같이 쓰므로 세션 ID를 만들지 않는다
    (세션은 동시 쿼리를 허용하지 않음).

    Args:
        host, port, database, user, password: 접속 정보 (설정 문서 database 섹션)
        query_timeout: 요청 1회의 송수신 타임아웃 (초)
    """
    logger.debug(f"Connecting to ClickHouse {host}:{port}/{database}")
    return clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
        autogenerate_session_id=False,
        query_limit=0,
        send_receive_timeout=query_timeout,
    )


def initialize_schema(client: Client, table: str = BARS_TABLE) -> None:
    """일봉 캐시 테이블 생성 (이미 존재하면 무시)."""
    client.command(BARS_TABLE_DDL.format(table=table))
    logger.info(f"Table {table} ready")


def verify_connection(client: Client) -> bool:
    """SELECT 1이 성공하면 True. 실패는 로그만 남긴다."""
    try:
        return client.command("SELECT 1") == 1
    except Exception as e:
        logger.error(f"ClickHouse connection failed: {e}")
        return False
