"""scripts/warm_cache.py 테스트 (ClickHouse/Yahoo는 patch)."""

import importlib.util
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from signal_allocator.data.history_cache import CacheFillResult

SCRIPT_PATH = Path(__file__).parent.parent / "scripts" / "warm_cache.py"


@pytest.fixture(scope="module")
def warm_cache():
    spec = importlib.util.spec_from_file_location("warm_cache", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def store() -> MagicMock:
    store = MagicMock()
    store.get_date_range.return_value = None
    return store


def run_main(warm_cache, store, tmp_path, monkeypatch, *args, connected=True):
    monkeypatch.setattr(sys, "argv", ["warm_cache.py", "--config", str(tmp_path / "missing.yaml"), *args])
    with patch.object(warm_cache, "setup_logger"), \
         patch.object(warm_cache.ClickHouseBarStore, "connect", return_value=store), \
         patch.object(warm_cache, "verify_connection", return_value=connected) as verify, \
         patch.object(warm_cache, "initialize_schema") as init_schema, \
         patch.object(warm_cache, "HistoricalPriceCache") as cache_cls:
        cache_cls.return_value.ensure_cached.return_value = CacheFillResult()
        code = warm_cache.main()
    return code, verify, init_schema, cache_cls


class TestWarmCache:
    def test_unreachable_database_aborts_before_fetching(self, warm_cache, store, tmp_path, monkeypatch) -> None:
        code, verify, init_schema, cache_cls = run_main(
            warm_cache, store, tmp_path, monkeypatch, "--tickers", "AAPL", "--init-schema", connected=False,
        )

        assert code == 1
        verify.assert_called_once_with(store.client)
        init_schema.assert_not_called()
        cache_cls.return_value.ensure_cached.assert_not_called()
        store.close.assert_called_once()

    def test_fills_requested_tickers(self, warm_cache, store, tmp_path, monkeypatch) -> None:
        code, verify, init_schema, cache_cls = run_main(
            warm_cache, store, tmp_path, monkeypatch, "--tickers", "aapl, msft", "--init-schema",
        )

        assert code == 0
        verify.assert_called_once_with(store.client)
        init_schema.assert_called_once_with(store.client)
        tickers = cache_cls.return_value.ensure_cached.call_args.args[0]
        assert tickers == ["AAPL", "MSFT"]
        store.close.assert_called_once()
