"""
테스트/백테스트용 Mock 데이터 제공자 및 메모리 원장 저장소 구현.

[ 역할 ]
    실제 시세 API / DB 없이 시그널 생성과 지갑 거래를 돌려볼 수 있게 한다.

[ 포함 클래스 ]
    MockDataProvider    - core/data_provider.py::MarketDataProvider 구현체
                          미리 로드된 PriceSeries에서 기간 조회 / 현재가 제공

    InMemoryLedgerStore - core/ledger_store.py::LedgerStore 구현체
                          지갑 / 원장 / 거래 기록을 dict에 보관

[ 호출하는 곳 ]
    - run_backtest.py::load_data()에서 샘플/CSV 데이터를 MockDataProvider에 올려 기간 조회
    - 단위 테스트에서 InMemoryLedgerStore와 WalletService.execute_* 조합

[ 실전 교체 ]
    실제 시세/DB 연동 시 같은 인터페이스의 다른 구현체를 주입
"""

import threading
from datetime import date, datetime, timezone
from typing import Optional

import pandas as pd

from horizon_trader.core.data_provider import MarketDataProvider, PriceSeries, Quote
from horizon_trader.core.exceptions import InvalidParamsError
from horizon_trader.core.ledger_store import LedgerStore, LedgerUpdate, Transaction, Wallet
from horizon_trader.data.portfolio import PositionLedger


# ─── Mock 데이터 제공자 ──────────────────────────────────────────────────────

class MockDataProvider(MarketDataProvider):
    """PriceSeries 기반 Mock 데이터 제공자.

    사용법:
        provider = MockDataProvider()
        provider.load_data("AAPL", aapl_df)           # DataFrame 로드
        provider.set_quote("AAPL", 187.5)             # 현재가 지정 (없으면 마지막 종가)
        series = provider.get_price_series("AAPL", date(2024, 1, 1), date(2024, 6, 30))
    """

    def __init__(self):
        self._data: dict[str, PriceSeries] = {}   # ticker → PriceSeries
        self._quotes: dict[str, Quote] = {}       # ticker → 지정된 현재가

    def load_data(self, ticker: str, df: pd.DataFrame) -> None:
        """데이터 로드.

        Args:
            ticker: 종목 코드
            df: OHLCV DataFrame (columns: date, close 필수 / open, high, low, volume 선택)
        """
        df = df.copy()
        df["date"] = pd.to_datetime(df["date"])
        df = df.sort_values("date").reset_index(drop=True)
        self._data[ticker] = PriceSeries(ticker, df)

    def load_series(self, series: PriceSeries) -> None:
        self._data[series.ticker] = series

    def set_quote(self, ticker: str, price: float, timestamp: Optional[datetime] = None) -> None:
        """종목 현재가 설정 (시뮬레이션용)."""
        self._quotes[ticker] = Quote(price=price, timestamp=timestamp or datetime.now(timezone.utc))

    def get_price_series(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
    ) -> PriceSeries:
        """기간 내 시리즈 조회. 모르는 종목은 빈 시리즈."""
        if ticker not in self._data:
            return PriceSeries(ticker, pd.DataFrame(columns=["date", "close"]))
        return self._data[ticker].between(start_date, end_date)

    def get_quote(self, ticker: str) -> Quote:
        """지정된 현재가, 없으면 마지막 봉 종가."""
        if ticker in self._quotes:
            return self._quotes[ticker]

        series = self._data.get(ticker)
        if series is None or series.empty:
            raise InvalidParamsError(f"No quote for {ticker}")
        last_date = series.dates[-1]
        return Quote(
            price=series.last_close,
            timestamp=datetime(last_date.year, last_date.month, last_date.day, tzinfo=timezone.utc),
        )

    def get_tickers(self) -> list[str]:
        """로드된 종목 목록."""
        return list(self._data.keys())


# ─── 메모리 원장 저장소 ──────────────────────────────────────────────────────

class InMemoryLedgerStore(LedgerStore):
    """dict 기반 원장 저장소. commit은 내부 Lock 안에서 세 항목을 함께 교체한다."""

    def __init__(self):
        self._wallets: dict[str, Wallet] = {}                 # user_id → Wallet
        self._ledgers: dict[str, PositionLedger] = {}         # user_id → PositionLedger
        self._transactions: dict[str, list[Transaction]] = {}  # user_id → 거래 기록
        self._lock = threading.Lock()

    def load_wallet(self, user_id: str) -> Optional[Wallet]:
        with self._lock:
            return self._wallets.get(user_id)

    def load_ledger(self, user_id: str) -> PositionLedger:
        with self._lock:
            return self._ledgers.get(user_id, PositionLedger())

    def get_transactions(self, user_id: str, limit: Optional[int] = None) -> list[Transaction]:
        with self._lock:
            history = list(self._transactions.get(user_id, []))
        if limit is not None:
            return history[-limit:] if limit > 0 else []
        return history

    def commit(self, update: LedgerUpdate) -> None:
        user_id = update.wallet.user_id
        with self._lock:
            self._wallets[user_id] = update.wallet
            if update.ledger is not None:
                self._ledgers[user_id] = update.ledger
            self._transactions.setdefault(user_id, []).append(update.transaction)

    def users(self) -> list[str]:
        with self._lock:
            return list(self._wallets.keys())
