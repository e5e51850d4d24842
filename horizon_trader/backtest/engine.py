"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    매매는 data/wallet.py::WalletService를 그대로 사용하므로
    실전 지갑과 같은 비용 모델 / 잔고 검증이 적용된다.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 초기 자금 입금 (deposit 거래 기록)
        2. 모든 종목의 거래일 합집합 추출
        3. 각 거래일에 대해 _simulate_day() 호출
           → 당일 봉이 있는 종목들의 과거 시리즈로 strategy.generate_signals()
           → BUY이고 미보유면 매수 (현금의 position_size_pct%)
           → SELL이고 보유 중이면 전량 매도
        4. 일별 총 자산 가치 기록 (daily_values)
        5. 종료일에 남은 포지션 전량 청산
        6. metrics.calculate_metrics()로 성과 지표 계산

[ 의존성 ]
    - core/trading_strategy.py::TradingStrategy (전략 인터페이스)
    - data/wallet.py::WalletService (지갑/원장 거래)
    - backtest/metrics.py::calculate_metrics() (성과 계산)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Mapping

from horizon_trader.backtest.metrics import BacktestMetrics, calculate_metrics
from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InsufficientFundsError, InvalidParamsError
from horizon_trader.core.ledger_store import Transaction, TransactionType, Wallet
from horizon_trader.core.trading_strategy import TradingStrategy
from horizon_trader.core.types import SignalType
from horizon_trader.data.portfolio import PositionLedger
from horizon_trader.data.wallet import WalletService, summarize_wallet

logger = logging.getLogger("horizon_trader.backtest")

END_OF_BACKTEST = "End of backtest - closing position"


def _as_timestamp(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행."""

    def __init__(
        self,
        initial_cash: float = 100_000,
        commission_rate: float = 0.001,     # 매수/매도 수수료율
        slippage_rate: float = 0.0005,      # 슬리피지율
        position_size_pct: float = 50.0,    # 매수 시 가용 현금 대비 투입 비율 (%)
        user_id: str = "backtest",
    ):
        if initial_cash <= 0:
            raise InvalidParamsError(f"initial_cash must be positive, got {initial_cash}")
        if not 0 < position_size_pct <= 100:
            raise InvalidParamsError(f"position_size_pct must be in (0, 100], got {position_size_pct}")

        self.initial_cash = initial_cash
        self.position_size_pct = position_size_pct
        self.user_id = user_id
        self.wallet_service = WalletService(commission_rate, slippage_rate)

        # 백테스트 실행 후 채워지는 결과
        self.wallet: Wallet | None = None              # 최종 지갑 상태
        self.ledger: PositionLedger = PositionLedger()  # 최종 포지션 원장
        self.transactions: list[Transaction] = []      # 전체 거래 기록
        self.trade_reasons: dict[str, str] = {}        # transaction id → 시그널 사유
        self.daily_values: list[float] = []            # 일별 총 자산 (MDD/샤프 계산용)
        self.daily_dates: list[date] = []              # 일별 날짜
        self.metrics: BacktestMetrics | None = None    # 최종 성과 지표
        self._last_prices: dict[str, float] = {}       # ticker → 마지막으로 본 종가

    def run_backtest(
        self,
        strategy: TradingStrategy,
        data: Mapping[str, PriceSeries],
        start_date: date,
        end_date: date,
    ) -> BacktestMetrics:
        """백테스트 실행.

        Args:
            strategy: 매매 전략
            data: {ticker: PriceSeries} 형태의 데이터 (지표 워밍업용 과거 구간 포함 가능)
            start_date: 시작일
            end_date: 종료일

        Returns:
            BacktestMetrics: 성과 지표
        """
        self.ledger = PositionLedger()
        self.transactions = []
        self.trade_reasons = {}
        self.daily_values = []
        self.daily_dates = []
        self._last_prices = {}

        # 전체 거래일 추출
        all_dates: set[date] = set()
        for series in data.values():
            all_dates.update(series.between(start_date, end_date).dates)
        trading_dates = sorted(all_dates)

        if not trading_dates:
            logger.warning("거래일이 없습니다.")
            self.metrics = BacktestMetrics()
            return self.metrics

        deposit = self.wallet_service.deposit_funds(
            Wallet(user_id=self.user_id), self.initial_cash, timestamp=_as_timestamp(trading_dates[0])
        )
        self.wallet = deposit.wallet
        self.transactions.append(deposit.transaction)

        logger.info(
            f"백테스트 시작: {strategy.config.name} | {trading_dates[0]} ~ {trading_dates[-1]} "
            f"({len(trading_dates)}일, 종목 {len(data)}개)"
        )

        # 일별 시뮬레이션
        for current_date in trading_dates:
            self._simulate_day(strategy, data, current_date)
            self.daily_values.append(self._calculate_total_value())
            self.daily_dates.append(current_date)

        # 남은 포지션 청산. 마지막 날 평가액은 청산 후 현금으로 교체
        self._close_all_positions(trading_dates[-1])
        self.daily_values[-1] = self._calculate_total_value()

        # 성과 지표 계산
        self.metrics = calculate_metrics(
            transactions=self.transactions,
            daily_values=self.daily_values,
            initial_cash=self.initial_cash,
            trading_days=len(trading_dates),
        )

        logger.info(f"백테스트 완료. 총 수익률: {self.metrics.total_return:.2f}%")
        return self.metrics

    def _simulate_day(
        self,
        strategy: TradingStrategy,
        data: Mapping[str, PriceSeries],
        current_date: date,
    ) -> None:
        """하루 시뮬레이션. 당일 봉이 있는 종목에 대해 시그널 생성 → 주문 실행."""
        # 전략에 전달할 데이터: 현재일까지의 과거 데이터 (미래 데이터 누출 방지)
        history: dict[str, PriceSeries] = {}
        for ticker, series in data.items():
            available = series.until(current_date)
            if available.empty or available.dates[-1] != current_date:
                continue
            history[ticker] = available
            self._last_prices[ticker] = available.last_close

        if not history:
            return

        signals = strategy.generate_signals(history, as_of=_as_timestamp(current_date))

        for ticker, signal in signals.items():
            price = self._last_prices[ticker]
            holding = self.ledger.get(ticker)
            if signal.signal_type == SignalType.BUY and holding is None:
                self._execute_buy(ticker, price, current_date, signal.reason)
            elif signal.signal_type == SignalType.SELL and holding is not None:
                self._execute_sell(ticker, holding.shares, price, current_date, signal.reason)

    def _execute_buy(self, ticker: str, price: float, current_date: date, reason: str) -> None:
        """가용 현금의 position_size_pct%로 살 수 있는 만큼 매수 (수수료/슬리피지 포함)."""
        if price <= 0:
            return
        service = self.wallet_service
        budget = self.wallet.balance * self.position_size_pct / 100
        unit_cost = price * (1 + service.commission_rate + service.slippage_rate)
        quantity = math.floor(budget / unit_cost)
        if quantity > 0 and service.buy_total(quantity, price) > self.wallet.balance:
            quantity -= 1
        if quantity <= 0:
            logger.debug(f"[{current_date}] 매수 스킵: {ticker} 예산 {budget:,.2f}로 1주도 못 삼")
            return

        try:
            update = service.buy(
                self.wallet, self.ledger, ticker, quantity, price, timestamp=_as_timestamp(current_date)
            )
        except InsufficientFundsError as e:
            logger.debug(f"[{current_date}] 매수 스킵: {e}")
            return

        self._apply(update, reason)
        logger.debug(f"[{current_date}] 매수: {ticker} {quantity}주 @ {price:,.2f} ({reason})")

    def _execute_sell(
        self,
        ticker: str,
        quantity: float,
        price: float,
        current_date: date,
        reason: str,
    ) -> None:
        """보유 수량 전량 매도."""
        update = self.wallet_service.sell(
            self.wallet, self.ledger, ticker, quantity, price, timestamp=_as_timestamp(current_date)
        )
        self._apply(update, reason)
        logger.debug(
            f"[{current_date}] 매도: {ticker} {quantity:g}주 @ {price:,.2f} "
            f"(실현손익 {update.transaction.realized_pnl:+,.2f}, {reason})"
        )

    def _apply(self, update, reason: str) -> None:
        self.wallet = update.wallet
        self.ledger = update.ledger
        self.transactions.append(update.transaction)
        self.trade_reasons[update.transaction.id] = reason

    def _close_all_positions(self, last_date: date) -> None:
        for position in self.ledger.positions:
            price = self._last_prices.get(position.ticker, position.avg_cost)
            self._execute_sell(position.ticker, position.shares, price, last_date, END_OF_BACKTEST)

    def _calculate_total_value(self) -> float:
        """현금 + 마지막 종가 기준 보유 종목 평가금액."""
        return self.wallet.balance + self.ledger.market_value(self._last_prices)

    def generate_report(self) -> dict[str, Any]:
        """백테스트 리포트 생성."""
        if self.metrics is None or self.wallet is None:
            return {"error": "백테스트를 먼저 실행하세요."}

        trades = [
            t for t in self.transactions
            if t.transaction_type in (TransactionType.BUY, TransactionType.SELL)
        ]
        return {
            "metrics": self.metrics.to_dict(),
            "wallet_summary": summarize_wallet(self.wallet, self.ledger, self._last_prices),
            "trade_count": len(trades),
            "trades": [
                {
                    "date": t.timestamp.date().isoformat(),
                    "ticker": t.ticker,
                    "side": t.transaction_type.value,
                    "quantity": t.quantity,
                    "price": t.price,
                    "profit": t.realized_pnl,
                    "reason": self.trade_reasons.get(t.id, ""),
                }
                for t in trades
            ],
        }
