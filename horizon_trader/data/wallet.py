"""
지갑 서비스(WalletService) 모듈.

[ 역할 ]
    사용자별 현금 잔고와 포지션 원장을 한 번의 상태 전이로 함께 갱신.
    매수: 잔고 차감 + 포지션 증가 / 매도: 포지션 감소 + 잔고 증가.
    둘 중 하나만 반영된 상태는 절대 만들지 않는다 (검증 → 계산 → 새 객체 반환).

[ 비용 모델 ]
    체결금액 = 수량 × 가격
    수수료   = 체결금액 × commission_rate
    슬리피지 = 체결금액 × slippage_rate
    매수 총액 = 체결금액 + 수수료 + 슬리피지  (잔고보다 크면 InsufficientFundsError)
    매도 대금 = 체결금액 - 수수료 - 슬리피지
    실현 손익 = 수량 × (가격 - 평균매입가) - 매도 수수료 - 매도 슬리피지

[ 동시성 ]
    같은 사용자의 거래는 user_id별 RLock으로 직렬화, 다른 사용자는 병렬.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine에서 buy/sell 호출
    - LedgerStore 구현체(brokers/mock_broker.py::InMemoryLedgerStore)와 함께 execute_* 사용
"""

import logging
import math
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from horizon_trader.core.exceptions import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidOrderError,
    InvalidParamsError,
    TradingError,
)
from horizon_trader.core.ledger_store import (
    LedgerStore,
    LedgerUpdate,
    Transaction,
    TransactionType,
    Wallet,
)
from horizon_trader.data.portfolio import PositionLedger, apply_buy, apply_sell

logger = logging.getLogger("horizon_trader.wallet")


def _validate_order(ticker: str, quantity: float, price: float) -> None:
    if not ticker:
        raise InvalidOrderError("ticker is required")
    if not math.isfinite(quantity) or quantity <= 0:
        raise InvalidOrderError(f"Quantity must be positive, got {quantity}")
    if not math.isfinite(price) or price < 0:
        raise InvalidOrderError(f"Price must be non-negative, got {price}")


def _validate_amount(amount: float) -> None:
    if not math.isfinite(amount) or amount <= 0:
        raise InvalidOrderError(f"Amount must be positive, got {amount}")


class WalletService:
    """지갑 + 포지션 원장 거래 서비스.

    buy/sell/deposit_funds/withdraw_funds는 넘겨받은 객체를 바꾸지 않고
    LedgerUpdate(새 지갑, 새 원장, 포지션, 거래 기록)를 돌려준다.
    store가 있으면 execute_* 메서드가 load → 계산 → commit까지 처리한다.
    """

    def __init__(
        self,
        commission_rate: float = 0.0,
        slippage_rate: float = 0.0,
        store: Optional[LedgerStore] = None,
    ):
        for label, rate in (("commission_rate", commission_rate), ("slippage_rate", slippage_rate)):
            if not 0 <= rate < 1:
                raise InvalidParamsError(f"{label} must be in [0, 1), got {rate}")
        self.commission_rate = commission_rate
        self.slippage_rate = slippage_rate
        self.store = store

        self._locks: dict[str, threading.RLock] = {}   # user_id → RLock
        self._locks_guard = threading.Lock()

    # ─── 잠금 ───────────────────────────────────────────────────────────────

    def lock_for(self, user_id: str) -> threading.RLock:
        """user_id 전용 RLock (최초 요청 시 생성)."""
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def trading_costs(self, quantity: float, price: float) -> tuple[float, float, float]:
        """(체결금액, 수수료, 슬리피지)."""
        gross = quantity * price
        return gross, gross * self.commission_rate, gross * self.slippage_rate

    def buy_total(self, quantity: float, price: float) -> float:
        """매수 총액 = quantity × price × (1 + 수수료율 + 슬리피지율). 잔고 검사와 차감에 같은 값을 쓴다."""
        return quantity * price * (1 + self.commission_rate + self.slippage_rate)

    # ─── 순수 상태 전이 ─────────────────────────────────────────────────────

    def buy(
        self,
        wallet: Wallet,
        ledger: PositionLedger,
        ticker: str,
        quantity: float,
        price: float,
        timestamp: Optional[datetime] = None,
    ) -> LedgerUpdate:
        """매수. 총액(수수료/슬리피지 포함)이 잔고보다 크면 InsufficientFundsError."""
        _validate_order(ticker, quantity, price)

        with self.lock_for(wallet.user_id):
            _, commission, slippage = self.trading_costs(quantity, price)
            total = self.buy_total(quantity, price)
            if total > wallet.balance:
                raise InsufficientFundsError(ticker, quantity, total, wallet.balance)

            position = apply_buy(ledger.get(ticker), quantity, price, ticker=ticker)
            balance_after = wallet.balance - total
            new_wallet = replace(
                wallet,
                balance=balance_after,
                total_trades=wallet.total_trades + 1,
            )
            transaction = Transaction(
                user_id=wallet.user_id,
                transaction_type=TransactionType.BUY,
                amount=-total,
                ticker=ticker,
                quantity=quantity,
                price=price,
                commission=commission,
                slippage=slippage,
                balance_before=wallet.balance,
                balance_after=balance_after,
                timestamp=timestamp or datetime.now(timezone.utc),
            )

        logger.debug(
            f"[{wallet.user_id}] 매수 {ticker} {quantity:g}주 @ {price:,.2f} "
            f"(총 {total:,.2f}, 잔고 {balance_after:,.2f})"
        )
        return LedgerUpdate(
            wallet=new_wallet,
            transaction=transaction,
            ledger=ledger.with_position(position),
            position=position,
        )

    def sell(
        self,
        wallet: Wallet,
        ledger: PositionLedger,
        ticker: str,
        quantity: float,
        price: float,
        timestamp: Optional[datetime] = None,
    ) -> LedgerUpdate:
        """매도. 보유 수량보다 많이 팔면 InsufficientSharesError."""
        _validate_order(ticker, quantity, price)

        with self.lock_for(wallet.user_id):
            held = ledger.get(ticker)
            if held is None:
                raise InsufficientSharesError(ticker, quantity, 0)
            result = apply_sell(held, quantity, price)

            _, commission, slippage = self.trading_costs(quantity, price)
            proceeds = quantity * price * (1 - self.commission_rate - self.slippage_rate)
            realized = result.realized_pnl - commission - slippage
            balance_after = wallet.balance + proceeds
            new_wallet = replace(
                wallet,
                balance=balance_after,
                total_trades=wallet.total_trades + 1,
                winning_trades=wallet.winning_trades + (1 if realized > 0 else 0),
                total_realized_pnl=wallet.total_realized_pnl + realized,
            )
            transaction = Transaction(
                user_id=wallet.user_id,
                transaction_type=TransactionType.SELL,
                amount=proceeds,
                ticker=ticker,
                quantity=quantity,
                price=price,
                realized_pnl=realized,
                commission=commission,
                slippage=slippage,
                balance_before=wallet.balance,
                balance_after=balance_after,
                timestamp=timestamp or datetime.now(timezone.utc),
            )

        logger.debug(
            f"[{wallet.user_id}] 매도 {ticker} {quantity:g}주 @ {price:,.2f} "
            f"(실현손익 {realized:+,.2f}, 잔고 {balance_after:,.2f})"
        )
        return LedgerUpdate(
            wallet=new_wallet,
            transaction=transaction,
            ledger=ledger.with_position(result.position, ticker=ticker),
            position=result.position,
        )

    def deposit_funds(
        self,
        wallet: Wallet,
        amount: float,
        timestamp: Optional[datetime] = None,
    ) -> LedgerUpdate:
        """입금. 원장은 건드리지 않는다 (update.ledger = None)."""
        _validate_amount(amount)

        with self.lock_for(wallet.user_id):
            balance_after = wallet.balance + amount
            new_wallet = replace(
                wallet,
                balance=balance_after,
                total_deposited=wallet.total_deposited + amount,
            )
            transaction = Transaction(
                user_id=wallet.user_id,
                transaction_type=TransactionType.DEPOSIT,
                amount=amount,
                balance_before=wallet.balance,
                balance_after=balance_after,
                timestamp=timestamp or datetime.now(timezone.utc),
            )
        return LedgerUpdate(wallet=new_wallet, transaction=transaction)

    def withdraw_funds(
        self,
        wallet: Wallet,
        amount: float,
        timestamp: Optional[datetime] = None,
    ) -> LedgerUpdate:
        """출금. 잔고보다 많으면 InsufficientFundsError."""
        _validate_amount(amount)

        with self.lock_for(wallet.user_id):
            if amount > wallet.balance:
                raise InsufficientFundsError(None, 0, amount, wallet.balance)
            balance_after = wallet.balance - amount
            new_wallet = replace(
                wallet,
                balance=balance_after,
                total_withdrawn=wallet.total_withdrawn + amount,
            )
            transaction = Transaction(
                user_id=wallet.user_id,
                transaction_type=TransactionType.WITHDRAWAL,
                amount=-amount,
                balance_before=wallet.balance,
                balance_after=balance_after,
                timestamp=timestamp or datetime.now(timezone.utc),
            )
        return LedgerUpdate(wallet=new_wallet, transaction=transaction)

    # ─── 저장소 연동 ─────────────────────────────────────────────────────────

    def _require_store(self) -> LedgerStore:
        if self.store is None:
            raise TradingError("WalletService has no LedgerStore configured")
        return self.store

    def open_wallet(self, user_id: str, initial_deposit: float = 0.0) -> Wallet:
        """저장된 지갑을 읽거나, 없으면 새로 만든다.

        새 지갑은 첫 거래(입금 포함)가 commit될 때 저장된다.
        initial_deposit > 0 이면 새 지갑에 바로 입금까지 처리.
        """
        store = self._require_store()
        with self.lock_for(user_id):
            wallet = store.load_wallet(user_id)
            if wallet is not None:
                return wallet
            wallet = Wallet(user_id=user_id)
            if initial_deposit > 0:
                update = self.deposit_funds(wallet, initial_deposit)
                store.commit(update)
                wallet = update.wallet
            logger.info(f"[{user_id}] 지갑 생성 (초기 잔고 {wallet.balance:,.2f})")
            return wallet

    def _load(self, store: LedgerStore, user_id: str) -> tuple[Wallet, PositionLedger]:
        wallet = store.load_wallet(user_id) or Wallet(user_id=user_id)
        return wallet, store.load_ledger(user_id)

    def execute_buy(self, user_id: str, ticker: str, quantity: float, price: float) -> LedgerUpdate:
        """저장소에서 읽고, 매수하고, 저장."""
        store = self._require_store()
        with self.lock_for(user_id):
            wallet, ledger = self._load(store, user_id)
            update = self.buy(wallet, ledger, ticker, quantity, price)
            store.commit(update)
        logger.info(f"[{user_id}] 매수 체결: {ticker} {quantity:g}주 @ {price:,.2f}")
        return update

    def execute_sell(self, user_id: str, ticker: str, quantity: float, price: float) -> LedgerUpdate:
        """저장소에서 읽고, 매도하고, 저장."""
        store = self._require_store()
        with self.lock_for(user_id):
            wallet, ledger = self._load(store, user_id)
            update = self.sell(wallet, ledger, ticker, quantity, price)
            store.commit(update)
        logger.info(
            f"[{user_id}] 매도 체결: {ticker} {quantity:g}주 @ {price:,.2f} "
            f"(실현손익 {update.transaction.realized_pnl:+,.2f})"
        )
        return update

    def execute_deposit(self, user_id: str, amount: float) -> LedgerUpdate:
        store = self._require_store()
        with self.lock_for(user_id):
            wallet = store.load_wallet(user_id) or Wallet(user_id=user_id)
            update = self.deposit_funds(wallet, amount)
            store.commit(update)
        logger.info(f"[{user_id}] 입금 {amount:,.2f} (잔고 {update.wallet.balance:,.2f})")
        return update

    def execute_withdrawal(self, user_id: str, amount: float) -> LedgerUpdate:
        store = self._require_store()
        with self.lock_for(user_id):
            wallet = store.load_wallet(user_id) or Wallet(user_id=user_id)
            update = self.withdraw_funds(wallet, amount)
            store.commit(update)
        logger.info(f"[{user_id}] 출금 {amount:,.2f} (잔고 {update.wallet.balance:,.2f})")
        return update


# ─── 거래 기록 재생 / 요약 ──────────────────────────────────────────────────

def replay_transactions(
    user_id: str,
    transactions: Iterable[Transaction],
) -> tuple[Wallet, PositionLedger]:
    """거래 기록을 순서대로 재생해 지갑과 원장을 복원.

    잔고는 amount 합, 실현 손익은 매도 기록의 realized_pnl 합.
    기록이 규칙을 어기면(보유보다 많이 매도 등) 해당 예외가 그대로 올라간다.
    """
    wallet = Wallet(user_id=user_id)
    ledger = PositionLedger()

    for txn in transactions:
        if txn.user_id != user_id:
            raise InvalidOrderError(f"Transaction {txn.id} belongs to {txn.user_id}, not {user_id}")

        kind = txn.transaction_type
        if kind is TransactionType.BUY:
            position = apply_buy(ledger.get(txn.ticker), txn.quantity, txn.price, ticker=txn.ticker)
            ledger = ledger.with_position(position)
            wallet = replace(wallet, total_trades=wallet.total_trades + 1)
        elif kind is TransactionType.SELL:
            held = ledger.get(txn.ticker)
            if held is None:
                raise InsufficientSharesError(txn.ticker, txn.quantity, 0)
            result = apply_sell(held, txn.quantity, txn.price)
            ledger = ledger.with_position(result.position, ticker=txn.ticker)
            realized = txn.realized_pnl or 0.0
            wallet = replace(
                wallet,
                total_trades=wallet.total_trades + 1,
                winning_trades=wallet.winning_trades + (1 if realized > 0 else 0),
                total_realized_pnl=wallet.total_realized_pnl + realized,
            )
        elif kind is TransactionType.DEPOSIT:
            wallet = replace(wallet, total_deposited=wallet.total_deposited + txn.amount)
        else:
            wallet = replace(wallet, total_withdrawn=wallet.total_withdrawn - txn.amount)

        wallet = replace(wallet, balance=wallet.balance + txn.amount)

    return wallet, ledger


def summarize_wallet(
    wallet: Wallet,
    ledger: PositionLedger,
    quotes: Mapping[str, float] | None = None,
) -> dict[str, Any]:
    """지갑 요약 (잔고, 보유 평가금액, 총 자산, 현금 비중 등).

    시세가 없는 종목은 평균매입가로 평가한다.
    """
    quotes = quotes or {}
    holdings_value = ledger.market_value(quotes)
    total_value = wallet.balance + holdings_value
    marked = ledger.mark_to_market(quotes)

    return {
        "user_id": wallet.user_id,
        "balance": wallet.balance,
        "holdings_value": holdings_value,
        "total_value": total_value,
        "cash_percentage": wallet.balance / total_value * 100 if total_value > 0 else 100.0,
        "unrealized_pnl": ledger.unrealized_pnl(quotes),
        "total_realized_pnl": wallet.total_realized_pnl,
        "total_trades": wallet.total_trades,
        "winning_trades": wallet.winning_trades,
        "win_rate": wallet.win_rate,
        "positions": [
            {
                "ticker": p.ticker,
                "side": p.side.value,
                "shares": p.shares,
                "avg_cost": p.avg_cost,
                "current_price": quotes.get(p.ticker, p.avg_cost),
                "unrealized_pnl": p.unrealized_pnl,
            }
            for p in marked.positions
        ],
    }
