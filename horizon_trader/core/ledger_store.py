"""
지갑/원장 저장소 추상 클래스 및 원장 레코드 정의.

[ 역할 ]
    지갑(Wallet), 포지션 원장, 거래 기록(Transaction)을 읽고 쓰는 저장소를 추상화.
    WalletService는 메모리 상의 객체만 다루고, 저장은 이 인터페이스 구현체가 맡는다.
    DB 교체 시 이 클래스만 구현하면 됨.

[ 구현체 ]
    - brokers/mock_broker.py::InMemoryLedgerStore  (테스트용)

[ 호출하는 곳 ]
    - data/wallet.py::WalletService.execute_buy/sell/deposit()에서
      load → 계산 → commit(update) 순서로 사용
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from horizon_trader.data.portfolio import Position, PositionLedger


# ─── 원장 레코드 ─────────────────────────────────────────────────────────────

class TransactionType(Enum):
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


@dataclass(frozen=True)
class Wallet:
    """사용자별 지갑. 첫 입금/거래 때 생성되고 WalletService만 갱신한다."""
    user_id: str
    balance: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    total_realized_pnl: float = 0.0
    total_deposited: float = 0.0
    total_withdrawn: float = 0.0

    @property
    def win_rate(self) -> float:
        """승률 (%). 매도 거래 기준이 아니라 전체 거래 수 기준."""
        if self.total_trades == 0:
            return 0.0
        return self.winning_trades / self.total_trades * 100


def _new_transaction_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Transaction:
    """거래 기록. 한 번 쓰이면 바뀌지 않으며, 순서대로 재생하면 지갑/원장이 복원된다.

    amount는 잔고에 대한 부호 있는 현금 효과 (매수/출금 음수, 매도/입금 양수).
    """
    user_id: str
    transaction_type: TransactionType
    amount: float
    ticker: Optional[str] = None
    quantity: float = 0.0
    price: float = 0.0
    realized_pnl: Optional[float] = None   # 매도 시에만 (수수료/슬리피지 차감 후)
    commission: float = 0.0
    slippage: float = 0.0
    balance_before: float = 0.0
    balance_after: float = 0.0
    id: str = field(default_factory=_new_transaction_id)
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "ticker": self.ticker,
            "type": self.transaction_type.value,
            "quantity": self.quantity,
            "price": self.price,
            "amount": self.amount,
            "realized_pnl": self.realized_pnl,
            "commission": self.commission,
            "slippage": self.slippage,
            "balance_before": self.balance_before,
            "balance_after": self.balance_after,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class LedgerUpdate:
    """WalletService 거래 1건의 결과. 저장소는 이 묶음을 한 번에 저장한다."""
    wallet: Wallet
    transaction: Transaction
    ledger: Optional[PositionLedger] = None   # 입출금이면 None (원장 변경 없음)
    position: Optional[Position] = None       # 거래 후 해당 종목 포지션 (전량 매도면 None)


# ─── 추상 클래스 ────────────────────────────────────────────────────────────

class LedgerStore(ABC):
    """지갑/원장 저장소 추상 클래스."""

    @abstractmethod
    def load_wallet(self, user_id: str) -> Optional[Wallet]:
        """지갑 조회. 없으면 None."""
        ...

    @abstractmethod
    def load_ledger(self, user_id: str) -> PositionLedger:
        """포지션 원장 조회. 없으면 빈 원장."""
        ...

    @abstractmethod
    def get_transactions(self, user_id: str, limit: Optional[int] = None) -> list[Transaction]:
        """거래 기록 조회 (오래된 순).

        Args:
            user_id: 사용자 ID
            limit: 최근 N건만 (None이면 전체)
        """
        ...

    @abstractmethod
    def commit(self, update: LedgerUpdate) -> None:
        """지갑 + 원장 저장, 거래 기록 추가를 한 번에 반영.

        update.ledger가 None이면 기존 원장을 그대로 둔다.
        일부만 저장되는 상태가 관측되면 안 된다.
        """
        ...
