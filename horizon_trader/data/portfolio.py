"""
포지션 원장(PositionLedger) 모듈.

[ 역할 ]
    종목별 보유 수량과 가중평균 매입가를 관리.
    체결(fill)을 받아 새 Position을 돌려주는 순수 함수 + 종목별 Position 묶음(PositionLedger).
    모든 객체는 불변이며, 갱신은 항상 새 객체를 만든다.

[ 주요 구성 ]
    Position        - 개별 종목 포지션 (ticker, side, shares, avg_cost, unrealized_pnl)
    SellResult      - apply_sell()의 반환값 (남은 포지션 + 실현 손익)
    apply_buy()     - 매수 체결 반영 (가중평균 매입가 재계산)
    apply_sell()    - 매도 체결 반영 (매입가 유지, 실현 손익 계산)
    PositionLedger  - ticker → Position 불변 매핑

[ 호출하는 곳 ]
    - data/wallet.py::WalletService.buy/sell()에서 apply_buy/apply_sell 호출
    - backtest/engine.py에서 일별 평가금액 계산 (market_value)
"""

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from enum import Enum

from horizon_trader.core.exceptions import InsufficientSharesError, InvalidOrderError

# 부동소수 잔량을 0으로 간주하는 허용 오차
_ZERO_SHARES = 1e-9


class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class Position:
    """개별 종목 포지션. shares가 0이 되면 원장에서 제거된다."""
    ticker: str
    shares: float
    avg_cost: float
    side: PositionSide = PositionSide.LONG
    unrealized_pnl: float = 0.0   # mark_to_market() 시점의 평가 손익

    @property
    def cost_basis(self) -> float:
        """총 매입 원가."""
        return self.shares * self.avg_cost

    @property
    def direction(self) -> int:
        """롱 +1, 숏 -1. 손익 부호에 곱한다."""
        return 1 if self.side is PositionSide.LONG else -1

    def market_value(self, price: float) -> float:
        return self.shares * price


@dataclass(frozen=True)
class SellResult:
    position: Position | None   # 전량 매도 시 None
    realized_pnl: float


# ─── 체결 반영 함수 ─────────────────────────────────────────────────────────

def _validate_fill(fill_shares: float, fill_price: float) -> None:
    if not math.isfinite(fill_shares) or fill_shares <= 0:
        raise InvalidOrderError(f"Fill shares must be positive, got {fill_shares}")
    if not math.isfinite(fill_price) or fill_price < 0:
        raise InvalidOrderError(f"Fill price must be non-negative, got {fill_price}")


def apply_buy(
    position: Position | None,
    fill_shares: float,
    fill_price: float,
    ticker: str | None = None,
    side: PositionSide = PositionSide.LONG,
) -> Position:
    """매수 체결을 반영한 새 Position.

    avg_cost = (기존수량 × 기존매입가 + 체결수량 × 체결가) / (기존수량 + 체결수량)
    신규 포지션이면 ticker가 필요하고 avg_cost는 체결가 그대로.
    """
    _validate_fill(fill_shares, fill_price)

    if position is None:
        if not ticker:
            raise InvalidOrderError("ticker is required to open a new position")
        return Position(ticker=ticker, shares=fill_shares, avg_cost=fill_price, side=side)

    total_shares = position.shares + fill_shares
    avg_cost = (position.shares * position.avg_cost + fill_shares * fill_price) / total_shares
    return replace(position, shares=total_shares, avg_cost=avg_cost)


def apply_sell(position: Position | None, fill_shares: float, fill_price: float) -> SellResult:
    """매도 체결을 반영. avg_cost는 바꾸지 않는다.

    realized_pnl = 체결수량 × (체결가 - avg_cost)  (숏이면 부호 반전)

    Raises:
        InsufficientSharesError: 체결수량 > 보유수량 (포지션 없음 포함)
    """
    _validate_fill(fill_shares, fill_price)

    if position is None:
        raise InsufficientSharesError("<none>", fill_shares, 0)
    if fill_shares > position.shares:
        raise InsufficientSharesError(position.ticker, fill_shares, position.shares)

    realized = position.direction * fill_shares * (fill_price - position.avg_cost)
    remaining = position.shares - fill_shares
    if remaining <= _ZERO_SHARES:
        return SellResult(position=None, realized_pnl=realized)
    return SellResult(position=replace(position, shares=remaining), realized_pnl=realized)


def unrealized_pnl(position: Position, current_price: float) -> float:
    """shares × (현재가 - avg_cost). 숏이면 부호 반전."""
    return position.direction * position.shares * (current_price - position.avg_cost)


def mark_to_market(position: Position, current_price: float) -> Position:
    """unrealized_pnl 필드를 현재가 기준으로 채운 새 Position."""
    return replace(position, unrealized_pnl=unrealized_pnl(position, current_price))


# ─── 원장 ───────────────────────────────────────────────────────────────────

class PositionLedger(Mapping):
    """ticker → Position 불변 매핑.

    WalletService가 매 거래마다 새 원장을 만들어 돌려준다.
    시세(quotes)가 없는 종목은 평가 시 avg_cost로 계산한다.
    """

    def __init__(self, positions: Mapping[str, Position] | None = None):
        self._positions: dict[str, Position] = dict(positions or {})

    @classmethod
    def from_positions(cls, positions) -> "PositionLedger":
        return cls({p.ticker: p for p in positions})

    def __getitem__(self, ticker: str) -> Position:
        return self._positions[ticker]

    def __iter__(self) -> Iterator[str]:
        return iter(self._positions)

    def __len__(self) -> int:
        return len(self._positions)

    def __eq__(self, other) -> bool:
        if isinstance(other, PositionLedger):
            return self._positions == other._positions
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        holdings = ", ".join(f"{p.ticker}:{p.shares:g}@{p.avg_cost:.2f}" for p in self._positions.values())
        return f"PositionLedger({holdings})"

    def with_position(self, position: Position | None, ticker: str | None = None) -> "PositionLedger":
        """position으로 교체한 새 원장. None이면 ticker를 제거."""
        if position is None:
            return self.without(ticker) if ticker else self
        positions = dict(self._positions)
        positions[position.ticker] = position
        return PositionLedger(positions)

    def without(self, ticker: str) -> "PositionLedger":
        positions = dict(self._positions)
        positions.pop(ticker, None)
        return PositionLedger(positions)

    @property
    def positions(self) -> list[Position]:
        return list(self._positions.values())

    @property
    def cost_basis(self) -> float:
        """보유 종목 총 매입 원가."""
        return sum(p.cost_basis for p in self._positions.values())

    def market_value(self, quotes: Mapping[str, float] | None = None) -> float:
        """현재가 기준 보유 종목 평가금액."""
        quotes = quotes or {}
        return sum(p.market_value(quotes.get(t, p.avg_cost)) for t, p in self._positions.items())

    def unrealized_pnl(self, quotes: Mapping[str, float] | None = None) -> float:
        quotes = quotes or {}
        return sum(unrealized_pnl(p, quotes.get(t, p.avg_cost)) for t, p in self._positions.items())

    def mark_to_market(self, quotes: Mapping[str, float]) -> "PositionLedger":
        """시세가 있는 종목의 unrealized_pnl을 갱신한 새 원장."""
        return PositionLedger({
            t: mark_to_market(p, quotes[t]) if t in quotes else p
            for t, p in self._positions.items()
        })
