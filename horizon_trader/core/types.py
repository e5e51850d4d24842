"""
지표/전략 모듈이 공통으로 쓰는 Enum 모음.

indicators/, strategies/, backtest/ 어디서든 같은 SignalType을 쓰도록 한 곳에 둔다.
"""

from enum import Enum

from horizon_trader.core.exceptions import InvalidParamsError


class SignalType(Enum):
    """지표와 전략이 반환하는 시그널 종류."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class StrategyStyle(Enum):
    """전략 성격. 리밸런싱 주기 추천 테이블의 행 키."""
    TREND_FOLLOWING = "trend_following"
    MEAN_REVERSION = "mean_reversion"
    MOMENTUM = "momentum"
    CONSERVATIVE = "conservative"

    @classmethod
    def parse(cls, value: "StrategyStyle | str") -> "StrategyStyle":
        if isinstance(value, StrategyStyle):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidParamsError(f"Unknown strategy style: {value}") from None


class RebalanceFrequency(Enum):
    """리밸런싱 주기. 순서대로 잦은 → 드문."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
