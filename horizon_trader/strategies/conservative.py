"""
보수적(Conservative) 전략.

[ 역할 ]
    SMA50 + RSI(75/25) + 볼린저20 세 지표가 합의할 때만 움직이는 전략.
    RSI 경계를 넓혀 과열/침체 판정을 늦추고, 월간 리밸런싱으로 거래 횟수를 줄인다.

[ 파라미터 ]
    sma_window:    이동평균 기간
    rsi_window:    RSI 기간
    oversold / overbought: RSI 경계
    bb_window / bb_multiplier: 볼린저 설정
"""

from typing import Any

from horizon_trader.core.trading_strategy import StrategyConfig, TradingStrategy
from horizon_trader.core.types import RebalanceFrequency, StrategyStyle
from horizon_trader.indicators.technical import IndicatorSpec, IndicatorType, SignalThresholds
from horizon_trader.strategies import register


@register("conservative")
class ConservativeStrategy(TradingStrategy):
    """다중 지표 합의 기반 보수적 전략."""

    DEFAULT_PARAMS = {
        "sma_window": 50,
        "rsi_window": 14,
        "oversold": 25,
        "overbought": 75,
        "bb_window": 20,
        "bb_multiplier": 2.0,
    }

    def __init__(self, params: dict[str, Any] | None = None, thresholds: SignalThresholds | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="conservative", params=merged, thresholds=thresholds)

    @property
    def sma_window(self) -> int:
        return int(self.params["sma_window"])

    def build_config(self) -> StrategyConfig:
        p = self.params
        return StrategyConfig(
            name="Conservative",
            indicators=(
                IndicatorSpec(IndicatorType.SMA, {"window": self.sma_window}),
                IndicatorSpec(IndicatorType.RSI, {
                    "window": p["rsi_window"],
                    "oversold": p["oversold"],
                    "overbought": p["overbought"],
                }),
                IndicatorSpec(IndicatorType.BOLLINGER, {
                    "window": p["bb_window"],
                    "multiplier": p["bb_multiplier"],
                }),
            ),
            entry_rule=f"Price > SMA{self.sma_window} AND RSI < 60 AND Price < Middle Bollinger Band",
            exit_rule=f"Price < SMA{self.sma_window} OR RSI > 80 OR Price > Upper Bollinger Band",
            rebalance_freq=RebalanceFrequency.MONTHLY,
            style=StrategyStyle.CONSERVATIVE,
            description="Uses multiple indicators with conservative risk management",
        )
