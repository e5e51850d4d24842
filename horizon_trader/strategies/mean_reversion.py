"""
평균회귀(Mean Reversion) 전략.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "과매도(RSI < 30) 또는 하단 밴드 이탈 시 매수, 과매수 또는 상단 밴드 돌파 시 매도"
    단기 반전을 노리므로 일간 리밸런싱.

[ 전략 흐름 ]
    매일 generate_signals() 호출됨 (← backtest/engine.py에서)
        ├── RSI(rsi_window)       → oversold 미만 buy / overbought 초과 sell
        ├── 볼린저(bb_window, k)  → 하단 이하 buy / 상단 이상 sell
        └── 다수결 (동률이면 hold)

[ 파라미터 ]
    rsi_window:     RSI 기간
    oversold:       과매도 기준
    overbought:     과매수 기준
    bb_window:      볼린저 기간
    bb_multiplier:  볼린저 표준편차 배수
"""

from typing import Any

from horizon_trader.core.trading_strategy import StrategyConfig, TradingStrategy
from horizon_trader.core.types import RebalanceFrequency, StrategyStyle
from horizon_trader.indicators.technical import IndicatorSpec, IndicatorType, SignalThresholds
from horizon_trader.strategies import register


@register("mean_reversion")
class MeanReversionStrategy(TradingStrategy):
    """RSI + 볼린저밴드 평균회귀 전략."""

    DEFAULT_PARAMS = {
        "rsi_window": 14,
        "oversold": 30,
        "overbought": 70,
        "bb_window": 20,
        "bb_multiplier": 2.0,
    }

    def __init__(self, params: dict[str, Any] | None = None, thresholds: SignalThresholds | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="mean_reversion", params=merged, thresholds=thresholds)

    @property
    def oversold(self) -> float:
        return float(self.params["oversold"])

    @property
    def overbought(self) -> float:
        return float(self.params["overbought"])

    def build_config(self) -> StrategyConfig:
        return StrategyConfig(
            name="Mean Reversion",
            indicators=(
                IndicatorSpec(IndicatorType.RSI, {
                    "window": self.params["rsi_window"],
                    "oversold": self.oversold,
                    "overbought": self.overbought,
                }),
                IndicatorSpec(IndicatorType.BOLLINGER, {
                    "window": self.params["bb_window"],
                    "multiplier": self.params["bb_multiplier"],
                }),
            ),
            entry_rule=f"RSI < {self.oversold:g} OR Price < Lower Bollinger Band",
            exit_rule=f"RSI > {self.overbought:g} OR Price > Upper Bollinger Band",
            rebalance_freq=RebalanceFrequency.DAILY,
            style=StrategyStyle.MEAN_REVERSION,
            description="Identifies overbought/oversold conditions for contrarian trades",
        )
