"""
모멘텀(Momentum) 전략.

[ 역할 ]
    MACD 교차 + EMA 위치 + 넓은 RSI 경계(80/20)로 가격 모멘텀을 따라가는 전략.
    MACD 히스토그램이 양수인 동안은 buy 표를 던지므로 상승 구간에 오래 머문다.

[ 파라미터 ]
    fast_period / slow_period / signal_period: MACD 기간
    ema_window:  EMA 기간
    rsi_window:  RSI 기간
    oversold / overbought: RSI 경계
"""

from typing import Any

from horizon_trader.core.trading_strategy import StrategyConfig, TradingStrategy
from horizon_trader.core.types import RebalanceFrequency, StrategyStyle
from horizon_trader.indicators.technical import IndicatorSpec, IndicatorType, SignalThresholds
from horizon_trader.strategies import register


@register("momentum")
class MomentumStrategy(TradingStrategy):
    """MACD + EMA + RSI 모멘텀 전략."""

    DEFAULT_PARAMS = {
        "fast_period": 12,
        "slow_period": 26,
        "signal_period": 9,
        "ema_window": 12,
        "rsi_window": 14,
        "oversold": 20,
        "overbought": 80,
    }

    def __init__(self, params: dict[str, Any] | None = None, thresholds: SignalThresholds | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="momentum", params=merged, thresholds=thresholds)

    def build_config(self) -> StrategyConfig:
        p = self.params
        return StrategyConfig(
            name="Momentum",
            indicators=(
                IndicatorSpec(IndicatorType.MACD, {
                    "fast_period": p["fast_period"],
                    "slow_period": p["slow_period"],
                    "signal_period": p["signal_period"],
                }),
                IndicatorSpec(IndicatorType.EMA, {"window": p["ema_window"]}),
                IndicatorSpec(IndicatorType.RSI, {
                    "window": p["rsi_window"],
                    "oversold": p["oversold"],
                    "overbought": p["overbought"],
                }),
            ),
            entry_rule="MACD bullish crossover AND RSI > 50",
            exit_rule="MACD bearish crossover OR RSI < 50",
            rebalance_freq=RebalanceFrequency.WEEKLY,
            style=StrategyStyle.MOMENTUM,
            description="Trades based on price momentum and MACD signals",
        )
