"""
추세추종(Trend Following) 전략.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "가격 > SMA50 이고 SMA50 > SMA200 이면 진입, 둘 중 하나라도 깨지면 청산"
    실제 결정은 두 SMA 지표의 다수결 (strategies/engine.py).

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    short_window: 단기 이동평균 기간 (일)
    long_window:  장기 이동평균 기간 (일)
"""

from typing import Any

from horizon_trader.core.trading_strategy import StrategyConfig, TradingStrategy
from horizon_trader.core.types import RebalanceFrequency, StrategyStyle
from horizon_trader.indicators.technical import IndicatorSpec, IndicatorType, SignalThresholds
from horizon_trader.strategies import register


@register("trend_following")
class TrendFollowingStrategy(TradingStrategy):
    """SMA 두 개로 추세를 따라가는 전략."""

    DEFAULT_PARAMS = {
        "short_window": 50,
        "long_window": 200,
    }

    def __init__(self, params: dict[str, Any] | None = None, thresholds: SignalThresholds | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="trend_following", params=merged, thresholds=thresholds)

    @property
    def short_window(self) -> int:
        return int(self.params["short_window"])

    @property
    def long_window(self) -> int:
        return int(self.params["long_window"])

    def build_config(self) -> StrategyConfig:
        return StrategyConfig(
            name="Trend Following",
            indicators=(
                IndicatorSpec(IndicatorType.SMA, {"window": self.short_window}),
                IndicatorSpec(IndicatorType.SMA, {"window": self.long_window}),
            ),
            entry_rule=f"Price > SMA{self.short_window} AND SMA{self.short_window} > SMA{self.long_window}",
            exit_rule=f"Price < SMA{self.short_window} OR SMA{self.short_window} < SMA{self.long_window}",
            rebalance_freq=RebalanceFrequency.WEEKLY,
            style=StrategyStyle.TREND_FOLLOWING,
            description="Uses moving averages to identify and follow market trends",
        )
