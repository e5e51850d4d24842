"""
설정 기반 커스텀 전략.

[ 역할 ]
    config.yaml의 strategy.params에 적힌 지표 목록으로 전략을 구성.
    코드 수정 없이 지표 조합을 바꿔가며 시그널/백테스트를 돌릴 때 사용.

[ config.yaml 예시 ]
    strategy:
      name: custom
      params:
        name: "SMA + RSI"
        indicators:
          - {type: SMA, params: {window: 20}}
          - {type: RSI, params: {window: 14}}
        rebalance_freq: weekly
        style: trend_following
"""

from typing import Any

from horizon_trader.core.trading_strategy import StrategyConfig, TradingStrategy
from horizon_trader.indicators.technical import SignalThresholds
from horizon_trader.strategies import register


@register("custom")
class IndicatorStrategy(TradingStrategy):
    """params의 indicators 목록을 그대로 쓰는 전략."""

    DEFAULT_PARAMS = {
        "name": "Custom",
        "indicators": [
            {"type": "SMA", "params": {"window": 20}},
            {"type": "RSI", "params": {"window": 14}},
            {"type": "BOLLINGER", "params": {"window": 20, "multiplier": 2}},
        ],
        "rebalance_freq": "weekly",
        "style": "trend_following",
    }

    def __init__(self, params: dict[str, Any] | None = None, thresholds: SignalThresholds | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="custom", params=merged, thresholds=thresholds)

    def build_config(self) -> StrategyConfig:
        return StrategyConfig.from_dict(self.params)
