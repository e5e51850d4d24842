"""
전략 추천 / 전략 비교.

[ 역할 ]
    투자 기간 + 위험 성향으로 프리셋 전략 하나를 추천하고,
    같은 가격 데이터에 등록된 전략들을 돌려 시그널 분포를 비교한다.

[ 호출하는 곳 ]
    - run_backtest.py --recommend / --compare 모드
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InvalidParamsError
from horizon_trader.core.types import RebalanceFrequency, SignalType
from horizon_trader.strategies import create_strategy

logger = logging.getLogger("horizon_trader.strategy")

RISK_LEVELS = ("low", "medium", "high")
PRESET_STRATEGIES = ("trend_following", "mean_reversion", "momentum", "conservative")

_STRATEGY_REASONS = {
    "trend_following": "Trend following works well in trending markets",
    "mean_reversion": "Mean reversion captures short-term price reversals",
    "momentum": "Momentum strategies capitalize on market momentum",
    "conservative": "Conservative approach minimizes risk and volatility",
}


@dataclass(frozen=True)
class StrategyRecommendation:
    strategy: str
    frequency: RebalanceFrequency
    confidence: float
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy,
            "frequency": self.frequency.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class StrategyComparison:
    """한 전략의 시그널 분포 요약."""
    strategy: str
    signal_distribution: dict[str, int] = field(default_factory=dict)
    average_confidence: float = 0.0
    total_signals: int = 0

    @property
    def buy_ratio(self) -> float:
        if self.total_signals == 0:
            return 0.0
        return self.signal_distribution.get(SignalType.BUY.value, 0) / self.total_signals

    @property
    def sell_ratio(self) -> float:
        if self.total_signals == 0:
            return 0.0
        return self.signal_distribution.get(SignalType.SELL.value, 0) / self.total_signals


def _pick_strategy(horizon: float, risk_tolerance: str) -> tuple[str, float]:
    """(전략 이름, 추천 신뢰도)."""
    if horizon <= 1:
        if risk_tolerance == "high":
            return "momentum", 0.8
        return "trend_following", 0.7
    if horizon <= 2:
        if risk_tolerance == "high":
            return "trend_following", 0.7
        if risk_tolerance == "medium":
            return "mean_reversion", 0.6
        return "conservative", 0.8
    if risk_tolerance == "high":
        return "trend_following", 0.6
    return "conservative", 0.9


def _build_reasoning(horizon: float, risk_tolerance: str, strategy: str) -> str:
    reasons = []
    if horizon <= 1:
        reasons.append("Short-term horizon requires active management")
    elif horizon <= 2:
        reasons.append("Medium-term horizon allows for balanced approach")
    else:
        reasons.append("Long-term horizon favors conservative strategies")

    if risk_tolerance == "high":
        reasons.append("High risk tolerance allows for aggressive strategies")
    elif risk_tolerance == "medium":
        reasons.append("Medium risk tolerance suggests balanced approach")
    else:
        reasons.append("Low risk tolerance requires conservative strategies")

    reasons.append(_STRATEGY_REASONS.get(strategy, "Strategy selected based on portfolio characteristics"))
    return ". ".join(reasons)


def recommend_strategy(
    horizon: float,
    risk_tolerance: str = "medium",
    volatility: float | None = None,
) -> StrategyRecommendation:
    """투자 기간(년)과 위험 성향(low/medium/high)으로 프리셋 전략 추천.

    짧은 기간 + 고위험 → momentum, 긴 기간 + 저위험 → conservative 쪽으로 기운다.
    리밸런싱 주기는 추천된 전략의 recommend_frequency()를 그대로 쓴다.
    """
    if horizon <= 0:
        raise InvalidParamsError(f"horizon must be positive, got {horizon}")
    risk = risk_tolerance.lower()
    if risk not in RISK_LEVELS:
        raise InvalidParamsError(
            f"risk_tolerance must be one of {', '.join(RISK_LEVELS)}, got '{risk_tolerance}'"
        )

    name, confidence = _pick_strategy(horizon, risk)
    strategy = create_strategy(name)
    frequency = strategy.recommend_frequency(horizon, volatility)

    logger.info(f"전략 추천: {horizon}년/{risk} → {name} ({frequency.value}, 신뢰도 {confidence:.0%})")
    return StrategyRecommendation(
        strategy=name,
        frequency=frequency,
        confidence=confidence,
        reasoning=_build_reasoning(horizon, risk, name),
    )


def compare_strategies(
    price_data: Mapping[str, PriceSeries | None],
    names: Sequence[str] | None = None,
) -> dict[str, StrategyComparison]:
    """같은 가격 데이터로 여러 전략의 시그널을 뽑아 분포를 비교.

    names를 생략하면 프리셋 4종.
    """
    if names is None:
        names = PRESET_STRATEGIES

    comparison: dict[str, StrategyComparison] = {}
    for name in names:
        signals = create_strategy(name).generate_signals(price_data)
        counts = Counter(s.signal_type.value for s in signals.values())
        distribution = {t.value: counts.get(t.value, 0) for t in SignalType}
        total = len(signals)
        avg_conf = sum(s.confidence for s in signals.values()) / total if total else 0.0
        comparison[name] = StrategyComparison(
            strategy=name,
            signal_distribution=distribution,
            average_confidence=avg_conf,
            total_signals=total,
        )
        logger.debug(f"[{name}] 시그널 분포: {distribution}, 평균 신뢰도 {avg_conf:.2f}")

    return comparison
