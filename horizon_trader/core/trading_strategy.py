"""
매매 전략 추상 클래스 및 시그널/전략 설정 정의.

[ 역할 ]
    여러 지표 시그널을 하나의 결정으로 합치는 전략의 인터페이스를 정의.
    전략은 ticker → PriceSeries 매핑을 받아 ticker → Signal 매핑을 돌려준다.
    직전 결과를 전략 객체에 캐싱하지 않는다. 결과 보관은 호출자 책임.

[ 구현체 ]
    - strategies/indicator_strategy.py::IndicatorStrategy (설정 기반 커스텀 전략)
    - strategies/trend_following.py, mean_reversion.py, momentum.py, conservative.py (프리셋)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._simulate_day()에서 매일 generate_signals() 호출
    - run_backtest.py --signals 모드

[ 데이터 흐름 ]
    PriceSeries → indicators/technical.py → IndicatorResult들
               → strategies/engine.py (다수결 + 신뢰도 + 사유) → Signal
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InvalidParamsError
from horizon_trader.core.types import RebalanceFrequency, SignalType, StrategyStyle
from horizon_trader.indicators.technical import IndicatorResult, IndicatorSpec, SignalThresholds


@dataclass(frozen=True)
class Signal:
    """generate_signals()의 종목별 결과. 다음 평가 결과로 통째로 교체된다."""
    ticker: str
    signal_type: SignalType
    confidence: float
    reason: str
    indicator_results: tuple[IndicatorResult, ...] = ()
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """표현 계층에 넘길 기본 타입 dict."""
        return {
            "ticker": self.ticker,
            "signal": self.signal_type.value,
            "confidence": self.confidence,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "indicators": [
                {
                    "type": r.indicator_type.value,
                    "name": r.name,
                    "signal": r.signal_type.value,
                    "strength": r.strength,
                    "error": r.error,
                }
                for r in self.indicator_results
            ],
        }


@dataclass(frozen=True)
class StrategyConfig:
    """전략 구성. 지표 목록 + 진입/청산 규칙 설명 + 리밸런싱 주기."""
    name: str
    indicators: tuple[IndicatorSpec, ...]
    entry_rule: str = ""
    exit_rule: str = ""
    rebalance_freq: RebalanceFrequency = RebalanceFrequency.WEEKLY
    style: StrategyStyle = StrategyStyle.TREND_FOLLOWING
    description: str = ""

    def __post_init__(self):
        specs = tuple(
            spec if isinstance(spec, IndicatorSpec) else IndicatorSpec.from_dict(spec)
            for spec in self.indicators
        )
        if not specs:
            raise InvalidParamsError(f"Strategy '{self.name}' has no indicators")
        object.__setattr__(self, "indicators", specs)
        object.__setattr__(self, "rebalance_freq", RebalanceFrequency(self.rebalance_freq))
        object.__setattr__(self, "style", StrategyStyle(self.style))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StrategyConfig":
        """config.yaml의 strategy.params 형태에서 생성.

        {"name": ..., "indicators": [{"type": "RSI", "params": {...}}], "entry_rule": ...,
         "exit_rule": ..., "rebalance_freq": "weekly", "style": "mean_reversion"}
        """
        try:
            return cls(
                name=str(data.get("name", "custom")),
                indicators=tuple(data.get("indicators") or ()),
                entry_rule=str(data.get("entry_rule", "")),
                exit_rule=str(data.get("exit_rule", "")),
                rebalance_freq=data.get("rebalance_freq", "weekly"),
                style=data.get("style", "trend_following"),
                description=str(data.get("description", "")),
            )
        except ValueError as e:
            raise InvalidParamsError(f"Invalid strategy config: {e}") from e

    @property
    def required_window(self) -> int:
        """모든 지표를 계산하려면 필요한 최소 봉 수."""
        return max(spec.required_window for spec in self.indicators)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "indicators": [spec.to_dict() for spec in self.indicators],
            "entry_rule": self.entry_rule,
            "exit_rule": self.exit_rule,
            "rebalance_freq": self.rebalance_freq.value,
            "style": self.style.value,
        }


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략은 이 클래스를 상속받아 build_config()만 구현하면 된다.
    시그널 계산은 strategies/engine.py의 순수 함수가 담당한다.
    """

    def __init__(
        self,
        name: str,
        params: dict[str, Any] | None = None,
        thresholds: SignalThresholds | None = None,
    ):
        self.name = name
        self.params = params or {}  # config.yaml에서 로드된 전략 파라미터
        self.thresholds = thresholds or SignalThresholds()
        self.config = self.build_config()

    @abstractmethod
    def build_config(self) -> StrategyConfig:
        """self.params로 StrategyConfig 구성."""
        ...

    def generate_signals(
        self,
        price_data: Mapping[str, PriceSeries | None],
        as_of: datetime | None = None,
    ) -> dict[str, Signal]:
        """종목별 시그널 생성.

        Args:
            price_data: ticker → PriceSeries (없거나 짧은 시리즈도 허용)
            as_of: Signal.timestamp (없으면 현재 UTC 시각)
        """
        from horizon_trader.strategies.engine import generate_signals

        return generate_signals(price_data, self.config, self.thresholds, as_of=as_of)

    def recommend_frequency(self, horizon: float, volatility: float | None = None) -> RebalanceFrequency:
        """투자 기간 + 전략 성격(+ 변동성)으로 리밸런싱 주기 추천."""
        from horizon_trader.strategies.engine import recommend_frequency

        return recommend_frequency(horizon, self.config.style, volatility)

    def explain(self) -> dict[str, Any]:
        """전략 설명 (이름, 지표, 규칙, 주기)."""
        return {
            "name": self.config.name,
            "description": self.config.description or "Custom strategy using technical indicators",
            "indicators": [spec.to_dict() for spec in self.config.indicators],
            "frequency": self.config.rebalance_freq.value,
            "rules": {
                "entry": self.config.entry_rule or "Majority vote of indicators",
                "exit": self.config.exit_rule or "Majority vote of indicators",
            },
        }

    @property
    def indicator_specs(self) -> Sequence[IndicatorSpec]:
        return self.config.indicators

    def __str__(self) -> str:
        return f"{self.config.name} Strategy ({self.config.rebalance_freq.value} rebalancing)"
