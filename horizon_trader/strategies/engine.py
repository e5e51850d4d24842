"""
전략 시그널 엔진 (StrategyEngine).

[ 역할 ]
    전략 설정의 지표들을 종목별로 계산하고 다수결로 하나의 시그널을 결정.
    신뢰도(0~1)와 사람이 읽을 수 있는 사유 문자열을 함께 만든다.
    모든 함수는 불변 입력을 받는 순수 함수. 엔진은 상태를 갖지 않는다.

[ 종목별 평가 흐름 ] evaluate_ticker()
    1. 지표별 try_compute() → 실패한 지표는 투표 제외, 결과에는 포함
    2. majority_vote()      → 단독 최다 득표가 승리, 동률(전부 hold 포함)은 hold
    3. calculate_confidence() → (동의 지표 비율) × (동의 지표 평균 강도)
    4. build_reason()       → "RSI shows buy signal, Bollinger shows buy signal"
    5. 데이터가 비었거나 짧으면 hold + 데이터 부족 사유 (예외 없음)

[ 리밸런싱 주기 추천 ] recommend_frequency()
    FREQUENCY_TABLE[전략 성격][투자기간 구간] 테이블 조회
    + 변동성이 주어지면 HIGH/LOW_VOLATILITY 기준으로 한 단계 조정

[ 호출하는 곳 ]
    - core/trading_strategy.py::TradingStrategy.generate_signals()
    - strategies/advisor.py::compare_strategies()
"""

import logging
import math
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Mapping, Sequence

import numpy as np

from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.trading_strategy import Signal, StrategyConfig
from horizon_trader.core.types import RebalanceFrequency, SignalType, StrategyStyle
from horizon_trader.indicators.technical import IndicatorResult, SignalThresholds, try_compute

logger = logging.getLogger("horizon_trader.strategy")

TRADING_DAYS_PER_YEAR = 252

# 전략 성격 × 투자기간(1/2/5년) → 리밸런싱 주기
FREQUENCY_TABLE: dict[StrategyStyle, dict[int, RebalanceFrequency]] = {
    StrategyStyle.MEAN_REVERSION: {
        1: RebalanceFrequency.DAILY,
        2: RebalanceFrequency.DAILY,
        5: RebalanceFrequency.DAILY,
    },
    StrategyStyle.MOMENTUM: {
        1: RebalanceFrequency.WEEKLY,
        2: RebalanceFrequency.WEEKLY,
        5: RebalanceFrequency.MONTHLY,
    },
    StrategyStyle.TREND_FOLLOWING: {
        1: RebalanceFrequency.WEEKLY,
        2: RebalanceFrequency.WEEKLY,
        5: RebalanceFrequency.MONTHLY,
    },
    StrategyStyle.CONSERVATIVE: {
        1: RebalanceFrequency.MONTHLY,
        2: RebalanceFrequency.MONTHLY,
        5: RebalanceFrequency.MONTHLY,
    },
}

HIGH_VOLATILITY = 0.35  # 연환산 변동성 이상이면 한 단계 잦게
LOW_VOLATILITY = 0.15   # 이하면 한 단계 드물게

_MORE_FREQUENT = {
    RebalanceFrequency.DAILY: RebalanceFrequency.DAILY,
    RebalanceFrequency.WEEKLY: RebalanceFrequency.DAILY,
    RebalanceFrequency.MONTHLY: RebalanceFrequency.WEEKLY,
}
_LESS_FREQUENT = {
    RebalanceFrequency.DAILY: RebalanceFrequency.WEEKLY,
    RebalanceFrequency.WEEKLY: RebalanceFrequency.MONTHLY,
    RebalanceFrequency.MONTHLY: RebalanceFrequency.MONTHLY,
}


# ─── 투표 / 신뢰도 / 사유 ──────────────────────────────────────────────────

def majority_vote(votes: Iterable[SignalType]) -> SignalType:
    """단독 최다 득표 시그널 반환. 최다 득표가 동률이면 보수적으로 hold."""
    counts = Counter(votes)
    if not counts:
        return SignalType.HOLD

    top = max(counts.values())
    leaders = [signal for signal, count in counts.items() if count == top]
    if len(leaders) > 1:
        return SignalType.HOLD
    return leaders[0]


def calculate_confidence(winner: SignalType, voters: Sequence[IndicatorResult]) -> float:
    """(winner에 동의한 지표 비율) × (동의 지표의 평균 강도). [0, 1]로 제한."""
    if not voters:
        return 0.0
    agreeing = [r for r in voters if r.signal_type == winner]
    if not agreeing:
        return 0.0
    fraction = len(agreeing) / len(voters)
    avg_strength = sum(r.strength for r in agreeing) / len(agreeing)
    return max(0.0, min(1.0, fraction * avg_strength))


def build_reason(winner: SignalType, voters: Sequence[IndicatorResult]) -> str:
    """동의한 지표 이름과 방향을 이어 붙인 사유 문자열."""
    reasons = [
        f"{r.name} shows {winner.value} signal"
        for r in voters
        if r.signal_type == winner
    ]
    if not reasons:
        return f"No clear signals from indicators, defaulting to {winner.value}"
    return ", ".join(reasons)


# ─── 종목 평가 ─────────────────────────────────────────────────────────────

def _labelled_specs(config: StrategyConfig):
    """같은 지표가 여러 번 쓰이면 SMA(50), SMA(200)처럼 구분되는 라벨을 붙인다."""
    counts = Counter(spec.label for spec in config.indicators)
    for spec in config.indicators:
        params = dict(spec.params)
        if counts[spec.label] > 1 and "label" not in params:
            window = params.get("window") or params.get("slow_period")
            params["label"] = f"{spec.label}({window})"
        yield spec.indicator_type, params


def evaluate_ticker(
    ticker: str,
    series: PriceSeries | None,
    config: StrategyConfig,
    thresholds: SignalThresholds | None = None,
    as_of: datetime | None = None,
) -> Signal:
    """한 종목의 Signal 계산. 데이터가 없거나 짧아도 예외 없이 hold를 돌려준다."""
    timestamp = as_of or datetime.now(timezone.utc)
    if series is None:
        series = PriceSeries.from_closes(ticker, [])

    results = tuple(
        try_compute(itype, series, params, thresholds)
        for itype, params in _labelled_specs(config)
    )
    voters = [r for r in results if r.ok]
    failed = [r for r in results if not r.ok]

    if not voters:
        logger.info(f"{ticker}: 계산 가능한 지표 없음 ({len(series)}봉) → hold")
        return Signal(
            ticker=ticker,
            signal_type=SignalType.HOLD,
            confidence=0.0,
            reason=(
                f"Insufficient price data ({len(series)} bars, "
                f"need {config.required_window}), defaulting to hold"
            ),
            indicator_results=results,
            timestamp=timestamp,
        )

    winner = majority_vote(r.signal_type for r in voters)
    confidence = calculate_confidence(winner, voters)
    reason = build_reason(winner, voters)
    if failed:
        skipped = ", ".join(r.name for r in failed)
        reason = f"{reason} (insufficient data for {skipped})"

    logger.debug(f"{ticker}: {winner.value} (신뢰도 {confidence:.2f}) - {reason}")
    return Signal(
        ticker=ticker,
        signal_type=winner,
        confidence=confidence,
        reason=reason,
        indicator_results=results,
        timestamp=timestamp,
    )


def generate_signals(
    price_series_by_ticker: Mapping[str, PriceSeries | None],
    config: StrategyConfig,
    thresholds: SignalThresholds | None = None,
    as_of: datetime | None = None,
) -> dict[str, Signal]:
    """ticker → Signal 매핑 생성. 종목 하나의 실패가 다른 종목에 영향 주지 않는다.

    Args:
        price_series_by_ticker: ticker → PriceSeries
        config: 전략 설정 (지표 목록)
        thresholds: 시그널 판정 상수
        as_of: 모든 Signal에 찍을 시각 (없으면 현재 UTC)
    """
    timestamp = as_of or datetime.now(timezone.utc)
    return {
        ticker: evaluate_ticker(ticker, series, config, thresholds, timestamp)
        for ticker, series in price_series_by_ticker.items()
    }


# ─── 리밸런싱 주기 ─────────────────────────────────────────────────────────

def horizon_bucket(horizon: float) -> int:
    """투자 기간(년) → 테이블 키 1 / 2 / 5."""
    if horizon <= 1:
        return 1
    if horizon <= 2:
        return 2
    return 5


def recommend_frequency(
    horizon: float,
    style: StrategyStyle | str,
    volatility: float | None = None,
) -> RebalanceFrequency:
    """투자 기간과 전략 성격으로 리밸런싱 주기 추천 (테이블 기반, 결정적).

    Args:
        horizon: 투자 기간 (년)
        style: 전략 성격
        volatility: 연환산 변동성 (선택). 높으면 한 단계 잦게, 낮으면 한 단계 드물게
    """
    frequency = FREQUENCY_TABLE[StrategyStyle.parse(style)][horizon_bucket(horizon)]
    if volatility is None:
        return frequency
    if volatility >= HIGH_VOLATILITY:
        return _MORE_FREQUENT[frequency]
    if volatility <= LOW_VOLATILITY:
        return _LESS_FREQUENT[frequency]
    return frequency


def estimate_volatility(series: PriceSeries) -> float | None:
    """일간 수익률 표준편차의 연환산 값. 데이터가 3봉 미만이면 None."""
    closes = series.closes.to_numpy(dtype=float)
    if len(closes) < 3:
        return None
    returns = np.diff(closes) / closes[:-1]
    vol = float(np.std(returns, ddof=1) * math.sqrt(TRADING_DAYS_PER_YEAR))
    return vol if math.isfinite(vol) else None
