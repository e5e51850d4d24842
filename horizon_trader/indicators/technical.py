"""
기술적 지표 계산 모듈 (IndicatorEngine).

[ 역할 ]
    PriceSeries의 종가로 SMA, EMA, RSI, MACD, 볼린저밴드를 계산하고
    지표별로 값 + 방향 시그널(buy/hold/sell) + 강도(0~1)를 담은 IndicatorResult를 만든다.
    모든 함수는 순수 함수. 호출 간 상태를 남기지 않는다.

[ 지표별 필요 데이터 길이 (required_window) ]
    SMA / EMA / BOLLINGER : window
    RSI                   : window + 1  (가격 변화량 window개 필요)
    MACD                  : slow_period + signal_period - 1

[ 오류 처리 ]
    - 데이터 부족     → InsufficientDataError (compute) / error 필드 (try_compute)
    - 파라미터 오류   → InvalidParamsError (항상 raise, 호출자 버그)
    - NaN/inf 종가    → raise 하지 않고 IndicatorResult.error에 기록
      → 여러 지표 중 일부가 실패해도 전체 평가는 계속 진행

[ 호출하는 곳 ]
    - strategies/engine.py::evaluate_ticker()에서 try_compute() 호출
    - 지표 이력 차트가 필요하면 calculate_*() 함수로 전체 시계열 조회
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Union

import numpy as np
import pandas as pd

from horizon_trader.core.data_provider import PriceSeries
from horizon_trader.core.exceptions import InsufficientDataError, InvalidParamsError
from horizon_trader.core.types import SignalType

logger = logging.getLogger("horizon_trader.indicators")


class IndicatorType(Enum):
    """지원하는 지표 종류."""
    SMA = "SMA"
    EMA = "EMA"
    RSI = "RSI"
    MACD = "MACD"
    BOLLINGER = "BOLLINGER"

    @property
    def display_name(self) -> str:
        return "Bollinger" if self is IndicatorType.BOLLINGER else self.value

    @classmethod
    def parse(cls, value: "IndicatorType | str") -> "IndicatorType":
        """문자열("rsi", "BOLLINGER_BANDS" 등) → IndicatorType."""
        if isinstance(value, IndicatorType):
            return value
        key = str(value).strip().upper()
        key = _TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise InvalidParamsError(f"Unknown indicator type: {value}") from None


_TYPE_ALIASES = {
    "BOLLINGER_BANDS": "BOLLINGER",
    "BB": "BOLLINGER",
}

# 파라미터 기본값. 전달된 params가 있으면 덮어쓴다.
DEFAULT_PARAMS: dict[IndicatorType, dict[str, Any]] = {
    IndicatorType.SMA: {"window": 20},
    IndicatorType.EMA: {"window": 12},
    IndicatorType.RSI: {"window": 14, "oversold": 30, "overbought": 70},
    IndicatorType.MACD: {"fast_period": 12, "slow_period": 26, "signal_period": 9},
    IndicatorType.BOLLINGER: {"window": 20, "multiplier": 2.0},
}

# 지표별로 추가 허용되는 키 (label은 공통)
_EXTRA_KEYS: dict[IndicatorType, set[str]] = {
    IndicatorType.SMA: {"threshold"},
    IndicatorType.EMA: {"threshold"},
}


@dataclass(frozen=True)
class SignalThresholds:
    """시그널 판정/강도 정규화 상수. config.yaml의 signals 섹션에 대응.

    경험적으로 정한 값이므로 고정 불변식이 아니라 설정으로 관리한다.
    """
    sma_threshold: float = 0.01     # 종가가 SMA 대비 이 비율 이상 벗어나야 buy/sell
    ema_threshold: float = 0.01     # EMA 동일
    deviation_scale: float = 0.10   # 괴리율 10%면 강도 1.0
    macd_scale: float = 0.01        # 히스토그램이 종가의 1%면 강도 1.0


@dataclass(frozen=True)
class MACDValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerValue:
    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        return self.upper - self.lower


# SMA/EMA/RSI → float, MACD → MACDValue, BOLLINGER → BollingerValue
IndicatorValue = Union[float, MACDValue, BollingerValue]


@dataclass(frozen=True)
class IndicatorResult:
    """지표 1회 계산 결과. 계산할 때마다 새로 만들고 수정하지 않는다."""
    indicator_type: IndicatorType
    value: IndicatorValue | None
    signal_type: SignalType = SignalType.HOLD
    strength: float = 0.0
    params: Mapping[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def name(self) -> str:
        return str(self.params.get("label") or self.indicator_type.display_name)


@dataclass(frozen=True)
class IndicatorSpec:
    """전략 설정의 지표 항목 하나. 생성 시 파라미터 검증 + 기본값 병합."""
    indicator_type: IndicatorType
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        itype = IndicatorType.parse(self.indicator_type)
        object.__setattr__(self, "indicator_type", itype)
        object.__setattr__(self, "params", validate_params(itype, self.params))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IndicatorSpec":
        """{"type": "RSI", "params": {...}} 형태에서 생성."""
        if "type" not in data:
            raise InvalidParamsError(f"Indicator config without 'type': {dict(data)}")
        return cls(indicator_type=data["type"], params=dict(data.get("params") or {}))

    @property
    def label(self) -> str:
        return str(self.params.get("label") or self.indicator_type.display_name)

    @property
    def required_window(self) -> int:
        return required_window(self.indicator_type, self.params)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.indicator_type.value, "params": dict(self.params)}


# ─── 파라미터 검증 ─────────────────────────────────────────────────────────

def _positive_int(indicator: IndicatorType, name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidParamsError(f"{indicator.value}: {name} must be a positive integer, got {value!r}")
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        value = int(value)
    if not isinstance(value, (int, np.integer)) or value <= 0:
        raise InvalidParamsError(f"{indicator.value}: {name} must be a positive integer, got {value!r}")
    return int(value)


def _number(indicator: IndicatorType, name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        raise InvalidParamsError(f"{indicator.value}: {name} must be a number, got {value!r}")
    if not math.isfinite(float(value)):
        raise InvalidParamsError(f"{indicator.value}: {name} must be finite, got {value!r}")
    return float(value)


def validate_params(
    indicator_type: IndicatorType | str,
    params: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """기본값과 병합한 뒤 검증한 파라미터 dict 반환.

    Raises:
        InvalidParamsError: 알 수 없는 키, 0 이하 기간, 잘못된 MACD 기간 조합,
                            RSI 경계값 오류, 0 이하 볼린저 배수
    """
    itype = IndicatorType.parse(indicator_type)
    merged = {**DEFAULT_PARAMS[itype], **dict(params or {})}

    allowed = set(DEFAULT_PARAMS[itype]) | _EXTRA_KEYS.get(itype, set()) | {"label"}
    unknown = sorted(set(merged) - allowed)
    if unknown:
        raise InvalidParamsError(f"{itype.value}: unknown parameters {unknown}")

    if itype is IndicatorType.MACD:
        fast = _positive_int(itype, "fast_period", merged["fast_period"])
        slow = _positive_int(itype, "slow_period", merged["slow_period"])
        signal = _positive_int(itype, "signal_period", merged["signal_period"])
        if fast >= slow:
            raise InvalidParamsError(
                f"MACD: fast_period ({fast}) must be smaller than slow_period ({slow})"
            )
        merged.update(fast_period=fast, slow_period=slow, signal_period=signal)
        return merged

    merged["window"] = _positive_int(itype, "window", merged["window"])

    if itype is IndicatorType.RSI:
        oversold = _number(itype, "oversold", merged["oversold"])
        overbought = _number(itype, "overbought", merged["overbought"])
        if not 0 < oversold < overbought < 100:
            raise InvalidParamsError(
                f"RSI: need 0 < oversold < overbought < 100, got {oversold} / {overbought}"
            )
        merged.update(oversold=oversold, overbought=overbought)
    elif itype is IndicatorType.BOLLINGER:
        multiplier = _number(itype, "multiplier", merged["multiplier"])
        if multiplier <= 0:
            raise InvalidParamsError(f"BOLLINGER: multiplier must be positive, got {multiplier}")
        merged["multiplier"] = multiplier
    elif "threshold" in merged:
        threshold = _number(itype, "threshold", merged["threshold"])
        if threshold < 0:
            raise InvalidParamsError(f"{itype.value}: threshold must be >= 0, got {threshold}")
        merged["threshold"] = threshold

    return merged


def required_window(indicator_type: IndicatorType | str, params: Mapping[str, Any] | None = None) -> int:
    """지표 계산에 필요한 최소 봉 수."""
    itype = IndicatorType.parse(indicator_type)
    resolved = validate_params(itype, params)
    if itype is IndicatorType.RSI:
        return resolved["window"] + 1
    if itype is IndicatorType.MACD:
        return resolved["slow_period"] + resolved["signal_period"] - 1
    return resolved["window"]


# ─── 시계열 계산 (전체 이력) ───────────────────────────────────────────────

def calculate_sma(closes: pd.Series, window: int) -> pd.Series:
    """단순이동평균. 길이 = len(closes) - window + 1 (window 미만이면 빈 Series)."""
    if len(closes) < window:
        return pd.Series(dtype=float)
    return closes.rolling(window).mean().iloc[window - 1:]


def calculate_ema(closes: pd.Series, window: int) -> pd.Series:
    """지수이동평균. 첫 종가로 시작, α = 2/(window+1). 입력과 같은 길이."""
    alpha = 2.0 / (window + 1)
    return closes.ewm(alpha=alpha, adjust=False).mean()


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(closes: pd.Series, window: int) -> pd.Series:
    """Wilder 평활 RSI. 첫 값은 첫 window개 변화량의 단순평균으로 시작.

    길이 = len(closes) - window. 평균 손실이 0이면 RSI = 100.
    """
    values = closes.to_numpy(dtype=float)
    deltas = np.diff(values)
    if len(deltas) < window:
        return pd.Series(dtype=float)

    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(gains[:window].mean())
    avg_loss = float(losses[:window].mean())
    rsi = [_rsi_from_averages(avg_gain, avg_loss)]

    for i in range(window, len(deltas)):
        avg_gain = (avg_gain * (window - 1) + gains[i]) / window
        avg_loss = (avg_loss * (window - 1) + losses[i]) / window
        rsi.append(_rsi_from_averages(avg_gain, avg_loss))

    return pd.Series(rsi, index=closes.index[window:], dtype=float)


def calculate_macd(
    closes: pd.Series,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> pd.DataFrame:
    """MACD 선 / 시그널 선 / 히스토그램. columns: macd, signal, histogram."""
    macd_line = calculate_ema(closes, fast_period) - calculate_ema(closes, slow_period)
    signal_line = calculate_ema(macd_line, signal_period)
    return pd.DataFrame({
        "macd": macd_line,
        "signal": signal_line,
        "histogram": macd_line - signal_line,
    })


def calculate_bollinger(closes: pd.Series, window: int = 20, multiplier: float = 2.0) -> pd.DataFrame:
    """볼린저밴드 (모표준편차 사용). columns: upper, middle, lower. 길이 = n - window + 1."""
    if len(closes) < window:
        return pd.DataFrame(columns=["upper", "middle", "lower"], dtype=float)
    rolling = closes.rolling(window)
    middle = rolling.mean()
    std = rolling.std(ddof=0)
    bands = pd.DataFrame({
        "upper": middle + multiplier * std,
        "middle": middle,
        "lower": middle - multiplier * std,
    })
    return bands.iloc[window - 1:]


# ─── 시그널 판정 ───────────────────────────────────────────────────────────

def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _neutral_strength(distance: float, half_width: float) -> float:
    """hold 강도: 중립점이면 1.0, 중립 구간 경계로 갈수록 0."""
    if half_width <= 0:
        return 1.0 if distance == 0 else 0.0
    return _clamp(1 - distance / half_width)


def _deviation_signal(price: float, reference: float, threshold: float, scale: float) -> tuple[SignalType, float]:
    """이동평균 대비 괴리율로 시그널/강도 판정 (SMA, EMA 공용)."""
    if reference == 0:
        return SignalType.HOLD, 0.0
    deviation = (price - reference) / reference
    strength = _clamp(abs(deviation) / scale) if scale > 0 else 0.0
    if deviation > threshold:
        return SignalType.BUY, strength
    if deviation < -threshold:
        return SignalType.SELL, strength
    return SignalType.HOLD, _neutral_strength(abs(deviation), threshold)


def _sma_result(closes: pd.Series, params: dict[str, Any], thresholds: SignalThresholds) -> IndicatorResult:
    sma = float(calculate_sma(closes, params["window"]).iloc[-1])
    threshold = params.get("threshold", thresholds.sma_threshold)
    signal, strength = _deviation_signal(float(closes.iloc[-1]), sma, threshold, thresholds.deviation_scale)
    return IndicatorResult(IndicatorType.SMA, sma, signal, strength, params)


def _ema_result(closes: pd.Series, params: dict[str, Any], thresholds: SignalThresholds) -> IndicatorResult:
    ema = float(calculate_ema(closes, params["window"]).iloc[-1])
    threshold = params.get("threshold", thresholds.ema_threshold)
    signal, strength = _deviation_signal(float(closes.iloc[-1]), ema, threshold, thresholds.deviation_scale)
    return IndicatorResult(IndicatorType.EMA, ema, signal, strength, params)


def _rsi_result(closes: pd.Series, params: dict[str, Any], thresholds: SignalThresholds) -> IndicatorResult:
    rsi = float(calculate_rsi(closes, params["window"]).iloc[-1])
    oversold, overbought = params["oversold"], params["overbought"]

    # 중립 구간 밖으로 얼마나 벗어났는지가 강도, 안이면 중립점(중앙)에 가까운 정도
    if rsi < oversold:
        return IndicatorResult(IndicatorType.RSI, rsi, SignalType.BUY, _clamp((oversold - rsi) / oversold), params)
    if rsi > overbought:
        strength = _clamp((rsi - overbought) / (100 - overbought))
        return IndicatorResult(IndicatorType.RSI, rsi, SignalType.SELL, strength, params)
    center, half_width = (oversold + overbought) / 2, (overbought - oversold) / 2
    strength = _neutral_strength(abs(rsi - center), half_width)
    return IndicatorResult(IndicatorType.RSI, rsi, SignalType.HOLD, strength, params)


def _macd_result(closes: pd.Series, params: dict[str, Any], thresholds: SignalThresholds) -> IndicatorResult:
    frame = calculate_macd(closes, params["fast_period"], params["slow_period"], params["signal_period"])
    last = frame.iloc[-1]
    histogram = float(last["histogram"])
    previous = float(frame["histogram"].iloc[-2])
    value = MACDValue(macd=float(last["macd"]), signal=float(last["signal"]), histogram=histogram)

    scale = abs(float(closes.iloc[-1])) * thresholds.macd_scale
    strength = _clamp(abs(histogram) / scale) if scale > 0 else 0.0

    # 상향 교차 또는 시그널선 위 유지 → buy, 새로운 하향 교차 → sell
    if histogram > 0:
        signal = SignalType.BUY
    elif previous >= 0 > histogram:
        signal = SignalType.SELL
    else:
        signal = SignalType.HOLD
        strength = _neutral_strength(abs(histogram), scale)
    return IndicatorResult(IndicatorType.MACD, value, signal, strength, params)


def _bollinger_result(closes: pd.Series, params: dict[str, Any], thresholds: SignalThresholds) -> IndicatorResult:
    last = calculate_bollinger(closes, params["window"], params["multiplier"]).iloc[-1]
    bands = BollingerValue(upper=float(last["upper"]), middle=float(last["middle"]), lower=float(last["lower"]))
    price = float(closes.iloc[-1])

    if bands.width <= 0:
        return IndicatorResult(IndicatorType.BOLLINGER, bands, SignalType.HOLD, 1.0, params)

    # 밴드 이탈 시 중심선에서 반폭 대비 거리, hold면 중심선에 가까울수록 1.0
    distance = abs(price - bands.middle)
    strength = _clamp(distance / (bands.width / 2))
    if price <= bands.lower:
        signal = SignalType.BUY
    elif price >= bands.upper:
        signal = SignalType.SELL
    else:
        signal = SignalType.HOLD
        strength = _neutral_strength(distance, bands.width / 2)
    return IndicatorResult(IndicatorType.BOLLINGER, bands, signal, strength, params)


_CALCULATORS: dict[IndicatorType, Callable[[pd.Series, dict[str, Any], SignalThresholds], IndicatorResult]] = {
    IndicatorType.SMA: _sma_result,
    IndicatorType.EMA: _ema_result,
    IndicatorType.RSI: _rsi_result,
    IndicatorType.MACD: _macd_result,
    IndicatorType.BOLLINGER: _bollinger_result,
}


def _value_is_finite(value: IndicatorValue | None) -> bool:
    if value is None:
        return False
    if isinstance(value, MACDValue):
        parts = (value.macd, value.signal, value.histogram)
    elif isinstance(value, BollingerValue):
        parts = (value.upper, value.middle, value.lower)
    else:
        parts = (value,)
    return all(math.isfinite(p) for p in parts)


# ─── 공개 API ──────────────────────────────────────────────────────────────

def compute(
    indicator_type: IndicatorType | str,
    series: PriceSeries,
    params: Mapping[str, Any] | None = None,
    thresholds: SignalThresholds | None = None,
) -> IndicatorResult:
    """지표 1개 계산.

    Args:
        indicator_type: 지표 종류 (IndicatorType 또는 "RSI" 같은 문자열)
        series: 가격 시리즈
        params: 지표 파라미터 (DEFAULT_PARAMS를 오버라이드)
        thresholds: 시그널 판정 상수 (없으면 기본값)

    Raises:
        InsufficientDataError: len(series) < required_window
        InvalidParamsError: 파라미터 오류
    """
    itype = IndicatorType.parse(indicator_type)
    resolved = validate_params(itype, params)
    label = str(resolved.get("label") or itype.display_name)

    needed = required_window(itype, resolved)
    if len(series) < needed:
        raise InsufficientDataError(label, needed, len(series))

    closes = series.closes
    if not np.isfinite(closes.to_numpy(dtype=float)).all():
        logger.warning(f"{series.ticker} {label}: 종가에 NaN/inf 포함 → 계산 제외")
        return IndicatorResult(itype, None, params=resolved, error="price series contains NaN or non-finite closes")

    result = _CALCULATORS[itype](closes, resolved, thresholds or SignalThresholds())
    if not _value_is_finite(result.value):
        logger.warning(f"{series.ticker} {label}: 계산 결과가 유한하지 않음 ({result.value})")
        return IndicatorResult(itype, result.value, params=resolved, error="indicator value is not finite")
    return result


def try_compute(
    indicator_type: IndicatorType | str,
    series: PriceSeries,
    params: Mapping[str, Any] | None = None,
    thresholds: SignalThresholds | None = None,
) -> IndicatorResult:
    """compute()와 같지만 데이터 부족을 error 필드로 돌려준다. 파라미터 오류는 그대로 raise."""
    try:
        return compute(indicator_type, series, params, thresholds)
    except InsufficientDataError as e:
        logger.debug(f"{series.ticker}: {e}")
        itype = IndicatorType.parse(indicator_type)
        return IndicatorResult(itype, None, params=validate_params(itype, params), error=str(e))


def compute_all(
    series: PriceSeries,
    specs: Iterable[IndicatorSpec],
    thresholds: SignalThresholds | None = None,
) -> list[IndicatorResult]:
    """여러 지표 일괄 계산. 실패한 지표는 error가 채워진 결과로 포함된다."""
    return [try_compute(spec.indicator_type, series, spec.params, thresholds) for spec in specs]
