"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 선택, 거래 비용, 시그널 판정 상수, 백테스트 기간, 로깅 설정을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategySettings (전략 이름, 종목, 투자 기간, 위험 성향, 파라미터)
    trading:          → TradingConfig (초기 자금, 수수료, 슬리피지, 매수 비중)
    signals:          → SignalThresholds (지표 시그널 판정/강도 상수)
    backtest:         → BacktestConfig (백테스트 기간)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

    모르는 키는 무시한다.

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.from_yaml()로 로드
    - 전략 생성 시 config.strategy.params와 config.signals를 전달
    - 엔진 생성 시 config.trading의 값을 사용
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from horizon_trader.indicators.technical import SignalThresholds


@dataclass
class StrategySettings:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    지표 구성(core/trading_strategy.py::StrategyConfig)과는 별개로,
    어떤 등록 전략을 어떤 파라미터로 만들지만 담는다.
    각 전략 클래스의 DEFAULT_PARAMS가 기본값 역할을 하므로,
    params에는 오버라이드할 값만 지정하면 된다.
    """
    name: str = "mean_reversion"
    tickers: list[str] = field(default_factory=list)
    horizon: float = 1.0              # 투자 기간 (년)
    risk_tolerance: str = "medium"    # low / medium / high
    params: dict[str, Any] = field(default_factory=dict)

    def params_for(self, strategy_name: str) -> dict[str, Any]:
        """strategy_name이 설정된 전략과 같을 때만 params 사본, 아니면 빈 dict."""
        return dict(self.params) if strategy_name == self.name else {}


@dataclass
class TradingConfig:
    """거래 비용/규모 설정. config.yaml의 trading 섹션에 대응."""
    initial_cash: float = 100_000
    commission_rate: float = 0.001    # 0.1%
    slippage_rate: float = 0.0005     # 0.05%
    position_size_pct: float = 50.0   # 매수 1회에 쓰는 가용 현금 비율 (%)


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응."""
    start_date: str = "2024-01-01"
    end_date: str = "2024-12-31"

    @property
    def start(self) -> date:
        return date.fromisoformat(str(self.start_date))

    @property
    def end(self) -> date:
        return date.fromisoformat(str(self.end_date))


def _section(cls, data: dict[str, Any] | None):
    """dataclass 필드에 해당하는 키만 골라 생성."""
    data = data or {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategySettings = field(default_factory=StrategySettings)
    trading: TradingConfig = field(default_factory=TradingConfig)
    signals: SignalThresholds = field(default_factory=SignalThresholds)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성."""
        strategy_data = dict(data.get("strategy") or {})

        # strategy 섹션 파싱: 알려진 필드는 직접, params가 없으면 나머지를 모두 params로
        known = set(StrategySettings.__dataclass_fields__) - {"params"}
        if "params" in strategy_data:
            strategy_params = strategy_data["params"] or {}
        else:
            strategy_params = {k: v for k, v in strategy_data.items() if k not in known}
        strategy = StrategySettings(
            params=dict(strategy_params),
            **{k: v for k, v in strategy_data.items() if k in known},
        )

        return cls(
            strategy=strategy,
            trading=_section(TradingConfig, data.get("trading")),
            signals=_section(SignalThresholds, data.get("signals")),
            backtest=_section(BacktestConfig, data.get("backtest")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
